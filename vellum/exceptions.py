"""Exception classes for Vellum.

Fatal errors abort a build before or during compilation. ``CleanupWarning``
is the one non-fatal condition: it is reported, never raised by the pipeline.
"""

from __future__ import annotations

from pathlib import Path

__all__ = [
    "CleanupWarning",
    "ConfigurationError",
    "DriverError",
    "MissingSourceError",
    "ModuleNotFoundInSearchPathError",
    "VellumError",
]


class VellumError(Exception):
    """Base exception for Vellum errors."""


class ConfigurationError(VellumError):
    """Raised when site or framework paths, or the entry set, are invalid."""


class MissingSourceError(VellumError):
    """Raised when a fixed entry's source file does not exist.

    Attributes:
        entry_name: Logical name of the entry that needs the file.
        path: The missing source path.
    """

    def __init__(self, entry_name: str, path: Path):
        self.entry_name = entry_name
        self.path = path
        super().__init__(f"Missing source for entry '{entry_name}': {path}")


class DriverError(VellumError):
    """Raised when asset compilation fails.

    The message is surfaced verbatim; callers do not parse it.

    Attributes:
        command: The external command that failed, if any.
        return_code: Its exit status, if any.
        stderr: Its error output, if any.
    """

    def __init__(
        self,
        message: str,
        command: list[str] | None = None,
        return_code: int | None = None,
        stderr: str | None = None,
    ):
        self.command = command
        self.return_code = return_code
        self.stderr = stderr
        super().__init__(message)


class ModuleNotFoundInSearchPathError(DriverError):
    """Raised when a ``require()`` request cannot be resolved."""

    def __init__(self, request: str, issuer: Path, searched: list[Path]):
        self.request = request
        self.issuer = issuer
        self.searched = searched
        paths_str = ", ".join(str(p) for p in searched)
        super().__init__(
            f"Module not found: can't resolve '{request}' in {issuer.parent}. "
            f"Searched: {paths_str}"
        )


class CleanupWarning(UserWarning):
    """An orphan artifact exists but could not be deleted.

    Attributes:
        path: The artifact that was left behind.
    """

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Could not remove orphan artifact {path}: {reason}")
