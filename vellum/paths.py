"""Path resolution for Vellum builds.

Computes the absolute locations a build needs and bundles them, together with
the build mode, into an immutable ``BuildContext``. The context is created
once per build and passed explicitly to every stage.

Key components:
- BuildMode: Development or production.
- BuildContext: Resolved paths plus mode.
- resolve_context: Validates the two roots and produces a BuildContext.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .exceptions import ConfigurationError

ASSET_SOURCE_DIRNAME = "www"
SITE_MODULES_DIRNAME = "node_modules"
FRAMEWORK_MODULES_DIRNAME = "vendor"
DEFAULT_OUTPUT_DIR = Path("data") / ".assets"


class BuildMode(str, Enum):
    DEVELOPMENT = "development"
    PRODUCTION = "production"

    @classmethod
    def from_value(cls, value: str | BuildMode) -> BuildMode:
        """Parse a mode name, case-insensitively.

        Raises:
            ConfigurationError: If the name is not a known mode.
        """
        if isinstance(value, BuildMode):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ConfigurationError(
                f"Unknown build mode '{value}'. Expected 'development' or 'production'."
            ) from None


@dataclass(frozen=True)
class BuildContext:
    """Resolved paths for a single build invocation.

    Attributes:
        framework_root: Installation root of the Vellum package.
        site_root: Root directory of the site project.
        asset_source_dir: The site's ``www`` directory.
        output_dir: Directory where compiled assets are written.
        framework_modules: Framework dependency directory.
        site_modules: Site dependency directory.
        mode: Build mode for this invocation.
    """

    framework_root: Path
    site_root: Path
    asset_source_dir: Path
    output_dir: Path
    framework_modules: Path
    site_modules: Path
    mode: BuildMode = BuildMode.PRODUCTION

    @property
    def dashboard_assets_dir(self) -> Path:
        return self.framework_root / "assets"


def framework_root() -> Path:
    """Return the directory of the installed vellum package."""
    return Path(__file__).resolve().parent


def resolve_context(
    framework_root: Path,
    site_root: Path,
    mode: BuildMode = BuildMode.PRODUCTION,
    output_dir: Path | None = None,
) -> BuildContext:
    """Validate the framework and site roots and build a context.

    Args:
        framework_root: Installation root of the framework.
        site_root: Root directory of the site project.
        mode: Build mode to record on the context.
        output_dir: Optional output directory; relative paths are taken
            relative to the site root.

    Returns:
        BuildContext with absolute paths.

    Raises:
        ConfigurationError: If a root or one of its marker directories is missing.
    """
    framework_root = Path(framework_root).resolve()
    site_root = Path(site_root).resolve()

    _require_dir(framework_root, "Framework root")
    _require_dir(site_root, "Site root")

    asset_source_dir = site_root / ASSET_SOURCE_DIRNAME
    site_modules = site_root / SITE_MODULES_DIRNAME
    framework_modules = framework_root / FRAMEWORK_MODULES_DIRNAME
    _require_dir(asset_source_dir, "Site asset directory")
    _require_dir(site_modules, "Site dependency directory")
    _require_dir(framework_modules, "Framework dependency directory")

    target = Path(output_dir) if output_dir is not None else DEFAULT_OUTPUT_DIR
    if not target.is_absolute():
        target = site_root / target

    return BuildContext(
        framework_root=framework_root,
        site_root=site_root,
        asset_source_dir=asset_source_dir,
        output_dir=target,
        framework_modules=framework_modules,
        site_modules=site_modules,
        mode=BuildMode.from_value(mode),
    )


def _require_dir(path: Path, label: str) -> None:
    if not path.is_dir():
        raise ConfigurationError(f"{label} not found: {path}")
