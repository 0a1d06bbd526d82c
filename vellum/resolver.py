"""Module resolution for Vellum builds.

Bare imports are looked up in an ordered list of dependency directories. The
site's directory always comes before the framework's so a site can override a
package the framework provides.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from pathlib import Path

from .exceptions import ModuleNotFoundInSearchPathError
from .paths import BuildContext

SCRIPT_EXTENSIONS = (".js", ".json")


def module_search_order(ctx: BuildContext) -> list[Path]:
    """Return dependency directories in precedence order (site first)."""
    return [ctx.site_modules, ctx.framework_modules]


def is_relative_request(request: str) -> bool:
    return request.startswith("./") or request.startswith("../") or request in (".", "..")


class ModuleResolver:
    """Resolves ``require()`` requests to files.

    Attributes:
        search_dirs: Dependency directories, highest precedence first.
    """

    def __init__(self, search_dirs: Sequence[Path]):
        self.search_dirs = [Path(d) for d in search_dirs]

    def resolve(self, request: str, issuer: Path) -> Path:
        """Resolve a request made from ``issuer``.

        Args:
            request: Relative path (``./util``) or bare module name (``lodash/fp``).
            issuer: File containing the request.

        Returns:
            Absolute path of the resolved file.

        Raises:
            ModuleNotFoundInSearchPathError: If nothing matches.
        """
        if is_relative_request(request):
            bases = [issuer.parent]
        else:
            bases = self.search_dirs

        searched = []
        for base in bases:
            candidate = (base / request).resolve()
            searched.append(candidate)
            found = self._resolve_candidate(candidate)
            if found is not None:
                return found
        raise ModuleNotFoundInSearchPathError(request, issuer, searched)

    def bin_dirs(self) -> list[Path]:
        """Return the ``.bin`` directory of every search dir, same order."""
        return [d / ".bin" for d in self.search_dirs]

    def _resolve_candidate(self, candidate: Path) -> Path | None:
        if candidate.is_file():
            return candidate
        for ext in SCRIPT_EXTENSIONS:
            with_ext = candidate.with_name(candidate.name + ext)
            if with_ext.is_file():
                return with_ext
        if candidate.is_dir():
            main = self._package_main(candidate)
            if main is not None:
                return main
            index = candidate / "index.js"
            if index.is_file():
                return index
        return None

    def _package_main(self, directory: Path) -> Path | None:
        manifest = directory / "package.json"
        if not manifest.is_file():
            return None
        try:
            payload = json.loads(manifest.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return None
        main = payload.get("main") if isinstance(payload, dict) else None
        if not isinstance(main, str) or not main:
            return None
        target = (directory / main).resolve()
        if target.is_file():
            return target
        for ext in SCRIPT_EXTENSIONS:
            with_ext = target.with_name(target.name + ext)
            if with_ext.is_file():
                return with_ext
        if (target / "index.js").is_file():
            return target / "index.js"
        return None
