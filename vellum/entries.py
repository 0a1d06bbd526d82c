"""Entry set construction for Vellum builds.

An entry is a named unit of build input. Its name is a slash-delimited
logical path that becomes the output filename (``stylesheets/site`` ->
``stylesheets/site.css``).

Stylesheet sources are discovered with a glob. Glob order is whatever the
filesystem returns and is not stable across platforms; every matched file is
a peer source of one bundle, and nothing depends on their relative order.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .exceptions import ConfigurationError, MissingSourceError
from .paths import BuildContext

SITE_SCRIPT = "javascripts/site"
SITE_STYLESHEET = "stylesheets/site"
DASHBOARD_SCRIPT = "dashboard/javascripts/dashboard"
DASHBOARD_STYLESHEET = "dashboard/stylesheets/dashboard"

SITE_STYLESHEET_GLOB = "stylesheets/site.s[ac]ss"


@dataclass(frozen=True)
class EntryDescriptor:
    """A named logical output unit.

    Attributes:
        name: Logical output path without extension.
        sources: Absolute source paths feeding this entry.
    """

    name: str
    sources: tuple[Path, ...]

    def is_style_only(self, rule: Any) -> bool:
        """Return True when every source is handled by the stylesheet rule."""
        return bool(self.sources) and all(rule.matches(s) for s in self.sources)


def build_entries(ctx: BuildContext) -> list[EntryDescriptor]:
    """Enumerate the build entries for a site.

    Args:
        ctx: Resolved build context.

    Returns:
        Entries for the site script, site stylesheets, dashboard script and
        dashboard stylesheet, in that order. The site stylesheet entry may
        have no sources; see ``validate_entries``.

    Raises:
        MissingSourceError: If the site's main script or a bundled dashboard
            source is missing.
    """
    site_script = ctx.asset_source_dir / "javascripts" / "site.js"
    _require_source(SITE_SCRIPT, site_script)

    dashboard_script = ctx.dashboard_assets_dir / "javascripts" / "dashboard.js"
    dashboard_stylesheet = ctx.dashboard_assets_dir / "stylesheets" / "dashboard.scss"
    _require_source(DASHBOARD_SCRIPT, dashboard_script)
    _require_source(DASHBOARD_STYLESHEET, dashboard_stylesheet)

    stylesheets = tuple(ctx.asset_source_dir.glob(SITE_STYLESHEET_GLOB))

    return [
        EntryDescriptor(SITE_SCRIPT, (site_script,)),
        EntryDescriptor(SITE_STYLESHEET, stylesheets),
        EntryDescriptor(DASHBOARD_SCRIPT, (dashboard_script,)),
        EntryDescriptor(DASHBOARD_STYLESHEET, (dashboard_stylesheet,)),
    ]


def validate_entries(entries: Sequence[EntryDescriptor]) -> None:
    """Check entry names are unique and every entry has sources.

    Raises:
        ConfigurationError: On a duplicate name or an empty entry.
    """
    seen: set[str] = set()
    for entry in entries:
        if entry.name in seen:
            raise ConfigurationError(f"Duplicate entry name '{entry.name}'")
        seen.add(entry.name)
        if not entry.sources:
            raise ConfigurationError(
                f"Entry '{entry.name}' has no sources. "
                f"Add a stylesheet matching www/{SITE_STYLESHEET_GLOB}."
                if entry.name == SITE_STYLESHEET
                else f"Entry '{entry.name}' has no sources."
            )


def style_only_entries(
    entries: Iterable[EntryDescriptor], rule: Any
) -> list[EntryDescriptor]:
    return [entry for entry in entries if entry.is_style_only(rule)]


def _require_source(entry_name: str, path: Path) -> None:
    if not path.is_file():
        raise MissingSourceError(entry_name, path)
