"""Build plugins for Vellum.

Plugins hook into two points of a compilation:
- ``emit``: after every entry has been compiled, while artifacts are written.
- ``done``: after the compiler has finished writing everything.

Key classes:
- StyleExtractionPlugin: Writes extracted CSS (and its source map) per entry.
- RemoveFilesPlugin: Deletes the script artifacts emitted for style-only entries.
"""

from __future__ import annotations

import json
import os
from collections.abc import Iterable
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .exceptions import CleanupWarning

if TYPE_CHECKING:
    from .compiler import Compilation, Stats


class BuildPlugin:
    """Base class for build plugins. Both hooks default to no-ops."""

    def emit(self, compilation: Compilation) -> None:
        return None

    def done(self, stats: Stats) -> None:
        return None


class StyleExtractionPlugin(BuildPlugin):
    """Writes each entry's extracted CSS to its own artifact.

    Chunks are joined in the order their sources were compiled. The source
    map is an index map with one section per chunk.

    Attributes:
        filename: Output filename pattern; ``[name]`` is the entry name.
    """

    def __init__(self, filename: str = "[name].css"):
        self.filename = filename

    def emit(self, compilation: Compilation) -> None:
        for entry in compilation.config.entries:
            chunks = compilation.extracted.get(entry.name)
            if not chunks:
                continue
            rel = self.filename.replace("[name]", entry.name)
            map_rel = f"{rel}.map"
            map_dir = (compilation.output_dir / map_rel).parent

            lines: list[str] = []
            charset = next((c.charset for c in chunks if c.charset), None)
            if charset:
                lines.append(f'@charset "{charset}";')

            sections = []
            for chunk in chunks:
                sections.append(
                    {
                        "offset": {"line": len(lines), "column": 0},
                        "map": _section_map(chunk.source, chunk.source_map, map_dir),
                    }
                )
                lines.extend(chunk.css.rstrip("\n").split("\n"))

            if not compilation.config.devtool:
                compilation.emit_asset(rel, "\n".join(lines) + "\n")
                continue

            lines.append(f"/*# sourceMappingURL={Path(map_rel).name} */")
            compilation.emit_asset(rel, "\n".join(lines) + "\n")
            index_map = {"version": 3, "file": Path(rel).name, "sections": sections}
            compilation.emit_asset(map_rel, json.dumps(index_map, indent=2) + "\n")


class RemoveFilesPlugin(BuildPlugin):
    """Deletes a fixed list of output files once the build is done.

    The list is known up front: it names the script artifacts the compiler
    emits for style-only entries. A file that is already gone counts as
    clean. A file that exists but cannot be deleted produces a
    ``CleanupWarning``; the build is not failed.

    Attributes:
        files: Output-relative paths to delete.
    """

    def __init__(self, files: Iterable[str]):
        self.files = list(files)

    def done(self, stats: Stats) -> None:
        for rel in self.files:
            path = stats.output_dir / rel
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            except OSError as exc:
                warning = CleanupWarning(path, exc.strerror or str(exc))
                print(f"Warning: {warning}")
                stats.warnings.append(warning)
                continue
            stats.removed.append(rel)


def relative_source(source: Path, map_dir: Path) -> str:
    """Return ``source`` relative to the directory holding a source map."""
    return Path(os.path.relpath(source, map_dir)).as_posix()


def _section_map(
    source: Path, source_map: dict[str, Any] | None, map_dir: Path
) -> dict[str, Any]:
    if source_map is None:
        return {
            "version": 3,
            "sources": [relative_source(source, map_dir)],
            "names": [],
            "mappings": "",
        }
    section = dict(source_map)
    section["sources"] = [
        relative_source(Path(s), map_dir) if os.path.isabs(s) else s
        for s in source_map.get("sources", [])
    ]
    section.pop("file", None)
    return section
