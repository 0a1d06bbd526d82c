"""Transform chains (loaders) for Vellum builds.

A ``TransformRule`` pairs a filename pattern with an ordered list of loaders.
Loaders are declared outermost first and executed innermost first, so the
execution order is exactly the reverse of the declaration order. For
stylesheets that is::

    declared:  extract -> css -> resolve-url -> sass
    executed:  sass -> resolve-url -> css -> extract

Key classes:
- SassLoader: Compiles SCSS/Sass with the external ``sass`` executable.
- ResolveUrlLoader: Rewrites relative ``url()`` references to public URLs.
- CSSLoader: CSS module handling (charset hoisting, optional url tracking).
- ExtractStyleLoader: Hands finished CSS to the style extraction plugin.
- TransformRule: Pattern plus loader chain.
"""

from __future__ import annotations

import json
import os
import re
import subprocess
import tempfile
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any
from urllib.parse import unquote, urlparse
from urllib.request import url2pathname

from .exceptions import DriverError
from .executable_utils import find_executable
from .paths import BuildMode

if TYPE_CHECKING:
    from .compiler import Compilation

# The development/production switch exists but is off: every build runs in
# production mode unless a caller opts in explicitly.
MODE_SWITCH_ENABLED = False

STYLESHEET_PATTERN = r"\.s[ac]ss$"

URL_RE = re.compile(r"url\(\s*(['\"]?)([^'\")]+?)\1\s*\)")
BOM = "\ufeff"
CHARSET_RE = re.compile(r"@charset\s+(['\"])([^'\"]+)\1\s*;\s*", re.IGNORECASE)
SOURCE_MAP_COMMENT_RE = re.compile(r"\n?/\*# sourceMappingURL=[^*]*\*/\s*$")
SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*:")


def resolve_build_mode(
    requested: BuildMode | str, honor_requested: bool = MODE_SWITCH_ENABLED
) -> BuildMode:
    """Select the mode the transforms run under.

    Args:
        requested: Mode asked for by the caller (usually from the environment).
        honor_requested: Whether to use the requested mode. When False,
            production is always selected.

    Returns:
        The active build mode.
    """
    requested = BuildMode.from_value(requested)
    if honor_requested:
        return requested
    return BuildMode.PRODUCTION


def is_rewritable_url(url: str) -> bool:
    """Return True for relative URLs (not data:, absolute, remote or fragment)."""
    if not url or url.startswith(("/", "#", "~")):
        return False
    return SCHEME_RE.match(url) is None


def split_url_suffix(url: str) -> tuple[str, str]:
    """Split ``path?query#hash`` into ``(path, '?query#hash')``."""
    for i, ch in enumerate(url):
        if ch in "?#":
            return url[:i], url[i:]
    return url, ""


@dataclass
class StyleChunk:
    """One stylesheet source flowing through a transform chain.

    Attributes:
        source: Source file path.
        entry_name: Entry the source belongs to.
        css: Current text (source text before compilation, CSS after).
        source_map: Source map produced by compilation, if any.
        charset: Charset hoisted out of the CSS, if any.
        dependencies: Files referenced by ``url()`` when url tracking is on.
    """

    source: Path
    entry_name: str
    css: str = ""
    source_map: dict[str, Any] | None = None
    charset: str | None = None
    dependencies: list[Path] = field(default_factory=list)


class BaseLoader(ABC):
    """Base class for a single transform stage."""

    def __init__(self, **options: Any):
        self.options = options

    @property
    @abstractmethod
    def name(self) -> str:
        """Loader identifier, e.g. 'sass-loader'."""
        ...

    @abstractmethod
    def apply(self, chunk: StyleChunk, compilation: Compilation) -> StyleChunk:
        """Transform a chunk.

        Args:
            chunk: Chunk produced by the previous stage.
            compilation: The running compilation.

        Returns:
            The transformed chunk.
        """
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.options!r})"


class ExtractStyleLoader(BaseLoader):
    """Final stage: moves the CSS out of the script bundle.

    The chunk is registered with the compilation; the style extraction
    plugin writes it to the entry's stylesheet artifact.
    """

    @property
    def name(self) -> str:
        return "extract-style-loader"

    def apply(self, chunk: StyleChunk, compilation: Compilation) -> StyleChunk:
        compilation.extracted.setdefault(chunk.entry_name, []).append(chunk)
        return chunk


class CSSLoader(BaseLoader):
    """CSS module handling.

    Hoists ``@charset`` rules out of the text and normalises newlines. With
    ``url=True`` relative ``url()`` targets that exist are recorded as file
    dependencies; with ``url=False`` they are left alone.
    """

    def __init__(self, url: bool = True):
        super().__init__(url=url)

    @property
    def name(self) -> str:
        return "css-loader"

    def apply(self, chunk: StyleChunk, compilation: Compilation) -> StyleChunk:
        css = chunk.css.replace("\r\n", "\n")
        if css.startswith(BOM):
            # compressed sass output marks UTF-8 with a BOM instead of @charset
            chunk.charset = chunk.charset or "UTF-8"
            css = css[len(BOM):]

        match = CHARSET_RE.search(css)
        if match:
            chunk.charset = chunk.charset or match.group(2)
            css = CHARSET_RE.sub("", css)
        chunk.css = css

        if self.options["url"]:
            for _, url in URL_RE.findall(css):
                if not is_rewritable_url(url):
                    continue
                path, _ = split_url_suffix(url)
                target = Path(os.path.normpath(chunk.source.parent / path))
                if target.is_file() and target not in chunk.dependencies:
                    chunk.dependencies.append(target)
        return chunk


class ResolveUrlLoader(BaseLoader):
    """Rewrites relative ``url()`` references to public URLs.

    Only sources inside the site's asset directory are rewritten: a reference
    relative to the source file becomes ``<public_path><path in www>``.
    References that leave the asset directory are kept as written.
    """

    @property
    def name(self) -> str:
        return "resolve-url-loader"

    def apply(self, chunk: StyleChunk, compilation: Compilation) -> StyleChunk:
        root = compilation.context.asset_source_dir
        try:
            chunk.source.relative_to(root)
        except ValueError:
            return chunk

        public_path = compilation.config.public_path

        def rewrite(match: re.Match) -> str:
            quote, url = match.group(1), match.group(2).strip()
            if not is_rewritable_url(url):
                return match.group(0)
            path, suffix = split_url_suffix(url)
            target = Path(os.path.normpath(chunk.source.parent / path))
            try:
                rel = target.relative_to(root)
            except ValueError:
                return match.group(0)
            return f"url({quote}{public_path}{rel.as_posix()}{suffix}{quote})"

        chunk.css = URL_RE.sub(rewrite, chunk.css)
        return chunk


class SassLoader(BaseLoader):
    """Compiles SCSS and indented Sass to CSS with the ``sass`` executable.

    Dependency directories are passed as load paths in precedence order, so
    ``@use "pkg/x"`` finds the site's copy before the framework's.
    Falls back to passing the source through when ``sass`` is not installed.
    """

    def __init__(self, mode: BuildMode, source_map: bool = True):
        super().__init__(source_map=source_map)
        self.mode = BuildMode.from_value(mode)

    @property
    def name(self) -> str:
        return "sass-loader"

    @property
    def output_style(self) -> str:
        return "compressed" if self.mode is BuildMode.PRODUCTION else "expanded"

    def apply(self, chunk: StyleChunk, compilation: Compilation) -> StyleChunk:
        resolver = compilation.config.resolver
        sass_bin = find_executable("sass", resolver.bin_dirs())
        if not sass_bin:
            print(f"Sass compiler not found; using {chunk.source.name} unprocessed.")
            print(
                "Install with `npm install -D sass` in the site. "
                "Falling back to the raw stylesheet."
            )
            chunk.css = chunk.source.read_text(encoding="utf-8")
            return chunk

        with tempfile.TemporaryDirectory(prefix="vellum-sass-") as tmp:
            dest = Path(tmp) / f"{chunk.source.stem}.css"
            cmd = [sass_bin]
            for directory in resolver.search_dirs:
                cmd.append(f"--load-path={directory}")
            cmd.append(f"--style={self.output_style}")
            cmd.append("--source-map" if self.options["source_map"] else "--no-source-map")
            cmd.extend([str(chunk.source), str(dest)])

            result = subprocess.run(cmd, capture_output=True, text=True)
            if result.returncode != 0:
                raise DriverError(
                    f"Sass compilation failed for {chunk.source}:\n{result.stderr.strip()}",
                    command=cmd,
                    return_code=result.returncode,
                    stderr=result.stderr,
                )

            chunk.css = SOURCE_MAP_COMMENT_RE.sub("", dest.read_text(encoding="utf-8"))
            map_path = dest.with_name(dest.name + ".map")
            if map_path.exists():
                chunk.source_map = _absolutize_sources(
                    json.loads(map_path.read_text(encoding="utf-8")), map_path.parent
                )
        return chunk


@dataclass
class TransformRule:
    """A filename pattern and the loaders applied to matching files.

    Attributes:
        pattern: Regular expression matched against the file name.
        use: Loaders in declaration order.
    """

    pattern: str
    use: list[BaseLoader]

    def matches(self, path: Path) -> bool:
        return re.search(self.pattern, Path(path).name) is not None

    def execution_order(self) -> list[BaseLoader]:
        return list(reversed(self.use))

    def run(self, chunk: StyleChunk, compilation: Compilation) -> StyleChunk:
        for loader in self.execution_order():
            chunk = loader.apply(chunk, compilation)
        return chunk


def stylesheet_rule(mode: BuildMode) -> TransformRule:
    """Return the stylesheet rule for the given mode."""
    return TransformRule(
        pattern=STYLESHEET_PATTERN,
        use=[
            ExtractStyleLoader(),
            CSSLoader(url=False),
            ResolveUrlLoader(),
            SassLoader(mode=mode, source_map=True),
        ],
    )


def assemble_transforms(
    requested: BuildMode | str, honor_requested: bool = MODE_SWITCH_ENABLED
) -> tuple[BuildMode, list[TransformRule]]:
    """Return the active mode and the transform rules for a build."""
    mode = resolve_build_mode(requested, honor_requested=honor_requested)
    return mode, [stylesheet_rule(mode)]


def rule_for(path: Path, rules: Sequence[TransformRule]) -> TransformRule | None:
    """Return the first rule matching ``path``, or None for script sources."""
    for rule in rules:
        if rule.matches(path):
            return rule
    return None


def _absolutize_sources(source_map: dict[str, Any], base: Path) -> dict[str, Any]:
    """Make a compiled map's ``sources`` absolute; sass writes them relative to the map."""
    sources = []
    for src in source_map.get("sources", []):
        parsed = urlparse(src)
        if parsed.scheme == "file":
            sources.append(url2pathname(parsed.path))
        elif parsed.scheme:
            sources.append(src)
        else:
            sources.append(os.path.normpath(base / unquote(src)))
    source_map["sources"] = sources
    return source_map
