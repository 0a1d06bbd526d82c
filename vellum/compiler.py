"""Asset compiler for Vellum.

Consumes a ``BuildConfig`` and writes artifacts. Every entry is compiled the
same way, whatever its sources are:

- Script sources are bundled into ``<name>.js`` as CommonJS modules.
  ``require()`` calls in code (not in comments or strings) are resolved
  with the config's ``ModuleResolver``.
- Stylesheet sources run through their rule's loaders; the extraction stage
  hands the CSS to ``StyleExtractionPlugin``, which writes ``<name>.css``.

An entry with only stylesheet sources therefore still emits an empty
``<name>.js``. ``RemoveFilesPlugin`` deletes those once the compiler is done.

Key classes:
- Compiler: Runs a build from a configuration.
- Compilation: Mutable state of one run, shared with loaders and plugins.
- Stats: Summary handed to ``done`` hooks and back to the caller.
- ScriptBundler: CommonJS bundling of script sources.
"""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass, field
from pathlib import Path

from rjsmin import jsmin

from .exceptions import CleanupWarning, DriverError
from .loaders import StyleChunk, rule_for
from .output import BuildConfig
from .paths import BuildContext, BuildMode
from .resolver import ModuleResolver

# Comments and string literals are matched as whole tokens so that a
# require() inside them is left alone.
SCRIPT_TOKEN_RE = re.compile(
    r"""
    (?P<comment>//[^\n]*|/\*.*?\*/)
  | (?P<require>(?<![\w$.])require\(\s*(?P<quote>['"])(?P<request>[^'"\n]+)(?P=quote)\s*\))
  | (?P<string>'(?:\\.|[^'\\\n])*'|"(?:\\.|[^"\\\n])*"|`(?:\\.|[^`\\])*`)
    """,
    re.DOTALL | re.VERBOSE,
)

BUNDLE_TEMPLATE = """(function (modules) {{
  var cache = {{}};
  function require(id) {{
    if (cache[id]) return cache[id].exports;
    var module = cache[id] = {{ exports: {{}} }};
    modules[id].call(module.exports, module, module.exports, require);
    return module.exports;
  }}
{entries}
}})([
{modules}
]);
"""


@dataclass
class Stats:
    """Outcome of a compiler run.

    Attributes:
        output_dir: Directory artifacts were written to.
        mode: Mode the build ran in.
        emitted: Output-relative paths written by the compiler.
        removed: Output-relative paths deleted by ``done`` hooks.
        warnings: Non-fatal problems reported by plugins.
        dependencies: Files referenced by compiled stylesheets.
    """

    output_dir: Path
    mode: BuildMode
    emitted: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    warnings: list[CleanupWarning] = field(default_factory=list)
    dependencies: list[Path] = field(default_factory=list)

    @property
    def artifacts(self) -> list[str]:
        """Emitted paths that are still present after cleanup."""
        return [p for p in self.emitted if p not in self.removed]


class Compilation:
    """State of one compiler run."""

    def __init__(self, config: BuildConfig):
        self.config = config
        self.extracted: dict[str, list[StyleChunk]] = {}
        self.emitted: list[str] = []
        self.dependencies: list[Path] = []

    @property
    def context(self) -> BuildContext:
        return self.config.context

    @property
    def output_dir(self) -> Path:
        return self.config.output_dir

    def emit_asset(self, rel: str, content: str) -> Path:
        """Write ``content`` to ``rel`` under the output directory."""
        dest = self.output_dir / rel
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_text(content, encoding="utf-8")
        if rel not in self.emitted:
            self.emitted.append(rel)
        return dest


class ScriptBundler:
    """Bundles script sources and everything they ``require()``.

    Module ids are assigned in discovery order, so the same sources always
    produce the same bundle.
    """

    def __init__(self, resolver: ModuleResolver):
        self.resolver = resolver
        self._ids: dict[Path, int] = {}
        self._modules: list[tuple[Path, str]] = []

    @property
    def modules(self) -> list[Path]:
        return [path for path, _ in self._modules]

    def bundle(self, sources: list[Path]) -> str:
        """Return the bundle text; an empty string when there are no sources."""
        if not sources:
            return ""
        entry_ids = [self._add(Path(source)) for source in sources]
        entries = "\n".join(f"  require({i});" for i in entry_ids)
        modules = ",\n".join(
            f"/* {i}: {path.name} */\nfunction (module, exports, require) {{\n{code.rstrip()}\n}}"
            for i, (path, code) in enumerate(self._modules)
        )
        return BUNDLE_TEMPLATE.format(entries=entries, modules=modules)

    def _add(self, path: Path) -> int:
        if path in self._ids:
            return self._ids[path]
        module_id = len(self._modules)
        self._ids[path] = module_id
        self._modules.append((path, ""))

        text = path.read_text(encoding="utf-8")
        if path.suffix == ".json":
            code = f"module.exports = {text.strip()};"
        else:
            code = SCRIPT_TOKEN_RE.sub(lambda m: self._rewrite(m, path), text)
        self._modules[module_id] = (path, code)
        return module_id

    def _rewrite(self, match: re.Match, issuer: Path) -> str:
        if match.group("require") is None:
            return match.group(0)
        resolved = self.resolver.resolve(match.group("request"), issuer)
        return f"require({self._add(resolved)})"


class Compiler:
    """Compiles a ``BuildConfig`` into artifacts.

    ``run`` compiles and emits; ``close`` fires the ``done`` hooks. Callers
    must not call ``close`` before ``run`` has returned.
    """

    def __init__(self, config: BuildConfig):
        self.config = config

    def run(self) -> Stats:
        """Compile every entry and emit its artifacts.

        Returns:
            Stats for the run.

        Raises:
            DriverError: If any entry fails to compile or an artifact cannot be written.
        """
        compilation = Compilation(self.config)
        try:
            self.config.output_dir.mkdir(parents=True, exist_ok=True)
            for entry in self.config.entries:
                self._compile_entry(entry.name, list(entry.sources), compilation)
            for plugin in self.config.plugins:
                plugin.emit(compilation)
        except DriverError:
            raise
        except (OSError, ValueError) as exc:
            raise DriverError(f"Asset compilation failed: {exc}") from exc

        return Stats(
            output_dir=self.config.output_dir,
            mode=self.config.mode,
            emitted=list(compilation.emitted),
            dependencies=list(compilation.dependencies),
        )

    def close(self, stats: Stats) -> Stats:
        """Run ``done`` hooks after compilation has finished."""
        for plugin in self.config.plugins:
            plugin.done(stats)
        return stats

    def _compile_entry(
        self, name: str, sources: list[Path], compilation: Compilation
    ) -> None:
        scripts = []
        for source in sources:
            rule = rule_for(source, self.config.rules)
            if rule is None:
                scripts.append(source)
                continue
            chunk = StyleChunk(
                source=source,
                entry_name=name,
                css=source.read_text(encoding="utf-8"),
            )
            chunk = rule.run(chunk, compilation)
            for dep in chunk.dependencies:
                if dep not in compilation.dependencies:
                    compilation.dependencies.append(dep)

        bundler = ScriptBundler(self.config.resolver)
        code = bundler.bundle(scripts)
        if code and self.config.mode is BuildMode.PRODUCTION:
            code = jsmin(code)

        rel = self.config.output_rules[name].script_filename
        if self.config.devtool:
            map_rel = f"{rel}.map"
            map_dir = (compilation.output_dir / map_rel).parent
            source_map = {
                "version": 3,
                "file": Path(rel).name,
                "sources": [
                    Path(os.path.relpath(p, map_dir)).as_posix() for p in bundler.modules
                ],
                "names": [],
                "mappings": "",
            }
            code = f"{code.rstrip()}\n//# sourceMappingURL={Path(map_rel).name}\n".lstrip("\n")
            compilation.emit_asset(map_rel, json.dumps(source_map, indent=2) + "\n")
        compilation.emit_asset(rel, code)
