"""Asset build pipeline for Vellum.

Runs one build through its states::

    CONFIGURING -> COMPILING -> CLEANING_ARTIFACTS -> DONE
    CONFIGURING -> FAILED      (bad paths or missing sources; nothing written)
    COMPILING   -> FAILED      (compiler error, re-raised unchanged)

Cleanup cannot fail a build. Nothing is retried, and the output directory is
not wiped first: after a failure it may hold a mix of old and new artifacts.

Running the pipeline twice on an unchanged tree writes identical artifacts
provided the external ``sass`` executable is itself deterministic.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .compiler import Compiler, Stats
from .entries import build_entries, validate_entries
from .exceptions import CleanupWarning
from .loaders import MODE_SWITCH_ENABLED, assemble_transforms
from .output import BuildConfig, plan_outputs
from .paths import BuildMode, framework_root as default_framework_root, resolve_context


class BuildState(str, Enum):
    CONFIGURING = "configuring"
    COMPILING = "compiling"
    CLEANING_ARTIFACTS = "cleaning_artifacts"
    DONE = "done"
    FAILED = "failed"


@dataclass
class BuildResult:
    """Result of an asset build.

    Attributes:
        state: Final state (``DONE`` for a returned result).
        mode: Mode the transforms ran in.
        output_dir: Directory holding the artifacts.
        emitted: Paths written by the compiler, relative to ``output_dir``.
        removed: Orphan artifacts deleted after compilation.
        warnings: Non-fatal cleanup problems.
        history: States visited, in order.
    """

    state: BuildState
    mode: BuildMode
    output_dir: Path
    emitted: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    warnings: list[CleanupWarning] = field(default_factory=list)
    history: list[BuildState] = field(default_factory=list)

    @property
    def artifacts(self) -> list[str]:
        return [p for p in self.emitted if p not in self.removed]


class AssetBuild:
    """A single build invocation.

    Tracks the current state so callers (and tests) can see where a failed
    build stopped.
    """

    def __init__(
        self,
        site_root: Path,
        framework_root: Path | None = None,
        requested_mode: BuildMode | str = BuildMode.DEVELOPMENT,
        output_dir: Path | None = None,
        honor_requested_mode: bool = MODE_SWITCH_ENABLED,
        compiler_factory: Callable[[BuildConfig], Compiler] = Compiler,
    ):
        self.site_root = Path(site_root)
        self.framework_root = Path(framework_root or default_framework_root())
        self.requested_mode = requested_mode
        self.output_dir = output_dir
        self.honor_requested_mode = honor_requested_mode
        self.compiler_factory = compiler_factory
        self.history: list[BuildState] = []

    @property
    def state(self) -> BuildState | None:
        return self.history[-1] if self.history else None

    def configure(self) -> BuildConfig:
        """Resolve paths, entries and transforms into a build configuration."""
        mode, rules = assemble_transforms(
            self.requested_mode, honor_requested=self.honor_requested_mode
        )
        ctx = resolve_context(
            self.framework_root, self.site_root, mode=mode, output_dir=self.output_dir
        )
        entries = build_entries(ctx)
        validate_entries(entries)
        return plan_outputs(ctx, entries, rules, mode)

    def run(self) -> BuildResult:
        """Run the build.

        Returns:
            BuildResult in state ``DONE``.

        Raises:
            ConfigurationError: If paths or the entry set are invalid.
            MissingSourceError: If a fixed entry's source is missing.
            DriverError: If compilation fails.
        """
        self._enter(BuildState.CONFIGURING)
        try:
            config = self.configure()
            compiler = self.compiler_factory(config)
            self._enter(BuildState.COMPILING)
            stats = compiler.run()
        except Exception:
            self._enter(BuildState.FAILED)
            raise

        self._enter(BuildState.CLEANING_ARTIFACTS)
        stats = compiler.close(stats)
        self._enter(BuildState.DONE)
        return self._result(stats)

    def _enter(self, state: BuildState) -> None:
        self.history.append(state)

    def _result(self, stats: Stats) -> BuildResult:
        return BuildResult(
            state=BuildState.DONE,
            mode=stats.mode,
            output_dir=stats.output_dir,
            emitted=stats.emitted,
            removed=stats.removed,
            warnings=stats.warnings,
            history=list(self.history),
        )


def build_assets(
    site_root: Path,
    framework_root: Path | None = None,
    requested_mode: BuildMode | str = BuildMode.DEVELOPMENT,
    output_dir: Path | None = None,
    honor_requested_mode: bool = MODE_SWITCH_ENABLED,
    compiler_factory: Callable[[BuildConfig], Compiler] = Compiler,
) -> BuildResult:
    """Build a site's scripts and stylesheets.

    Args:
        site_root: Root directory of the site project.
        framework_root: Framework installation root; defaults to this package.
        requested_mode: Mode asked for by the caller. Ignored unless
            ``honor_requested_mode`` is True; production is used otherwise.
        output_dir: Output directory; defaults to ``data/.assets`` in the site.
        honor_requested_mode: Enable the development/production switch.
        compiler_factory: Builds the compiler from the planned configuration.

    Returns:
        BuildResult describing the artifacts written.
    """
    return AssetBuild(
        site_root,
        framework_root=framework_root,
        requested_mode=requested_mode,
        output_dir=output_dir,
        honor_requested_mode=honor_requested_mode,
        compiler_factory=compiler_factory,
    ).run()
