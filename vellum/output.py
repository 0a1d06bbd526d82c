"""Output planning for Vellum builds.

Maps every entry to its artifact filenames and wires entries, transform
rules and plugins into the single ``BuildConfig`` the compiler consumes.

The compiler treats every entry as a script entry, so an entry made only of
stylesheets still gets a (nearly empty) ``<name>.js``. Those files are known
from the entry set alone and are listed for the ``RemoveFilesPlugin``.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from .entries import EntryDescriptor, style_only_entries
from .loaders import TransformRule
from .paths import BuildContext, BuildMode
from .plugins import BuildPlugin, RemoveFilesPlugin, StyleExtractionPlugin
from .resolver import ModuleResolver, module_search_order

SCRIPT_FILENAME = "[name].js"
STYLE_FILENAME = "[name].css"


@dataclass(frozen=True)
class OutputRule:
    """Artifact filenames for one entry, relative to the output directory.

    Names are used as-is: no content hash or version is added.
    """

    entry_name: str
    script_filename: str
    style_filename: str | None


@dataclass
class BuildConfig:
    """Everything the compiler needs for one build."""

    context: BuildContext
    mode: BuildMode
    entries: list[EntryDescriptor]
    rules: list[TransformRule]
    output_rules: dict[str, OutputRule]
    resolver: ModuleResolver
    plugins: list[BuildPlugin] = field(default_factory=list)
    devtool: str = "source-map"
    public_path: str = "/"

    @property
    def output_dir(self) -> Path:
        return self.context.output_dir


def output_filename(pattern: str, name: str) -> str:
    return pattern.replace("[name]", name)


def plan_output_rules(
    entries: Sequence[EntryDescriptor], rules: Sequence[TransformRule]
) -> dict[str, OutputRule]:
    """Return the output rule for every entry, keyed by entry name."""
    planned = {}
    for entry in entries:
        has_styles = any(rule.matches(s) for rule in rules for s in entry.sources)
        planned[entry.name] = OutputRule(
            entry_name=entry.name,
            script_filename=output_filename(SCRIPT_FILENAME, entry.name),
            style_filename=output_filename(STYLE_FILENAME, entry.name)
            if has_styles
            else None,
        )
    return planned


def orphan_artifacts(
    entries: Sequence[EntryDescriptor], rules: Sequence[TransformRule]
) -> list[str]:
    """List the script artifacts (and their maps) emitted for style-only entries."""
    orphans = []
    for rule in rules:
        for entry in style_only_entries(entries, rule):
            script = output_filename(SCRIPT_FILENAME, entry.name)
            for path in (script, f"{script}.map"):
                if path not in orphans:
                    orphans.append(path)
    return orphans


def plan_outputs(
    ctx: BuildContext,
    entries: Sequence[EntryDescriptor],
    rules: Sequence[TransformRule],
    mode: BuildMode,
) -> BuildConfig:
    """Assemble the build configuration.

    Args:
        ctx: Resolved build context.
        entries: Validated entries.
        rules: Transform rules from ``assemble_transforms``.
        mode: Active build mode.

    Returns:
        BuildConfig with the style extraction and orphan cleanup plugins registered.
    """
    return BuildConfig(
        context=ctx,
        mode=mode,
        entries=list(entries),
        rules=list(rules),
        output_rules=plan_output_rules(entries, rules),
        resolver=ModuleResolver(module_search_order(ctx)),
        plugins=[
            StyleExtractionPlugin(filename=STYLE_FILENAME),
            RemoveFilesPlugin(files=orphan_artifacts(entries, rules)),
        ],
    )
