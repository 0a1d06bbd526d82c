import dataclasses
import json
import subprocess
from pathlib import Path

import pytest

from vellum.compiler import Compiler, ScriptBundler
from vellum.entries import SITE_STYLESHEET
from vellum.exceptions import CleanupWarning, ConfigurationError, DriverError, MissingSourceError
from vellum.loaders import stylesheet_rule
from vellum.output import (
    orphan_artifacts,
    plan_output_rules,
    plan_outputs,
)
from vellum.paths import BuildMode
from vellum.pipeline import AssetBuild, BuildState, build_assets
from vellum.plugins import RemoveFilesPlugin, StyleExtractionPlugin
from vellum.resolver import ModuleResolver


def read_tree(root: Path) -> dict[str, bytes]:
    return {
        p.relative_to(root).as_posix(): p.read_bytes()
        for p in sorted(root.rglob("*"))
        if p.is_file()
    }


def css_rules(css: str) -> set[str]:
    return {
        line.strip()
        for line in css.splitlines()
        if line.strip() and "sourceMappingURL" not in line
    }


def test_build_site_scenario(framework_root, site_root):
    result = build_assets(site_root, framework_root=framework_root)
    out = result.output_dir

    assert result.state is BuildState.DONE
    assert result.history == [
        BuildState.CONFIGURING,
        BuildState.COMPILING,
        BuildState.CLEANING_ARTIFACTS,
        BuildState.DONE,
    ]
    assert out == site_root.resolve() / "data" / ".assets"
    assert "console.log(1)" in (out / "javascripts" / "site.js").read_text()
    assert (out / "javascripts" / "site.js.map").exists()
    assert "body{color:red}" in (out / "stylesheets" / "site.css").read_text()
    assert (out / "stylesheets" / "site.css.map").exists()
    assert not (out / "stylesheets" / "site.js").exists()
    assert not (out / "stylesheets" / "site.js.map").exists()
    assert (out / "dashboard" / "javascripts" / "dashboard.js").exists()
    assert (out / "dashboard" / "stylesheets" / "dashboard.css").exists()
    assert not (out / "dashboard" / "stylesheets" / "dashboard.js").exists()

    assert "stylesheets/site.js" in result.removed
    assert "stylesheets/site.js" not in result.artifacts
    assert "stylesheets/site.css" in result.artifacts
    assert result.warnings == []


def test_style_only_entry_emits_script_before_cleanup(framework_root, site_root):
    build = AssetBuild(site_root, framework_root=framework_root)
    compiler = Compiler(build.configure())
    stats = compiler.run()

    orphan = stats.output_dir / "stylesheets" / "site.js"
    assert orphan.exists()
    assert "sourceMappingURL" in orphan.read_text()

    compiler.close(stats)
    assert not orphan.exists()


def test_missing_main_script_writes_nothing(framework_root, site_root):
    (site_root / "www" / "javascripts" / "site.js").unlink()
    build = AssetBuild(site_root, framework_root=framework_root)

    with pytest.raises(MissingSourceError):
        build.run()
    assert build.state is BuildState.FAILED
    assert build.history == [BuildState.CONFIGURING, BuildState.FAILED]
    assert not (site_root / "data").exists()


def test_no_stylesheets_fails_configuration(framework_root, site_root):
    (site_root / "www" / "stylesheets" / "site.scss").unlink()
    build = AssetBuild(site_root, framework_root=framework_root)

    with pytest.raises(ConfigurationError):
        build.run()
    assert build.state is BuildState.FAILED
    assert not (site_root / "data").exists()


def test_driver_error_propagates(monkeypatch, framework_root, site_root):
    monkeypatch.setattr(
        "vellum.loaders.find_executable", lambda name, search_dirs=(): "/usr/bin/sass"
    )
    monkeypatch.setattr(
        subprocess,
        "run",
        lambda cmd, capture_output=None, text=None: subprocess.CompletedProcess(
            cmd, 65, stdout="", stderr="Error: Undefined variable."
        ),
    )
    build = AssetBuild(site_root, framework_root=framework_root)

    with pytest.raises(DriverError, match="Undefined variable"):
        build.run()
    assert build.history[-2:] == [BuildState.COMPILING, BuildState.FAILED]


def test_build_is_idempotent(framework_root, site_root):
    first = build_assets(site_root, framework_root=framework_root)
    snapshot = read_tree(first.output_dir)
    second = build_assets(site_root, framework_root=framework_root)
    assert read_tree(second.output_dir) == snapshot


def test_stylesheet_order_does_not_change_rules(framework_root, site_root, tmp_path):
    (site_root / "www" / "stylesheets" / "site.sass").write_text(
        "p{margin:0}", encoding="utf-8"
    )
    config = AssetBuild(site_root, framework_root=framework_root).configure()
    entry = next(e for e in config.entries if e.name == SITE_STYLESHEET)
    assert len(entry.sources) == 2

    outputs = []
    for i, sources in enumerate([entry.sources, tuple(reversed(entry.sources))]):
        ctx = dataclasses.replace(config.context, output_dir=tmp_path / f"out{i}")
        entries = [
            dataclasses.replace(e, sources=sources) if e.name == SITE_STYLESHEET else e
            for e in config.entries
        ]
        permuted = plan_outputs(ctx, entries, config.rules, config.mode)
        stats = Compiler(permuted).run()
        outputs.append((stats.output_dir / "stylesheets" / "site.css").read_text())

    assert css_rules(outputs[0]) == css_rules(outputs[1])
    assert {"body{color:red}", "p{margin:0}"} <= css_rules(outputs[0])


def test_mode_defaults_to_production(framework_root, site_root):
    result = build_assets(
        site_root, framework_root=framework_root, requested_mode="development"
    )
    assert result.mode is BuildMode.PRODUCTION
    bundle = (result.output_dir / "javascripts" / "site.js").read_text()
    assert "function (modules)" not in bundle


def test_mode_switch_enabled_builds_development(framework_root, site_root):
    result = build_assets(
        site_root,
        framework_root=framework_root,
        requested_mode="development",
        honor_requested_mode=True,
    )
    assert result.mode is BuildMode.DEVELOPMENT
    bundle = (result.output_dir / "javascripts" / "site.js").read_text()
    assert "function (modules)" in bundle


def test_cleanup_permission_denied_is_a_warning(
    monkeypatch, framework_root, site_root, capsys
):
    original_unlink = Path.unlink

    def guarded_unlink(self, *args, **kwargs):
        if self.name == "site.js" and self.parent.name == "stylesheets":
            raise PermissionError(13, "Permission denied")
        return original_unlink(self, *args, **kwargs)

    monkeypatch.setattr(Path, "unlink", guarded_unlink)
    result = build_assets(site_root, framework_root=framework_root)

    assert result.state is BuildState.DONE
    assert len(result.warnings) == 1
    warning = result.warnings[0]
    assert isinstance(warning, CleanupWarning)
    assert warning.path == result.output_dir / "stylesheets" / "site.js"
    assert "Permission denied" in str(warning)
    assert (result.output_dir / "stylesheets" / "site.js").exists()
    assert "Could not remove orphan artifact" in capsys.readouterr().out


def test_remove_files_plugin_ignores_missing(tmp_path):
    from vellum.compiler import Stats

    (tmp_path / "stylesheets").mkdir()
    (tmp_path / "stylesheets" / "site.js").write_text("", encoding="utf-8")
    stats = Stats(output_dir=tmp_path, mode=BuildMode.PRODUCTION)

    RemoveFilesPlugin(["stylesheets/site.js", "missing.js"]).done(stats)
    assert stats.removed == ["stylesheets/site.js"]
    assert stats.warnings == []


def test_orphan_artifacts_and_output_rules(framework_root, site_root):
    config = AssetBuild(site_root, framework_root=framework_root).configure()
    rules = [stylesheet_rule(BuildMode.PRODUCTION)]

    assert orphan_artifacts(config.entries, rules) == [
        "stylesheets/site.js",
        "stylesheets/site.js.map",
        "dashboard/stylesheets/dashboard.js",
        "dashboard/stylesheets/dashboard.js.map",
    ]
    output_rules = plan_output_rules(config.entries, rules)
    assert output_rules["javascripts/site"].script_filename == "javascripts/site.js"
    assert output_rules["javascripts/site"].style_filename is None
    assert output_rules["stylesheets/site"].style_filename == "stylesheets/site.css"

    assert isinstance(config.plugins[0], StyleExtractionPlugin)
    assert isinstance(config.plugins[1], RemoveFilesPlugin)
    assert config.plugins[1].files == orphan_artifacts(config.entries, rules)
    assert config.resolver.search_dirs == [
        config.context.site_modules,
        config.context.framework_modules,
    ]
    assert config.devtool == "source-map"
    assert config.public_path == "/"


def test_style_source_map_is_index_map(framework_root, site_root):
    (site_root / "www" / "stylesheets" / "site.sass").write_text(
        "p{margin:0}", encoding="utf-8"
    )
    result = build_assets(site_root, framework_root=framework_root)
    source_map = json.loads(
        (result.output_dir / "stylesheets" / "site.css.map").read_text()
    )

    assert source_map["file"] == "site.css"
    assert len(source_map["sections"]) == 2
    assert [s["offset"]["line"] for s in source_map["sections"]] == [0, 1]
    sources = {s["map"]["sources"][0] for s in source_map["sections"]}
    assert sources == {
        "../../../www/stylesheets/site.scss",
        "../../../www/stylesheets/site.sass",
    }


def test_site_module_wins_in_bundle(framework_root, site_root):
    (site_root / "node_modules" / "shared").mkdir()
    (site_root / "node_modules" / "shared" / "index.js").write_text(
        "module.exports = 'from-site';", encoding="utf-8"
    )
    (framework_root / "vendor" / "shared").mkdir()
    (framework_root / "vendor" / "shared" / "index.js").write_text(
        "module.exports = 'from-framework';", encoding="utf-8"
    )
    (site_root / "www" / "javascripts" / "site.js").write_text(
        "var shared = require('shared');\nconsole.log(shared);", encoding="utf-8"
    )

    result = build_assets(site_root, framework_root=framework_root)
    bundle = (result.output_dir / "javascripts" / "site.js").read_text()
    assert "from-site" in bundle
    assert "from-framework" not in bundle


def test_unresolvable_require_is_a_driver_error(framework_root, site_root):
    (site_root / "www" / "javascripts" / "site.js").write_text(
        "require('left-pad');", encoding="utf-8"
    )
    with pytest.raises(DriverError, match="left-pad"):
        build_assets(site_root, framework_root=framework_root)


def test_script_bundler(tmp_path):
    root = tmp_path.resolve()
    main = root / "main.js"
    util = root / "util.js"
    data = root / "data.json"
    main.write_text(
        "var u = require('./util');\nvar d = require(\"./data.json\");\nu(d);",
        encoding="utf-8",
    )
    util.write_text("module.exports = function (x) { return require('./main'); };", encoding="utf-8")
    data.write_text('{"a": 1}\n', encoding="utf-8")

    bundler = ScriptBundler(ModuleResolver([]))
    bundle = bundler.bundle([main])

    assert bundler.modules == [main, util, data]
    assert "var u = require(1);" in bundle
    assert "var d = require(2);" in bundle
    assert 'module.exports = {"a": 1};' in bundle
    assert "  require(0);" in bundle
    assert ScriptBundler(ModuleResolver([])).bundle([]) == ""


def test_default_framework_builds(site_root):
    result = build_assets(site_root)
    dashboard = (result.output_dir / "dashboard" / "javascripts" / "dashboard.js").read_text()
    assert "confirm" in dashboard
    assert (result.output_dir / "dashboard" / "stylesheets" / "dashboard.css").exists()


def test_compiler_factory_is_used(framework_root, site_root):
    seen = []

    class RecordingCompiler(Compiler):
        def close(self, stats):
            seen.append(sorted(stats.emitted))
            return super().close(stats)

    result = build_assets(
        site_root, framework_root=framework_root, compiler_factory=RecordingCompiler
    )
    assert "stylesheets/site.js" in seen[0]
    assert "stylesheets/site.js" in result.removed


def test_commented_require_is_not_resolved(framework_root, site_root):
    (site_root / "www" / "javascripts" / "site.js").write_text(
        "// var pad = require('left-pad');\nconsole.log(1);", encoding="utf-8"
    )
    result = build_assets(site_root, framework_root=framework_root)
    assert result.state is BuildState.DONE
    assert "console.log(1)" in (result.output_dir / "javascripts" / "site.js").read_text()


def test_script_bundler_only_rewrites_require_calls(tmp_path):
    root = tmp_path.resolve()
    main = root / "main.js"
    (root / "util.js").write_text("module.exports = 1;", encoding="utf-8")
    main.write_text(
        "// require('left-pad')\n"
        '/* var gone = require("gone"); */\n'
        "var s = \"require('in-string')\";\n"
        "api.require('member');\n"
        "var u = require('./util');\n",
        encoding="utf-8",
    )

    bundle = ScriptBundler(ModuleResolver([])).bundle([main])
    assert "// require('left-pad')" in bundle
    assert 'require("gone")' in bundle
    assert "\"require('in-string')\"" in bundle
    assert "api.require('member')" in bundle
    assert "var u = require(1);" in bundle


def test_undecodable_source_is_a_driver_error(framework_root, site_root):
    (site_root / "www" / "stylesheets" / "site.scss").write_bytes(b"body{content:'\xe9'}")
    build = AssetBuild(site_root, framework_root=framework_root)

    with pytest.raises(DriverError, match="Asset compilation failed"):
        build.run()
    assert build.history[-2:] == [BuildState.COMPILING, BuildState.FAILED]


def test_byte_order_mark_becomes_charset(framework_root, site_root):
    (site_root / "www" / "stylesheets" / "site.sass").write_bytes(
        "\ufeffp::after{content:\"é\"}".encode("utf-8")
    )
    result = build_assets(site_root, framework_root=framework_root)
    css = (result.output_dir / "stylesheets" / "site.css").read_text(encoding="utf-8")

    assert "\ufeff" not in css
    assert css.startswith('@charset "UTF-8";\n')
    assert 'p::after{content:"é"}' in css
