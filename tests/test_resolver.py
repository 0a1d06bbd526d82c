import json
import shutil

import pytest

from vellum.exceptions import DriverError, ModuleNotFoundInSearchPathError
from vellum.executable_utils import find_executable
from vellum.paths import resolve_context
from vellum.resolver import ModuleResolver, module_search_order


def write(path, text=""):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def test_search_order_puts_site_first(framework_root, site_root):
    ctx = resolve_context(framework_root, site_root)
    assert module_search_order(ctx) == [ctx.site_modules, ctx.framework_modules]


def test_site_module_overrides_framework_module(framework_root, site_root):
    ctx = resolve_context(framework_root, site_root)
    site_copy = write(ctx.site_modules / "shared" / "index.js", "site")
    write(ctx.framework_modules / "shared" / "index.js", "framework")
    issuer = ctx.asset_source_dir / "javascripts" / "site.js"

    resolver = ModuleResolver(module_search_order(ctx))
    assert resolver.resolve("shared", issuer) == site_copy.resolve()


def test_framework_module_used_when_site_lacks_it(framework_root, site_root):
    ctx = resolve_context(framework_root, site_root)
    framework_copy = write(ctx.framework_modules / "only-here.js", "framework")
    issuer = ctx.asset_source_dir / "javascripts" / "site.js"

    resolver = ModuleResolver(module_search_order(ctx))
    assert resolver.resolve("only-here", issuer) == framework_copy.resolve()


def test_resolve_relative_and_package_main(tmp_path):
    issuer = write(tmp_path / "src" / "main.js")
    util = write(tmp_path / "src" / "lib" / "util.js")
    data = write(tmp_path / "src" / "data.json", "{}")
    modules = tmp_path / "modules"
    main = write(modules / "pkg" / "dist" / "pkg.js")
    write(modules / "pkg" / "package.json", json.dumps({"main": "dist/pkg"}))

    resolver = ModuleResolver([modules])
    assert resolver.resolve("./lib/util", issuer) == util.resolve()
    assert resolver.resolve("./lib/util.js", issuer) == util.resolve()
    assert resolver.resolve("./data", issuer) == data.resolve()
    assert resolver.resolve("pkg", issuer) == main.resolve()


def test_resolve_missing_module(tmp_path):
    issuer = write(tmp_path / "src" / "main.js")
    resolver = ModuleResolver([tmp_path / "a", tmp_path / "b"])

    with pytest.raises(ModuleNotFoundInSearchPathError) as exc_info:
        resolver.resolve("left-pad", issuer)
    assert isinstance(exc_info.value, DriverError)
    assert exc_info.value.request == "left-pad"
    assert len(exc_info.value.searched) == 2


def test_bin_dirs(tmp_path):
    resolver = ModuleResolver([tmp_path / "site", tmp_path / "framework"])
    assert resolver.bin_dirs() == [
        tmp_path / "site" / ".bin",
        tmp_path / "framework" / ".bin",
    ]


def test_find_executable_prefers_local_dirs(monkeypatch, tmp_path):
    site_bin = write(tmp_path / "site" / ".bin" / "sass")
    write(tmp_path / "framework" / ".bin" / "sass")
    monkeypatch.setattr(shutil, "which", lambda name: "/usr/bin/sass")

    found = find_executable("sass", [tmp_path / "site" / ".bin", tmp_path / "framework" / ".bin"])
    assert found == str(site_bin)


def test_find_executable_falls_back_to_path(monkeypatch, tmp_path):
    calls = {}

    def fake_which(name):
        calls["which"] = name
        return None

    monkeypatch.setattr(shutil, "which", fake_which)
    assert find_executable("sass", [tmp_path / "nothing"]) is None
    assert calls["which"] == "sass"
