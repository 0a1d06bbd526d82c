from pathlib import Path

import pytest


@pytest.fixture(autouse=True)
def no_sass(monkeypatch):
    """Pretend no sass executable is installed unless a test provides one."""
    monkeypatch.setattr(
        "vellum.loaders.find_executable", lambda name, search_dirs=(): None
    )


@pytest.fixture
def framework_root(tmp_path) -> Path:
    root = tmp_path / "framework"
    (root / "vendor").mkdir(parents=True)
    (root / "assets" / "javascripts").mkdir(parents=True)
    (root / "assets" / "stylesheets").mkdir(parents=True)
    (root / "assets" / "javascripts" / "dashboard.js").write_text(
        "console.log('dashboard');", encoding="utf-8"
    )
    (root / "assets" / "stylesheets" / "dashboard.scss").write_text(
        ".sidebar{width:10rem}", encoding="utf-8"
    )
    return root


@pytest.fixture
def site_root(tmp_path) -> Path:
    root = tmp_path / "site"
    (root / "www" / "javascripts").mkdir(parents=True)
    (root / "www" / "stylesheets").mkdir(parents=True)
    (root / "node_modules").mkdir()
    (root / "www" / "javascripts" / "site.js").write_text(
        "console.log(1)", encoding="utf-8"
    )
    (root / "www" / "stylesheets" / "site.scss").write_text(
        "body{color:red}", encoding="utf-8"
    )
    return root
