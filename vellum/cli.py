"""Command-line interface for Vellum.

This module defines the CLI commands using Click framework.

Commands:
- new: Scaffold a new site.
- build: Build the site's scripts and stylesheets.
- server: Run the development server.
- deploy: Run the site's deploy script.
- version: Show the version number.
"""

from __future__ import annotations

import json
import os
import shutil
import subprocess
from pathlib import Path

import click
from jinja2 import Environment, FileSystemLoader

from . import __version__
from .config import load_config, load_env, load_package_json, requested_mode
from .exceptions import VellumError
from .paths import BuildMode

# Path to the default template directory
_TEMPLATES_DIR = Path(__file__).parent / "templates" / "default"

_target_argument = click.argument(
    "target",
    required=False,
    default=".",
    type=click.Path(file_okay=False, path_type=Path),
)


@click.group()
@click.version_option(version=__version__, prog_name="vellum")
def cli():
    """Vellum content site generator."""


@cli.command()
@click.argument("target", type=click.Path(file_okay=False, path_type=Path))
def new(target: Path):
    """Create a new website."""
    root = target.resolve()
    if root.exists() and any(root.iterdir()):
        raise click.ClickException(
            f"Refusing to initialize into non-empty directory: {root}"
        )
    _scaffold(root)
    click.echo("Site created.")
    click.echo("To start the development server now, run:")
    click.echo(f"  vellum server {target}")


@cli.command()
@_target_argument
@click.option(
    "--env",
    "env",
    type=click.Choice([m.value for m in BuildMode]),
    required=False,
    help="Requested build mode (defaults to VELLUM_ENV or vellum.yaml env)",
)
@click.option(
    "--honor-env",
    is_flag=True,
    help="Build in the requested mode instead of always building for production",
)
def build(target: Path, env: str | None, honor_env: bool):
    """Build the site's scripts and stylesheets."""
    from .pipeline import build_assets

    site_root = target.resolve()
    load_env(site_root)
    try:
        config = load_config(site_root)
        mode = BuildMode.from_value(env) if env else requested_mode(config)
        result = build_assets(
            site_root,
            requested_mode=mode,
            output_dir=Path(config["output_dir"]),
            honor_requested_mode=honor_env,
        )
    except VellumError as exc:
        _fail("Build failed:", str(exc))

    for warning in result.warnings:
        click.echo(click.style(f"Warning: {warning}", fg="yellow"), err=True)
    click.echo(
        f"Built {len(result.artifacts)} assets ({result.mode.value}) into {result.output_dir}"
    )


@cli.command()
@_target_argument
@click.option(
    "--port",
    type=int,
    required=False,
    help="Port to run the dev server (overrides vellum.yaml)",
)
def server(target: Path, port: int | None):
    """Start the development server."""
    from .server import DevServer

    site_root = target.resolve()
    load_env(site_root)
    try:
        dev_server = DevServer(site_root, port=port)
        click.echo(f"Starting the {dev_server.env} server...")
        dev_server.start()
    except VellumError as exc:
        _fail("Server failed:", str(exc))


@cli.command()
@_target_argument
def deploy(target: Path):
    """Deploy the site using its deploy script."""
    site_root = target.resolve()
    load_env(site_root)
    try:
        package = load_package_json(site_root)
    except VellumError as exc:
        _fail("Deploy failed:", str(exc))

    scripts = package.get("scripts") or {}
    script = scripts.get("deploy") if isinstance(scripts, dict) else None

    click.echo("Deploying...")
    if not script:
        click.echo("Hosted deploys are not available yet.")
        click.echo('Add a "deploy" script to package.json to publish with your own tooling.')
        return

    result = subprocess.run(
        script, shell=True, cwd=site_root, capture_output=True, text=True
    )
    if result.returncode != 0:
        _fail("Deploy failed:", result.stderr.strip() or f"exit status {result.returncode}")
    click.echo(result.stdout.rstrip())


@cli.command()
def version():
    """Show the version number."""
    click.echo(f"Vellum {__version__}")


def _fail(title: str, message: str) -> None:
    """Print a failure and exit non-zero."""
    click.echo(click.style(title, fg="red", bold=True), err=True)
    click.echo(click.style(f"  {message}", fg="white"), err=True)
    raise SystemExit(1) from None


def main():
    """Entry point for the CLI application."""
    cli()


def _scaffold(root: Path) -> None:
    """Create the directory structure and files for a new site.

    Files ending in ``.jinja`` are rendered (with ``site_name``) and written
    without the suffix; everything else is copied as-is.

    Args:
        root: Root directory for the new site.
    """
    env = Environment(
        loader=FileSystemLoader(str(_TEMPLATES_DIR)), keep_trailing_newline=True
    )
    for src_path in _TEMPLATES_DIR.rglob("*"):
        if src_path.is_dir():
            continue
        rel_path = src_path.relative_to(_TEMPLATES_DIR)
        dest_path = root / rel_path
        dest_path.parent.mkdir(parents=True, exist_ok=True)
        if src_path.suffix == ".jinja":
            template = env.get_template(rel_path.as_posix())
            dest_path.with_suffix("").write_text(
                template.render(site_name=root.name), encoding="utf-8"
            )
        else:
            shutil.copy2(src_path, dest_path)

    # Generate package.json with project name
    package_json = {
        "name": root.name,
        "private": True,
        "scripts": {
            "build": "vellum build",
            "start": "vellum server",
        },
        "devDependencies": {
            "sass": "^1.77.0",
        },
        "vellum": {},
    }
    (root / "package.json").write_text(
        json.dumps(package_json, indent=2) + "\n", encoding="utf-8"
    )

    _try_npm_install(root)
    (root / "node_modules").mkdir(exist_ok=True)


def _try_npm_install(root: Path) -> None:
    """Attempt to install Node dependencies if npm is available."""
    if os.environ.get("VELLUM_SKIP_NPM_INSTALL") == "1":
        return
    npm_bin = shutil.which("npm")
    if not npm_bin:
        return
    try:
        subprocess.run(
            [npm_bin, "install"],
            cwd=root,
            check=True,
            capture_output=True,
        )
    except (OSError, subprocess.CalledProcessError) as exc:
        # Non-fatal: user can run npm install manually
        click.echo(f"npm install failed ({exc}); run it manually in {root}.")
