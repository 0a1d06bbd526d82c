"""Development server for Vellum.

Serves a site for local authoring:
- Builds assets once on start, then again whenever a source file changes.
- Serves the site's ``www`` directory with the compiled assets layered on top.
- Rejects directory listings and missing paths with a 404 (serving 404.html when present).

There is no live reload; refresh the browser after a rebuild.

Key classes:
- DevServer: Main class for running the development server.
- _SiteHandler: HTTP request handler that resolves assets before site files.
- _ChangeHandler: File system event handler for triggering rebuilds.
"""

from __future__ import annotations

import functools
import os
import threading
import time
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .config import load_config, requested_mode
from .exceptions import VellumError
from .paths import ASSET_SOURCE_DIRNAME
from .pipeline import build_assets


class _SiteHandler(SimpleHTTPRequestHandler):
    """Serves compiled assets first, then files from the site's ``www`` directory.

    Attributes:
        asset_dir: Directory holding compiled assets.
    """

    asset_dir: str = ""

    def end_headers(self):
        self.send_header("Cache-Control", "no-cache, no-store, must-revalidate")
        super().end_headers()

    def translate_path(self, path):
        site_path = super().translate_path(path)
        if self.asset_dir:
            rel = os.path.relpath(site_path, self.directory)
            candidate = Path(self.asset_dir) / rel
            if candidate.is_file():
                return str(candidate)
        return site_path

    def list_directory(self, path):  # pragma: no cover - exercised via send_head
        return self._serve_404()

    def send_head(self):
        path_obj = Path(self.translate_path(self.path))
        if path_obj.is_dir():
            if not (path_obj / "index.html").exists():
                return self._serve_404()
        elif not path_obj.exists():
            return self._serve_404()
        return super().send_head()

    def _serve_404(self):
        error_page = Path(self.directory) / "404.html"
        if error_page.exists():
            encoded = error_page.read_bytes()
            self.send_response(404)
            self.send_header("Content-type", "text/html; charset=utf-8")
            self.send_header("Content-Length", str(len(encoded)))
            self.end_headers()
            self.wfile.write(encoded)
            return None
        self.send_error(404, "File not found")
        return None


class DevServer:
    """Development server that rebuilds assets on change.

    Attributes:
        site_root: Root directory of the site.
        config: Site configuration.
        env: Requested build mode name.
        www_dir: Directory served for pages and static files.
        output_dir: Directory holding compiled assets.
        port: Port for the HTTP server.
    """

    def __init__(self, site_root: Path, port: int | None = None):
        """Initialize the development server.

        Args:
            site_root: Root directory of the site.
            port: Optional override for the HTTP port.
        """
        self.site_root = site_root
        self.config = load_config(site_root)
        self.env = requested_mode(self.config).value
        self.www_dir = site_root / ASSET_SOURCE_DIRNAME
        self.output_dir = site_root / self.config.get("output_dir", "data/.assets")
        self.port = int(port or self.config.get("port", 3000))
        self._observer: Observer | None = None
        self._rebuilding = False
        self._last_rebuild_at = 0.0
        self._debounce_seconds = 0.2

    def start(self) -> None:  # pragma: no cover - integration path
        self.build()
        threading.Thread(target=self._start_http, daemon=True).start()
        self._start_watcher()
        print(f"View your site at http://localhost:{self.port}")
        print("Ctrl + C to quit")
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            self.stop()

    def stop(self) -> None:
        if self._observer:
            self._observer.stop()
            self._observer.join()

    def build(self) -> None:
        """Build assets; errors propagate to the caller."""
        build_assets(
            self.site_root,
            requested_mode=self.env,
            output_dir=self.output_dir,
        )

    def rebuild(self) -> None:
        """Rebuild after a change. Failures are reported and the server keeps running."""
        now = time.time()
        if self._rebuilding or (now - self._last_rebuild_at) < self._debounce_seconds:
            return
        self._rebuilding = True
        try:
            print("Change detected; rebuilding assets...")
            self.build()
        except VellumError as exc:
            print(f"Asset build failed: {exc}")
        finally:
            self._rebuilding = False
            self._last_rebuild_at = time.time()

    def _start_http(self) -> None:  # pragma: no cover - integration path
        handler_cls = type(
            "_SiteHandlerWithAssets",
            (_SiteHandler,),
            {"asset_dir": str(self.output_dir)},
        )
        handler = functools.partial(handler_cls, directory=str(self.www_dir))
        httpd = ThreadingHTTPServer(("", self.port), handler)
        httpd.serve_forever()

    def _start_watcher(self) -> None:
        handler = _ChangeHandler(self)
        observer = Observer()
        observer.schedule(handler, str(self.www_dir), recursive=True)
        # vellum.yaml and package.json
        observer.schedule(handler, str(self.site_root), recursive=False)
        observer.start()
        self._observer = observer


class _ChangeHandler(FileSystemEventHandler):
    def __init__(self, server: DevServer):
        super().__init__()
        self.server = server

    def on_any_event(self, event):
        if event.is_directory:
            return
        path = Path(event.src_path)
        try:
            path.relative_to(self.server.output_dir)
            return
        except ValueError:
            pass
        if "node_modules" in path.parts:
            return
        self.server.rebuild()
