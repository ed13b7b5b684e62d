"""Development server: build, serve, watch, rebuild, live reload."""

from __future__ import annotations

import json
import logging
import shutil
import subprocess
import tempfile
import threading
import time
from functools import partial
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any
from urllib.parse import parse_qs, urlsplit

from ..config import CONFIG_FILE, CONTENT_DIR, DEV_HOST, DEV_PORT, STATIC_DIR, WATCH_INTERVAL
from ..content.siteconfig import load_site_config
from ..exceptions import FolioError
from .assets import watch_css
from .build import build_site

logger = logging.getLogger(__name__)

RELOAD_PATH = "/__folio/reload"

RELOAD_SCRIPT = """<script>
(function () {
  var gen = %d;
  setInterval(function () {
    fetch("%s?since=" + gen)
      .then(function (r) { return r.json(); })
      .then(function (d) { if (d.generation > gen) { location.reload(); } })
      .catch(function () {});
  }, 1000);
})();
</script>"""


def inject_reload(html: str, generation: int) -> str:
    """Append the live-reload poller right before </body>."""
    script = RELOAD_SCRIPT % (generation, RELOAD_PATH)
    idx = html.lower().rfind("</body>")
    if idx == -1:
        return html + script
    return html[:idx] + script + html[idx:]


def snapshot(root: Path) -> dict[str, float]:
    """mtimes of everything a rebuild depends on."""
    config = load_site_config(root)
    watched = [root / CONTENT_DIR, root / STATIC_DIR, root / CONFIG_FILE, root / config.assets.css_input]
    mtimes: dict[str, float] = {}
    for path in watched:
        if path.is_file():
            mtimes[str(path)] = path.stat().st_mtime
        elif path.is_dir():
            for file in path.rglob("*"):
                if file.is_file():
                    mtimes[str(file)] = file.stat().st_mtime
    return mtimes


class DevServer:
    """Serves a build directory and rebuilds it when the sources change."""

    def __init__(
        self,
        root: Path,
        host: str = DEV_HOST,
        port: int = DEV_PORT,
        *,
        drafts: bool = False,
        interval: float = WATCH_INTERVAL,
    ):
        self.root = root.resolve()
        self.host = host
        self.port = port
        self.drafts = drafts
        self.interval = interval
        self.generation = 0
        self._workdir = Path(tempfile.mkdtemp(prefix="folio-serve-"))
        self.out_dir = self._workdir / "public"

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def rebuild(self, run_assets: bool = False) -> bool:
        """Build into the served directory; on failure keep the old output."""
        started = time.monotonic()
        try:
            report = build_site(
                self.root,
                self.out_dir,
                base_url=self.base_url,
                include_drafts=self.drafts,
                run_assets=run_assets,
            )
        except (FolioError, OSError) as e:
            logger.error("Build failed: %s", e)
            return False
        self.generation += 1
        for warning in report.warnings:
            logger.warning("%s", warning)
        logger.info("Rebuilt %d pages in %.2fs", report.pages, time.monotonic() - started)
        return True

    def make_server(self) -> ThreadingHTTPServer:
        handler = partial(_ReloadingHandler, directory=str(self.out_dir), server_state=self)
        return ThreadingHTTPServer((self.host, self.port), handler)

    def watch(self, stop: threading.Event) -> None:
        """Poll source mtimes until `stop` is set, rebuilding on change."""
        previous = self._safe_snapshot()
        while not stop.wait(self.interval):
            current = self._safe_snapshot()
            if current != previous:
                logger.info("Change detected, rebuilding")
                self.rebuild()
                previous = current

    def close(self) -> None:
        shutil.rmtree(self._workdir, ignore_errors=True)

    def _safe_snapshot(self) -> dict[str, float]:
        try:
            return snapshot(self.root)
        except (FolioError, OSError) as e:
            # A half-saved config.toml; try again on the next tick.
            logger.debug("Snapshot failed: %s", e)
            return {}


class _ReloadingHandler(SimpleHTTPRequestHandler):
    def __init__(self, *args: Any, server_state: DevServer, **kwargs: Any):
        self.server_state = server_state
        super().__init__(*args, **kwargs)

    def do_GET(self) -> None:
        url = urlsplit(self.path)
        if url.path == RELOAD_PATH:
            self._send_reload_status(url.query)
            return

        path = Path(self.translate_path(url.path))
        if path.is_dir():
            if not url.path.endswith("/"):
                super().do_GET()
                return
            path = path / "index.html"
        if path.suffix == ".html" and path.is_file():
            self._send_html(path.read_text(encoding="utf-8"), 200)
            return
        if not path.exists():
            not_found = Path(self.directory) / "404.html"
            if not_found.is_file():
                self._send_html(not_found.read_text(encoding="utf-8"), 404)
                return
        super().do_GET()

    def _send_reload_status(self, query: str) -> None:
        since = parse_qs(query).get("since", ["0"])[0]
        payload = {"generation": self.server_state.generation, "since": int(since) if since.isdigit() else 0}
        body = json.dumps(payload, sort_keys=True).encode("utf-8")
        self.send_response(200)
        self.send_header("Content-Type", "application/json")
        self.send_header("Cache-Control", "no-store")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _send_html(self, html: str, status: int) -> None:
        body = inject_reload(html, self.server_state.generation).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Cache-Control", "no-store")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("%s - %s", self.address_string(), format % args)


def serve(
    root: Path,
    host: str = DEV_HOST,
    port: int = DEV_PORT,
    *,
    drafts: bool = False,
    interval: float = WATCH_INTERVAL,
    watch_styles: bool = False,
) -> int:
    """Run the development server until interrupted.

    Args:
        root: Site root
        host: Interface to bind
        port: Port to bind
        drafts: Include draft pages
        interval: Seconds between source polls
        watch_styles: Also run the Tailwind watcher (dev mode)

    Returns:
        Exit code (0 after Ctrl-C, 1 if the first build failed)
    """
    server_state = DevServer(root, host, port, drafts=drafts, interval=interval)
    css_proc: subprocess.Popen[bytes] | None = None
    try:
        if not server_state.rebuild(run_assets=True):
            return 1
        if watch_styles:
            css_proc = watch_css(server_state.root, load_site_config(server_state.root))

        httpd = server_state.make_server()
        stop = threading.Event()
        watcher = threading.Thread(target=server_state.watch, args=(stop,), daemon=True)
        watcher.start()
        print(f"Serving {server_state.root.name} at {server_state.base_url}/ (Ctrl-C to stop)")
        try:
            httpd.serve_forever()
        except KeyboardInterrupt:
            print("\nStopping")
        finally:
            stop.set()
            httpd.server_close()
            watcher.join(timeout=5)
        return 0
    finally:
        if css_proc is not None:
            css_proc.terminate()
            css_proc.wait(timeout=10)
        server_state.close()


def dev(root: Path, host: str = DEV_HOST, port: int = DEV_PORT, *, drafts: bool = False) -> int:
    """`serve` plus the Tailwind watcher."""
    return serve(root, host, port, drafts=drafts, watch_styles=True)
