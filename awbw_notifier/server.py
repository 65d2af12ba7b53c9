"""HTTP trigger for the notifier.

A scheduler POSTs to ``/run``; each request performs one cycle and
answers with the run summary as JSON, or an empty 500 on failure.
"""

import json
import logging
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Callable, Optional
from urllib.parse import urlparse

from . import config, monitor

logger = logging.getLogger(__name__)


class RunHandler(BaseHTTPRequestHandler):
    """Routes /run and /health."""

    # Swapped out in tests.
    run_once: Callable[[], monitor.RunResult] = staticmethod(monitor.run_once)

    def log_message(self, format, *args):
        """Override to use Python logging instead of stderr."""
        logger.info("%s - %s", self.address_string(), format % args)

    def do_POST(self):
        path = urlparse(self.path).path
        if path != "/run":
            self._send_empty(404)
            return

        # Drain any body the caller sent; it is ignored.
        try:
            length = int(self.headers.get("Content-Length") or 0)
        except ValueError:
            length = 0
        if length > 0:
            self.rfile.read(length)

        try:
            result = type(self).run_once()
        except Exception:
            logger.exception("Run failed")
            self._send_empty(500)
            return
        self._send_json(200, result.to_dict())

    def do_GET(self):
        path = urlparse(self.path).path
        if path in ("/", "/health"):
            self._send_json(200, {"status": "ok"})
        elif path == "/run":
            self._send_empty(405)
        else:
            self._send_empty(404)

    def _method_not_allowed(self):
        path = urlparse(self.path).path
        self._send_empty(405 if path == "/run" else 404)

    do_PUT = do_DELETE = do_PATCH = _method_not_allowed

    def _send_json(self, status: int, payload: dict):
        body = json.dumps(payload).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _send_empty(self, status: int):
        self.send_response(status)
        self.send_header("Content-Length", "0")
        self.end_headers()


class TriggerServer:
    """Threaded HTTP server exposing the run trigger."""

    def __init__(self, host: Optional[str] = None, port: Optional[int] = None):
        self.host = config.HOST if host is None else host
        self.port = config.PORT if port is None else port
        self.server: Optional[ThreadingHTTPServer] = None
        self.server_thread: Optional[threading.Thread] = None

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def bind(self) -> ThreadingHTTPServer:
        if self.server is None:
            self.server = ThreadingHTTPServer((self.host, self.port), RunHandler)
            # Port 0 picks a free port; report the real one.
            self.port = self.server.server_address[1]
        return self.server

    def start(self) -> str:
        """Serve on a background thread and return the base URL."""
        server = self.bind()
        self.server_thread = threading.Thread(target=server.serve_forever, daemon=True)
        self.server_thread.start()
        logger.info("Trigger server started at %s (POST /run)", self.url)
        return self.url

    def serve_forever(self) -> None:
        server = self.bind()
        logger.info("Listening on %s (POST /run)", self.url)
        try:
            server.serve_forever()
        finally:
            server.server_close()

    def stop(self):
        if self.server is not None:
            self.server.shutdown()
            self.server.server_close()
            self.server = None
            logger.info("Trigger server stopped")


__all__ = ["RunHandler", "TriggerServer"]
