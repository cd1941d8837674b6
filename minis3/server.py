"""A local S3-compatible HTTP server listening on a random loopback port."""

from __future__ import annotations

import logging
import threading
from socketserver import ThreadingMixIn
from types import TracebackType
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

from .backend import Backend
from .handler import S3App

_POLL_INTERVAL = 0.05
_log = logging.getLogger(__name__)


class _ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    daemon_threads = True


class _QuietHandler(WSGIRequestHandler):
    """Sends request logs to the debug logger instead of stderr."""

    def log_message(self, format: str, *args: object) -> None:
        _log.debug("%s - %s", self.address_string(), format % args)


class Minis3:
    """An in-memory S3 server; use start() and close(), or a with block."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.backend = Backend()
        self._server: _ThreadingWSGIServer | None = None
        self._thread: threading.Thread | None = None
        self._address = ""

    def start(self) -> None:
        """Start serving on 127.0.0.1 at a port chosen by the system."""
        with self._lock:
            if self._server is not None:
                raise RuntimeError("server already started")
            try:
                server = make_server(
                    "127.0.0.1",
                    0,
                    S3App(self.backend),
                    server_class=_ThreadingWSGIServer,
                    handler_class=_QuietHandler,
                )
            except OSError as exc:
                raise RuntimeError(f"failed to listen: {exc}") from exc
            host, port = server.server_address[:2]
            self._address = f"{host}:{port}"
            thread = threading.Thread(
                target=server.serve_forever,
                kwargs={"poll_interval": _POLL_INTERVAL},
                name="minis3",
                daemon=True,
            )
            thread.start()
            self._server = server
            self._thread = thread

    def close(self) -> None:
        """Stop the server; does nothing if it is not running."""
        with self._lock:
            server, thread = self._server, self._thread
            if server is None:
                return
            server.shutdown()
            server.server_close()
            if thread is not None:
                thread.join()
            self._server = None
            self._thread = None

    def addr(self) -> str:
        """The host:port the server listens on, or "" if it was never started."""
        with self._lock:
            return self._address

    def host(self) -> str:
        """The host:port of the server."""
        return self.addr()

    def __enter__(self) -> "Minis3":
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


def run() -> Minis3:
    """Create and start a server; the caller must close it."""
    server = Minis3()
    server.start()
    return server