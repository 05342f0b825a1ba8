# ------------------------------------------------------------------------------
# FILE: helloserver/server.py
# ------------------------------------------------------------------------------
import json
import logging
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable, Dict, Optional, Tuple
from urllib.parse import urlsplit

from opentelemetry.propagate import extract
from opentelemetry.trace import SpanKind

import helloserver_metrics as metrics
from helloserver import __version__
from helloserver.allocation.state import AllocationState
from helloserver.config import Config
from helloserver.errors.fatal import ServerError
from helloserver_tracing import start_span

logger = logging.getLogger(__name__)

# operation name of the per-request SERVER span
REQUEST_SPAN_NAME = "example-service"


def status_payload(allocation: AllocationState, interval_secs: int, custom_message: str) -> Dict[str, str]:
    snap = allocation.snapshot()
    return {
        "status": "ok",
        "nbInstances": str(snap.count),
        "intervalInSecs": str(interval_secs),
        "customMessage": custom_message,
    }


class _StatusHTTPServer(ThreadingHTTPServer):
    allocation: AllocationState
    config: Config


class StatusHandler(BaseHTTPRequestHandler):
    """Every path and method answers with the allocation status document."""

    server_version = f"helloserver/{__version__}"

    def _serve(self, include_body: bool = True) -> None:
        server: _StatusHTTPServer = self.server  # type: ignore[assignment]
        started = time.monotonic()
        path = urlsplit(self.path).path
        carrier = {key.lower(): value for key, value in self.headers.items()}

        with start_span(
            REQUEST_SPAN_NAME,
            {
                "http.method": self.command,
                "http.target": self.path,
                "http.scheme": "http",
                "net.peer.ip": self.client_address[0],
            },
            kind=SpanKind.SERVER,
            context=extract(carrier),
        ) as span:
            logger.info("request received", extra={"url": path, "method": self.command})

            payload = status_payload(
                server.allocation, server.config.interval_secs, server.config.custom_message
            )
            data = json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
            self.send_response(200)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(data)))
            self.end_headers()
            if include_body:
                self.wfile.write(data)

            if span is not None:
                span.set_attribute("http.status_code", 200)
            logger.info("request completed", extra={"path": path, "method": self.command})

        metrics.http_requests_total.labels(method=self.command).inc()
        metrics.http_request_latency_ms.observe((time.monotonic() - started) * 1000.0)

    def do_GET(self):  # noqa: N802
        self._serve()

    def do_HEAD(self):  # noqa: N802
        self._serve(include_body=False)

    do_POST = do_GET
    do_PUT = do_GET
    do_PATCH = do_GET
    do_DELETE = do_GET
    do_OPTIONS = do_GET

    def log_message(self, fmt: str, *args: Any) -> None:
        logger.debug("%s - %s", self.address_string(), fmt % args)


class StatusServer:
    def __init__(
        self,
        allocation: AllocationState,
        config: Config,
        host: Optional[str] = None,
        port: Optional[int] = None,
        on_fatal: Optional[Callable[[BaseException], None]] = None,
    ):
        self.allocation = allocation
        self.config = config
        self.host = config.host if host is None else host
        self.port = int(config.port if port is None else port)
        self._on_fatal = on_fatal
        self._httpd: Optional[_StatusHTTPServer] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def address(self) -> Tuple[str, int]:
        if self._httpd is None:
            return (self.host, self.port)
        host, port = self._httpd.server_address[:2]
        return (str(host), int(port))

    def bind(self) -> None:
        if self._httpd is not None:
            return
        try:
            httpd = _StatusHTTPServer((self.host, self.port), StatusHandler)
        except OSError as exc:
            raise ServerError(
                "Failed to bind HTTP server", context={"host": self.host, "port": self.port, "error": str(exc)}
            ) from exc
        httpd.allocation = self.allocation
        httpd.config = self.config
        self._httpd = httpd

    def serve_forever(self) -> None:
        self.bind()
        assert self._httpd is not None
        try:
            self._httpd.serve_forever()
        except BaseException as exc:
            logger.critical("HTTP server loop crashed", exc_info=True)
            if self._on_fatal is not None:
                self._on_fatal(exc)
            raise

    def start_in_thread(self) -> None:
        self.bind()
        t = threading.Thread(target=self.serve_forever, name="status-http", daemon=True)
        t.start()
        self._thread = t

    def stop(self) -> None:
        if self._httpd is None:
            return
        if self._thread is not None:
            self._httpd.shutdown()
            self._thread.join()
            self._thread = None
        self._httpd.server_close()
        self._httpd = None
