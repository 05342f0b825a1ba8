import logging

from prometheus_client import Counter, Gauge, Histogram, start_http_server

logger = logging.getLogger("helloserver.metrics")

# Allocator
allocated_chunks = Gauge("allocated_chunks", "Chunks currently held by the allocator")
allocated_bytes = Gauge("allocated_bytes", "Bytes currently held by the allocator buffer")
allocation_target_chunks = Gauge("allocation_target_chunks", "Configured target chunk count")
allocator_ticks_total = Counter("allocator_ticks_total", "Allocator timer ticks", ["outcome"])

# HTTP
http_requests_total = Counter("http_requests_total", "Status requests served", ["method"])
http_request_latency_ms = Histogram("http_request_latency_ms", "Status request latency (ms)")


_server = None


def start_metrics_http_server(port: int = 9464, addr: str = "0.0.0.0") -> bool:
    """Start the prometheus client HTTP server on the given port (no-op if already started).

    Metrics are best-effort: a bind failure is logged and the service keeps running.
    """
    global _server
    if _server is not None:
        return True
    try:
        _server = start_http_server(int(port), addr=addr)
    except OSError as exc:
        logger.warning("Metrics server failed to bind", extra={"port": port, "error": str(exc)})
        _server = None
        return False
    logger.info("Metrics exposed", extra={"port": port})
    return True


def stop_metrics_http_server() -> None:
    global _server
    if _server is None:
        return
    httpd, _thread = _server
    httpd.shutdown()
    httpd.server_close()
    _server = None
