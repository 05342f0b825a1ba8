import json
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Optional

from helloserver_tracing import otel_log_handler, trace_metadata

_STANDARD_ATTRS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "taskName",
    "message",
    "asctime",
}


_TRACE_FIELDS = ("trace_id", "span_id")


def _record_extras(record: logging.LogRecord) -> Dict[str, Any]:
    return {key: value for key, value in record.__dict__.items() if key not in _STANDARD_ATTRS}


class TraceContextFilter(logging.Filter):
    """Attach trace_id/span_id of the active span to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in trace_metadata().items():
            if getattr(record, key, None) is None:
                setattr(record, key, value)
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        extras = _record_extras(record)
        payload = {
            "time": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "service": record.name,
            "message": record.getMessage(),
            # always present, None outside a span
            "trace_id": extras.pop("trace_id", None),
            "span_id": extras.pop("span_id", None),
        }
        payload.update(extras)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True, default=str)


class TextFormatter(logging.Formatter):
    """`fmt` line, then ` | key=value ...` for the extras; trace ids come last."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extras = _record_extras(record)
        trace = [(key, extras.pop(key)) for key in _TRACE_FIELDS if extras.get(key)]
        for key in _TRACE_FIELDS:
            extras.pop(key, None)
        pairs = [f"{key}={value}" for key, value in list(extras.items()) + trace]
        if not pairs:
            return line
        return f"{line} | {' '.join(pairs)}"


def setup_logging(
    service_name: str = "helloserver",
    level: str = "INFO",
    log_format: str = "text",
    log_dir: Optional[str] = None,
) -> logging.Logger:
    logger = logging.getLogger(service_name)
    if logger.handlers:
        return logger

    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")

    fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    if log_format.lower() == "json":
        formatter = JsonFormatter()
    else:
        formatter = TextFormatter(fmt)
    trace_filter = TraceContextFilter()

    # Stream handler (stdout)
    sh = logging.StreamHandler()
    sh.setFormatter(formatter)
    sh.setLevel(numeric_level)
    sh.addFilter(trace_filter)
    logger.addHandler(sh)

    # Rotating file handler
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        fh_path = os.path.join(log_dir, f"{service_name}.log")
        fh = RotatingFileHandler(fh_path, maxBytes=5 * 1024 * 1024, backupCount=3)
        fh.setFormatter(formatter)
        fh.setLevel(numeric_level)
        fh.addFilter(trace_filter)
        logger.addHandler(fh)

    # OpenTelemetry logs bridge (only once telemetry is initialised)
    oh = otel_log_handler(numeric_level)
    if oh is not None:
        logger.addHandler(oh)

    logger.setLevel(numeric_level)
    logger.propagate = False
    return logger
