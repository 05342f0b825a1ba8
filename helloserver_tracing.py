"""helloserver_tracing: OpenTelemetry traces and log export.

Usage:
  from helloserver_tracing import init_telemetry, start_span
  init_telemetry(service_name="example-service", service_version="1.0.0")
  with start_span("allocate_chunk", {"allocator.count": n}):
      ...

When tracing is disabled (init_telemetry never called, or TRACING_ENABLED is
false) start_span is a no-op context manager. A failure while initialising
the SDK is fatal and raised as TelemetryError.
"""
import contextlib
import logging
import socket
from typing import Dict, Mapping, Optional

from opentelemetry import trace
from opentelemetry._logs import set_logger_provider
from opentelemetry.context import Context
from opentelemetry.exporter.otlp.proto.http._log_exporter import OTLPLogExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import ALWAYS_OFF, ALWAYS_ON, TraceIdRatioBased
from opentelemetry.trace import SpanKind

from helloserver.errors.fatal import TelemetryError

_tracer = None
_enabled = False
_tracer_provider: Optional[TracerProvider] = None
_logger_provider: Optional[LoggerProvider] = None


def build_resource(service_name: str, service_version: str) -> Resource:
    """Attributes shared by every span and log record of the process."""
    return Resource.create(
        {
            "service.name": service_name,
            "service.version": service_version,
            "host.name": socket.gethostname(),
        }
    )


def _sampler(mode: str, rate: float):
    if mode == "always_off":
        return ALWAYS_OFF
    if mode == "traceidratio":
        return TraceIdRatioBased(rate)
    return ALWAYS_ON


def _signal_url(endpoint: str, path: str) -> str:
    return endpoint.rstrip("/") + path


def init_telemetry(
    service_name: str,
    service_version: str = "1.0.0",
    endpoint: Optional[str] = None,
    headers: Optional[Dict[str, str]] = None,
    sampler: str = "always_on",
    sample_rate: float = 1.0,
) -> TracerProvider:
    """Install the tracer and logger providers.

    Exporters are attached only when `endpoint` (OTEL_EXPORTER_OTLP_ENDPOINT,
    e.g. http://collector:4318) is set; without it spans are still created so
    log records keep their trace_id/span_id.
    """
    global _tracer, _enabled, _tracer_provider, _logger_provider
    try:
        resource = build_resource(service_name, service_version)

        tracer_provider = TracerProvider(resource=resource, sampler=_sampler(sampler, sample_rate))
        logger_provider = LoggerProvider(resource=resource)
        if endpoint:
            tracer_provider.add_span_processor(
                BatchSpanProcessor(
                    OTLPSpanExporter(endpoint=_signal_url(endpoint, "/v1/traces"), headers=headers)
                )
            )
            logger_provider.add_log_record_processor(
                BatchLogRecordProcessor(
                    OTLPLogExporter(endpoint=_signal_url(endpoint, "/v1/logs"), headers=headers)
                )
            )

        trace.set_tracer_provider(tracer_provider)
        set_logger_provider(logger_provider)
    except Exception as exc:
        raise TelemetryError("Failed to set up OpenTelemetry SDK", context={"error": str(exc)}) from exc

    _tracer_provider = tracer_provider
    _logger_provider = logger_provider
    _tracer = tracer_provider.get_tracer(service_name)
    _enabled = True
    return tracer_provider


def otel_log_handler(level: int = logging.NOTSET) -> Optional[logging.Handler]:
    """Handler forwarding stdlib log records to the OpenTelemetry logs pipeline."""
    if _logger_provider is None:
        return None
    return LoggingHandler(level=level, logger_provider=_logger_provider)


@contextlib.contextmanager
def start_span(
    name: str,
    attributes: Optional[Mapping[str, object]] = None,
    kind: SpanKind = SpanKind.INTERNAL,
    context: Optional[Context] = None,
):
    """Context manager that starts a span if tracing is enabled, else no-op."""
    if not _enabled or _tracer is None:
        yield None
        return
    with _tracer.start_as_current_span(name, context=context, kind=kind) as span:
        if attributes:
            for k, v in attributes.items():
                if v is not None:
                    span.set_attribute(str(k), v)
        yield span


def trace_metadata() -> Dict[str, str]:
    """trace_id/span_id of the current span, or {} outside a valid span."""
    span_context = trace.get_current_span().get_span_context()
    if not span_context.is_valid:
        return {}
    return {
        "trace_id": trace.format_trace_id(span_context.trace_id),
        "span_id": trace.format_span_id(span_context.span_id),
    }


def is_enabled() -> bool:
    return bool(_enabled)


def shutdown() -> None:
    """Flush and stop both providers; start_span becomes a no-op again."""
    global _tracer, _enabled, _tracer_provider, _logger_provider
    if _logger_provider is not None:
        _logger_provider.shutdown()
    if _tracer_provider is not None:
        _tracer_provider.shutdown()
    _tracer = None
    _enabled = False
    _tracer_provider = None
    _logger_provider = None
