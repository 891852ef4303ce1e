import os

import structlog
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

log = structlog.get_logger(__name__)


def parse_resource_attributes(raw: str | None) -> dict[str, str]:
    """``key=value,key=value`` as used by OTEL_RESOURCE_ATTRIBUTES."""
    attributes = {}
    for pair in (raw or "").split(","):
        key, sep, value = pair.partition("=")
        if sep and key.strip():
            attributes[key.strip()] = value.strip()
    return attributes


def init_tracer(
    app_name: str = "payhub",
    endpoint: str | None = None,
    resource_attributes: str | None = None,
):
    """Initialize OpenTelemetry tracer with OTLP exporter"""
    attributes = parse_resource_attributes(resource_attributes)
    attributes["service.name"] = app_name
    provider = TracerProvider(resource=Resource.create(attributes))

    # DISABLE_TRACING keeps spans on the console exporter (tests, local runs)
    if os.getenv("DISABLE_TRACING", "").lower() in {"1", "true", "yes"}:
        exporter = ConsoleSpanExporter()
    else:
        try:
            exporter = OTLPSpanExporter(endpoint=endpoint) if endpoint else OTLPSpanExporter()
        except Exception as exc:  # pragma: no cover – only hit when collector absent
            log.warning("OTLP exporter unavailable, tracing disabled", error=str(exc))
            exporter = ConsoleSpanExporter()

    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)
    return provider


def get_tracer(name: str):
    """Tracer used for spans around outbound platform calls."""
    return trace.get_tracer(name)
