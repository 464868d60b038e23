"""OpenTelemetry initialization and request spans for the Services client."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator, MutableMapping
from contextlib import contextmanager

from opentelemetry import trace
from opentelemetry.propagate import inject
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider

logger = logging.getLogger(__name__)

_TRACER_NAME = "drupal_services"

# Guard flag: True once the global TracerProvider has been installed.
_tracer_provider_installed: bool = False


def init_telemetry(service_name: str) -> trace.Tracer:
    """Initialize OpenTelemetry tracing for the process.

    When OTEL_EXPORTER_OTLP_ENDPOINT is set, installs a TracerProvider with an
    OTLP gRPC exporter on the first call; later calls reuse it. Without the
    variable a no-op tracer is returned.

    Args:
        service_name: Service name reported on exported spans.

    Returns:
        A Tracer instance (real or no-op depending on config)
    """
    global _tracer_provider_installed

    endpoint = os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT")

    if not endpoint:
        logger.debug("OTEL_EXPORTER_OTLP_ENDPOINT not set, using no-op tracer")
        return trace.get_tracer(service_name)

    if _tracer_provider_installed:
        logger.debug(
            "TracerProvider already initialized; reusing existing provider for service=%s",
            service_name,
        )
        return trace.get_tracer(service_name)

    # Import exporter only when needed
    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
    from opentelemetry.sdk.trace.export import BatchSpanProcessor

    resource = Resource.create({"service.name": service_name})
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))

    trace.set_tracer_provider(provider)
    _tracer_provider_installed = True
    logger.info("Telemetry initialized: endpoint=%s", endpoint)

    return trace.get_tracer(service_name)


@contextmanager
def request_span(
    method: str,
    url: str,
    headers: MutableMapping[str, str] | None = None,
) -> Iterator[trace.Span]:
    """Run one HTTP exchange inside a client span.

    When *headers* is given, W3C trace-context headers for the new span are
    injected into it. Exceptions are recorded on the span and re-raised.
    """
    tracer = trace.get_tracer(_TRACER_NAME)
    with tracer.start_as_current_span(
        f"drupal.http.{method.lower()}",
        kind=trace.SpanKind.CLIENT,
        record_exception=True,
        set_status_on_exception=True,
    ) as span:
        span.set_attribute("http.request.method", method)
        span.set_attribute("url.full", url)
        if headers is not None:
            inject(headers)
        yield span


def record_status(span: trace.Span, status_code: int) -> None:
    """Annotate *span* with the response status; 4xx/5xx mark it as an error."""
    span.set_attribute("http.response.status_code", status_code)
    if status_code >= 400:
        span.set_status(trace.StatusCode.ERROR, f"HTTP {status_code}")
