"""Structured logging and optional OTLP tracing for the proxy process."""

from __future__ import annotations

import logging
from typing import Optional

import structlog
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased

from .settings import ProxySettings

SERVICE_NAME = "bucketproxy"

_installed_provider: Optional[TracerProvider] = None


def configure_logging(level: str = "INFO") -> None:
    """Render every structlog event as one JSON line on the root logger.

    The access log, startup events and stream interruptions all go through
    here, tagged with the service name.
    """

    numeric_level = logging.getLevelName(level.strip().upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(format="%(message)s")
    root.setLevel(numeric_level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            structlog.processors.EventRenamer("message"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )
    structlog.contextvars.bind_contextvars(service=SERVICE_NAME)


def build_tracer_provider(settings: ProxySettings) -> Optional[TracerProvider]:
    """Return an OTLP-exporting provider, or ``None`` when no collector is configured.

    Without an endpoint nothing is installed: the API's no-op tracer is used and
    no span is ever recorded or retained.
    """

    if not settings.otel_exporter_endpoint:
        return None
    ratio = max(0.0, min(1.0, settings.otel_sampler_ratio))
    provider = TracerProvider(
        resource=Resource.create({"service.name": SERVICE_NAME}),
        sampler=ParentBased(TraceIdRatioBased(ratio)),
    )
    exporter = OTLPSpanExporter(endpoint=settings.otel_exporter_endpoint, headers=settings.otlp_headers)
    provider.add_span_processor(BatchSpanProcessor(exporter))
    return provider


def configure_tracing(settings: ProxySettings) -> Optional[TracerProvider]:
    # The global provider can only be set once per process.
    global _installed_provider
    if _installed_provider is not None:
        return _installed_provider
    provider = build_tracer_provider(settings)
    if provider is not None:
        trace.set_tracer_provider(provider)
        _installed_provider = provider
    return provider


def instrument_fastapi_app(app, provider: TracerProvider) -> None:
    # Streamed bodies go out in many chunks; skip the per-message ASGI spans.
    FastAPIInstrumentor.instrument_app(app, tracer_provider=provider, exclude_spans=["receive", "send"])
