from __future__ import annotations

from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import SpanProcessor, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SimpleSpanProcessor,
)
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from clientops.core.config import Settings, get_settings


_provider: TracerProvider | None = None


def _get_or_create_provider(settings: Settings) -> TracerProvider:
    global _provider

    if _provider is not None:
        return _provider

    resource = Resource.create(
        {
            "service.name": settings.otel_service_name,
            "service.version": settings.app_version,
            "deployment.environment": settings.app_env,
        }
    )
    _provider = TracerProvider(resource=resource)
    trace.set_tracer_provider(_provider)
    return _provider


def span_processors(settings: Settings) -> list[SpanProcessor]:
    """Exporters selected by ``OTEL_EXPORTER_OTLP_ENDPOINT`` and ``OTEL_CONSOLE_EXPORTER``."""
    processors: list[SpanProcessor] = []
    if settings.otel_exporter_otlp_endpoint:
        processors.append(BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otel_exporter_otlp_endpoint)))
    if settings.otel_console_exporter:
        processors.append(SimpleSpanProcessor(ConsoleSpanExporter()))
    return processors


def setup_otel(settings: Settings) -> None:
    if not settings.otel_enabled:
        return

    provider = _get_or_create_provider(settings)
    for processor in span_processors(settings):
        provider.add_span_processor(processor)


def setup_inmemory_otel() -> InMemorySpanExporter:
    provider = _get_or_create_provider(get_settings())
    exporter = InMemorySpanExporter()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    return exporter


def get_tracer(name: str) -> trace.Tracer:
    return trace.get_tracer(name)


def get_fastapi_server_request_hook():
    # Runs when the server span starts, before any middleware sees the request.
    def server_request_hook(span, scope: dict[str, Any]) -> None:  # type: ignore[no-untyped-def]
        if span is None:
            return
        headers = dict(scope.get("headers", []))
        correlation_raw = headers.get(b"x-correlation-id")
        if correlation_raw:
            span.set_attribute("correlation_id", correlation_raw.decode("utf-8"))
        actor_raw = headers.get(b"x-actor-id")
        if actor_raw:
            span.set_attribute("actor_id", actor_raw.decode("utf-8"))

    return server_request_hook
