from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from clientops.api.errors import lifecycle_error_handler
from clientops.api.routes import router as api_router
from clientops.core.config import get_settings
from clientops.core.errors import LifecycleError
from clientops.core.events import LifecycleEvent, event_bus
from clientops.logging import configure_logging
from clientops.middleware.correlation_id import CorrelationIdMiddleware
from clientops.middleware.request_logging import RequestLoggingMiddleware
from clientops.otel import get_fastapi_server_request_hook, setup_otel


configure_logging()
logger = logging.getLogger("clientops.lifecycle")
_subscriptions_registered = False

_audited_event_types = [
    "deal.won",
    "deal.lost",
    "deal.churned",
    "deal.deleted",
    "dunning.action_requested",
    "onboarding.batch_completed",
]


def _on_system_started(event: LifecycleEvent) -> None:
    logger.info("system_event", extra={"event_name": event.name})


def _on_lifecycle_event(event: LifecycleEvent) -> None:
    payload = event.payload.get("payload") or {}
    logger.info(
        "lifecycle_event",
        extra={
            "event_name": event.name,
            "entity_id": payload.get("deal_id") or payload.get("sequence_id"),
            "action": payload.get("action"),
        },
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _subscriptions_registered
    if not _subscriptions_registered:
        event_bus.subscribe("system.started", _on_system_started)
        for event_name in _audited_event_types:
            event_bus.subscribe(event_name, _on_lifecycle_event)
        _subscriptions_registered = True
    event_bus.publish("system.started", {"service": "api"})
    yield


settings = get_settings()

app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.add_exception_handler(LifecycleError, lifecycle_error_handler)
app.include_router(api_router)

setup_otel(settings)

if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=get_fastapi_server_request_hook())
