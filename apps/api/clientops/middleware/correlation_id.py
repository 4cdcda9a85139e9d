from __future__ import annotations

import uuid

from opentelemetry import trace
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from clientops.context import reset_actor_id, reset_correlation_id, set_actor_id, set_correlation_id


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Binds the request's correlation and actor ids for logs, events and outbound billing calls."""

    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        correlation_id = request.headers.get("x-correlation-id") or str(uuid.uuid4())
        actor_id = request.headers.get("x-actor-id") or None
        request.state.correlation_id = correlation_id
        request.state.actor_id = actor_id

        span = trace.get_current_span()
        if span.is_recording():
            # Generated ids are only known here; the server hook sees headers alone.
            span.set_attribute("correlation_id", correlation_id)
            if actor_id:
                span.set_attribute("actor_id", actor_id)

        correlation_token = set_correlation_id(correlation_id)
        actor_token = set_actor_id(actor_id)
        try:
            response = await call_next(request)
        finally:
            reset_actor_id(actor_token)
            reset_correlation_id(correlation_token)

        response.headers["x-correlation-id"] = correlation_id
        return response
