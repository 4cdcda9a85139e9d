from __future__ import annotations

import re

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.requests import Request


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

lifecycle_transitions_total = Counter(
    "lifecycle_transitions_total",
    "Lifecycle transition attempts by entity type and outcome",
    ["entity_type", "outcome"],
)

dunning_actions_total = Counter(
    "dunning_actions_total",
    "Guarded dunning actions by action and outcome",
    ["action", "outcome"],
)

batch_items_total = Counter(
    "batch_items_total",
    "Per-item outcomes of bulk actions",
    ["action", "outcome"],
)

billing_client_failures_total = Counter(
    "billing_client_failures_total",
    "Billing/CRM client failures by operation and error code",
    ["operation", "code"],
)

aggregation_duration_seconds = Histogram(
    "aggregation_duration_seconds",
    "Dashboard aggregation pass duration in seconds",
    ["dashboard"],
)


_UUID_RE = re.compile(
    r"\b[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[1-5][0-9a-fA-F]{3}-[89abAB][0-9a-fA-F]{3}-[0-9a-fA-F]{12}\b"
)
_INT_RE = re.compile(r"/\d+\b")
_PATH_PARAM_RE = re.compile(r"\{[^{}]+\}")


def _sanitize_path(path: str) -> str:
    without_uuids = _UUID_RE.sub("{id}", path)
    return _INT_RE.sub("/{id}", without_uuids)


def resolve_http_path_label(request: Request) -> str:
    route = request.scope.get("route")
    if route is not None:
        route_path = getattr(route, "path_format", None) or getattr(route, "path", None)
        if isinstance(route_path, str) and route_path:
            return _PATH_PARAM_RE.sub("{id}", route_path)
    return _sanitize_path(request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    http_requests_total.labels(method=method, path=path, status=str(status)).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_transition(entity_type: str, outcome: str) -> None:
    lifecycle_transitions_total.labels(entity_type=entity_type, outcome=outcome).inc()


def observe_dunning_action(action: str, outcome: str) -> None:
    dunning_actions_total.labels(action=action, outcome=outcome).inc()


def observe_batch(action: str, succeeded: int, failed: int) -> None:
    if succeeded > 0:
        batch_items_total.labels(action=action, outcome="succeeded").inc(succeeded)
    if failed > 0:
        batch_items_total.labels(action=action, outcome="failed").inc(failed)


def observe_client_failure(operation: str, code: str) -> None:
    billing_client_failures_total.labels(operation=operation, code=code).inc()


def observe_aggregation(dashboard: str, duration: float) -> None:
    aggregation_duration_seconds.labels(dashboard=dashboard).observe(duration)


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
