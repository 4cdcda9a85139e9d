from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Generic, Protocol, TypeVar

import httpx
from opentelemetry import trace
from pydantic import BaseModel

from clientops.context import get_actor_id, get_correlation_id
from clientops.core.errors import Conflict, LifecycleError, MalformedResponse, NotFound, Unavailable
from clientops.dunning.schemas import DunningSequence
from clientops.health.schemas import ClientHealthSnapshot
from clientops.metrics import observe_client_failure
from clientops.onboarding.schemas import OnboardingSummary
from clientops.pipeline.schemas import Deal
from clientops.platform.transitions import DealStage, DunningStatus


logger = logging.getLogger("clientops.client")
tracer = trace.get_tracer("clientops.platform.client")

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)


@dataclass(slots=True)
class Page(Generic[T]):
    items: list[T]
    page: int
    page_size: int
    total: int

    @property
    def has_next(self) -> bool:
        return self.page * self.page_size < self.total


def fetch_all(fetch_page: Callable[[int, int], Page[T]], page_size: int) -> list[T]:
    items: list[T] = []
    page_number = 1
    while True:
        page = fetch_page(page_number, page_size)
        items.extend(page.items)
        if not page.has_next or not page.items:
            return items
        page_number += 1


class BillingCrmClient(Protocol):
    def list_deals(self, page: int, page_size: int) -> Page[Deal]: ...

    def get_deal(self, deal_id: str) -> Deal: ...

    def update_deal_stage(
        self, deal_id: str, stage: DealStage, expected_stage: DealStage, reason: str | None = None
    ) -> Deal: ...

    def delete_deal(self, deal_id: str) -> None: ...

    def list_onboarding(self, page: int, page_size: int) -> Page[OnboardingSummary]: ...

    def send_onboarding_reminder(self, organization_id: str) -> None: ...

    def schedule_onboarding_call(self, organization_id: str) -> None: ...

    def list_dunning_sequences(self, page: int, page_size: int) -> Page[DunningSequence]: ...

    def get_dunning_sequence(self, sequence_id: str) -> DunningSequence: ...

    def retry_payment(self, sequence_id: str) -> DunningSequence: ...

    def send_payment_link(self, sequence_id: str) -> DunningSequence: ...

    def escalate_dunning(self, sequence_id: str) -> DunningSequence: ...

    def list_health(self, page: int, page_size: int) -> Page[ClientHealthSnapshot]: ...


class HttpBillingCrmClient:
    """``BillingCrmClient`` over the billing/CRM service's JSON API."""

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout_seconds: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        headers = {"accept": "application/json"}
        if token:
            headers["authorization"] = f"Bearer {token}"
        self._http = httpx.Client(base_url=base_url, headers=headers, timeout=timeout_seconds, transport=transport)

    def close(self) -> None:
        self._http.close()

    def _request(
        self,
        operation: str,
        method: str,
        path: str,
        entity_type: str,
        entity_id: str = "",
        **kwargs: Any,
    ) -> httpx.Response:
        headers = {}
        correlation_id = get_correlation_id()
        if correlation_id:
            headers["x-correlation-id"] = correlation_id
        actor_id = get_actor_id()
        if actor_id:
            headers["x-actor-id"] = actor_id

        with tracer.start_as_current_span(f"billing_crm.{operation}") as span:
            span.set_attribute("entity_type", entity_type)
            span.set_attribute("entity_id", entity_id)
            if correlation_id:
                span.set_attribute("correlation_id", correlation_id)
            try:
                response = self._http.request(method, path, headers=headers, **kwargs)
            except httpx.TimeoutException as exc:
                self._record_failure(operation, Unavailable.code, exc)
                raise Unavailable(operation, "request timed out") from exc
            except httpx.HTTPError as exc:
                self._record_failure(operation, Unavailable.code, exc)
                raise Unavailable(operation, str(exc) or type(exc).__name__) from exc

            span.set_attribute("http.status_code", response.status_code)
            if response.status_code == 404:
                self._record_failure(operation, NotFound.code)
                raise NotFound(entity_type, entity_id)
            if response.status_code == 409:
                self._record_failure(operation, Conflict.code)
                raise Conflict(entity_type, entity_id, _error_message(response) or "concurrent modification")
            if response.status_code >= 500:
                self._record_failure(operation, Unavailable.code)
                raise Unavailable(operation, f"billing service returned {response.status_code}")
            if response.status_code >= 400:
                self._record_failure(operation, LifecycleError.code)
                raise LifecycleError(f"{operation}: rejected with {response.status_code}: {_error_message(response)}")
            return response

    def _record_failure(self, operation: str, code: str, exc: Exception | None = None) -> None:
        observe_client_failure(operation, code)
        logger.warning(
            "billing_client.failure",
            extra={"operation": operation, "outcome": code, "error": str(exc) if exc else None},
        )

    def _parse(self, operation: str, model: type[M], response: httpx.Response) -> M:
        # pydantic's ValidationError and JSON decode errors are both ValueErrors
        try:
            return model.model_validate(response.json())
        except ValueError as exc:
            self._record_failure(operation, MalformedResponse.code, exc)
            raise MalformedResponse(operation, str(exc)) from exc

    def _page(self, operation: str, path: str, model: type[M], page: int, page_size: int) -> Page[M]:
        response = self._request(operation, "GET", path, entity_type=operation, params={"page": page, "page_size": page_size})
        try:
            body = response.json()
            items = [model.model_validate(item) for item in body.get("items", [])]
            total = int(body.get("total", len(items)))
        except (ValueError, TypeError, AttributeError) as exc:
            self._record_failure(operation, MalformedResponse.code, exc)
            raise MalformedResponse(operation, str(exc)) from exc
        return Page(items=items, page=page, page_size=page_size, total=total)

    def list_deals(self, page: int, page_size: int) -> Page[Deal]:
        return self._page("list_deals", "/deals", Deal, page, page_size)

    def get_deal(self, deal_id: str) -> Deal:
        response = self._request("get_deal", "GET", f"/deals/{deal_id}", "deal", deal_id)
        return self._parse("get_deal", Deal, response)

    def update_deal_stage(
        self, deal_id: str, stage: DealStage, expected_stage: DealStage, reason: str | None = None
    ) -> Deal:
        payload = {"stage": stage.value, "expected_stage": expected_stage.value, "reason": reason}
        response = self._request("update_deal_stage", "PATCH", f"/deals/{deal_id}/stage", "deal", deal_id, json=payload)
        return self._parse("update_deal_stage", Deal, response)

    def delete_deal(self, deal_id: str) -> None:
        self._request("delete_deal", "DELETE", f"/deals/{deal_id}", "deal", deal_id)

    def list_onboarding(self, page: int, page_size: int) -> Page[OnboardingSummary]:
        return self._page("list_onboarding", "/onboarding", OnboardingSummary, page, page_size)

    def send_onboarding_reminder(self, organization_id: str) -> None:
        self._request(
            "send_onboarding_reminder", "POST", f"/onboarding/{organization_id}/reminders", "onboarding", organization_id
        )

    def schedule_onboarding_call(self, organization_id: str) -> None:
        self._request("schedule_onboarding_call", "POST", f"/onboarding/{organization_id}/calls", "onboarding", organization_id)

    def list_dunning_sequences(self, page: int, page_size: int) -> Page[DunningSequence]:
        return self._page("list_dunning_sequences", "/dunning", DunningSequence, page, page_size)

    def get_dunning_sequence(self, sequence_id: str) -> DunningSequence:
        response = self._request("get_dunning_sequence", "GET", f"/dunning/{sequence_id}", "dunning", sequence_id)
        return self._parse("get_dunning_sequence", DunningSequence, response)

    def _dunning_action(self, operation: str, sequence_id: str, action_path: str) -> DunningSequence:
        response = self._request(operation, "POST", f"/dunning/{sequence_id}/{action_path}", "dunning", sequence_id)
        return self._parse(operation, DunningSequence, response)

    def retry_payment(self, sequence_id: str) -> DunningSequence:
        return self._dunning_action("retry_payment", sequence_id, "retry")

    def send_payment_link(self, sequence_id: str) -> DunningSequence:
        return self._dunning_action("send_payment_link", sequence_id, "payment-link")

    def escalate_dunning(self, sequence_id: str) -> DunningSequence:
        return self._dunning_action("escalate_dunning", sequence_id, "escalate")

    def list_health(self, page: int, page_size: int) -> Page[ClientHealthSnapshot]:
        return self._page("list_health", "/health-scores", ClientHealthSnapshot, page, page_size)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("message") or body.get("detail") or "")
    return ""


@dataclass
class InMemoryBillingCrmClient:
    """Billing/CRM stand-in for local runs and tests.

    Records every mutating call in ``calls`` and raises injected failures for
    ``(operation, entity_id)`` pairs.
    """

    deals: dict[str, Deal] = field(default_factory=dict)
    onboarding: dict[str, OnboardingSummary] = field(default_factory=dict)
    sequences: dict[str, DunningSequence] = field(default_factory=dict)
    health: dict[str, ClientHealthSnapshot] = field(default_factory=dict)
    calls: list[tuple[str, str]] = field(default_factory=list)
    failures: dict[tuple[str, str], LifecycleError] = field(default_factory=dict)
    clock: Callable[[], datetime] = field(default=lambda: datetime.now(timezone.utc))

    def inject_failure(self, operation: str, entity_id: str, error: LifecycleError) -> None:
        self.failures[(operation, entity_id)] = error

    def clear_failures(self) -> None:
        self.failures.clear()

    def _check(self, operation: str, entity_id: str) -> None:
        error = self.failures.get((operation, entity_id))
        if error is not None:
            raise error

    def _record(self, operation: str, entity_id: str) -> None:
        self._check(operation, entity_id)
        self.calls.append((operation, entity_id))

    @staticmethod
    def _paginate(values: list[T], page: int, page_size: int) -> Page[T]:
        start = max(0, (page - 1) * page_size)
        return Page(items=values[start : start + page_size], page=page, page_size=page_size, total=len(values))

    def list_deals(self, page: int, page_size: int) -> Page[Deal]:
        return self._paginate(sorted(self.deals.values(), key=lambda item: item.id), page, page_size)

    def get_deal(self, deal_id: str) -> Deal:
        self._check("get_deal", deal_id)
        deal = self.deals.get(deal_id)
        if deal is None:
            raise NotFound("deal", deal_id)
        return deal

    def update_deal_stage(
        self, deal_id: str, stage: DealStage, expected_stage: DealStage, reason: str | None = None
    ) -> Deal:
        self._record("update_deal_stage", deal_id)
        deal = self.deals.get(deal_id)
        if deal is None:
            raise NotFound("deal", deal_id)
        if deal.stage != expected_stage:
            raise Conflict("deal", deal_id, f"stage is {deal.stage.value}, expected {expected_stage.value}")
        update: dict[str, Any] = {"stage": stage}
        if stage in (DealStage.WON, DealStage.LOST):
            update["closed_at"] = self.clock()
        if stage == DealStage.LOST:
            update["lost_reason"] = reason
        updated = deal.model_copy(update=update)
        self.deals[deal_id] = updated
        return updated

    def delete_deal(self, deal_id: str) -> None:
        self._record("delete_deal", deal_id)
        if self.deals.pop(deal_id, None) is None:
            raise NotFound("deal", deal_id)

    def list_onboarding(self, page: int, page_size: int) -> Page[OnboardingSummary]:
        return self._paginate(sorted(self.onboarding.values(), key=lambda item: item.organization_id), page, page_size)

    def send_onboarding_reminder(self, organization_id: str) -> None:
        self._record("send_onboarding_reminder", organization_id)
        if organization_id not in self.onboarding:
            raise NotFound("onboarding", organization_id)

    def schedule_onboarding_call(self, organization_id: str) -> None:
        self._record("schedule_onboarding_call", organization_id)
        if organization_id not in self.onboarding:
            raise NotFound("onboarding", organization_id)

    def list_dunning_sequences(self, page: int, page_size: int) -> Page[DunningSequence]:
        return self._paginate(sorted(self.sequences.values(), key=lambda item: item.id), page, page_size)

    def get_dunning_sequence(self, sequence_id: str) -> DunningSequence:
        self._check("get_dunning_sequence", sequence_id)
        sequence = self.sequences.get(sequence_id)
        if sequence is None:
            raise NotFound("dunning", sequence_id)
        return sequence

    def _dunning_call(self, operation: str, sequence_id: str) -> DunningSequence:
        self._record(operation, sequence_id)
        sequence = self.sequences.get(sequence_id)
        if sequence is None:
            raise NotFound("dunning", sequence_id)
        return sequence

    def retry_payment(self, sequence_id: str) -> DunningSequence:
        return self._dunning_call("retry_payment", sequence_id)

    def send_payment_link(self, sequence_id: str) -> DunningSequence:
        return self._dunning_call("send_payment_link", sequence_id)

    def escalate_dunning(self, sequence_id: str) -> DunningSequence:
        sequence = self._dunning_call("escalate_dunning", sequence_id)
        if sequence.status != DunningStatus.ACTIVE:
            raise Conflict("dunning", sequence_id, f"status is {sequence.status.value}")
        escalated = sequence.model_copy(update={"status": DunningStatus.ESCALATED})
        self.sequences[sequence_id] = escalated
        return escalated

    def list_health(self, page: int, page_size: int) -> Page[ClientHealthSnapshot]:
        return self._paginate(sorted(self.health.values(), key=lambda item: item.organization_id), page, page_size)
