from __future__ import annotations

import httpx
import pytest

from clientops.core.errors import ActionInFlight, Conflict, LifecycleError, MalformedResponse, NotFound, Unavailable
from clientops.dunning.engine import DunningAction
from clientops.dunning.service import DunningService
from clientops.otel import setup_inmemory_otel
from clientops.pipeline.service import PipelineService
from clientops.platform.client import HttpBillingCrmClient, Page, fetch_all
from clientops.platform.transitions import DealStage


DEAL_JSON = {
    "id": "deal-1",
    "title": "Annual plan",
    "stage": "LEAD",
    "estimated_value": {"amount": "1200.00", "currency": "USD"},
    "created_at": "2026-05-01T00:00:00Z",
}

SEQUENCE_JSON = {
    "id": "seq-1",
    "organization_id": "org-1",
    "invoice_id": "inv-1",
    "invoice_amount": {"amount": "120.00", "currency": "USD"},
    "status": "ACTIVE",
    "current_step": 1,
    "total_steps": 4,
    "failed_at": "2026-06-10T00:00:00Z",
}


def _client(handler) -> HttpBillingCrmClient:  # type: ignore[no-untyped-def]
    return HttpBillingCrmClient("https://billing.test/api", token="secret", transport=httpx.MockTransport(handler))


def test_update_stage_sends_expected_stage_and_headers() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={**DEAL_JSON, "stage": "CONTACTED"})

    deal = _client(handler).update_deal_stage("deal-1", DealStage.CONTACTED, DealStage.LEAD)

    assert deal.stage == DealStage.CONTACTED
    request = seen[0]
    assert request.method == "PATCH"
    assert request.url.path == "/api/deals/deal-1/stage"
    assert request.headers["authorization"] == "Bearer secret"
    assert b'"expected_stage":"LEAD"' in request.content.replace(b" ", b"")


@pytest.mark.parametrize(
    ("status_code", "error_type"),
    [(404, NotFound), (409, Conflict), (503, Unavailable), (422, LifecycleError)],
)
def test_status_codes_map_to_lifecycle_errors(status_code: int, error_type: type[LifecycleError]) -> None:
    client = _client(lambda request: httpx.Response(status_code, json={"message": "nope"}))

    with pytest.raises(error_type):
        client.get_deal("deal-1")


def test_conflict_asks_for_refetch() -> None:
    client = _client(lambda request: httpx.Response(409, json={"message": "stage changed"}))

    with pytest.raises(Conflict) as exc_info:
        client.update_deal_stage("deal-1", DealStage.CONTACTED, DealStage.LEAD)

    assert exc_info.value.refetch
    assert "stage changed" in str(exc_info.value)


def test_timeout_maps_to_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(Unavailable) as exc_info:
        _client(handler).retry_payment("seq-1")

    assert exc_info.value.operation == "retry_payment"


def test_list_pages_are_fetched_until_exhausted() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        page = int(request.url.params["page"])
        items = [{**DEAL_JSON, "id": f"deal-{page}-{index}"} for index in range(2 if page < 3 else 1)]
        return httpx.Response(200, json={"items": items, "total": 5})

    deals = fetch_all(_client(handler).list_deals, 2)

    assert [deal.id for deal in deals] == ["deal-1-0", "deal-1-1", "deal-2-0", "deal-2-1", "deal-3-0"]


def test_fetch_all_stops_on_empty_page() -> None:
    calls: list[int] = []

    def fetch_page(page: int, page_size: int) -> Page[str]:
        calls.append(page)
        return Page(items=[], page=page, page_size=page_size, total=10)

    assert fetch_all(fetch_page, 5) == []
    assert calls == [1]


def test_client_calls_are_traced() -> None:
    exporter = setup_inmemory_otel()
    exporter.clear()

    _client(lambda request: httpx.Response(200, json=DEAL_JSON)).get_deal("deal-1")

    spans = [span for span in exporter.get_finished_spans() if span.name == "billing_crm.get_deal"]
    assert spans
    assert spans[-1].attributes["entity_id"] == "deal-1"
    assert spans[-1].attributes["http.status_code"] == 200


def test_malformed_acknowledgement_is_a_lifecycle_error() -> None:
    client = _client(lambda request: httpx.Response(200, json={"unexpected": True}))

    with pytest.raises(MalformedResponse) as exc_info:
        client.update_deal_stage("deal-1", DealStage.CONTACTED, DealStage.LEAD)

    assert exc_info.value.operation == "update_deal_stage"


def test_non_json_body_is_a_lifecycle_error() -> None:
    client = _client(lambda request: httpx.Response(200, text="<html>maintenance</html>"))

    with pytest.raises(MalformedResponse):
        client.get_dunning_sequence("seq-1")
    with pytest.raises(MalformedResponse):
        client.list_deals(1, 10)


def test_redirect_loop_maps_to_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.TooManyRedirects("redirect loop", request=request)

    with pytest.raises(Unavailable) as exc_info:
        _client(handler).get_deal("deal-1")

    assert exc_info.value.operation == "get_deal"


def test_malformed_stage_update_releases_pending_deal() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(200, json=DEAL_JSON)
        return httpx.Response(200, json={"unexpected": True})

    client = _client(handler)
    service = PipelineService()

    with pytest.raises(MalformedResponse):
        service.transition(client, "deal-1", DealStage.CONTACTED)

    assert dict(service.board.state.pending) == {}
    assert service.board.state.last_error is not None
    assert service.board.state.deals["deal-1"].stage == DealStage.LEAD
    assert not service.in_flight.is_in_flight("deal", "deal-1")

    with pytest.raises(MalformedResponse):
        service.transition(client, "deal-1", DealStage.CONTACTED)


def test_malformed_dunning_acknowledgement_releases_pending_sequence() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(200, json=SEQUENCE_JSON)
        return httpx.Response(200, text="ok")

    client = _client(handler)
    service = DunningService()

    for _ in range(2):
        with pytest.raises(LifecycleError) as exc_info:
            service.perform_action(client, "seq-1", DunningAction.RETRY_PAYMENT)
        assert not isinstance(exc_info.value, ActionInFlight)
        assert exc_info.value.code == MalformedResponse.code

    assert dict(service.board.state.pending) == {}
    assert service.board.state.sequences["seq-1"].status.value == "ACTIVE"
