from __future__ import annotations

from datetime import datetime, timezone

import pytest

from clientops.core.errors import ActionInFlight, NotFound, PartialBatchFailure, Unavailable
from clientops.onboarding.schemas import BulkActionRequest, OnboardingSummary
from clientops.onboarding.service import OnboardingService
from clientops.platform.bands import OnboardingPhase
from clientops.platform.batch import SelectionSet, run_batch
from clientops.platform.client import InMemoryBillingCrmClient
from clientops.platform.clock import FixedClock
from clientops.platform.guards import InFlightRegistry, ViewScope
from clientops.platform.notifications import InMemoryNotificationPort
from clientops.platform.store import ReduceResult, ResultStore


def _counter_reducer(state: int, event: int) -> ReduceResult[int]:
    return ReduceResult(state + event)


@pytest.fixture
def client() -> InMemoryBillingCrmClient:
    started = datetime(2026, 5, 1, tzinfo=timezone.utc)
    return InMemoryBillingCrmClient(
        onboarding={
            org_id: OnboardingSummary(organization_id=org_id, total_points=10, max_points=150, started_at=started)
            for org_id in ("A", "B", "C")
        }
    )


def test_run_batch_reports_each_item_without_aborting() -> None:
    def operation(item_id: str) -> None:
        if item_id == "B":
            raise Unavailable("send_onboarding_reminder")

    result = run_batch("bulk_reminder", ["A", "B", "C", "A"], operation)

    assert result.succeeded == ["A", "C"]
    assert result.failed == ["B"]
    assert result.total == 3
    assert not result.ok
    assert result.errors[0].item_id == "B"
    assert result.errors[0].code == "unavailable"
    with pytest.raises(PartialBatchFailure):
        result.raise_for_failures()


def test_bulk_reminder_partial_failure_is_reported_not_raised(client: InMemoryBillingCrmClient) -> None:
    client.inject_failure("send_onboarding_reminder", "B", Unavailable("send_onboarding_reminder"))
    notifier = InMemoryNotificationPort()
    service = OnboardingService(clock=FixedClock(datetime(2026, 5, 21, tzinfo=timezone.utc)))

    result = service.bulk_reminder(client, ["A", "B"], notifier)

    assert result.succeeded == ["A"]
    assert result.failed == ["B"]
    assert client.calls == [("send_onboarding_reminder", "A")]
    assert notifier.batches == [result]


def test_export_reports_unknown_organizations(client: InMemoryBillingCrmClient) -> None:
    service = OnboardingService(clock=FixedClock(datetime(2026, 5, 21, tzinfo=timezone.utc)))

    rows, result = service.export(client, ["A", "missing"], InMemoryNotificationPort())

    assert [row.organization_id for row in rows] == ["A"]
    assert result.failed == ["missing"]
    assert result.errors[0].code == NotFound.code


def test_selection_clears_when_filter_changes() -> None:
    selection = SelectionSet()
    assert selection.apply_filter(("CORE_SETUP", "ALL"))
    selection.select_all(["A", "B"])
    selection.toggle("B")
    selection.toggle("C")

    assert selection.selected == ["A", "C"]
    assert not selection.apply_filter(("CORE_SETUP", "ALL"))
    assert len(selection) == 2

    assert selection.apply_filter(("OPERATIONS", "ALL"))
    assert selection.selected == []


def test_selection_restricted_to_visible_ids() -> None:
    selection = SelectionSet()
    selection.select(["A", "B", "C"])

    dropped = selection.restrict_to(["A", "C", "D"])

    assert dropped == ["B"]
    assert selection.selected == ["A", "C"]


def test_resolve_selection_keeps_only_ids_in_the_filtered_view(client: InMemoryBillingCrmClient) -> None:
    client.onboarding["C"] = client.onboarding["C"].model_copy(update={"total_points": 150})
    service = OnboardingService(clock=FixedClock(datetime(2026, 5, 21, tzinfo=timezone.utc)))
    request = BulkActionRequest(organization_ids=["A", "C", "missing"], phase=OnboardingPhase.GETTING_STARTED)

    selected, out_of_view = service.resolve_selection(client, request)

    assert selected == ["A"]
    assert out_of_view == ["C", "missing"]


def test_in_flight_registry_rejects_overlapping_actions() -> None:
    registry = InFlightRegistry()

    with registry.hold("deal", "d1"):
        assert registry.is_in_flight("deal", "d1")
        with pytest.raises(ActionInFlight):
            with registry.hold("deal", "d1"):
                pass
        with registry.hold("deal", "d2"):
            pass

    assert not registry.is_in_flight("deal", "d1")


def test_in_flight_registry_releases_after_failure() -> None:
    registry = InFlightRegistry()

    with pytest.raises(Unavailable):
        with registry.hold("dunning", "s1"):
            raise Unavailable("retry_payment")

    with registry.hold("dunning", "s1"):
        pass


def test_view_scope_supersedes_and_closes_tokens() -> None:
    scope = ViewScope("board")
    first = scope.open()
    second = scope.open()

    assert not first.live
    assert second.live

    scope.close()
    assert not second.live


def test_store_discards_results_for_stale_scope() -> None:
    scope = ViewScope("board")
    store: ResultStore[int, int] = ResultStore("counter", _counter_reducer, 0)
    received: list[int] = []
    store.subscribe(lambda result: received.append(result.state))

    token = scope.open()
    assert store.dispatch(5, token=token) is not None
    scope.close()
    assert store.dispatch(3, token=token) is None

    assert store.state == 5
    assert received == [5]


def test_store_subscribers_are_isolated_and_removable() -> None:
    store: ResultStore[int, int] = ResultStore("counter", _counter_reducer, 0)
    received: list[int] = []

    def broken(result: ReduceResult[int]) -> None:
        raise RuntimeError("subscriber failed")

    store.subscribe(broken)
    unsubscribe = store.subscribe(lambda result: received.append(result.state))

    store.dispatch(1)
    unsubscribe()
    store.dispatch(1)

    assert store.state == 2
    assert received == [1]
