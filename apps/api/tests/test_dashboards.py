from __future__ import annotations

from collections.abc import Generator
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from clientops import events
from clientops.core import celery_app
from clientops.core.config import get_settings
from clientops.dashboards.service import refresh_dashboards
from clientops.dunning.schemas import DunningSequence
from clientops.health.schemas import ClientHealthSnapshot
from clientops.onboarding.schemas import OnboardingSummary
from clientops.pipeline.schemas import Deal
from clientops.platform.client import InMemoryBillingCrmClient
from clientops.platform.clock import FixedClock
from clientops.platform.money import Money
from clientops.platform.transitions import DealStage, DunningStatus


NOW = datetime(2026, 6, 15, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def clear_stubs() -> Generator[None, None, None]:
    events.published_events.clear()
    get_settings.cache_clear()
    yield
    events.published_events.clear()
    get_settings.cache_clear()


@pytest.fixture()
def billing() -> InMemoryBillingCrmClient:
    usd = Money(amount=Decimal("100"), currency="USD")
    return InMemoryBillingCrmClient(
        deals={
            "d1": Deal(id="d1", stage=DealStage.WON, estimated_value=usd),
            "d2": Deal(id="d2", stage=DealStage.LEAD, estimated_value=usd, expected_close_date=date(2026, 6, 1)),
        },
        onboarding={
            "o1": OnboardingSummary(
                organization_id="o1",
                total_points=75,
                max_points=150,
                last_activity_at=datetime(2026, 6, 1, tzinfo=timezone.utc),
            ),
        },
        sequences={
            "s1": DunningSequence(
                id="s1",
                organization_id="o1",
                invoice_id="i1",
                invoice_amount=usd,
                status=DunningStatus.ACTIVE,
                current_step=1,
                total_steps=3,
                failed_at=datetime(2026, 6, 10, tzinfo=timezone.utc),
            ),
        },
        health={
            "o1": ClientHealthSnapshot(
                organization_id="o1",
                usage_score=50,
                payment_score=50,
                subscription_score=50,
                overall_score=50,
            ),
        },
    )


def test_refresh_uses_a_single_as_of_date(billing: InMemoryBillingCrmClient) -> None:
    snapshot = refresh_dashboards(billing, clock=FixedClock(NOW))

    assert snapshot.as_of == date(2026, 6, 15)
    assert snapshot.pipeline.total_deals == 2
    assert snapshot.pipeline.overdue_deal_ids == ["d2"]
    assert snapshot.onboarding.stalled_count == 1
    assert snapshot.dunning.active_sequences == 1
    assert snapshot.health.at_risk[0].organization_id == "o1"


def test_refresh_task_publishes_event(billing: InMemoryBillingCrmClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(celery_app, "get_billing_client", lambda: billing)

    payload = celery_app.refresh_dashboards_task()

    assert payload["pipeline"]["total_deals"] == 2
    refreshed = [event for event in events.published_events if event["event_type"] == "dashboard.refreshed"]
    assert refreshed
    assert refreshed[-1]["payload"]["as_of"] == payload["as_of"]


def test_beat_schedule_registers_refresh() -> None:
    schedule = celery_app.celery_app.conf.beat_schedule["refresh-dashboards"]

    assert schedule["task"] == "clientops.tasks.refresh_dashboards"
    assert schedule["schedule"] == float(get_settings().dashboard_refresh_seconds)
