from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError

from clientops.core.errors import ActionNotApplicable, Conflict
from clientops.dunning.engine import (
    ActionAcknowledged,
    ActionFailed,
    ActionRequested,
    DunningAction,
    DunningBoardState,
    SequenceLoaded,
    SnapshotLoaded,
    derive_sequence,
    ensure_action_allowed,
    filter_sequences,
    reduce,
    statistics,
)
from clientops.dunning.schemas import DunningSequence
from clientops.platform.bands import DunningSeverity
from clientops.platform.money import Money
from clientops.platform.transitions import DunningStatus


TODAY = date(2026, 6, 15)


def _sequence(
    sequence_id: str,
    status: DunningStatus = DunningStatus.ACTIVE,
    amount: str = "100",
    currency: str = "USD",
    failed_at: datetime = datetime(2026, 6, 10, tzinfo=timezone.utc),
    resolved_at: datetime | None = None,
    current_step: int = 1,
    total_steps: int = 4,
) -> DunningSequence:
    return DunningSequence(
        id=sequence_id,
        organization_id=f"org-{sequence_id}",
        organization_name=f"Club {sequence_id}",
        invoice_id=f"inv-{sequence_id}",
        invoice_number=f"INV-{sequence_id.upper()}",
        invoice_amount=Money(amount=Decimal(amount), currency=currency),
        status=status,
        current_step=current_step,
        total_steps=total_steps,
        failed_at=failed_at,
        resolved_at=resolved_at,
    )


@pytest.mark.parametrize("action", list(DunningAction))
@pytest.mark.parametrize("status", [DunningStatus.ESCALATED, DunningStatus.RECOVERED, DunningStatus.FAILED])
def test_actions_rejected_unless_active(action: DunningAction, status: DunningStatus) -> None:
    sequence = _sequence("s1", status=status)

    with pytest.raises(ActionNotApplicable):
        ensure_action_allowed(sequence, action)

    assert sequence.status == status


@pytest.mark.parametrize("action", list(DunningAction))
def test_actions_allowed_while_active(action: DunningAction) -> None:
    ensure_action_allowed(_sequence("s1"), action)


def test_retry_on_escalated_sequence_is_rejected_in_reducer() -> None:
    state = reduce(DunningBoardState(), SnapshotLoaded(sequences=(_sequence("s1", status=DunningStatus.ESCALATED),))).state

    result = reduce(state, ActionRequested(sequence_id="s1", action=DunningAction.RETRY_PAYMENT))

    assert isinstance(result.error, ActionNotApplicable)
    assert result.state.pending == {}
    assert result.state.sequences["s1"].status == DunningStatus.ESCALATED


def test_reducer_tracks_pending_action_until_acknowledged() -> None:
    state = reduce(DunningBoardState(), SnapshotLoaded(sequences=(_sequence("s1"),))).state

    requested = reduce(state, ActionRequested(sequence_id="s1", action=DunningAction.ESCALATE))
    assert requested.ok
    assert requested.state.pending == {"s1": DunningAction.ESCALATE}
    assert requested.state.sequences["s1"].status == DunningStatus.ACTIVE

    acknowledged = reduce(requested.state, ActionAcknowledged(sequence=_sequence("s1", status=DunningStatus.ESCALATED)))
    assert acknowledged.state.pending == {}
    assert acknowledged.state.sequences["s1"].status == DunningStatus.ESCALATED


def test_reducer_failure_with_conflict_requests_refetch() -> None:
    state = reduce(DunningBoardState(), SequenceLoaded(sequence=_sequence("s1"))).state
    state = reduce(state, ActionRequested(sequence_id="s1", action=DunningAction.RETRY_PAYMENT)).state

    result = reduce(state, ActionFailed(sequence_id="s1", error=Conflict("dunning", "s1")))

    assert result.state.needs_refetch
    assert result.state.pending == {}


def test_severity_and_step_progress() -> None:
    read = derive_sequence(_sequence("s1", failed_at=datetime(2026, 6, 5, tzinfo=timezone.utc), current_step=2), TODAY)

    assert read.days_since_failure == 10
    assert read.severity == DunningSeverity.CRITICAL
    assert read.step_progress_percent == 50
    assert read.actions_enabled


def test_step_bounds_are_validated() -> None:
    with pytest.raises(ValidationError):
        _sequence("s1", current_step=5, total_steps=4)
    with pytest.raises(ValidationError):
        _sequence("s1", current_step=0)


def test_statistics_with_no_resolutions_has_zero_recovery_rate() -> None:
    result = statistics([], TODAY)

    assert result.recovery_rate == Decimal("0")
    assert result.revenue_at_risk == []
    assert result.average_recovery_days is None


def test_revenue_at_risk_only_counts_open_sequences_per_currency() -> None:
    sequences = [
        _sequence("s1", DunningStatus.ACTIVE, "100", "USD"),
        _sequence("s2", DunningStatus.ESCALATED, "50", "USD"),
        _sequence("s3", DunningStatus.ACTIVE, "30", "SAR"),
        _sequence("s4", DunningStatus.RECOVERED, "1000", "USD", resolved_at=datetime(2026, 6, 12, tzinfo=timezone.utc)),
        _sequence("s5", DunningStatus.FAILED, "700", "SAR", resolved_at=datetime(2026, 6, 13, tzinfo=timezone.utc)),
    ]

    result = statistics(sequences, TODAY)

    assert {(money.currency, money.amount) for money in result.revenue_at_risk} == {
        ("SAR", Decimal("30.00")),
        ("USD", Decimal("150.00")),
    }
    assert result.active_sequences == 2
    assert result.escalated_count == 1


def test_month_statistics_only_count_current_month() -> None:
    sequences = [
        _sequence("s1", DunningStatus.RECOVERED, failed_at=datetime(2026, 6, 1, tzinfo=timezone.utc), resolved_at=datetime(2026, 6, 5, tzinfo=timezone.utc)),
        _sequence("s2", DunningStatus.RECOVERED, failed_at=datetime(2026, 6, 2, tzinfo=timezone.utc), resolved_at=datetime(2026, 6, 4, tzinfo=timezone.utc)),
        _sequence("s3", DunningStatus.FAILED, resolved_at=datetime(2026, 6, 14, tzinfo=timezone.utc)),
        _sequence("s4", DunningStatus.RECOVERED, resolved_at=datetime(2026, 5, 30, tzinfo=timezone.utc)),
    ]

    result = statistics(sequences, TODAY)

    assert result.recovered_this_month == 2
    assert result.failed_this_month == 1
    assert result.recovery_rate == Decimal("0.6667")
    assert result.average_recovery_days == Decimal("3.0")


def test_filter_by_status_and_search() -> None:
    reads = [derive_sequence(_sequence(name, status), TODAY) for name, status in [("a1", DunningStatus.ACTIVE), ("b2", DunningStatus.ESCALATED)]]

    assert [item.id for item in filter_sequences(reads, status=DunningStatus.ESCALATED)] == ["b2"]
    assert [item.id for item in filter_sequences(reads, search="club a1")] == ["a1"]
    assert [item.id for item in filter_sequences(reads, search="inv-b2")] == ["b2"]
    assert len(filter_sequences(reads, search="  ")) == 2
