from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from types import MappingProxyType
from typing import Union, assert_never

from clientops.core.errors import ActionInFlight, ActionNotApplicable, Conflict, InvalidTransition, LifecycleError, NotFound
from clientops.platform.bands import DunningSeverity, DunningThresholds, dunning_severity_of, dunning_tone
from clientops.platform.money import ratio, sum_by_currency
from clientops.platform.store import ReduceResult
from clientops.platform.transitions import DunningStatus, EntityType, is_legal
from clientops.dunning.schemas import DunningSequence, DunningSequenceRead, DunningStatisticsRead


class DunningAction(str, Enum):
    RETRY_PAYMENT = "retry_payment"
    SEND_PAYMENT_LINK = "send_payment_link"
    ESCALATE = "escalate"


def days_since_failure(sequence: DunningSequence, today: date) -> int:
    return max(0, (today - sequence.failed_at.date()).days)


def severity_of(days: int, thresholds: DunningThresholds = DunningThresholds()) -> DunningSeverity:
    return dunning_severity_of(days, thresholds)


def step_progress_percent(sequence: DunningSequence) -> int:
    return min(100, (sequence.current_step * 100) // sequence.total_steps)


def actions_enabled(status: DunningStatus) -> bool:
    match status:
        case DunningStatus.ACTIVE:
            return True
        case DunningStatus.ESCALATED | DunningStatus.RECOVERED | DunningStatus.FAILED:
            return False
        case _:
            assert_never(status)


def ensure_action_allowed(sequence: DunningSequence, action: DunningAction) -> None:
    """Fail closed: every guarded action requires an ACTIVE sequence."""
    if not actions_enabled(sequence.status):
        raise ActionNotApplicable(EntityType.DUNNING.value, sequence.id, sequence.status.value, action.value)
    if action == DunningAction.ESCALATE and not is_legal(EntityType.DUNNING, sequence.status, DunningStatus.ESCALATED):
        raise InvalidTransition(
            EntityType.DUNNING.value,
            sequence.id,
            sequence.status.value,
            DunningStatus.ESCALATED.value,
        )


def derive_sequence(
    sequence: DunningSequence,
    today: date,
    thresholds: DunningThresholds = DunningThresholds(),
) -> DunningSequenceRead:
    days = days_since_failure(sequence, today)
    severity = severity_of(days, thresholds)
    return DunningSequenceRead(
        id=sequence.id,
        organization_id=sequence.organization_id,
        organization_name=sequence.organization_name,
        invoice_id=sequence.invoice_id,
        invoice_number=sequence.invoice_number,
        invoice_amount=sequence.invoice_amount,
        status=sequence.status,
        current_step=sequence.current_step,
        total_steps=sequence.total_steps,
        step_progress_percent=step_progress_percent(sequence),
        days_since_failure=days,
        severity=severity,
        severity_tone=dunning_tone(severity),
        actions_enabled=actions_enabled(sequence.status),
        failed_at=sequence.failed_at,
        resolved_at=sequence.resolved_at,
    )


def filter_sequences(
    sequences: Iterable[DunningSequenceRead],
    status: DunningStatus | None = None,
    search: str | None = None,
) -> list[DunningSequenceRead]:
    needle = (search or "").strip().lower()
    results = []
    for sequence in sequences:
        if status is not None and sequence.status != status:
            continue
        if needle and needle not in sequence.organization_name.lower() and needle not in sequence.invoice_number.lower():
            continue
        results.append(sequence)
    return results


def _resolved_in_month(sequence: DunningSequence, today: date) -> bool:
    if sequence.resolved_at is None:
        return False
    resolved = sequence.resolved_at.date()
    return (resolved.year, resolved.month) == (today.year, today.month)


def statistics(sequences: Iterable[DunningSequence], today: date) -> DunningStatisticsRead:
    """Dashboard statistics over the full sequence set, independent of any filter."""
    sequences = list(sequences)
    at_risk = [
        sequence
        for sequence in sequences
        if sequence.status in (DunningStatus.ACTIVE, DunningStatus.ESCALATED)
    ]
    recovered = [
        sequence
        for sequence in sequences
        if sequence.status == DunningStatus.RECOVERED and _resolved_in_month(sequence, today)
    ]
    failed = [
        sequence
        for sequence in sequences
        if sequence.status == DunningStatus.FAILED and _resolved_in_month(sequence, today)
    ]

    average_days: Decimal | None = None
    if recovered:
        total_days = sum(max(0, (item.resolved_at.date() - item.failed_at.date()).days) for item in recovered)
        average_days = (Decimal(total_days) / Decimal(len(recovered))).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)

    return DunningStatisticsRead(
        active_sequences=sum(1 for sequence in sequences if sequence.status == DunningStatus.ACTIVE),
        escalated_count=sum(1 for sequence in sequences if sequence.status == DunningStatus.ESCALATED),
        recovered_this_month=len(recovered),
        failed_this_month=len(failed),
        recovery_rate=ratio(len(recovered), len(recovered) + len(failed)),
        revenue_at_risk=sum_by_currency(sequence.invoice_amount for sequence in at_risk),
        average_recovery_days=average_days,
    )


@dataclass(frozen=True, slots=True)
class DunningBoardState:
    sequences: Mapping[str, DunningSequence] = field(default_factory=lambda: MappingProxyType({}))
    pending: Mapping[str, DunningAction] = field(default_factory=lambda: MappingProxyType({}))
    needs_refetch: bool = False
    last_error: LifecycleError | None = None


@dataclass(frozen=True, slots=True)
class SnapshotLoaded:
    sequences: tuple[DunningSequence, ...]


@dataclass(frozen=True, slots=True)
class SequenceLoaded:
    sequence: DunningSequence


@dataclass(frozen=True, slots=True)
class ActionRequested:
    sequence_id: str
    action: DunningAction


@dataclass(frozen=True, slots=True)
class ActionAcknowledged:
    sequence: DunningSequence


@dataclass(frozen=True, slots=True)
class ActionFailed:
    sequence_id: str
    error: LifecycleError


DunningEvent = Union[SnapshotLoaded, SequenceLoaded, ActionRequested, ActionAcknowledged, ActionFailed]


def _without(mapping: Mapping[str, DunningAction], key: str) -> Mapping[str, DunningAction]:
    return MappingProxyType({k: v for k, v in mapping.items() if k != key})


def reduce(state: DunningBoardState, event: DunningEvent) -> ReduceResult[DunningBoardState]:
    match event:
        case SnapshotLoaded(sequences=sequences):
            return ReduceResult(DunningBoardState(sequences=MappingProxyType({item.id: item for item in sequences})))
        case SequenceLoaded(sequence=sequence):
            return ReduceResult(replace(state, sequences=MappingProxyType({**state.sequences, sequence.id: sequence})))
        case ActionRequested(sequence_id=sequence_id, action=action):
            sequence = state.sequences.get(sequence_id)
            if sequence is None:
                return ReduceResult(state, NotFound(EntityType.DUNNING.value, sequence_id))
            if sequence_id in state.pending:
                return ReduceResult(state, ActionInFlight(EntityType.DUNNING.value, sequence_id))
            try:
                ensure_action_allowed(sequence, action)
            except InvalidTransition as exc:
                return ReduceResult(replace(state, last_error=exc), exc)
            pending = MappingProxyType({**state.pending, sequence_id: action})
            return ReduceResult(replace(state, pending=pending, last_error=None))
        case ActionAcknowledged(sequence=sequence):
            sequences = MappingProxyType({**state.sequences, sequence.id: sequence})
            return ReduceResult(replace(state, sequences=sequences, pending=_without(state.pending, sequence.id)))
        case ActionFailed(sequence_id=sequence_id, error=error):
            needs_refetch = state.needs_refetch or (isinstance(error, Conflict) and error.refetch)
            return ReduceResult(
                replace(state, pending=_without(state.pending, sequence_id), needs_refetch=needs_refetch, last_error=error),
                error,
            )
        case _:
            assert_never(event)
