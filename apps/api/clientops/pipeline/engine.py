from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from types import MappingProxyType
from typing import Union, assert_never

from clientops.core.errors import ActionInFlight, Conflict, InvalidTransition, LifecycleError, NotFound
from clientops.platform.money import ratio, sum_by_currency
from clientops.platform.store import ReduceResult
from clientops.platform.transitions import (
    DEAL_DELETABLE_STAGES,
    DealStage,
    EntityType,
    is_board_move,
    is_legal,
    is_open_stage,
)
from clientops.pipeline.schemas import Deal, PipelineMetricsRead, StageCountRead


class DealAction(str, Enum):
    QUALIFY = "qualify"
    SCHEDULE_DEMO = "schedule_demo"
    COMPLETE_DEMO = "complete_demo"
    SEND_PROPOSAL = "send_proposal"
    START_NEGOTIATION = "start_negotiation"
    WIN = "win"
    LOSE = "lose"
    CHURN = "churn"


def target_for(action: DealAction) -> DealStage:
    match action:
        case DealAction.QUALIFY:
            return DealStage.CONTACTED
        case DealAction.SCHEDULE_DEMO:
            return DealStage.DEMO_SCHEDULED
        case DealAction.COMPLETE_DEMO:
            return DealStage.DEMO_DONE
        case DealAction.SEND_PROPOSAL:
            return DealStage.PROPOSAL_SENT
        case DealAction.START_NEGOTIATION:
            return DealStage.NEGOTIATION
        case DealAction.WIN:
            return DealStage.WON
        case DealAction.LOSE:
            return DealStage.LOST
        case DealAction.CHURN:
            return DealStage.CHURNED
        case _:
            assert_never(action)


@dataclass(frozen=True, slots=True)
class Transition:
    deal_id: str
    from_stage: DealStage
    to_stage: DealStage

    @property
    def changed(self) -> bool:
        return self.from_stage != self.to_stage


def attempt_transition(deal: Deal, target: DealStage) -> Transition:
    """Validate moving ``deal`` to ``target``.

    Moving to the current stage is a successful no-op. An illegal target
    raises ``InvalidTransition`` and the deal is left untouched.
    """
    if deal.stage == target:
        return Transition(deal_id=deal.id, from_stage=deal.stage, to_stage=target)
    if not is_legal(EntityType.DEAL, deal.stage, target):
        raise InvalidTransition(EntityType.DEAL.value, deal.id, deal.stage.value, target.value)
    return Transition(deal_id=deal.id, from_stage=deal.stage, to_stage=target)


def plan_board_move(deal: Deal, column: DealStage) -> Transition:
    if deal.stage == column:
        return Transition(deal_id=deal.id, from_stage=deal.stage, to_stage=column)
    if not is_board_move(deal.stage, column):
        raise InvalidTransition(
            EntityType.DEAL.value,
            deal.id,
            deal.stage.value,
            column.value,
            reason="not a board move",
        )
    return attempt_transition(deal, column)


def apply_transition(deal: Deal, transition: Transition) -> Deal:
    return deal.model_copy(update={"stage": transition.to_stage})


def can_delete(deal: Deal) -> bool:
    return deal.stage in DEAL_DELETABLE_STAGES


def ensure_deletable(deal: Deal) -> None:
    if not can_delete(deal):
        raise InvalidTransition(
            EntityType.DEAL.value,
            deal.id,
            deal.stage.value,
            "DELETED",
            reason="only LEAD or LOST deals can be deleted",
        )


@dataclass(frozen=True, slots=True)
class BoardState:
    deals: Mapping[str, Deal] = field(default_factory=lambda: MappingProxyType({}))
    pending: Mapping[str, DealStage] = field(default_factory=lambda: MappingProxyType({}))
    needs_refetch: bool = False
    last_error: LifecycleError | None = None


@dataclass(frozen=True, slots=True)
class SnapshotLoaded:
    deals: tuple[Deal, ...]


@dataclass(frozen=True, slots=True)
class DealLoaded:
    deal: Deal


@dataclass(frozen=True, slots=True)
class TransitionRequested:
    deal_id: str
    target: DealStage
    from_board: bool = False


@dataclass(frozen=True, slots=True)
class TransitionAcknowledged:
    deal: Deal


@dataclass(frozen=True, slots=True)
class TransitionFailed:
    deal_id: str
    error: LifecycleError


BoardEvent = Union[SnapshotLoaded, DealLoaded, TransitionRequested, TransitionAcknowledged, TransitionFailed]


def _without(mapping: Mapping[str, DealStage], key: str) -> Mapping[str, DealStage]:
    return MappingProxyType({k: v for k, v in mapping.items() if k != key})


def reduce(state: BoardState, event: BoardEvent) -> ReduceResult[BoardState]:
    """Pure board reducer.

    A requested move only marks the deal as pending; its stage changes when the
    billing/CRM service acknowledges the move.
    """
    match event:
        case SnapshotLoaded(deals=deals):
            return ReduceResult(BoardState(deals=MappingProxyType({deal.id: deal for deal in deals})))
        case DealLoaded(deal=deal):
            return ReduceResult(replace(state, deals=MappingProxyType({**state.deals, deal.id: deal})))
        case TransitionRequested(deal_id=deal_id, target=target, from_board=from_board):
            deal = state.deals.get(deal_id)
            if deal is None:
                return ReduceResult(state, NotFound(EntityType.DEAL.value, deal_id))
            if deal_id in state.pending:
                return ReduceResult(state, ActionInFlight(EntityType.DEAL.value, deal_id))
            try:
                transition = plan_board_move(deal, target) if from_board else attempt_transition(deal, target)
            except InvalidTransition as exc:
                return ReduceResult(replace(state, last_error=exc), exc)
            if not transition.changed:
                return ReduceResult(state)
            pending = MappingProxyType({**state.pending, deal_id: target})
            return ReduceResult(replace(state, pending=pending, last_error=None))
        case TransitionAcknowledged(deal=deal):
            deals = MappingProxyType({**state.deals, deal.id: deal})
            return ReduceResult(replace(state, deals=deals, pending=_without(state.pending, deal.id)))
        case TransitionFailed(deal_id=deal_id, error=error):
            needs_refetch = state.needs_refetch or (isinstance(error, Conflict) and error.refetch)
            return ReduceResult(
                replace(state, pending=_without(state.pending, deal_id), needs_refetch=needs_refetch, last_error=error),
                error,
            )
        case _:
            assert_never(event)


def pipeline_metrics(deals: Iterable[Deal], today: date) -> PipelineMetricsRead:
    deals = list(deals)
    counts = {stage: 0 for stage in DealStage}
    for deal in deals:
        counts[deal.stage] += 1

    open_deals = [deal for deal in deals if is_open_stage(deal.stage)]
    won_deals = [deal for deal in deals if deal.stage == DealStage.WON]
    overdue = [
        deal.id
        for deal in open_deals
        if deal.expected_close_date is not None and deal.expected_close_date < today
    ]

    close_days = [days for days in (deal.days_to_close for deal in won_deals) if days is not None]
    average_days: Decimal | None = None
    if close_days:
        average_days = (Decimal(sum(close_days)) / Decimal(len(close_days))).quantize(
            Decimal("0.1"), rounding=ROUND_HALF_UP
        )

    return PipelineMetricsRead(
        total_deals=len(deals),
        open_deals=len(open_deals),
        won_deals=counts[DealStage.WON],
        lost_deals=counts[DealStage.LOST],
        churned_deals=counts[DealStage.CHURNED],
        conversion_rate=ratio(counts[DealStage.WON], counts[DealStage.WON] + counts[DealStage.LOST]),
        stage_counts=[StageCountRead(stage=stage, count=counts[stage]) for stage in DealStage],
        open_value=sum_by_currency(deal.estimated_value for deal in open_deals),
        won_value=sum_by_currency(deal.estimated_value for deal in won_deals),
        overdue_deal_ids=sorted(overdue),
        average_days_to_close=average_days,
    )


def board_columns(state: BoardState) -> dict[DealStage, list[Deal]]:
    columns: dict[DealStage, list[Deal]] = {stage: [] for stage in DealStage}
    for deal in sorted(state.deals.values(), key=lambda item: item.id):
        columns[deal.stage].append(deal)
    return columns

