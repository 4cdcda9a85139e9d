from __future__ import annotations

from enum import Enum
from typing import assert_never


class EntityType(str, Enum):
    DEAL = "deal"
    DUNNING = "dunning"


class DealStage(str, Enum):
    LEAD = "LEAD"
    CONTACTED = "CONTACTED"
    DEMO_SCHEDULED = "DEMO_SCHEDULED"
    DEMO_DONE = "DEMO_DONE"
    PROPOSAL_SENT = "PROPOSAL_SENT"
    NEGOTIATION = "NEGOTIATION"
    WON = "WON"
    LOST = "LOST"
    CHURNED = "CHURNED"


class DunningStatus(str, Enum):
    ACTIVE = "ACTIVE"
    ESCALATED = "ESCALATED"
    RECOVERED = "RECOVERED"
    FAILED = "FAILED"


# No reopen: LOST and CHURNED are final, WON only leaves through churn.
VALID_DEAL_TRANSITIONS: dict[DealStage, frozenset[DealStage]] = {
    DealStage.LEAD: frozenset({DealStage.CONTACTED, DealStage.LOST}),
    DealStage.CONTACTED: frozenset({DealStage.DEMO_SCHEDULED, DealStage.PROPOSAL_SENT, DealStage.LOST}),
    DealStage.DEMO_SCHEDULED: frozenset({DealStage.DEMO_DONE, DealStage.LOST}),
    DealStage.DEMO_DONE: frozenset({DealStage.PROPOSAL_SENT, DealStage.LOST}),
    DealStage.PROPOSAL_SENT: frozenset({DealStage.NEGOTIATION, DealStage.LOST}),
    DealStage.NEGOTIATION: frozenset({DealStage.WON, DealStage.LOST}),
    DealStage.WON: frozenset({DealStage.CHURNED}),
    DealStage.LOST: frozenset(),
    DealStage.CHURNED: frozenset(),
}

# Drag-and-drop on the pipeline board only covers the forward moves between these columns.
VALID_BOARD_MOVES: dict[DealStage, frozenset[DealStage]] = {
    DealStage.LEAD: frozenset({DealStage.CONTACTED}),
    DealStage.CONTACTED: frozenset({DealStage.PROPOSAL_SENT}),
    DealStage.PROPOSAL_SENT: frozenset({DealStage.NEGOTIATION}),
}

VALID_DUNNING_TRANSITIONS: dict[DunningStatus, frozenset[DunningStatus]] = {
    DunningStatus.ACTIVE: frozenset({DunningStatus.ESCALATED, DunningStatus.RECOVERED, DunningStatus.FAILED}),
    DunningStatus.ESCALATED: frozenset({DunningStatus.RECOVERED, DunningStatus.FAILED}),
    DunningStatus.RECOVERED: frozenset(),
    DunningStatus.FAILED: frozenset(),
}

DEAL_DELETABLE_STAGES = frozenset({DealStage.LEAD, DealStage.LOST})


def _table(entity: EntityType) -> dict:
    match entity:
        case EntityType.DEAL:
            return VALID_DEAL_TRANSITIONS
        case EntityType.DUNNING:
            return VALID_DUNNING_TRANSITIONS
        case _:
            assert_never(entity)


def legal_targets(entity: EntityType, state: DealStage | DunningStatus) -> frozenset:
    return _table(entity).get(state, frozenset())


def is_legal(entity: EntityType, current: DealStage | DunningStatus, target: DealStage | DunningStatus) -> bool:
    return target in legal_targets(entity, current)


def is_terminal(entity: EntityType, state: DealStage | DunningStatus) -> bool:
    return not legal_targets(entity, state)


def is_board_move(current: DealStage, target: DealStage) -> bool:
    return target in VALID_BOARD_MOVES.get(current, frozenset())


def is_open_stage(stage: DealStage) -> bool:
    match stage:
        case (
            DealStage.LEAD
            | DealStage.CONTACTED
            | DealStage.DEMO_SCHEDULED
            | DealStage.DEMO_DONE
            | DealStage.PROPOSAL_SENT
            | DealStage.NEGOTIATION
        ):
            return True
        case DealStage.WON | DealStage.LOST | DealStage.CHURNED:
            return False
        case _:
            assert_never(stage)
