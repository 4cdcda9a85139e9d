from clientops.pipeline.engine import (
    BoardState,
    DealAction,
    Transition,
    attempt_transition,
    can_delete,
    pipeline_metrics,
    plan_board_move,
    reduce,
    target_for,
)
from clientops.pipeline.schemas import Deal, PipelineMetricsRead, TransitionRead

__all__ = [
    "BoardState",
    "DealAction",
    "Transition",
    "attempt_transition",
    "can_delete",
    "pipeline_metrics",
    "plan_board_move",
    "reduce",
    "target_for",
    "Deal",
    "PipelineMetricsRead",
    "TransitionRead",
]
