from clientops.dunning.engine import (
    DunningAction,
    DunningBoardState,
    derive_sequence,
    ensure_action_allowed,
    reduce,
    severity_of,
    statistics,
)
from clientops.dunning.schemas import DunningSequence, DunningSequenceRead, DunningStatisticsRead

__all__ = [
    "DunningAction",
    "DunningBoardState",
    "derive_sequence",
    "ensure_action_allowed",
    "reduce",
    "severity_of",
    "statistics",
    "DunningSequence",
    "DunningSequenceRead",
    "DunningStatisticsRead",
]
