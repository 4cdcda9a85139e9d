from clientops.platform.bands import (
    DunningSeverity,
    DunningThresholds,
    OnboardingPhase,
    RiskLevel,
    StallSeverity,
    StallThresholds,
    Tone,
    dunning_severity_of,
    phase_of,
    risk_level_of,
    stall_severity_of,
)
from clientops.platform.batch import BatchResult, SelectionSet, run_batch
from clientops.platform.clock import Clock, FixedClock, SystemClock
from clientops.platform.guards import InFlightRegistry, ViewScope
from clientops.platform.money import Money, sum_by_currency
from clientops.platform.notifications import InMemoryNotificationPort, LoggingNotificationPort, NotificationPort
from clientops.platform.store import ReduceResult, ResultStore
from clientops.platform.transitions import (
    DealStage,
    DunningStatus,
    EntityType,
    is_legal,
    is_terminal,
    legal_targets,
)

__all__ = [
    "DunningSeverity",
    "DunningThresholds",
    "OnboardingPhase",
    "RiskLevel",
    "StallSeverity",
    "StallThresholds",
    "Tone",
    "dunning_severity_of",
    "phase_of",
    "risk_level_of",
    "stall_severity_of",
    "BatchResult",
    "SelectionSet",
    "run_batch",
    "Clock",
    "FixedClock",
    "SystemClock",
    "InFlightRegistry",
    "ViewScope",
    "Money",
    "sum_by_currency",
    "NotificationPort",
    "LoggingNotificationPort",
    "InMemoryNotificationPort",
    "ReduceResult",
    "ResultStore",
    "DealStage",
    "DunningStatus",
    "EntityType",
    "is_legal",
    "is_terminal",
    "legal_targets",
]
