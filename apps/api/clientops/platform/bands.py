"""Threshold bands shared by every dashboard.

Each derived band is a pure, total function of its input so that the phase,
risk or severity of an entity is computed in exactly one place.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import assert_never


class Tone(str, Enum):
    NEUTRAL = "neutral"
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    DANGER = "danger"


class OnboardingPhase(str, Enum):
    GETTING_STARTED = "GETTING_STARTED"
    CORE_SETUP = "CORE_SETUP"
    OPERATIONS = "OPERATIONS"
    COMPLETE = "COMPLETE"


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class StallSeverity(str, Enum):
    NONE = "NONE"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


class DunningSeverity(str, Enum):
    NOTICE = "NOTICE"
    WARNING = "WARNING"
    URGENT = "URGENT"
    CRITICAL = "CRITICAL"


@dataclass(frozen=True, slots=True)
class StallThresholds:
    warning_days: int = 7
    critical_days: int = 14


@dataclass(frozen=True, slots=True)
class DunningThresholds:
    warning_days: int = 3
    urgent_days: int = 7
    critical_days: int = 10


def phase_of(progress_percent: int) -> OnboardingPhase:
    # Upper bounds are inclusive: 30 is still GETTING_STARTED, 31 is CORE_SETUP.
    if progress_percent >= 100:
        return OnboardingPhase.COMPLETE
    if progress_percent > 60:
        return OnboardingPhase.OPERATIONS
    if progress_percent > 30:
        return OnboardingPhase.CORE_SETUP
    return OnboardingPhase.GETTING_STARTED


def risk_level_of(score: int) -> RiskLevel:
    if score >= 80:
        return RiskLevel.LOW
    if score >= 60:
        return RiskLevel.MEDIUM
    if score >= 40:
        return RiskLevel.HIGH
    return RiskLevel.CRITICAL


def stall_severity_of(stalled_days: int, thresholds: StallThresholds = StallThresholds()) -> StallSeverity:
    if stalled_days >= thresholds.critical_days:
        return StallSeverity.CRITICAL
    if stalled_days >= thresholds.warning_days:
        return StallSeverity.WARNING
    return StallSeverity.NONE


def dunning_severity_of(days_since_failure: int, thresholds: DunningThresholds = DunningThresholds()) -> DunningSeverity:
    if days_since_failure >= thresholds.critical_days:
        return DunningSeverity.CRITICAL
    if days_since_failure >= thresholds.urgent_days:
        return DunningSeverity.URGENT
    if days_since_failure >= thresholds.warning_days:
        return DunningSeverity.WARNING
    return DunningSeverity.NOTICE


def is_at_risk(level: RiskLevel) -> bool:
    match level:
        case RiskLevel.HIGH | RiskLevel.CRITICAL:
            return True
        case RiskLevel.LOW | RiskLevel.MEDIUM:
            return False
        case _:
            assert_never(level)


def phase_tone(phase: OnboardingPhase) -> Tone:
    match phase:
        case OnboardingPhase.GETTING_STARTED:
            return Tone.NEUTRAL
        case OnboardingPhase.CORE_SETUP:
            return Tone.INFO
        case OnboardingPhase.OPERATIONS:
            return Tone.WARNING
        case OnboardingPhase.COMPLETE:
            return Tone.SUCCESS
        case _:
            assert_never(phase)


def risk_tone(level: RiskLevel) -> Tone:
    match level:
        case RiskLevel.LOW:
            return Tone.SUCCESS
        case RiskLevel.MEDIUM:
            return Tone.INFO
        case RiskLevel.HIGH:
            return Tone.WARNING
        case RiskLevel.CRITICAL:
            return Tone.DANGER
        case _:
            assert_never(level)


def stall_tone(severity: StallSeverity) -> Tone:
    match severity:
        case StallSeverity.NONE:
            return Tone.NEUTRAL
        case StallSeverity.WARNING:
            return Tone.WARNING
        case StallSeverity.CRITICAL:
            return Tone.DANGER
        case _:
            assert_never(severity)


def dunning_tone(severity: DunningSeverity) -> Tone:
    match severity:
        case DunningSeverity.NOTICE:
            return Tone.INFO
        case DunningSeverity.WARNING:
            return Tone.WARNING
        case DunningSeverity.URGENT | DunningSeverity.CRITICAL:
            return Tone.DANGER
        case _:
            assert_never(severity)


def stall_thresholds_from_settings(settings) -> StallThresholds:  # type: ignore[no-untyped-def]
    return StallThresholds(
        warning_days=settings.onboarding_stall_warning_days,
        critical_days=settings.onboarding_stall_critical_days,
    )


def dunning_thresholds_from_settings(settings) -> DunningThresholds:  # type: ignore[no-untyped-def]
    return DunningThresholds(
        warning_days=settings.dunning_warning_days,
        urgent_days=settings.dunning_urgent_days,
        critical_days=settings.dunning_critical_days,
    )
