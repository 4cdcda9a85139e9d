from __future__ import annotations

from collections.abc import Iterable
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import assert_never

from clientops.platform.bands import (
    OnboardingPhase,
    StallSeverity,
    StallThresholds,
    phase_of,
    phase_tone,
    stall_severity_of,
    stall_tone,
)
from clientops.onboarding.schemas import (
    OnboardingOverviewRead,
    OnboardingStatusRead,
    OnboardingSummary,
    PhaseCountRead,
    StalledFilter,
)


def progress_percent(total_points: int, max_points: int) -> int:
    if max_points <= 0:
        return 0
    # Integer arithmetic: 45 of 150 points is exactly 30, not 30.000000000000004.
    return max(0, min(100, (total_points * 100) // max_points))


def stalled_days(summary: OnboardingSummary, today: date) -> int:
    reference = summary.last_activity_at or summary.started_at
    if reference is None:
        return 0
    return max(0, (today - reference.date()).days)


def derive_status(
    summary: OnboardingSummary,
    today: date,
    thresholds: StallThresholds = StallThresholds(),
) -> OnboardingStatusRead:
    percent = progress_percent(summary.total_points, summary.max_points)
    phase = phase_of(percent)
    days = stalled_days(summary, today)
    severity = stall_severity_of(days, thresholds)
    return OnboardingStatusRead(
        organization_id=summary.organization_id,
        organization_name=summary.organization_name,
        total_points=summary.total_points,
        max_points=summary.max_points,
        progress_percent=percent,
        phase=phase,
        phase_tone=phase_tone(phase),
        stalled_days=days,
        stall_severity=severity,
        stall_tone=stall_tone(severity),
        is_stalled=severity != StallSeverity.NONE,
        last_activity_at=summary.last_activity_at,
    )


def triage_order(statuses: Iterable[OnboardingStatusRead]) -> list[OnboardingStatusRead]:
    """Stalled organizations first, then least progress, then organization id."""
    return sorted(statuses, key=lambda item: (not item.is_stalled, item.progress_percent, item.organization_id))


def _matches_stalled(status: OnboardingStatusRead, stalled: StalledFilter) -> bool:
    match stalled:
        case StalledFilter.ALL:
            return True
        case StalledFilter.STALLED:
            return status.is_stalled
        case StalledFilter.ACTIVE:
            return not status.is_stalled
        case _:
            assert_never(stalled)


def filter_statuses(
    statuses: Iterable[OnboardingStatusRead],
    phase: OnboardingPhase | None = None,
    stalled: StalledFilter = StalledFilter.ALL,
) -> list[OnboardingStatusRead]:
    return [
        status
        for status in statuses
        if (phase is None or status.phase == phase) and _matches_stalled(status, stalled)
    ]


def overview(statuses: Iterable[OnboardingStatusRead]) -> OnboardingOverviewRead:
    statuses = list(statuses)
    phase_counts = {phase: 0 for phase in OnboardingPhase}
    for status in statuses:
        phase_counts[status.phase] += 1

    average = Decimal("0")
    if statuses:
        average = (Decimal(sum(status.progress_percent for status in statuses)) / Decimal(len(statuses))).quantize(
            Decimal("0.1"), rounding=ROUND_HALF_UP
        )

    return OnboardingOverviewRead(
        total=len(statuses),
        stalled_count=sum(1 for status in statuses if status.is_stalled),
        completed_count=phase_counts[OnboardingPhase.COMPLETE],
        average_progress=average,
        phase_counts=[PhaseCountRead(phase=phase, count=count) for phase, count in phase_counts.items()],
    )
