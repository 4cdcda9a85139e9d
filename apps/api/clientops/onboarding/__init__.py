from clientops.onboarding.engine import derive_status, filter_statuses, overview, progress_percent, triage_order
from clientops.onboarding.schemas import OnboardingOverviewRead, OnboardingStatusRead, OnboardingSummary, StalledFilter

__all__ = [
    "derive_status",
    "filter_statuses",
    "overview",
    "progress_percent",
    "triage_order",
    "OnboardingOverviewRead",
    "OnboardingStatusRead",
    "OnboardingSummary",
    "StalledFilter",
]
