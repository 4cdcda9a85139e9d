from __future__ import annotations

from datetime import date

from pydantic import BaseModel

from clientops.dunning.schemas import DunningStatisticsRead
from clientops.health.schemas import HealthPortfolioRead
from clientops.onboarding.schemas import OnboardingOverviewRead
from clientops.pipeline.schemas import PipelineMetricsRead


class DashboardSnapshot(BaseModel):
    as_of: date
    pipeline: PipelineMetricsRead
    onboarding: OnboardingOverviewRead
    dunning: DunningStatisticsRead
    health: HealthPortfolioRead
