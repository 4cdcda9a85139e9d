from __future__ import annotations

from datetime import datetime
from typing import Annotated
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from clientops.platform.bands import RiskLevel, Tone


class HealthComponent(str, Enum):
    USAGE = "usage"
    PAYMENT = "payment"
    SUBSCRIPTION = "subscription"
    ENGAGEMENT = "engagement"


class Trend(str, Enum):
    IMPROVING = "IMPROVING"
    STABLE = "STABLE"
    DECLINING = "DECLINING"


class ClientHealthSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    organization_id: str
    organization_name: str = ""
    usage_score: int = Field(ge=0, le=100)
    payment_score: int = Field(ge=0, le=100)
    subscription_score: int = Field(ge=0, le=100)
    engagement_score: int | None = Field(default=None, ge=0, le=100)
    # Score as computed by the billing service; used when no weights are configured here.
    overall_score: int = Field(ge=0, le=100)
    previous_score: int | None = Field(default=None, ge=0, le=100)
    # Component scores behind previous_score, when the billing service reports them.
    previous_component_scores: dict[HealthComponent, Annotated[int, Field(ge=0, le=100)]] | None = None
    calculated_at: datetime | None = None


class ClientHealthRead(BaseModel):
    organization_id: str
    organization_name: str
    usage_score: int
    payment_score: int
    subscription_score: int
    engagement_score: int | None = None
    overall_score: int
    risk_level: RiskLevel
    risk_tone: Tone
    trend: Trend
    score_change: int | None = None
    previous_score: int | None = None
    at_risk: bool
    weakest_component: HealthComponent
    strongest_component: HealthComponent


class RiskCountRead(BaseModel):
    risk_level: RiskLevel
    count: int


class HealthPortfolioRead(BaseModel):
    total: int
    average_score: Decimal
    declining_count: int
    risk_counts: list[RiskCountRead]
    at_risk: list[ClientHealthRead]
