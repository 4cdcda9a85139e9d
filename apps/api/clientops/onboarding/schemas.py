from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from clientops.platform.bands import OnboardingPhase, StallSeverity, Tone


class StalledFilter(str, Enum):
    ALL = "ALL"
    STALLED = "STALLED"
    ACTIVE = "ACTIVE"


class OnboardingSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    organization_id: str
    organization_name: str = ""
    total_points: int = Field(ge=0)
    max_points: int
    last_activity_at: datetime | None = None
    started_at: datetime | None = None


class OnboardingStatusRead(BaseModel):
    organization_id: str
    organization_name: str
    total_points: int
    max_points: int
    progress_percent: int = Field(ge=0, le=100)
    phase: OnboardingPhase
    phase_tone: Tone
    stalled_days: int = Field(ge=0)
    stall_severity: StallSeverity
    stall_tone: Tone
    is_stalled: bool
    last_activity_at: datetime | None = None


class PhaseCountRead(BaseModel):
    phase: OnboardingPhase
    count: int


class OnboardingOverviewRead(BaseModel):
    total: int
    stalled_count: int
    completed_count: int
    average_progress: Decimal
    phase_counts: list[PhaseCountRead]


class BulkActionRequest(BaseModel):
    organization_ids: list[str] = Field(default_factory=list)
    select_all: bool = False
    phase: OnboardingPhase | None = None
    stalled: StalledFilter = StalledFilter.ALL

    @model_validator(mode="after")
    def validate_selection(self) -> BulkActionRequest:
        if not self.select_all and not self.organization_ids:
            raise ValueError("organization_ids is required unless select_all is set")
        return self


class BatchItemErrorRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    item_id: str
    code: str
    message: str


class BatchResultRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    action: str
    succeeded: list[str]
    failed: list[str]
    errors: list[BatchItemErrorRead] = Field(default_factory=list)
    total: int


class OnboardingExportRead(BaseModel):
    rows: list[OnboardingStatusRead]
    result: BatchResultRead
