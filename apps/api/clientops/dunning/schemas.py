from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from clientops.platform.bands import DunningSeverity, Tone
from clientops.platform.money import Money
from clientops.platform.transitions import DunningStatus


class DunningSequence(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    organization_id: str
    organization_name: str = ""
    invoice_id: str
    invoice_number: str = ""
    invoice_amount: Money
    status: DunningStatus
    current_step: int = Field(ge=1)
    total_steps: int = Field(ge=1)
    failed_at: datetime
    resolved_at: datetime | None = None

    @model_validator(mode="after")
    def validate_step_bounds(self) -> DunningSequence:
        if self.current_step > self.total_steps:
            raise ValueError("current_step must not exceed total_steps")
        return self


class DunningSequenceRead(BaseModel):
    id: str
    organization_id: str
    organization_name: str
    invoice_id: str
    invoice_number: str
    invoice_amount: Money
    status: DunningStatus
    current_step: int
    total_steps: int
    step_progress_percent: int
    days_since_failure: int
    severity: DunningSeverity
    severity_tone: Tone
    actions_enabled: bool
    failed_at: datetime
    resolved_at: datetime | None = None


class DunningStatisticsRead(BaseModel):
    active_sequences: int
    escalated_count: int
    recovered_this_month: int
    failed_this_month: int
    recovery_rate: Decimal
    revenue_at_risk: list[Money]
    average_recovery_days: Decimal | None = None


class DunningActionRead(BaseModel):
    action: str
    sequence: DunningSequenceRead
