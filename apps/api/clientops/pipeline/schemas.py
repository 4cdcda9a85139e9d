from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from clientops.platform.money import Money
from clientops.platform.transitions import DealStage


class Deal(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str = ""
    contact_name: str | None = None
    stage: DealStage
    estimated_value: Money
    expected_close_date: date | None = None
    source: str | None = None
    assignee_id: str | None = None
    lost_reason: str | None = None
    created_at: datetime | None = None
    closed_at: datetime | None = None

    @property
    def days_to_close(self) -> int | None:
        if self.created_at is None or self.closed_at is None:
            return None
        return max(0, (self.closed_at.date() - self.created_at.date()).days)


class StageChangeRequest(BaseModel):
    target: DealStage
    reason: str | None = Field(default=None, max_length=500)


class BoardMoveRequest(BaseModel):
    column: DealStage


class DealActionRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class TransitionRead(BaseModel):
    deal: Deal
    from_stage: DealStage
    to_stage: DealStage
    changed: bool


class StageCountRead(BaseModel):
    stage: DealStage
    count: int


class PipelineMetricsRead(BaseModel):
    total_deals: int
    open_deals: int
    won_deals: int
    lost_deals: int
    churned_deals: int
    conversion_rate: Decimal
    stage_counts: list[StageCountRead]
    open_value: list[Money]
    won_value: list[Money]
    overdue_deal_ids: list[str]
    average_days_to_close: Decimal | None


class BoardCardRead(BaseModel):
    deal: Deal
    pending_target: DealStage | None = None


class BoardColumnRead(BaseModel):
    stage: DealStage
    cards: list[BoardCardRead] = Field(default_factory=list)


class BoardRead(BaseModel):
    columns: list[BoardColumnRead]
    needs_refetch: bool
    last_error: dict[str, Any] | None = None
