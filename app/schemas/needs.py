from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

from app.core.config import DEFAULT_LEAD_TIME_DAYS
from app.schemas.capacity import DataQualityIssue
from app.schemas.demand import AbcClass, AbcEntry


class DistributionMode(str, Enum):
    EQUAL = "equal"
    PROPORTIONAL = "proportional"


class PriorityClass(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class NeedsRunParams(BaseModel):
    period_end: date
    window_months: Literal[3, 6, 12] = 6
    lead_time_days: int = Field(DEFAULT_LEAD_TIME_DAYS, ge=0)
    distribution_mode: DistributionMode = DistributionMode.PROPORTIONAL
    tool_filter: str | None = None
    client_filter: str | None = None


class SequenceInsufficiency(BaseModel):
    required: int
    active: int


class ScoreSignals(BaseModel):
    coverage: float
    wear: float
    excess_production: float
    growth: float
    insufficiency: float


class SequenceNeedAssessment(BaseModel):
    tool_code: str
    seq: str
    active: bool
    active_sequences: int
    abc_class: AbcClass | None = None

    produced_kg: float
    remaining_kg: float
    wear_ratio: float

    raw_monthly_demand_kg: float | None
    tool_monthly_demand_kg: float | None
    demand_is_estimated: bool
    allocation_weight: float | None
    sequence_monthly_demand_kg: float | None

    months_coverage: float | None
    eol_date: date | None
    reorder_date: date | None

    growth_ratio: float | None
    insufficiency: SequenceInsufficiency | None

    signals: ScoreSignals
    score: float
    priority: PriorityClass
    reasons: list[str]


class NeedsSummary(BaseModel):
    total_sequences: int
    high_priority: int
    medium_priority: int
    low_priority: int
    tools_with_insufficiency: int
    tools_with_growth: int
    reorders_due_soon: int
    reorders_overdue: int
    worn_out_sequences: int


class NeedsReport(BaseModel):
    params: NeedsRunParams
    period_start: date
    demand_available: bool
    sequences_available: bool
    rows: list[SequenceNeedAssessment]
    summary: NeedsSummary
    insights: list[str]
    abc: list[AbcEntry]
    data_quality: list[DataQualityIssue]
