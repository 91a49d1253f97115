from __future__ import annotations

from datetime import date
from enum import Enum

from pydantic import BaseModel


class DemandFeedRow(BaseModel):
    """Raw order book row as delivered by the backend; numbers may be unparsed."""

    tool_code: str | None
    client: str | None = None
    volume_kg: float | str | None = None
    order_date: date | None = None


class MonthlyDemandAggregate(BaseModel):
    tool_code: str
    total_volume_kg: float
    window_months: int
    monthly_avg_kg: float
    avg6m: float
    avg12m: float
    growth_ratio: float
    order_count: int
    client_count: int
    last_order_date: date | None = None


class AbcClass(str, Enum):
    A = "A"
    B = "B"
    C = "C"


class AbcEntry(BaseModel):
    rank: int
    tool_code: str
    volume_kg: float
    share: float
    cumulative_share: float
    abc_class: AbcClass


class AbcPortfolioItem(AbcEntry):
    avg6m: float
    avg12m: float
    order_count: int
    client_count: int
    last_order_date: date | None = None


class AbcPortfolioResponse(BaseModel):
    period_start: date
    period_end: date
    total_volume_kg: float
    items: list[AbcPortfolioItem]
