from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class SequenceFeedRow(BaseModel):
    """Per (tool, sequence) production snapshot; numbers may be unparsed."""

    tool_code: str | None
    seq: str | None = None
    active: bool = True
    produced_kg: float | str | None = None
    total_capacity_kg: float | str | None = None


class DataQualitySource(str, Enum):
    SEQUENCES = "sequences"
    DEMAND = "demand"


class DataQualityIssue(BaseModel):
    source: DataQualitySource
    tool_code: str | None = None
    seq: str | None = None
    detail: str
