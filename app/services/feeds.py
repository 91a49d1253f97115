from __future__ import annotations

import logging
import math
import re
from datetime import date

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.models import DemandOrder, MatrixSequenceSnapshot
from app.schemas.capacity import SequenceFeedRow
from app.schemas.demand import DemandFeedRow


logger = logging.getLogger(__name__)

_PLAIN_INT = re.compile(r"^[-+]?\d+$")


class DataUnavailableError(Exception):
    """An external feed could not be fetched from the backing store."""

    def __init__(self, feed: str, message: str) -> None:
        super().__init__(f"{feed} feed unavailable: {message}")
        self.feed = feed


def parse_number(value: object) -> float | None:
    """Parse a numeric feed value, accepting pt-BR notation ("1.234,56").

    Returns None for missing, empty or unparsable values and for NaN/inf.
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else None

    text = re.sub(r"\s", "", str(value))
    if not text:
        return None

    if _PLAIN_INT.match(text):
        cleaned = text
    elif "," in text and "." in text:
        if text.rfind(",") > text.rfind("."):
            cleaned = text.replace(".", "").replace(",", ".")
        else:
            cleaned = text.replace(",", "")
    elif "," in text:
        cleaned = text.replace(",", ".", 1)
    else:
        cleaned = text

    try:
        number = float(cleaned)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def normalize_tool_code(raw: str | None) -> str:
    return (raw or "").strip().upper()


def fetch_sequence_feed(
    db: Session,
    tool_filter: str | None = None,
) -> list[SequenceFeedRow]:
    """Read the per-sequence production snapshot."""

    query = db.query(MatrixSequenceSnapshot)
    if tool_filter and tool_filter.strip():
        query = query.filter(MatrixSequenceSnapshot.tool_code.ilike(f"%{tool_filter.strip()}%"))

    try:
        records = query.order_by(MatrixSequenceSnapshot.tool_code, MatrixSequenceSnapshot.seq).all()
    except SQLAlchemyError as exc:
        logger.warning("Sequence feed query failed: %s", exc)
        db.rollback()
        raise DataUnavailableError("sequences", str(exc)) from exc

    return [
        SequenceFeedRow(
            tool_code=r.tool_code,
            seq=r.seq,
            active=bool(r.active),
            produced_kg=r.produced_kg,
            total_capacity_kg=r.total_capacity_kg,
        )
        for r in records
    ]


def fetch_demand_feed(
    db: Session,
    period_start: date,
    period_end: date,
    tool_filter: str | None = None,
    client_filter: str | None = None,
) -> list[DemandFeedRow]:
    """Read order book lines with order_date in [period_start, period_end]."""

    query = db.query(DemandOrder).filter(
        DemandOrder.order_date >= period_start,
        DemandOrder.order_date <= period_end,
    )
    if tool_filter and tool_filter.strip():
        query = query.filter(DemandOrder.tool_code.ilike(f"%{tool_filter.strip()}%"))
    if client_filter and client_filter.strip():
        query = query.filter(DemandOrder.client.ilike(f"%{client_filter.strip()}%"))

    try:
        records = query.order_by(DemandOrder.order_date, DemandOrder.id).all()
    except SQLAlchemyError as exc:
        logger.warning("Demand feed query failed: %s", exc)
        db.rollback()
        raise DataUnavailableError("demand", str(exc)) from exc

    return [
        DemandFeedRow(
            tool_code=r.tool_code,
            client=r.client,
            volume_kg=r.volume_kg,
            order_date=r.order_date,
        )
        for r in records
    ]
