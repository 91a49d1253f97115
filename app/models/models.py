from __future__ import annotations

from datetime import date

from sqlalchemy import Boolean, Date, Float, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class MatrixSequenceSnapshot(Base):
    """Cumulative production per tool sequence, maintained by the tracking backend."""

    __tablename__ = "matrix_sequence_snapshot"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tool_code: Mapped[str] = mapped_column(String(50), nullable=False)
    seq: Mapped[str | None] = mapped_column(String(20), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    produced_kg: Mapped[float | None] = mapped_column(Float, nullable=True)
    total_capacity_kg: Mapped[float | None] = mapped_column(Float, nullable=True)

    __table_args__ = (
        Index("ix_matrix_sequence_snapshot_tool_code", "tool_code"),
    )


class DemandOrder(Base):
    """Order book line (carteira): one client order of a tool's profile."""

    __tablename__ = "demand_order"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tool_code: Mapped[str] = mapped_column(String(50), nullable=False)
    client: Mapped[str | None] = mapped_column(String(255), nullable=True)
    volume_kg: Mapped[float | None] = mapped_column(Float, nullable=True)
    order_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    __table_args__ = (
        Index("ix_demand_order_order_date", "order_date"),
        Index("ix_demand_order_tool_code", "tool_code"),
    )
