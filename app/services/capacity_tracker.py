from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from app.core.config import DEFAULT_SEQUENCE_CAPACITY_KG
from app.schemas.capacity import DataQualityIssue, DataQualitySource, SequenceFeedRow
from app.services.feeds import normalize_tool_code, parse_number


logger = logging.getLogger(__name__)

UNNAMED_SEQUENCE = "-"


@dataclass(frozen=True)
class SequenceCapacity:
    tool_code: str
    seq: str
    active: bool
    produced_kg: float
    total_capacity_kg: float

    @property
    def wear_ratio(self) -> float:
        return wear_ratio(self.produced_kg, self.total_capacity_kg)

    @property
    def remaining_kg(self) -> float:
        return remaining_kg(self.produced_kg, self.total_capacity_kg)


@dataclass
class ToolCapacity:
    tool_code: str
    sequences: list[SequenceCapacity] = field(default_factory=list)

    @property
    def active_count(self) -> int:
        return sum(1 for s in self.sequences if s.active)

    @property
    def total_produced_kg(self) -> float:
        return sum(s.produced_kg for s in self.sequences)


@dataclass
class CapacityTable:
    """Sequences indexed by (tool_code, seq), built once and read downstream."""

    index: dict[tuple[str, str], SequenceCapacity] = field(default_factory=dict)
    issues: list[DataQualityIssue] = field(default_factory=list)

    def tools(self) -> dict[str, ToolCapacity]:
        return group_by_tool(self.index.values())

    def get(self, tool_code: str, seq: str) -> SequenceCapacity | None:
        return self.index.get((tool_code, seq))

    def __len__(self) -> int:
        return len(self.index)


def wear_ratio(produced_kg: float, total_capacity_kg: float) -> float:
    if total_capacity_kg <= 0:
        return 0.0
    return produced_kg / total_capacity_kg


def remaining_kg(produced_kg: float, total_capacity_kg: float) -> float:
    return max(0.0, total_capacity_kg - produced_kg)


def group_by_tool(sequences: Iterable[SequenceCapacity]) -> dict[str, ToolCapacity]:
    """Group sequences per tool, ordered by tool code then sequence id."""

    grouped: dict[str, ToolCapacity] = {}
    for s in sorted(sequences, key=lambda s: (s.tool_code, s.seq)):
        tool = grouped.get(s.tool_code)
        if tool is None:
            tool = grouped[s.tool_code] = ToolCapacity(tool_code=s.tool_code)
        tool.sequences.append(s)
    return grouped


def build_capacity_table(
    rows: Iterable[SequenceFeedRow],
    rated_capacity_kg: float = DEFAULT_SEQUENCE_CAPACITY_KG,
) -> CapacityTable:
    """Validate sequence snapshots and index them by (tool_code, seq).

    Rows without a tool code or with a missing/non-numeric produced_kg are
    excluded and reported. Every sequence is rated at `rated_capacity_kg`; a
    feed capacity that disagrees with it is reported and ignored. Negative
    production is clamped to 0 and reported.
    Duplicate keys keep the row with the larger cumulative production.
    """

    table = CapacityTable()

    for row in rows:
        tool_code = normalize_tool_code(row.tool_code)
        seq = (row.seq or "").strip() or UNNAMED_SEQUENCE

        if not tool_code:
            table.issues.append(
                DataQualityIssue(source=DataQualitySource.SEQUENCES, seq=seq, detail="missing tool code")
            )
            continue

        produced = parse_number(row.produced_kg)
        if produced is None:
            table.issues.append(
                DataQualityIssue(
                    source=DataQualitySource.SEQUENCES,
                    tool_code=tool_code,
                    seq=seq,
                    detail=f"produced_kg is missing or not numeric ({row.produced_kg!r})",
                )
            )
            continue

        if produced < 0:
            table.issues.append(
                DataQualityIssue(
                    source=DataQualitySource.SEQUENCES,
                    tool_code=tool_code,
                    seq=seq,
                    detail=f"negative produced_kg ({produced}) clamped to 0",
                )
            )
            produced = 0.0

        feed_capacity = parse_number(row.total_capacity_kg)
        if feed_capacity is not None and feed_capacity > 0 and feed_capacity != rated_capacity_kg:
            table.issues.append(
                DataQualityIssue(
                    source=DataQualitySource.SEQUENCES,
                    tool_code=tool_code,
                    seq=seq,
                    detail=(
                        f"total_capacity_kg ({feed_capacity:g}) differs from rated capacity "
                        f"({rated_capacity_kg:g}); using rated capacity"
                    ),
                )
            )

        entry = SequenceCapacity(
            tool_code=tool_code,
            seq=seq,
            active=bool(row.active),
            produced_kg=produced,
            total_capacity_kg=rated_capacity_kg,
        )

        key = (tool_code, seq)
        existing = table.index.get(key)
        if existing is not None:
            table.issues.append(
                DataQualityIssue(
                    source=DataQualitySource.SEQUENCES,
                    tool_code=tool_code,
                    seq=seq,
                    detail="duplicate sequence row; keeping the larger produced_kg",
                )
            )
            if existing.produced_kg >= entry.produced_kg:
                continue

        table.index[key] = entry

    if table.issues:
        logger.warning("Sequence feed has %s data quality issues", len(table.issues))

    return table
