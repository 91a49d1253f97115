from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date

from app.core.config import (
    ABC_A_CUTOFF,
    ABC_B_CUTOFF,
    DEFAULT_ABC_EXCLUDED_PREFIXES,
    GROWTH_NO_BASELINE_RATIO,
)
from app.schemas.capacity import DataQualityIssue, DataQualitySource
from app.schemas.demand import AbcClass, AbcEntry, DemandFeedRow, MonthlyDemandAggregate
from app.services.feeds import normalize_tool_code, parse_number


logger = logging.getLogger(__name__)

SHORT_AVERAGE_MONTHS = 6
LONG_AVERAGE_MONTHS = 12


@dataclass(frozen=True)
class DemandRecord:
    tool_code: str
    client: str | None
    volume_kg: float
    order_date: date


def month_index(day: date) -> int:
    return day.year * 12 + (day.month - 1)


def window_start(period_end: date, window_months: int) -> date:
    """First day of the earliest month in a window of `window_months` calendar
    months ending with the month of `period_end`."""

    idx = month_index(period_end) - (window_months - 1)
    return date(idx // 12, idx % 12 + 1, 1)


def months_spanned(period_start: date, period_end: date) -> int:
    return max(1, month_index(period_end) - month_index(period_start) + 1)


def clean_demand_rows(
    rows: Iterable[DemandFeedRow],
) -> tuple[list[DemandRecord], list[DataQualityIssue]]:
    """Turn feed rows into DemandRecords, dropping and reporting malformed ones."""

    records: list[DemandRecord] = []
    issues: list[DataQualityIssue] = []

    for row in rows:
        tool_code = normalize_tool_code(row.tool_code)
        volume = parse_number(row.volume_kg)

        problem: str | None = None
        if not tool_code:
            problem = "missing tool code"
        elif volume is None:
            problem = f"volume_kg is missing or not numeric ({row.volume_kg!r})"
        elif volume <= 0:
            problem = f"volume_kg must be positive ({volume})"
        elif row.order_date is None:
            problem = "missing order date"

        if problem is not None:
            issues.append(
                DataQualityIssue(
                    source=DataQualitySource.DEMAND,
                    tool_code=tool_code or None,
                    detail=problem,
                )
            )
            continue

        client = row.client.strip() if row.client else None
        records.append(
            DemandRecord(
                tool_code=tool_code,
                client=client or None,
                volume_kg=volume,
                order_date=row.order_date,
            )
        )

    if issues:
        logger.warning("Dropped %s malformed demand records", len(issues))

    return records, issues


def filter_records(
    records: Iterable[DemandRecord],
    tool_filter: str | None = None,
    client_filter: str | None = None,
) -> list[DemandRecord]:
    """Case-insensitive substring filter on tool code and client name."""

    tool_needle = (tool_filter or "").strip().upper()
    client_needle = (client_filter or "").strip().lower()

    result: list[DemandRecord] = []
    for r in records:
        if tool_needle and tool_needle not in r.tool_code:
            continue
        if client_needle and client_needle not in (r.client or "").lower():
            continue
        result.append(r)
    return result


def growth_ratio(avg6m: float, avg12m: float) -> float:
    if avg12m > 0:
        return avg6m / avg12m
    if avg6m > 0:
        return GROWTH_NO_BASELINE_RATIO
    return 1.0


def _trailing_average(
    records: Iterable[DemandRecord],
    period_end: date,
    months: int,
) -> dict[str, float]:
    start = window_start(period_end, months)
    totals: dict[str, float] = defaultdict(float)
    for r in records:
        if start <= r.order_date <= period_end:
            totals[r.tool_code] += r.volume_kg
    return {tool: total / months for tool, total in totals.items()}


def aggregate_demand(
    records: Iterable[DemandRecord],
    period_start: date,
    period_end: date,
    window_months: int | None = None,
) -> dict[str, MonthlyDemandAggregate]:
    """Aggregate demand per tool over [period_start, period_end].

    `records` may extend before `period_start`: the 6 and 12 month trailing
    averages are taken from the same record set, ending at `period_end`.
    Tools are returned in tool code order.
    """

    records = list(records)
    if window_months is None:
        window_months = months_spanned(period_start, period_end)

    totals: dict[str, float] = defaultdict(float)
    counts: dict[str, int] = defaultdict(int)
    clients: dict[str, set[str]] = defaultdict(set)
    last_dates: dict[str, date] = {}

    for r in records:
        if not (period_start <= r.order_date <= period_end):
            continue
        totals[r.tool_code] += r.volume_kg
        counts[r.tool_code] += 1
        if r.client:
            clients[r.tool_code].add(r.client.upper())
        last = last_dates.get(r.tool_code)
        if last is None or r.order_date > last:
            last_dates[r.tool_code] = r.order_date

    avg6m_by_tool = _trailing_average(records, period_end, SHORT_AVERAGE_MONTHS)
    avg12m_by_tool = _trailing_average(records, period_end, LONG_AVERAGE_MONTHS)

    aggregates: dict[str, MonthlyDemandAggregate] = {}
    for tool_code in sorted(totals):
        avg6m = avg6m_by_tool.get(tool_code, 0.0)
        avg12m = avg12m_by_tool.get(tool_code, 0.0)
        total = totals[tool_code]
        aggregates[tool_code] = MonthlyDemandAggregate(
            tool_code=tool_code,
            total_volume_kg=total,
            window_months=window_months,
            monthly_avg_kg=total / window_months,
            avg6m=avg6m,
            avg12m=avg12m,
            growth_ratio=growth_ratio(avg6m, avg12m),
            order_count=counts[tool_code],
            client_count=len(clients[tool_code]),
            last_order_date=last_dates.get(tool_code),
        )

    return aggregates


def classify_abc(
    volumes: Mapping[str, float] | Mapping[str, MonthlyDemandAggregate],
    excluded_prefixes: Iterable[str] = DEFAULT_ABC_EXCLUDED_PREFIXES,
) -> dict[str, AbcEntry]:
    """Pareto classification of tools by volume.

    Tools are ranked by volume descending (ties by tool code) and classed on
    the cumulative share: A up to 80%, B up to 95%, C for the rest. The result
    is ordered by rank. Returns an empty mapping when there is no volume.
    """

    prefixes = tuple(p.upper() for p in excluded_prefixes)

    ranked: list[tuple[str, float]] = []
    for tool_code, value in volumes.items():
        if prefixes and tool_code.upper().startswith(prefixes):
            continue
        volume = value.total_volume_kg if isinstance(value, MonthlyDemandAggregate) else float(value)
        ranked.append((tool_code, volume))

    total = sum(v for _, v in ranked)
    if total <= 0:
        return {}

    ranked.sort(key=lambda item: (-item[1], item[0]))

    result: dict[str, AbcEntry] = {}
    running = 0.0
    for rank, (tool_code, volume) in enumerate(ranked, start=1):
        running += volume
        cumulative = running / total
        if cumulative <= ABC_A_CUTOFF:
            abc_class = AbcClass.A
        elif cumulative <= ABC_B_CUTOFF:
            abc_class = AbcClass.B
        else:
            abc_class = AbcClass.C

        result[tool_code] = AbcEntry(
            rank=rank,
            tool_code=tool_code,
            volume_kg=volume,
            share=volume / total,
            cumulative_share=cumulative,
            abc_class=abc_class,
        )

    return result
