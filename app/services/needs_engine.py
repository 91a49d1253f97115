from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from datetime import date

from sqlalchemy.orm import Session

from app.core.config import NeedsEngineSettings, load_needs_settings
from app.schemas.capacity import SequenceFeedRow
from app.schemas.demand import (
    AbcClass,
    AbcEntry,
    AbcPortfolioItem,
    AbcPortfolioResponse,
    DemandFeedRow,
    MonthlyDemandAggregate,
)
from app.schemas.needs import NeedsReport, NeedsRunParams, SequenceNeedAssessment
from app.services.allocation import allocate_demand, allocation_weights
from app.services.capacity_tracker import ToolCapacity, build_capacity_table
from app.services.coverage import project_coverage
from app.services.demand_aggregator import (
    LONG_AVERAGE_MONTHS,
    aggregate_demand,
    classify_abc,
    clean_demand_rows,
    filter_records,
    window_start,
)
from app.services.feeds import DataUnavailableError, fetch_demand_feed, fetch_sequence_feed
from app.services.insights import generate_insights, summarize_assessments
from app.services.priority_scorer import apply_demand_floor, score_sequence, sequence_insufficiency


logger = logging.getLogger(__name__)


def demand_fetch_window(params: NeedsRunParams) -> tuple[date, date]:
    """Date range of demand needed for a run: the longest trailing average
    window, which always contains the analysis window."""

    months = max(params.window_months, LONG_AVERAGE_MONTHS)
    return window_start(params.period_end, months), params.period_end


def _assess_tool(
    tool: ToolCapacity,
    aggregates: Mapping[str, MonthlyDemandAggregate] | None,
    abc: Mapping[str, AbcEntry],
    params: NeedsRunParams,
    settings: NeedsEngineSettings,
) -> list[SequenceNeedAssessment]:
    demand_known = aggregates is not None
    aggregate = aggregates.get(tool.tool_code) if aggregates is not None else None

    raw_demand: float | None = None
    effective_demand: float | None = None
    growth: float | None = None
    demand_is_estimated = False
    allocations: dict[str, float] = {}
    weights: dict[str, float] = {}
    insufficiency = None

    if demand_known:
        raw_demand = aggregate.monthly_avg_kg if aggregate is not None else 0.0
        growth = aggregate.growth_ratio if aggregate is not None else 1.0

        floored = apply_demand_floor(raw_demand, settings.demand_floor_kg)
        effective_demand = floored.effective_kg
        demand_is_estimated = floored.is_estimated

        weights = allocation_weights(tool, params.distribution_mode)
        allocations = allocate_demand(tool, effective_demand, params.distribution_mode)
        insufficiency = sequence_insufficiency(
            effective_demand,
            tool.active_count,
            settings.sequence_capacity_kg,
        )

    abc_entry = abc.get(tool.tool_code)
    active_count = tool.active_count

    rows: list[SequenceNeedAssessment] = []
    for s in tool.sequences:
        sequence_demand = allocations.get(s.seq) if demand_known else None
        projection = project_coverage(
            remaining_kg=s.remaining_kg,
            monthly_demand_kg=sequence_demand,
            period_end=params.period_end,
            lead_time_days=params.lead_time_days,
        )
        scored = score_sequence(
            months_coverage=projection.months_coverage,
            wear_ratio=s.wear_ratio,
            produced_kg=s.produced_kg,
            remaining_kg=s.remaining_kg,
            growth_ratio=growth,
            insufficiency=insufficiency,
            demand_is_estimated=demand_is_estimated,
            capacity_kg=settings.sequence_capacity_kg,
            demand_floor_kg=settings.demand_floor_kg,
        )

        rows.append(
            SequenceNeedAssessment(
                tool_code=tool.tool_code,
                seq=s.seq,
                active=s.active,
                active_sequences=active_count,
                abc_class=abc_entry.abc_class if abc_entry is not None else None,
                produced_kg=s.produced_kg,
                remaining_kg=s.remaining_kg,
                wear_ratio=s.wear_ratio,
                raw_monthly_demand_kg=raw_demand,
                tool_monthly_demand_kg=effective_demand,
                demand_is_estimated=demand_is_estimated,
                allocation_weight=weights.get(s.seq) if demand_known else None,
                sequence_monthly_demand_kg=sequence_demand,
                months_coverage=projection.months_coverage,
                eol_date=projection.eol_date,
                reorder_date=projection.reorder_date,
                growth_ratio=growth,
                insufficiency=scored.insufficiency,
                signals=scored.signals,
                score=scored.score,
                priority=scored.priority,
                reasons=scored.reasons,
            )
        )

    return rows


def compute_needs_report(
    sequence_rows: Sequence[SequenceFeedRow] | None,
    demand_rows: Sequence[DemandFeedRow] | None,
    params: NeedsRunParams,
    settings: NeedsEngineSettings | None = None,
    limit: int | None = None,
) -> NeedsReport:
    """Run the needs pipeline over feed snapshots.

    A feed passed as None is treated as unavailable: the report is still
    built, with the fields depending on it left null. When both are None
    DataUnavailableError is raised. Rows are ranked by score descending
    (ties by tool and sequence); `limit` trims them but never below
    settings.min_report_rows. Summary and insights cover every row.
    """

    if sequence_rows is None and demand_rows is None:
        raise DataUnavailableError("sequences and demand", "no input feed could be fetched")

    settings = settings or load_needs_settings()
    period_start = window_start(params.period_end, params.window_months)

    capacity = build_capacity_table(sequence_rows or [], settings.sequence_capacity_kg)
    issues = list(capacity.issues)

    aggregates: dict[str, MonthlyDemandAggregate] | None = None
    abc: dict[str, AbcEntry] = {}
    if demand_rows is not None:
        records, demand_issues = clean_demand_rows(demand_rows)
        issues.extend(demand_issues)
        records = filter_records(records, params.tool_filter, params.client_filter)
        aggregates = aggregate_demand(
            records,
            period_start=period_start,
            period_end=params.period_end,
            window_months=params.window_months,
        )
        abc = classify_abc(aggregates, settings.abc_excluded_prefixes)

    tool_needle = (params.tool_filter or "").strip().upper()

    rows: list[SequenceNeedAssessment] = []
    for tool_code, tool in capacity.tools().items():
        if tool_needle and tool_needle not in tool_code:
            continue
        rows.extend(_assess_tool(tool, aggregates, abc, params, settings))

    rows.sort(key=lambda r: (-r.score, r.tool_code, r.seq))

    summary = summarize_assessments(rows, params.period_end)
    insights = generate_insights(summary)

    if limit is not None:
        rows = rows[: max(limit, settings.min_report_rows)]

    return NeedsReport(
        params=params,
        period_start=period_start,
        demand_available=demand_rows is not None,
        sequences_available=sequence_rows is not None,
        rows=rows,
        summary=summary,
        insights=insights,
        abc=list(abc.values()),
        data_quality=issues,
    )


def build_needs_report(
    db: Session,
    params: NeedsRunParams,
    settings: NeedsEngineSettings | None = None,
    limit: int | None = None,
) -> NeedsReport:
    """Fetch both feeds from the store and run the pipeline.

    A feed that fails to load degrades the report instead of aborting it.
    """

    sequence_rows: list[SequenceFeedRow] | None
    demand_rows: list[DemandFeedRow] | None

    try:
        sequence_rows = fetch_sequence_feed(db, tool_filter=params.tool_filter)
    except DataUnavailableError as exc:
        logger.warning("Building needs report without sequence data: %s", exc)
        sequence_rows = None

    fetch_start, fetch_end = demand_fetch_window(params)
    try:
        demand_rows = fetch_demand_feed(
            db,
            period_start=fetch_start,
            period_end=fetch_end,
            tool_filter=params.tool_filter,
            client_filter=params.client_filter,
        )
    except DataUnavailableError as exc:
        logger.warning("Building needs report without demand data: %s", exc)
        demand_rows = None

    report = compute_needs_report(sequence_rows, demand_rows, params, settings=settings, limit=limit)
    logger.info(
        "Needs report for period_end=%s window=%s: %s sequences, %s high priority",
        params.period_end,
        params.window_months,
        report.summary.total_sequences,
        report.summary.high_priority,
    )
    return report


def build_abc_portfolio(
    db: Session,
    period_start: date,
    period_end: date,
    tool_filter: str | None = None,
    client_filter: str | None = None,
    abc_class: AbcClass | None = None,
    settings: NeedsEngineSettings | None = None,
) -> AbcPortfolioResponse:
    """ABC curve of tools by ordered volume within [period_start, period_end].

    `abc_class` restricts the items to one class; ranks, shares and the total
    still refer to the whole curve.
    """

    settings = settings or load_needs_settings()

    fetch_start = min(period_start, window_start(period_end, LONG_AVERAGE_MONTHS))
    rows = fetch_demand_feed(
        db,
        period_start=fetch_start,
        period_end=period_end,
        tool_filter=tool_filter,
        client_filter=client_filter,
    )
    records, _ = clean_demand_rows(rows)
    aggregates = aggregate_demand(records, period_start=period_start, period_end=period_end)
    abc = classify_abc(aggregates, settings.abc_excluded_prefixes)

    items = [
        AbcPortfolioItem(
            **entry.model_dump(),
            avg6m=aggregates[tool_code].avg6m,
            avg12m=aggregates[tool_code].avg12m,
            order_count=aggregates[tool_code].order_count,
            client_count=aggregates[tool_code].client_count,
            last_order_date=aggregates[tool_code].last_order_date,
        )
        for tool_code, entry in abc.items()
        if abc_class is None or entry.abc_class == abc_class
    ]

    return AbcPortfolioResponse(
        period_start=period_start,
        period_end=period_end,
        total_volume_kg=sum(entry.volume_kg for entry in abc.values()),
        items=items,
    )
