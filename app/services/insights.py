from __future__ import annotations

from collections.abc import Sequence
from datetime import date, timedelta

from app.core.config import GROWTH_ALERT_RATIO, REORDER_HORIZON_DAYS
from app.schemas.needs import NeedsSummary, PriorityClass, SequenceNeedAssessment


INSIGHT_HIGH_PRIORITY = "{count} sequence(s) with high replenishment priority."
INSIGHT_MEDIUM_PRIORITY = "{count} sequence(s) with medium replenishment priority."
INSIGHT_LOW_PRIORITY = "{count} sequence(s) with low replenishment priority."
INSIGHT_INSUFFICIENCY = "{count} tool(s) without enough active sequences to cover annual demand."
INSIGHT_GROWTH = "{count} tool(s) with demand growing faster than the 12 month average."
INSIGHT_REORDER_DUE = "{count} sequence(s) reach their reorder date within the next {days} days."
INSIGHT_REORDER_OVERDUE = "{count} sequence(s) are past their reorder date."
INSIGHT_WORN_OUT = "{count} sequence(s) at or above 100% of rated capacity."


def summarize_assessments(
    rows: Sequence[SequenceNeedAssessment],
    period_end: date,
) -> NeedsSummary:
    if (date.max - period_end).days < REORDER_HORIZON_DAYS:
        horizon_end = date.max
    else:
        horizon_end = period_end + timedelta(days=REORDER_HORIZON_DAYS)

    insufficient_tools = {r.tool_code for r in rows if r.insufficiency is not None}
    growing_tools = {
        r.tool_code
        for r in rows
        if r.growth_ratio is not None and r.growth_ratio > GROWTH_ALERT_RATIO
    }

    return NeedsSummary(
        total_sequences=len(rows),
        high_priority=sum(1 for r in rows if r.priority == PriorityClass.HIGH),
        medium_priority=sum(1 for r in rows if r.priority == PriorityClass.MEDIUM),
        low_priority=sum(1 for r in rows if r.priority == PriorityClass.LOW),
        tools_with_insufficiency=len(insufficient_tools),
        tools_with_growth=len(growing_tools),
        reorders_due_soon=sum(
            1
            for r in rows
            if r.reorder_date is not None and period_end <= r.reorder_date <= horizon_end
        ),
        reorders_overdue=sum(
            1 for r in rows if r.reorder_date is not None and r.reorder_date < period_end
        ),
        worn_out_sequences=sum(1 for r in rows if r.wear_ratio >= 1.0),
    )


def generate_insights(summary: NeedsSummary) -> list[str]:
    """Fixed sentences for every non-zero KPI, in a stable order."""

    templates = [
        (summary.high_priority, INSIGHT_HIGH_PRIORITY),
        (summary.medium_priority, INSIGHT_MEDIUM_PRIORITY),
        (summary.low_priority, INSIGHT_LOW_PRIORITY),
        (summary.tools_with_insufficiency, INSIGHT_INSUFFICIENCY),
        (summary.tools_with_growth, INSIGHT_GROWTH),
        (summary.reorders_due_soon, INSIGHT_REORDER_DUE),
        (summary.reorders_overdue, INSIGHT_REORDER_OVERDUE),
        (summary.worn_out_sequences, INSIGHT_WORN_OUT),
    ]
    return [
        template.format(count=count, days=REORDER_HORIZON_DAYS)
        for count, template in templates
        if count > 0
    ]
