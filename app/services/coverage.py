from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, timedelta

from app.core.config import MAX_PROJECTION_MONTHS


DAYS_PER_APPROX_MONTH = 30


@dataclass(frozen=True)
class CoverageProjection:
    months_coverage: float | None
    eol_date: date | None
    reorder_date: date | None


def _add_calendar_months(base: date, months: int) -> date:
    # A day past the end of the target month rolls into the next month
    # (Jan 31 + 1 month -> Mar 3 in non-leap years).
    idx = base.year * 12 + (base.month - 1) + months
    if idx // 12 > date.max.year:
        return date.max
    first_of_month = date(idx // 12, idx % 12 + 1, 1)
    return first_of_month + timedelta(days=base.day - 1)


def add_approx_months(base: date, months: float) -> date:
    """Advance by whole calendar months, then by round(fraction * 30) days.

    The fractional part is not calendar exact; planning dashboards expect
    this projection. Negative input is treated as 0 and results past
    `date.max` are clamped to it.
    """

    months = min(max(0.0, months), float(MAX_PROJECTION_MONTHS))
    whole = math.floor(months)
    fraction = months - whole

    result = _add_calendar_months(base, whole)
    if fraction > 0:
        days = math.floor(fraction * DAYS_PER_APPROX_MONTH + 0.5)
        if (date.max - result).days < days:
            return date.max
        result += timedelta(days=days)
    return result


def months_of_coverage(remaining_kg: float, monthly_demand_kg: float | None) -> float | None:
    if monthly_demand_kg is None or monthly_demand_kg <= 0:
        return None
    return max(0.0, remaining_kg) / monthly_demand_kg


def project_coverage(
    remaining_kg: float,
    monthly_demand_kg: float | None,
    period_end: date,
    lead_time_days: int,
) -> CoverageProjection:
    """Months of coverage, projected end-of-life and reorder dates for a sequence."""

    months = months_of_coverage(remaining_kg, monthly_demand_kg)
    if months is None:
        return CoverageProjection(months_coverage=None, eol_date=None, reorder_date=None)

    eol_date = add_approx_months(period_end, months)
    lead_time = max(0, lead_time_days)
    if (eol_date - date.min).days < lead_time:
        reorder_date = date.min
    else:
        reorder_date = eol_date - timedelta(days=lead_time)

    return CoverageProjection(months_coverage=months, eol_date=eol_date, reorder_date=reorder_date)
