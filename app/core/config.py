from __future__ import annotations

import os
from dataclasses import dataclass, field


# Rated life of one physical tool sequence, in kg produced.
DEFAULT_SEQUENCE_CAPACITY_KG = 30_000.0

# Monthly demand below this (but above zero) is considered statistically noisy.
DEFAULT_DEMAND_FLOOR_KG = 300.0

DEFAULT_LEAD_TIME_DAYS = 25
DEFAULT_MIN_REPORT_ROWS = 20
DEFAULT_ABC_EXCLUDED_PREFIXES = ("SF",)

# ABC curve breakpoints on cumulative share of volume.
ABC_A_CUTOFF = 0.80
ABC_B_CUTOFF = 0.95

# Growth ratio used when there is recent demand but no 12 month baseline.
GROWTH_NO_BASELINE_RATIO = 1.2
GROWTH_ALERT_RATIO = 1.1

# Months assumed for coverage when it cannot be projected.
UNKNOWN_COVERAGE_MONTHS = 3.0
COVERAGE_SATURATION_MONTHS = 2.0
COVERAGE_ALERT_MONTHS = 1.0

SCORE_WEIGHT_COVERAGE = 0.35
SCORE_WEIGHT_WEAR = 0.25
SCORE_WEIGHT_EXCESS_PRODUCTION = 0.20
SCORE_WEIGHT_GROWTH = 0.10
SCORE_WEIGHT_INSUFFICIENCY = 0.10

PRIORITY_HIGH_THRESHOLD = 0.70
PRIORITY_MEDIUM_THRESHOLD = 0.45

REORDER_HORIZON_DAYS = 30

# Planning horizon for the required-sequences rule.
INSUFFICIENCY_HORIZON_MONTHS = 12

# Upper bound for EOL projection; beyond it dates are not representable.
MAX_PROJECTION_MONTHS = 1200


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _env_prefixes(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None:
        return default
    return tuple(p.strip().upper() for p in raw.split(",") if p.strip())


@dataclass(frozen=True)
class NeedsEngineSettings:
    """Domain assumptions used by the replenishment needs engine."""

    sequence_capacity_kg: float = DEFAULT_SEQUENCE_CAPACITY_KG
    demand_floor_kg: float = DEFAULT_DEMAND_FLOOR_KG
    default_lead_time_days: int = DEFAULT_LEAD_TIME_DAYS
    min_report_rows: int = DEFAULT_MIN_REPORT_ROWS
    abc_excluded_prefixes: tuple[str, ...] = field(
        default_factory=lambda: DEFAULT_ABC_EXCLUDED_PREFIXES
    )


def load_needs_settings() -> NeedsEngineSettings:
    """Build settings from NEEDS_* environment variables, falling back to defaults."""

    return NeedsEngineSettings(
        sequence_capacity_kg=_env_float("NEEDS_SEQUENCE_CAPACITY_KG", DEFAULT_SEQUENCE_CAPACITY_KG),
        demand_floor_kg=_env_float("NEEDS_DEMAND_FLOOR_KG", DEFAULT_DEMAND_FLOOR_KG),
        default_lead_time_days=_env_int("NEEDS_DEFAULT_LEAD_TIME_DAYS", DEFAULT_LEAD_TIME_DAYS),
        min_report_rows=_env_int("NEEDS_MIN_REPORT_ROWS", DEFAULT_MIN_REPORT_ROWS),
        abc_excluded_prefixes=_env_prefixes(
            "NEEDS_ABC_EXCLUDED_PREFIXES", DEFAULT_ABC_EXCLUDED_PREFIXES
        ),
    )
