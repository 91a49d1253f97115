from __future__ import annotations

import math
from dataclasses import dataclass

from app.core.config import (
    COVERAGE_ALERT_MONTHS,
    COVERAGE_SATURATION_MONTHS,
    DEFAULT_DEMAND_FLOOR_KG,
    DEFAULT_SEQUENCE_CAPACITY_KG,
    GROWTH_ALERT_RATIO,
    INSUFFICIENCY_HORIZON_MONTHS,
    PRIORITY_HIGH_THRESHOLD,
    PRIORITY_MEDIUM_THRESHOLD,
    SCORE_WEIGHT_COVERAGE,
    SCORE_WEIGHT_EXCESS_PRODUCTION,
    SCORE_WEIGHT_GROWTH,
    SCORE_WEIGHT_INSUFFICIENCY,
    SCORE_WEIGHT_WEAR,
    UNKNOWN_COVERAGE_MONTHS,
)
from app.schemas.needs import PriorityClass, ScoreSignals, SequenceInsufficiency


REASON_REMAINING_EXHAUSTED = "remaining capacity exhausted"
REASON_LOW_COVERAGE = "coverage <= 1 month"
REASON_EXCEEDED_CAPACITY = "exceeded rated capacity of {capacity_t:g} t"
REASON_GROWING_DEMAND = "growing demand (6m > 12m)"
REASON_INSUFFICIENT_SEQUENCES = "insufficient sequences (required {required}, active {active})"
REASON_DEMAND_FLOOR = "low demand: using floor of {floor:g} kg/month"


@dataclass(frozen=True)
class EffectiveDemand:
    raw_kg: float
    effective_kg: float
    is_estimated: bool


@dataclass(frozen=True)
class SequenceScore:
    signals: ScoreSignals
    score: float
    priority: PriorityClass
    insufficiency: SequenceInsufficiency | None
    reasons: list[str]


def clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def apply_demand_floor(raw_kg: float, floor_kg: float = DEFAULT_DEMAND_FLOOR_KG) -> EffectiveDemand:
    if 0 < raw_kg < floor_kg:
        return EffectiveDemand(raw_kg=raw_kg, effective_kg=floor_kg, is_estimated=True)
    return EffectiveDemand(raw_kg=raw_kg, effective_kg=raw_kg, is_estimated=False)


def required_sequences(
    effective_demand_kg: float,
    capacity_kg: float = DEFAULT_SEQUENCE_CAPACITY_KG,
) -> int:
    """Sequences needed to cover one planning horizon of demand."""

    if effective_demand_kg <= 0 or capacity_kg <= 0:
        return 0
    return math.ceil(effective_demand_kg * INSUFFICIENCY_HORIZON_MONTHS / capacity_kg)


def sequence_insufficiency(
    effective_demand_kg: float,
    active_count: int,
    capacity_kg: float = DEFAULT_SEQUENCE_CAPACITY_KG,
) -> SequenceInsufficiency | None:
    required = required_sequences(effective_demand_kg, capacity_kg)
    if required > active_count:
        return SequenceInsufficiency(required=required, active=active_count)
    return None


def classify_priority(score: float) -> PriorityClass:
    if score >= PRIORITY_HIGH_THRESHOLD:
        return PriorityClass.HIGH
    if score >= PRIORITY_MEDIUM_THRESHOLD:
        return PriorityClass.MEDIUM
    return PriorityClass.LOW


def score_sequence(
    *,
    months_coverage: float | None,
    wear_ratio: float,
    produced_kg: float,
    remaining_kg: float,
    growth_ratio: float | None,
    insufficiency: SequenceInsufficiency | None,
    demand_is_estimated: bool = False,
    capacity_kg: float = DEFAULT_SEQUENCE_CAPACITY_KG,
    demand_floor_kg: float = DEFAULT_DEMAND_FLOOR_KG,
) -> SequenceScore:
    """Composite urgency score in [0, 1] with its priority class and reasons.

    Unknown coverage counts as UNKNOWN_COVERAGE_MONTHS and an unknown growth
    ratio as neutral.
    """

    coverage = months_coverage if months_coverage is not None else UNKNOWN_COVERAGE_MONTHS
    growth = growth_ratio if growth_ratio is not None else 1.0

    s1 = clamp01(1 - min(coverage, COVERAGE_SATURATION_MONTHS) / COVERAGE_SATURATION_MONTHS)
    s2 = clamp01(wear_ratio)
    s3 = 1.0 if produced_kg >= capacity_kg else 0.0
    s4 = clamp01(max(0.0, growth - 1))
    if insufficiency is not None and insufficiency.required > 0:
        s5 = clamp01((insufficiency.required - insufficiency.active) / insufficiency.required)
    else:
        s5 = 0.0

    score = clamp01(
        SCORE_WEIGHT_COVERAGE * s1
        + SCORE_WEIGHT_WEAR * s2
        + SCORE_WEIGHT_EXCESS_PRODUCTION * s3
        + SCORE_WEIGHT_GROWTH * s4
        + SCORE_WEIGHT_INSUFFICIENCY * s5
    )

    reasons: list[str] = []
    if remaining_kg <= 0:
        reasons.append(REASON_REMAINING_EXHAUSTED)
    if months_coverage is not None and months_coverage <= COVERAGE_ALERT_MONTHS:
        reasons.append(REASON_LOW_COVERAGE)
    if produced_kg >= capacity_kg:
        reasons.append(REASON_EXCEEDED_CAPACITY.format(capacity_t=capacity_kg / 1000))
    if growth > GROWTH_ALERT_RATIO:
        reasons.append(REASON_GROWING_DEMAND)
    if insufficiency is not None:
        reasons.append(
            REASON_INSUFFICIENT_SEQUENCES.format(
                required=insufficiency.required,
                active=insufficiency.active,
            )
        )
    if demand_is_estimated:
        reasons.append(REASON_DEMAND_FLOOR.format(floor=demand_floor_kg))

    return SequenceScore(
        signals=ScoreSignals(
            coverage=s1,
            wear=s2,
            excess_production=s3,
            growth=s4,
            insufficiency=s5,
        ),
        score=score,
        priority=classify_priority(score),
        insufficiency=insufficiency,
        reasons=reasons,
    )
