from __future__ import annotations

from app.schemas.needs import DistributionMode
from app.services.capacity_tracker import ToolCapacity


def allocation_weights(tool: ToolCapacity, mode: DistributionMode) -> dict[str, float]:
    """Share of the tool's demand carried by each sequence, keyed by seq id.

    Equal mode splits evenly over active sequences (inactive ones get 0).
    Proportional mode weights every sequence by its produced volume and falls
    back to the equal split when the tool has produced nothing.
    """

    if mode == DistributionMode.PROPORTIONAL:
        total_produced = tool.total_produced_kg
        if total_produced > 0:
            return {s.seq: s.produced_kg / total_produced for s in tool.sequences}

    active_count = tool.active_count
    return {
        s.seq: (1.0 / active_count if s.active and active_count > 0 else 0.0)
        for s in tool.sequences
    }


def allocate_demand(
    tool: ToolCapacity,
    monthly_demand_kg: float,
    mode: DistributionMode,
) -> dict[str, float]:
    """Monthly demand (kg) allocated to each sequence of the tool."""

    if monthly_demand_kg <= 0:
        return {s.seq: 0.0 for s in tool.sequences}

    weights = allocation_weights(tool, mode)
    return {seq: monthly_demand_kg * weight for seq, weight in weights.items()}
