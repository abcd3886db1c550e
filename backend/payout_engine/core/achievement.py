"""
Achievement and multiplier resolution for plan metrics.

Every logic type goes through the same grid lookup. A Linear metric is simply
a metric whose grid is a single 1.0x band (or empty); a Stepped_Accelerator
carries discrete bands; a Gated_Threshold metric additionally zeroes the
multiplier at or below its gate.
"""

import logging
from typing import NamedTuple

from ...models.payout_schemas import PlanMetric

logger = logging.getLogger(__name__)

NO_GRID_MULTIPLIER = 1.0


class AchievementResult(NamedTuple):
    achievement_pct: float
    multiplier: float


def calculate_achievement_percent(actual_value: float, target_value: float) -> float:
    """Return actual / target * 100, or 0 when there is no target. Not clamped."""
    if target_value == 0:
        return 0.0
    return (actual_value / target_value) * 100


def calculate_metric_bonus_allocation(total_bonus_usd: float, metric: PlanMetric) -> float:
    """Share of the variable OTE allocated to a metric (OTE x weightage)."""
    return (total_bonus_usd * metric.weightage_percent) / 100


def is_below_gate(achievement_pct: float, metric: PlanMetric) -> bool:
    """True when a gated metric has not strictly exceeded its gate."""
    return metric.is_gated and achievement_pct <= metric.gate_threshold_percent


def get_multiplier_from_grid(achievement_pct: float, metric: PlanMetric) -> float:
    """Look up the payout multiplier for an achievement percentage.

    Bands match on [min_pct, max_pct). Achievement above the top band takes the
    top multiplier, below the lowest band takes the lowest. A metric without a
    grid pays 1.0x.
    """
    if is_below_gate(achievement_pct, metric):
        return 0.0

    bands = metric.multiplier_grids
    if not bands:
        return NO_GRID_MULTIPLIER

    for band in bands:
        if band.min_pct <= achievement_pct < band.max_pct:
            return band.multiplier_value

    if achievement_pct >= bands[-1].max_pct:
        return bands[-1].multiplier_value
    if achievement_pct < bands[0].min_pct:
        return bands[0].multiplier_value

    logger.debug(
        f"Achievement {achievement_pct:.2f}% falls in a gap of the '{metric.metric_name}' grid; using {NO_GRID_MULTIPLIER}"
    )
    return NO_GRID_MULTIPLIER


def resolve_achievement(actual_usd: float, target_usd: float, metric: PlanMetric) -> AchievementResult:
    """Resolve achievement percent and multiplier for a metric.

    A zero target means "no target, no payout": both values are 0.
    """
    if target_usd == 0:
        return AchievementResult(0.0, 0.0)
    achievement_pct = calculate_achievement_percent(actual_usd, target_usd)
    return AchievementResult(achievement_pct, get_multiplier_from_grid(achievement_pct, metric))
