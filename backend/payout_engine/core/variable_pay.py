"""
Variable pay calculations.

Aggregate variable pay for one employee / metric / period, plus plan-level
roll-ups and payout projections used by the simulator screens.
"""

import logging
from typing import Dict, List, NamedTuple, Optional, Sequence

from pydantic import BaseModel

from ...models.payout_schemas import PlanMetric
from .achievement import (
    calculate_achievement_percent,
    calculate_metric_bonus_allocation,
    get_multiplier_from_grid,
    is_below_gate,
    resolve_achievement,
)

logger = logging.getLogger(__name__)

DEFAULT_PROJECTION_LEVELS = (100, 120, 150)


class AggregateVariablePay(NamedTuple):
    achievement_pct: float
    multiplier: float
    total_variable_pay: float


def calculate_aggregate_variable_pay(
    total_actual_usd: float,
    target_usd: float,
    bonus_allocation_usd: float,
    metric: PlanMetric,
) -> AggregateVariablePay:
    """Total variable pay for a metric: achievement% x bonus allocation x multiplier.

    Gated metrics at or below their gate pay nothing. The result is not
    rounded; callers round at their own result boundary.
    """
    achievement_pct, multiplier = resolve_achievement(total_actual_usd, target_usd, metric)
    if target_usd == 0:
        return AggregateVariablePay(0.0, 0.0, 0.0)

    if is_below_gate(achievement_pct, metric):
        logger.debug(
            f"'{metric.metric_name}' achievement {achievement_pct:.2f}% is at or below gate "
            f"{metric.gate_threshold_percent}%; no variable pay"
        )
        return AggregateVariablePay(achievement_pct, multiplier, 0.0)

    total = (achievement_pct / 100) * bonus_allocation_usd * multiplier
    return AggregateVariablePay(achievement_pct, multiplier, total)


class MetricPayoutResult(BaseModel):
    metric_name: str
    target_value: float
    actual_value: float
    achievement_percent: float
    bonus_allocation: float
    multiplier: float
    payout: float
    logic_type: str
    is_gated: bool
    gate_threshold: Optional[float] = None


class MetricActual(BaseModel):
    metric_id: Optional[str] = None
    metric_name: str
    target_value: float = 0.0
    actual_value: float = 0.0


class VariablePayResult(BaseModel):
    user_id: str
    plan_id: str
    plan_name: str
    target_bonus_usd: float
    pro_rated_target_bonus_usd: float
    pro_ration_factor: float
    metric_payouts: List[MetricPayoutResult]
    total_payout_usd: float
    total_payout_local: float
    currency_code: str
    exchange_rate_to_usd: float


class PayoutProjection(BaseModel):
    achievement_level: float
    label: str
    estimated_payout: float
    average_multiplier: float


def calculate_metric_payout_from_plan(
    metric: PlanMetric,
    target_value: float,
    actual_value: float,
    total_bonus_usd: float,
) -> MetricPayoutResult:
    bonus_allocation = calculate_metric_bonus_allocation(total_bonus_usd, metric)
    aggregate = calculate_aggregate_variable_pay(actual_value, target_value, bonus_allocation, metric)
    return MetricPayoutResult(
        metric_name=metric.metric_name,
        target_value=target_value,
        actual_value=actual_value,
        achievement_percent=aggregate.achievement_pct,
        bonus_allocation=bonus_allocation,
        multiplier=aggregate.multiplier,
        payout=aggregate.total_variable_pay,
        logic_type=metric.logic_type.value,
        is_gated=metric.is_gated,
        gate_threshold=metric.gate_threshold_percent,
    )


def calculate_variable_pay_from_plan(
    user_id: str,
    plan_id: str,
    plan_name: str,
    metrics: Sequence[PlanMetric],
    metrics_actuals: Sequence[MetricActual],
    target_bonus_usd: float,
    pro_rated_target_bonus_usd: Optional[float] = None,
    pro_ration_factor: float = 1.0,
    currency_code: str = "USD",
    exchange_rate_to_usd: float = 1.0,
) -> VariablePayResult:
    """Variable pay across every metric of a plan.

    Actuals are matched to metrics by id first, then by name. A metric with no
    actuals is evaluated against a zero target and pays nothing.
    """
    bonus_base = target_bonus_usd if pro_rated_target_bonus_usd is None else pro_rated_target_bonus_usd
    by_id: Dict[str, MetricActual] = {a.metric_id: a for a in metrics_actuals if a.metric_id}
    by_name: Dict[str, MetricActual] = {a.metric_name: a for a in metrics_actuals}

    metric_payouts = []
    for metric in metrics:
        actual = by_id.get(metric.id) if metric.id else None
        actual = actual or by_name.get(metric.metric_name)
        target_value = actual.target_value if actual else 0.0
        actual_value = actual.actual_value if actual else 0.0
        metric_payouts.append(calculate_metric_payout_from_plan(metric, target_value, actual_value, bonus_base))

    total_usd = sum(m.payout for m in metric_payouts)
    total_local = total_usd / exchange_rate_to_usd if exchange_rate_to_usd > 0 else 0.0

    return VariablePayResult(
        user_id=user_id,
        plan_id=plan_id,
        plan_name=plan_name,
        target_bonus_usd=target_bonus_usd,
        pro_rated_target_bonus_usd=bonus_base,
        pro_ration_factor=pro_ration_factor,
        metric_payouts=metric_payouts,
        total_payout_usd=total_usd,
        total_payout_local=total_local,
        currency_code=currency_code,
        exchange_rate_to_usd=exchange_rate_to_usd,
    )


def generate_payout_projections(
    metrics: Sequence[PlanMetric],
    pro_rated_target_bonus_usd: float,
    achievement_levels: Sequence[float] = DEFAULT_PROJECTION_LEVELS,
) -> List[PayoutProjection]:
    """Estimated payout at given achievement levels, applied uniformly to all metrics."""
    projections = []
    for level in achievement_levels:
        total_payout = 0.0
        total_weight = 0.0
        weighted_multiplier_sum = 0.0
        for metric in metrics:
            bonus_allocation = calculate_metric_bonus_allocation(pro_rated_target_bonus_usd, metric)
            multiplier = get_multiplier_from_grid(level, metric)
            if not is_below_gate(level, metric):
                total_payout += (level / 100) * bonus_allocation * multiplier
            total_weight += metric.weightage_percent
            weighted_multiplier_sum += multiplier * metric.weightage_percent

        average_multiplier = weighted_multiplier_sum / total_weight if total_weight > 0 else 1.0
        projections.append(PayoutProjection(
            achievement_level=level,
            label=f"{level:g}%",
            estimated_payout=total_payout,
            average_multiplier=average_multiplier,
        ))
    return projections


__all__ = [
    "AggregateVariablePay",
    "MetricActual",
    "MetricPayoutResult",
    "PayoutProjection",
    "VariablePayResult",
    "calculate_achievement_percent",
    "calculate_aggregate_variable_pay",
    "calculate_metric_payout_from_plan",
    "calculate_variable_pay_from_plan",
    "generate_payout_projections",
]
