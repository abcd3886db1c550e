"""
Plan-based commissions on deal TCV.

Each booking type (Perpetual License, Managed Services, Implementation,
CR/ER) carries its own rate and optional minimum deal size in the plan.
"""

import logging
from typing import Iterable, List, NamedTuple, Optional

from ...models.payout_schemas import (
    DEFAULT_PAYOUT_SPLIT,
    CommissionCalculation,
    EmployeeDeal,
    PayoutSplit,
    PlanCommission,
)
from ..utils.money import round_currency, sum_currency

logger = logging.getLogger(__name__)


class DealCommission(NamedTuple):
    qualifies: bool
    gross: float
    paid: float
    holdback: float
    year_end: float


class CommissionTotals(NamedTuple):
    total_gross: float
    total_paid: float
    total_holdback: float
    total_year_end: float


def calculate_deal_commission(
    tcv_usd: float,
    rate_pct: float,
    min_threshold_usd: Optional[float] = None,
    split: Optional[PayoutSplit] = None,
) -> DealCommission:
    """Gross commission = TCV x rate, split into booking / collection / year-end."""
    qualifies = min_threshold_usd is None or tcv_usd >= min_threshold_usd
    if not qualifies or rate_pct == 0:
        return DealCommission(qualifies, 0.0, 0.0, 0.0, 0.0)

    split = split or DEFAULT_PAYOUT_SPLIT
    gross = tcv_usd * (rate_pct / 100)
    return DealCommission(
        qualifies=qualifies,
        gross=round_currency(gross),
        paid=round_currency(gross * split.booking_pct / 100),
        holdback=round_currency(gross * split.collection_pct / 100),
        year_end=round_currency(gross * split.year_end_pct / 100),
    )


def get_commission_for_type(commissions: Iterable[PlanCommission], commission_type: str) -> Optional[PlanCommission]:
    """First active commission of the given type, if any."""
    for commission in commissions:
        if commission.commission_type == commission_type and commission.is_active:
            return commission
    return None


def calculate_commission_for_deal(
    deal_id: str,
    commission_type: str,
    tcv_usd: float,
    commissions: Iterable[PlanCommission],
) -> Optional[CommissionCalculation]:
    commission = get_commission_for_type(commissions, commission_type)
    if commission is None:
        return None

    result = calculate_deal_commission(
        tcv_usd,
        commission.commission_rate_pct,
        commission.min_threshold_usd,
        commission.effective_payout_split,
    )
    return CommissionCalculation(
        deal_id=deal_id,
        commission_type=commission_type,
        tcv_usd=tcv_usd,
        commission_rate_pct=commission.commission_rate_pct,
        min_threshold_usd=commission.min_threshold_usd,
        qualifies=result.qualifies,
        gross_commission=result.gross,
        paid_amount=result.paid,
        holdback_amount=result.holdback,
        year_end_holdback=result.year_end,
    )


def calculate_total_commission(calculations: Iterable[CommissionCalculation]) -> CommissionTotals:
    calculations = list(calculations)
    return CommissionTotals(
        total_gross=sum_currency(c.gross_commission for c in calculations),
        total_paid=sum_currency(c.paid_amount for c in calculations),
        total_holdback=sum_currency(c.holdback_amount for c in calculations),
        total_year_end=sum_currency(c.year_end_holdback for c in calculations),
    )


def deal_commission_components(deal: EmployeeDeal) -> List[tuple]:
    """(commission_type, tcv_usd) pairs a deal can earn commission on."""
    components = [
        ("Perpetual License", deal.perpetual_license_usd or 0.0),
        ("Managed Services", deal.managed_services_usd or 0.0),
        ("Implementation", deal.implementation_usd or 0.0),
        ("CR/ER", (deal.cr_usd or 0.0) + (deal.er_usd or 0.0)),
    ]
    return [(name, value) for name, value in components if value > 0]


def calculate_deal_commissions(deal: EmployeeDeal, commissions: List[PlanCommission]) -> List[CommissionCalculation]:
    """Commission calculations for every qualifying component of a deal."""
    results = []
    for commission_type, tcv in deal_commission_components(deal):
        calc = calculate_commission_for_deal(deal.id, commission_type, tcv, commissions)
        if calc is None:
            logger.debug(f"Deal {deal.id}: no active '{commission_type}' commission in plan")
            continue
        if calc.qualifies and calc.gross_commission > 0:
            results.append(calc)
    return results
