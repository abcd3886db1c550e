"""
NRR additional pay on CR/ER and Implementation bookings.

    payout = variable OTE x NRR OTE % x (eligible NRR actuals / NRR target)

Only deals meeting the plan's gross-profit margin minimums count toward
actuals; CR/ER and Implementation each have their own minimum.
"""

import logging
from typing import Iterable, List, Optional

from ...models.payout_schemas import NRRCalculationResult, NRRDeal, NRRDealBreakdown
from ..utils.money import round_currency

logger = logging.getLogger(__name__)


def _meets_margin(gp_margin: Optional[float], minimum: float) -> bool:
    return gp_margin is not None and gp_margin >= minimum


def _format_margin(gp_margin: Optional[float]) -> str:
    return "N/A" if gp_margin is None else f"{gp_margin:g}"


def calculate_nrr_payout(
    deals: Iterable[NRRDeal],
    cr_er_target_usd: float,
    impl_target_usd: float,
    nrr_ote_pct: float,
    variable_ote_usd: float,
    cr_er_min_gp_margin: float,
    impl_min_gp_margin: float,
) -> NRRCalculationResult:
    nrr_target = cr_er_target_usd + impl_target_usd
    if nrr_target == 0 or nrr_ote_pct == 0:
        return NRRCalculationResult(nrr_target=nrr_target)

    eligible_cr_er = total_cr_er = 0.0
    eligible_impl = total_impl = 0.0
    breakdowns: List[NRRDealBreakdown] = []

    for deal in deals:
        cr_er = (deal.cr_usd or 0.0) + (deal.er_usd or 0.0)
        impl = deal.implementation_usd or 0.0
        gp_margin = deal.gp_margin_percent
        if cr_er <= 0 and impl <= 0:
            continue

        eligible_value = 0.0
        reasons = []

        if cr_er > 0:
            total_cr_er += cr_er
            if _meets_margin(gp_margin, cr_er_min_gp_margin):
                eligible_cr_er += cr_er
                eligible_value += cr_er
            else:
                reasons.append(
                    f"GP margin {_format_margin(gp_margin)}% below CR/ER minimum {cr_er_min_gp_margin:g}%"
                )

        if impl > 0:
            total_impl += impl
            if _meets_margin(gp_margin, impl_min_gp_margin):
                eligible_impl += impl
                eligible_value += impl
            else:
                reasons.append(
                    f"GP margin {_format_margin(gp_margin)}% below Implementation minimum {impl_min_gp_margin:g}%"
                )

        is_eligible = eligible_value > 0
        breakdowns.append(NRRDealBreakdown(
            deal_id=deal.id,
            cr_er_usd=cr_er,
            impl_usd=impl,
            gp_margin_pct=gp_margin,
            is_eligible=is_eligible,
            exclusion_reason=None if is_eligible else "; ".join(reasons),
            eligible_value_usd=eligible_value,
        ))

    nrr_actuals = eligible_cr_er + eligible_impl
    achievement_pct = (nrr_actuals / nrr_target) * 100
    payout = variable_ote_usd * (nrr_ote_pct / 100) * (achievement_pct / 100)

    logger.debug(f"NRR actuals {nrr_actuals:.2f} of target {nrr_target:.2f} ({achievement_pct:.2f}%)")

    return NRRCalculationResult(
        eligible_cr_er_usd=eligible_cr_er,
        total_cr_er_usd=total_cr_er,
        eligible_impl_usd=eligible_impl,
        total_impl_usd=total_impl,
        nrr_actuals=nrr_actuals,
        nrr_target=nrr_target,
        achievement_pct=round_currency(achievement_pct),
        payout_usd=round_currency(payout),
        deal_breakdowns=breakdowns,
    )
