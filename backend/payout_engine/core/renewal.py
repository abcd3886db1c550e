"""
Closing ARR renewal multipliers.

Multi-year renewals earn more Closing ARR credit: the plan carries a small
schedule of disjoint year ranges, each with a multiplier. Tier overlap is
rejected when the schedule is built, so lookup is a plain scan.
"""

import logging
from datetime import date
from typing import Dict, Iterable, List, Sequence, Union

from ...models.payout_schemas import (
    ClosingArrPayoutDetail,
    ClosingArrRecord,
    RenewalMultiplierSchedule,
    RenewalMultiplierTier,
)
from ..utils.money import round_currency

logger = logging.getLogger(__name__)

DEFAULT_RENEWAL_MULTIPLIER = 1.0

TierSource = Union[RenewalMultiplierSchedule, Sequence[RenewalMultiplierTier]]


def _tiers(source: TierSource) -> Sequence[RenewalMultiplierTier]:
    if isinstance(source, RenewalMultiplierSchedule):
        return source.tiers
    return source


def lookup_renewal_multiplier(renewal_years: int, tiers: TierSource) -> float:
    """Multiplier of the tier covering renewal_years, or 1.0 when none does."""
    for tier in _tiers(tiers):
        if tier.covers(renewal_years):
            return tier.multiplier_value
    return DEFAULT_RENEWAL_MULTIPLIER


def calculate_adjusted_arr(closing_arr_usd: float, multiplier: float) -> float:
    return closing_arr_usd * multiplier


def validate_renewal_tiers(tiers: Iterable[RenewalMultiplierTier]) -> RenewalMultiplierSchedule:
    """Build a schedule from loose tiers; raises ValueError if any two overlap."""
    return RenewalMultiplierSchedule(tiers=list(tiers))


def fiscal_year_end(fiscal_year: int) -> date:
    return date(fiscal_year, 12, 31)


def evaluate_closing_arr(
    records: Iterable[ClosingArrRecord],
    schedule: TierSource,
    fiscal_year: int,
) -> List[ClosingArrPayoutDetail]:
    """Per-record Closing ARR payout details for a fiscal year.

    Only contracts ending after the fiscal year end count. Multi-year records
    take the renewal multiplier of their tier; single-year records stay at 1.0.
    """
    year_end = fiscal_year_end(fiscal_year)
    details = []

    for record in records:
        if record.end_date is None:
            exclusion_reason = "No contract end date"
        elif record.end_date <= year_end:
            exclusion_reason = f"Contract ends on or before {year_end.isoformat()}"
        else:
            exclusion_reason = None

        is_eligible = exclusion_reason is None
        multiplier = DEFAULT_RENEWAL_MULTIPLIER
        if record.is_multi_year:
            multiplier = lookup_renewal_multiplier(record.renewal_years, schedule)

        adjusted = calculate_adjusted_arr(record.closing_arr_usd, multiplier) if is_eligible else 0.0

        details.append(ClosingArrPayoutDetail(
            closing_arr_actual_id=record.id,
            pid=record.pid,
            customer_name=record.customer_name,
            month_year=record.month_year,
            end_date=record.end_date,
            is_multi_year=record.is_multi_year,
            renewal_years=record.renewal_years,
            closing_arr_usd=record.closing_arr_usd,
            multiplier=multiplier,
            adjusted_arr_usd=round_currency(adjusted),
            is_eligible=is_eligible,
            exclusion_reason=exclusion_reason,
        ))

    eligible = sum(1 for d in details if d.is_eligible)
    logger.debug(f"Closing ARR FY{fiscal_year}: {eligible} of {len(details)} records eligible")
    return details


def calculate_closing_arr_actual(details: Iterable[ClosingArrPayoutDetail]) -> float:
    """Closing ARR is a point-in-time balance: the eligible adjusted ARR of the latest month."""
    by_month: Dict[str, float] = {}
    for detail in details:
        if detail.is_eligible:
            by_month[detail.month_year] = by_month.get(detail.month_year, 0.0) + detail.adjusted_arr_usd
    if not by_month:
        return 0.0
    return round_currency(by_month[max(by_month)])
