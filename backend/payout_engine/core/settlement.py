"""
Full & Final (F&F) settlement tranches for departing employees.

Tranche 1 is paid at exit: held year-end reserves are released, earned but
unpaid variable pay / NRR / SPIFF is settled pro-rata, and outstanding
clawbacks are deducted. A shortfall is carried forward to Tranche 2.

Tranche 2 is paid after the collection grace period: collection holdbacks
are released for deals collected in time and forfeited otherwise, and the
carried-forward clawback is recovered from what is released.
"""

import logging
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional

from ...models.payout_schemas import (
    ClawbackLedgerEntry,
    ClawbackStatus,
    DealCollection,
    FnFSettlement,
    FnFSettlementLine,
    HeldPayout,
    SettlementLineType,
    Tranche1Result,
    Tranche2Result,
    TrancheStatus,
)
from ..utils.money import round_currency, sum_currency
from .exceptions import InvalidTransitionError, TrancheNotEligibleError

logger = logging.getLogger(__name__)

TRANCHE_STATUS_ORDER = [
    TrancheStatus.DRAFT,
    TrancheStatus.REVIEW,
    TrancheStatus.APPROVED,
    TrancheStatus.FINALIZED,
    TrancheStatus.PAID,
]

OUTSTANDING_CLAWBACK_STATUSES = (ClawbackStatus.PENDING, ClawbackStatus.PARTIAL)

DAYS_IN_YEAR = 365

SETTLEMENT_PAYOUT_TYPES = {
    SettlementLineType.VP_SETTLEMENT: "Variable Pay",
    SettlementLineType.NRR_SETTLEMENT: "NRR Additional Pay",
    SettlementLineType.SPIFF_SETTLEMENT: "SPIFF",
}


# ---------- Status workflow ----------

def advance_tranche_status(
    current: TrancheStatus,
    eligible_date: Optional[date] = None,
    as_of: Optional[date] = None,
) -> TrancheStatus:
    """Return the status one step after current.

    When an eligibility date is given (Tranche 2), the tranche cannot leave
    draft before that date.
    """
    current = TrancheStatus(current)
    index = TRANCHE_STATUS_ORDER.index(current)
    if index == len(TRANCHE_STATUS_ORDER) - 1:
        raise InvalidTransitionError(current)

    if eligible_date is not None and current == TrancheStatus.DRAFT:
        as_of = as_of or date.today()
        if as_of < eligible_date:
            raise TrancheNotEligibleError(eligible_date, as_of)

    return TRANCHE_STATUS_ORDER[index + 1]


def transition_tranche_status(current: TrancheStatus, target: TrancheStatus) -> TrancheStatus:
    """Validate a requested status change; only the next step is allowed."""
    current, target = TrancheStatus(current), TrancheStatus(target)
    if current == TrancheStatus.PAID:
        raise InvalidTransitionError(current, target)
    expected = advance_tranche_status(current)
    if target != expected:
        raise InvalidTransitionError(current, target)
    return target


# ---------- Helpers ----------

def calculate_tranche2_eligible_date(departure_date: date, grace_days: int) -> date:
    return departure_date + timedelta(days=grace_days)


def calculate_pro_ration_factor(fiscal_year: int, departure_date: date) -> float:
    """Share of the calendar year worked, counting the departure day, clamped to [0, 1]."""
    days_worked = (departure_date - date(fiscal_year, 1, 1)).days + 1
    return min(max(days_worked / DAYS_IN_YEAR, 0.0), 1.0)


def sum_line_totals(lines: Iterable[FnFSettlementLine]) -> float:
    return sum_currency(line.amount_usd for line in lines)


def _line(settlement: FnFSettlement, tranche: int, line_type: SettlementLineType, amount_usd: float,
          **kwargs) -> FnFSettlementLine:
    return FnFSettlementLine(
        settlement_id=settlement.id,
        tranche=tranche,
        line_type=line_type,
        amount_usd=amount_usd,
        **kwargs,
    )


def calculate_prorated_settlement(
    settlement: FnFSettlement,
    line_type: SettlementLineType,
    ytd_amount_usd: float,
    prior_paid_usd: float,
) -> Optional[FnFSettlementLine]:
    """Settle the pro-rated share of a YTD amount that has not been paid yet.

    Returns None when nothing is owed.
    """
    if line_type not in SETTLEMENT_PAYOUT_TYPES:
        raise ValueError(f"{line_type} is not a pro-rated settlement line type")

    factor = calculate_pro_ration_factor(settlement.fiscal_year, settlement.departure_date)
    owed = max(0.0, ytd_amount_usd * factor - prior_paid_usd)
    if owed <= 0:
        return None

    rate = settlement.compensation_exchange_rate or 1.0
    return _line(
        settlement, 1, line_type, round_currency(owed),
        payout_type=SETTLEMENT_PAYOUT_TYPES[line_type],
        amount_local=round_currency(owed * rate),
        local_currency=settlement.local_currency,
        exchange_rate_used=rate,
        notes=(
            f"Pro-rated {SETTLEMENT_PAYOUT_TYPES[line_type]} settlement ({factor * 100:.1f}% of year, "
            f"YTD ${ytd_amount_usd:.2f}, prior paid ${prior_paid_usd:.2f})"
        ),
    )


# ---------- Tranche 1 ----------

def calculate_tranche1(
    settlement: FnFSettlement,
    held_payouts: Iterable[HeldPayout],
    clawbacks: Iterable[ClawbackLedgerEntry],
    earned_settlements: Iterable[FnFSettlementLine] = (),
) -> Tranche1Result:
    lines: List[FnFSettlementLine] = []

    # Year-end reserves of every payout type
    for payout in held_payouts:
        if payout.year_end_amount_usd <= 0:
            continue
        lines.append(_line(
            settlement, 1, SettlementLineType.YEAR_END_RELEASE, payout.year_end_amount_usd,
            payout_type=payout.payout_type,
            amount_local=payout.year_end_amount_local,
            local_currency=payout.local_currency,
            exchange_rate_used=payout.exchange_rate_used,
            deal_id=payout.deal_id,
            source_payout_id=payout.id,
            notes=f"Year-end release for {payout.month_year} ({payout.payout_type})",
        ))

    for earned in earned_settlements:
        if earned.amount_usd > 0:
            lines.append(earned)

    # Deductions are rounded per line; the total is the sum of the lines
    for entry in clawbacks:
        if entry.status not in OUTSTANDING_CLAWBACK_STATUSES:
            continue
        remaining = entry.outstanding_usd
        if remaining <= 0:
            continue
        lines.append(_line(
            settlement, 1, SettlementLineType.CLAWBACK_DEDUCTION, round_currency(-remaining),
            deal_id=entry.deal_id,
            notes=f"Clawback deduction for deal {entry.deal_id}",
        ))

    net = sum_line_totals(lines)
    carryforward = 0.0
    if net < 0:
        carryforward = abs(net)
        lines.append(_line(
            settlement, 1, SettlementLineType.CLAWBACK_CARRYFORWARD, 0.0,
            notes=f"Clawback carry-forward of ${carryforward:.2f} to Tranche 2",
        ))
        logger.info(f"Settlement {settlement.id}: carrying {carryforward:.2f} USD of clawback to Tranche 2")

    return Tranche1Result(lines=lines, total_usd=max(net, 0.0), clawback_carryforward_usd=carryforward)


# ---------- Tranche 2 ----------

def calculate_tranche2(
    settlement: FnFSettlement,
    held_payouts: Iterable[HeldPayout],
    collections: Iterable[DealCollection],
    carryforward_usd: float,
    as_of: date,
) -> Tranche2Result:
    """Release or forfeit collection holdbacks once the grace period has elapsed.

    Raises TrancheNotEligibleError when as_of is before departure + grace days.
    """
    grace_days = settlement.collection_grace_days
    eligible_date = calculate_tranche2_eligible_date(settlement.departure_date, grace_days)
    if as_of < eligible_date:
        raise TrancheNotEligibleError(eligible_date, as_of)

    collection_by_deal: Dict[str, DealCollection] = {c.deal_id: c for c in collections}
    lines: List[FnFSettlementLine] = []

    for payout in held_payouts:
        if payout.collection_amount_usd <= 0 or not payout.deal_id:
            continue
        collection = collection_by_deal.get(payout.deal_id)
        collected_in_time = (
            collection is not None
            and collection.is_collected
            and collection.collection_date is not None
            and collection.collection_date <= eligible_date
        )
        if collected_in_time:
            lines.append(_line(
                settlement, 2, SettlementLineType.COLLECTION_RELEASE, payout.collection_amount_usd,
                payout_type=payout.payout_type,
                amount_local=payout.collection_amount_local,
                local_currency=payout.local_currency,
                exchange_rate_used=payout.exchange_rate_used,
                deal_id=payout.deal_id,
                source_payout_id=payout.id,
                notes=f"Collection released - collected on {collection.collection_date.isoformat()}",
            ))
        else:
            lines.append(_line(
                settlement, 2, SettlementLineType.COLLECTION_FORFEIT, 0.0,
                payout_type=payout.payout_type,
                local_currency=payout.local_currency,
                exchange_rate_used=payout.exchange_rate_used,
                deal_id=payout.deal_id,
                source_payout_id=payout.id,
                notes=f"Collection forfeited - not collected within {grace_days} days of departure",
            ))

    released = sum_line_totals(lines)
    carryforward_usd = round_currency(carryforward_usd)

    if carryforward_usd > 0:
        deduction = min(carryforward_usd, released)
        if deduction > 0:
            lines.append(_line(
                settlement, 2, SettlementLineType.CLAWBACK_DEDUCTION, -deduction,
                notes=(
                    f"Clawback carry-forward deduction from Tranche 1 (${carryforward_usd:.2f} outstanding, "
                    f"${deduction:.2f} recovered)"
                ),
            ))
        written_off = round_currency(carryforward_usd - deduction)
        if written_off > 0:
            lines.append(_line(
                settlement, 2, SettlementLineType.CLAWBACK_WRITEOFF, 0.0,
                notes=f"Unrecovered clawback written off: ${written_off:.2f}",
            ))
            logger.warning(f"Settlement {settlement.id}: writing off {written_off:.2f} USD of unrecovered clawback")

    return Tranche2Result(lines=lines, total_usd=max(sum_line_totals(lines), 0.0), eligible_date=eligible_date)
