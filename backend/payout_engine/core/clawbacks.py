"""
Clawback detection for overdue deal collections.

A deal whose first collection milestone has passed unpaid has the booking
portion of its attributed variable pay clawed back from every employee it was
attributed to. A deal is only ever triggered once.
"""

import logging
from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, List

from ...models.payout_schemas import (
    ClawbackDetectionResult,
    ClawbackLedgerEntry,
    ClawbackStatus,
    DealCollection,
    DealVariablePayAttribution,
)
from ..utils.money import round_currency, sum_currency

logger = logging.getLogger(__name__)


def is_collection_overdue(collection: DealCollection, as_of: date) -> bool:
    """Uncollected, not yet triggered, and past its first milestone due date."""
    return (
        not collection.is_collected
        and not collection.is_clawback_triggered
        and collection.first_milestone_due_date is not None
        and collection.first_milestone_due_date < as_of
    )


def detect_clawbacks(
    collections: Iterable[DealCollection],
    attributions: Iterable[DealVariablePayAttribution],
    as_of: date,
) -> ClawbackDetectionResult:
    """
    Build clawback ledger entries for overdue deal collections.

    Args:
        collections: Collection status of booked deals
        attributions: Stored deal-level variable pay attributions
        as_of: Date the check runs on; a due date strictly before it is overdue

    Returns:
        ClawbackDetectionResult with one pending ledger entry per deal and
        employee, totals per employee, and the deals to mark as triggered.
        Overdue deals without attributions are not triggered.
    """
    by_deal: Dict[str, List[DealVariablePayAttribution]] = defaultdict(list)
    for attribution in attributions:
        by_deal[attribution.deal_id].append(attribution)

    entries: List[ClawbackLedgerEntry] = []
    triggered: List[str] = []
    for collection in collections:
        if not is_collection_overdue(collection, as_of):
            continue
        deal_attributions = by_deal.get(collection.deal_id)
        if not deal_attributions:
            logger.debug(f"Deal {collection.deal_id} is overdue but has no variable pay attributed")
            continue

        booking_by_employee: Dict[str, float] = defaultdict(float)
        for attribution in deal_attributions:
            booking_by_employee[attribution.employee_id] += attribution.payout_on_booking_usd

        for employee_id, amount in booking_by_employee.items():
            amount = round_currency(amount)
            if amount <= 0:
                continue
            entries.append(ClawbackLedgerEntry(
                id=f"clawback-{collection.deal_id}-{employee_id}",
                employee_id=employee_id,
                deal_id=collection.deal_id,
                original_amount_usd=amount,
                status=ClawbackStatus.PENDING,
            ))
        triggered.append(collection.deal_id)
        logger.info(
            f"Clawback triggered for deal {collection.deal_id} ({collection.customer_name or 'Unknown'}): "
            f"first milestone due {collection.first_milestone_due_date.isoformat()}"
        )

    totals: Dict[str, float] = defaultdict(float)
    for entry in entries:
        totals[entry.employee_id] += entry.original_amount_usd

    return ClawbackDetectionResult(
        entries=entries,
        totals_by_employee={k: round_currency(v) for k, v in totals.items()},
        triggered_deal_ids=triggered,
        total_clawbacks_usd=sum_currency(e.original_amount_usd for e in entries),
    )
