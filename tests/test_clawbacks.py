"""Tests for clawback detection on overdue collections."""
from datetime import date

import pytest

from backend.models.payout_schemas import (
    ClawbackStatus,
    DealCollection,
    DealVariablePayAttribution,
    FnFSettlement,
)
from backend.payout_engine.core.clawbacks import detect_clawbacks, is_collection_overdue
from backend.payout_engine.core.settlement import calculate_tranche1

AS_OF = date(2025, 6, 30)


def _attribution(deal_id, employee_id, booking):
    return DealVariablePayAttribution(
        deal_id=deal_id, project_id=f"P-{deal_id}", employee_id=employee_id,
        metric_name="New Software Booking ARR", deal_value_usd=100000, proportion_pct=50,
        variable_pay_split_usd=booking, payout_on_booking_usd=booking,
        payout_on_collection_usd=0, payout_on_year_end_usd=0, clawback_eligible_usd=booking,
    )


def _collection(deal_id, due, **overrides):
    data = dict(deal_id=deal_id, project_id=f"P-{deal_id}", first_milestone_due_date=due)
    data.update(overrides)
    return DealCollection(**data)


@pytest.fixture
def attributions():
    return [
        _attribution("d1", "emp-1", 7000),
        _attribution("d1", "emp-2", 3000),
        _attribution("d2", "emp-1", 500),
        _attribution("d3", "emp-1", 800),
    ]


class TestOverdueRule:
    def test_past_due_and_uncollected(self):
        assert is_collection_overdue(_collection("d1", date(2025, 6, 1)), AS_OF)

    def test_due_today_is_not_overdue(self):
        assert not is_collection_overdue(_collection("d1", AS_OF), AS_OF)

    def test_collected_is_not_overdue(self):
        collection = _collection("d1", date(2025, 6, 1), is_collected=True, collection_date=date(2025, 6, 20))
        assert not is_collection_overdue(collection, AS_OF)

    def test_already_triggered_is_not_overdue(self):
        assert not is_collection_overdue(_collection("d1", date(2025, 6, 1), is_clawback_triggered=True), AS_OF)

    def test_no_due_date(self):
        assert not is_collection_overdue(_collection("d1", None), AS_OF)


class TestDetectClawbacks:
    def test_overdue_deal_claws_back_booking_payouts(self, attributions):
        result = detect_clawbacks([_collection("d1", date(2025, 6, 1))], attributions, AS_OF)
        assert result.triggered_deal_ids == ["d1"]
        assert result.clawback_count == 1
        assert [(e.employee_id, e.original_amount_usd) for e in result.entries] == [("emp-1", 7000.0), ("emp-2", 3000.0)]
        assert all(e.status == ClawbackStatus.PENDING for e in result.entries)
        assert result.entries[0].outstanding_usd == 7000.0
        assert result.total_clawbacks_usd == 10000.0

    def test_totals_by_employee_across_deals(self, attributions):
        collections = [_collection("d1", date(2025, 6, 1)), _collection("d2", date(2025, 5, 1))]
        result = detect_clawbacks(collections, attributions, AS_OF)
        assert result.totals_by_employee == {"emp-1": 7500.0, "emp-2": 3000.0}
        assert result.clawback_count == 2

    def test_already_triggered_and_collected_skipped(self, attributions):
        collections = [
            _collection("d1", date(2025, 6, 1), is_clawback_triggered=True),
            _collection("d2", date(2025, 5, 1), is_collected=True, collection_date=date(2025, 4, 30)),
            _collection("d3", date(2025, 7, 15)),
        ]
        result = detect_clawbacks(collections, attributions, AS_OF)
        assert result.entries == []
        assert result.total_clawbacks_usd == 0.0
        assert result.clawback_count == 0

    def test_overdue_without_attributions_not_triggered(self):
        result = detect_clawbacks([_collection("d9", date(2025, 6, 1))], [], AS_OF)
        assert result.triggered_deal_ids == []

    def test_entries_feed_settlement_deductions(self, attributions):
        result = detect_clawbacks([_collection("d2", date(2025, 5, 1))], attributions, AS_OF)
        fnf = FnFSettlement(id="fnf-1", employee_id="emp-1", departure_date=date(2025, 7, 1), fiscal_year=2025)
        tranche1 = calculate_tranche1(fnf, [], result.entries)
        assert tranche1.clawback_carryforward_usd == 500.0
