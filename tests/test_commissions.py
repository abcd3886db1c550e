"""Tests for commissions, SPIFFs and NRR additional pay."""
import pytest

from backend.models.payout_schemas import (
    EmployeeDeal,
    NRRDeal,
    PayoutSplit,
    PlanCommission,
    PlanMetric,
    SpiffConfig,
    SpiffDeal,
)
from backend.payout_engine.core.commissions import (
    calculate_commission_for_deal,
    calculate_deal_commission,
    calculate_deal_commissions,
    calculate_total_commission,
    get_commission_for_type,
)
from backend.payout_engine.core.nrr import calculate_nrr_payout
from backend.payout_engine.core.spiff import calculate_all_spiffs, calculate_spiff_payout


@pytest.fixture
def plan_commissions():
    return [
        PlanCommission(commission_type="Perpetual License", commission_rate_pct=4),
        PlanCommission(commission_type="Managed Services", commission_rate_pct=2, min_threshold_usd=50000),
        PlanCommission(commission_type="CR/ER", commission_rate_pct=1.5),
        PlanCommission(commission_type="Implementation", commission_rate_pct=1, is_active=False),
    ]


class TestDealCommission:
    def test_default_split(self):
        result = calculate_deal_commission(100000, 4)
        assert result.qualifies
        assert result.gross == 4000.0
        assert result.paid == 2800.0
        assert result.holdback == 1000.0
        assert result.year_end == 200.0

    def test_custom_split(self):
        result = calculate_deal_commission(100000, 4, None, PayoutSplit(booking_pct=75, collection_pct=25))
        assert (result.paid, result.holdback, result.year_end) == (3000.0, 1000.0, 0.0)

    def test_below_threshold(self):
        result = calculate_deal_commission(100000, 4, 150000)
        assert not result.qualifies
        assert result.gross == 0

    def test_at_threshold_qualifies(self):
        assert calculate_deal_commission(150000, 4, 150000).qualifies

    def test_zero_rate(self):
        result = calculate_deal_commission(100000, 0)
        assert result.qualifies
        assert result.gross == 0


class TestPlanCommissions:
    def test_inactive_type_not_found(self, plan_commissions):
        assert get_commission_for_type(plan_commissions, "Implementation") is None
        assert get_commission_for_type(plan_commissions, "Perpetual License").commission_rate_pct == 4

    def test_commission_for_deal(self, plan_commissions):
        calc = calculate_commission_for_deal("d1", "Perpetual License", 50000, plan_commissions)
        assert calc.gross_commission == 2000.0
        assert calc.year_end_holdback == 100.0

    def test_unknown_type(self, plan_commissions):
        assert calculate_commission_for_deal("d1", "Hardware", 50000, plan_commissions) is None

    def test_deal_components(self, plan_commissions):
        deal = EmployeeDeal(
            id="d1", project_id="P1", month_year="2025-06",
            perpetual_license_usd=100000, managed_services_usd=40000,
            implementation_usd=30000, cr_usd=20000, er_usd=10000,
        )
        calcs = calculate_deal_commissions(deal, plan_commissions)
        assert [c.commission_type for c in calcs] == ["Perpetual License", "CR/ER"]
        assert calcs[1].tcv_usd == 30000
        assert calcs[1].gross_commission == 450.0

        totals = calculate_total_commission(calcs)
        assert totals.total_gross == 4450.0
        assert totals.total_paid == 3115.0
        assert totals.total_holdback == 1112.5
        assert totals.total_year_end == 222.5


class TestSpiff:
    @pytest.fixture
    def spiff(self):
        return SpiffConfig(
            spiff_name="Large Deal SPIFF",
            linked_metric_name="New Software Booking ARR",
            spiff_rate_pct=25,
            min_deal_value_usd=400000,
        )

    @pytest.fixture
    def metrics(self):
        return [
            PlanMetric(metric_name="New Software Booking ARR", weightage_percent=60),
            PlanMetric(metric_name="Closing ARR", weightage_percent=40),
        ]

    def _deal(self, deal_id, arr):
        return SpiffDeal(id=deal_id, project_id=f"P-{deal_id}", new_software_booking_arr_usd=arr)

    def test_eligible_deal(self, spiff, metrics):
        result = calculate_spiff_payout(spiff, [self._deal("a", 500000)], metrics, 20000, 1000000)
        assert result.total_spiff_usd == 1500.0
        assert result.software_variable_ote_usd == 12000.0
        assert result.linked_metric_weightage == 60

    def test_below_minimum(self, spiff, metrics):
        result = calculate_spiff_payout(spiff, [self._deal("a", 350000)], metrics, 20000, 1000000)
        assert result.total_spiff_usd == 0
        breakdown = result.deal_breakdowns[0]
        assert not breakdown.is_eligible
        assert "below minimum" in breakdown.exclusion_reason

    def test_no_minimum(self, metrics):
        spiff = SpiffConfig(spiff_name="S", linked_metric_name="ARR", spiff_rate_pct=25)
        result = calculate_spiff_payout(
            spiff, [self._deal("a", 200000)], [PlanMetric(metric_name="ARR", weightage_percent=100)],
            20000, 1000000,
        )
        assert result.total_spiff_usd == 1000.0

    def test_non_positive_deals_skipped(self, spiff, metrics):
        result = calculate_spiff_payout(spiff, [self._deal("a", None), self._deal("b", 0)], metrics, 20000, 1000000)
        assert result.deal_breakdowns == []

    def test_inactive_or_zero_target(self, spiff, metrics):
        assert calculate_spiff_payout(spiff, [self._deal("a", 500000)], metrics, 20000, 0).total_spiff_usd == 0
        spiff.is_active = False
        assert calculate_spiff_payout(spiff, [self._deal("a", 500000)], metrics, 20000, 1000000).deal_breakdowns == []

    def test_unlinked_metric(self, metrics):
        spiff = SpiffConfig(spiff_name="S", linked_metric_name="Unknown", spiff_rate_pct=25)
        assert calculate_spiff_payout(spiff, [self._deal("a", 500000)], metrics, 20000, 1000000).total_spiff_usd == 0

    def test_all_spiffs(self, spiff, metrics):
        inactive = SpiffConfig(spiff_name="Old", linked_metric_name="Closing ARR", spiff_rate_pct=50, is_active=False)
        deals = [self._deal("a", 500000), self._deal("b", 350000)]
        result = calculate_all_spiffs(
            [spiff, inactive], deals, metrics, 20000, {"New Software Booking ARR": 1000000},
        )
        assert result.total_spiff_usd == 1500.0
        assert len(result.breakdowns) == 2
        assert result.eligible_actuals_usd == 500000
        assert result.software_target_usd == 1000000
        assert result.spiff_rate_pct == 25


class TestNRR:
    def test_margin_filtered_payout(self):
        deals = [
            NRRDeal(id="a", cr_usd=80000, gp_margin_percent=65),
            NRRDeal(id="b", cr_usd=50000, gp_margin_percent=55),
            NRRDeal(id="c", implementation_usd=40000, gp_margin_percent=35),
        ]
        result = calculate_nrr_payout(deals, 200000, 100000, 20, 20000, 60, 30)
        assert result.eligible_cr_er_usd == 80000
        assert result.total_cr_er_usd == 130000
        assert result.eligible_impl_usd == 40000
        assert result.nrr_actuals == 120000
        assert result.nrr_target == 300000
        assert result.achievement_pct == 40.0
        assert result.payout_usd == 1600.0

        excluded = result.deal_breakdowns[1]
        assert not excluded.is_eligible
        assert "CR/ER minimum" in excluded.exclusion_reason

    def test_missing_margin_excluded(self):
        result = calculate_nrr_payout([NRRDeal(id="a", er_usd=10000)], 100000, 0, 20, 20000, 60, 30)
        assert result.nrr_actuals == 0
        assert "N/A" in result.deal_breakdowns[0].exclusion_reason

    def test_partially_eligible_deal(self):
        deal = NRRDeal(id="a", cr_usd=10000, implementation_usd=5000, gp_margin_percent=40)
        result = calculate_nrr_payout([deal], 100000, 100000, 20, 20000, 60, 30)
        breakdown = result.deal_breakdowns[0]
        assert breakdown.is_eligible
        assert breakdown.eligible_value_usd == 5000
        assert breakdown.exclusion_reason is None

    def test_zero_target(self):
        result = calculate_nrr_payout([NRRDeal(id="a", cr_usd=1000, gp_margin_percent=90)], 0, 0, 20, 20000, 60, 30)
        assert result.payout_usd == 0
        assert result.deal_breakdowns == []

    def test_zero_nrr_percent_keeps_target(self):
        result = calculate_nrr_payout([], 100, 50, 0, 20000, 60, 30)
        assert result.nrr_target == 150
        assert result.payout_usd == 0
