"""Tests for payout engine schemas and money helpers."""
import pytest
from pydantic import ValidationError

from backend.models.payout_schemas import (
    DEFAULT_PAYOUT_SPLIT,
    ClawbackLedgerEntry,
    CompPlan,
    DealForAttribution,
    LogicType,
    MultiplierGridBand,
    PayoutSplit,
    PlanMetric,
    RenewalMultiplierSchedule,
    RenewalMultiplierTier,
)
from backend.payout_engine.utils.money import round_currency, sum_currency


class TestRoundCurrency:
    def test_half_up_on_decimal_representation(self):
        assert round_currency(1.005) == 1.01
        assert round_currency(0.125) == 0.13
        assert round_currency(2.675) == 2.68

    def test_negative_rounds_away_from_zero(self):
        assert round_currency(-1.005) == -1.01

    def test_sum_currency_has_no_float_noise(self):
        assert sum_currency([0.1, 0.2]) == 0.3
        assert sum_currency([]) == 0.0


class TestPayoutSplit:
    def test_default_split(self):
        assert DEFAULT_PAYOUT_SPLIT.booking_pct == 70
        assert DEFAULT_PAYOUT_SPLIT.collection_pct == 25
        assert DEFAULT_PAYOUT_SPLIT.year_end_pct == 5

    def test_must_sum_to_100(self):
        with pytest.raises(ValidationError):
            PayoutSplit(booking_pct=70, collection_pct=20, year_end_pct=5)

    def test_tolerance(self):
        split = PayoutSplit(booking_pct=33.33, collection_pct=33.33, year_end_pct=33.34)
        assert split.year_end_pct == 33.34


class TestPlanMetric:
    def test_grid_is_sorted(self):
        metric = PlanMetric(
            metric_name="New Software Booking ARR",
            weightage_percent=100,
            multiplier_grids=[
                MultiplierGridBand(min_pct=100, max_pct=200, multiplier_value=1.5),
                MultiplierGridBand(min_pct=0, max_pct=100, multiplier_value=1.0),
            ],
        )
        assert [b.min_pct for b in metric.multiplier_grids] == [0, 100]

    def test_overlapping_bands_rejected(self):
        with pytest.raises(ValidationError):
            PlanMetric(
                metric_name="ARR",
                weightage_percent=100,
                multiplier_grids=[
                    {"min_pct": 0, "max_pct": 110, "multiplier_value": 1.0},
                    {"min_pct": 100, "max_pct": 200, "multiplier_value": 1.5},
                ],
            )

    def test_band_max_must_exceed_min(self):
        with pytest.raises(ValidationError):
            MultiplierGridBand(min_pct=100, max_pct=100, multiplier_value=1.0)

    def test_gate_needs_gated_logic(self):
        linear = PlanMetric(metric_name="ARR", weightage_percent=100, gate_threshold_percent=80)
        gated = PlanMetric(
            metric_name="ARR", weightage_percent=100,
            logic_type=LogicType.GATED_THRESHOLD, gate_threshold_percent=80,
        )
        assert not linear.is_gated
        assert gated.is_gated

    def test_effective_split_falls_back_to_default(self):
        metric = PlanMetric(metric_name="ARR", weightage_percent=100)
        assert metric.effective_payout_split == DEFAULT_PAYOUT_SPLIT


class TestCompPlan:
    def test_weightage_must_sum_to_100(self):
        with pytest.raises(ValidationError):
            CompPlan(
                id="p1",
                name="Plan",
                metrics=[
                    PlanMetric(metric_name="A", weightage_percent=60),
                    PlanMetric(metric_name="B", weightage_percent=30),
                ],
            )

    def test_get_metric(self):
        plan = CompPlan(
            id="p1",
            name="Plan",
            metrics=[PlanMetric(metric_name="A", weightage_percent=100)],
        )
        assert plan.get_metric("A").weightage_percent == 100
        assert plan.get_metric("missing") is None


class TestRenewalSchedule:
    def test_overlap_rejected_at_construction(self):
        with pytest.raises(ValueError):
            RenewalMultiplierSchedule(tiers=[
                RenewalMultiplierTier(min_years=1, max_years=3, multiplier_value=1.1),
                RenewalMultiplierTier(min_years=3, max_years=None, multiplier_value=1.2),
            ])

    def test_open_ended_tier_overlaps_later_tier(self):
        with pytest.raises(ValueError):
            RenewalMultiplierSchedule(tiers=[
                RenewalMultiplierTier(min_years=2, multiplier_value=1.1),
                RenewalMultiplierTier(min_years=5, max_years=6, multiplier_value=1.2),
            ])

    def test_max_below_min_rejected(self):
        with pytest.raises(ValidationError):
            RenewalMultiplierTier(min_years=3, max_years=2)


class TestRecords:
    def test_month_year_truncates_date(self):
        deal = DealForAttribution(id="d1", project_id="P1", value_usd=10, month_year="2025-06-01")
        assert deal.month_year == "2025-06"

    def test_bad_month_year(self):
        with pytest.raises(ValidationError):
            DealForAttribution(id="d1", project_id="P1", month_year="June 2025")

    def test_attributable(self):
        assert not DealForAttribution(id="d", project_id="p", month_year="2025-01").is_attributable
        assert not DealForAttribution(id="d", project_id="p", value_usd=0, month_year="2025-01").is_attributable
        assert DealForAttribution(id="d", project_id="p", value_usd=1, month_year="2025-01").is_attributable

    def test_clawback_outstanding(self):
        assert ClawbackLedgerEntry(id="c", employee_id="e", original_amount_usd=300,
                                   recovered_amount_usd=100).outstanding_usd == 200
        assert ClawbackLedgerEntry(id="c", employee_id="e", original_amount_usd=300,
                                   remaining_amount_usd=50).outstanding_usd == 50
