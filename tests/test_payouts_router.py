"""API tests for the payouts router."""
import pytest
import yaml
from fastapi.testclient import TestClient

from app.main import app
from backend.payout_engine.config.config_manager import ConfigManager

STEPPED_METRIC = {
    "metric_name": "New Software Booking ARR",
    "weightage_percent": 100,
    "logic_type": "Stepped_Accelerator",
    "multiplier_grids": [
        {"min_pct": 0, "max_pct": 100, "multiplier_value": 1.0},
        {"min_pct": 100, "max_pct": 150, "multiplier_value": 1.2},
    ],
}

SETTLEMENT = {"id": "fnf-1", "employee_id": "emp-1", "departure_date": "2025-01-15", "fiscal_year": 2025}


@pytest.fixture
def client():
    return TestClient(app)


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


class TestVariablePayEndpoints:
    def test_aggregate(self, client):
        response = client.post("/v1/payouts/aggregate", json={
            "metric": STEPPED_METRIC,
            "total_actual_usd": 120000,
            "target_usd": 100000,
            "bonus_allocation_usd": 20000,
        })
        assert response.status_code == 200
        assert response.json() == {"achievement_pct": 120.0, "multiplier": 1.2, "total_variable_pay_usd": 28800.0}

    def test_attribution(self, client):
        response = client.post("/v1/payouts/attribution", json={
            "employee_id": "emp-1",
            "metric": STEPPED_METRIC,
            "target_usd": 100000,
            "bonus_allocation_usd": 20000,
            "fiscal_year": 2025,
            "calculation_month": "2025-06",
            "deals": [
                {"id": "d1", "project_id": "P1", "value_usd": 72000, "month_year": "2025-03"},
                {"id": "d2", "project_id": "P2", "value_usd": 48000, "month_year": "2025-05"},
            ],
        })
        assert response.status_code == 200
        body = response.json()
        assert [a["variable_pay_split_usd"] for a in body["attributions"]] == [17280.0, 11520.0]
        assert body["context"]["total_variable_pay_usd"] == 28800.0
        assert body["summary"]["total_deals"] == 2

    def test_invalid_metric_rejected(self, client):
        metric = dict(STEPPED_METRIC, weightage_percent=120)
        response = client.post("/v1/payouts/aggregate", json={
            "metric": metric, "total_actual_usd": 1, "target_usd": 1, "bonus_allocation_usd": 1,
        })
        assert response.status_code == 422


class TestRenewalEndpoints:
    def test_lookup(self, client):
        response = client.post("/v1/payouts/renewal-multiplier", json={
            "renewal_years": 3,
            "tiers": [{"min_years": 1, "max_years": 2, "multiplier_value": 1.1}, {"min_years": 3, "multiplier_value": 1.3}],
        })
        assert response.status_code == 200
        assert response.json()["multiplier"] == 1.3

    def test_overlapping_tiers(self, client):
        response = client.post("/v1/payouts/renewal-multiplier", json={
            "renewal_years": 2,
            "tiers": [{"min_years": 1, "max_years": 3}, {"min_years": 2, "max_years": 4}],
        })
        assert response.status_code == 400

    def test_closing_arr(self, client):
        response = client.post("/v1/payouts/closing-arr", json={
            "fiscal_year": 2025,
            "tiers": [{"min_years": 2, "multiplier_value": 1.5}],
            "records": [
                {"id": "a", "pid": "PID-a", "month_year": "2025-06", "end_date": "2027-06-30",
                 "is_multi_year": True, "renewal_years": 2, "closing_arr_usd": 100000},
                {"id": "b", "pid": "PID-b", "month_year": "2025-06", "end_date": "2025-09-30",
                 "closing_arr_usd": 50000},
            ],
        })
        assert response.status_code == 200
        body = response.json()
        assert body["closing_arr_actual_usd"] == 150000.0
        assert not body["details"][1]["is_eligible"]


class TestSettlementEndpoints:
    def test_tranche1(self, client):
        response = client.post("/v1/payouts/settlements/tranche1", json={
            "settlement": SETTLEMENT,
            "held_payouts": [{"id": "p1", "employee_id": "emp-1", "month_year": "2024-11",
                              "payout_type": "Variable Pay", "year_end_amount_usd": 500}],
            "clawbacks": [{"id": "c1", "employee_id": "emp-1", "original_amount_usd": 200}],
        })
        assert response.status_code == 200
        assert response.json()["total_usd"] == 300.0

    def test_tranche2_too_early(self, client):
        response = client.post("/v1/payouts/settlements/tranche2", json={
            "settlement": SETTLEMENT,
            "as_of": "2025-04-10",
        })
        assert response.status_code == 409
        assert "2025-04-15" in response.json()["detail"]

    def test_tranche2_uses_settlement_carryforward(self, client):
        response = client.post("/v1/payouts/settlements/tranche2", json={
            "settlement": dict(SETTLEMENT, clawback_carryforward_usd=100),
            "held_payouts": [{"id": "p1", "employee_id": "emp-1", "month_year": "2024-11",
                              "payout_type": "Variable Pay", "deal_id": "d1", "collection_amount_usd": 400}],
            "collections": [{"deal_id": "d1", "is_collected": True, "collection_date": "2025-03-01"}],
            "as_of": "2025-05-01",
        })
        assert response.status_code == 200
        assert response.json()["total_usd"] == 300.0

    def test_tranche2_uses_configured_grace_days(self, client, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({"engine": {"collection_grace_days": 30}}))
        monkeypatch.setattr(app.state, "config", ConfigManager(str(path)))

        response = client.post("/v1/payouts/settlements/tranche2", json={"settlement": SETTLEMENT, "as_of": "2025-02-14"})
        assert response.status_code == 200
        assert response.json()["eligible_date"] == "2025-02-14"

    def test_tranche2_settlement_grace_days_win(self, client):
        response = client.post("/v1/payouts/settlements/tranche2", json={
            "settlement": dict(SETTLEMENT, collection_grace_days=30),
            "as_of": "2025-02-14",
        })
        assert response.status_code == 200

    def test_status_transition(self, client):
        response = client.post("/v1/payouts/settlements/status", json={"current": "draft", "target": "review"})
        assert response.status_code == 200
        assert response.json() == {"status": "review"}

    def test_status_from_paid_rejected(self, client):
        response = client.post("/v1/payouts/settlements/status", json={"current": "paid", "target": "draft"})
        assert response.status_code == 409


class TestPlanAndRunEndpoints:
    def test_validate_plan(self, client):
        response = client.post("/v1/payouts/plans/validate", json={
            "id": "p1",
            "name": "Plan",
            "metrics": [{"metric_name": "ARR", "weightage_percent": 80}],
        })
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is False
        assert body["details"]["plan"]["success"] is False

    def test_run(self, client):
        employee = {
            "employee_id": "emp-1",
            "employee_code": "E1",
            "full_name": "Employee One",
            "target_bonus_usd": 20000,
            "plan": {"id": "p1", "name": "Plan", "metrics": [STEPPED_METRIC]},
            "targets_by_metric": {"New Software Booking ARR": 100000},
            "deals": [{"id": "d1", "project_id": "P1", "month_year": "2025-06",
                       "new_software_booking_arr_usd": 120000}],
        }
        response = client.post("/v1/payouts/run", json={"month_year": "2025-06", "employees": [employee]})
        assert response.status_code == 200
        body = response.json()
        assert body["total_employees"] == 1
        assert body["failed"] == []
        assert body["employees"][0]["variable_pay_usd"] == 28800.0
        assert "vp_attributions" not in body["employees"][0]

    def test_validate_plan_reports_non_mapping_items(self, client):
        response = client.post("/v1/payouts/plans/validate", json={
            "id": "p1",
            "name": "Plan",
            "metrics": ["New Software Booking ARR"],
            "commissions": 5,
        })
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is False
        assert body["details"]["metrics"]["errors"] == ["#1: expected a mapping, got str"]
        assert not body["details"]["commissions"]["success"]


class TestClawbackEndpoints:
    def test_detect(self, client):
        attribution = {
            "deal_id": "d1", "project_id": "P1", "employee_id": "emp-1",
            "metric_name": "New Software Booking ARR", "deal_value_usd": 72000, "proportion_pct": 60,
            "variable_pay_split_usd": 17280, "payout_on_booking_usd": 12096,
            "payout_on_collection_usd": 4320, "payout_on_year_end_usd": 864, "clawback_eligible_usd": 12096,
        }
        response = client.post("/v1/payouts/clawbacks/detect", json={
            "collections": [
                {"deal_id": "d1", "first_milestone_due_date": "2025-05-31"},
                {"deal_id": "d2", "first_milestone_due_date": "2025-05-31", "is_collected": True},
            ],
            "attributions": [attribution],
            "as_of": "2025-06-30",
        })
        assert response.status_code == 200
        body = response.json()
        assert body["clawback_count"] == 1
        assert body["total_clawbacks_usd"] == 12096.0
        assert body["entries"][0]["status"] == "pending"
        assert body["totals_by_employee"] == {"emp-1": 12096.0}
