"""
Tests for the pricing API
"""
import pytest
from decimal import Decimal
from datetime import datetime

from workforce_billing.db.models import SubscriptionStatus


class TestPlansAndPricing:
    """Test plan listing, price calculation and rule creation"""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert "X-Request-ID" in response.headers

    def test_list_plans(self, client, plans):
        response = client.get("/v1/pricing/plans")

        assert response.status_code == 200
        assert [plan["name"] for plan in response.json()] == ["Starter", "Professional", "Enterprise"]

    def test_calculate_price(self, client, plans):
        response = client.post("/v1/pricing/calculate", json={
            "plan_id": plans["Professional"].id,
            "seat_count": 50,
        })

        assert response.status_code == 200
        data = response.json()
        assert Decimal(data["final_price"]) == Decimal("22.49")
        assert Decimal(data["discount_percent"]) == Decimal("10")

    def test_calculate_unknown_plan(self, client):
        response = client.post("/v1/pricing/calculate", json={"plan_id": 999, "seat_count": 5})

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    def test_calculate_negative_seats(self, client, plans):
        response = client.post("/v1/pricing/calculate", json={
            "plan_id": plans["Starter"].id,
            "seat_count": -1,
        })

        assert response.status_code == 422
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_create_rule(self, client, plans):
        plan_id = plans["Enterprise"].id
        response = client.post("/v1/pricing/rules", json={
            "plan_id": plan_id,
            "name": "Large Team",
            "condition": {"type": "employee_count", "operator": ">=", "value": 250},
            "action": {"type": "volume_discount", "perSeatDiscount": 0.1, "maxDiscount": 20},
            "priority": 30,
        })

        assert response.status_code == 201
        assert response.json()["action"]["type"] == "volume_discount"

        price = client.post("/v1/pricing/calculate", json={"plan_id": plan_id, "seat_count": 300}).json()
        assert Decimal(price["final_price"]) == Decimal("22.74")

        rules = client.get(f"/v1/pricing/plans/{plan_id}/rules").json()
        assert [rule["name"] for rule in rules] == ["Large Team"]

    def test_create_invalid_rule(self, client, plans):
        response = client.post("/v1/pricing/rules", json={
            "plan_id": plans["Starter"].id,
            "name": "Broken",
            "condition": {"type": "employee_count", "operator": "between", "value": 1},
            "action": {"type": "discount", "value": 5},
        })

        assert response.status_code == 422
        assert response.json()["code"] == "VALIDATION_ERROR"


class TestSubscriptionRoutes:
    """Test subscription, usage and billing endpoints"""

    def test_create_subscription(self, client, organization, plans):
        response = client.post("/v1/pricing/subscriptions", json={
            "organization_id": organization.id,
            "plan_id": plans["Starter"].id,
            "seat_count": 5,
        })

        assert response.status_code == 201
        assert response.json()["status"] == SubscriptionStatus.TRIAL.value

        duplicate = client.post("/v1/pricing/subscriptions", json={
            "organization_id": organization.id,
            "plan_id": plans["Professional"].id,
        })
        assert duplicate.status_code == 409
        assert duplicate.json()["code"] == "INCONSISTENT_STATE"

    def test_get_subscription(self, client, make_subscription, organization, plans):
        subscription = make_subscription(organization, plans["Starter"])

        response = client.get(f"/v1/pricing/organizations/{organization.id}/subscription")

        assert response.status_code == 200
        assert response.json()["id"] == subscription.id

    def test_get_missing_subscription(self, client, organization):
        response = client.get(f"/v1/pricing/organizations/{organization.id}/subscription")

        assert response.status_code == 404

    def test_usage_dropped_without_subscription(self, client, organization):
        response = client.post(
            f"/v1/pricing/organizations/{organization.id}/usage",
            json={"metric_type": "api_calls", "value": 100},
        )

        assert response.status_code == 201
        assert response.json()["recorded"] is False

    def test_record_and_read_usage(self, client, make_subscription, organization, plans):
        make_subscription(organization, plans["Starter"])

        recorded = client.post(
            f"/v1/pricing/organizations/{organization.id}/usage",
            json={"metric_type": "api_calls", "value": 1200},
        )
        usage = client.get(f"/v1/pricing/organizations/{organization.id}/usage").json()

        assert recorded.json()["recorded"] is True
        assert Decimal(usage["usage"]["api_calls"]) == Decimal("1200")

    def test_usage_echoes_resolved_period(self, client, organization):
        default = client.get(f"/v1/pricing/organizations/{organization.id}/usage").json()
        explicit = client.get(
            f"/v1/pricing/organizations/{organization.id}/usage",
            params={"billing_period": "2025-01"},
        ).json()

        assert default["billing_period"] == datetime.utcnow().strftime("%Y-%m")
        assert explicit["billing_period"] == "2025-01"
        assert explicit["usage"] == {}

    def test_unknown_metric_rejected(self, client, organization):
        response = client.post(
            f"/v1/pricing/organizations/{organization.id}/usage",
            json={"metric_type": "coffee_cups", "value": 1},
        )

        assert response.status_code == 422

    def test_update_employee_count(self, client, make_subscription, organization, plans):
        make_subscription(organization, plans["Professional"], seat_count=10)

        response = client.patch(
            f"/v1/pricing/organizations/{organization.id}/employees",
            json={"seat_count": 12},
        )

        assert response.status_code == 200
        assert response.json()["new_seat_count"] == 12

    def test_process_billing(self, client, make_subscription, organization, plans):
        make_subscription(organization, plans["Starter"], seat_count=10)

        response = client.post(f"/v1/pricing/organizations/{organization.id}/billing")

        assert response.status_code == 200
        data = response.json()
        # 12.99 x 10 + 20% VAT
        assert Decimal(data["total_amount"]) == Decimal("155.88")
        assert data["external_invoice_ref"].startswith("bank_inv_")

    def test_process_billing_without_subscription(self, client, organization):
        response = client.post(f"/v1/pricing/organizations/{organization.id}/billing")

        assert response.status_code == 404

    def test_cancel(self, client, make_subscription, organization, plans):
        make_subscription(organization, plans["Starter"])

        response = client.post(
            f"/v1/pricing/organizations/{organization.id}/subscription/cancel",
            json={"reason": "Closing down"},
        )

        assert response.status_code == 200
        assert response.json()["status"] == SubscriptionStatus.CANCELLED.value
        assert response.json()["auto_renewal"] is False


class TestMetricsRoutes:
    """Test dashboard metrics"""

    def test_billing_metrics(self, client, make_subscription, organization, plans):
        make_subscription(organization, plans["Starter"], seat_count=10)

        data = client.get("/v1/pricing/metrics").json()

        assert data["active_subscriptions"] == 1
        # 12.99 x 10 seats
        assert Decimal(data["mrr"]) == Decimal("129.90")
        assert Decimal(data["total_revenue"]) == Decimal("0")

    def test_metrics_with_retired_plan(self, client, make_subscription, organization, plans, db_session):
        plan = plans["Starter"]
        make_subscription(organization, plan, seat_count=10)
        plan.is_active = False
        db_session.commit()

        response = client.get("/v1/pricing/metrics")

        assert response.status_code == 200
        # List price 12.99 x 10 seats
        assert Decimal(response.json()["mrr"]) == Decimal("129.90")

    def test_insights(self, client):
        data = client.get("/v1/pricing/insights").json()

        assert data["suggestions"] == []
        assert data["total_trials"] == 0

    def test_prometheus_metrics(self, client, make_subscription, organization, plans):
        make_subscription(organization, plans["Starter"])
        client.post(f"/v1/pricing/organizations/{organization.id}/billing")

        response = client.get("/metrics")

        assert response.status_code == 200
        assert 'billing_records_created_total{kind="cycle"} 1.0' in response.text
