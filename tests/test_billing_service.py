"""
Tests for the billing cycle processor
"""
import pytest
from decimal import Decimal
from datetime import datetime
from unittest.mock import Mock

from workforce_billing.db.models import (
    BillingRecord,
    BillingRecordKind,
    BillingRecordStatus,
    Organization,
)
from workforce_billing.exceptions import GatewayError, NotFoundError
from workforce_billing.services.billing_gateway import BillingGateway
from workforce_billing.services.billing_service import BillingService
from workforce_billing.services.metrics import get_metrics_collector
from workforce_billing.services.usage_service import UsageService

BILL_DATE = datetime(2026, 6, 1, 0, 0)
NOW = datetime(2026, 6, 1, 10, 0)


@pytest.fixture
def mock_gateway():
    """Mock payment gateway"""
    gateway = Mock(spec=BillingGateway)
    gateway.create_invoice_item.return_value = {"item_id": "ii_test123"}
    gateway.create_invoice.return_value = {"invoice_id": "in_test123", "status": "draft"}
    gateway.send_invoice.return_value = {"invoice_id": "in_test123", "status": "open"}
    return gateway


@pytest.fixture
def subscription(make_subscription, organization, plans):
    """Professional plan (24.99, 10% off), 10 seats, due on 1 June"""
    return make_subscription(organization, plans["Professional"], seat_count=10, next_bill_date=BILL_DATE)


class TestBillingCycle:
    """Test billing one subscription"""

    def test_cycle_record_and_invoice(self, db_session, subscription, mock_gateway):
        service = BillingService(db_session, gateway=mock_gateway)

        record = service.process_billing_cycle(subscription, now=NOW)

        assert record.kind == BillingRecordKind.CYCLE.value
        assert record.billing_period == "2026-06"
        assert record.seat_count == 10
        assert record.base_amount == Decimal("249.90")
        assert record.discount_amount == Decimal("25.00")
        assert record.tax_amount == Decimal("44.98")
        assert record.total_amount == Decimal("269.88")
        assert record.external_invoice_ref == "in_test123"
        assert record.status == BillingRecordStatus.PENDING.value

        item_kwargs = mock_gateway.create_invoice_item.call_args.kwargs
        assert item_kwargs["customer_id"] == "cus_test123"
        assert item_kwargs["amount"] == Decimal("269.88")
        assert item_kwargs["idempotency_key"] == f"billing-record-{record.id}-item"
        mock_gateway.send_invoice.assert_called_once_with("in_test123")

        assert subscription.next_bill_date == datetime(2026, 7, 1, 0, 0)
        assert subscription.last_billed_at == NOW

    def test_repeat_run_does_not_double_bill(self, db_session, subscription, mock_gateway):
        service = BillingService(db_session, gateway=mock_gateway)
        first = service.process_billing_cycle(subscription, now=NOW)

        # Simulate a crash before the bill date was advanced
        subscription.next_bill_date = BILL_DATE
        db_session.commit()
        second = service.process_billing_cycle(subscription, now=NOW)

        assert first.id == second.id
        assert db_session.query(BillingRecord).count() == 1
        assert mock_gateway.create_invoice.call_count == 1

    def test_gateway_failure_is_resumed(self, db_session, subscription, mock_gateway):
        failing = Mock(spec=BillingGateway)
        failing.create_invoice_item.side_effect = GatewayError("card_declined")

        with pytest.raises(GatewayError):
            BillingService(db_session, gateway=failing).process_billing_cycle(subscription, now=NOW)

        db_session.refresh(subscription)
        record = db_session.query(BillingRecord).one()
        assert record.error_message == "card_declined"
        assert record.external_invoice_ref is None
        assert subscription.next_bill_date == BILL_DATE

        resumed = BillingService(db_session, gateway=mock_gateway).process_billing_cycle(subscription, now=NOW)

        assert resumed.id == record.id
        assert resumed.external_invoice_ref == "in_test123"
        assert resumed.error_message is None
        assert subscription.next_bill_date == datetime(2026, 7, 1, 0, 0)

    def test_send_failure_keeps_invoice(self, db_session, subscription, mock_gateway):
        mock_gateway.send_invoice.side_effect = GatewayError("email bounced")

        record = BillingService(db_session, gateway=mock_gateway).process_billing_cycle(subscription, now=NOW)

        assert record.external_invoice_ref == "in_test123"
        assert subscription.next_bill_date == datetime(2026, 7, 1, 0, 0)

    def test_missing_customer(self, db_session, make_subscription, organization, plans, mock_gateway):
        subscription = make_subscription(organization, plans["Starter"], next_bill_date=BILL_DATE, customer_ref=None)

        with pytest.raises(GatewayError):
            BillingService(db_session, gateway=mock_gateway).process_billing_cycle(subscription, now=NOW)

        mock_gateway.create_invoice.assert_not_called()

    def test_zero_total_marked_paid(self, db_session, make_subscription, make_plan, organization, mock_gateway):
        plan = make_plan(name="Free", base_price="0.00")
        subscription = make_subscription(organization, plan, next_bill_date=BILL_DATE)

        record = BillingService(db_session, gateway=mock_gateway).process_billing_cycle(subscription, now=NOW)

        assert record.total_amount == Decimal("0.00")
        assert record.status == BillingRecordStatus.PAID.value
        assert record.paid_at == NOW
        mock_gateway.create_invoice_item.assert_not_called()

    def test_metered_seats_used(self, db_session, subscription, organization, mock_gateway):
        UsageService(db_session).record_usage(organization.id, "active_employees", 12, now=NOW)

        record = BillingService(db_session, gateway=mock_gateway).process_billing_cycle(subscription, now=NOW)

        assert record.seat_count == 12
        assert subscription.seat_count == 12

    def test_bank_transfer_gateway(self, db_session, subscription, gateway):
        record = BillingService(db_session, gateway=gateway).process_billing_cycle(subscription, now=NOW)

        assert record.external_invoice_ref.startswith("bank_inv_cus_test123_")

    def test_process_billing_requires_active_subscription(self, db_session, organization, mock_gateway):
        with pytest.raises(NotFoundError):
            BillingService(db_session, gateway=mock_gateway).process_billing(organization.id)


class TestDueBilling:
    """Test the scheduled billing pass"""

    def test_only_due_subscriptions(self, db_session, subscription, make_subscription, plans, mock_gateway):
        other = Organization(name="Later Ltd", billing_email="billing@later.test")
        db_session.add(other)
        db_session.commit()
        make_subscription(other, plans["Starter"], next_bill_date=datetime(2026, 6, 15))

        service = BillingService(db_session, gateway=mock_gateway)

        assert [s.id for s in service.get_due_subscriptions(NOW)] == [subscription.id]

    def test_failure_does_not_stop_pass(self, db_session, subscription, make_subscription, plans, mock_gateway):
        other = Organization(name="No Customer Ltd")
        db_session.add(other)
        db_session.commit()
        make_subscription(other, plans["Starter"], next_bill_date=BILL_DATE, customer_ref=None)

        stats = BillingService(db_session, gateway=mock_gateway).process_due_billing(now=NOW)

        assert stats == {"due": 2, "billed": 1, "failed": 1}
        assert get_metrics_collector().get_counter("billing_failures_total", {"stage": "cycle"}) == 1.0
        # Billed subscription is no longer due
        assert BillingService(db_session, gateway=mock_gateway).process_due_billing(now=NOW)["due"] == 1


class TestUsageAdjustments:
    """Test proration and overage adjustments driven by metered usage"""

    def test_adjust_billing_for_usage(self, db_session, subscription, organization, mock_gateway):
        usage_service = UsageService(db_session)
        usage_service.record_usage(organization.id, "storage_gb", 20, now=datetime(2026, 5, 20))
        usage_service.record_usage(organization.id, "active_employees", 20, now=datetime(2026, 6, 10))

        service = BillingService(db_session, gateway=mock_gateway)
        result = service.adjust_billing_for_usage(organization.id, now=datetime(2026, 6, 10, 12, 0))

        overage = db_session.get(BillingRecord, result["overage_record_id"])
        assert overage.kind == BillingRecordKind.OVERAGE.value
        assert overage.billing_period == "2026-05"
        assert overage.base_amount == Decimal("19.90")
        # Same per-seat price at 10 and 20 seats: seats move, nothing to prorate
        assert result["proration_record_id"] is None
        assert subscription.seat_count == 20

    def test_adjust_all_usage(self, db_session, subscription, mock_gateway):
        stats = BillingService(db_session, gateway=mock_gateway).adjust_all_usage(now=NOW)

        assert stats == {"processed": 1, "prorations": 0, "overages": 0, "failed": 0}
