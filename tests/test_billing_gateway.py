"""
Tests for payment gateways
"""
import pytest
from decimal import Decimal
from unittest.mock import Mock, patch

import stripe

from workforce_billing.exceptions import GatewayError
from workforce_billing.services.billing_gateway import (
    BankTransferGateway,
    StripeGateway,
    get_billing_gateway,
    to_minor_units,
)


def make_config(**overrides):
    config = Mock()
    config.ENV = "test"
    config.STRIPE_SECRET_KEY = "sk_live_123"
    config.STRIPE_TEST_SECRET_KEY = "sk_test_123"
    config.BANK_ACCOUNT_NUMBER = "12345678"
    config.BANK_NAME = "Test Bank"
    config.BANK_ACCOUNT_NAME = "Workforce Billing"
    config.BANK_SORT_CODE = "12-34-56"
    for key, value in overrides.items():
        setattr(config, key, value)
    return config


class TestGatewayFactory:
    """Test gateway selection"""

    def test_bank_transfer(self):
        assert isinstance(get_billing_gateway("bank_transfer", make_config()), BankTransferGateway)

    def test_stripe_uses_test_key_outside_prod(self):
        gateway = get_billing_gateway("stripe", make_config())

        assert isinstance(gateway, StripeGateway)
        assert gateway.is_test is True
        assert stripe.api_key == "sk_test_123"

    def test_stripe_uses_live_key_in_prod(self):
        gateway = get_billing_gateway("stripe", make_config(ENV="prod"))

        assert gateway.is_test is False
        assert stripe.api_key == "sk_live_123"

    def test_stripe_without_key(self):
        with pytest.raises(ValueError):
            get_billing_gateway("stripe", make_config(STRIPE_SECRET_KEY=None, STRIPE_TEST_SECRET_KEY=None))

    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            get_billing_gateway("paypal", make_config())


class TestBankTransferGateway:
    """Test manual bank transfer invoicing"""

    @pytest.fixture
    def bank_gateway(self, gateway):
        return gateway

    def test_invoice_totals_pending_items(self, bank_gateway):
        customer = bank_gateway.create_customer("billing@acme.test", "Acme")
        customer_id = customer["customer_id"]
        bank_gateway.create_invoice_item(customer_id, Decimal("100.00"), "gbp", "Seats")
        bank_gateway.create_invoice_item(customer_id, Decimal("20.00"), "gbp", "Overage")

        invoice = bank_gateway.create_invoice(customer_id)

        assert invoice["amount"] == Decimal("120.00")
        assert invoice["status"] == "pending_verification"
        assert invoice["payment_instructions"]["sort_code"] == "12-34-56"
        assert invoice["invoice_id"] in invoice["payment_instructions"]["instructions"]

    def test_invoice_without_items(self, bank_gateway):
        with pytest.raises(GatewayError):
            bank_gateway.create_invoice("bank_nobody")

    def test_items_consumed_by_invoice(self, bank_gateway):
        bank_gateway.create_invoice_item("bank_acme", Decimal("10.00"), "gbp", "Seats")
        bank_gateway.create_invoice("bank_acme")

        with pytest.raises(GatewayError):
            bank_gateway.create_invoice("bank_acme")


class TestStripeGateway:
    """Test Stripe invoicing with the SDK mocked"""

    @pytest.fixture
    def stripe_gateway(self):
        return StripeGateway("sk_test_123", is_test=True)

    def test_minor_units(self):
        assert to_minor_units(Decimal("269.88")) == 26988
        assert to_minor_units(Decimal("0.005")) == 1

    @patch("stripe.Customer.create")
    def test_create_customer(self, mock_create, stripe_gateway):
        mock_create.return_value = Mock(id="cus_test123")

        customer = stripe_gateway.create_customer("billing@acme.test", "Acme", {"organization_id": "1"})

        assert customer["customer_id"] == "cus_test123"
        mock_create.assert_called_once_with(
            email="billing@acme.test", name="Acme", metadata={"organization_id": "1"}
        )

    @patch("stripe.InvoiceItem.create")
    def test_create_invoice_item(self, mock_create, stripe_gateway):
        mock_create.return_value = Mock(id="ii_test123")

        stripe_gateway.create_invoice_item(
            "cus_test123", Decimal("269.88"), "gbp", "Billing Period 2026-06", idempotency_key="billing-record-1-item"
        )

        kwargs = mock_create.call_args.kwargs
        assert kwargs["amount"] == 26988
        assert kwargs["currency"] == "gbp"
        assert kwargs["idempotency_key"] == "billing-record-1-item"

    @patch("stripe.Invoice.create")
    def test_create_invoice(self, mock_create, stripe_gateway):
        mock_create.return_value = Mock(id="in_test123", status="draft")

        invoice = stripe_gateway.create_invoice("cus_test123", auto_charge=True, idempotency_key="billing-record-1-invoice")

        assert invoice == {"invoice_id": "in_test123", "provider": "stripe", "status": "draft"}
        kwargs = mock_create.call_args.kwargs
        assert kwargs["collection_method"] == "charge_automatically"
        assert kwargs["pending_invoice_items_behavior"] == "include"

    @patch("stripe.Invoice.create")
    def test_stripe_error_mapped(self, mock_create, stripe_gateway):
        mock_create.side_effect = stripe.StripeError("No such customer")

        with pytest.raises(GatewayError):
            stripe_gateway.create_invoice("cus_missing")

    @patch("stripe.Invoice.send_invoice")
    def test_send_invoice(self, mock_send, stripe_gateway):
        mock_send.return_value = Mock(id="in_test123", status="open")

        result = stripe_gateway.send_invoice("in_test123")

        assert result["status"] == "open"
        mock_send.assert_called_once_with("in_test123")
