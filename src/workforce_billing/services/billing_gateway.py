"""
Billing Gateway - Abstract interface for invoice-issuing payment providers
Supports Stripe and manual Bank Transfer
"""
from abc import ABC, abstractmethod
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Dict, Any, List
from datetime import datetime
import logging
import uuid

import stripe

from ..exceptions import GatewayError

logger = logging.getLogger(__name__)


def to_minor_units(amount: Decimal) -> int:
    """Convert a currency amount (e.g. pounds) to minor units (pence)"""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class BillingGateway(ABC):
    """Abstract base class for payment providers"""

    provider = "abstract"

    @abstractmethod
    def create_customer(self, email: Optional[str], name: str, metadata: Optional[Dict] = None) -> Dict[str, Any]:
        """Create a customer in the payment provider"""
        pass

    @abstractmethod
    def create_invoice_item(
        self,
        customer_id: str,
        amount: Decimal,
        currency: str,
        description: str,
        metadata: Optional[Dict] = None,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Attach a pending line item to the customer's next invoice"""
        pass

    @abstractmethod
    def create_invoice(
        self,
        customer_id: str,
        auto_charge: bool = True,
        metadata: Optional[Dict] = None,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Create an invoice from the customer's pending items; returns {"invoice_id": ...}"""
        pass

    @abstractmethod
    def send_invoice(self, invoice_id: str) -> Dict[str, Any]:
        """Deliver the invoice to the customer"""
        pass


class BankTransferGateway(BillingGateway):
    """Bank Transfer gateway - invoices are settled manually"""

    provider = "bank_transfer"

    def __init__(self, bank_details: Dict[str, str]):
        """
        Initialize bank transfer gateway

        Args:
            bank_details: Dict with bank account details (account_number, bank_name, etc.)
        """
        self.bank_details = bank_details
        self._pending_items: Dict[str, List[Dict[str, Any]]] = {}

    def create_customer(self, email: Optional[str], name: str, metadata: Optional[Dict] = None) -> Dict[str, Any]:
        """Bank transfer doesn't create customers - return local ID"""
        reference = email or name
        return {
            "customer_id": f"bank_{reference}",
            "provider": self.provider,
            "status": "pending"
        }

    def create_invoice_item(
        self,
        customer_id: str,
        amount: Decimal,
        currency: str,
        description: str,
        metadata: Optional[Dict] = None,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        item = {
            "item_id": f"bank_item_{uuid.uuid4().hex[:16]}",
            "amount": Decimal(amount),
            "currency": currency,
            "description": description,
            "metadata": metadata or {},
        }
        self._pending_items.setdefault(customer_id, []).append(item)
        return item

    def create_invoice(
        self,
        customer_id: str,
        auto_charge: bool = True,
        metadata: Optional[Dict] = None,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Create a bank transfer request covering the customer's pending items"""
        items = self._pending_items.pop(customer_id, [])
        if not items:
            raise GatewayError(f"No pending invoice items for customer {customer_id}")

        total = sum((item["amount"] for item in items), Decimal("0"))
        invoice_id = f"bank_inv_{customer_id}_{int(datetime.utcnow().timestamp())}"
        return {
            "invoice_id": invoice_id,
            "provider": self.provider,
            "status": "pending_verification",
            "amount": total,
            "payment_instructions": self._get_payment_instructions(invoice_id, total, items[0]["currency"]),
        }

    def send_invoice(self, invoice_id: str) -> Dict[str, Any]:
        """Bank transfer invoices are delivered by the finance team"""
        logger.info(f"Bank transfer invoice {invoice_id} queued for manual delivery")
        return {"invoice_id": invoice_id, "status": "sent", "provider": self.provider}

    def _get_payment_instructions(self, invoice_id: str, amount: Decimal, currency: str) -> Dict[str, str]:
        """Get payment instructions for bank transfer"""
        return {
            "account_number": self.bank_details.get("account_number", ""),
            "bank_name": self.bank_details.get("bank_name", ""),
            "account_name": self.bank_details.get("account_name", ""),
            "sort_code": self.bank_details.get("sort_code", ""),
            "instructions": f"Please transfer {amount} {currency.upper()} to the account above. Use {invoice_id} as the transfer reference."
        }


class StripeGateway(BillingGateway):
    """Stripe invoicing gateway"""

    provider = "stripe"

    def __init__(self, api_key: str, is_test: bool = False):
        """
        Initialize Stripe gateway

        Args:
            api_key: Stripe API key (test or live)
            is_test: Whether using test mode
        """
        self.stripe = stripe
        self.stripe.api_key = api_key
        self.is_test = is_test

    def create_customer(self, email: Optional[str], name: str, metadata: Optional[Dict] = None) -> Dict[str, Any]:
        """Create a Stripe customer"""
        try:
            customer = self.stripe.Customer.create(
                email=email,
                name=name,
                metadata=metadata or {}
            )
            return {
                "customer_id": customer.id,
                "provider": self.provider,
                "status": "active"
            }
        except self.stripe.StripeError as e:
            logger.error(f"Stripe customer creation failed: {e}")
            raise GatewayError(f"Stripe customer creation failed: {e}") from e

    def create_invoice_item(
        self,
        customer_id: str,
        amount: Decimal,
        currency: str,
        description: str,
        metadata: Optional[Dict] = None,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Create a Stripe invoice item (amount sent in minor units)"""
        try:
            item = self.stripe.InvoiceItem.create(
                customer=customer_id,
                amount=to_minor_units(amount),
                currency=currency,
                description=description,
                metadata=metadata or {},
                idempotency_key=idempotency_key,
            )
            return {"item_id": item.id, "provider": self.provider}
        except self.stripe.StripeError as e:
            logger.error(f"Stripe invoice item creation failed: {e}")
            raise GatewayError(f"Stripe invoice item creation failed: {e}") from e

    def create_invoice(
        self,
        customer_id: str,
        auto_charge: bool = True,
        metadata: Optional[Dict] = None,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Create a Stripe invoice that picks up the customer's pending items"""
        try:
            invoice = self.stripe.Invoice.create(
                customer=customer_id,
                auto_advance=auto_charge,
                collection_method="charge_automatically" if auto_charge else "send_invoice",
                pending_invoice_items_behavior="include",
                metadata=metadata or {},
                idempotency_key=idempotency_key,
            )
            return {
                "invoice_id": invoice.id,
                "provider": self.provider,
                "status": invoice.status,
            }
        except self.stripe.StripeError as e:
            logger.error(f"Stripe invoice creation failed: {e}")
            raise GatewayError(f"Stripe invoice creation failed: {e}") from e

    def send_invoice(self, invoice_id: str) -> Dict[str, Any]:
        """Ask Stripe to email the invoice to the customer"""
        try:
            invoice = self.stripe.Invoice.send_invoice(invoice_id)
            return {"invoice_id": invoice.id, "status": invoice.status, "provider": self.provider}
        except self.stripe.StripeError as e:
            logger.error(f"Stripe invoice send failed for {invoice_id}: {e}")
            raise GatewayError(f"Stripe invoice send failed: {e}") from e


def get_billing_gateway(provider: str, config) -> BillingGateway:
    """
    Factory function to get the appropriate billing gateway

    Args:
        provider: 'bank_transfer' or 'stripe'
        config: Config object with payment provider settings

    Returns:
        BillingGateway instance
    """
    is_test_mode = config.ENV in ("dev", "test", "staging")

    if provider == "bank_transfer":
        bank_details = {
            "account_number": config.BANK_ACCOUNT_NUMBER or "",
            "bank_name": config.BANK_NAME or "Your Bank",
            "account_name": config.BANK_ACCOUNT_NAME or "Workforce Billing",
            "sort_code": config.BANK_SORT_CODE or ""
        }
        return BankTransferGateway(bank_details)

    elif provider == "stripe":
        if config.ENV == "prod":
            api_key = config.STRIPE_SECRET_KEY
        else:
            api_key = config.STRIPE_TEST_SECRET_KEY or config.STRIPE_SECRET_KEY

        if not api_key:
            raise ValueError("Stripe API key not configured")

        return StripeGateway(api_key, is_test=is_test_mode)

    else:
        raise ValueError(f"Unsupported payment provider: {provider}")
