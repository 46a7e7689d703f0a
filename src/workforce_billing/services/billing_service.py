"""
Billing cycle processor

Finds subscriptions whose bill date has passed, prices them from metered seat
usage, writes one cycle billing record per subscription and bill date, issues
the invoice through the payment gateway and advances the bill date by one
calendar month.
"""
from typing import Dict, Any, Optional, List
from decimal import Decimal
from datetime import datetime
from sqlalchemy.orm import Session
import logging

from ..billing_periods import add_months, billing_period_for, previous_billing_period
from ..config import config
from ..db.models import (
    Organization,
    OrganizationSubscription,
    SubscriptionStatus,
    BillingRecord,
    BillingRecordStatus,
    BillingRecordKind,
)
from ..exceptions import GatewayError, NotFoundError
from .billing_gateway import BillingGateway, get_billing_gateway
from .billing_records import claim_billing_record, cycle_key, find_billing_record, tax_for
from .metrics import increment_counter
from .pricing_service import PricingService, round_money
from .proration_service import ProrationService
from .usage_billing_service import UsageBillingService
from .usage_service import UsageService

logger = logging.getLogger(__name__)


class BillingService:
    """Runs billing cycles and usage adjustments for organization subscriptions"""

    def __init__(
        self,
        db: Session,
        gateway: Optional[BillingGateway] = None,
        pricing_service: Optional[PricingService] = None,
        usage_service: Optional[UsageService] = None,
    ):
        """
        Initialize billing service

        Args:
            db: Database session
            gateway: Payment gateway (built from config on first use when omitted)
        """
        self.db = db
        self._gateway = gateway
        self.pricing_service = pricing_service or PricingService(db)
        self.usage_service = usage_service or UsageService(db)
        self.proration_service = ProrationService(db, self.pricing_service)
        self.usage_billing_service = UsageBillingService(db, self.usage_service)

    @property
    def gateway(self) -> BillingGateway:
        if self._gateway is None:
            self._gateway = get_billing_gateway(config.PAYMENT_PROVIDER, config)
        return self._gateway

    def get_active_subscription(self, organization_id: int) -> Optional[OrganizationSubscription]:
        return self.db.query(OrganizationSubscription).filter(
            OrganizationSubscription.organization_id == organization_id,
            OrganizationSubscription.status == SubscriptionStatus.ACTIVE.value
        ).first()

    def get_due_subscriptions(self, now: Optional[datetime] = None) -> List[OrganizationSubscription]:
        """Active, auto-renewing subscriptions whose next bill date has passed"""
        now = now or datetime.utcnow()
        return self.db.query(OrganizationSubscription).filter(
            OrganizationSubscription.status == SubscriptionStatus.ACTIVE.value,
            OrganizationSubscription.auto_renewal == True,
            OrganizationSubscription.next_bill_date <= now
        ).order_by(OrganizationSubscription.next_bill_date, OrganizationSubscription.id).all()

    def process_due_billing(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        Bill every due subscription

        This should be called by a scheduled job. A failure for one
        subscription is logged and counted; the pass always completes.

        Returns:
            Dictionary with counts (due, billed, failed)
        """
        now = now or datetime.utcnow()
        due = self.get_due_subscriptions(now)
        stats = {"due": len(due), "billed": 0, "failed": 0}

        logger.info(f"Processing {len(due)} due billing cycles")

        for subscription in due:
            subscription_id = subscription.id
            organization_id = subscription.organization_id
            try:
                self.process_billing_cycle(subscription, now=now)
                stats["billed"] += 1
            except Exception as e:
                self.db.rollback()
                stats["failed"] += 1
                increment_counter("billing_failures_total", labels={"stage": "cycle"})
                logger.error(
                    f"Billing failed for subscription {subscription_id} (organization {organization_id}): {e}",
                    exc_info=True
                )

        logger.info(f"Billing cycle processing complete: {stats}")
        return stats

    def process_billing(self, organization_id: int, now: Optional[datetime] = None) -> BillingRecord:
        """
        Bill an organization's active subscription now (on-demand trigger)

        Raises:
            NotFoundError: No active subscription
            GatewayError: Invoice could not be created
        """
        subscription = self.get_active_subscription(organization_id)
        if not subscription:
            raise NotFoundError(
                f"No active subscription found for organization {organization_id}",
                details={"organization_id": organization_id},
            )
        return self.process_billing_cycle(subscription, now=now)

    def process_billing_cycle(
        self,
        subscription: OrganizationSubscription,
        now: Optional[datetime] = None
    ) -> BillingRecord:
        """
        Bill one subscription for its current bill date

        The cycle record is keyed by subscription and the month of the bill
        date being settled. A record left behind by an interrupted run is
        resumed with its original amounts.
        """
        now = now or datetime.utcnow()
        cycle_date = subscription.next_bill_date or now
        billing_period = billing_period_for(cycle_date)
        key = cycle_key(subscription.id, billing_period)

        record = find_billing_record(self.db, key)
        if record:
            logger.info(f"Resuming billing record {record.id} for subscription {subscription.id} ({billing_period})")
        else:
            record = self._create_cycle_record(subscription, key, billing_period, now)

        if record.external_invoice_ref is None:
            if record.total_amount > 0:
                self.issue_invoice(record, subscription)
            elif record.status == BillingRecordStatus.PENDING.value:
                # Nothing to collect
                record.status = BillingRecordStatus.PAID.value
                record.paid_at = now
                logger.info(f"Billing record {record.id} has nothing to collect; marked paid")

        subscription.last_billed_at = now
        subscription.next_bill_date = add_months(cycle_date, 1)
        subscription.seat_count = record.seat_count
        self.db.commit()

        logger.info(
            f"💳 Billed organization {subscription.organization_id}: £{record.total_amount} "
            f"for {record.seat_count} seats; next bill date {subscription.next_bill_date.date()}"
        )
        return record

    def _create_cycle_record(
        self,
        subscription: OrganizationSubscription,
        key: str,
        billing_period: str,
        now: datetime
    ) -> BillingRecord:
        usage = self.usage_service.get_organization_usage(
            subscription.organization_id, billing_period_for(now)
        )
        metered_seats = usage.get("active_employees")
        seat_count = int(metered_seats) if metered_seats else subscription.seat_count

        pricing = self.pricing_service.calculate_price(
            subscription.plan_id, seat_count, subscription.organization_id, now=now
        )

        seats = Decimal(seat_count)
        subtotal = round_money(pricing.final_price * seats)
        base_amount = round_money(pricing.base_price * seats)

        record, _ = claim_billing_record(
            self.db,
            key,
            organization_id=subscription.organization_id,
            subscription_id=subscription.id,
            plan_id=subscription.plan_id,
            kind=BillingRecordKind.CYCLE.value,
            billing_period=billing_period,
            seat_count=seat_count,
            base_amount=base_amount,
            discount_amount=base_amount - subtotal,
            tax_amount=tax_for(subtotal),
        )
        return record

    def issue_invoice(self, record: BillingRecord, subscription: OrganizationSubscription) -> str:
        """
        Create and send the gateway invoice for a billing record

        A failure to create the invoice is stored on the record and raised as
        GatewayError. A failure to send an already created invoice is logged only.

        Returns:
            The gateway invoice reference
        """
        customer_id = subscription.external_customer_ref
        organization = self.db.query(Organization).filter(
            Organization.id == subscription.organization_id
        ).first()
        organization_name = organization.name if organization else str(subscription.organization_id)

        try:
            if not customer_id:
                raise GatewayError(
                    f"No payment customer found for organization {subscription.organization_id}",
                    details={"organization_id": subscription.organization_id},
                )

            self.gateway.create_invoice_item(
                customer_id=customer_id,
                amount=record.total_amount,
                currency=config.BILLING_CURRENCY,
                description=f"Workforce platform - Billing Period {record.billing_period}",
                metadata={
                    "organization_id": str(subscription.organization_id),
                    "billing_record_id": str(record.id),
                    "seat_count": str(record.seat_count),
                    "platform": config.PLATFORM_NAME,
                },
                idempotency_key=f"billing-record-{record.id}-item",
            )
            invoice = self.gateway.create_invoice(
                customer_id=customer_id,
                auto_charge=True,
                metadata={
                    "organization_id": str(subscription.organization_id),
                    "organization_name": organization_name,
                    "billing_record_id": str(record.id),
                },
                idempotency_key=f"billing-record-{record.id}-invoice",
            )
        except GatewayError as e:
            record.error_message = e.message
            self.db.commit()
            increment_counter("billing_failures_total", labels={"stage": "invoice"})
            raise

        invoice_id = invoice["invoice_id"]
        record.external_invoice_ref = invoice_id
        record.error_message = None
        self.db.commit()

        try:
            self.gateway.send_invoice(invoice_id)
            logger.info(f"📧 Invoice created and sent: {invoice_id} for organization {subscription.organization_id}")
        except GatewayError as e:
            logger.error(f"❌ Failed to send invoice {invoice_id}: {e.message}")

        return invoice_id

    def adjust_billing_for_usage(self, organization_id: int, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Apply usage-driven adjustments for an organization

        Prorates a significant change in metered active employees for the
        current month, then bills overage for the previous (closed) month.

        Raises:
            NotFoundError: No active subscription
        """
        now = now or datetime.utcnow()
        subscription = self.get_active_subscription(organization_id)
        if not subscription:
            raise NotFoundError(
                f"No active subscription found for organization {organization_id}",
                details={"organization_id": organization_id},
            )

        result: Dict[str, Any] = {
            "organization_id": organization_id,
            "proration_record_id": None,
            "overage_record_id": None,
        }

        usage = self.usage_service.get_organization_usage(organization_id, billing_period_for(now))
        metered_seats = usage.get("active_employees")
        if metered_seats and int(metered_seats) != subscription.seat_count:
            proration = self.proration_service.create_prorated_billing(subscription, int(metered_seats), now=now)
            if proration:
                result["proration_record_id"] = proration.id

        overage = self.usage_billing_service.calculate_overage_charges(
            subscription, billing_period=previous_billing_period(now), now=now
        )
        if overage:
            result["overage_record_id"] = overage.id

        return result

    def adjust_all_usage(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Run usage adjustments for every active subscription"""
        now = now or datetime.utcnow()
        organization_ids = [
            row.organization_id for row in self.db.query(OrganizationSubscription.organization_id).filter(
                OrganizationSubscription.status == SubscriptionStatus.ACTIVE.value
            ).all()
        ]
        stats = {"processed": 0, "prorations": 0, "overages": 0, "failed": 0}

        for organization_id in organization_ids:
            try:
                result = self.adjust_billing_for_usage(organization_id, now=now)
                stats["processed"] += 1
                if result["proration_record_id"]:
                    stats["prorations"] += 1
                if result["overage_record_id"]:
                    stats["overages"] += 1
            except Exception as e:
                self.db.rollback()
                stats["failed"] += 1
                increment_counter("billing_failures_total", labels={"stage": "usage_adjustment"})
                logger.error(f"Usage adjustment failed for organization {organization_id}: {e}", exc_info=True)

        logger.info(f"Usage adjustments complete: {stats}")
        return stats


def get_billing_service(db: Session, gateway: Optional[BillingGateway] = None) -> BillingService:
    """Get billing service instance"""
    return BillingService(db, gateway=gateway)
