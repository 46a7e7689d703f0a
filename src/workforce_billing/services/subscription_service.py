"""
Subscription lifecycle manager

Owns each organization's subscription record and its time-driven transitions:

    trial -> active       trial end has passed (first billing cycle runs immediately)
    past_due -> unpaid    bill date more than 3 days overdue
    active (renewal)      service period extended one month when it ends within a day
    * -> cancelled        explicit cancellation
"""
from typing import Dict, Any, Optional
from datetime import datetime, timedelta
from sqlalchemy.orm import Session
import logging

from ..billing_periods import add_months
from ..config import config
from ..db.models import (
    Organization,
    OrganizationSubscription,
    SubscriptionStatus,
    LIVE_STATUSES,
    BillingRecord,
    MetricType,
)
from ..exceptions import NotFoundError, ValidationError, InconsistentStateError
from .billing_gateway import BillingGateway
from .billing_service import BillingService
from .proration_service import ProrationService

logger = logging.getLogger(__name__)


class SubscriptionService:
    """Service for managing organization subscriptions"""

    # First paid period after a trial
    CONVERSION_PERIOD_DAYS = 30
    # past_due subscriptions become unpaid this long after the missed bill date
    PAYMENT_GRACE_DAYS = 3
    # Renew service periods ending within this window
    RENEWAL_WINDOW_DAYS = 1

    def __init__(
        self,
        db: Session,
        gateway: Optional[BillingGateway] = None,
        billing_service: Optional[BillingService] = None,
    ):
        """Initialize subscription service"""
        self.db = db
        self.billing_service = billing_service or BillingService(db, gateway=gateway)
        self.pricing_service = self.billing_service.pricing_service
        self.usage_service = self.billing_service.usage_service
        self.proration_service = self.billing_service.proration_service

    @property
    def gateway(self) -> BillingGateway:
        return self.billing_service.gateway

    def get_organization_subscription(self, organization_id: int) -> Optional[OrganizationSubscription]:
        """Most recent subscription for an organization, whatever its status"""
        return self.db.query(OrganizationSubscription).filter(
            OrganizationSubscription.organization_id == organization_id
        ).order_by(OrganizationSubscription.created_at.desc(), OrganizationSubscription.id.desc()).first()

    def get_live_subscription(self, organization_id: int) -> Optional[OrganizationSubscription]:
        return self.db.query(OrganizationSubscription).filter(
            OrganizationSubscription.organization_id == organization_id,
            OrganizationSubscription.status.in_(LIVE_STATUSES)
        ).first()

    def create_organization_subscription(
        self,
        organization_id: int,
        plan_id: int,
        seat_count: int = 1,
        now: Optional[datetime] = None
    ) -> OrganizationSubscription:
        """
        Start a trial subscription for an organization

        Args:
            organization_id: Organization ID
            plan_id: Pricing plan ID
            seat_count: Initial number of seats

        Returns:
            The new trial subscription

        Raises:
            NotFoundError: Unknown organization or plan
            ValidationError: Seat count outside the plan's limits
            InconsistentStateError: The organization already has a live subscription
            GatewayError: The payment customer could not be created
        """
        now = now or datetime.utcnow()

        organization = self.db.query(Organization).filter(
            Organization.id == organization_id
        ).first()
        if not organization:
            raise NotFoundError(f"Organization {organization_id} not found", details={"organization_id": organization_id})

        plan = self.pricing_service.get_plan(plan_id)
        self._validate_seat_count(plan, seat_count)

        existing = self.get_live_subscription(organization_id)
        if existing:
            raise InconsistentStateError(
                f"Organization {organization_id} already has a {existing.status} subscription",
                details={"subscription_id": existing.id, "status": existing.status},
            )

        customer_id = self._get_or_create_customer(organization)

        trial_end = now + timedelta(days=config.TRIAL_DAYS)
        subscription = OrganizationSubscription(
            organization_id=organization_id,
            plan_id=plan.id,
            external_customer_ref=customer_id,
            status=SubscriptionStatus.TRIAL.value,
            current_period_start=now,
            current_period_end=trial_end,
            trial_start=now,
            trial_end=trial_end,
            seat_count=seat_count,
            next_bill_date=trial_end,
            auto_renewal=True,
            created_at=now,
        )
        self.db.add(subscription)
        self.db.commit()
        self.db.refresh(subscription)

        logger.info(
            f"✅ Trial subscription {subscription.id} created for organization {organization_id} "
            f"on plan {plan.name} ({seat_count} seats, trial ends {trial_end.date()})"
        )
        return subscription

    def _validate_seat_count(self, plan, seat_count: int):
        if seat_count < 1:
            raise ValidationError("seat_count must be at least 1", details={"seat_count": seat_count})
        if plan.max_seats is not None and seat_count > plan.max_seats:
            raise ValidationError(
                f"Plan {plan.name} allows at most {plan.max_seats} seats",
                details={"seat_count": seat_count, "max_seats": plan.max_seats},
            )

    def _get_or_create_customer(self, organization: Organization) -> str:
        """Reuse the organization's payment customer from an earlier subscription"""
        previous = self.db.query(OrganizationSubscription).filter(
            OrganizationSubscription.organization_id == organization.id,
            OrganizationSubscription.external_customer_ref.isnot(None)
        ).order_by(OrganizationSubscription.created_at.desc()).first()
        if previous:
            return previous.external_customer_ref

        customer = self.gateway.create_customer(
            email=organization.billing_email,
            name=organization.name,
            metadata={"organization_id": str(organization.id), "platform": config.PLATFORM_NAME},
        )
        return customer["customer_id"]

    def update_employee_count(
        self,
        organization_id: int,
        new_seat_count: int,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Change the billed seat count of an active subscription

        An increase of 20% or more is prorated immediately; smaller changes
        only update the stored count. The new count is also recorded as
        active_employees usage.
        """
        now = now or datetime.utcnow()
        subscription = self.billing_service.get_active_subscription(organization_id)
        if not subscription:
            raise NotFoundError(
                f"No active subscription found for organization {organization_id}",
                details={"organization_id": organization_id},
            )

        self._validate_seat_count(subscription.plan, new_seat_count)

        old_seat_count = subscription.seat_count
        proration_record: Optional[BillingRecord] = None

        if new_seat_count > old_seat_count and ProrationService.requires_proration(old_seat_count, new_seat_count):
            proration_record = self.proration_service.create_prorated_billing(subscription, new_seat_count, now=now)
        else:
            subscription.seat_count = new_seat_count
            self.db.commit()

        self.usage_service.record_usage(organization_id, MetricType.ACTIVE_EMPLOYEES, new_seat_count, now=now)

        logger.info(f"Seat count for organization {organization_id}: {old_seat_count} -> {new_seat_count}")
        return {
            "organization_id": organization_id,
            "subscription_id": subscription.id,
            "old_seat_count": old_seat_count,
            "new_seat_count": new_seat_count,
            "proration_record_id": proration_record.id if proration_record else None,
        }

    def convert_trial_subscription(
        self,
        organization_id: int,
        now: Optional[datetime] = None
    ) -> Optional[BillingRecord]:
        """
        Convert an expired trial into a paid subscription and bill it

        Returns:
            The first cycle BillingRecord, or None if the trial has not ended
        """
        now = now or datetime.utcnow()
        subscription = self.db.query(OrganizationSubscription).filter(
            OrganizationSubscription.organization_id == organization_id,
            OrganizationSubscription.status == SubscriptionStatus.TRIAL.value
        ).first()
        if not subscription:
            raise NotFoundError(f"No trial subscription found for organization {organization_id}")

        if not subscription.trial_end or now < subscription.trial_end:
            logger.info(f"⏰ Trial for organization {organization_id} has not ended yet")
            return None

        subscription.status = SubscriptionStatus.ACTIVE.value
        subscription.current_period_start = now
        subscription.current_period_end = now + timedelta(days=self.CONVERSION_PERIOD_DAYS)
        self.db.commit()

        record = self.billing_service.process_billing(organization_id, now=now)
        logger.info(f"🎉 Trial converted to paid subscription for organization {organization_id}")
        return record

    def handle_trial_expirations(self, now: Optional[datetime] = None) -> Dict[str, int]:
        now = now or datetime.utcnow()
        expired = self.db.query(OrganizationSubscription.organization_id).filter(
            OrganizationSubscription.status == SubscriptionStatus.TRIAL.value,
            OrganizationSubscription.trial_end <= now
        ).order_by(OrganizationSubscription.trial_end, OrganizationSubscription.id).all()
        stats = {"converted": 0, "failed": 0}

        for (organization_id,) in expired:
            try:
                self.convert_trial_subscription(organization_id, now=now)
                stats["converted"] += 1
            except Exception as e:
                self.db.rollback()
                stats["failed"] += 1
                logger.error(f"Trial conversion failed for organization {organization_id}: {e}", exc_info=True)

        return stats

    def handle_failed_payments(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Suspend past_due subscriptions whose bill date is more than 3 days old"""
        now = now or datetime.utcnow()
        cutoff = now - timedelta(days=self.PAYMENT_GRACE_DAYS)
        overdue = self.db.query(OrganizationSubscription).filter(
            OrganizationSubscription.status == SubscriptionStatus.PAST_DUE.value,
            OrganizationSubscription.next_bill_date <= cutoff
        ).all()
        stats = {"suspended": 0, "failed": 0}

        for subscription in overdue:
            organization_id = subscription.organization_id
            try:
                subscription.status = SubscriptionStatus.UNPAID.value
                self.db.commit()
                stats["suspended"] += 1
                logger.warning(f"⚠️ Subscription suspended for organization {organization_id} (payment overdue)")
            except Exception as e:
                self.db.rollback()
                stats["failed"] += 1
                logger.error(f"Suspending subscription for organization {organization_id} failed: {e}", exc_info=True)

        return stats

    def handle_subscription_renewals(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Extend the service period of active subscriptions about to end"""
        now = now or datetime.utcnow()
        window_end = now + timedelta(days=self.RENEWAL_WINDOW_DAYS)
        renewing = self.db.query(OrganizationSubscription).filter(
            OrganizationSubscription.status == SubscriptionStatus.ACTIVE.value,
            OrganizationSubscription.auto_renewal == True,
            OrganizationSubscription.current_period_end <= window_end
        ).all()
        stats = {"renewed": 0, "failed": 0}

        for subscription in renewing:
            organization_id = subscription.organization_id
            try:
                period_end = subscription.current_period_end
                subscription.current_period_start = period_end
                subscription.current_period_end = add_months(period_end, 1)
                self.db.commit()
                stats["renewed"] += 1
                logger.info(f"🔄 Subscription renewed for organization {organization_id} until {subscription.current_period_end.date()}")
            except Exception as e:
                self.db.rollback()
                stats["failed"] += 1
                logger.error(f"Renewal failed for organization {organization_id}: {e}", exc_info=True)

        return stats

    def manage_subscription_statuses(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        Run the trial expiry, failed payment and renewal passes

        This should be called by a scheduled job (hourly).

        Returns:
            Dictionary with counts per pass
        """
        now = now or datetime.utcnow()
        logger.info("🔄 Managing subscription statuses...")

        trials = self.handle_trial_expirations(now)
        payments = self.handle_failed_payments(now)
        renewals = self.handle_subscription_renewals(now)

        stats = {
            "trials_converted": trials["converted"],
            "suspended": payments["suspended"],
            "renewed": renewals["renewed"],
            "failed": trials["failed"] + payments["failed"] + renewals["failed"],
        }
        logger.info(f"Subscription status management complete: {stats}")
        return stats

    def cancel_subscription(
        self,
        organization_id: int,
        reason: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> OrganizationSubscription:
        """Cancel an organization's live subscription"""
        subscription = self.get_live_subscription(organization_id)
        if not subscription:
            raise NotFoundError(f"No subscription to cancel for organization {organization_id}")

        subscription.status = SubscriptionStatus.CANCELLED.value
        subscription.cancelled_at = now or datetime.utcnow()
        subscription.cancel_reason = reason
        subscription.auto_renewal = False
        self.db.commit()

        logger.info(f"Subscription {subscription.id} cancelled for organization {organization_id}: {reason or 'no reason given'}")
        return subscription


def get_subscription_service(db: Session, gateway: Optional[BillingGateway] = None) -> SubscriptionService:
    """Get subscription service instance"""
    return SubscriptionService(db, gateway=gateway)
