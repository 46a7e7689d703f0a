"""
Proration service for mid-cycle seat count changes

When an organization's seat count moves by 20% or more against the count
stored on its subscription, the price difference for the rest of the month is
billed (or credited) as a separate proration record.
"""
from typing import Dict, Any, Optional
from decimal import Decimal
from datetime import datetime
from sqlalchemy.orm import Session
import logging

from ..billing_periods import billing_period_for, days_remaining_in_month
from ..db.models import OrganizationSubscription, BillingRecord, BillingRecordKind
from .billing_records import claim_billing_record, proration_key, tax_for
from .pricing_service import PricingService

logger = logging.getLogger(__name__)


class ProrationService:
    """
    Service for calculating and applying seat-count proration

    prorated = (new_final_price - old_final_price) x new_seats x days_remaining / 30
    """

    CHANGE_THRESHOLD = Decimal("0.20")
    # Fixed month length used for the ratio, regardless of the actual month
    PRORATION_BASIS_DAYS = 30
    MINIMUM_AMOUNT = Decimal("1")

    def __init__(self, db: Session, pricing_service: Optional[PricingService] = None):
        """Initialize proration service"""
        self.db = db
        self.pricing_service = pricing_service or PricingService(db)

    @classmethod
    def change_ratio(cls, old_seats: int, new_seats: int) -> Decimal:
        """Relative change of the seat count against the stored count"""
        if old_seats <= 0:
            return Decimal("1") if new_seats != old_seats else Decimal("0")
        return Decimal(abs(new_seats - old_seats)) / Decimal(old_seats)

    @classmethod
    def requires_proration(cls, old_seats: int, new_seats: int) -> bool:
        return cls.change_ratio(old_seats, new_seats) >= cls.CHANGE_THRESHOLD

    def calculate_proration(
        self,
        subscription: OrganizationSubscription,
        new_seat_count: int,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Calculate proration for a seat count change

        Returns:
            Dictionary with both prices, the ratio and the (unrounded) prorated amount
        """
        now = now or datetime.utcnow()
        old_seats = subscription.seat_count

        new_pricing = self.pricing_service.calculate_price(
            subscription.plan_id, new_seat_count, subscription.organization_id, now=now
        )
        old_pricing = self.pricing_service.calculate_price(
            subscription.plan_id, old_seats, subscription.organization_id, now=now
        )

        days_remaining = days_remaining_in_month(now)
        prorate_ratio = Decimal(days_remaining) / Decimal(self.PRORATION_BASIS_DAYS)
        price_difference = (new_pricing.final_price - old_pricing.final_price) * Decimal(new_seat_count)
        prorated_amount = price_difference * prorate_ratio

        return {
            "subscription_id": subscription.id,
            "organization_id": subscription.organization_id,
            "old_seat_count": old_seats,
            "new_seat_count": new_seat_count,
            "change_ratio": self.change_ratio(old_seats, new_seat_count),
            "old_final_price": old_pricing.final_price,
            "new_final_price": new_pricing.final_price,
            "days_remaining": days_remaining,
            "prorate_ratio": prorate_ratio,
            "prorated_amount": prorated_amount,
            "billing_period": billing_period_for(now),
        }

    def create_prorated_billing(
        self,
        subscription: OrganizationSubscription,
        new_seat_count: int,
        now: Optional[datetime] = None
    ) -> Optional[BillingRecord]:
        """
        Create a proration record for a significant seat change

        Changes below the threshold are ignored. At or above it the stored seat
        count moves to the new value; a record is written only when the prorated
        amount exceeds 1 in either direction.

        Returns:
            The proration BillingRecord, or None when nothing was billed
        """
        now = now or datetime.utcnow()
        old_seats = subscription.seat_count
        if not self.requires_proration(old_seats, new_seat_count):
            logger.debug(
                f"Seat change {old_seats} -> {new_seat_count} for subscription {subscription.id} "
                f"below proration threshold"
            )
            return None

        proration = self.calculate_proration(subscription, new_seat_count, now=now)
        prorated_amount = proration["prorated_amount"]

        record = None
        if abs(prorated_amount) > self.MINIMUM_AMOUNT:
            key = proration_key(subscription.id, old_seats, new_seat_count, now)
            subscription.seat_count = new_seat_count
            record, created = claim_billing_record(
                self.db,
                key,
                organization_id=subscription.organization_id,
                subscription_id=subscription.id,
                plan_id=subscription.plan_id,
                kind=BillingRecordKind.PRORATION.value,
                billing_period=proration["billing_period"],
                seat_count=new_seat_count,
                base_amount=prorated_amount,
                tax_amount=tax_for(prorated_amount),
            )
            if created:
                logger.info(
                    f"📊 Prorated billing created: £{record.base_amount} for organization "
                    f"{subscription.organization_id} ({old_seats} -> {new_seat_count} seats)"
                )
        else:
            logger.info(
                f"Prorated amount {prorated_amount:.2f} for subscription {subscription.id} "
                f"below minimum, not billed"
            )

        subscription.seat_count = new_seat_count
        self.db.commit()
        return record


def get_proration_service(db: Session) -> ProrationService:
    """Get proration service instance"""
    return ProrationService(db)
