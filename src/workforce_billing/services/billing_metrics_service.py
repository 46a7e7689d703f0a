"""
Billing metrics and pricing insights for the operator dashboard
"""
from typing import Dict, Any, Optional, List
from decimal import Decimal
from datetime import datetime, timedelta
from sqlalchemy.orm import Session
from sqlalchemy import func
import logging

from ..billing_periods import previous_billing_period
from ..db.models import OrganizationSubscription, SubscriptionStatus, BillingRecord, BillingRecordStatus
from ..exceptions import NotFoundError
from .pricing_service import PricingService, round_money

logger = logging.getLogger(__name__)


class BillingMetricsService:
    """Revenue, churn and conversion figures derived from billing data"""

    CONVERSION_WINDOW_DAYS = 30
    LOW_CONVERSION_RATE = Decimal("0.1")
    HIGH_CONVERSION_RATE = Decimal("0.3")

    def __init__(self, db: Session, pricing_service: Optional[PricingService] = None):
        self.db = db
        self.pricing_service = pricing_service or PricingService(db)

    def get_billing_metrics(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Dashboard billing metrics

        Returns:
            total_revenue (paid records), active_subscriptions,
            average_seat_count, churn_rate (percent) and mrr
        """
        now = now or datetime.utcnow()

        total_revenue = self.db.query(func.sum(BillingRecord.total_amount)).filter(
            BillingRecord.status == BillingRecordStatus.PAID.value
        ).scalar() or Decimal("0")

        active = self.db.query(OrganizationSubscription).filter(
            OrganizationSubscription.status == SubscriptionStatus.ACTIVE.value
        ).all()

        average_seats = Decimal("0")
        if active:
            average_seats = round_money(Decimal(sum(s.seat_count for s in active)) / Decimal(len(active)))

        return {
            "total_revenue": round_money(total_revenue),
            "active_subscriptions": len(active),
            "average_seat_count": average_seats,
            "churn_rate": self.get_churn_rate(now),
            "mrr": self.get_mrr(active, now),
        }

    def get_churn_rate(self, now: Optional[datetime] = None) -> Decimal:
        """Cancellations since last month as a percentage of new plus cancelled subscriptions"""
        now = now or datetime.utcnow()
        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        last_month_start = datetime.strptime(previous_billing_period(now), "%Y-%m")

        new_this_month = self.db.query(func.count(OrganizationSubscription.id)).filter(
            OrganizationSubscription.status == SubscriptionStatus.ACTIVE.value,
            OrganizationSubscription.created_at >= month_start
        ).scalar() or 0
        cancelled = self.db.query(func.count(OrganizationSubscription.id)).filter(
            OrganizationSubscription.status == SubscriptionStatus.CANCELLED.value,
            OrganizationSubscription.cancelled_at >= last_month_start
        ).scalar() or 0

        if cancelled == 0:
            return Decimal("0")
        return round_money(Decimal(cancelled) / Decimal(new_this_month + cancelled) * 100)

    def get_mrr(self, active: Optional[List[OrganizationSubscription]] = None, now: Optional[datetime] = None) -> Decimal:
        """Monthly recurring revenue: current per-seat price x seats over active subscriptions"""
        if active is None:
            active = self.db.query(OrganizationSubscription).filter(
                OrganizationSubscription.status == SubscriptionStatus.ACTIVE.value
            ).all()

        mrr = Decimal("0")
        for subscription in active:
            try:
                pricing = self.pricing_service.calculate_price(
                    subscription.plan_id, subscription.seat_count, subscription.organization_id, now=now
                )
                seat_price = pricing.final_price
            except NotFoundError:
                # Retired plan: value the seats at its list price
                seat_price = Decimal(subscription.plan.base_price)
                logger.warning(
                    f"Plan {subscription.plan_id} is inactive; using list price for "
                    f"subscription {subscription.id} in MRR"
                )
            mrr += seat_price * subscription.seat_count
        return round_money(mrr)

    def get_conversion_rates(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Share of subscriptions created in the last 30 days that are now active"""
        now = now or datetime.utcnow()
        window_start = now - timedelta(days=self.CONVERSION_WINDOW_DAYS)

        total = self.db.query(func.count(OrganizationSubscription.id)).filter(
            OrganizationSubscription.created_at >= window_start
        ).scalar() or 0
        conversions = self.db.query(func.count(OrganizationSubscription.id)).filter(
            OrganizationSubscription.created_at >= window_start,
            OrganizationSubscription.status == SubscriptionStatus.ACTIVE.value
        ).scalar() or 0

        rate = Decimal(conversions) / Decimal(total) if total else Decimal("0")
        return {"conversion_rate": rate, "total_trials": total, "conversions": conversions}

    def optimize_pricing(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Pricing suggestions based on recent trial conversion"""
        conversion = self.get_conversion_rates(now)
        suggestions = []

        if conversion["total_trials"]:
            if conversion["conversion_rate"] < self.LOW_CONVERSION_RATE:
                suggestions.append("Consider reducing entry-level pricing - conversion rate is low")
            if conversion["conversion_rate"] > self.HIGH_CONVERSION_RATE:
                suggestions.append("Consider increasing prices - conversion rate is high")

        logger.info(f"🎯 Pricing optimization suggestions: {suggestions}")
        return {**conversion, "suggestions": suggestions}


def get_billing_metrics_service(db: Session) -> BillingMetricsService:
    """Get billing metrics service instance"""
    return BillingMetricsService(db)
