"""
Usage-based overage billing

Bills metered usage beyond each feature's included free tier (API calls,
storage, generated reports).
"""
from typing import Dict, Any, Optional, Mapping
from decimal import Decimal
from datetime import datetime
from sqlalchemy.orm import Session
import logging

from ..billing_periods import billing_period_for
from ..db.models import OrganizationSubscription, BillingRecord, BillingRecordKind
from .billing_records import claim_billing_record, overage_key, tax_for
from .usage_service import UsageService

logger = logging.getLogger(__name__)


class UsageBillingService:
    """
    Service for overage billing

    Features:
    - Per-feature free-tier limits and per-unit rates
    - One overage record per subscription and billing period
    - Small overages (5 or less) are not billed
    """

    OVERAGE_RATES = {
        "api_calls": {"limit": Decimal("10000"), "rate": Decimal("0.001")},
        "storage_gb": {"limit": Decimal("10"), "rate": Decimal("1.99")},
        "reports_generated": {"limit": Decimal("100"), "rate": Decimal("0.50")},
    }
    MINIMUM_OVERAGE = Decimal("5")

    def __init__(self, db: Session, usage_service: Optional[UsageService] = None):
        """Initialize usage billing service"""
        self.db = db
        self.usage_service = usage_service or UsageService(db)

    @classmethod
    def calculate_overage(cls, usage: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Compute overage charges for a usage snapshot

        Args:
            usage: {metric_type: value}

        Returns:
            {"total": Decimal, "breakdown": {metric_type: Decimal}}; only metrics
            above their limit appear in the breakdown
        """
        breakdown: Dict[str, Decimal] = {}
        for metric, value in usage.items():
            rate = cls.OVERAGE_RATES.get(metric)
            if rate is None:
                continue
            value = Decimal(str(value))
            if value > rate["limit"]:
                breakdown[metric] = (value - rate["limit"]) * rate["rate"]

        total = sum(breakdown.values(), Decimal("0"))
        return {"total": total, "breakdown": breakdown}

    def calculate_overage_charges(
        self,
        subscription: OrganizationSubscription,
        usage: Optional[Mapping[str, Any]] = None,
        billing_period: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Optional[BillingRecord]:
        """
        Create an overage billing record for a subscription's period usage

        Args:
            subscription: Subscription being billed
            usage: Usage snapshot (read from metering when omitted)
            billing_period: "YYYY-MM" (defaults to the current month)

        Returns:
            The overage BillingRecord, or None when the total is 5 or less
        """
        billing_period = billing_period or billing_period_for(now or datetime.utcnow())
        if usage is None:
            usage = self.usage_service.get_organization_usage(
                subscription.organization_id, billing_period
            )

        overage = self.calculate_overage(usage)
        total = overage["total"]

        if total <= self.MINIMUM_OVERAGE:
            if total > 0:
                logger.info(
                    f"Overage {total} for organization {subscription.organization_id} "
                    f"({billing_period}) below minimum, not billed"
                )
            return None

        record, created = claim_billing_record(
            self.db,
            overage_key(subscription.id, billing_period),
            organization_id=subscription.organization_id,
            subscription_id=subscription.id,
            plan_id=subscription.plan_id,
            kind=BillingRecordKind.OVERAGE.value,
            billing_period=billing_period,
            seat_count=0,
            base_amount=total,
            tax_amount=tax_for(total),
        )
        if created:
            details = ", ".join(f"{metric}: £{amount:.2f}" for metric, amount in overage["breakdown"].items())
            logger.info(
                f"⚡ Overage charges created: £{record.base_amount} for organization "
                f"{subscription.organization_id} ({details})"
            )
        return record


def get_usage_billing_service(db: Session) -> UsageBillingService:
    """Get usage billing service instance"""
    return UsageBillingService(db)
