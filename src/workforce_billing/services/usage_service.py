"""
Usage metering

Appends per-organization usage readings tagged with the calendar-month billing
period and reads back the latest reading per metric type.
"""
from typing import Dict, Optional, Union
from decimal import Decimal, InvalidOperation
from datetime import datetime
from sqlalchemy.orm import Session
import logging

from ..billing_periods import billing_period_for, is_valid_billing_period
from ..db.models import OrganizationSubscription, SubscriptionStatus, UsageMetric, MetricType
from ..exceptions import ValidationError

logger = logging.getLogger(__name__)


class UsageService:
    """Service for recording and reading metered usage"""

    def __init__(self, db: Session):
        """Initialize usage service"""
        self.db = db

    def record_usage(
        self,
        organization_id: int,
        metric_type: Union[str, MetricType],
        value: Union[int, float, str, Decimal],
        now: Optional[datetime] = None
    ) -> Optional[UsageMetric]:
        """
        Append a usage reading for the current billing period

        Usage for an organization without an active subscription is dropped
        (logged, not queued) and None is returned.

        Raises:
            ValidationError: Unknown metric type or negative value
        """
        metric_type = self._normalize_metric_type(metric_type)
        try:
            value = Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise ValidationError(f"Invalid usage value: {value}")
        if value < 0:
            raise ValidationError("Usage value must not be negative", details={"value": str(value)})

        now = now or datetime.utcnow()

        subscription = self.db.query(OrganizationSubscription).filter(
            OrganizationSubscription.organization_id == organization_id,
            OrganizationSubscription.status == SubscriptionStatus.ACTIVE.value
        ).first()

        if not subscription:
            logger.warning(
                f"No active subscription for organization {organization_id}; "
                f"dropping {metric_type} usage reading"
            )
            return None

        metric = UsageMetric(
            organization_id=organization_id,
            subscription_id=subscription.id,
            metric_type=metric_type,
            value=value,
            billing_period=billing_period_for(now),
            recorded_at=now,
        )
        self.db.add(metric)
        self.db.commit()
        self.db.refresh(metric)

        logger.debug(f"Recorded {metric_type}={value} for organization {organization_id} ({metric.billing_period})")
        return metric

    def get_organization_usage(
        self,
        organization_id: int,
        billing_period: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Dict[str, Decimal]:
        """
        Latest recorded value per metric type for a billing period

        Args:
            organization_id: Organization ID
            billing_period: "YYYY-MM" (defaults to the current month)

        Returns:
            {metric_type: value}; metric types with no readings are absent
        """
        if billing_period is None:
            billing_period = billing_period_for(now or datetime.utcnow())
        elif not is_valid_billing_period(billing_period):
            raise ValidationError(f"Invalid billing period: {billing_period}. Expected YYYY-MM")

        metrics = self.db.query(UsageMetric).filter(
            UsageMetric.organization_id == organization_id,
            UsageMetric.billing_period == billing_period
        ).order_by(UsageMetric.recorded_at, UsageMetric.id).all()

        usage: Dict[str, Decimal] = {}
        for metric in metrics:
            # Later readings replace earlier ones
            usage[metric.metric_type] = Decimal(metric.value)

        return usage

    @staticmethod
    def _normalize_metric_type(metric_type: Union[str, MetricType]) -> str:
        try:
            return MetricType(metric_type).value
        except ValueError:
            raise ValidationError(
                f"Unknown metric type: {metric_type}",
                details={"allowed": [m.value for m in MetricType]},
            )


def get_usage_service(db: Session) -> UsageService:
    """Get usage service instance"""
    return UsageService(db)
