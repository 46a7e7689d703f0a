"""
Database models for the workforce billing engine
"""
from .organization import Organization
from .pricing import PricingPlan, PricingRule, BillingCycle
from .subscription import OrganizationSubscription, SubscriptionStatus, LIVE_STATUSES
from .usage import UsageMetric, MetricType
from .billing import BillingRecord, BillingRecordStatus, BillingRecordKind

__all__ = [
    "Organization",
    "PricingPlan",
    "PricingRule",
    "BillingCycle",
    "OrganizationSubscription",
    "SubscriptionStatus",
    "LIVE_STATUSES",
    "UsageMetric",
    "MetricType",
    "BillingRecord",
    "BillingRecordStatus",
    "BillingRecordKind",
]
