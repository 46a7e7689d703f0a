"""
Database module for the workforce billing engine
"""
from .engine import engine, SessionLocal, get_db
from .base import Base
from .models import (
    Organization,
    PricingPlan,
    PricingRule,
    OrganizationSubscription,
    UsageMetric,
    BillingRecord,
)

__all__ = [
    "engine",
    "SessionLocal",
    "get_db",
    "Base",
    "Organization",
    "PricingPlan",
    "PricingRule",
    "OrganizationSubscription",
    "UsageMetric",
    "BillingRecord",
]
