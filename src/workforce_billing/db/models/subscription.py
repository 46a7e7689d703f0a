"""
Organization subscription model
"""
from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from ..base import Base


class SubscriptionStatus(str, enum.Enum):
    """Subscription status enum"""
    TRIAL = "trial"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    UNPAID = "unpaid"
    CANCELLED = "cancelled"
    INCOMPLETE = "incomplete"


# Statuses that count towards the one-live-subscription-per-organization rule
LIVE_STATUSES = (
    SubscriptionStatus.TRIAL.value,
    SubscriptionStatus.ACTIVE.value,
    SubscriptionStatus.PAST_DUE.value,
    SubscriptionStatus.INCOMPLETE.value,
)


class OrganizationSubscription(Base):
    """Per-organization seat subscription"""
    __tablename__ = "organization_subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    plan_id = Column(Integer, ForeignKey("pricing_plans.id"), nullable=False, index=True)
    external_subscription_ref = Column(String, nullable=True, unique=True)
    external_customer_ref = Column(String, nullable=True, index=True)
    status = Column(String, nullable=False, default=SubscriptionStatus.TRIAL.value, index=True)
    current_period_start = Column(DateTime, nullable=False)
    current_period_end = Column(DateTime, nullable=False, index=True)
    trial_start = Column(DateTime, nullable=True)
    trial_end = Column(DateTime, nullable=True, index=True)
    seat_count = Column(Integer, nullable=False, default=1)
    last_billed_at = Column(DateTime, nullable=True)
    next_bill_date = Column(DateTime, nullable=True, index=True)
    auto_renewal = Column(Boolean, nullable=False, default=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancel_reason = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    organization = relationship("Organization", back_populates="subscriptions")
    plan = relationship("PricingPlan")
    billing_records = relationship("BillingRecord", back_populates="subscription")
