"""
Billing record model
"""
from sqlalchemy import Column, Integer, String, DateTime, Numeric, Text, ForeignKey, Index
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from ..base import Base


class BillingRecordStatus(str, enum.Enum):
    """Billing record status enum"""
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"
    DISPUTED = "disputed"


class BillingRecordKind(str, enum.Enum):
    """What produced the billing record"""
    CYCLE = "cycle"
    PRORATION = "proration"
    OVERAGE = "overage"


class BillingRecord(Base):
    """
    Amount owed by an organization for one billing event

    total_amount = base_amount - discount_amount + tax_amount, fixed at creation.
    """
    __tablename__ = "billing_records"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    subscription_id = Column(Integer, ForeignKey("organization_subscriptions.id"), nullable=False, index=True)
    plan_id = Column(Integer, ForeignKey("pricing_plans.id"), nullable=False)
    kind = Column(String, nullable=False, default=BillingRecordKind.CYCLE.value)
    billing_period = Column(String, nullable=False)  # Format: "YYYY-MM"
    seat_count = Column(Integer, nullable=False)
    base_amount = Column(Numeric(10, 2), nullable=False)
    discount_amount = Column(Numeric(10, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(10, 2), nullable=False, default=0)
    total_amount = Column(Numeric(10, 2), nullable=False)
    idempotency_key = Column(String, nullable=False, unique=True)
    external_invoice_ref = Column(String, nullable=True, index=True)
    status = Column(String, nullable=False, default=BillingRecordStatus.PENDING.value, index=True)
    error_message = Column(Text, nullable=True)
    paid_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("idx_billing_records_org_period", "organization_id", "billing_period"),
    )

    # Relationships
    organization = relationship("Organization", back_populates="billing_records")
    subscription = relationship("OrganizationSubscription", back_populates="billing_records")
