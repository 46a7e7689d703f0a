"""
Pricing plan and pricing rule models
"""
from sqlalchemy import Column, Integer, String, DateTime, Boolean, Numeric, Text, JSON, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from ..base import Base


class BillingCycle(str, enum.Enum):
    """Billing cycle enum"""
    MONTHLY = "monthly"
    ANNUAL = "annual"


class PricingPlan(Base):
    """Per-seat pricing plan"""
    __tablename__ = "pricing_plans"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, unique=True)
    description = Column(Text, nullable=True)
    base_price = Column(Numeric(10, 2), nullable=False)  # Per seat per month
    setup_fee = Column(Numeric(10, 2), nullable=False, default=0)
    features = Column(JSON, nullable=True)
    max_seats = Column(Integer, nullable=True)  # None = unlimited
    billing_cycle = Column(String, nullable=False, default=BillingCycle.MONTHLY.value)
    base_discount_percent = Column(Numeric(5, 2), nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    rules = relationship("PricingRule", back_populates="plan", cascade="all, delete-orphan")


class PricingRule(Base):
    """
    Conditional pricing rule attached to a plan

    condition: {"type": "employee_count", "operator": ">=", "value": 50}
    action: {"type": "discount", "value": 5} | {"type": "price_override", "value": 19.99}
            | {"type": "volume_discount", "per_seat_discount": 0.1, "max_discount": 20}
    """
    __tablename__ = "pricing_rules"

    id = Column(Integer, primary_key=True, index=True)
    plan_id = Column(Integer, ForeignKey("pricing_plans.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    condition = Column(JSON, nullable=False)
    action = Column(JSON, nullable=False)
    priority = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    valid_from = Column(DateTime, nullable=True)
    valid_until = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    plan = relationship("PricingPlan", back_populates="rules")
