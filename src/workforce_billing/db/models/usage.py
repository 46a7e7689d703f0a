"""
Usage metric time series
"""
from sqlalchemy import Column, Integer, String, DateTime, Numeric, ForeignKey, Index
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from ..base import Base


class MetricType(str, enum.Enum):
    """Metered usage types"""
    ACTIVE_EMPLOYEES = "active_employees"
    TIME_ENTRIES = "time_entries"
    REPORTS_GENERATED = "reports_generated"
    API_CALLS = "api_calls"
    STORAGE_GB = "storage_gb"


class UsageMetric(Base):
    """Append-only usage reading; corrections are new rows with a later recorded_at"""
    __tablename__ = "usage_metrics"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    subscription_id = Column(Integer, ForeignKey("organization_subscriptions.id"), nullable=False, index=True)
    metric_type = Column(String, nullable=False)
    value = Column(Numeric(15, 2), nullable=False)
    billing_period = Column(String, nullable=False)  # Format: "YYYY-MM"
    recorded_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("idx_usage_metrics_org_period", "organization_id", "billing_period", "metric_type"),
    )

    # Relationships
    organization = relationship("Organization", back_populates="usage_metrics")
