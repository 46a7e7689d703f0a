"""
Pricing API routes - price calculation, subscriptions, usage and on-demand billing
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
import logging

from .billing_periods import billing_period_for
from .config import config
from .db.engine import get_db
from .exceptions import NotFoundError
from .schemas import (
    PriceBreakdown,
    PriceCalculationRequest,
    PricingRuleCreateRequest,
    SubscriptionCreateRequest,
    EmployeeCountUpdateRequest,
    UsageRecordRequest,
    PricingPlanResponse,
    PricingRuleResponse,
    SubscriptionResponse,
    BillingRecordResponse,
)
from .services.billing_gateway import BillingGateway, get_billing_gateway
from .services.billing_metrics_service import BillingMetricsService
from .services.billing_service import BillingService
from .services.pricing_service import PricingService
from .services.subscription_service import SubscriptionService
from .services.usage_service import UsageService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/pricing", tags=["pricing"])


def get_gateway() -> BillingGateway:
    """Payment gateway for the configured provider (overridable in tests)"""
    return get_billing_gateway(config.PAYMENT_PROVIDER, config)


class CancelRequest(BaseModel):
    """Request to cancel a subscription"""
    reason: Optional[str] = Field(None, max_length=500)


@router.get("/plans", response_model=List[PricingPlanResponse])
async def list_plans(db: Session = Depends(get_db)):
    """Active pricing plans in display order"""
    return PricingService(db).get_active_plans()


@router.get("/plans/{plan_id}/rules", response_model=List[PricingRuleResponse])
async def list_plan_rules(plan_id: int, db: Session = Depends(get_db)):
    pricing_service = PricingService(db)
    pricing_service.get_plan(plan_id)
    return pricing_service.get_plan_rules(plan_id)


@router.post("/calculate", response_model=PriceBreakdown)
async def calculate_price(request: PriceCalculationRequest, db: Session = Depends(get_db)):
    """Per-seat price for a plan and seat count"""
    return PricingService(db).calculate_price(
        request.plan_id, request.seat_count, request.organization_id
    )


@router.post("/rules", response_model=PricingRuleResponse, status_code=status.HTTP_201_CREATED)
async def create_rule(request: PricingRuleCreateRequest, db: Session = Depends(get_db)):
    return PricingService(db).create_rule(
        plan_id=request.plan_id,
        name=request.name,
        condition=request.condition,
        action=request.action,
        priority=request.priority,
        valid_from=request.valid_from,
        valid_until=request.valid_until,
    )


@router.post("/subscriptions", response_model=SubscriptionResponse, status_code=status.HTTP_201_CREATED)
async def create_subscription(
    request: SubscriptionCreateRequest,
    db: Session = Depends(get_db),
    gateway: BillingGateway = Depends(get_gateway),
):
    """Start a trial subscription for an organization"""
    return SubscriptionService(db, gateway=gateway).create_organization_subscription(
        request.organization_id, request.plan_id, request.seat_count
    )


@router.get("/organizations/{organization_id}/subscription", response_model=SubscriptionResponse)
async def get_subscription(organization_id: int, db: Session = Depends(get_db)):
    subscription = SubscriptionService(db).get_organization_subscription(organization_id)
    if not subscription:
        raise NotFoundError(f"No subscription found for organization {organization_id}")
    return subscription


@router.patch("/organizations/{organization_id}/employees")
async def update_employee_count(
    organization_id: int,
    request: EmployeeCountUpdateRequest,
    db: Session = Depends(get_db),
    gateway: BillingGateway = Depends(get_gateway),
):
    """Change the billed seat count; large increases are prorated immediately"""
    return SubscriptionService(db, gateway=gateway).update_employee_count(organization_id, request.seat_count)


@router.post("/organizations/{organization_id}/subscription/cancel", response_model=SubscriptionResponse)
async def cancel_subscription(
    organization_id: int,
    request: CancelRequest,
    db: Session = Depends(get_db),
):
    return SubscriptionService(db).cancel_subscription(organization_id, request.reason)


@router.get("/organizations/{organization_id}/usage")
async def get_usage(
    organization_id: int,
    billing_period: Optional[str] = Query(None, description="Billing period (YYYY-MM), defaults to current month"),
    db: Session = Depends(get_db),
):
    """Latest usage value per metric type for a billing period"""
    billing_period = billing_period or billing_period_for(datetime.utcnow())
    usage = UsageService(db).get_organization_usage(organization_id, billing_period)
    return {
        "organization_id": organization_id,
        "billing_period": billing_period,
        "usage": {metric: str(value) for metric, value in usage.items()},
    }


@router.post("/organizations/{organization_id}/usage", status_code=status.HTTP_201_CREATED)
async def record_usage(
    organization_id: int,
    request: UsageRecordRequest,
    db: Session = Depends(get_db),
):
    """Record a usage reading; dropped when the organization has no active subscription"""
    metric = UsageService(db).record_usage(organization_id, request.metric_type, request.value)
    if metric is None:
        return {"recorded": False, "message": "No active subscription; usage not recorded"}
    return {
        "recorded": True,
        "id": metric.id,
        "metric_type": metric.metric_type,
        "billing_period": metric.billing_period,
    }


@router.post("/organizations/{organization_id}/billing", response_model=BillingRecordResponse)
async def process_billing(
    organization_id: int,
    db: Session = Depends(get_db),
    gateway: BillingGateway = Depends(get_gateway),
):
    """Bill the organization's active subscription now"""
    return BillingService(db, gateway=gateway).process_billing(organization_id)


@router.post("/organizations/{organization_id}/usage-adjustment")
async def adjust_billing_for_usage(
    organization_id: int,
    db: Session = Depends(get_db),
    gateway: BillingGateway = Depends(get_gateway),
):
    """Prorate metered seat changes and bill last month's overage"""
    return BillingService(db, gateway=gateway).adjust_billing_for_usage(organization_id)


@router.get("/metrics")
async def billing_metrics(db: Session = Depends(get_db)):
    """Revenue, churn and MRR for the billing dashboard"""
    metrics = BillingMetricsService(db).get_billing_metrics()
    return {key: str(value) if not isinstance(value, int) else value for key, value in metrics.items()}


@router.get("/insights")
async def pricing_insights(db: Session = Depends(get_db)):
    insights = BillingMetricsService(db).optimize_pricing()
    insights["conversion_rate"] = str(insights["conversion_rate"])
    return insights
