"""
Pricing calculation engine

Evaluates a plan's active pricing rules against an organization context and
returns a per-seat price breakdown. Rules run in descending priority order:
discounts and volume discounts accumulate, while a price override replaces the
running base price, so the override evaluated last (lowest priority) wins.
"""
from typing import Dict, Any, Optional, List
from decimal import Decimal, ROUND_HALF_UP
from datetime import datetime
from sqlalchemy.orm import Session
from sqlalchemy import or_
from pydantic import ValidationError as PydanticValidationError
import logging

from ..db.models import Organization, PricingPlan, PricingRule, OrganizationSubscription
from ..exceptions import NotFoundError, ValidationError
from ..schemas import (
    ConditionType,
    DiscountAction,
    PriceBreakdown,
    PriceOverrideAction,
    VolumeDiscountAction,
    parse_rule_action,
    parse_rule_condition,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def round_money(amount: Decimal) -> Decimal:
    """Round a currency amount to 2 decimal places (half up)"""
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


class PricingService:
    """Rule-based per-seat pricing"""

    DEFAULT_PLANS = [
        {
            "name": "Starter",
            "description": "Perfect for small teams getting started",
            "base_price": Decimal("12.99"),
            "setup_fee": Decimal("0"),
            "features": [
                {"name": "Time Tracking", "included": True},
                {"name": "Basic Scheduling", "included": True},
                {"name": "Employee Management", "included": True},
                {"name": "Basic Reports", "included": True},
                {"name": "Email Support", "included": True},
                {"name": "Advanced Analytics", "included": False},
                {"name": "API Access", "included": False},
                {"name": "Custom Integrations", "included": False},
            ],
            "max_seats": 25,
            "base_discount_percent": Decimal("0"),
            "sort_order": 1,
        },
        {
            "name": "Professional",
            "description": "Advanced features for growing businesses",
            "base_price": Decimal("24.99"),
            "setup_fee": Decimal("99"),
            "features": [
                {"name": "Time Tracking", "included": True},
                {"name": "Advanced Scheduling", "included": True},
                {"name": "Employee Management", "included": True},
                {"name": "Advanced Reports", "included": True},
                {"name": "Priority Support", "included": True},
                {"name": "Advanced Analytics", "included": True},
                {"name": "API Access", "included": True},
                {"name": "Payroll Integration", "included": True},
                {"name": "Custom Integrations", "included": False},
            ],
            "max_seats": 250,
            "base_discount_percent": Decimal("10"),
            "sort_order": 2,
        },
        {
            "name": "Enterprise",
            "description": "Complete solution for large organizations",
            "base_price": Decimal("34.99"),
            "setup_fee": Decimal("499"),
            "features": [
                {"name": "Everything in Professional", "included": True},
                {"name": "Custom Integrations", "included": True},
                {"name": "Dedicated Support", "included": True},
                {"name": "Advanced Security", "included": True},
                {"name": "Custom Branding", "included": True},
                {"name": "SLA Guarantee", "included": True},
                {"name": "Training & Onboarding", "included": True},
                {"name": "Data Migration", "included": True},
            ],
            "max_seats": None,
            "base_discount_percent": Decimal("15"),
            "sort_order": 3,
        },
    ]

    # (minimum seats, discount percent, priority)
    VOLUME_DISCOUNT_TIERS = [
        (50, Decimal("5"), 10),
        (100, Decimal("10"), 20),
        (250, Decimal("20"), 30),
    ]

    def __init__(self, db: Session):
        """Initialize pricing service"""
        self.db = db

    def get_active_plans(self) -> List[PricingPlan]:
        """Active plans in display order"""
        return self.db.query(PricingPlan).filter(
            PricingPlan.is_active == True
        ).order_by(PricingPlan.sort_order, PricingPlan.id).all()

    def get_plan(self, plan_id: int) -> PricingPlan:
        """
        Resolve an active plan

        Raises:
            NotFoundError: If the plan does not exist or is inactive
        """
        plan = self.db.query(PricingPlan).filter(
            PricingPlan.id == plan_id,
            PricingPlan.is_active == True
        ).first()

        if not plan:
            raise NotFoundError(f"Pricing plan {plan_id} not found", details={"plan_id": plan_id})

        return plan

    def get_plan_rules(self, plan_id: int, now: Optional[datetime] = None) -> List[PricingRule]:
        """Active, currently valid rules for a plan in evaluation order"""
        now = now or datetime.utcnow()
        return self.db.query(PricingRule).filter(
            PricingRule.plan_id == plan_id,
            PricingRule.is_active == True,
            or_(PricingRule.valid_from.is_(None), PricingRule.valid_from <= now),
            or_(PricingRule.valid_until.is_(None), PricingRule.valid_until >= now),
        ).order_by(PricingRule.priority.desc(), PricingRule.id).all()

    def calculate_price(
        self,
        plan_id: int,
        seat_count: int,
        organization_id: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> PriceBreakdown:
        """
        Calculate the per-seat price for a plan

        Args:
            plan_id: Pricing plan ID
            seat_count: Number of billable seats
            organization_id: Organization whose age/subscription history feeds
                the organization_age and subscription_duration conditions
            now: Evaluation time (defaults to utcnow)

        Returns:
            PriceBreakdown with the (possibly overridden) base price, the total
            discount percentage, the final price and applied rule descriptions
        """
        if seat_count < 0:
            raise ValidationError("seat_count must not be negative", details={"seat_count": seat_count})

        now = now or datetime.utcnow()
        plan = self.get_plan(plan_id)

        base_price = Decimal(plan.base_price)
        total_discount = Decimal("0")
        applied_rules: List[str] = []
        context: Dict[ConditionType, Optional[int]] = {ConditionType.EMPLOYEE_COUNT: seat_count}

        for rule in self.get_plan_rules(plan.id, now):
            try:
                condition = parse_rule_condition(rule.condition)
                action = parse_rule_action(rule.action)
            except PydanticValidationError as e:
                logger.warning(f"Skipping malformed pricing rule {rule.id} ({rule.name}): {e}")
                continue

            if condition.type not in context:
                context[condition.type] = self._context_value(condition.type, organization_id, now)
            actual = context[condition.type]
            if actual is None or not condition.evaluate(actual):
                continue

            if isinstance(action, DiscountAction):
                total_discount += action.value
                applied_rules.append(f"{rule.name}: {action.value}% discount")
            elif isinstance(action, PriceOverrideAction):
                base_price = action.value
                applied_rules.append(f"{rule.name}: Price set to £{action.value}")
            elif isinstance(action, VolumeDiscountAction):
                volume_discount = action.discount_for(seat_count)
                total_discount += volume_discount
                applied_rules.append(f"{rule.name}: {volume_discount}% volume discount")

        total_discount += Decimal(plan.base_discount_percent or 0)

        final_price = base_price * (Decimal("1") - total_discount / Decimal("100"))
        final_price = round_money(max(Decimal("0"), final_price))

        if applied_rules:
            logger.debug(f"Plan {plan.id} x {seat_count} seats applied rules: {applied_rules}")

        return PriceBreakdown(
            plan_id=plan.id,
            seat_count=seat_count,
            base_price=base_price,
            discount_percent=total_discount,
            final_price=final_price,
            applied_rules=applied_rules,
        )

    def _context_value(
        self,
        condition_type: ConditionType,
        organization_id: Optional[int],
        now: datetime
    ) -> Optional[int]:
        """Days-based context values; None means the condition cannot be evaluated"""
        if organization_id is None:
            return None

        if condition_type == ConditionType.ORGANIZATION_AGE:
            organization = self.db.query(Organization).filter(
                Organization.id == organization_id
            ).first()
            if not organization:
                return 0
            return max(0, (now - organization.created_at).days)

        if condition_type == ConditionType.SUBSCRIPTION_DURATION:
            subscription = self.db.query(OrganizationSubscription).filter(
                OrganizationSubscription.organization_id == organization_id
            ).order_by(OrganizationSubscription.created_at.desc(), OrganizationSubscription.id.desc()).first()
            if not subscription:
                return 0
            return max(0, (now - subscription.created_at).days)

        return None

    def create_rule(
        self,
        plan_id: int,
        name: str,
        condition: Dict[str, Any],
        action: Dict[str, Any],
        priority: int = 0,
        valid_from: Optional[datetime] = None,
        valid_until: Optional[datetime] = None
    ) -> PricingRule:
        """
        Create a pricing rule after validating its condition and action payloads

        Raises:
            NotFoundError: If the plan does not exist
            ValidationError: If the condition/action payload is malformed
        """
        plan = self.get_plan(plan_id)

        try:
            parsed_condition = parse_rule_condition(condition)
            parsed_action = parse_rule_action(action)
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid pricing rule '{name}'",
                details={"errors": [{"loc": list(err["loc"]), "msg": err["msg"]} for err in e.errors()]},
            )

        if valid_from and valid_until and valid_from > valid_until:
            raise ValidationError("valid_from must be before valid_until")

        rule = PricingRule(
            plan_id=plan.id,
            name=name,
            condition=parsed_condition.model_dump(mode="json"),
            action=parsed_action.model_dump(mode="json"),
            priority=priority,
            is_active=True,
            valid_from=valid_from,
            valid_until=valid_until,
        )
        self.db.add(rule)
        self.db.commit()
        self.db.refresh(rule)

        logger.info(f"Created pricing rule {rule.id} '{name}' for plan {plan.id} (priority {priority})")
        return rule

    def create_volume_discount_rules(self, plan_id: int) -> List[PricingRule]:
        """Seed the standard tiered volume discounts (50+, 100+, 250+ seats)"""
        rules = []
        for min_seats, percent, priority in self.VOLUME_DISCOUNT_TIERS:
            rules.append(self.create_rule(
                plan_id=plan_id,
                name=f"Volume Discount {min_seats}+",
                condition={"type": "employee_count", "operator": ">=", "value": min_seats},
                action={"type": "discount", "value": percent},
                priority=priority,
            ))
        return rules

    def initialize_default_plans(self) -> List[PricingPlan]:
        """Seed Starter/Professional/Enterprise plans if no plans exist yet"""
        if self.db.query(PricingPlan).first():
            return self.get_active_plans()

        for plan_data in self.DEFAULT_PLANS:
            self.db.add(PricingPlan(billing_cycle="monthly", is_active=True, **plan_data))
        self.db.commit()

        logger.info("✓ Default pricing plans initialized")
        return self.get_active_plans()


def get_pricing_service(db: Session) -> PricingService:
    """Get pricing service instance"""
    return PricingService(db)
