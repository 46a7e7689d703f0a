"""
Pydantic schemas for pricing rules, price breakdowns and API payloads

Rule conditions and actions are stored as JSON on PricingRule; they are
validated into the tagged variants below when a rule is created and again
when it is evaluated.
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter

from .db.models.usage import MetricType


class ConditionType(str, Enum):
    """Context value a rule condition is evaluated against"""
    EMPLOYEE_COUNT = "employee_count"
    ORGANIZATION_AGE = "organization_age"
    SUBSCRIPTION_DURATION = "subscription_duration"


class ComparisonOperator(str, Enum):
    GTE = ">="
    LTE = "<="
    GT = ">"
    LT = "<"
    EQ = "=="


class RuleCondition(BaseModel):
    """Numeric comparison of a context value against a threshold"""
    type: ConditionType
    operator: ComparisonOperator
    value: Decimal

    def evaluate(self, actual) -> bool:
        actual = Decimal(str(actual))
        if self.operator == ComparisonOperator.GTE:
            return actual >= self.value
        if self.operator == ComparisonOperator.LTE:
            return actual <= self.value
        if self.operator == ComparisonOperator.GT:
            return actual > self.value
        if self.operator == ComparisonOperator.LT:
            return actual < self.value
        return actual == self.value


class DiscountAction(BaseModel):
    """Add a percentage to the discount accumulator"""
    type: Literal["discount"]
    value: Decimal = Field(..., description="Discount percentage")


class PriceOverrideAction(BaseModel):
    """Replace the running per-seat base price"""
    type: Literal["price_override"]
    value: Decimal = Field(..., ge=0, description="New per-seat base price")


class VolumeDiscountAction(BaseModel):
    """Percentage discount that grows with seat count, capped at max_discount"""
    type: Literal["volume_discount"]
    per_seat_discount: Decimal = Field(
        ...,
        ge=0,
        validation_alias=AliasChoices("per_seat_discount", "perSeatDiscount", "perEmployeeDiscount"),
    )
    max_discount: Decimal = Field(
        Decimal("50"),
        ge=0,
        validation_alias=AliasChoices("max_discount", "maxDiscount"),
    )

    def discount_for(self, seat_count: int) -> Decimal:
        return min(self.max_discount, Decimal(seat_count) * self.per_seat_discount)


RuleAction = Annotated[
    Union[DiscountAction, PriceOverrideAction, VolumeDiscountAction],
    Field(discriminator="type"),
]

_rule_action_adapter = TypeAdapter(RuleAction)


def parse_rule_condition(data: Any) -> RuleCondition:
    """Validate a stored or submitted condition payload"""
    if isinstance(data, RuleCondition):
        return data
    return RuleCondition.model_validate(data)


def parse_rule_action(data: Any):
    """Validate a stored or submitted action payload into its variant"""
    if isinstance(data, (DiscountAction, PriceOverrideAction, VolumeDiscountAction)):
        return data
    return _rule_action_adapter.validate_python(data)


class PriceBreakdown(BaseModel):
    """Result of a price calculation (per seat)"""
    plan_id: int
    seat_count: int
    base_price: Decimal
    discount_percent: Decimal
    final_price: Decimal
    applied_rules: List[str] = Field(default_factory=list)


# API request / response models

class PriceCalculationRequest(BaseModel):
    plan_id: int
    seat_count: int = Field(..., ge=0)
    organization_id: Optional[int] = None


class PricingRuleCreateRequest(BaseModel):
    """Condition and action stay loose here; PricingService.create_rule validates them"""
    plan_id: int
    name: str = Field(..., min_length=1, max_length=200)
    condition: Dict[str, Any]
    action: Dict[str, Any]
    priority: int = 0
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None


class SubscriptionCreateRequest(BaseModel):
    organization_id: int
    plan_id: int
    seat_count: int = Field(1, ge=1)


class EmployeeCountUpdateRequest(BaseModel):
    seat_count: int = Field(..., ge=1)


class UsageRecordRequest(BaseModel):
    metric_type: MetricType
    value: Decimal = Field(..., ge=0)


class PricingPlanResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None
    base_price: Decimal
    setup_fee: Decimal
    features: Optional[List[Dict[str, Any]]] = None
    max_seats: Optional[int] = None
    billing_cycle: str
    base_discount_percent: Decimal


class PricingRuleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    plan_id: int
    name: str
    condition: Dict[str, Any]
    action: Dict[str, Any]
    priority: int
    is_active: bool
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None


class SubscriptionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    organization_id: int
    plan_id: int
    status: str
    seat_count: int
    current_period_start: datetime
    current_period_end: datetime
    trial_end: Optional[datetime] = None
    next_bill_date: Optional[datetime] = None
    last_billed_at: Optional[datetime] = None
    auto_renewal: bool


class BillingRecordResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    organization_id: int
    subscription_id: int
    kind: str
    billing_period: str
    seat_count: int
    base_amount: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    status: str
    external_invoice_ref: Optional[str] = None
    error_message: Optional[str] = None
