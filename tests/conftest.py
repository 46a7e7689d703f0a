"""
Pytest configuration and fixtures
"""
import pytest
import os
import sys
from datetime import datetime, timedelta
from decimal import Decimal
from pathlib import Path
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Add src to path
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Set test environment variables before importing
os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["PAYMENT_PROVIDER"] = "bank_transfer"
os.environ["ENABLE_BILLING_AUTOMATION"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"  # Reduce log noise in tests

# Import after setting env vars
from workforce_billing.app import create_app
from workforce_billing.db.base import Base
from workforce_billing.db.engine import get_db
from workforce_billing.db.models import (
    Organization,
    OrganizationSubscription,
    PricingPlan,
    SubscriptionStatus,
)
from workforce_billing import pricing_routes
from workforce_billing.services.billing_gateway import BankTransferGateway
from workforce_billing.services.metrics import get_metrics_collector
from workforce_billing.services.pricing_service import PricingService


@pytest.fixture(scope="function")
def test_engine():
    """In-memory SQLite engine shared by every connection of one test"""
    test_engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(bind=test_engine)

    yield test_engine

    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture(scope="function")
def session_factory(test_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(scope="function")
def db_session(session_factory):
    """Create a database session for each test"""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def reset_metrics():
    get_metrics_collector().reset()
    yield


@pytest.fixture
def gateway():
    """Bank transfer gateway (no network)"""
    return BankTransferGateway({
        "account_number": "12345678",
        "bank_name": "Test Bank",
        "account_name": "Workforce Billing",
        "sort_code": "12-34-56",
    })


@pytest.fixture
def plans(db_session):
    """Default Starter/Professional/Enterprise plans keyed by name"""
    return {plan.name: plan for plan in PricingService(db_session).initialize_default_plans()}


@pytest.fixture
def organization(db_session):
    """Create a test organization"""
    org = Organization(
        name="Acme Staffing",
        billing_email="billing@acme.test",
        created_at=datetime.utcnow() - timedelta(days=400),
    )
    db_session.add(org)
    db_session.commit()
    db_session.refresh(org)
    return org


@pytest.fixture
def make_plan(db_session):
    """Factory for plans with explicit prices"""
    def _make_plan(name="Custom", base_price="24.99", base_discount_percent="0", max_seats=None):
        plan = PricingPlan(
            name=name,
            base_price=Decimal(base_price),
            setup_fee=Decimal("0"),
            base_discount_percent=Decimal(base_discount_percent),
            max_seats=max_seats,
            billing_cycle="monthly",
            is_active=True,
        )
        db_session.add(plan)
        db_session.commit()
        db_session.refresh(plan)
        return plan
    return _make_plan


@pytest.fixture
def make_subscription(db_session):
    """Factory for subscriptions in any status"""
    def _make_subscription(organization, plan, status=SubscriptionStatus.ACTIVE.value, seat_count=10,
                           next_bill_date=None, customer_ref="cus_test123", **fields):
        now = datetime.utcnow()
        subscription = OrganizationSubscription(
            organization_id=organization.id,
            plan_id=plan.id,
            status=status,
            seat_count=seat_count,
            external_customer_ref=customer_ref,
            current_period_start=fields.pop("current_period_start", now - timedelta(days=10)),
            current_period_end=fields.pop("current_period_end", now + timedelta(days=20)),
            next_bill_date=next_bill_date,
            auto_renewal=fields.pop("auto_renewal", True),
            **fields,
        )
        db_session.add(subscription)
        db_session.commit()
        db_session.refresh(subscription)
        return subscription
    return _make_subscription


@pytest.fixture(scope="function")
def client(db_session, gateway):
    """Create test client"""
    app = create_app(enable_automation=False, seed_plans=False)

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[pricing_routes.get_gateway] = lambda: gateway

    yield TestClient(app)

    app.dependency_overrides.clear()
