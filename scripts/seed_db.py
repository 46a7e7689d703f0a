#!/usr/bin/env python
"""
Database seeding script
Populates the database with pricing plans and a demo organization for development
"""
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from workforce_billing.db.engine import SessionLocal
from workforce_billing.db.models import Organization
from workforce_billing.services.pricing_service import PricingService


def seed_database():
    """Seed database with default plans, volume discounts and a demo organization"""
    db = SessionLocal()

    try:
        pricing_service = PricingService(db)
        plans = pricing_service.initialize_default_plans()
        print(f"✓ {len(plans)} pricing plans available")

        for plan in plans:
            if plan.name in ("Professional", "Enterprise") and not pricing_service.get_plan_rules(plan.id):
                rules = pricing_service.create_volume_discount_rules(plan.id)
                print(f"✓ Created {len(rules)} volume discount rules for {plan.name}")

        if db.query(Organization).count() > 0:
            print("⚠️  Organizations already exist. Skipping demo organization.")
            return

        organization = Organization(name="Demo Workforce Ltd", billing_email="billing@example.com")
        db.add(organization)
        db.commit()
        print(f"✓ Created demo organization {organization.id}")
        print("\n✓ Database seeded successfully!")

    except Exception as e:
        db.rollback()
        print(f"✗ Error seeding database: {e}")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    seed_database()
