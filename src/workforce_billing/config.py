"""
Central configuration module for the workforce billing engine
Reads and validates environment variables with strict checks for production
"""
import os
import sys
from decimal import Decimal
from typing import Optional

# Load environment variables from .env file if it exists (dev only)
try:
    from dotenv import load_dotenv
    if os.getenv("ENV", "dev").lower() == "dev":
        load_dotenv()
except ImportError:
    pass


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Central configuration class with environment variable validation"""

    # Environment
    ENV: str = os.getenv("ENV", "dev").lower()

    # Database (PostgreSQL in staging/prod, SQLite allowed for dev/test)
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./workforce_billing.db")
    DB_POOL_SIZE: int = int(os.getenv("DB_POOL_SIZE", "10"))
    DB_MAX_OVERFLOW: int = int(os.getenv("DB_MAX_OVERFLOW", "5"))
    DB_POOL_RECYCLE: int = int(os.getenv("DB_POOL_RECYCLE", "900"))
    DB_POOL_TIMEOUT: int = int(os.getenv("DB_POOL_TIMEOUT", "30"))

    PORT: int = int(os.getenv("PORT", "8000"))

    # Payment provider: stripe or bank_transfer
    PAYMENT_PROVIDER: str = os.getenv("PAYMENT_PROVIDER", "stripe").lower()

    # Payment providers - Stripe
    STRIPE_SECRET_KEY: Optional[str] = os.getenv("STRIPE_SECRET_KEY")
    STRIPE_TEST_SECRET_KEY: Optional[str] = os.getenv("STRIPE_TEST_SECRET_KEY")

    # Bank Transfer
    BANK_ACCOUNT_NUMBER: Optional[str] = os.getenv("BANK_ACCOUNT_NUMBER")
    BANK_NAME: Optional[str] = os.getenv("BANK_NAME")
    BANK_ACCOUNT_NAME: Optional[str] = os.getenv("BANK_ACCOUNT_NAME")
    BANK_SORT_CODE: Optional[str] = os.getenv("BANK_SORT_CODE")

    # Billing
    BILLING_CURRENCY: str = os.getenv("BILLING_CURRENCY", "gbp").lower()
    BILLING_TAX_RATE: Decimal = Decimal(os.getenv("BILLING_TAX_RATE", "0.20"))
    TRIAL_DAYS: int = int(os.getenv("TRIAL_DAYS", "14"))
    PLATFORM_NAME: str = os.getenv("PLATFORM_NAME", "workforce_billing")

    # Billing automation scheduler
    ENABLE_BILLING_AUTOMATION: bool = _env_bool("ENABLE_BILLING_AUTOMATION")
    BILLING_INTERVAL_SECONDS: int = int(os.getenv("BILLING_INTERVAL_SECONDS", "3600"))
    BILLING_FIRST_RUN_DELAY_SECONDS: int = int(os.getenv("BILLING_FIRST_RUN_DELAY_SECONDS", "5"))

    # Build version (set during build/deploy)
    BUILD_VERSION: str = os.getenv("BUILD_VERSION", "dev")

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    def __init__(self):
        """Initialize configuration and validate required variables"""
        self._validate()

    def _validate(self):
        """Validate required configuration based on environment"""
        errors = []

        if self.ENV not in ["dev", "test", "staging", "prod"]:
            errors.append(f"Invalid ENV value: {self.ENV}. Must be 'dev', 'test', 'staging', or 'prod'")

        if not self.DATABASE_URL:
            errors.append("DATABASE_URL is required but not set")
        elif self.ENV in ["staging", "prod"] and not self.DATABASE_URL.startswith("postgresql"):
            errors.append(f"DATABASE_URL must be a PostgreSQL connection string in {self.ENV} (got: {self.DATABASE_URL[:30]}...)")

        if self.PAYMENT_PROVIDER not in ["stripe", "bank_transfer"]:
            errors.append(f"Invalid PAYMENT_PROVIDER: {self.PAYMENT_PROVIDER}. Must be 'stripe' or 'bank_transfer'")

        if self.ENV in ["staging", "prod"] and self.PAYMENT_PROVIDER == "stripe":
            stripe_key = self.STRIPE_SECRET_KEY if self.ENV == "prod" else self.STRIPE_TEST_SECRET_KEY
            if not stripe_key:
                errors.append(f"STRIPE_{'TEST_' if self.ENV == 'staging' else ''}SECRET_KEY is required when Stripe is the payment provider in {self.ENV}")

        if not Decimal("0") <= self.BILLING_TAX_RATE < Decimal("1"):
            errors.append(f"BILLING_TAX_RATE must be between 0 and 1 (got: {self.BILLING_TAX_RATE})")

        if self.BILLING_INTERVAL_SECONDS <= 0:
            errors.append("BILLING_INTERVAL_SECONDS must be positive")

        # Fail fast in staging/prod
        if errors and self.ENV in ["staging", "prod"]:
            print("=" * 60, file=sys.stderr)
            print("CONFIGURATION VALIDATION FAILED", file=sys.stderr)
            print("=" * 60, file=sys.stderr)
            for error in errors:
                print(f"  - {error}", file=sys.stderr)
            print("=" * 60, file=sys.stderr)
            sys.exit(1)

        # Warn in dev/test
        if errors:
            print("=" * 60, file=sys.stderr)
            print(f"CONFIGURATION WARNINGS ({self.ENV} mode - continuing)", file=sys.stderr)
            print("=" * 60, file=sys.stderr)
            for error in errors:
                print(f"  - {error}", file=sys.stderr)
            print("=" * 60, file=sys.stderr)

    def get_database_url(self) -> str:
        """Get database URL (alias for DATABASE_URL)"""
        return self.DATABASE_URL


# Create global config instance
config = Config()
