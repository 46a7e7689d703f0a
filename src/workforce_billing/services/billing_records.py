"""
Idempotent creation of billing records

Every record written by the engine carries an idempotency key backed by a
unique constraint, so a repeated cycle, proration or overage run finds the
existing record instead of billing twice.
"""
from typing import Optional, Tuple
from decimal import Decimal
from datetime import datetime
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
import logging

from ..billing_periods import billing_period_for
from ..config import config
from ..db.models import BillingRecord, BillingRecordStatus
from .metrics import increment_counter
from .pricing_service import round_money

logger = logging.getLogger(__name__)


def cycle_key(subscription_id: int, billing_period: str) -> str:
    return f"cycle:{subscription_id}:{billing_period}"


def overage_key(subscription_id: int, billing_period: str) -> str:
    return f"overage:{subscription_id}:{billing_period}"


def proration_key(subscription_id: int, old_seats: int, new_seats: int, changed_at: datetime) -> str:
    """One key per seat change event; only a replay of the same change collides"""
    return (
        f"proration:{subscription_id}:{billing_period_for(changed_at)}:"
        f"{old_seats}:{new_seats}:{changed_at:%Y%m%dT%H%M%S%f}"
    )


def tax_for(amount: Decimal) -> Decimal:
    """Flat VAT on a billed amount"""
    return round_money(Decimal(amount) * config.BILLING_TAX_RATE)


def find_billing_record(db: Session, idempotency_key: str) -> Optional[BillingRecord]:
    return db.query(BillingRecord).filter(
        BillingRecord.idempotency_key == idempotency_key
    ).first()


def claim_billing_record(db: Session, idempotency_key: str, **fields) -> Tuple[BillingRecord, bool]:
    """
    Return the record for ``idempotency_key``, creating it if needed

    The record is committed before it is returned so it survives a crash in
    any later step (e.g. the gateway call).

    Returns:
        (record, created) where created is False when an earlier run already
        wrote the record
    """
    existing = find_billing_record(db, idempotency_key)
    if existing:
        logger.info(f"Billing record {existing.id} already exists for {idempotency_key}")
        return existing, False

    base_amount = round_money(fields.pop("base_amount"))
    discount_amount = round_money(fields.pop("discount_amount", Decimal("0")))
    tax_amount = round_money(fields.pop("tax_amount", Decimal("0")))

    record = BillingRecord(
        idempotency_key=idempotency_key,
        base_amount=base_amount,
        discount_amount=discount_amount,
        tax_amount=tax_amount,
        total_amount=base_amount - discount_amount + tax_amount,
        status=BillingRecordStatus.PENDING.value,
        **fields,
    )
    db.add(record)
    try:
        db.commit()
    except IntegrityError:
        # Another run claimed the key between our read and the insert
        db.rollback()
        existing = find_billing_record(db, idempotency_key)
        if existing is None:
            raise
        logger.info(f"Billing record {existing.id} was claimed concurrently for {idempotency_key}")
        return existing, False

    db.refresh(record)
    increment_counter("billing_records_created_total", labels={"kind": record.kind})
    logger.info(
        f"Created {record.kind} billing record {record.id} for organization {record.organization_id}: "
        f"total {record.total_amount} ({idempotency_key})"
    )
    return record, True
