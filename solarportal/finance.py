"""
Financial record generator.

A FinancialRecord is derived once, at signing, from the final price and the
commission rate in effect at that moment. The live rate lives in PlatformSetting
(falling back to the COMMISSION_RATE config value); changing it never touches
records that already exist.
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from .errors import PreconditionFailed, ValidationFailed
from .extensions import db
from .models import FinancialRecord, FinancialRecordStatus, PlatformSetting, money, to_decimal, utcnow
from .utils import parse_decimal

COMMISSION_RATE_KEY = "commission_rate"

RATE_QUANTUM = Decimal("0.0001")


def record_signing(project, final_price, winning_installer_id: int, commission_rate, signed_at=None) -> FinancialRecord:
    """Build the commission record for a signed deal (not added to the session)."""
    price = money(final_price)
    rate = to_decimal(commission_rate).quantize(RATE_QUANTUM)

    return FinancialRecord(
        project=project,
        project_city=project.city,
        installer_id=winning_installer_id,
        final_price=price,
        commission_rate=rate,
        commission_amount=money(price * rate),
        status=FinancialRecordStatus.PENDING,
        signed_at=signed_at or utcnow(),
    )


def mark_collected(record: FinancialRecord, paid_at=None) -> FinancialRecord:
    if record.status == FinancialRecordStatus.PAID:
        raise PreconditionFailed("mark collected", [FinancialRecordStatus.PENDING], record.status)
    record.status = FinancialRecordStatus.PAID
    record.paid_at = paid_at or utcnow()
    return record


def current_commission_rate() -> Decimal:
    setting = PlatformSetting.query.filter_by(key=COMMISSION_RATE_KEY).first()
    if setting is not None:
        return Decimal(setting.value)
    return to_decimal(current_app.config.get("COMMISSION_RATE", Decimal("0.10"))).quantize(RATE_QUANTUM)


def validate_commission_rate(rate) -> Decimal:
    value = parse_decimal(rate)
    if value is None or value < 0 or value >= 1:
        raise ValidationFailed("commission rate must be a fraction between 0 and 1 (e.g. 0.10)")
    return value.quantize(RATE_QUANTUM)


def set_commission_rate(rate) -> PlatformSetting:
    """Store a new live rate (adds to the session; the caller commits)."""
    value = validate_commission_rate(rate)
    setting = PlatformSetting.query.filter_by(key=COMMISSION_RATE_KEY).first()
    if setting is None:
        setting = PlatformSetting(key=COMMISSION_RATE_KEY, value=str(value))
        db.session.add(setting)
    else:
        setting.value = str(value)
    return setting


def summarize(records) -> dict:
    """Totals for the finance overview (pending vs collected commission)."""
    pending = Decimal("0.00")
    collected = Decimal("0.00")
    for record in records:
        if record.status == FinancialRecordStatus.PAID:
            collected += to_decimal(record.commission_amount)
        else:
            pending += to_decimal(record.commission_amount)
    return {"pending": money(pending), "collected": money(collected), "total": money(pending + collected)}
