# tests/test_finance.py
from decimal import Decimal

import pytest

from solarportal import finance
from solarportal.errors import PreconditionFailed, ValidationFailed
from solarportal.models import FinancialRecord, FinancialRecordStatus, Project, ProjectStatus


def _project():
    return Project(id=5, city="Cluj-Napoca", county="Cluj", status=ProjectStatus.SIGNED)


def test_record_signing_snapshots_rate():
    record = finance.record_signing(_project(), Decimal("50000"), 10, Decimal("0.1"))
    assert record.final_price == Decimal("50000.00")
    assert record.commission_rate == Decimal("0.1000")
    assert record.commission_amount == Decimal("5000.00")
    assert record.project_city == "Cluj-Napoca"
    assert record.installer_id == 10
    assert record.status == FinancialRecordStatus.PENDING
    assert record.signed_at is not None


def test_commission_is_rounded_to_cents():
    record = finance.record_signing(_project(), Decimal("12345.67"), 10, Decimal("0.125"))
    assert record.commission_amount == Decimal("1543.21")


def test_mark_collected_once():
    record = finance.record_signing(_project(), Decimal("1000"), 10, Decimal("0.1"))
    finance.mark_collected(record)
    assert record.status == FinancialRecordStatus.PAID
    assert record.paid_at is not None

    with pytest.raises(PreconditionFailed):
        finance.mark_collected(record)


def test_summarize():
    records = [
        FinancialRecord(commission_amount=Decimal("100.00"), status=FinancialRecordStatus.PENDING),
        FinancialRecord(commission_amount=Decimal("50.50"), status=FinancialRecordStatus.PAID),
        FinancialRecord(commission_amount=Decimal("10.00"), status=FinancialRecordStatus.PENDING),
    ]
    assert finance.summarize(records) == {
        "pending": Decimal("110.00"),
        "collected": Decimal("50.50"),
        "total": Decimal("160.50"),
    }


@pytest.mark.parametrize("rate", ["1", "1.5", "-0.1", "abc", None])
def test_validate_commission_rate_rejects(rate):
    with pytest.raises(ValidationFailed):
        finance.validate_commission_rate(rate)


def test_validate_commission_rate_accepts_comma():
    assert finance.validate_commission_rate("0,15") == Decimal("0.1500")


def test_live_rate_falls_back_to_config(ctx):
    assert finance.current_commission_rate() == Decimal("0.1000")


def test_live_rate_from_setting(ctx):
    from solarportal.extensions import db

    finance.set_commission_rate("0.15")
    db.session.commit()
    assert finance.current_commission_rate() == Decimal("0.1500")

    finance.set_commission_rate("0.12")
    db.session.commit()
    assert finance.current_commission_rate() == Decimal("0.1200")
