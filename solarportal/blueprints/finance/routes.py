"""
Finance (Admin Only).

Provides:
- /finance/records: commission records, optionally ?status=pending|paid
- /finance/records/<id>/collect: mark a commission as collected
- /finance/commission-rate: read / update the live rate

Audit:
- COLLECT and rate UPDATE logged (workflow.py)
"""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from ... import finance, repository, workflow
from ...errors import ValidationFailed
from ...models import FinancialRecordStatus
from ...security import admin_required
from ...serializers import financial_record_view
from ...utils import request_payload


finance_bp = Blueprint("finance", __name__, url_prefix="/finance")


@finance_bp.route("/records")
@login_required
@admin_required
def records():
    status = None
    raw = (request.args.get("status") or "").strip().lower()
    if raw:
        try:
            status = FinancialRecordStatus(raw)
        except ValueError:
            raise ValidationFailed(f"unknown record status: {raw}") from None

    items = repository.list_financial_records(status)
    return jsonify(
        {
            "records": [financial_record_view(r) for r in items],
            "totals": {k: str(v) for k, v in finance.summarize(items).items()},
        }
    )


@finance_bp.route("/records/<int:record_id>/collect", methods=["POST"])
@login_required
@admin_required
def collect(record_id: int):
    record = workflow.mark_collected(current_user, record_id)
    return jsonify(financial_record_view(record))


@finance_bp.route("/commission-rate", methods=["GET"])
@login_required
@admin_required
def get_commission_rate():
    return jsonify({"commission_rate": str(finance.current_commission_rate())})


@finance_bp.route("/commission-rate", methods=["PUT", "POST"])
@login_required
@admin_required
def update_commission_rate():
    """New rate applies to deals signed from now on; existing records keep theirs."""
    rate = workflow.update_commission_rate(current_user, request_payload().get("commission_rate"))
    return jsonify({"commission_rate": str(rate)})
