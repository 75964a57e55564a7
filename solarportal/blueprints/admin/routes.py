"""
solarportal/blueprints/admin/routes.py

Admin Routes – Platform Administration

Includes:
- User management (list, create admins, edit profiles, change account status)
- Audit history
- Reference catalogs (roof types, equipment brands and models)

NOTES:
- Clients are never trusted. All validations happen server-side.
- Audit must be recorded in the same transaction as the data change.
  Pattern: db.session.flush() -> log_action(...) -> db.session.commit()
"""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from ... import repository, workflow
from ...audit import history, log_action, serialize_model
from ...errors import NotFound, ValidationFailed
from ...extensions import db
from ...models import (
    BatteryModel,
    EquipmentBrand,
    EquipmentType,
    InverterModel,
    PanelModel,
    Role,
    RoofType,
)
from ...security import admin_required
from ...serializers import audit_entry_view, user_summary
from ...utils import parse_decimal, parse_optional_int, request_payload, require_text

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")


def _decimal_field(data, field: str):
    value = parse_decimal(data.get(field))
    if value is None or value <= 0:
        raise ValidationFailed(f"{field} must be a positive number")
    return value


# -------------------------------------------------------
# USERS
# -------------------------------------------------------
@admin_bp.route("/users")
@login_required
@admin_required
def users():
    role = None
    raw = (request.args.get("role") or "").strip().lower()
    if raw:
        try:
            role = Role(raw)
        except ValueError:
            raise ValidationFailed(f"unknown role: {raw}") from None
    return jsonify([user_summary(u, current_user) for u in repository.list_users(role)])


@admin_bp.route("/users", methods=["POST"])
@login_required
@admin_required
def create_user():
    """Create any account, including further admins (payload with "permissions")."""
    user = workflow.register_user(request_payload(), actor=current_user)
    return jsonify(user_summary(user, current_user)), 201


@admin_bp.route("/users/<int:user_id>", methods=["PUT", "PATCH"])
@login_required
@admin_required
def edit_user(user_id: int):
    user = workflow.update_user_profile(current_user, user_id, request_payload())
    return jsonify(user_summary(user, current_user))


@admin_bp.route("/users/<int:user_id>/status", methods=["PUT", "POST"])
@login_required
@admin_required
def user_status(user_id: int):
    """Hold, delete, re-activate or mark an account as pending verification."""
    user = workflow.update_user_status(current_user, user_id, request_payload().get("status"))
    return jsonify(user_summary(user, current_user))


# -------------------------------------------------------
# AUDIT HISTORY
# -------------------------------------------------------
@admin_bp.route("/history")
@login_required
@admin_required
def audit_history():
    entries = history(
        entity_type=(request.args.get("entity_type") or "").strip() or None,
        entity_id=parse_optional_int(request.args.get("entity_id")),
        limit=parse_optional_int(request.args.get("limit")) or 200,
    )
    return jsonify([audit_entry_view(e) for e in entries])


# -------------------------------------------------------
# CATALOG
# -------------------------------------------------------
@admin_bp.route("/catalog")
@login_required
def catalog():
    """Catalog is readable by every logged-in user (forms need it)."""
    return jsonify(
        {
            "roof_types": [{"id": r.id, "name": r.name} for r in RoofType.query.order_by(RoofType.name).all()],
            "brands": [
                {"id": b.id, "name": b.name, "type": b.type.value}
                for b in EquipmentBrand.query.order_by(EquipmentBrand.type, EquipmentBrand.name).all()
            ],
            "panel_models": [
                {"id": m.id, "brand_id": m.brand_id, "name": m.name, "wattage": m.wattage, "efficiency": str(m.efficiency)}
                for m in PanelModel.query.order_by(PanelModel.name).all()
            ],
            "inverter_models": [
                {"id": m.id, "brand_id": m.brand_id, "name": m.name, "efficiency": str(m.efficiency)}
                for m in InverterModel.query.order_by(InverterModel.name).all()
            ],
            "battery_models": [
                {
                    "id": m.id,
                    "brand_id": m.brand_id,
                    "name": m.name,
                    "capacity_kwh": str(m.capacity_kwh),
                    "efficiency": str(m.efficiency),
                }
                for m in BatteryModel.query.order_by(BatteryModel.name).all()
            ],
        }
    )


@admin_bp.route("/roof-types", methods=["POST"])
@login_required
@admin_required
def roof_type_create():
    name = require_text(request_payload().get("name"), "name")
    if RoofType.query.filter_by(name=name).first():
        raise ValidationFailed("roof type already exists")

    roof = RoofType(name=name)
    db.session.add(roof)
    db.session.flush()

    log_action(roof, "CREATE", actor=current_user, after=serialize_model(roof))
    db.session.commit()
    return jsonify({"id": roof.id, "name": roof.name}), 201


@admin_bp.route("/roof-types/<int:roof_type_id>", methods=["DELETE"])
@login_required
@admin_required
def roof_type_delete(roof_type_id: int):
    """Projects keep working: the FK nulls their roof_type_id where FKs are enforced."""
    roof = db.session.get(RoofType, roof_type_id)
    if roof is None:
        raise NotFound("roof type", roof_type_id)
    before = serialize_model(roof)

    db.session.delete(roof)
    db.session.flush()

    log_action(roof, "DELETE", actor=current_user, before=before, after=None)
    db.session.commit()
    return jsonify({"ok": True})


@admin_bp.route("/brands", methods=["POST"])
@login_required
@admin_required
def brand_create():
    data = request_payload()
    name = require_text(data.get("name"), "name")
    try:
        type_ = EquipmentType((data.get("type") or "").strip().lower())
    except ValueError:
        raise ValidationFailed("type must be panel, inverter or battery") from None

    if EquipmentBrand.query.filter_by(name=name, type=type_).first():
        raise ValidationFailed("brand already exists")

    brand = EquipmentBrand(name=name, type=type_)
    db.session.add(brand)
    db.session.flush()

    log_action(brand, "CREATE", actor=current_user, after=serialize_model(brand))
    db.session.commit()
    return jsonify({"id": brand.id, "name": brand.name, "type": brand.type.value}), 201


@admin_bp.route("/models", methods=["POST"])
@login_required
@admin_required
def model_create():
    """Add a panel / inverter / battery model under a brand of the same type."""
    data = request_payload()
    brand = db.session.get(EquipmentBrand, parse_optional_int(data.get("brand_id")))
    if brand is None:
        raise NotFound("brand", data.get("brand_id"))
    name = require_text(data.get("name"), "name")
    efficiency = _decimal_field(data, "efficiency")

    if brand.type == EquipmentType.PANEL:
        wattage = parse_optional_int(data.get("wattage"))
        if not wattage or wattage <= 0:
            raise ValidationFailed("wattage must be a positive integer")
        model = PanelModel(brand_id=brand.id, name=name, wattage=wattage, efficiency=efficiency)
    elif brand.type == EquipmentType.INVERTER:
        model = InverterModel(brand_id=brand.id, name=name, efficiency=efficiency)
    else:
        model = BatteryModel(
            brand_id=brand.id,
            name=name,
            capacity_kwh=_decimal_field(data, "capacity_kwh"),
            efficiency=efficiency,
        )

    db.session.add(model)
    db.session.flush()

    log_action(model, "CREATE", actor=current_user, after=serialize_model(model))
    db.session.commit()
    return jsonify({"id": model.id, "brand_id": brand.id, "name": model.name, "type": brand.type.value}), 201
