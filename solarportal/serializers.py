"""
JSON views of domain objects.

SECURITY NOTE:
- Every field that is gated (homeowner contact, installer phone, quote details)
  is decided here through visibility.py, based on the VIEWER, never the client.
- Money is rendered as strings to keep Decimal precision on the wire.
"""

from __future__ import annotations

import json

from . import visibility
from .models import Role


def _money(value):
    return None if value is None else str(value)


def _iso(value):
    return value.isoformat() if value is not None else None


def _viewer(viewer):
    """(role, id) of the viewing user, (None, None) when anonymous."""
    if viewer is None or not getattr(viewer, "is_authenticated", False):
        return None, None
    return viewer.role, viewer.id


def user_summary(user, viewer=None) -> dict:
    role, viewer_id = _viewer(viewer)
    data = {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role.value,
        "status": user.status.value,
    }
    if user.role == Role.INSTALLER:
        data["service_counties"] = user.service_counties
        data["registration_number"] = user.registration_number
        data["license_number"] = user.license_number
        data["about"] = user.about
        if visibility.can_see_phone(user, role, viewer_id):
            data["phone"] = user.phone
    elif user.role == Role.HOMEOWNER:
        # homeowners only see their own phone here; project views gate it per project
        if role == Role.ADMIN or viewer_id == user.id:
            data["phone"] = user.phone
    elif user.role == Role.ADMIN:
        data["title"] = user.title
    return data


def quote_view(quote, project, viewer=None) -> dict:
    role, viewer_id = _viewer(viewer)
    data = {
        "id": quote.id,
        "project_id": project.id,
        "installer_id": quote.installer_id,
        "installer_name": quote.installer.name if quote.installer else None,
        "position": quote.position,
        "revision": quote.revision,
        "outcome": visibility.quote_outcome(project, quote.installer_id),
    }
    if not visibility.can_see_quote_details(quote, project, role, viewer_id):
        return data

    breakdown = quote.cost_breakdown
    data.update(
        {
            "price": _money(quote.price),
            "price_without_battery": _money(quote.price_without_battery),
            "system_size_kw": _money(quote.system_size_kw),
            "panel_model_id": quote.panel_model_id,
            "inverter_model_id": quote.inverter_model_id,
            "battery_model_id": quote.battery_model_id,
            "warranty": quote.warranty,
            "estimated_annual_production": quote.estimated_annual_production,
            "cost_breakdown": {key: _money(value) for key, value in breakdown.items()},
            "created_at": _iso(quote.created_at),
            "updated_at": _iso(quote.updated_at),
        }
    )
    return data


def project_view(project, viewer=None, include_quotes: bool = True) -> dict:
    role, viewer_id = _viewer(viewer)
    data = {
        "id": project.id,
        "version": project.version,
        "status": project.status.value,
        "address": {"street": project.street, "city": project.city, "county": project.county},
        "energy_bill": _money(project.energy_bill),
        "roof_type_id": project.roof_type_id,
        "notes": project.notes,
        "wants_battery": bool(project.wants_battery),
        "photo_ref": project.photo_ref,
        "review_submitted": bool(project.review_submitted),
        "feasibility_report": project.feasibility_report,
        "winning_installer_id": project.winning_installer_id,
        "final_price": _money(project.final_price),
        "signed_at": _iso(project.signed_at),
        "created_at": _iso(project.created_at),
        "updated_at": _iso(project.updated_at),
    }

    homeowner = project.homeowner
    if homeowner is not None:
        contact = {"id": homeowner.id, "name": homeowner.name}
        if visibility.can_see_contact(project, role, viewer_id):
            contact["email"] = homeowner.email
            contact["phone"] = homeowner.phone
        data["homeowner"] = contact

    if role in (Role.ADMIN, Role.HOMEOWNER) and visibility.can_see_contact(project, role, viewer_id):
        data["shared_with_installer_ids"] = sorted(project.shared_with_installer_ids)
    elif role == Role.INSTALLER:
        data["contact_shared_with_me"] = project.is_shared_with(viewer_id)

    if include_quotes:
        data["quotes"] = [quote_view(q, project, viewer) for q in project.quotes]
    return data


def financial_record_view(record) -> dict:
    return {
        "id": record.id,
        "project_id": record.project_id,
        "project_city": record.project_city,
        "installer_id": record.installer_id,
        "installer_name": record.installer.name if record.installer else None,
        "final_price": _money(record.final_price),
        "commission_rate": _money(record.commission_rate),
        "commission_amount": _money(record.commission_amount),
        "status": record.status.value,
        "signed_at": _iso(record.signed_at),
        "paid_at": _iso(record.paid_at),
    }


def notification_view(notification) -> dict:
    return {
        "id": notification.id,
        "message_key": notification.message_key,
        "params": notification.params or {},
        "link": notification.link,
        "is_read": bool(notification.is_read),
        "created_at": _iso(notification.created_at),
    }


def review_view(review) -> dict:
    return {
        "id": review.id,
        "project_id": review.project_id,
        "installer_id": review.installer_id,
        "homeowner_name": review.homeowner.name if review.homeowner else None,
        "rating": review.rating,
        "comment": review.comment,
        "created_at": _iso(review.created_at),
    }


def audit_entry_view(entry) -> dict:
    return {
        "id": entry.id,
        "user_id": entry.user_id,
        "actor_name": entry.actor_name_snapshot,
        "actor_role": entry.actor_role_snapshot,
        "entity_type": entry.entity_type,
        "entity_id": entry.entity_id,
        "action": entry.action,
        "before": json.loads(entry.before_data) if entry.before_data else None,
        "after": json.loads(entry.after_data) if entry.after_data else None,
        "ip_address": entry.ip_address,
        "created_at": _iso(entry.created_at),
    }
