"""
solarportal/audit.py

Audit logging helpers.

Goals:
- Capture WHO did WHAT to WHICH entity, with BEFORE/AFTER snapshots.
- Store the actor's name and role as snapshots so history survives later edits.
- Store the client IP when the mutation came in through a request.

IMPORTANT:
- This helper ADDS AuditLog entries to the current SQLAlchemy session.
  The caller (workflow.py) controls transaction boundaries (commit/rollback), so an
  audit entry is committed together with the change it describes, or not at all.
"""

from __future__ import annotations

import enum
import json
from typing import Any, Dict, Optional

from flask import has_request_context, request

from .extensions import db
from .models import AuditLog


def _safe_str(value: Any) -> Optional[str]:
    """
    Convert a column value to a stable string for JSON storage.

    - Enums are stored by value ("signed"), not repr.
    - None stays None.
    """
    if value is None:
        return None
    if isinstance(value, enum.Enum):
        return str(value.value)
    try:
        return str(value)
    except Exception:
        return repr(value)


def serialize_model(instance: Any) -> Dict[str, Optional[str]]:
    """
    Snapshot a model instance's scalar columns (relationships are not followed).
    """
    data: Dict[str, Optional[str]] = {}
    for column in instance.__table__.columns:
        data[column.key] = _safe_str(getattr(instance, column.key))
    return data


def log_action(
    entity: Any,
    action: str,
    *,
    actor: Any = None,
    before: Optional[Dict[str, Any]] = None,
    after: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """
    Add an AuditLog entry to the current db session.

    Parameters:
        entity: model instance with .id (flush first for new rows)
        action: short verb, e.g. APPROVE / SIGN / QUOTE_REVISE
        actor: the acting User (None for system actions)
        before / after: dict snapshots (optional)

    SECURITY NOTE:
    - request.remote_addr is as Flask sees it. Behind a reverse proxy, configure
      ProxyFix / trusted proxy headers to capture the real client IP.
    """
    entity_id = getattr(entity, "id", None)
    if entity_id is None:
        raise ValueError("log_action entity must have an 'id' attribute (after flush).")

    entry = AuditLog(
        user_id=getattr(actor, "id", None),
        actor_name_snapshot=getattr(actor, "name", None),
        actor_role_snapshot=_safe_str(getattr(actor, "role", None)),
        entity_type=entity.__class__.__name__,
        entity_id=int(entity_id),
        action=str(action),
        before_data=json.dumps(before, ensure_ascii=False) if before else None,
        after_data=json.dumps(after, ensure_ascii=False) if after else None,
        ip_address=request.remote_addr if has_request_context() else None,
    )
    db.session.add(entry)
    return entry


def history(entity_type: str | None = None, entity_id: int | None = None, limit: int = 200):
    """Most recent audit entries, optionally for one entity."""
    q = AuditLog.query
    if entity_type:
        q = q.filter(AuditLog.entity_type == entity_type)
    if entity_id is not None:
        q = q.filter(AuditLog.entity_id == entity_id)
    return q.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit).all()
