"""
Identity & role resolution.

The role is decided once, when a user record is constructed (`resolve_role` on the
registration payload), and stored on the record. Afterwards every authorization
decision reads it with `role_of`; nothing re-derives a role from field shapes.
"""

from __future__ import annotations

from typing import Mapping

from .errors import Forbidden
from .models import Role


def resolve_role(profile: Mapping) -> Role:
    """
    Classify a registration payload.

    - has service counties -> installer
    - has admin permissions -> admin
    - anything else -> homeowner
    """
    if profile.get("service_counties") is not None:
        return Role.INSTALLER
    if profile.get("permissions") is not None:
        return Role.ADMIN
    return Role.HOMEOWNER


def role_of(user) -> Role:
    return user.role


def require_role(actor, *roles: Role) -> Role:
    """Return the actor's role, or raise Forbidden if it is not one of `roles`."""
    if actor is None:
        raise Forbidden("authentication required")
    role = role_of(actor)
    if role not in roles:
        allowed = "/".join(r.value for r in roles)
        raise Forbidden(f"{role.value} may not perform this action ({allowed} only)")
    return role
