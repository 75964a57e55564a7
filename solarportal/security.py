"""
solarportal/security.py

Access control helpers for the SolarPortal API.

Key rules:
- Clients are never trusted; all permission checks are server-side.
- Role decorators only gate the endpoint. Ownership and status rules are enforced
  again in lifecycle.py, so every route stays safe even if a decorator is missing.

This module also provides a global safety net:
- suspended_account_guard() blocks POST/PUT/PATCH/DELETE for accounts that were
  put on hold (or deleted) after they logged in. Wire it via app.before_request.

IMPORTANT:
- Decorators must preserve wrapped function metadata to avoid Flask endpoint collisions.
  We use functools.wraps everywhere.
"""

from __future__ import annotations

from functools import wraps
from typing import Any, Callable, Optional, Tuple

from flask import jsonify, request
from flask_login import current_user

from .models import Role, UserStatus

MUTATING_METHODS = {"POST", "PUT", "PATCH", "DELETE"}

# Endpoints a suspended user may still call
ALLOW_WHEN_SUSPENDED = {"auth.logout", "auth.login"}


def _forbidden(message: str = "forbidden") -> Tuple[Any, int]:
    """Consistent JSON 403."""
    return jsonify({"error": "forbidden", "message": message}), 403


def _unauthorized() -> Tuple[Any, int]:
    return jsonify({"error": "unauthorized", "message": "login required"}), 401


def is_admin() -> bool:
    """Return True if current user is authenticated and admin."""
    return bool(current_user.is_authenticated and getattr(current_user, "is_admin", False))


def suspended_account_guard() -> Optional[Tuple[Any, int]]:
    """
    Global guard: suspended accounts cannot mutate data.

    Flask-Login reloads the user from the session on every request without
    re-checking is_active, so an account held mid-session is caught here.
    """
    if request.method not in MUTATING_METHODS:
        return None

    if not current_user.is_authenticated:
        return None

    if getattr(current_user, "status", UserStatus.ACTIVE) == UserStatus.ACTIVE:
        return None

    if (request.endpoint or "").strip() in ALLOW_WHEN_SUSPENDED:
        return None

    return _forbidden("account is suspended")


def role_required(*roles: Role) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Decorator factory: only the given roles may call the endpoint.

    Usage:
        @projects_bp.route("/<int:project_id>/approve", methods=["POST"])
        @role_required(Role.ADMIN)
        def approve(project_id): ...
    """
    def decorator(view_func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(view_func)
        def wrapper(*args: Any, **kwargs: Any):
            if not current_user.is_authenticated:
                return _unauthorized()
            if current_user.role not in roles:
                return _forbidden(f"{current_user.role.value} may not perform this action")
            return view_func(*args, **kwargs)

        return wrapper

    return decorator


def admin_required(view_func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator: admin-only."""
    @wraps(view_func)
    def wrapper(*args: Any, **kwargs: Any):
        if not current_user.is_authenticated:
            return _unauthorized()
        if not is_admin():
            return _forbidden()
        return view_func(*args, **kwargs)

    return wrapper
