"""
Authentication Routes

Provides:
- /auth/login
- /auth/logout
- /auth/csrf-token
- /auth/me (read and edit your own profile)
- /auth/register (homeowner / installer self-registration)
- /auth/seed-admin (first system bootstrap)

Rules:
- Only ACTIVE users may log in (Flask-Login checks User.is_active).
- The role is resolved once, at registration, from the payload shape.
- Admin accounts are never self-registered; the first one comes from
  /auth/seed-admin or `flask create-admin`, later ones from an admin.
"""

from flask import Blueprint, current_app, jsonify
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf.csrf import generate_csrf

from ... import workflow
from ...errors import Forbidden, ValidationFailed
from ...models import Role, User
from ...repository import find_user_by_email
from ...roles import resolve_role
from ...serializers import user_summary
from ...utils import request_payload


auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


# ============================================================
# LOGIN / LOGOUT
# ============================================================

@auth_bp.route("/login", methods=["POST"])
def login():
    """
    Authenticate a user.

    - Credentials validated via password hash
    - Inactive (held / deleted / unverified) accounts are refused
    """
    data = request_payload()
    email = (data.get("email") or "").strip()
    password = data.get("password") or ""

    user = find_user_by_email(email)
    if not user or not user.check_password(password):
        current_app.logger.info("Failed login for %s", email)
        raise ValidationFailed("wrong email or password")

    if not login_user(user):
        raise Forbidden("account is not active")

    return jsonify(user_summary(user, user))


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    """Log out the current user."""
    logout_user()
    return jsonify({"ok": True})


@auth_bp.route("/csrf-token")
def csrf_token():
    """JSON clients send this back in the X-CSRFToken header."""
    return jsonify({"csrf_token": generate_csrf()})


@auth_bp.route("/me")
@login_required
def me():
    return jsonify(user_summary(current_user, current_user))


@auth_bp.route("/me", methods=["PUT", "PATCH"])
@login_required
def edit_me():
    """Edit your own profile (installers also manage their service counties here)."""
    user = workflow.update_user_profile(current_user, current_user.id, request_payload())
    return jsonify(user_summary(user, user))


# ============================================================
# REGISTRATION
# ============================================================

@auth_bp.route("/register", methods=["POST"])
def register():
    """Self-registration: payload with service_counties makes an installer, otherwise a homeowner."""
    data = request_payload()
    if resolve_role(data) == Role.ADMIN:
        raise Forbidden("admin accounts cannot be self-registered")

    user = workflow.register_user(data)
    return jsonify(user_summary(user, user)), 201


# ============================================================
# SEED FIRST ADMIN (BOOTSTRAP)
# ============================================================

@auth_bp.route("/seed-admin", methods=["POST"])
def seed_admin():
    """
    Bootstrap the FIRST admin of the system.

    Safety Rules:
    - If ANY user already exists -> block
    """
    if User.query.count() > 0:
        raise Forbidden("the system already has users")

    user = workflow.create_admin(request_payload())
    return jsonify(user_summary(user, user)), 201
