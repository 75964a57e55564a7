"""
Installer directory, public profiles and the installer's own pipeline.

SECURITY NOTE:
- Installer phone numbers are only shown to the installer and admins
  (serializers.user_summary); email is public.
"""

from __future__ import annotations

from decimal import Decimal

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from ... import repository, visibility
from ...models import Role, UserStatus
from ...security import role_required
from ...serializers import project_view, review_view, user_summary


installers_bp = Blueprint("installers", __name__, url_prefix="/installers")


@installers_bp.route("/")
@login_required
def directory():
    """Installers, optionally in one ?county=. Non-admins only see active accounts."""
    installers = repository.list_installers(request.args.get("county") or None)
    if current_user.role != Role.ADMIN:
        installers = [i for i in installers if i.status == UserStatus.ACTIVE]
    return jsonify([user_summary(i, current_user) for i in installers])


@installers_bp.route("/<int:installer_id>")
@login_required
def profile(installer_id: int):
    installer = repository.get_user(installer_id, role=Role.INSTALLER)
    reviews = repository.reviews_for_installer(installer.id)

    average = None
    if reviews:
        average = str((Decimal(sum(r.rating for r in reviews)) / len(reviews)).quantize(Decimal("0.1")))

    data = user_summary(installer, current_user)
    data["reviews"] = [review_view(r) for r in reviews]
    data["average_rating"] = average
    return jsonify(data)


@installers_bp.route("/pipeline")
@login_required
@role_required(Role.INSTALLER)
def pipeline():
    """
    The installer's dashboard, bucketed:
    new leads / submitted quotes / shared contacts / signed deals / lost deals.
    """
    buckets = {name: [] for name in visibility.PIPELINE_BUCKETS}
    for project in repository.projects_for_installer(current_user):
        bucket = visibility.pipeline_bucket(project, current_user)
        if bucket is None:
            continue
        buckets[bucket].append(project_view(project, current_user))
    return jsonify(buckets)
