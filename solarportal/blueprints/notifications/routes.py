"""Notification inbox of the logged-in user."""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from ... import notifications, workflow
from ...serializers import notification_view
from ...utils import parse_bool, parse_optional_int


notifications_bp = Blueprint("notifications", __name__, url_prefix="/notifications")


@notifications_bp.route("/")
@login_required
def inbox():
    """Newest first. ?unread=1 for unread only, ?limit=N."""
    items = notifications.list_for_user(
        current_user.id,
        unread_only=parse_bool(request.args.get("unread")),
        limit=parse_optional_int(request.args.get("limit")),
    )
    return jsonify(
        {
            "unread_count": notifications.unread_count(current_user.id),
            "notifications": [notification_view(n) for n in items],
        }
    )


@notifications_bp.route("/<int:notification_id>/read", methods=["POST"])
@login_required
def mark_read(notification_id: int):
    notification = workflow.mark_notification_read(current_user, notification_id)
    return jsonify(notification_view(notification))


@notifications_bp.route("/read-all", methods=["POST"])
@login_required
def mark_all_read():
    count = workflow.mark_all_notifications_read(current_user)
    return jsonify({"marked": count})
