"""
Project Routes

Provides:
- submit / list (role-scoped) / detail (visibility-gated)
- admin moderation: approve, hold, restore, delete, edit
- homeowner: share contact, accept offer, leave review
- installer: submit / revise quote, mark signed
- feasibility report storage

Concurrency:
- Mutations accept the project version the client last saw ("version" in the
  body, or an If-Match header). A stale version is rejected with 409
  concurrent_modification instead of overwriting someone else's change.

SECURITY NOTE:
- Role decorators only gate the endpoint; lifecycle.py re-checks role,
  ownership and status for every transition.
- Projects the viewer may not see are reported as 404, not 403, so ids of
  other homeowners' projects do not leak.
"""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from ... import repository, visibility, workflow
from ...errors import NotFound
from ...models import ProjectStatus, Role
from ...security import role_required
from ...serializers import financial_record_view, project_view, quote_view, review_view
from ...utils import parse_optional_int, request_payload


projects_bp = Blueprint("projects", __name__, url_prefix="/projects")


def _expected_version(data) -> int | None:
    version = parse_optional_int(data.get("version"))
    if version is None:
        version = parse_optional_int((request.headers.get("If-Match") or "").strip('"'))
    return version


def _visible_project(project_id: int):
    project = repository.get_project(project_id)
    installer = current_user if current_user.role == Role.INSTALLER else None
    if not visibility.can_view_project(project, current_user.role, current_user.id, installer=installer):
        raise NotFound("project", project_id)
    return project


def _parse_status(value):
    if not value:
        return None
    try:
        return ProjectStatus(value.strip().lower())
    except ValueError:
        return None


# ---------------------------------------------------------------------
# SUBMIT / LIST / DETAIL
# ---------------------------------------------------------------------

@projects_bp.route("/", methods=["POST"])
@login_required
@role_required(Role.HOMEOWNER)
def submit():
    """Homeowner submits a project; it waits for admin approval."""
    project = workflow.submit_project(current_user, request_payload())
    return jsonify(project_view(project, current_user)), 201


@projects_bp.route("/", methods=["GET"])
@login_required
def list_projects():
    """
    Role-scoped listing.

    - admin: everything, filterable by ?status= and ?county=
    - homeowner: own projects (deleted ones hidden)
    - installer: leads in their counties plus projects they quoted on or were shared
    """
    role = current_user.role

    if role == Role.ADMIN:
        projects = repository.list_projects(
            status=_parse_status(request.args.get("status")),
            county=request.args.get("county") or None,
        )
    elif role == Role.HOMEOWNER:
        projects = repository.list_projects(homeowner_id=current_user.id, include_deleted=False)
    else:
        projects = [
            p
            for p in repository.projects_for_installer(current_user)
            if visibility.can_view_project(p, role, current_user.id, installer=current_user)
        ]

    return jsonify([project_view(p, current_user) for p in projects])


@projects_bp.route("/<int:project_id>", methods=["GET"])
@login_required
def detail(project_id: int):
    project = _visible_project(project_id)
    return jsonify(project_view(project, current_user))


# ---------------------------------------------------------------------
# ADMIN MODERATION
# ---------------------------------------------------------------------

@projects_bp.route("/<int:project_id>/approve", methods=["POST"])
@login_required
@role_required(Role.ADMIN)
def approve(project_id: int):
    data = request_payload()
    project = workflow.approve_project(
        current_user,
        project_id,
        photo_ref=(data.get("photo_ref") or "").strip() or None,
        expected_version=_expected_version(data),
    )
    return jsonify(project_view(project, current_user))


@projects_bp.route("/<int:project_id>/hold", methods=["POST"])
@login_required
@role_required(Role.ADMIN)
def hold(project_id: int):
    data = request_payload()
    project = workflow.hold_project(current_user, project_id, expected_version=_expected_version(data))
    return jsonify(project_view(project, current_user))


@projects_bp.route("/<int:project_id>/restore", methods=["POST"])
@login_required
@role_required(Role.ADMIN)
def restore(project_id: int):
    data = request_payload()
    project = workflow.restore_project(current_user, project_id, expected_version=_expected_version(data))
    return jsonify(project_view(project, current_user))


@projects_bp.route("/<int:project_id>", methods=["DELETE"])
@login_required
@role_required(Role.ADMIN)
def delete(project_id: int):
    """Soft delete: the row is kept for audit."""
    data = request_payload()
    project = workflow.delete_project(current_user, project_id, expected_version=_expected_version(data))
    return jsonify(project_view(project, current_user))


@projects_bp.route("/<int:project_id>", methods=["PATCH", "PUT"])
@login_required
@role_required(Role.ADMIN)
def edit(project_id: int):
    """PUT replaces the editable fields; PATCH only changes the keys it sends."""
    data = request_payload()
    project = workflow.edit_project(
        current_user,
        project_id,
        data,
        expected_version=_expected_version(data),
        partial=request.method == "PATCH",
    )
    return jsonify(project_view(project, current_user))


# ---------------------------------------------------------------------
# CONTACT SHARING
# ---------------------------------------------------------------------

@projects_bp.route("/<int:project_id>/share-contact", methods=["POST"])
@login_required
@role_required(Role.HOMEOWNER)
def share_contact(project_id: int):
    data = request_payload()
    project = workflow.share_contact(
        current_user,
        project_id,
        parse_optional_int(data.get("installer_id")),
        expected_version=_expected_version(data),
    )
    return jsonify(project_view(project, current_user))


# ---------------------------------------------------------------------
# QUOTES
# ---------------------------------------------------------------------

@projects_bp.route("/<int:project_id>/quotes", methods=["POST"])
@login_required
@role_required(Role.INSTALLER)
def submit_quote(project_id: int):
    """Submit a quote; a second submission by the same installer revises it in place."""
    data = request_payload()
    quote = workflow.submit_quote(current_user, project_id, data, expected_version=_expected_version(data))
    status = 201 if quote.revision == 0 else 200
    return jsonify(quote_view(quote, quote.project, current_user)), status


@projects_bp.route("/<int:project_id>/quotes/<int:quote_id>", methods=["PUT", "PATCH"])
@login_required
@role_required(Role.INSTALLER)
def revise_quote(project_id: int, quote_id: int):
    data = request_payload()
    quote = workflow.submit_quote(
        current_user, project_id, data, quote_id=quote_id, expected_version=_expected_version(data)
    )
    return jsonify(quote_view(quote, quote.project, current_user))


@projects_bp.route("/<int:project_id>/quotes/<int:quote_id>", methods=["GET"])
@login_required
def quote_detail(project_id: int, quote_id: int):
    project = _visible_project(project_id)
    quote = project.quote_by_id(quote_id)
    if quote is None:
        raise NotFound("quote", quote_id)
    return jsonify(quote_view(quote, project, current_user))


# ---------------------------------------------------------------------
# SIGNING
# ---------------------------------------------------------------------

@projects_bp.route("/<int:project_id>/accept", methods=["POST"])
@login_required
@role_required(Role.HOMEOWNER)
def accept_offer(project_id: int):
    data = request_payload()
    record = workflow.accept_offer(
        current_user,
        project_id,
        parse_optional_int(data.get("quote_id")),
        expected_version=_expected_version(data),
    )
    return jsonify({"project": project_view(record.project, current_user), "financial_record_id": record.id})


@projects_bp.route("/<int:project_id>/mark-signed", methods=["POST"])
@login_required
@role_required(Role.INSTALLER)
def mark_signed(project_id: int):
    data = request_payload()
    record = workflow.mark_signed(
        current_user,
        project_id,
        data.get("final_price"),
        expected_version=_expected_version(data),
    )
    return jsonify({"project": project_view(record.project, current_user), "financial_record": financial_record_view(record)})


# ---------------------------------------------------------------------
# AFTER SIGNING / REPORTS
# ---------------------------------------------------------------------

@projects_bp.route("/<int:project_id>/review", methods=["POST"])
@login_required
@role_required(Role.HOMEOWNER)
def leave_review(project_id: int):
    data = request_payload()
    review = workflow.leave_review(current_user, project_id, data.get("rating"), data.get("comment"))
    return jsonify(review_view(review)), 201


@projects_bp.route("/<int:project_id>/feasibility-report", methods=["PUT"])
@login_required
@role_required(Role.HOMEOWNER, Role.ADMIN)
def feasibility_report(project_id: int):
    data = request.get_json(silent=True)
    project = workflow.attach_feasibility_report(current_user, project_id, data)
    return jsonify(project_view(project, current_user))
