"""
Transaction orchestration for lifecycle transitions.

Every public function here is one short, serializable unit of work:

    load (row lock + expected version) -> lifecycle transition -> derived records
    -> flush -> audit -> notification fan-out (savepoints) -> single commit

Any error rolls the whole unit back, so a failed transition leaves the project in
its prior state. In particular a SIGNED status can never be committed without its
FinancialRecord: both are flushed in the same transaction. A concurrent writer on
the same project loses with ConcurrentModification (version mismatch, stale row at
flush, or the one-record-per-project constraint).
"""

from __future__ import annotations

from contextlib import contextmanager

from flask import current_app
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError

from . import finance, lifecycle, notifications, repository
from .audit import log_action, serialize_model
from .errors import ConcurrentModification, Forbidden, ValidationFailed
from .extensions import db
from .lifecycle import ProjectDetails
from .models import Role, User, UserStatus, utcnow
from .quotes import QuoteTerms
from .roles import require_role, resolve_role
from .utils import require_text


@contextmanager
def _transaction(project_id=None):
    try:
        yield
    except (StaleDataError, IntegrityError) as exc:
        db.session.rollback()
        current_app.logger.warning("Concurrent modification on project %s: %s", project_id, exc)
        raise ConcurrentModification(project_id) from exc
    except Exception:
        db.session.rollback()
        raise


def _touch(project) -> None:
    """Force an UPDATE of the project row so its version advances."""
    project.updated_at = utcnow()
    flag_modified(project, "updated_at")


def _finish(project, actor, action: str, before, events, derived=()) -> None:
    for obj in derived:
        db.session.add(obj)
    _touch(project)
    db.session.flush()

    problems = lifecycle.invariant_violations(project)
    if problems:
        raise RuntimeError(f"project {project.id} invariant broken after {action}: {'; '.join(problems)}")

    log_action(project, action, actor=actor, before=before, after=serialize_model(project))
    for obj in derived:
        log_action(obj, "CREATE", actor=actor, after=serialize_model(obj))

    notifications.dispatch(events)
    db.session.commit()

    current_app.logger.info(
        "%s: project %s now %s (actor %s)", action, project.id, project.status.value, getattr(actor, "id", None)
    )


# ---------------------------------------------------------------------
# Project lifecycle
# ---------------------------------------------------------------------
def submit_project(actor, data) -> object:
    details = ProjectDetails.from_mapping(data)
    with _transaction():
        repository.require_roof_type(details.roof_type_id)
        project, events = lifecycle.submit_project(actor, details)
        db.session.add(project)
        db.session.flush()
        log_action(project, "CREATE", actor=actor, after=serialize_model(project))
        notifications.dispatch(events)
        db.session.commit()
    current_app.logger.info("Project %s submitted by homeowner %s", project.id, actor.id)
    return project


def approve_project(actor, project_id, photo_ref=None, expected_version=None):
    with _transaction(project_id):
        project = repository.load_project_for_update(project_id, expected_version)
        before = serialize_model(project)
        events = lifecycle.approve(project, actor, photo_ref=photo_ref)
        _finish(project, actor, "APPROVE", before, events)
    return project


def hold_project(actor, project_id, expected_version=None):
    with _transaction(project_id):
        project = repository.load_project_for_update(project_id, expected_version)
        before = serialize_model(project)
        events = lifecycle.hold(project, actor)
        _finish(project, actor, "HOLD", before, events)
    return project


def restore_project(actor, project_id, expected_version=None):
    with _transaction(project_id):
        project = repository.load_project_for_update(project_id, expected_version)
        before = serialize_model(project)
        events = lifecycle.restore(project, actor)
        _finish(project, actor, "RESTORE", before, events)
    return project


def delete_project(actor, project_id, expected_version=None):
    with _transaction(project_id):
        project = repository.load_project_for_update(project_id, expected_version)
        before = serialize_model(project)
        events = lifecycle.delete(project, actor)
        _finish(project, actor, "DELETE", before, events)
    return project


def edit_project(actor, project_id, data, expected_version=None, partial=False):
    """Full replacement of the editable fields, or a merge over them when partial."""
    details = None if partial else ProjectDetails.from_mapping(data)
    with _transaction(project_id):
        project = repository.load_project_for_update(project_id, expected_version)
        if partial:
            details = ProjectDetails.merged(project, data)
        repository.require_roof_type(details.roof_type_id)
        before = serialize_model(project)
        events = lifecycle.edit(project, actor, details)
        _finish(project, actor, "UPDATE", before, events)
    return project


def share_contact(actor, project_id, installer_id, expected_version=None):
    with _transaction(project_id):
        project = repository.load_project_for_update(project_id, expected_version)
        installer = repository.get_user(installer_id, role=Role.INSTALLER)
        before = serialize_model(project)
        events = lifecycle.share_contact(project, actor, installer)
        if not events:
            # already shared: nothing to persist
            db.session.rollback()
            return project
        _finish(project, actor, "SHARE_CONTACT", before, events)
    return project


def submit_quote(actor, project_id, data, quote_id=None, expected_version=None):
    terms = QuoteTerms.from_mapping(data)
    with _transaction(project_id):
        project = repository.load_project_for_update(project_id, expected_version)
        repository.require_equipment(terms.panel_model_id, terms.inverter_model_id, terms.battery_model_id)

        before = serialize_model(project)
        existing = project.quote_by_installer(getattr(actor, "id", None))
        quote_before = serialize_model(existing) if existing is not None else None

        quote, events = lifecycle.submit_quote(project, actor, terms, quote_id=quote_id)
        db.session.flush()
        log_action(
            quote,
            "CREATE" if quote_before is None else "UPDATE",
            actor=actor,
            before=quote_before,
            after=serialize_model(quote),
        )
        _finish(project, actor, "QUOTE_SUBMIT" if quote_before is None else "QUOTE_REVISE", before, events)
    return quote


def accept_offer(actor, project_id, quote_id, expected_version=None):
    with _transaction(project_id):
        project = repository.load_project_for_update(project_id, expected_version)
        before = serialize_model(project)
        rate = finance.current_commission_rate()
        record, events = lifecycle.accept_offer(project, actor, quote_id, rate)
        _finish(project, actor, "SIGN", before, events, derived=[record])
    return record


def mark_signed(actor, project_id, final_price, expected_version=None):
    with _transaction(project_id):
        project = repository.load_project_for_update(project_id, expected_version)
        before = serialize_model(project)
        rate = finance.current_commission_rate()
        record, events = lifecycle.mark_signed(project, actor, final_price, rate)
        _finish(project, actor, "SIGN", before, events, derived=[record])
    return record


def leave_review(actor, project_id, rating, comment=None):
    with _transaction(project_id):
        project = repository.load_project_for_update(project_id)
        before = serialize_model(project)
        review, events = lifecycle.leave_review(project, actor, rating, comment)
        _finish(project, actor, "REVIEW", before, events, derived=[review])
    return review


def attach_feasibility_report(actor, project_id, report):
    with _transaction(project_id):
        project = repository.load_project_for_update(project_id)
        before = serialize_model(project)
        events = lifecycle.attach_feasibility_report(project, actor, report)
        _finish(project, actor, "FEASIBILITY_REPORT", before, events)
    return project


# ---------------------------------------------------------------------
# Finance
# ---------------------------------------------------------------------
def mark_collected(actor, record_id):
    require_role(actor, Role.ADMIN)
    with _transaction():
        record = repository.get_financial_record(record_id)
        before = serialize_model(record)
        finance.mark_collected(record)
        db.session.flush()
        log_action(record, "COLLECT", actor=actor, before=before, after=serialize_model(record))
        db.session.commit()
    current_app.logger.info("Commission for project %s collected", record.project_id)
    return record


def update_commission_rate(actor, rate):
    require_role(actor, Role.ADMIN)
    with _transaction():
        previous = finance.current_commission_rate()
        setting = finance.set_commission_rate(rate)
        db.session.flush()
        log_action(
            setting,
            "UPDATE",
            actor=actor,
            before={"commission_rate": str(previous)},
            after={"commission_rate": setting.value},
        )
        db.session.commit()
    current_app.logger.info("Commission rate changed from %s to %s", previous, setting.value)
    return finance.current_commission_rate()


# ---------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------
def mark_notification_read(actor, notification_id):
    with _transaction():
        notification = repository.get_notification(notification_id, actor.id)
        notifications.mark_read(notification)
        db.session.commit()
    return notification


def mark_all_notifications_read(actor) -> int:
    with _transaction():
        count = notifications.mark_all_read(actor.id)
        db.session.commit()
    return count


# ---------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------
def register_user(profile, actor=None) -> User:
    """
    Create a user; the role is resolved once from the payload shape.

    Admin accounts can only be created by an existing admin (or the CLI, actor=None
    with allow via create_admin()).
    """
    role = resolve_role(profile)
    if role == Role.ADMIN:
        require_role(actor, Role.ADMIN)
    return _create_user(profile, role, actor)


def create_admin(profile) -> User:
    """Bootstrap path used by the CLI and the first-admin endpoint."""
    data = dict(profile)
    data.setdefault("permissions", {"can_login_as": True, "visible_tabs": []})
    return _create_user(data, Role.ADMIN, None)


def _create_user(profile, role: Role, actor) -> User:
    email = require_text(profile.get("email"), "email").lower()
    name = require_text(profile.get("name"), "name")
    password = profile.get("password") or ""
    if len(password) < 8:
        raise ValidationFailed("password must be at least 8 characters")

    if repository.find_user_by_email(email) is not None:
        raise ValidationFailed("an account with this email already exists")

    user = User(
        email=email,
        name=name,
        role=role,
        status=UserStatus.ACTIVE,
        phone=(profile.get("phone") or "").strip() or None,
    )
    user.set_password(password)

    if role == Role.INSTALLER:
        _set_counties(user, profile.get("service_counties"))
        user.registration_number = (profile.get("registration_number") or "").strip() or None
        user.license_number = (profile.get("license_number") or "").strip() or None
        user.about = (profile.get("about") or "").strip() or None
    elif role == Role.ADMIN:
        user.title = (profile.get("title") or "").strip() or None
        user.permissions = dict(profile.get("permissions") or {})

    with _transaction():
        db.session.add(user)
        db.session.flush()
        log_action(user, "CREATE", actor=actor, after=serialize_model(user))
        db.session.commit()
    current_app.logger.info("Registered %s %s", role.value, user.id)
    return user


def _set_counties(user: User, counties) -> None:
    if isinstance(counties, str):
        counties = counties.split(",")
    user.set_service_counties(counties)
    if not user.county_links:
        raise ValidationFailed("installers must serve at least one county")


def _optional_text(profile, field: str):
    return (profile.get(field) or "").strip() or None


def update_user_profile(actor, user_id, profile) -> User:
    """
    Edit an account's profile. Admins may edit anyone; other users only themselves.

    Only the keys present in the payload change. Role and status are never edited
    here (status has its own admin operation).
    """
    if actor is None or (actor.role != Role.ADMIN and actor.id != user_id):
        raise Forbidden("you may only edit your own profile")

    with _transaction():
        user = repository.get_user(user_id)
        before = serialize_model(user)

        if "name" in profile:
            user.name = require_text(profile.get("name"), "name")
        if "email" in profile:
            email = require_text(profile.get("email"), "email").lower()
            other = repository.find_user_by_email(email)
            if other is not None and other.id != user.id:
                raise ValidationFailed("an account with this email already exists")
            user.email = email
        if "phone" in profile:
            user.phone = _optional_text(profile, "phone")
        if profile.get("password"):
            if len(profile["password"]) < 8:
                raise ValidationFailed("password must be at least 8 characters")
            user.set_password(profile["password"])

        if user.role == Role.INSTALLER:
            if "service_counties" in profile:
                _set_counties(user, profile.get("service_counties"))
            for field in ("registration_number", "license_number", "about"):
                if field in profile:
                    setattr(user, field, _optional_text(profile, field))
        elif user.role == Role.ADMIN:
            if "title" in profile:
                user.title = _optional_text(profile, "title")
            if "permissions" in profile:
                user.permissions = dict(profile.get("permissions") or {})

        db.session.flush()
        log_action(user, "UPDATE", actor=actor, before=before, after=serialize_model(user))
        db.session.commit()
    current_app.logger.info("User %s profile updated by %s", user.id, actor.id)
    return user


def update_user_status(actor, user_id, status):
    require_role(actor, Role.ADMIN)
    try:
        new_status = status if isinstance(status, UserStatus) else UserStatus(str(status).strip().lower())
    except ValueError:
        raise ValidationFailed(f"unknown user status: {status}") from None

    with _transaction():
        user = repository.get_user(user_id)
        if user.id == actor.id and new_status != UserStatus.ACTIVE:
            raise Forbidden("admins cannot suspend their own account")
        before = serialize_model(user)
        user.status = new_status
        db.session.flush()
        log_action(user, "STATUS", actor=actor, before=before, after=serialize_model(user))
        db.session.commit()
    return user
