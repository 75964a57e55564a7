"""
Notification fan-out.

dispatch() turns the domain events returned by a transition into role-targeted
notifications. It runs inside the transition's transaction (before its single
commit), with one SAVEPOINT per event:

- a failing event is rolled back to its savepoint, logged and skipped
- it never fails or rolls back the business transition that produced it
"""

from __future__ import annotations

from flask import current_app

from . import events as ev
from .extensions import db
from .models import InstallerCounty, Notification, Role, User, UserStatus

# message keys (rendered later by the client)
ADMIN_NEW_PROJECT = "adminNewProject"
ADMIN_DEAL_SIGNED = "adminDealSigned"
INSTALLER_NEW_LEAD = "installerNewLead"
INSTALLER_CONTACT_SHARED = "installerContactShared"
INSTALLER_DEAL_WON = "installerDealWon"
INSTALLER_NEW_REVIEW = "installerNewReview"
HOMEOWNER_NEW_QUOTE = "homeownerNewQuote"
HOMEOWNER_QUOTE_REVISED = "homeownerQuoteRevised"


class NotificationSink:
    """Accepts (user_id, event_key, params, link) and queues it for later read."""

    def notify(self, user_id: int, event_key: str, params: dict, link: str) -> None:
        raise NotImplementedError


class DatabaseSink(NotificationSink):
    def notify(self, user_id, event_key, params, link):
        db.session.add(
            Notification(
                user_id=user_id,
                message_key=event_key,
                params=dict(params or {}),
                link=link,
                is_read=False,
            )
        )


# ---------------------------------------------------------------------
# Recipients
# ---------------------------------------------------------------------
def admin_ids() -> list[int]:
    rows = (
        db.session.query(User.id)
        .filter(User.role == Role.ADMIN, User.status == UserStatus.ACTIVE)
        .order_by(User.id.asc())
        .all()
    )
    return [row.id for row in rows]


def installer_ids_serving(county: str) -> list[int]:
    """Active installers whose service area includes the county (lead distribution)."""
    rows = (
        db.session.query(User.id)
        .join(InstallerCounty, InstallerCounty.installer_id == User.id)
        .filter(
            User.role == Role.INSTALLER,
            User.status == UserStatus.ACTIVE,
            InstallerCounty.county == (county or "").strip(),
        )
        .order_by(User.id.asc())
        .all()
    )
    return [row.id for row in rows]


def notifications_for(event) -> list[tuple[int, str, dict, str]]:
    """Expand one event into (user_id, message_key, params, link) tuples."""
    project = event.project
    params = dict(event.params)

    if event.kind == ev.PROJECT_SUBMITTED:
        return [(uid, ADMIN_NEW_PROJECT, params, "/admin/projects/pending") for uid in admin_ids()]

    if event.kind == ev.PROJECT_APPROVED:
        return [
            (uid, INSTALLER_NEW_LEAD, params, "/installer/newLeads")
            for uid in installer_ids_serving(project.county)
        ]

    if event.kind == ev.CONTACT_SHARED:
        return [(event.installer_id, INSTALLER_CONTACT_SHARED, params, "/installer/sharedContacts")]

    if event.kind in (ev.QUOTE_SUBMITTED, ev.QUOTE_REVISED):
        key = HOMEOWNER_NEW_QUOTE if event.kind == ev.QUOTE_SUBMITTED else HOMEOWNER_QUOTE_REVISED
        link = f"/quote/{project.id}/{event.quote.id}"
        return [(project.homeowner_id, key, params, link)]

    if event.kind == ev.DEAL_SIGNED:
        admin_params = {"finalPrice": params.get("finalPrice"), "installerName": params.get("installerName")}
        installer_params = {"homeownerName": params.get("homeownerName")}
        out = [(uid, ADMIN_DEAL_SIGNED, admin_params, "/admin/finance/pending") for uid in admin_ids()]
        out.append((event.installer_id, INSTALLER_DEAL_WON, installer_params, "/installer/signedDeals"))
        out.append((event.installer_id, INSTALLER_CONTACT_SHARED, installer_params, "/installer/sharedContacts"))
        return out

    if event.kind == ev.REVIEW_SUBMITTED:
        return [(event.installer_id, INSTALLER_NEW_REVIEW, params, f"/installerProfile/{event.installer_id}")]

    current_app.logger.warning("No notification route for event kind %r", event.kind)
    return []


def dispatch(events, sink: NotificationSink | None = None) -> int:
    """Emit notifications for all events. Returns how many were emitted."""
    sink = sink or DatabaseSink()
    emitted = 0

    for event in events or []:
        try:
            sent = 0
            with db.session.begin_nested():
                for user_id, key, params, link in notifications_for(event):
                    if user_id is None:
                        continue
                    sink.notify(user_id, key, params, link)
                    sent += 1
                db.session.flush()
            emitted += sent
        except Exception:  # best-effort: never break the transition
            current_app.logger.exception(
                "Notification fan-out failed for %s on project %s", event.kind, event.project_id
            )

    return emitted


# ---------------------------------------------------------------------
# Read side
# ---------------------------------------------------------------------
def list_for_user(user_id: int, unread_only: bool = False, limit: int | None = None):
    q = Notification.query.filter_by(user_id=user_id)
    if unread_only:
        q = q.filter(Notification.is_read.is_(False))
    q = q.order_by(Notification.created_at.desc(), Notification.id.desc())
    if limit:
        q = q.limit(limit)
    return q.all()


def unread_count(user_id: int) -> int:
    return Notification.query.filter_by(user_id=user_id, is_read=False).count()


def mark_read(notification: Notification) -> Notification:
    notification.is_read = True
    return notification


def mark_all_read(user_id: int) -> int:
    count = 0
    for notification in list_for_user(user_id, unread_only=True):
        notification.is_read = True
        count += 1
    return count
