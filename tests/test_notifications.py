# tests/test_notifications.py
import logging

from solarportal import notifications, workflow
from solarportal.extensions import db
from solarportal.models import Notification, ProjectStatus, UserStatus


def _keys(user):
    return sorted(n.message_key for n in Notification.query.filter_by(user_id=user.id).all())


def test_submission_notifies_admins(users, project_data):
    workflow.submit_project(users.homeowner, project_data)
    assert _keys(users.admin) == [notifications.ADMIN_NEW_PROJECT]
    assert _keys(users.installer_a) == []


def test_approval_notifies_active_installers_in_county(users, project_data):
    users.installer_b.status = UserStatus.ON_HOLD
    db.session.commit()

    project = workflow.submit_project(users.homeowner, project_data)
    workflow.approve_project(users.admin, project.id)

    assert _keys(users.installer_a) == [notifications.INSTALLER_NEW_LEAD]
    assert _keys(users.installer_b) == []
    assert _keys(users.installer_c) == []

    note = Notification.query.filter_by(user_id=users.installer_a.id).one()
    assert note.link == "/installer/newLeads"
    assert note.params == {"city": "Cluj-Napoca"}
    assert note.is_read is False


def test_deal_signed_fan_out(users, approved_project, quote_data):
    quote = workflow.submit_quote(users.installer_a, approved_project.id, quote_data(50000))
    assert _keys(users.homeowner) == [notifications.HOMEOWNER_NEW_QUOTE]
    assert Notification.query.filter_by(user_id=users.homeowner.id).one().link == (
        f"/quote/{approved_project.id}/{quote.id}"
    )

    workflow.accept_offer(users.homeowner, approved_project.id, quote.id)

    assert notifications.ADMIN_DEAL_SIGNED in _keys(users.admin)
    assert _keys(users.installer_a) == sorted(
        [
            notifications.INSTALLER_NEW_LEAD,
            notifications.INSTALLER_DEAL_WON,
            notifications.INSTALLER_CONTACT_SHARED,
        ]
    )
    admin_note = Notification.query.filter_by(
        user_id=users.admin.id, message_key=notifications.ADMIN_DEAL_SIGNED
    ).one()
    assert admin_note.params == {"finalPrice": "50000.00", "installerName": "Alpha Solar"}


def test_failing_sink_never_breaks_the_transition(users, project_data, monkeypatch, caplog):
    project = workflow.submit_project(users.homeowner, project_data)

    def broken(self, *args, **kwargs):
        raise RuntimeError("sink down")

    monkeypatch.setattr(notifications.DatabaseSink, "notify", broken)

    with caplog.at_level(logging.ERROR):
        workflow.approve_project(users.admin, project.id)

    db.session.expire_all()
    assert db.session.get(type(project), project.id).status == ProjectStatus.APPROVED
    assert _keys(users.installer_a) == []
    assert "Notification fan-out failed" in caplog.text


def test_one_failed_event_does_not_drop_the_others(users, approved_project):
    from solarportal import events as ev

    class PickySink(notifications.DatabaseSink):
        def notify(self, user_id, event_key, params, link):
            if event_key == notifications.INSTALLER_NEW_LEAD:
                raise RuntimeError("lead channel down")
            super().notify(user_id, event_key, params, link)

    approved_project.notes = "touched"
    db.session.flush()

    emitted = notifications.dispatch(
        [
            ev.DomainEvent(ev.PROJECT_APPROVED, approved_project, {"city": "Cluj-Napoca"}),
            ev.DomainEvent(ev.PROJECT_SUBMITTED, approved_project, {"homeownerName": "Hana Homeowner"}),
        ],
        sink=PickySink(),
    )
    db.session.commit()

    assert emitted == 1
    assert _keys(users.admin) == [notifications.ADMIN_NEW_PROJECT, notifications.ADMIN_NEW_PROJECT]


def test_dispatch_counts_only_delivered_notifications(users, approved_project):
    from solarportal import events as ev

    before = Notification.query.count()
    emitted = notifications.dispatch(
        [
            ev.DomainEvent(ev.CONTACT_SHARED, approved_project, {"homeownerName": "Hana"}, installer_id=None),
            ev.DomainEvent(
                ev.CONTACT_SHARED, approved_project, {"homeownerName": "Hana"}, installer_id=users.installer_b.id
            ),
        ]
    )
    db.session.commit()

    assert emitted == 1
    assert Notification.query.count() == before + 1


def test_read_side(users, approved_project):
    assert notifications.unread_count(users.installer_a.id) == 1

    items = notifications.list_for_user(users.installer_a.id)
    workflow.mark_notification_read(users.installer_a, items[0].id)
    assert notifications.unread_count(users.installer_a.id) == 0
    assert notifications.list_for_user(users.installer_a.id, unread_only=True) == []

    assert workflow.mark_all_notifications_read(users.admin) == 1
    assert notifications.unread_count(users.admin.id) == 0
