# tests/test_visibility.py
import pytest

from solarportal import visibility
from solarportal.models import Project, ProjectContactShare, ProjectStatus, Quote, Role, User, UserStatus

S = ProjectStatus
OWNER, OTHER, ADMIN, A, B, FAR = 1, 2, 3, 10, 11, 12


def _installer(id_, counties):
    user = User(id=id_, email=f"i{id_}@example.com", name=f"Installer {id_}", role=Role.INSTALLER,
                status=UserStatus.ACTIVE)
    user.set_service_counties(counties)
    return user


@pytest.fixture
def installers():
    return {A: _installer(A, ["Cluj"]), B: _installer(B, ["Cluj"]), FAR: _installer(FAR, ["Ilfov"])}


def _project(status=S.APPROVED, shared=(), quoted=(), winner=None):
    project = Project(id=1, homeowner_id=OWNER, county="Cluj", city="Cluj-Napoca", status=status)
    for installer_id in shared:
        project.contact_shares.append(ProjectContactShare(installer_id=installer_id))
    for position, installer_id in enumerate(quoted):
        project.quotes.append(Quote(id=100 + installer_id, installer_id=installer_id, position=position))
    project.winning_installer_id = winner
    return project


def test_contact_visibility():
    project = _project(S.CONTACT_SHARED, shared=[A])
    assert visibility.can_see_contact(project, Role.HOMEOWNER, OWNER)
    assert visibility.can_see_contact(project, Role.ADMIN, ADMIN)
    assert visibility.can_see_contact(project, Role.INSTALLER, A)
    assert not visibility.can_see_contact(project, Role.INSTALLER, B)
    assert not visibility.can_see_contact(project, Role.HOMEOWNER, OTHER)
    assert not visibility.can_see_contact(project, None, None)


def test_installer_phone_visibility(installers):
    installer = installers[A]
    assert visibility.can_see_phone(installer, Role.INSTALLER, A)
    assert visibility.can_see_phone(installer, Role.ADMIN, ADMIN)
    assert not visibility.can_see_phone(installer, Role.HOMEOWNER, OWNER)
    assert not visibility.can_see_phone(installer, Role.INSTALLER, B)
    assert not visibility.can_see_phone(installer, None, None)


def test_quote_details_visibility():
    project = _project(quoted=[A, B])
    quote_a = project.quote_by_installer(A)
    assert visibility.can_see_quote_details(quote_a, project, Role.INSTALLER, A)
    assert not visibility.can_see_quote_details(quote_a, project, Role.INSTALLER, B)
    assert visibility.can_see_quote_details(quote_a, project, Role.HOMEOWNER, OWNER)
    assert not visibility.can_see_quote_details(quote_a, project, Role.HOMEOWNER, OTHER)
    assert visibility.can_see_quote_details(quote_a, project, Role.ADMIN, ADMIN)


def test_project_visibility(installers):
    project = _project()
    assert visibility.can_view_project(project, Role.INSTALLER, A, installer=installers[A])
    assert not visibility.can_view_project(project, Role.INSTALLER, FAR, installer=installers[FAR])
    assert not visibility.can_view_project(project, Role.HOMEOWNER, OTHER)

    deleted = _project(S.DELETED, quoted=[A])
    assert not visibility.can_view_project(deleted, Role.HOMEOWNER, OWNER)
    assert not visibility.can_view_project(deleted, Role.INSTALLER, A, installer=installers[A])
    assert visibility.can_view_project(deleted, Role.ADMIN, ADMIN)

    held = _project(S.ON_HOLD, quoted=[A])
    assert visibility.can_view_project(held, Role.INSTALLER, A, installer=installers[A])
    assert not visibility.can_view_project(held, Role.INSTALLER, B, installer=installers[B])


def test_pipeline_buckets(installers):
    a, b, far = installers[A], installers[B], installers[FAR]

    lead = _project()
    assert visibility.pipeline_bucket(lead, a) == visibility.NEW_LEAD
    assert visibility.pipeline_bucket(lead, far) is None

    quoted = _project(quoted=[A])
    assert visibility.pipeline_bucket(quoted, a) == visibility.SUBMITTED_QUOTE
    assert visibility.pipeline_bucket(quoted, b) == visibility.NEW_LEAD

    shared = _project(S.CONTACT_SHARED, shared=[A], quoted=[A, B])
    assert visibility.pipeline_bucket(shared, a) == visibility.SHARED_CONTACT
    assert visibility.pipeline_bucket(shared, b) == visibility.SUBMITTED_QUOTE

    signed = _project(S.SIGNED, shared=[A], quoted=[A, B], winner=A)
    assert visibility.pipeline_bucket(signed, a) == visibility.SIGNED_DEAL
    assert visibility.pipeline_bucket(signed, b) == visibility.LOST_DEAL
    assert visibility.pipeline_bucket(signed, far) is None

    assert visibility.pipeline_bucket(_project(S.DELETED, quoted=[A]), a) is None
    assert visibility.pipeline_bucket(_project(S.ON_HOLD), a) is None


def test_quote_outcome():
    assert visibility.quote_outcome(_project(quoted=[A]), A) == "open"
    signed = _project(S.SIGNED, shared=[B], quoted=[A, B], winner=B)
    assert visibility.quote_outcome(signed, B) == "won"
    assert visibility.quote_outcome(signed, A) == "lost"
