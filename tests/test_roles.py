# tests/test_roles.py
import pytest

from solarportal.errors import Forbidden
from solarportal.models import Role, User, UserStatus
from solarportal.roles import require_role, resolve_role, role_of


def test_resolve_role_from_profile_shape():
    assert resolve_role({"email": "a@b.c", "service_counties": ["Cluj"]}) == Role.INSTALLER
    assert resolve_role({"email": "a@b.c", "service_counties": []}) == Role.INSTALLER
    assert resolve_role({"email": "a@b.c", "permissions": {}}) == Role.ADMIN
    assert resolve_role({"email": "a@b.c", "phone": "0700"}) == Role.HOMEOWNER


def test_service_counties_win_over_permissions():
    assert resolve_role({"service_counties": ["Cluj"], "permissions": {}}) == Role.INSTALLER


def test_role_is_read_from_the_record():
    user = User(id=1, email="x@y.z", name="X", role=Role.INSTALLER, status=UserStatus.ACTIVE)
    # no counties set: the stored role still decides
    assert role_of(user) == Role.INSTALLER


def test_require_role():
    admin = User(id=1, email="a@y.z", name="A", role=Role.ADMIN, status=UserStatus.ACTIVE)
    assert require_role(admin, Role.ADMIN) == Role.ADMIN
    assert require_role(admin, Role.HOMEOWNER, Role.ADMIN) == Role.ADMIN

    with pytest.raises(Forbidden):
        require_role(admin, Role.HOMEOWNER)

    with pytest.raises(Forbidden):
        require_role(None, Role.ADMIN)
