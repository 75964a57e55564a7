# tests/conftest.py
from types import SimpleNamespace

import pytest

from solarportal import create_app
from solarportal.extensions import db
from solarportal.models import BatteryModel, InverterModel, PanelModel, Role, RoofType, User, UserStatus
from solarportal.seed import seed_catalog

PASSWORD = "password123"


@pytest.fixture
def app():
    app = create_app("config.TestingConfig")
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def ctx(app):
    """App context for tests that call services directly."""
    with app.app_context():
        yield app
        db.session.remove()


@pytest.fixture
def client(app):
    return app.test_client()


def _user(role, email, name, counties=None, status=UserStatus.ACTIVE, phone=None):
    user = User(email=email, name=name, role=role, status=status, phone=phone)
    user.set_password(PASSWORD)
    if counties is not None:
        user.set_service_counties(counties)
    if role == Role.ADMIN:
        user.permissions = {"can_login_as": True}
    db.session.add(user)
    return user


def _make_users():
    users = SimpleNamespace(
        admin=_user(Role.ADMIN, "admin@example.com", "Ada Admin"),
        homeowner=_user(Role.HOMEOWNER, "home@example.com", "Hana Homeowner", phone="0700 000 111"),
        other_homeowner=_user(Role.HOMEOWNER, "other@example.com", "Otto Other", phone="0700 000 222"),
        installer_a=_user(Role.INSTALLER, "a@solar.example", "Alpha Solar", ["Cluj"], phone="0722 000 001"),
        installer_b=_user(Role.INSTALLER, "b@solar.example", "Beta Energy", ["Cluj", "Bihor"], phone="0722 000 002"),
        installer_c=_user(Role.INSTALLER, "c@solar.example", "Gamma Power", ["Ilfov"], phone="0722 000 003"),
    )
    db.session.commit()
    return users


def _catalog():
    seed_catalog()
    return SimpleNamespace(
        roof=RoofType.query.filter_by(name="Tile").one(),
        panel=PanelModel.query.first(),
        inverter=InverterModel.query.first(),
        battery=BatteryModel.query.first(),
    )


@pytest.fixture
def users(ctx):
    return _make_users()


@pytest.fixture
def catalog(ctx):
    return _catalog()


@pytest.fixture
def project_data(catalog):
    return {
        "address": {"street": "Str. Soarelui 45", "city": "Cluj-Napoca", "county": "Cluj"},
        "energy_bill": "1250",
        "roof_type_id": catalog.roof.id,
        "notes": "South facing roof",
        "wants_battery": True,
    }


@pytest.fixture
def quote_data(catalog):
    def build(price, **overrides):
        data = {
            "price": str(price),
            "system_size_kw": "6.5",
            "panel_model_id": catalog.panel.id,
            "inverter_model_id": catalog.inverter.id,
            "battery_model_id": catalog.battery.id,
            "warranty": "10 years",
            "estimated_annual_production": "8200",
        }
        data.update(overrides)
        return data

    return build


@pytest.fixture
def approved_project(users, project_data):
    from solarportal import workflow

    project = workflow.submit_project(users.homeowner, project_data)
    return workflow.approve_project(users.admin, project.id)


# ---------------------------------------------------------------------
# HTTP tests: data is created in its own context, requests run without one
# ---------------------------------------------------------------------
@pytest.fixture
def api(app):
    with app.app_context():
        users = _make_users()
        catalog = _catalog()
        ids = SimpleNamespace(
            **{name: getattr(users, name).id for name in vars(users)},
            roof=catalog.roof.id,
            panel=catalog.panel.id,
            inverter=catalog.inverter.id,
            battery=catalog.battery.id,
        )
        emails = {name: getattr(users, name).email for name in vars(users)}
    ids.emails = emails
    return ids


@pytest.fixture
def login(client, api):
    def do_login(who):
        resp = client.post("/auth/login", json={"email": api.emails[who], "password": PASSWORD})
        assert resp.status_code == 200, resp.get_json()
        return resp

    return do_login
