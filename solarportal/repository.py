"""
Persistence boundary for the marketplace core.

- Loaders raise NotFound instead of returning None.
- load_project_for_update() takes the row lock where the database supports it
  (SELECT ... FOR UPDATE; a no-op on SQLite) and checks the client's expected
  version, so a stale writer is rejected before any work is done.
- Racing writers that slip past the check are caught at flush time by the
  project's version_id_col (StaleDataError) and reported as ConcurrentModification
  by workflow.py.
"""

from __future__ import annotations

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import selectinload

from .errors import ConcurrentModification, NotFound
from .extensions import db
from .models import (
    BatteryModel,
    FinancialRecord,
    FinancialRecordStatus,
    InstallerCounty,
    InverterModel,
    Notification,
    PanelModel,
    Project,
    ProjectContactShare,
    ProjectStatus,
    Quote,
    Review,
    Role,
    RoofType,
    User,
)


def _with_aggregate(q):
    """Prevent N+1 on list pages: quotes and shares come with each project."""
    return q.options(
        selectinload(Project.quotes).selectinload(Quote.installer),
        selectinload(Project.contact_shares),
        selectinload(Project.homeowner),
    )


# ---------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------
def get_project(project_id) -> Project:
    project = db.session.get(Project, project_id) if project_id is not None else None
    if project is None:
        raise NotFound("project", project_id)
    return project


def load_project_for_update(project_id, expected_version=None) -> Project:
    project = None
    if project_id is not None:
        project = db.session.get(Project, project_id, with_for_update=True, populate_existing=True)
    if project is None:
        raise NotFound("project", project_id)

    if expected_version is not None and int(expected_version) != project.version:
        raise ConcurrentModification(project.id, expected_version, project.version)
    return project


def list_projects(status=None, county=None, installer_id=None, homeowner_id=None, include_deleted=True):
    """
    Filtered project listing.

    installer_id narrows to projects the installer quoted on or was shared with.
    """
    q = _with_aggregate(Project.query)

    if status is not None:
        statuses = status if isinstance(status, (list, tuple, set)) else [status]
        q = q.filter(Project.status.in_(list(statuses)))
    elif not include_deleted:
        q = q.filter(Project.status != ProjectStatus.DELETED)

    if county:
        q = q.filter(Project.county == county.strip())

    if homeowner_id is not None:
        q = q.filter(Project.homeowner_id == homeowner_id)

    if installer_id is not None:
        quoted = select(Quote.project_id).where(Quote.installer_id == installer_id)
        shared = select(ProjectContactShare.project_id).where(
            ProjectContactShare.installer_id == installer_id
        )
        q = q.filter(or_(Project.id.in_(quoted), Project.id.in_(shared)))

    return q.order_by(Project.created_at.desc(), Project.id.desc()).all()


def projects_for_installer(installer: User):
    """Everything that can appear in an installer's pipeline: leads in their counties plus own activity."""
    counties = installer.service_counties
    quoted = select(Quote.project_id).where(Quote.installer_id == installer.id)
    shared = select(ProjectContactShare.project_id).where(
        ProjectContactShare.installer_id == installer.id
    )

    conditions = [Project.id.in_(quoted), Project.id.in_(shared)]
    if counties:
        conditions.append(and_(Project.status == ProjectStatus.APPROVED, Project.county.in_(counties)))

    q = _with_aggregate(Project.query).filter(
        Project.status != ProjectStatus.DELETED,
        or_(*conditions),
    )
    return q.order_by(Project.created_at.desc(), Project.id.desc()).all()


# ---------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------
def get_user(user_id, role: Role | None = None) -> User:
    user = db.session.get(User, user_id) if user_id is not None else None
    if user is None or (role is not None and user.role != role):
        raise NotFound(role.value if role else "user", user_id)
    return user


def find_user_by_email(email: str) -> User | None:
    return User.query.filter_by(email=(email or "").strip().lower()).first()


def list_installers(county: str | None = None):
    q = User.query.filter(User.role == Role.INSTALLER)
    if county:
        q = q.join(InstallerCounty, InstallerCounty.installer_id == User.id).filter(
            InstallerCounty.county == county.strip()
        )
    return q.order_by(User.name.asc()).all()


def list_users(role: Role | None = None):
    q = User.query
    if role is not None:
        q = q.filter(User.role == role)
    return q.order_by(User.created_at.desc(), User.id.desc()).all()


# ---------------------------------------------------------------------
# Catalog references (validated, never owned)
# ---------------------------------------------------------------------
def require_roof_type(roof_type_id):
    if roof_type_id is None:
        return None
    roof = db.session.get(RoofType, roof_type_id)
    if roof is None:
        raise NotFound("roof type", roof_type_id)
    return roof


def require_equipment(panel_model_id, inverter_model_id, battery_model_id=None) -> None:
    if db.session.get(PanelModel, panel_model_id) is None:
        raise NotFound("panel model", panel_model_id)
    if db.session.get(InverterModel, inverter_model_id) is None:
        raise NotFound("inverter model", inverter_model_id)
    if battery_model_id is not None and db.session.get(BatteryModel, battery_model_id) is None:
        raise NotFound("battery model", battery_model_id)


# ---------------------------------------------------------------------
# Finance, notifications, reviews
# ---------------------------------------------------------------------
def get_financial_record(record_id) -> FinancialRecord:
    record = db.session.get(FinancialRecord, record_id) if record_id is not None else None
    if record is None:
        raise NotFound("financial record", record_id)
    return record


def list_financial_records(status: FinancialRecordStatus | None = None):
    q = FinancialRecord.query
    if status is not None:
        q = q.filter(FinancialRecord.status == status)
    return q.order_by(FinancialRecord.signed_at.desc(), FinancialRecord.id.desc()).all()


def financial_records_for_project(project_id):
    return FinancialRecord.query.filter_by(project_id=project_id).all()


def get_notification(notification_id, user_id) -> Notification:
    notification = db.session.get(Notification, notification_id) if notification_id is not None else None
    if notification is None or notification.user_id != user_id:
        raise NotFound("notification", notification_id)
    return notification


def reviews_for_installer(installer_id):
    return Review.query.filter_by(installer_id=installer_id).order_by(Review.created_at.desc()).all()
