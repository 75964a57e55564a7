"""
SolarPortal – Marketplace Domain Models

Entities:
- User (homeowner / installer / admin, explicit role column)
- Project, Quote, ProjectContactShare (the lifecycle aggregate)
- FinancialRecord (one per signed deal), PlatformSetting (live commission rate)
- Notification, Review, AuditLog
- Reference catalogs: RoofType, EquipmentBrand, PanelModel, InverterModel, BatteryModel

IMPORTANT:
- Foreign keys are ids; nothing embeds another aggregate.
- Project rows are versioned (optimistic locking). Every lifecycle transition touches
  the row so concurrent writers on the same project conflict instead of overwriting.
- Money is Decimal, quantized to cents.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP

from flask_login import UserMixin
from werkzeug.security import check_password_hash, generate_password_hash

from .extensions import db


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
def utcnow() -> datetime:
    """Naive UTC timestamp (columns are stored without tz info)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_decimal(value) -> Decimal:
    """Convert Numeric/None to Decimal safely."""
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value))


def money(x: Decimal) -> Decimal:
    return to_decimal(x).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _enum_column(enum_cls, **kwargs):
    return db.Column(db.Enum(enum_cls, native_enum=False, length=32), **kwargs)


# ---------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------
class Role(str, enum.Enum):
    HOMEOWNER = "homeowner"
    INSTALLER = "installer"
    ADMIN = "admin"


class UserStatus(str, enum.Enum):
    ACTIVE = "active"
    ON_HOLD = "on_hold"
    DELETED = "deleted"
    PENDING_VERIFICATION = "pending_verification"


class ProjectStatus(str, enum.Enum):
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    CONTACT_SHARED = "contact_shared"
    ON_HOLD = "on_hold"
    SIGNED = "signed"
    DELETED = "deleted"


class FinancialRecordStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"


class EquipmentType(str, enum.Enum):
    PANEL = "panel"
    INVERTER = "inverter"
    BATTERY = "battery"


# ---------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------
class User(UserMixin, db.Model):
    """Login account. The role is fixed when the record is constructed."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)

    role = _enum_column(Role, nullable=False, index=True)
    status = _enum_column(UserStatus, nullable=False, default=UserStatus.ACTIVE, index=True)

    # Homeowner phone, or installer contact phone
    phone = db.Column(db.String(50), nullable=True)

    # Installer profile
    registration_number = db.Column(db.String(50), nullable=True)
    license_number = db.Column(db.String(50), nullable=True)
    about = db.Column(db.Text, nullable=True)

    # Admin profile
    title = db.Column(db.String(120), nullable=True)
    permissions = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)

    county_links = db.relationship(
        "InstallerCounty",
        back_populates="installer",
        cascade="all, delete-orphan",
        order_by="InstallerCounty.county",
    )

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    @property
    def is_active(self) -> bool:
        # Flask-Login refuses to log in inactive accounts.
        return self.status == UserStatus.ACTIVE

    @property
    def is_authenticated(self) -> bool:
        # A session that outlives a hold stays read-only (security.suspended_account_guard).
        return True

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def service_counties(self) -> list[str]:
        return [link.county for link in self.county_links]

    def set_service_counties(self, counties) -> None:
        wanted = []
        for county in counties or []:
            county = (county or "").strip()
            if county and county not in wanted:
                wanted.append(county)
        # Links that stay are kept as rows (unique per installer and county).
        kept = [link for link in self.county_links if link.county in wanted]
        have = {link.county for link in kept}
        self.county_links = kept + [InstallerCounty(county=c) for c in wanted if c not in have]

    def serves_county(self, county: str | None) -> bool:
        return bool(county) and county.strip() in self.service_counties

    def __repr__(self):
        return f"<User {self.email} ({self.role.value if self.role else '?'})>"


class InstallerCounty(db.Model):
    """One county in an installer's service area (lead distribution key)."""

    __tablename__ = "installer_counties"

    id = db.Column(db.Integer, primary_key=True)

    installer_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    county = db.Column(db.String(120), nullable=False, index=True)

    installer = db.relationship("User", back_populates="county_links")

    __table_args__ = (db.UniqueConstraint("installer_id", "county", name="uq_installer_county"),)


# ---------------------------------------------------------------------
# Reference catalogs
# ---------------------------------------------------------------------
class RoofType(db.Model):
    __tablename__ = "roof_types"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), unique=True, nullable=False)

    def __repr__(self):
        return f"<RoofType {self.name}>"


class EquipmentBrand(db.Model):
    __tablename__ = "equipment_brands"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    type = _enum_column(EquipmentType, nullable=False, index=True)

    __table_args__ = (db.UniqueConstraint("name", "type", name="uq_brand_name_type"),)


class PanelModel(db.Model):
    __tablename__ = "panel_models"

    id = db.Column(db.Integer, primary_key=True)
    brand_id = db.Column(db.Integer, db.ForeignKey("equipment_brands.id", ondelete="CASCADE"), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    wattage = db.Column(db.Integer, nullable=False)
    efficiency = db.Column(db.Numeric(5, 2), nullable=False)

    brand = db.relationship("EquipmentBrand")


class InverterModel(db.Model):
    __tablename__ = "inverter_models"

    id = db.Column(db.Integer, primary_key=True)
    brand_id = db.Column(db.Integer, db.ForeignKey("equipment_brands.id", ondelete="CASCADE"), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    efficiency = db.Column(db.Numeric(5, 2), nullable=False)

    brand = db.relationship("EquipmentBrand")


class BatteryModel(db.Model):
    __tablename__ = "battery_models"

    id = db.Column(db.Integer, primary_key=True)
    brand_id = db.Column(db.Integer, db.ForeignKey("equipment_brands.id", ondelete="CASCADE"), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    capacity_kwh = db.Column(db.Numeric(6, 2), nullable=False)
    efficiency = db.Column(db.Numeric(5, 2), nullable=False)

    brand = db.relationship("EquipmentBrand")


# ---------------------------------------------------------------------
# Project aggregate
# ---------------------------------------------------------------------
class Project(db.Model):
    """A homeowner's request for quotes."""

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)

    homeowner_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    street = db.Column(db.String(255), nullable=False)
    city = db.Column(db.String(120), nullable=False, index=True)
    county = db.Column(db.String(120), nullable=False, index=True)

    energy_bill = db.Column(db.Numeric(12, 2), nullable=False)
    roof_type_id = db.Column(db.Integer, db.ForeignKey("roof_types.id", ondelete="SET NULL"), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    wants_battery = db.Column(db.Boolean, default=False, nullable=False)
    photo_ref = db.Column(db.String(500), nullable=True)

    status = _enum_column(ProjectStatus, nullable=False, default=ProjectStatus.PENDING_APPROVAL, index=True)

    winning_installer_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    final_price = db.Column(db.Numeric(12, 2), nullable=True)
    signed_at = db.Column(db.DateTime, nullable=True)
    review_submitted = db.Column(db.Boolean, default=False, nullable=False)

    # Output of the external feasibility report generator (stored as-is)
    feasibility_report = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    version = db.Column(db.Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    homeowner = db.relationship("User", foreign_keys=[homeowner_id])
    winning_installer = db.relationship("User", foreign_keys=[winning_installer_id])
    roof_type = db.relationship("RoofType")

    quotes = db.relationship(
        "Quote",
        back_populates="project",
        order_by="Quote.position",
        cascade="all, delete-orphan",
    )

    contact_shares = db.relationship(
        "ProjectContactShare",
        back_populates="project",
        order_by="ProjectContactShare.id",
        cascade="all, delete-orphan",
    )

    @property
    def shared_with_installer_ids(self) -> set[int]:
        return {share.installer_id for share in self.contact_shares}

    def is_shared_with(self, installer_id) -> bool:
        return installer_id in self.shared_with_installer_ids

    def quote_by_installer(self, installer_id):
        for quote in self.quotes:
            if quote.installer_id == installer_id:
                return quote
        return None

    def quote_by_id(self, quote_id):
        for quote in self.quotes:
            if quote.id == quote_id:
                return quote
        return None

    def __repr__(self):
        return f"<Project {self.id} {self.status.value if self.status else '?'}>"


class ProjectContactShare(db.Model):
    """Homeowner contact shared with one installer."""

    __tablename__ = "project_contact_shares"

    id = db.Column(db.Integer, primary_key=True)

    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    installer_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    created_at = db.Column(db.DateTime, default=utcnow)

    project = db.relationship("Project", back_populates="contact_shares")
    installer = db.relationship("User")

    __table_args__ = (db.UniqueConstraint("project_id", "installer_id", name="uq_project_contact_share"),)


class Quote(db.Model):
    """One installer's offer on a project. Revised in place, never duplicated."""

    __tablename__ = "quotes"

    id = db.Column(db.Integer, primary_key=True)

    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    installer_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Submission order within the project; kept on revision
    position = db.Column(db.Integer, nullable=False, default=0)

    price = db.Column(db.Numeric(12, 2), nullable=False)
    price_without_battery = db.Column(db.Numeric(12, 2), nullable=True)
    system_size_kw = db.Column(db.Numeric(8, 2), nullable=False)

    panel_model_id = db.Column(db.Integer, db.ForeignKey("panel_models.id", ondelete="SET NULL"), nullable=True)
    inverter_model_id = db.Column(db.Integer, db.ForeignKey("inverter_models.id", ondelete="SET NULL"), nullable=True)
    battery_model_id = db.Column(db.Integer, db.ForeignKey("battery_models.id", ondelete="SET NULL"), nullable=True)

    warranty = db.Column(db.String(255), nullable=True)
    estimated_annual_production = db.Column(db.Integer, nullable=True)

    # Derived from price (see quotes.derive_cost_breakdown)
    equipment_cost = db.Column(db.Numeric(12, 2), nullable=False)
    labor_cost = db.Column(db.Numeric(12, 2), nullable=False)
    permits_cost = db.Column(db.Numeric(12, 2), nullable=False)

    revision = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    project = db.relationship("Project", back_populates="quotes")
    installer = db.relationship("User")

    panel_model = db.relationship("PanelModel")
    inverter_model = db.relationship("InverterModel")
    battery_model = db.relationship("BatteryModel")

    __table_args__ = (db.UniqueConstraint("project_id", "installer_id", name="uq_quote_project_installer"),)

    @property
    def cost_breakdown(self) -> dict:
        return {
            "equipment": money(self.equipment_cost),
            "labor": money(self.labor_cost),
            "permits": money(self.permits_cost),
        }


# ---------------------------------------------------------------------
# Finance
# ---------------------------------------------------------------------
class FinancialRecord(db.Model):
    """Commission owed for one signed deal. Rate is a snapshot taken at signing."""

    __tablename__ = "financial_records"

    id = db.Column(db.Integer, primary_key=True)

    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
        index=True,
    )
    project_city = db.Column(db.String(120), nullable=True)

    installer_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    final_price = db.Column(db.Numeric(12, 2), nullable=False)
    commission_rate = db.Column(db.Numeric(6, 4), nullable=False)
    commission_amount = db.Column(db.Numeric(12, 2), nullable=False)

    status = _enum_column(FinancialRecordStatus, nullable=False, default=FinancialRecordStatus.PENDING, index=True)

    signed_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    paid_at = db.Column(db.DateTime, nullable=True)

    project = db.relationship("Project")
    installer = db.relationship("User")


class PlatformSetting(db.Model):
    """Admin-editable platform settings (e.g. the live commission rate)."""

    __tablename__ = "platform_settings"

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(80), unique=True, nullable=False, index=True)
    value = db.Column(db.String(255), nullable=False)

    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)


# ---------------------------------------------------------------------
# Notifications, reviews, audit
# ---------------------------------------------------------------------
class Notification(db.Model):
    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    message_key = db.Column(db.String(80), nullable=False)
    params = db.Column(db.JSON, nullable=False, default=dict)
    link = db.Column(db.String(255), nullable=False)
    is_read = db.Column(db.Boolean, default=False, nullable=False, index=True)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)

    user = db.relationship("User", backref=db.backref("notifications", lazy=True, cascade="all, delete-orphan"))


class Review(db.Model):
    __tablename__ = "reviews"

    id = db.Column(db.Integer, primary_key=True)

    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )
    installer_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    homeowner_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    rating = db.Column(db.Integer, nullable=False)
    comment = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)

    project = db.relationship("Project")
    installer = db.relationship("User", foreign_keys=[installer_id])
    homeowner = db.relationship("User", foreign_keys=[homeowner_id])


class AuditLog(db.Model):
    """History of every mutation (who did what to which entity)."""

    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    actor_name_snapshot = db.Column(db.String(255), nullable=True)
    actor_role_snapshot = db.Column(db.String(32), nullable=True)

    entity_type = db.Column(db.String(50), nullable=False, index=True)
    entity_id = db.Column(db.Integer, nullable=False, index=True)

    action = db.Column(db.String(40), nullable=False, index=True)

    before_data = db.Column(db.Text, nullable=True)
    after_data = db.Column(db.Text, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)

    user = db.relationship("User", backref=db.backref("audit_entries", lazy=True))
