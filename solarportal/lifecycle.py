"""
Project lifecycle state machine.

    PENDING_APPROVAL -> APPROVED -> CONTACT_SHARED -> SIGNED (terminal)
    APPROVED / CONTACT_SHARED -> ON_HOLD -> APPROVED
    any non-SIGNED, non-DELETED -> DELETED (terminal, soft)

Each transition:
- checks the actor's role and every precondition BEFORE mutating anything
- mutates the in-memory aggregate (project, quotes, contact shares)
- returns the domain events it produced (plus any derived record)

Nothing here touches the session, commits, or notifies. workflow.py owns the
transaction; notifications.py turns events into notifications.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional

from . import events as ev
from .errors import AlreadySigned, Forbidden, NotEligible, NotFound, PreconditionFailed, ValidationFailed
from .events import DomainEvent
from .finance import record_signing
from .models import Project, ProjectContactShare, ProjectStatus, Review, Role, UserStatus, money, utcnow
from .quotes import QuoteTerms, upsert_quote
from .roles import require_role, role_of
from .utils import parse_bool, parse_decimal, parse_optional_int, require_positive_money, require_text

S = ProjectStatus

BIDDING = (S.APPROVED, S.CONTACT_SHARED)
HOLDABLE = (S.APPROVED, S.CONTACT_SHARED)
DELETABLE = (S.PENDING_APPROVAL, S.APPROVED, S.CONTACT_SHARED, S.ON_HOLD)
EDITABLE = DELETABLE

FEASIBILITY_REPORT_KEYS = (
    "estimatedSystemSizeKw",
    "estimatedAnnualProductionKwh",
    "summary",
    "potentialBenefits",
)


# ---------------------------------------------------------------------
# Input
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class ProjectDetails:
    """Homeowner-supplied project fields (submit) or admin edits (edit)."""

    street: str
    city: str
    county: str
    energy_bill: object
    roof_type_id: Optional[int] = None
    notes: str = ""
    wants_battery: bool = False
    photo_ref: Optional[str] = None

    @classmethod
    def from_mapping(cls, data: Mapping) -> "ProjectDetails":
        address = data.get("address") if isinstance(data.get("address"), Mapping) else data
        return cls(
            street=require_text(address.get("street"), "street"),
            city=require_text(address.get("city"), "city"),
            county=require_text(address.get("county"), "county"),
            energy_bill=require_positive_money(data.get("energy_bill"), "energy_bill"),
            roof_type_id=parse_optional_int(data.get("roof_type_id")),
            notes=(data.get("notes") or "").strip(),
            wants_battery=parse_bool(data.get("wants_battery")),
            photo_ref=(data.get("photo_ref") or "").strip() or None,
        )

    @classmethod
    def merged(cls, project: Project, data: Mapping) -> "ProjectDetails":
        """Partial edit: keys missing from data keep the project's current values."""
        address = {"street": project.street, "city": project.city, "county": project.county}
        for key in address:
            if key in data:
                address[key] = data[key]
        if isinstance(data.get("address"), Mapping):
            address.update({k: v for k, v in data["address"].items() if k in address})

        values = {
            "energy_bill": project.energy_bill,
            "roof_type_id": project.roof_type_id,
            "notes": project.notes,
            "wants_battery": project.wants_battery,
        }
        values.update({k: v for k, v in data.items() if k in values or k == "photo_ref"})
        values["address"] = address
        return cls.from_mapping(values)


# ---------------------------------------------------------------------
# Guards
# ---------------------------------------------------------------------
def _require_status(project: Project, action: str, allowed) -> None:
    if project.status not in allowed:
        raise PreconditionFailed(action, allowed, project.status)


def _require_not_signed(project: Project) -> None:
    if project.status == S.SIGNED:
        raise AlreadySigned(project.id)


def _require_owner(project: Project, actor) -> None:
    if project.homeowner_id != actor.id:
        raise Forbidden("only the project's homeowner may do this")


def _name(user) -> str:
    return getattr(user, "name", None) or "N/A"


def _apply_details(project: Project, details: ProjectDetails) -> None:
    project.street = details.street
    project.city = details.city
    project.county = details.county
    project.energy_bill = details.energy_bill
    project.roof_type_id = details.roof_type_id
    project.notes = details.notes or None
    project.wants_battery = details.wants_battery
    if details.photo_ref:
        project.photo_ref = details.photo_ref


def invariant_violations(project: Project) -> list[str]:
    problems = []
    signed = project.status == S.SIGNED
    if signed != (project.winning_installer_id is not None):
        problems.append("winning installer must be set exactly when the project is signed")
    if project.winning_installer_id is not None and not project.is_shared_with(project.winning_installer_id):
        problems.append("winning installer missing from contact shares")
    installers = [q.installer_id for q in project.quotes]
    if len(installers) != len(set(installers)):
        problems.append("more than one quote per installer")
    return problems


# ---------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------
def submit_project(homeowner, details: ProjectDetails):
    require_role(homeowner, Role.HOMEOWNER)

    project = Project(
        homeowner=homeowner,
        homeowner_id=homeowner.id,
        status=S.PENDING_APPROVAL,
        review_submitted=False,
    )
    _apply_details(project, details)

    return project, [DomainEvent(ev.PROJECT_SUBMITTED, project, {"homeownerName": _name(homeowner)})]


def approve(project: Project, actor, photo_ref: str | None = None):
    require_role(actor, Role.ADMIN)
    _require_status(project, "approve", (S.PENDING_APPROVAL,))

    project.status = S.APPROVED
    if photo_ref:
        project.photo_ref = photo_ref

    return [DomainEvent(ev.PROJECT_APPROVED, project, {"city": project.city})]


def hold(project: Project, actor):
    require_role(actor, Role.ADMIN)
    _require_status(project, "hold", HOLDABLE)
    project.status = S.ON_HOLD
    return []


def restore(project: Project, actor):
    require_role(actor, Role.ADMIN)
    _require_status(project, "restore", (S.ON_HOLD,))
    project.status = S.APPROVED
    return []


def delete(project: Project, actor):
    require_role(actor, Role.ADMIN)
    _require_status(project, "delete", DELETABLE)
    project.status = S.DELETED
    return []


def edit(project: Project, actor, details: ProjectDetails):
    """Admin edit of project fields. Terminal projects (SIGNED, DELETED) are frozen."""
    require_role(actor, Role.ADMIN)
    _require_status(project, "edit", EDITABLE)
    _apply_details(project, details)
    return []


def share_contact(project: Project, actor, installer):
    """
    Grant one installer access to the homeowner's contact details.

    Sharing again with the same installer is a silent no-op (no event).
    """
    require_role(actor, Role.HOMEOWNER)
    _require_owner(project, actor)
    if installer is None or role_of(installer) != Role.INSTALLER:
        raise NotFound("installer", getattr(installer, "id", None))
    _require_status(project, "share contact", BIDDING)

    if project.is_shared_with(installer.id):
        return []

    project.contact_shares.append(ProjectContactShare(installer_id=installer.id))
    if project.status == S.APPROVED:
        project.status = S.CONTACT_SHARED

    return [
        DomainEvent(
            ev.CONTACT_SHARED,
            project,
            {"homeownerName": _name(project.homeowner)},
            installer_id=installer.id,
        )
    ]


def submit_quote(project: Project, actor, terms: QuoteTerms, quote_id: int | None = None):
    """Add the installer's quote or revise it in place. Returns (quote, events)."""
    require_role(actor, Role.INSTALLER)
    if actor.status != UserStatus.ACTIVE:
        raise NotEligible("inactive installers cannot submit quotes")
    _require_status(project, "submit a quote", BIDDING)
    if not actor.serves_county(project.county):
        raise NotEligible(f"{project.county} is outside your service area")

    quote, created = upsert_quote(project, actor.id, terms, quote_id=quote_id)

    kind = ev.QUOTE_SUBMITTED if created else ev.QUOTE_REVISED
    return quote, [DomainEvent(kind, project, {"installerName": _name(actor)}, installer_id=actor.id, quote=quote)]


def _sign(project: Project, installer_id: int, installer_name: str, final_price, commission_rate):
    now = utcnow()
    price = money(final_price)

    project.status = S.SIGNED
    project.winning_installer_id = installer_id
    project.final_price = price
    project.signed_at = now
    if not project.is_shared_with(installer_id):
        project.contact_shares.append(ProjectContactShare(installer_id=installer_id))

    record = record_signing(project, price, installer_id, commission_rate, signed_at=now)

    event = DomainEvent(
        ev.DEAL_SIGNED,
        project,
        {
            "finalPrice": str(price),
            "installerName": installer_name,
            "homeownerName": _name(project.homeowner),
        },
        installer_id=installer_id,
    )
    return record, [event]


def accept_offer(project: Project, actor, quote_id: int, commission_rate):
    """Homeowner accepts exactly one quote; the deal is signed at the quote price."""
    require_role(actor, Role.HOMEOWNER)
    _require_owner(project, actor)
    _require_not_signed(project)
    _require_status(project, "accept an offer", BIDDING)

    quote = project.quote_by_id(quote_id)
    if quote is None:
        raise NotFound("quote", quote_id)

    return _sign(project, quote.installer_id, _name(quote.installer), quote.price, commission_rate)


def mark_signed(project: Project, actor, final_price, commission_rate):
    """Installer records the deal at the final negotiated price."""
    require_role(actor, Role.INSTALLER)
    _require_not_signed(project)
    _require_status(project, "mark as signed", BIDDING)
    if not project.is_shared_with(actor.id):
        raise NotEligible("the homeowner has not shared contact details with you")

    price = require_positive_money(final_price, "final_price")
    return _sign(project, actor.id, _name(actor), price, commission_rate)


def leave_review(project: Project, actor, rating, comment: str | None = None):
    require_role(actor, Role.HOMEOWNER)
    _require_owner(project, actor)
    _require_status(project, "leave a review", (S.SIGNED,))
    if project.review_submitted:
        raise ValidationFailed("a review was already submitted for this project")

    value = parse_decimal(rating)
    if value is None or value != value.to_integral_value() or not 1 <= value <= 5:
        raise ValidationFailed("rating must be a whole number from 1 to 5")

    review = Review(
        project=project,
        installer_id=project.winning_installer_id,
        homeowner_id=actor.id,
        rating=int(value),
        comment=(comment or "").strip() or None,
    )
    project.review_submitted = True

    return review, [
        DomainEvent(
            ev.REVIEW_SUBMITTED,
            project,
            {"homeownerName": _name(actor)},
            installer_id=project.winning_installer_id,
        )
    ]


def attach_feasibility_report(project: Project, actor, report: Mapping):
    """Store an externally generated feasibility report. Never affects status."""
    role = require_role(actor, Role.HOMEOWNER, Role.ADMIN)
    if role == Role.HOMEOWNER:
        _require_owner(project, actor)
    if project.status == S.DELETED:
        raise PreconditionFailed("attach a report", [s for s in S if s != S.DELETED], project.status)

    if not isinstance(report, Mapping):
        raise ValidationFailed("report must be an object")
    missing = [key for key in FEASIBILITY_REPORT_KEYS if key not in report]
    if missing:
        raise ValidationFailed(f"report is missing: {', '.join(missing)}")
    if not isinstance(report["potentialBenefits"], list):
        raise ValidationFailed("potentialBenefits must be a list")

    project.feasibility_report = {key: report[key] for key in FEASIBILITY_REPORT_KEYS}
    return []
