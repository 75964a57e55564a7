"""
Visibility & contact-sharing gate.

Cross-cutting read authorization. Every read path that exposes homeowner contact
details, installer phone numbers or quote details must go through these checks
(see serializers.py).
"""

from __future__ import annotations

from .models import ProjectStatus, Role

S = ProjectStatus

# Installer pipeline buckets
NEW_LEAD = "new_leads"
SUBMITTED_QUOTE = "submitted_quotes"
SHARED_CONTACT = "shared_contacts"
SIGNED_DEAL = "signed_deals"
LOST_DEAL = "lost_deals"

PIPELINE_BUCKETS = (NEW_LEAD, SUBMITTED_QUOTE, SHARED_CONTACT, SIGNED_DEAL, LOST_DEAL)


def can_see_contact(project, viewer_role: Role, viewer_id) -> bool:
    """Homeowner email/phone: owner, any admin, installers the contact was shared with."""
    if viewer_role == Role.ADMIN:
        return True
    if viewer_role == Role.HOMEOWNER:
        return project.homeowner_id == viewer_id
    if viewer_role == Role.INSTALLER:
        return project.is_shared_with(viewer_id)
    return False


def can_see_phone(installer, viewer_role: Role, viewer_id) -> bool:
    """Installer phone: the installer itself or an admin. Email is always public."""
    if viewer_role == Role.ADMIN:
        return True
    return viewer_id is not None and installer.id == viewer_id


def can_see_quote_details(quote, project, viewer_role: Role, viewer_id) -> bool:
    if viewer_role == Role.ADMIN:
        return True
    if viewer_role == Role.INSTALLER:
        return quote.installer_id == viewer_id
    if viewer_role == Role.HOMEOWNER:
        return project.homeowner_id == viewer_id
    return False


def is_lead_for(project, installer) -> bool:
    return project.status == S.APPROVED and installer.serves_county(project.county)


def can_view_project(project, viewer_role: Role, viewer_id, installer=None) -> bool:
    """
    Admins see everything (deleted projects are retained for audit).
    Homeowners see their own non-deleted projects.
    Installers see non-deleted projects that are a lead for them, hold their quote,
    or have been shared with them.
    """
    if viewer_role == Role.ADMIN:
        return True
    if project.status == S.DELETED:
        return False
    if viewer_role == Role.HOMEOWNER:
        return project.homeowner_id == viewer_id
    if viewer_role == Role.INSTALLER:
        if project.quote_by_installer(viewer_id) is not None or project.is_shared_with(viewer_id):
            return True
        return installer is not None and is_lead_for(project, installer)
    return False


def pipeline_bucket(project, installer) -> str | None:
    """
    Classify a project for an installer's dashboard.

    A signed project where the installer quoted but did not win is a lost deal
    ("another installer won"). Held projects stop being leads; deleted ones
    leave the pipeline entirely.
    """
    if project.status == S.DELETED:
        return None

    my_quote = project.quote_by_installer(installer.id)

    if project.status == S.SIGNED:
        if project.winning_installer_id == installer.id:
            return SIGNED_DEAL
        if my_quote is not None:
            return LOST_DEAL
        return None
    if project.status == S.CONTACT_SHARED and project.is_shared_with(installer.id):
        return SHARED_CONTACT
    if my_quote is not None:
        return SUBMITTED_QUOTE
    if is_lead_for(project, installer):
        return NEW_LEAD
    return None


def quote_outcome(project, installer_id) -> str:
    """'won' / 'lost' once the project is signed, otherwise 'open'."""
    if project.status != S.SIGNED:
        return "open"
    return "won" if project.winning_installer_id == installer_id else "lost"
