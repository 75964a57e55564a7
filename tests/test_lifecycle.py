# tests/test_lifecycle.py
"""State machine rules, checked on in-memory objects (no database)."""
from decimal import Decimal

import pytest

from solarportal import events as ev
from solarportal import lifecycle
from solarportal.errors import AlreadySigned, Forbidden, NotEligible, NotFound, PreconditionFailed, ValidationFailed
from solarportal.lifecycle import ProjectDetails
from solarportal.models import FinancialRecordStatus, ProjectStatus, Role, User, UserStatus
from solarportal.quotes import QuoteTerms

S = ProjectStatus
RATE = Decimal("0.10")


def _user(id_, role, counties=None, status=UserStatus.ACTIVE):
    user = User(id=id_, email=f"u{id_}@example.com", name=f"User {id_}", role=role, status=status)
    if counties:
        user.set_service_counties(counties)
    return user


@pytest.fixture
def people():
    return {
        "admin": _user(1, Role.ADMIN),
        "owner": _user(2, Role.HOMEOWNER),
        "stranger": _user(3, Role.HOMEOWNER),
        "a": _user(10, Role.INSTALLER, ["Cluj"]),
        "b": _user(11, Role.INSTALLER, ["Cluj"]),
        "far": _user(12, Role.INSTALLER, ["Ilfov"]),
    }


def _details(**extra):
    data = {"street": "Str. Soarelui 45", "city": "Cluj-Napoca", "county": "Cluj", "energy_bill": "1250"}
    data.update(extra)
    return ProjectDetails.from_mapping(data)


def _terms(price):
    return QuoteTerms.from_mapping(
        {"price": price, "system_size_kw": "6", "panel_model_id": 1, "inverter_model_id": 1}
    )


def _project(people, status=S.APPROVED):
    project, _ = lifecycle.submit_project(people["owner"], _details())
    project.id = 100
    project.status = status
    return project


def _quote(project, installer, price, quote_id):
    quote, _ = lifecycle.submit_quote(project, installer, _terms(price))
    quote.id = quote_id
    quote.installer = installer
    return quote


# ---------------------------------------------------------------------
# submit / moderation
# ---------------------------------------------------------------------
def test_submit_project(people):
    project, events = lifecycle.submit_project(people["owner"], _details(wants_battery="on"))
    assert project.status == S.PENDING_APPROVAL
    assert project.homeowner_id == 2
    assert project.wants_battery is True
    assert project.energy_bill == Decimal("1250.00")
    assert [e.kind for e in events] == [ev.PROJECT_SUBMITTED]


def test_submit_requires_homeowner(people):
    with pytest.raises(Forbidden):
        lifecycle.submit_project(people["a"], _details())


def test_details_accept_nested_address():
    details = ProjectDetails.from_mapping(
        {"address": {"street": "Aleea 1", "city": "Oradea", "county": "Bihor"}, "energy_bill": 800}
    )
    assert details.county == "Bihor"


@pytest.mark.parametrize("bill", [None, "", "0", "-10", "abc", "0.004"])
def test_details_reject_bad_bill(bill):
    with pytest.raises(ValidationFailed):
        _details(energy_bill=bill)


def test_approve(people):
    project = _project(people, S.PENDING_APPROVAL)
    events = lifecycle.approve(project, people["admin"], photo_ref="roof.jpg")
    assert project.status == S.APPROVED
    assert project.photo_ref == "roof.jpg"
    assert [e.kind for e in events] == [ev.PROJECT_APPROVED]


def test_approve_only_from_pending(people):
    project = _project(people, S.APPROVED)
    with pytest.raises(PreconditionFailed) as exc:
        lifecycle.approve(project, people["admin"])
    assert exc.value.actual == S.APPROVED
    assert exc.value.to_dict()["expected"] == ["pending_approval"]


def test_moderation_is_admin_only(people):
    project = _project(people, S.PENDING_APPROVAL)
    with pytest.raises(Forbidden):
        lifecycle.approve(project, people["owner"])
    assert project.status == S.PENDING_APPROVAL


def test_hold_and_restore(people):
    project = _project(people, S.CONTACT_SHARED)
    lifecycle.hold(project, people["admin"])
    assert project.status == S.ON_HOLD
    lifecycle.restore(project, people["admin"])
    assert project.status == S.APPROVED


def test_hold_rejected_while_pending(people):
    project = _project(people, S.PENDING_APPROVAL)
    with pytest.raises(PreconditionFailed):
        lifecycle.hold(project, people["admin"])


def test_restore_only_from_hold(people):
    with pytest.raises(PreconditionFailed):
        lifecycle.restore(_project(people, S.APPROVED), people["admin"])


@pytest.mark.parametrize("status", [S.SIGNED, S.DELETED])
def test_terminal_projects_cannot_be_deleted_or_edited(people, status):
    project = _project(people, status)
    with pytest.raises(PreconditionFailed):
        lifecycle.delete(project, people["admin"])
    with pytest.raises(PreconditionFailed):
        lifecycle.edit(project, people["admin"], _details(city="Turda"))
    assert project.city == "Cluj-Napoca"


def test_delete_is_soft(people):
    project = _project(people, S.ON_HOLD)
    lifecycle.delete(project, people["admin"])
    assert project.status == S.DELETED


# ---------------------------------------------------------------------
# contact sharing
# ---------------------------------------------------------------------
def test_share_contact_moves_to_contact_shared(people):
    project = _project(people)
    events = lifecycle.share_contact(project, people["owner"], people["a"])
    assert project.status == S.CONTACT_SHARED
    assert project.shared_with_installer_ids == {10}
    assert events[0].kind == ev.CONTACT_SHARED
    assert events[0].installer_id == 10


def test_share_contact_twice_is_a_no_op(people):
    project = _project(people)
    lifecycle.share_contact(project, people["owner"], people["a"])
    assert lifecycle.share_contact(project, people["owner"], people["a"]) == []
    assert len(project.contact_shares) == 1


def test_share_with_second_installer(people):
    project = _project(people)
    lifecycle.share_contact(project, people["owner"], people["a"])
    lifecycle.share_contact(project, people["owner"], people["b"])
    assert project.status == S.CONTACT_SHARED
    assert project.shared_with_installer_ids == {10, 11}


def test_share_contact_rules(people):
    project = _project(people)
    with pytest.raises(Forbidden):
        lifecycle.share_contact(project, people["stranger"], people["a"])
    with pytest.raises(NotFound):
        lifecycle.share_contact(project, people["owner"], people["stranger"])

    pending = _project(people, S.PENDING_APPROVAL)
    with pytest.raises(PreconditionFailed):
        lifecycle.share_contact(pending, people["owner"], people["a"])


# ---------------------------------------------------------------------
# quotes
# ---------------------------------------------------------------------
def test_submit_and_revise_quote_events(people):
    project = _project(people)
    quote, events = lifecycle.submit_quote(project, people["a"], _terms("50000"))
    assert events[0].kind == ev.QUOTE_SUBMITTED
    assert events[0].quote is quote

    again, events = lifecycle.submit_quote(project, people["a"], _terms("48000"))
    assert again is quote
    assert events[0].kind == ev.QUOTE_REVISED
    assert len(project.quotes) == 1


def test_quote_outside_service_county(people):
    project = _project(people)
    with pytest.raises(NotEligible):
        lifecycle.submit_quote(project, people["far"], _terms("50000"))
    assert project.quotes == []


def test_inactive_installer_cannot_quote(people):
    held = _user(20, Role.INSTALLER, ["Cluj"], status=UserStatus.ON_HOLD)
    with pytest.raises(NotEligible):
        lifecycle.submit_quote(_project(people), held, _terms("50000"))


@pytest.mark.parametrize("status", [S.PENDING_APPROVAL, S.ON_HOLD, S.SIGNED, S.DELETED])
def test_quotes_only_while_bidding(people, status):
    with pytest.raises(PreconditionFailed):
        lifecycle.submit_quote(_project(people, status), people["a"], _terms("50000"))


# ---------------------------------------------------------------------
# signing
# ---------------------------------------------------------------------
def test_accept_offer_signs_at_quote_price(people):
    project = _project(people)
    _quote(project, people["a"], "50000", 1)
    _quote(project, people["b"], "80000", 2)

    record, events = lifecycle.accept_offer(project, people["owner"], 2, RATE)

    assert project.status == S.SIGNED
    assert project.winning_installer_id == 11
    assert project.final_price == Decimal("80000.00")
    assert project.signed_at is not None
    assert project.is_shared_with(11)
    assert record.final_price == Decimal("80000.00")
    assert record.commission_amount == Decimal("8000.00")
    assert record.status == FinancialRecordStatus.PENDING
    assert events[0].kind == ev.DEAL_SIGNED
    assert events[0].params["installerName"] == "User 11"
    assert lifecycle.invariant_violations(project) == []


def test_accept_offer_twice_raises_already_signed(people):
    project = _project(people)
    _quote(project, people["a"], "50000", 1)
    lifecycle.accept_offer(project, people["owner"], 1, RATE)

    with pytest.raises(AlreadySigned):
        lifecycle.accept_offer(project, people["owner"], 1, RATE)


def test_accept_offer_guards(people):
    project = _project(people)
    _quote(project, people["a"], "50000", 1)

    with pytest.raises(Forbidden):
        lifecycle.accept_offer(project, people["stranger"], 1, RATE)
    with pytest.raises(NotFound):
        lifecycle.accept_offer(project, people["owner"], 999, RATE)
    assert project.status == S.APPROVED


def test_mark_signed_requires_shared_contact(people):
    project = _project(people)
    with pytest.raises(NotEligible):
        lifecycle.mark_signed(project, people["a"], "61000", RATE)

    lifecycle.share_contact(project, people["owner"], people["a"])
    record, _ = lifecycle.mark_signed(project, people["a"], "61000", RATE)
    assert project.status == S.SIGNED
    assert project.winning_installer_id == 10
    assert record.commission_amount == Decimal("6100.00")

    with pytest.raises(AlreadySigned):
        lifecycle.mark_signed(project, people["a"], "61000", RATE)


def test_mark_signed_rejects_bad_price(people):
    project = _project(people)
    lifecycle.share_contact(project, people["owner"], people["a"])
    with pytest.raises(ValidationFailed):
        lifecycle.mark_signed(project, people["a"], "0", RATE)
    with pytest.raises(ValidationFailed):
        lifecycle.mark_signed(project, people["a"], "0.004", RATE)
    assert project.status == S.CONTACT_SHARED
    assert project.final_price is None


# ---------------------------------------------------------------------
# after signing
# ---------------------------------------------------------------------
def test_leave_review(people):
    project = _project(people)
    _quote(project, people["a"], "50000", 1)

    with pytest.raises(PreconditionFailed):
        lifecycle.leave_review(project, people["owner"], 5, "great")

    lifecycle.accept_offer(project, people["owner"], 1, RATE)

    with pytest.raises(ValidationFailed):
        lifecycle.leave_review(project, people["owner"], 6, "too good")

    review, events = lifecycle.leave_review(project, people["owner"], "5", " great ")
    assert review.rating == 5
    assert review.comment == "great"
    assert review.installer_id == 10
    assert project.review_submitted is True
    assert events[0].kind == ev.REVIEW_SUBMITTED

    with pytest.raises(ValidationFailed):
        lifecycle.leave_review(project, people["owner"], 4, "again")


def test_feasibility_report(people):
    project = _project(people, S.PENDING_APPROVAL)
    report = {
        "estimatedSystemSizeKw": 6.2,
        "estimatedAnnualProductionKwh": 7800,
        "summary": "Good orientation",
        "potentialBenefits": ["Lower bills"],
        "extra": "dropped",
    }
    assert lifecycle.attach_feasibility_report(project, people["owner"], report) == []
    assert set(project.feasibility_report) == set(lifecycle.FEASIBILITY_REPORT_KEYS)
    assert project.status == S.PENDING_APPROVAL

    with pytest.raises(ValidationFailed):
        lifecycle.attach_feasibility_report(project, people["owner"], {"summary": "x"})
    with pytest.raises(Forbidden):
        lifecycle.attach_feasibility_report(project, people["stranger"], report)


def test_invariant_violations_detects_inconsistent_signing(people):
    project = _project(people, S.SIGNED)
    assert lifecycle.invariant_violations(project)
