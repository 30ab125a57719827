"""Tests for the pure registration decision logic."""

from dataclasses import replace
from datetime import UTC, datetime

import pytest

from franchise_approval.models import ApprovalStatus, RegistrationStatus
from franchise_approval.notifications import NotificationTemplate
from franchise_approval.registrations.state import (
    Approve,
    Notify,
    Outcome,
    ProvisionAccess,
    Reject,
    RequestPageGeneration,
    Revert,
    approval_status_for,
    decide,
)
from franchise_approval.registrations.store import RegistrationRecord

NOW = datetime(2024, 5, 2, 10, 30, tzinfo=UTC)


def _record(status=RegistrationStatus.UNDER_REVIEW, approver=None, **overrides):
    base = RegistrationRecord(
        id="R-1",
        company_name="Tokyo Paint Works",
        representative="Hanako Sato",
        contact_email="owner@example.test",
        phone=None,
        status=status,
        approval_status=approval_status_for(status),
        approver=approver,
        rejection_reason=None,
        silent=False,
        submitted_at=datetime(2024, 5, 1, tzinfo=UTC),
        decided_at=None,
        updated_at=datetime(2024, 5, 1, tzinfo=UTC),
        access_issued_at=None,
    )
    return replace(base, **overrides)


@pytest.mark.parametrize(
    "status, expected",
    [
        (RegistrationStatus.UNDER_REVIEW, ApprovalStatus.PENDING),
        (RegistrationStatus.RESUBMIT_REQUESTED, ApprovalStatus.PENDING),
        (RegistrationStatus.APPROVED, ApprovalStatus.APPROVED),
        (RegistrationStatus.REJECTED, ApprovalStatus.REJECTED),
    ],
)
def test_approval_status_mirrors_status(status, expected):
    assert approval_status_for(status) is expected


@pytest.mark.parametrize("status", [RegistrationStatus.UNDER_REVIEW, RegistrationStatus.RESUBMIT_REQUESTED])
def test_approve_from_reviewable_status(status):
    decision = decide(_record(status), Approve(record_id="R-1", approver="U1"), now=NOW)

    assert decision.outcome is Outcome.APPLIED
    assert decision.to_status is RegistrationStatus.APPROVED
    assert decision.changes["approval_status"] is ApprovalStatus.APPROVED
    assert decision.changes["approver"] == "U1"
    assert decision.changes["decided_at"] == NOW
    assert decision.changes["silent"] is False

    kinds = [type(effect) for effect in decision.effects]
    assert kinds == [ProvisionAccess, RequestPageGeneration, Notify, Notify]
    templates = [effect.template for effect in decision.effects if isinstance(effect, Notify)]
    assert templates == [NotificationTemplate.WELCOME, NotificationTemplate.APPROVAL_ANNOUNCEMENT]


def test_silent_approve_flags_record_and_uses_silent_announcement():
    decision = decide(_record(), Approve(record_id="R-1", approver="U1", silent=True), now=NOW)

    assert decision.changes["silent"] is True
    assert decision.effects[-1].template is NotificationTemplate.SILENT_APPROVAL_ANNOUNCEMENT


def test_approve_again_by_same_approver_is_unchanged_without_effects():
    record = _record(RegistrationStatus.APPROVED, approver="U1")

    decision = decide(record, Approve(record_id="R-1", approver="U1"), now=NOW)

    assert decision.outcome is Outcome.UNCHANGED
    assert decision.success
    assert decision.effects == ()
    assert decision.changes == {}


def test_approve_by_different_actor_on_approved_record_is_invalid():
    record = _record(RegistrationStatus.APPROVED, approver="U1")

    decision = decide(record, Approve(record_id="R-1", approver="U2"), now=NOW)

    assert decision.outcome is Outcome.INVALID
    assert not decision.success
    assert decision.effects == ()


def test_approve_rejected_record_is_invalid():
    decision = decide(_record(RegistrationStatus.REJECTED, approver="U1"), Approve("R-1", "U1"), now=NOW)

    assert decision.outcome is Outcome.INVALID


def test_reject_stores_reason_verbatim_and_notifies_contact():
    reason = "  insufficient documentation\n(see attachment)  "

    decision = decide(_record(), Reject(record_id="R-1", rejector="U1", reason=reason), now=NOW)

    assert decision.outcome is Outcome.APPLIED
    assert decision.changes["status"] is RegistrationStatus.REJECTED
    assert decision.changes["approval_status"] is ApprovalStatus.REJECTED
    assert decision.changes["rejection_reason"] == reason
    rejection = decision.effects[0]
    assert rejection.template is NotificationTemplate.REJECTION
    assert rejection.payload["reason"] == reason
    assert rejection.payload["contact_email"] == "owner@example.test"


def test_reject_requires_a_reason():
    decision = decide(_record(), Reject(record_id="R-1", rejector="U1", reason="   "), now=NOW)

    assert decision.outcome is Outcome.INVALID
    assert decision.effects == ()


def test_reject_twice_by_same_rejector_is_unchanged():
    record = _record(RegistrationStatus.REJECTED, approver="U1", rejection_reason="first")

    decision = decide(record, Reject(record_id="R-1", rejector="U1", reason="second"), now=NOW)

    assert decision.outcome is Outcome.UNCHANGED
    assert decision.effects == ()


@pytest.mark.parametrize("status", [RegistrationStatus.APPROVED, RegistrationStatus.REJECTED])
def test_revert_returns_decided_record_to_review_without_effects(status):
    record = _record(status, approver="U1", rejection_reason="x", silent=True, decided_at=NOW)

    decision = decide(record, Revert(record_id="R-1", actor="U9"), now=NOW)

    assert decision.outcome is Outcome.APPLIED
    assert decision.to_status is RegistrationStatus.RESUBMIT_REQUESTED
    assert decision.changes == {
        "status": RegistrationStatus.RESUBMIT_REQUESTED,
        "approval_status": ApprovalStatus.PENDING,
        "approver": None,
        "decided_at": None,
        "rejection_reason": None,
        "silent": False,
    }
    assert decision.effects == ()


@pytest.mark.parametrize("status", [RegistrationStatus.UNDER_REVIEW, RegistrationStatus.RESUBMIT_REQUESTED])
def test_revert_requires_a_decided_record(status):
    decision = decide(_record(status), Revert(record_id="R-1", actor="U1"), now=NOW)

    assert decision.outcome is Outcome.INVALID


@pytest.mark.parametrize(
    "command",
    [Approve("missing", "U1"), Reject("missing", "U1", "reason"), Revert("missing", "U1")],
)
def test_unknown_record_is_not_found(command):
    decision = decide(None, command, now=NOW)

    assert decision.outcome is Outcome.NOT_FOUND
    assert decision.changes == {}
    assert decision.effects == ()
    assert "missing" in decision.message
