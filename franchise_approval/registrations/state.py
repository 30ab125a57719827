"""Pure decision logic for the registration approval lifecycle.

``decide`` maps a registration snapshot and a command to a :class:`Decision`:
the outcome, the fields to persist and the side effects to request. It does
no I/O, so every transition can be exercised without a database or Slack.

Lifecycle::

    under_review ──approve──▶ approved ──revert──▶ resubmit_requested
         │                                               │
         └──reject──▶ rejected ──revert──▶ ──────────────┘
                                    (approve/reject again)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Tuple, Union, assert_never

from franchise_approval.models import ApprovalStatus, RegistrationStatus
from franchise_approval.notifications import NotificationTemplate

from .store import RegistrationRecord


@dataclass(frozen=True)
class Approve:
    record_id: str
    approver: str
    silent: bool = False


@dataclass(frozen=True)
class Reject:
    record_id: str
    rejector: str
    reason: str


@dataclass(frozen=True)
class Revert:
    record_id: str
    actor: str


Command = Union[Approve, Reject, Revert]


@dataclass(frozen=True)
class ProvisionAccess:
    """Issue first-login credentials for a newly active partner."""

    record_id: str


@dataclass(frozen=True)
class RequestPageGeneration:
    record_id: str
    requested_by: str


@dataclass(frozen=True)
class Notify:
    record_id: str
    template: NotificationTemplate
    payload: Mapping[str, Any] = field(default_factory=dict)


SideEffect = Union[ProvisionAccess, RequestPageGeneration, Notify]


class Outcome(str, Enum):
    APPLIED = "applied"
    UNCHANGED = "unchanged"
    NOT_FOUND = "not_found"
    INVALID = "invalid"


@dataclass(frozen=True)
class Decision:
    outcome: Outcome
    command: Command
    from_status: RegistrationStatus | None = None
    to_status: RegistrationStatus | None = None
    changes: Mapping[str, Any] = field(default_factory=dict)
    effects: Tuple[SideEffect, ...] = ()
    message: str = ""

    @property
    def success(self) -> bool:
        return self.outcome in (Outcome.APPLIED, Outcome.UNCHANGED)


_APPROVAL_STATUS = {
    RegistrationStatus.UNDER_REVIEW: ApprovalStatus.PENDING,
    RegistrationStatus.RESUBMIT_REQUESTED: ApprovalStatus.PENDING,
    RegistrationStatus.APPROVED: ApprovalStatus.APPROVED,
    RegistrationStatus.REJECTED: ApprovalStatus.REJECTED,
}

REVIEWABLE_STATUSES = frozenset({RegistrationStatus.UNDER_REVIEW, RegistrationStatus.RESUBMIT_REQUESTED})
DECIDED_STATUSES = frozenset({RegistrationStatus.APPROVED, RegistrationStatus.REJECTED})


def approval_status_for(status: RegistrationStatus) -> ApprovalStatus:
    """Return the filter-friendly approval status mirroring *status*."""

    return _APPROVAL_STATUS[status]


def command_actor(command: Command) -> str:
    if isinstance(command, Approve):
        return command.approver
    if isinstance(command, Reject):
        return command.rejector
    if isinstance(command, Revert):
        return command.actor
    assert_never(command)


def _contact_payload(record: RegistrationRecord) -> Dict[str, Any]:
    return {
        "company_name": record.company_name,
        "representative": record.representative,
        "contact_email": record.contact_email,
    }


def _invalid(command: Command, record: RegistrationRecord, message: str) -> Decision:
    return Decision(
        outcome=Outcome.INVALID,
        command=command,
        from_status=record.status,
        to_status=record.status,
        message=message,
    )


def _unchanged(command: Command, record: RegistrationRecord) -> Decision:
    return Decision(
        outcome=Outcome.UNCHANGED,
        command=command,
        from_status=record.status,
        to_status=record.status,
        message=f"Registration {record.id} is already {record.status.value}.",
    )


def _decide_approve(record: RegistrationRecord, command: Approve, now: datetime) -> Decision:
    if record.status == RegistrationStatus.APPROVED and record.approver == command.approver:
        return _unchanged(command, record)
    if record.status not in REVIEWABLE_STATUSES:
        return _invalid(command, record, f"Registration {record.id} is {record.status.value} and cannot be approved.")

    target = RegistrationStatus.APPROVED
    changes = {
        "status": target,
        "approval_status": approval_status_for(target),
        "approver": command.approver,
        "decided_at": now,
        "rejection_reason": None,
        "silent": command.silent,
    }

    announcement = (
        NotificationTemplate.SILENT_APPROVAL_ANNOUNCEMENT
        if command.silent
        else NotificationTemplate.APPROVAL_ANNOUNCEMENT
    )
    contact = _contact_payload(record)
    effects: Tuple[SideEffect, ...] = (
        ProvisionAccess(record_id=record.id),
        RequestPageGeneration(record_id=record.id, requested_by=command.approver),
        Notify(record_id=record.id, template=NotificationTemplate.WELCOME, payload=contact),
        Notify(record_id=record.id, template=announcement, payload={**contact, "actor": command.approver}),
    )
    return Decision(
        outcome=Outcome.APPLIED,
        command=command,
        from_status=record.status,
        to_status=target,
        changes=changes,
        effects=effects,
    )


def _decide_reject(record: RegistrationRecord, command: Reject, now: datetime) -> Decision:
    if record.status == RegistrationStatus.REJECTED and record.approver == command.rejector:
        return _unchanged(command, record)
    if record.status not in REVIEWABLE_STATUSES:
        return _invalid(command, record, f"Registration {record.id} is {record.status.value} and cannot be rejected.")
    if not command.reason.strip():
        return _invalid(command, record, "A rejection reason is required.")

    target = RegistrationStatus.REJECTED
    changes = {
        "status": target,
        "approval_status": approval_status_for(target),
        "approver": command.rejector,
        "decided_at": now,
        "rejection_reason": command.reason,
        "silent": False,
    }
    contact = _contact_payload(record)
    effects: Tuple[SideEffect, ...] = (
        Notify(
            record_id=record.id,
            template=NotificationTemplate.REJECTION,
            payload={**contact, "reason": command.reason},
        ),
        Notify(
            record_id=record.id,
            template=NotificationTemplate.REJECTION_ANNOUNCEMENT,
            payload={**contact, "reason": command.reason, "actor": command.rejector},
        ),
    )
    return Decision(
        outcome=Outcome.APPLIED,
        command=command,
        from_status=record.status,
        to_status=target,
        changes=changes,
        effects=effects,
    )


def _decide_revert(record: RegistrationRecord, command: Revert) -> Decision:
    if record.status not in DECIDED_STATUSES:
        return _invalid(command, record, f"Registration {record.id} is {record.status.value}; only decided registrations can be reverted.")

    target = RegistrationStatus.RESUBMIT_REQUESTED
    changes = {
        "status": target,
        "approval_status": approval_status_for(target),
        "approver": None,
        "decided_at": None,
        "rejection_reason": None,
        "silent": False,
    }
    return Decision(
        outcome=Outcome.APPLIED,
        command=command,
        from_status=record.status,
        to_status=target,
        changes=changes,
    )


def decide(record: RegistrationRecord | None, command: Command, *, now: datetime) -> Decision:
    """Return the decision for applying *command* to *record*."""

    if record is None:
        return Decision(
            outcome=Outcome.NOT_FOUND,
            command=command,
            message=f"Registration {command.record_id} was not found.",
        )

    if isinstance(command, Approve):
        return _decide_approve(record, command, now)
    if isinstance(command, Reject):
        return _decide_reject(record, command, now)
    if isinstance(command, Revert):
        return _decide_revert(record, command)
    assert_never(command)
