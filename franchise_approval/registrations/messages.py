"""Block Kit message builders for registration review cards."""

from __future__ import annotations

from typing import Any, Dict, List

from franchise_approval.models import RegistrationStatus

from .actions import ActionKind, encode_action
from .store import RegistrationRecord

DECISION_BLOCK_ID = "registration_decision_buttons"

_MISSING_VALUE = "_Not provided_"


def _format_field(label: str, value: Any) -> str:
    if value is None or (isinstance(value, str) and value.strip() == ""):
        return f"*{label}:* {_MISSING_VALUE}"
    return f"*{label}:* {value}"


def _details_section(record: RegistrationRecord) -> Dict[str, Any]:
    lines = [
        _format_field("Company", record.company_name),
        _format_field("Representative", record.representative),
        _format_field("Email", record.contact_email),
        _format_field("Phone", record.phone),
    ]
    return {"type": "section", "text": {"type": "mrkdwn", "text": "\n".join(lines)}}


def _button(kind: ActionKind, record_id: str, label: str, style: str | None = None) -> Dict[str, Any]:
    button: Dict[str, Any] = {
        "type": "button",
        "text": {"type": "plain_text", "text": label, "emoji": True},
        "action_id": kind.action_id,
        "value": encode_action(kind, record_id),
    }
    if style:
        button["style"] = style
    return button


def _review_buttons(record_id: str) -> Dict[str, Any]:
    reject = _button(ActionKind.REJECT, record_id, "Reject", "danger")
    reject["confirm"] = {
        "title": {"type": "plain_text", "text": "Reject registration"},
        "text": {"type": "mrkdwn", "text": "Reject with the standard reason?"},
        "confirm": {"type": "plain_text", "text": "Reject"},
        "deny": {"type": "plain_text", "text": "Cancel"},
    }
    return {
        "type": "actions",
        "block_id": DECISION_BLOCK_ID,
        "elements": [
            _button(ActionKind.APPROVE, record_id, "Approve", "primary"),
            _button(ActionKind.APPROVE_SILENT, record_id, "Approve silently"),
            reject,
            _button(ActionKind.REJECT_WITH_REASON, record_id, "Reject with reason..."),
        ],
    }


def _revert_buttons(record_id: str) -> Dict[str, Any]:
    return {
        "type": "actions",
        "block_id": DECISION_BLOCK_ID,
        "elements": [_button(ActionKind.REVERT, record_id, "Revert to review")],
    }


def _context(text: str) -> Dict[str, Any]:
    return {"type": "context", "elements": [{"type": "mrkdwn", "text": text}]}


def build_review_message(record: RegistrationRecord) -> Dict[str, Any]:
    """Build the review card posted when a registration awaits a decision."""

    title = "Franchise registration review"
    if record.status == RegistrationStatus.RESUBMIT_REQUESTED:
        title = "Franchise registration re-review"

    blocks: List[Dict[str, Any]] = [
        {"type": "header", "text": {"type": "plain_text", "text": title, "emoji": True}},
        _details_section(record),
        _context(f"Registration ID: `{record.id}` - Status: `{record.status.value}`"),
        _review_buttons(record.id),
    ]
    return {
        "text": f"Registration {record.id} from {record.company_name} is waiting for review.",
        "blocks": blocks,
    }


_STATUS_LABELS = {
    RegistrationStatus.APPROVED: (":white_check_mark:", "Approved"),
    RegistrationStatus.REJECTED: (":no_entry_sign:", "Rejected"),
    RegistrationStatus.RESUBMIT_REQUESTED: (":leftwards_arrow_with_hook:", "Returned for review"),
    RegistrationStatus.UNDER_REVIEW: (":hourglass_flowing_sand:", "Under review"),
}


def build_decision_update(record: RegistrationRecord, *, actor: str) -> Dict[str, Any]:
    """Return the review card rewritten to show the record's current state."""

    emoji, label = _STATUS_LABELS[record.status]
    if record.status == RegistrationStatus.APPROVED and record.silent:
        label = "Approved silently"

    base = build_review_message(record)
    blocks = list(base["blocks"][:-1])  # drop the review buttons

    lines = [f"{emoji} {label} by <@{actor}>"]
    if record.status == RegistrationStatus.REJECTED and record.rejection_reason:
        lines.append(f"*Reason:* {record.rejection_reason}")
    blocks.append(_context("\n".join(lines)))

    if record.status in (RegistrationStatus.APPROVED, RegistrationStatus.REJECTED):
        blocks.append(_revert_buttons(record.id))
    else:
        blocks.append(_review_buttons(record.id))

    return {
        "text": f"Registration {record.id}: {label} by <@{actor}>.",
        "blocks": blocks,
    }
