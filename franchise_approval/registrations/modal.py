"""Rejection reason modal and its private metadata."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Mapping

from franchise_approval.errors import InteractionParseError

REJECTION_MODAL_CALLBACK_ID = "registration_reject_submit"
REASON_BLOCK_ID = "reason_block"
REASON_ACTION_ID = "reason"

MAX_REASON_LENGTH = 3000


@dataclass(frozen=True)
class ModalMetadata:
    """Context carried through the modal round trip unmodified."""

    record_id: str
    acting_user: str
    origin_channel: str | None = None
    origin_ts: str | None = None

    def to_json(self) -> str:
        return json.dumps(
            {
                "record_id": self.record_id,
                "user": self.acting_user,
                "channel": self.origin_channel,
                "ts": self.origin_ts,
            },
            separators=(",", ":"),
        )


def parse_modal_metadata(raw: str | None) -> ModalMetadata:
    try:
        data = json.loads(raw or "")
    except json.JSONDecodeError as exc:
        raise InteractionParseError("Modal metadata is not valid JSON.") from exc

    if not isinstance(data, dict):
        raise InteractionParseError("Modal metadata must be an object.")

    record_id = data.get("record_id")
    user = data.get("user")
    if not isinstance(record_id, str) or not record_id:
        raise InteractionParseError("Modal metadata is missing the record id.")
    if not isinstance(user, str) or not user:
        raise InteractionParseError("Modal metadata is missing the acting user.")

    return ModalMetadata(
        record_id=record_id,
        acting_user=user,
        origin_channel=data.get("channel") or None,
        origin_ts=data.get("ts") or None,
    )


def build_rejection_modal(*, metadata: ModalMetadata, suggested_reason: str) -> Dict[str, Any]:
    """Return a modal asking for a rejection reason, prefilled with a suggestion."""

    element: Dict[str, Any] = {
        "type": "plain_text_input",
        "action_id": REASON_ACTION_ID,
        "multiline": True,
        "max_length": MAX_REASON_LENGTH,
        "placeholder": {"type": "plain_text", "text": "Explain why the registration is rejected"},
    }
    if suggested_reason:
        element["initial_value"] = suggested_reason

    return {
        "type": "modal",
        "callback_id": REJECTION_MODAL_CALLBACK_ID,
        "private_metadata": metadata.to_json(),
        "title": {"type": "plain_text", "text": "Reject registration", "emoji": True},
        "submit": {"type": "plain_text", "text": "Reject", "emoji": True},
        "close": {"type": "plain_text", "text": "Cancel", "emoji": True},
        "blocks": [
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": f"*Registration:* `{metadata.record_id}`"},
            },
            {
                "type": "input",
                "block_id": REASON_BLOCK_ID,
                "label": {"type": "plain_text", "text": "Rejection reason", "emoji": True},
                "element": element,
            },
        ],
    }


def extract_reason(view_state: Mapping[str, Any]) -> str | None:
    """Return the reason typed into the modal as entered, or None when blank."""

    values = view_state.get("values", {}) if isinstance(view_state, Mapping) else {}
    block = values.get(REASON_BLOCK_ID)
    if not isinstance(block, dict):
        return None
    control = block.get(REASON_ACTION_ID)
    if not isinstance(control, dict):
        return None
    value = control.get("value")
    if isinstance(value, str) and value.strip():
        return value
    return None
