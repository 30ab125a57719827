"""Encoding and decoding of registration button actions."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from franchise_approval.errors import InteractionParseError

from .state import Approve, Command, Reject, Revert

ACTION_SEPARATOR = ":"
ACTION_ID_PREFIX = "registration_"


class ActionKind(str, Enum):
    APPROVE = "approve"
    APPROVE_SILENT = "approve_silent"
    REJECT = "reject"
    REJECT_WITH_REASON = "reject_with_reason"
    REVERT = "revert"

    @property
    def action_id(self) -> str:
        return f"{ACTION_ID_PREFIX}{self.value}"


# Handled inside the acknowledgement window; the others open a modal.
FAST_ACTIONS = frozenset(
    {ActionKind.APPROVE, ActionKind.APPROVE_SILENT, ActionKind.REJECT, ActionKind.REVERT}
)


@dataclass(frozen=True)
class RegistrationAction:
    kind: ActionKind
    record_id: str

    @property
    def value(self) -> str:
        return encode_action(self.kind, self.record_id)


def encode_action(kind: ActionKind, record_id: str) -> str:
    """Return the button value for *kind* on *record_id*."""

    if not record_id:
        raise ValueError("record_id must not be empty")
    return f"{kind.value}{ACTION_SEPARATOR}{record_id}"


def decode_action(raw_value: str) -> RegistrationAction:
    """Split a button value on the first separator into kind and record id."""

    if not isinstance(raw_value, str):
        raise InteractionParseError("Action value must be a string.")

    name, separator, record_id = raw_value.partition(ACTION_SEPARATOR)
    if not separator or not record_id.strip():
        raise InteractionParseError(f"Malformed action value: {raw_value!r}")

    try:
        kind = ActionKind(name)
    except ValueError as exc:
        raise InteractionParseError(f"Unknown action: {name!r}") from exc

    return RegistrationAction(kind=kind, record_id=record_id.strip())


def build_command(action: RegistrationAction, *, acting_user: str, reason: str | None = None) -> Command:
    """Translate a decoded action into a state machine command.

    ``reason`` is required for both reject kinds; the gateway supplies the
    configured default for the one-click rejection.
    """

    kind = action.kind
    if kind is ActionKind.APPROVE:
        return Approve(record_id=action.record_id, approver=acting_user)
    if kind is ActionKind.APPROVE_SILENT:
        return Approve(record_id=action.record_id, approver=acting_user, silent=True)
    if kind in (ActionKind.REJECT, ActionKind.REJECT_WITH_REASON):
        return Reject(record_id=action.record_id, rejector=acting_user, reason=reason or "")
    if kind is ActionKind.REVERT:
        return Revert(record_id=action.record_id, actor=acting_user)
    raise InteractionParseError(f"Unsupported action: {kind!r}")


def is_user_authorized(user_id: str, allowed_ids: Iterable[str]) -> bool:
    """Return True when the allow list is empty or names the user."""

    normalized = {item.strip() for item in allowed_ids if item and item.strip()}
    if not normalized:
        return True
    return user_id in normalized
