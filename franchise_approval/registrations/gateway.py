"""Slack interaction gateway for registration review cards.

Every interaction is acknowledged exactly once. One-click decisions run
synchronously before the acknowledgement; reasoned rejections go through a
modal whose submission is queued and drained after acknowledging.

The HTTP route has already answered Slack by the time a listener runs, so an
acknowledgement body never reaches the user. Anything the user needs to see
goes out as an ephemeral message in the origin channel.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Mapping
from uuid import uuid4

import structlog
from slack_sdk.errors import SlackApiError
from structlog.contextvars import bind_contextvars, unbind_contextvars

from franchise_approval.config import AppSettings
from franchise_approval.errors import InteractionParseError
from franchise_approval.slack_client import SlackClient, slack_error_code

from .actions import (
    FAST_ACTIONS,
    ActionKind,
    RegistrationAction,
    build_command,
    decode_action,
    is_user_authorized,
)
from .modal import (
    REJECTION_MODAL_CALLBACK_ID,
    ModalMetadata,
    build_rejection_modal,
    extract_reason,
    parse_modal_metadata,
)
from .publishing import update_origin_message
from .queue import DeferredQueue, DeferredQueueProcessor
from .service import ApprovalService


FAILED_ACTION_TEXT = "This action could not be completed. Please try again."
REASON_REQUIRED_TEXT = "A rejection reason is required. The registration was not rejected."


class EventKind(str, Enum):
    ACTION_CLICK = "action_click"
    FORM_SUBMIT = "form_submit"


@dataclass(frozen=True)
class InteractionEvent:
    kind: EventKind
    action: RegistrationAction
    acting_user: str
    payload: str | None = None
    origin_channel: str | None = None
    origin_ts: str | None = None
    trigger_id: str | None = None

    @property
    def record_id(self) -> str:
        return self.action.record_id


def _user_id(body: Mapping[str, Any]) -> str | None:
    user = body.get("user")
    if isinstance(user, Mapping):
        return user.get("id") or None
    return None


def _parse_block_action(body: Mapping[str, Any]) -> InteractionEvent:
    actions = body.get("actions") or []
    if not actions or not isinstance(actions[0], Mapping):
        raise InteractionParseError("Interaction has no actions.")

    action = decode_action(actions[0].get("value", ""))
    user_id = _user_id(body)
    if not user_id:
        raise InteractionParseError("Interaction has no acting user.")

    channel = body.get("channel") or {}
    container = body.get("container") or {}
    message = body.get("message") or {}
    return InteractionEvent(
        kind=EventKind.ACTION_CLICK,
        action=action,
        acting_user=user_id,
        origin_channel=channel.get("id") or container.get("channel_id"),
        origin_ts=container.get("message_ts") or message.get("ts"),
        trigger_id=body.get("trigger_id"),
    )


def _parse_view_submission(body: Mapping[str, Any]) -> InteractionEvent:
    view = body.get("view") or {}
    if view.get("callback_id") != REJECTION_MODAL_CALLBACK_ID:
        raise InteractionParseError(f"Unexpected view callback: {view.get('callback_id')!r}")

    metadata = parse_modal_metadata(view.get("private_metadata"))
    return InteractionEvent(
        kind=EventKind.FORM_SUBMIT,
        action=RegistrationAction(kind=ActionKind.REJECT_WITH_REASON, record_id=metadata.record_id),
        acting_user=_user_id(body) or metadata.acting_user,
        payload=extract_reason(view.get("state") or {}),
        origin_channel=metadata.origin_channel,
        origin_ts=metadata.origin_ts,
    )


def parse_interaction(body: Mapping[str, Any]) -> InteractionEvent:
    """Decode a Slack interaction payload into an :class:`InteractionEvent`."""

    if not isinstance(body, Mapping):
        raise InteractionParseError("Interaction payload must be an object.")

    payload_type = body.get("type")
    if payload_type == "block_actions":
        return _parse_block_action(body)
    if payload_type == "view_submission":
        return _parse_view_submission(body)
    raise InteractionParseError(f"Unsupported interaction type: {payload_type!r}")


class InteractionGateway:
    def __init__(
        self,
        *,
        settings: AppSettings,
        service: ApprovalService,
        queue: DeferredQueue,
        processor: DeferredQueueProcessor,
        slack: SlackClient,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings
        self._service = service
        self._queue = queue
        self._processor = processor
        self._slack = slack
        self._clock = clock

    def handle_interaction(self, body: Mapping[str, Any], ack: Callable[..., Any]) -> None:
        """Handle one interaction; never raises and always acknowledges once."""

        trace_id = str(uuid4())
        bind_contextvars(trace_id=trace_id)
        log = structlog.get_logger()
        started = self._clock()
        acked = False

        def respond() -> None:
            nonlocal acked
            if acked:
                return
            acked = True
            elapsed = self._clock() - started
            if elapsed > self._settings.latency_budget_seconds:
                log.warning(
                    "latency_budget_exceeded",
                    elapsed_seconds=round(elapsed, 3),
                    budget_seconds=self._settings.latency_budget_seconds,
                )
            ack()

        event: InteractionEvent | None = None
        failed = False

        try:
            try:
                event = parse_interaction(body)
            except InteractionParseError as exc:
                log.warning("interaction_discarded", error=str(exc))
                respond()
                return

            log = log.bind(record_id=event.record_id, action=event.action.kind.value, user_id=event.acting_user)

            if not is_user_authorized(event.acting_user, self._settings.approver_user_ids):
                respond()
                self._notify_user(event, "You are not authorized to review franchise registrations.")
                log.warning("unauthorized_attempt")
                return

            if event.kind is EventKind.FORM_SUBMIT:
                self._handle_form_submit(event, respond, log)
            elif event.action.kind in FAST_ACTIONS:
                self._handle_fast_action(event, respond, log)
            else:
                self._open_reason_modal(event, respond, log)
        except Exception:
            failed = True
            log.exception("interaction_failed")
        finally:
            if not acked:
                try:
                    respond()
                except Exception:
                    log.exception("ack_failed")
            if failed and event is not None:
                try:
                    self._notify_user(event, FAILED_ACTION_TEXT)
                except Exception:
                    log.exception("failure_notice_failed")
            unbind_contextvars("trace_id")

    def _handle_fast_action(self, event: InteractionEvent, respond, log) -> None:
        reason = None
        if event.action.kind is ActionKind.REJECT:
            reason = self._settings.default_rejection_reason
        command = build_command(event.action, acting_user=event.acting_user, reason=reason)
        result = self._service.apply(command)

        if result.success and result.record is not None:
            update_origin_message(
                slack=self._slack,
                channel=event.origin_channel,
                ts=event.origin_ts,
                record=result.record,
                actor=event.acting_user,
            )
        respond()

        if result.success:
            log.info("interaction_applied", outcome=result.outcome.value, failed_effects=len(result.failed_effects))
        else:
            log.info("interaction_rejected", outcome=result.outcome.value, reason=result.message)
            self._notify_user(event, result.message)

    def _open_reason_modal(self, event: InteractionEvent, respond, log) -> None:
        if not event.trigger_id:
            respond()
            log.warning("modal_trigger_missing")
            return

        metadata = ModalMetadata(
            record_id=event.record_id,
            acting_user=event.acting_user,
            origin_channel=event.origin_channel,
            origin_ts=event.origin_ts,
        )
        view = build_rejection_modal(metadata=metadata, suggested_reason=self._settings.default_rejection_reason)
        try:
            self._slack.open_view(trigger_id=event.trigger_id, view=view)
        except SlackApiError as exc:
            log.error("modal_open_failed", error=slack_error_code(exc))
        else:
            log.info("rejection_modal_opened")
        respond()

    def _handle_form_submit(self, event: InteractionEvent, respond, log) -> None:
        if event.payload is None:
            respond()
            self._notify_user(event, REASON_REQUIRED_TEXT)
            log.info("rejection_reason_missing")
            return

        entry_id = self._queue.enqueue(
            operation_type=event.action.kind.value,
            record_id=event.record_id,
            acting_user=event.acting_user,
            payload=event.payload,
            origin_channel=event.origin_channel,
            origin_message_ref=event.origin_ts,
        )
        respond()
        log.info("deferred_action_enqueued", entry_id=entry_id)

        try:
            self._processor.drain()
        except Exception:
            log.exception("opportunistic_drain_failed")

    def _notify_user(self, event: InteractionEvent, text: str) -> None:
        if not event.origin_channel or not text:
            return
        try:
            self._slack.post_ephemeral(channel=event.origin_channel, user=event.acting_user, text=text)
        except SlackApiError as exc:
            structlog.get_logger().warning("ephemeral_failed", error=slack_error_code(exc))
