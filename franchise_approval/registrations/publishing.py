"""Post and update registration review cards in Slack."""

from __future__ import annotations

from typing import Any, Mapping

import structlog
from slack_sdk.errors import SlackApiError

from franchise_approval.slack_client import SlackClient, slack_error_code

from .messages import build_decision_update, build_review_message
from .store import RegistrationRecord


def publish_review_request(
    *,
    slack: SlackClient,
    channel: str,
    record: RegistrationRecord,
) -> Mapping[str, Any] | None:
    """Post the review card for *record*; return ``{"channel", "ts"}`` or None."""

    log = structlog.get_logger().bind(record_id=record.id, channel=channel)
    payload = build_review_message(record)

    try:
        response = slack.post_message(channel=channel, text=payload["text"], blocks=payload["blocks"])
    except SlackApiError as exc:
        log.error("webhook_failed", operation="publish_review_request", error=slack_error_code(exc))
        return None

    channel_id = response.get("channel")
    ts = response.get("ts")
    if not channel_id or not ts:
        log.warning("review_message_reference_missing", response_keys=list(response.keys()))
        return None

    log.info("review_request_published", ts=ts)
    return {"channel": channel_id, "ts": ts}


def update_origin_message(
    *,
    slack: SlackClient,
    channel: str | None,
    ts: str | None,
    record: RegistrationRecord,
    actor: str,
) -> bool:
    """Rewrite the review card to show the record's state and who changed it."""

    log = structlog.get_logger().bind(record_id=record.id, channel=channel)
    if not channel or not ts:
        log.info("origin_message_unknown")
        return False

    payload = build_decision_update(record, actor=actor)
    try:
        slack.update_message(channel=channel, ts=ts, text=payload["text"], blocks=payload["blocks"])
    except SlackApiError as exc:
        log.error("webhook_failed", operation="update_origin_message", error=slack_error_code(exc))
        return False

    log.info("origin_message_updated", status=record.status.value)
    return True
