"""Notification dispatcher: fan a templated message out to chat and email.

``NotificationDispatcher.send`` never raises. Each channel attempt is wrapped
and reported in a :class:`DispatchResult` so callers can log without
special-casing exceptions.
"""

from __future__ import annotations

import smtplib
from dataclasses import dataclass, field
from email.message import EmailMessage
from enum import Enum
from typing import Any, Dict, Mapping, Tuple

import structlog
from slack_sdk.errors import SlackApiError

from franchise_approval.config import AppSettings
from franchise_approval.slack_client import SlackClient, slack_error_code

CHANNEL_CHAT = "chat"
CHANNEL_EMAIL = "email"

BRAND_NAME = "Gaiheki Kuraberu"
SUPPORT_ADDRESS = "info@gaihekikuraberu.com"


class NotificationTemplate(str, Enum):
    WELCOME = "welcome"
    REJECTION = "rejection"
    APPROVAL_ANNOUNCEMENT = "approval_announcement"
    SILENT_APPROVAL_ANNOUNCEMENT = "silent_approval_announcement"
    REJECTION_ANNOUNCEMENT = "rejection_announcement"


TEMPLATE_CHANNELS: Dict[str, Tuple[str, ...]] = {
    NotificationTemplate.WELCOME.value: (CHANNEL_EMAIL,),
    NotificationTemplate.REJECTION.value: (CHANNEL_EMAIL,),
    NotificationTemplate.APPROVAL_ANNOUNCEMENT.value: (CHANNEL_CHAT,),
    NotificationTemplate.SILENT_APPROVAL_ANNOUNCEMENT.value: (CHANNEL_CHAT,),
    NotificationTemplate.REJECTION_ANNOUNCEMENT.value: (CHANNEL_CHAT,),
}


@dataclass(frozen=True)
class DispatchResult:
    success: bool
    channels_attempted: Tuple[str, ...]
    errors: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class EmailContent:
    subject: str
    body: str


def _text(payload: Mapping[str, Any], key: str, default: str = "-") -> str:
    value = payload.get(key)
    if value is None:
        return default
    text = str(value).strip()
    return text or default


def render_email(template_id: str, record_id: str, payload: Mapping[str, Any]) -> EmailContent:
    """Return the partner-facing email for *template_id*."""

    company = _text(payload, "company_name")

    if template_id == NotificationTemplate.WELCOME.value:
        login_url = _text(payload, "login_url", default="")
        lines = [
            f"{company}",
            "",
            f"Thank you for registering as a {BRAND_NAME} franchise partner.",
            "Your registration has been reviewed and approved.",
            "",
            f"Your partner ID: {record_id}",
            "Keep this ID; you will need it every time you sign in.",
            "",
        ]
        if login_url:
            lines += [
                "Complete your first login within 24 hours using the link below.",
                "The link stops working after that. Signing in does not start lead delivery.",
                login_url,
                "",
            ]
        lines += [f"Questions: {SUPPORT_ADDRESS} (9:00-18:00)"]
        return EmailContent(
            subject=f"[{BRAND_NAME}] Registration approved: first login instructions",
            body="\n".join(lines),
        )

    if template_id == NotificationTemplate.REJECTION.value:
        lines = [
            f"{company}",
            "",
            f"Thank you for your interest in becoming a {BRAND_NAME} franchise partner.",
            "After review we are unable to approve your registration at this time.",
            "",
            "Reason:",
            str(payload.get("reason") or ""),
            "",
            f"Questions: {SUPPORT_ADDRESS} (9:00-18:00)",
        ]
        return EmailContent(
            subject=f"[{BRAND_NAME}] Result of your registration review",
            body="\n".join(lines),
        )

    raise ValueError(f"No email rendering for template '{template_id}'")


_ANNOUNCEMENT_HEADERS = {
    NotificationTemplate.APPROVAL_ANNOUNCEMENT.value: ":white_check_mark: Franchise registration approved",
    NotificationTemplate.SILENT_APPROVAL_ANNOUNCEMENT.value: ":mute: Franchise registration approved silently",
    NotificationTemplate.REJECTION_ANNOUNCEMENT.value: ":no_entry_sign: Franchise registration rejected",
}


def render_announcement(template_id: str, record_id: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
    """Return the Block Kit message posted to the operations channel."""

    header = _ANNOUNCEMENT_HEADERS.get(template_id)
    if header is None:
        raise ValueError(f"No chat rendering for template '{template_id}'")

    fields = [
        {"type": "mrkdwn", "text": f"*Registration ID:*\n{record_id}"},
        {"type": "mrkdwn", "text": f"*Company:*\n{_text(payload, 'company_name')}"},
        {"type": "mrkdwn", "text": f"*Representative:*\n{_text(payload, 'representative')}"},
        {"type": "mrkdwn", "text": f"*Decided by:*\n{_text(payload, 'actor')}"},
    ]
    blocks: list[Dict[str, Any]] = [
        {"type": "header", "text": {"type": "plain_text", "text": header, "emoji": True}},
        {"type": "section", "fields": fields},
    ]

    if template_id == NotificationTemplate.REJECTION_ANNOUNCEMENT.value:
        blocks.append(
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": f"*Reason:*\n{payload.get('reason') or ''}"},
            }
        )
    elif template_id == NotificationTemplate.SILENT_APPROVAL_ANNOUNCEMENT.value:
        blocks.append(
            {
                "type": "context",
                "elements": [
                    {"type": "mrkdwn", "text": "This partner is hidden from public rankings."}
                ],
            }
        )

    return {"text": f"{header}: {record_id}", "blocks": blocks}


class EmailSender:
    """Deliver plain-text email through an SMTP relay."""

    def __init__(self, *, host: str, port: int, sender: str, timeout: float = 10.0) -> None:
        self._host = host
        self._port = port
        self._sender = sender
        self._timeout = timeout

    def send(self, *, to: str, subject: str, body: str) -> None:
        message = EmailMessage()
        message["From"] = f"{BRAND_NAME} <{self._sender}>"
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body)

        with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as smtp:
            smtp.send_message(message)


class NotificationDispatcher:
    """Send templated notifications to every channel the template targets."""

    def __init__(
        self,
        *,
        slack: SlackClient | None,
        notify_channel_id: str | None,
        email_sender: EmailSender | None,
    ) -> None:
        self._slack = slack
        self._notify_channel_id = notify_channel_id
        self._email_sender = email_sender

    @classmethod
    def from_settings(cls, settings: AppSettings, *, slack: SlackClient) -> "NotificationDispatcher":
        email_sender = None
        if settings.smtp_host and settings.smtp_sender:
            email_sender = EmailSender(
                host=settings.smtp_host,
                port=settings.smtp_port,
                sender=settings.smtp_sender,
            )
        return cls(slack=slack, notify_channel_id=settings.notify_channel_id, email_sender=email_sender)

    def send(self, record_id: str, template_id: str, payload: Mapping[str, Any]) -> DispatchResult:
        log = structlog.get_logger().bind(record_id=record_id, template_id=template_id)
        channels = TEMPLATE_CHANNELS.get(template_id)
        if channels is None:
            log.error("notification_template_unknown")
            return DispatchResult(success=False, channels_attempted=(), errors={"template": "unknown template"})

        errors: Dict[str, str] = {}
        for channel in channels:
            try:
                if channel == CHANNEL_CHAT:
                    self._send_chat(record_id, template_id, payload)
                else:
                    self._send_email(record_id, template_id, payload)
            except SlackApiError as exc:
                errors[channel] = slack_error_code(exc)
            except Exception as exc:
                errors[channel] = str(exc) or exc.__class__.__name__

        result = DispatchResult(success=not errors, channels_attempted=channels, errors=errors)
        if errors:
            log.warning("notification_failed", channels=list(channels), errors=dict(errors))
        else:
            log.info("notification_sent", channels=list(channels))
        return result

    def _send_chat(self, record_id: str, template_id: str, payload: Mapping[str, Any]) -> None:
        if self._slack is None or not self._notify_channel_id:
            raise RuntimeError("chat channel is not configured")
        message = render_announcement(template_id, record_id, payload)
        self._slack.post_message(
            channel=self._notify_channel_id,
            text=message["text"],
            blocks=message["blocks"],
        )

    def _send_email(self, record_id: str, template_id: str, payload: Mapping[str, Any]) -> None:
        if self._email_sender is None:
            raise RuntimeError("email channel is not configured")
        recipient = str(payload.get("contact_email") or "").strip()
        if not recipient:
            raise RuntimeError("registration has no contact email")
        content = render_email(template_id, record_id, payload)
        self._email_sender.send(to=recipient, subject=content.subject, body=content.body)
