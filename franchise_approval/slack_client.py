"""Thin wrapper utilities around the Slack WebClient."""

from __future__ import annotations

from typing import Any, Mapping, Sequence

from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError


def slack_error_code(exc: SlackApiError) -> str:
    """Return the Slack ``error`` field of a failed call, or the exception text."""

    response = getattr(exc, "response", None)
    if response is None:
        return str(exc)
    try:
        return response.get("error") or str(exc)
    except AttributeError:
        return str(exc)


class SlackClient:
    """Encapsulate Slack WebClient interactions for easier testing."""

    def __init__(self, *, token: str | None = None, client: WebClient | None = None) -> None:
        if client is None and token is None:
            raise ValueError("Either an instantiated client or a bot token must be provided.")

        self._client = client or WebClient(token=token)

    @property
    def client(self) -> WebClient:
        """Expose the underlying WebClient for advanced use cases."""

        return self._client

    def post_message(
        self,
        *,
        channel: str,
        text: str,
        blocks: Sequence[Mapping[str, Any]],
    ) -> Mapping[str, Any]:
        """Post a message with Block Kit content to a Slack channel."""

        return self._client.chat_postMessage(channel=channel, text=text, blocks=list(blocks))

    def update_message(
        self,
        *,
        channel: str,
        ts: str,
        text: str,
        blocks: Sequence[Mapping[str, Any]],
    ) -> Mapping[str, Any]:
        """Update an existing Slack message."""

        return self._client.chat_update(channel=channel, ts=ts, text=text, blocks=list(blocks))

    def open_view(self, *, trigger_id: str, view: Mapping[str, Any]) -> Mapping[str, Any]:
        """Open a modal for the interaction identified by *trigger_id*."""

        return self._client.views_open(trigger_id=trigger_id, view=dict(view))

    def post_ephemeral(self, *, channel: str, user: str, text: str) -> Mapping[str, Any]:
        """Show *text* to a single user in *channel*."""

        return self._client.chat_postEphemeral(channel=channel, user=user, text=text)
