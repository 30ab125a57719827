"""Pydantic-based configuration helpers for the franchise approval gateway."""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Iterable, List

from pydantic import BaseModel, Field, ValidationError, field_validator


class AppSettings(BaseModel):
    """Settings required to initialise the Slack gateway and its collaborators.

    Built once at process start and handed to every component constructor.
    """

    bot_token: str = Field(..., alias="SLACK_BOT_TOKEN")
    signing_secret: str = Field(..., alias="SLACK_SIGNING_SECRET")
    database_url: str = Field(..., alias="DATABASE_URL")
    notify_channel_id: str = Field(..., alias="NOTIFY_CHANNEL_ID")
    first_login_secret: str = Field(..., alias="FIRST_LOGIN_SECRET")
    approver_user_ids: List[str] = Field(default_factory=list, alias="APPROVER_USER_IDS")
    first_login_base_url: str = Field(
        "https://gaihekikuraberu.com/franchise-dashboard/merchant-portal/first-login.html",
        alias="FIRST_LOGIN_BASE_URL",
    )
    first_login_ttl_hours: int = Field(24, alias="FIRST_LOGIN_TTL_HOURS")
    latency_budget_seconds: float = Field(3.0, alias="LATENCY_BUDGET_SECONDS")
    default_rejection_reason: str = Field("Rejected from Slack", alias="DEFAULT_REJECTION_REASON")
    drain_interval_seconds: int = Field(300, alias="DRAIN_INTERVAL_SECONDS")
    smtp_host: str | None = Field(None, alias="SMTP_HOST")
    smtp_port: int = Field(25, alias="SMTP_PORT")
    smtp_sender: str | None = Field(None, alias="SMTP_SENDER")

    model_config = {"populate_by_name": True}

    @field_validator("approver_user_ids", mode="before")
    @classmethod
    def _split_ids(cls, value: str | list[str] | None) -> list[str]:
        if value is None:
            return []
        if isinstance(value, list):
            return [item.strip() for item in value if item.strip()]
        return [item.strip() for item in value.split(",") if item.strip()]

    @field_validator("first_login_ttl_hours", "drain_interval_seconds")
    @classmethod
    def _ensure_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("Intervals must be greater than zero")
        return value

    @field_validator("latency_budget_seconds")
    @classmethod
    def _ensure_positive_budget(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("Latency budget must be greater than zero")
        return value

    @field_validator("smtp_host", "smtp_sender", mode="before")
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        trimmed = value.strip()
        return trimmed or None


def _format_missing(fields: Iterable[str]) -> str:
    """Return a human-friendly comma-separated list of missing env vars."""

    unique: List[str] = []
    for field in fields:
        if field not in unique:
            unique.append(field)
    return ", ".join(unique)


@lru_cache()
def get_settings() -> AppSettings:
    """Fetch and cache settings from environment variables."""

    try:
        return AppSettings.model_validate(os.environ)
    except ValidationError as exc:  # pragma: no cover - exercised via tests
        missing = [str(error["loc"][0]) for error in exc.errors()]
        message = (
            "Missing or invalid environment variables: "
            f"{_format_missing(missing)}"
        )
        raise RuntimeError(message) from exc
