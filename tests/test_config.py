"""Tests for configuration helpers."""

from pathlib import Path
import sys

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:  # pragma: no cover
    sys.path.insert(0, str(ROOT))

from franchise_approval import config  # noqa: E402

REQUIRED = (
    "SLACK_BOT_TOKEN",
    "SLACK_SIGNING_SECRET",
    "DATABASE_URL",
    "NOTIFY_CHANNEL_ID",
    "FIRST_LOGIN_SECRET",
)


def _seed_env(monkeypatch):
    monkeypatch.setenv("SLACK_BOT_TOKEN", "token")
    monkeypatch.setenv("SLACK_SIGNING_SECRET", "secret")
    monkeypatch.setenv("APPROVER_USER_IDS", "U1, U2 ,U3")
    monkeypatch.setenv("DATABASE_URL", "sqlite:///local.db")
    monkeypatch.setenv("NOTIFY_CHANNEL_ID", "COPS")
    monkeypatch.setenv("FIRST_LOGIN_SECRET", "first-login")
    for optional in ("LATENCY_BUDGET_SECONDS", "DEFAULT_REJECTION_REASON", "SMTP_HOST", "SMTP_SENDER"):
        monkeypatch.delenv(optional, raising=False)
    config.get_settings.cache_clear()


def test_get_settings_parses_expected_fields(monkeypatch):
    _seed_env(monkeypatch)

    settings = config.get_settings()

    assert settings.bot_token == "token"
    assert settings.signing_secret == "secret"
    assert settings.approver_user_ids == ["U1", "U2", "U3"]
    assert settings.database_url == "sqlite:///local.db"
    assert settings.notify_channel_id == "COPS"
    assert settings.latency_budget_seconds == 3.0
    assert settings.first_login_ttl_hours == 24
    assert settings.default_rejection_reason == "Rejected from Slack"
    assert settings.smtp_host is None
    config.get_settings.cache_clear()


def test_approver_list_is_optional(monkeypatch):
    _seed_env(monkeypatch)
    monkeypatch.delenv("APPROVER_USER_IDS")
    config.get_settings.cache_clear()

    assert config.get_settings().approver_user_ids == []
    config.get_settings.cache_clear()


def test_blank_smtp_host_is_treated_as_unset(monkeypatch):
    _seed_env(monkeypatch)
    monkeypatch.setenv("SMTP_HOST", "   ")
    config.get_settings.cache_clear()

    assert config.get_settings().smtp_host is None
    config.get_settings.cache_clear()


def test_non_positive_latency_budget_is_rejected(monkeypatch):
    _seed_env(monkeypatch)
    monkeypatch.setenv("LATENCY_BUDGET_SECONDS", "0")
    config.get_settings.cache_clear()

    with pytest.raises(RuntimeError) as err:
        config.get_settings()

    assert "LATENCY_BUDGET_SECONDS" in str(err.value)
    config.get_settings.cache_clear()


def test_missing_environment_variables_raise_runtime_error(monkeypatch):
    for var in REQUIRED:
        monkeypatch.delenv(var, raising=False)
    config.get_settings.cache_clear()

    with pytest.raises(RuntimeError) as err:
        config.get_settings()

    message = str(err.value)
    for var in REQUIRED:
        assert var in message
    config.get_settings.cache_clear()
