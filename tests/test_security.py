"""Tests for Slack signature checks and first-login tokens."""

import base64
import hmac
import json
from hashlib import sha256
from types import SimpleNamespace
from urllib.parse import parse_qs, urlparse

from franchise_approval import security

NOW = 1_700_000_000.0


def test_compute_signature_matches_slack_format():
    signature = security.compute_signature("secret", "1700000000", "payload=%7B%7D")

    assert signature.startswith("v0=")
    assert len(signature) == 3 + 64


def test_valid_request_is_accepted(monkeypatch):
    monkeypatch.setattr(security, "time", SimpleNamespace(time=lambda: 1700000000))
    body = "payload=%7B%7D"
    signature = security.compute_signature("secret", "1700000000", body)

    assert security.is_valid_slack_request(
        signing_secret="secret", timestamp="1700000000", body=body, signature=signature
    )


def test_tampered_body_is_rejected(monkeypatch):
    monkeypatch.setattr(security, "time", SimpleNamespace(time=lambda: 1700000000))
    signature = security.compute_signature("secret", "1700000000", "payload=a")

    assert not security.is_valid_slack_request(
        signing_secret="secret", timestamp="1700000000", body="payload=b", signature=signature
    )


def test_stale_timestamp_is_rejected(monkeypatch):
    monkeypatch.setattr(security, "time", SimpleNamespace(time=lambda: 1700000000 + 301))
    signature = security.compute_signature("secret", "1700000000", "body")

    assert not security.is_valid_slack_request(
        signing_secret="secret", timestamp="1700000000", body="body", signature=signature
    )


def test_missing_headers_are_rejected():
    assert not security.is_valid_slack_request(signing_secret="secret", timestamp="", body="", signature="")
    assert not security.is_valid_slack_request(
        signing_secret="secret", timestamp="not-a-number", body="", signature="v0=abc"
    )


def _split_url(url: str) -> tuple[str, str, str]:
    parsed = urlparse(url)
    query = parse_qs(parsed.query)
    return f"{parsed.scheme}://{parsed.netloc}{parsed.path}", query["data"][0], query["sig"][0]


def test_first_login_url_carries_signed_expiring_payload():
    url = security.build_first_login_url(
        secret="s3cret",
        base_url="https://partners.example.test/first-login",
        registration_id="FR01011200",
        ttl_seconds=24 * 3600,
        now=NOW,
    )

    base, data, sig = _split_url(url)
    decoded = json.loads(base64.urlsafe_b64decode(data))

    assert base == "https://partners.example.test/first-login"
    assert decoded == {
        "merchantId": "FR01011200",
        "expires": int((NOW + 24 * 3600) * 1000),
        "type": "first_login",
    }
    assert len(sig) == 16
    assert "+" not in data and "/" not in data


def _expected_sig(secret: str, data: str) -> str:
    return hmac.new(secret.encode("utf-8"), data.encode("utf-8"), sha256).hexdigest()[:16]


def test_first_login_signature_covers_data_and_secret():
    url = security.build_first_login_url(
        secret="s3cret", base_url="https://x.test/login", registration_id="FR1", ttl_seconds=60, now=NOW
    )
    _, data, sig = _split_url(url)

    assert sig == _expected_sig("s3cret", data)
    assert sig != _expected_sig("other", data)
    assert sig != _expected_sig("s3cret", data + "x")
