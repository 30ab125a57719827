"""Request signature checks and signed first-login tokens."""

from __future__ import annotations

import base64
import hmac
import json
import time
from hashlib import sha256
from urllib.parse import urlencode


SLACK_SIGNATURE_HEADER = "X-Slack-Signature"
SLACK_TIMESTAMP_HEADER = "X-Slack-Request-Timestamp"
VERSION = "v0"
DEFAULT_TOLERANCE = 60 * 5  # five minutes

FIRST_LOGIN_TOKEN_TYPE = "first_login"
FIRST_LOGIN_SIGNATURE_LENGTH = 16


def compute_signature(signing_secret: str, timestamp: str, body: str) -> str:
    """Return Slack-compatible signature for the provided payload."""

    basestring = f"{VERSION}:{timestamp}:{body}".encode("utf-8")
    secret = signing_secret.encode("utf-8")
    digest = hmac.new(secret, basestring, sha256).hexdigest()
    return f"{VERSION}={digest}"


def is_valid_slack_request(
    *, signing_secret: str, timestamp: str, body: str, signature: str, tolerance: int = DEFAULT_TOLERANCE
) -> bool:
    """Validate Slack signature and timestamp to guard against replay attacks."""

    if not timestamp or not signature:
        return False

    try:
        request_ts = int(timestamp)
    except (TypeError, ValueError):
        return False

    current_ts = int(time.time())
    if abs(current_ts - request_ts) > tolerance:
        return False

    expected = compute_signature(signing_secret, timestamp, body)
    return hmac.compare_digest(expected, signature)


def _sign_token_data(secret: str, encoded_data: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), encoded_data.encode("utf-8"), sha256).hexdigest()
    return digest[:FIRST_LOGIN_SIGNATURE_LENGTH]


def build_first_login_url(
    *,
    secret: str,
    base_url: str,
    registration_id: str,
    ttl_seconds: int,
    now: float | None = None,
) -> str:
    """Return a signed, expiring first-login link for an approved partner.

    The ``data`` query parameter is web-safe base64 of a compact JSON document
    holding the registration id, the expiry in epoch milliseconds and the token
    type; ``sig`` is a truncated HMAC-SHA256 of that parameter. The partner
    portal checks both before showing the first-login form.
    """

    issued = time.time() if now is None else now
    data = {
        "merchantId": registration_id,
        "expires": int((issued + ttl_seconds) * 1000),
        "type": FIRST_LOGIN_TOKEN_TYPE,
    }
    raw = json.dumps(data, separators=(",", ":"), sort_keys=True)
    encoded = base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii")
    query = urlencode({"data": encoded, "sig": _sign_token_data(secret, encoded)})
    return f"{base_url}?{query}"
