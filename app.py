"""Application entry point for the franchise approval gateway."""

from __future__ import annotations

import json
import re
from pathlib import Path
from urllib.parse import parse_qs
from uuid import uuid4

from flask import Flask, copy_current_request_context, jsonify, request
from slack_bolt import App as SlackApp
from slack_bolt.adapter.flask import SlackRequestHandler
from sqlalchemy import text
import structlog

from franchise_approval.background import run_async
from franchise_approval.components import Components, build_components
from franchise_approval.config import AppSettings, get_settings
from franchise_approval.db import session_scope
from franchise_approval.errors import InteractionParseError
from franchise_approval.logging_config import configure_logging
from franchise_approval.registrations.actions import ACTION_ID_PREFIX
from franchise_approval.registrations.gateway import parse_interaction
from franchise_approval.registrations.modal import REJECTION_MODAL_CALLBACK_ID
from franchise_approval.security import (
    SLACK_SIGNATURE_HEADER,
    SLACK_TIMESTAMP_HEADER,
    is_valid_slack_request,
)

REGISTRATION_ACTION_PATTERN = re.compile(rf"^{re.escape(ACTION_ID_PREFIX)}")


def _create_bolt_app(settings: AppSettings) -> SlackApp:
    """Initialise the Slack Bolt application using validated settings."""

    # The route has already answered Slack; listeners run inline on the worker.
    return SlackApp(
        token=settings.bot_token,
        signing_secret=settings.signing_secret,
        token_verification_enabled=False,
        process_before_response=True,
    )


def _register_error_handlers(flask_app: Flask) -> None:
    """Register a JSON error handler that attaches a trace identifier."""

    @flask_app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):  # type: ignore[override]
        trace_id = str(uuid4())
        structlog.get_logger().error("unhandled_application_error", trace_id=trace_id, exc_info=error)
        response = jsonify({"error": "internal_server_error", "trace_id": trace_id})
        response.status_code = 500
        return response


def _register_interaction_handlers(bolt_app: SlackApp, components: Components) -> None:
    gateway = components.gateway

    @bolt_app.action(REGISTRATION_ACTION_PATTERN)
    def handle_registration_action(ack, body):
        gateway.handle_interaction(body=body, ack=ack)

    @bolt_app.view(REJECTION_MODAL_CALLBACK_ID)
    def handle_rejection_submission(ack, body):
        gateway.handle_interaction(body=body, ack=ack)


def _extract_payload(raw_body: str) -> dict | None:
    """Return the decoded ``payload`` form field of an interaction request."""

    values = parse_qs(raw_body, keep_blank_values=True).get("payload")
    if not values:
        return None
    try:
        payload = json.loads(values[0])
    except json.JSONDecodeError:
        return None
    return payload if isinstance(payload, dict) else None


_LOGGING_CONFIGURED = False


def _load_version() -> str:
    version_file = Path(__file__).resolve().parent / "VERSION"
    if version_file.exists():
        return version_file.read_text(encoding="utf-8").strip()
    return "unknown"


def create_app(components: Components | None = None) -> Flask:
    """Create and configure the Flask application."""

    global _LOGGING_CONFIGURED
    if not _LOGGING_CONFIGURED:
        configure_logging()
        _LOGGING_CONFIGURED = True

    if components is None:
        components = build_components(get_settings())
    settings = components.settings

    bolt_app = _create_bolt_app(settings)
    handler = SlackRequestHandler(bolt_app)

    flask_app = Flask(__name__)
    flask_app.config["APP_VERSION"] = _load_version()
    flask_app.logger.setLevel("INFO")

    _register_error_handlers(flask_app)
    _register_interaction_handlers(bolt_app, components)

    @flask_app.route("/slack/interactions", methods=["POST"])
    def slack_interactions():
        raw_body = request.get_data(as_text=True)
        timestamp = request.headers.get(SLACK_TIMESTAMP_HEADER, "")
        signature = request.headers.get(SLACK_SIGNATURE_HEADER, "")

        if not is_valid_slack_request(
            signing_secret=settings.signing_secret,
            timestamp=timestamp,
            body=raw_body,
            signature=signature,
        ):
            response = jsonify({"error": "invalid_signature"})
            response.status_code = 401
            return response

        trace_id = str(uuid4())
        log = structlog.get_logger().bind(trace_id=trace_id)

        payload = _extract_payload(raw_body)
        if payload is None:
            log.warning("interaction_discarded", error="missing or invalid payload")
            return jsonify({}), 200
        try:
            parse_interaction(payload)
        except InteractionParseError as exc:
            log.warning("interaction_discarded", error=str(exc))
            return jsonify({}), 200

        @copy_current_request_context
        def process_request():
            handler.handle(request)

        run_async(process_request, trace_id=trace_id)
        return jsonify({}), 200

    @flask_app.route("/healthz", methods=["GET"])
    def healthz():
        health: dict[str, object] = {"ok": True}
        health["version"] = flask_app.config.get("APP_VERSION", "unknown")

        try:
            get_settings()
            health["config"] = "valid"
        except Exception as exc:
            health["config"] = "invalid"
            health["config_error"] = str(exc)
            health["ok"] = False

        try:
            with session_scope(components.session_factory) as session:
                session.execute(text("SELECT 1"))
            health["db"] = "up"
        except Exception as exc:
            health["db"] = "down"
            health["db_error"] = str(exc)
            health["ok"] = False

        status = 200 if health["ok"] else 503
        return jsonify(health), status

    return flask_app


if __name__ == "__main__":  # pragma: no cover - manual execution helper
    application = create_app()
    application.run(host="0.0.0.0", port=3000, debug=True)
