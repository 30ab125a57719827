"""Shared fixtures: SQLite-backed store, dummy Slack and email transports."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
import sys

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:  # pragma: no cover
    sys.path.insert(0, str(ROOT))

from franchise_approval import models  # noqa: E402,F401
from franchise_approval.config import AppSettings  # noqa: E402
from franchise_approval.db import Base, create_db_engine, create_session_factory  # noqa: E402
from franchise_approval.notifications import NotificationDispatcher  # noqa: E402
from franchise_approval.registrations.effects import EffectExecutor  # noqa: E402
from franchise_approval.registrations.gateway import InteractionGateway  # noqa: E402
from franchise_approval.registrations.queue import DeferredQueue, DeferredQueueProcessor  # noqa: E402
from franchise_approval.registrations.service import ApprovalService  # noqa: E402
from franchise_approval.registrations.store import RegistrationStore  # noqa: E402
from franchise_approval.slack_client import SlackClient  # noqa: E402

FIXED_EPOCH = 1_700_000_000.0


class DummySlackWebClient:
    def __init__(self):
        self.post_calls = []
        self.update_calls = []
        self.ephemeral_calls = []
        self.view_calls = []

    def chat_postMessage(self, **kwargs):
        self.post_calls.append(kwargs)
        return {"ok": True, "channel": kwargs["channel"], "ts": f"1700000000.{len(self.post_calls):06d}"}

    def chat_update(self, **kwargs):
        self.update_calls.append(kwargs)
        return {"ok": True}

    def chat_postEphemeral(self, **kwargs):
        self.ephemeral_calls.append(kwargs)
        return {"ok": True}

    def views_open(self, **kwargs):
        self.view_calls.append(kwargs)
        return {"ok": True}


class DummyEmailSender:
    def __init__(self):
        self.sent = []
        self.fail_with: Exception | None = None

    def send(self, *, to, subject, body):
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append({"to": to, "subject": subject, "body": body})


class ManualClock:
    """Monotonic clock stub advanced explicitly by tests."""

    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@dataclass
class Harness:
    settings: AppSettings
    store: RegistrationStore
    web: DummySlackWebClient
    slack: SlackClient
    email: DummyEmailSender
    dispatcher: NotificationDispatcher
    service: ApprovalService
    queue: DeferredQueue
    processor: DeferredQueueProcessor
    gateway: InteractionGateway
    clock: ManualClock

    def submit(self, registration_id: str, company_name: str = "Tokyo Paint Works") -> None:
        self.store.create(
            registration_id=registration_id,
            company_name=company_name,
            representative="Hanako Sato",
            contact_email=f"{registration_id.lower()}@example.test",
            phone="03-0000-0000",
            submitted_at=datetime(2024, 5, 1, 9, 0, tzinfo=UTC),
        )


@pytest.fixture
def settings():
    return AppSettings(
        bot_token="xoxb-test",
        signing_secret="secret",
        database_url="sqlite://",
        notify_channel_id="COPS",
        first_login_secret="first-login-secret",
        first_login_base_url="https://partners.example.test/first-login",
        approver_user_ids=[],
    )


@pytest.fixture
def session_factory(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'registrations.db'}")
    Base.metadata.create_all(engine)
    yield create_session_factory(engine)
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def store(session_factory):
    return RegistrationStore(session_factory)


@pytest.fixture
def harness(settings, session_factory):
    store = RegistrationStore(session_factory)
    web = DummySlackWebClient()
    slack = SlackClient(client=web)
    email = DummyEmailSender()
    dispatcher = NotificationDispatcher(
        slack=slack,
        notify_channel_id=settings.notify_channel_id,
        email_sender=email,
    )
    executor = EffectExecutor(
        settings=settings,
        store=store,
        dispatcher=dispatcher,
        clock=lambda: FIXED_EPOCH,
    )
    service = ApprovalService(store=store, executor=executor)
    queue = DeferredQueue(session_factory)
    processor = DeferredQueueProcessor(queue=queue, service=service, slack=slack)
    clock = ManualClock()
    gateway = InteractionGateway(
        settings=settings,
        service=service,
        queue=queue,
        processor=processor,
        slack=slack,
        clock=clock,
    )
    return Harness(
        settings=settings,
        store=store,
        web=web,
        slack=slack,
        email=email,
        dispatcher=dispatcher,
        service=service,
        queue=queue,
        processor=processor,
        gateway=gateway,
        clock=clock,
    )
