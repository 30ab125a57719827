"""Construct the gateway's collaborators from one settings object."""

from __future__ import annotations

from dataclasses import dataclass

from slack_sdk import WebClient
from sqlalchemy.orm import Session, sessionmaker

from franchise_approval.config import AppSettings
from franchise_approval.db import create_db_engine, create_session_factory
from franchise_approval.notifications import NotificationDispatcher
from franchise_approval.registrations.effects import EffectExecutor
from franchise_approval.registrations.gateway import InteractionGateway
from franchise_approval.registrations.queue import DeferredQueue, DeferredQueueProcessor
from franchise_approval.registrations.service import ApprovalService
from franchise_approval.registrations.store import RegistrationStore
from franchise_approval.slack_client import SlackClient


@dataclass(frozen=True)
class Components:
    settings: AppSettings
    session_factory: sessionmaker[Session]
    slack: SlackClient
    store: RegistrationStore
    dispatcher: NotificationDispatcher
    service: ApprovalService
    queue: DeferredQueue
    processor: DeferredQueueProcessor
    gateway: InteractionGateway


def build_components(
    settings: AppSettings,
    *,
    web_client: WebClient | None = None,
    session_factory: sessionmaker[Session] | None = None,
) -> Components:
    if session_factory is None:
        session_factory = create_session_factory(create_db_engine(settings.database_url))

    slack = SlackClient(token=settings.bot_token, client=web_client)
    store = RegistrationStore(session_factory)
    dispatcher = NotificationDispatcher.from_settings(settings, slack=slack)
    executor = EffectExecutor(settings=settings, store=store, dispatcher=dispatcher)
    service = ApprovalService(store=store, executor=executor)
    queue = DeferredQueue(session_factory)
    processor = DeferredQueueProcessor(queue=queue, service=service, slack=slack)
    gateway = InteractionGateway(
        settings=settings,
        service=service,
        queue=queue,
        processor=processor,
        slack=slack,
    )
    return Components(
        settings=settings,
        session_factory=session_factory,
        slack=slack,
        store=store,
        dispatcher=dispatcher,
        service=service,
        queue=queue,
        processor=processor,
        gateway=gateway,
    )
