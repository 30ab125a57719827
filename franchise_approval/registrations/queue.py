"""Deferred queue for modal submissions and the processor that drains it.

Entries are appended by the gateway inside the acknowledgement window and
executed later, either opportunistically right after the acknowledgement or
by the periodic sweep in ``scripts/drain_queue.py``. Rows are never deleted.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import List, Set, Tuple

import structlog
from sqlalchemy import func, select, update as sql_update
from sqlalchemy.orm import Session, sessionmaker

from franchise_approval.db import session_scope
from franchise_approval.errors import InteractionParseError, RegistrationNotFoundError, StatusTransitionError
from franchise_approval.models import DeferredAction
from franchise_approval.slack_client import SlackClient

from .actions import ActionKind, RegistrationAction, build_command
from .publishing import update_origin_message
from .service import ApprovalService
from .state import Outcome

QueueKey = Tuple[str, str]


@dataclass(frozen=True)
class QueueEntry:
    id: int
    enqueued_at: datetime
    operation_type: str
    record_id: str
    acting_user: str
    payload: str | None
    origin_channel: str | None
    origin_message_ref: str | None
    processed: bool
    attempts: int
    last_error: str | None = None

    @property
    def key(self) -> QueueKey:
        return (self.operation_type, self.record_id)

    @classmethod
    def from_row(cls, row: DeferredAction) -> "QueueEntry":
        return cls(
            id=row.id,
            enqueued_at=row.enqueued_at,
            operation_type=row.operation_type,
            record_id=row.record_id,
            acting_user=row.acting_user,
            payload=row.payload,
            origin_channel=row.origin_channel,
            origin_message_ref=row.origin_message_ref,
            processed=bool(row.processed),
            attempts=row.attempts or 0,
            last_error=row.last_error,
        )


class DeferredQueue:
    """Append-only store of deferred actions."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def enqueue(
        self,
        *,
        operation_type: str,
        record_id: str,
        acting_user: str,
        payload: str | None = None,
        origin_channel: str | None = None,
        origin_message_ref: str | None = None,
    ) -> int:
        with session_scope(self._session_factory) as session:
            row = DeferredAction(
                enqueued_at=datetime.now(UTC),
                operation_type=operation_type,
                record_id=record_id,
                acting_user=acting_user,
                payload=payload,
                origin_channel=origin_channel,
                origin_message_ref=origin_message_ref,
                processed=False,
                attempts=0,
            )
            session.add(row)
            session.flush()
            return row.id

    def list_unprocessed(self) -> List[QueueEntry]:
        """Return unprocessed entries in append order."""

        with session_scope(self._session_factory) as session:
            rows = session.execute(
                select(DeferredAction)
                .where(DeferredAction.processed.is_(False))
                .order_by(DeferredAction.id)
            ).scalars()
            return [QueueEntry.from_row(row) for row in rows]

    def get(self, entry_id: int) -> QueueEntry | None:
        with session_scope(self._session_factory) as session:
            row = session.get(DeferredAction, entry_id)
            return QueueEntry.from_row(row) if row is not None else None

    def mark_processed(self, entry_id: int) -> bool:
        """Flip ``processed`` once; return False if another drain got there first."""

        stmt = (
            sql_update(DeferredAction)
            .where(DeferredAction.id == entry_id, DeferredAction.processed.is_(False))
            .values(processed=True, processed_at=datetime.now(UTC), last_error=None)
        )
        with session_scope(self._session_factory) as session:
            return session.execute(stmt).rowcount == 1

    def record_failure(self, entry_id: int, error: str) -> None:
        stmt = (
            sql_update(DeferredAction)
            .where(DeferredAction.id == entry_id)
            .values(attempts=DeferredAction.attempts + 1, last_error=error)
        )
        with session_scope(self._session_factory) as session:
            session.execute(stmt)

    def count_unprocessed(self) -> int:
        with session_scope(self._session_factory) as session:
            return session.execute(
                select(func.count()).select_from(DeferredAction).where(DeferredAction.processed.is_(False))
            ).scalar_one()


@dataclass(frozen=True)
class DrainReport:
    processed: int
    remaining: int
    failed: int = 0
    duplicates: int = 0


class DeferredQueueProcessor:
    """Execute unprocessed queue entries at most once per (operation, record)."""

    def __init__(
        self,
        *,
        queue: DeferredQueue,
        service: ApprovalService,
        slack: SlackClient | None = None,
    ) -> None:
        self._queue = queue
        self._service = service
        self._slack = slack

    def drain(self, seen: Set[QueueKey] | None = None) -> DrainReport:
        """Process every pending entry once.

        *seen* holds the ``(operation_type, record_id)`` keys completed in this
        drain; a later entry with the same key is marked processed without
        running. Pass a set to share it across calls, or omit it for a fresh one.

        A failure on one entry, including a failed bookkeeping write, is
        counted and logged and the drain moves on to the next entry.
        """

        if seen is None:
            seen = set()

        log = structlog.get_logger()
        processed = failed = duplicates = 0
        entries = self._queue.list_unprocessed()

        for entry in entries:
            entry_log = log.bind(
                entry_id=entry.id,
                record_id=entry.record_id,
                operation_type=entry.operation_type,
            )
            try:
                if entry.key in seen:
                    if self._queue.mark_processed(entry.id):
                        duplicates += 1
                        entry_log.info("deferred_action_duplicate")
                    continue

                self._execute(entry)
                seen.add(entry.key)
                if self._queue.mark_processed(entry.id):
                    processed += 1
                    entry_log.info("deferred_action_processed")
            except Exception as exc:
                failed += 1
                error = str(exc) or exc.__class__.__name__
                entry_log.warning("deferred_action_failed", error=error, attempts=entry.attempts + 1)
                self._record_failure(entry, error, entry_log)

        try:
            remaining = self._queue.count_unprocessed()
        except Exception:
            log.exception("deferred_queue_count_failed")
            remaining = len(entries) - processed - duplicates

        log.info(
            "deferred_queue_drained",
            processed=processed,
            remaining=remaining,
            failed=failed,
            duplicates=duplicates,
        )
        return DrainReport(processed=processed, remaining=remaining, failed=failed, duplicates=duplicates)

    def _record_failure(self, entry: QueueEntry, error: str, entry_log) -> None:
        try:
            self._queue.record_failure(entry.id, error)
        except Exception:
            entry_log.exception("deferred_action_failure_not_recorded")

    def _execute(self, entry: QueueEntry) -> None:
        try:
            kind = ActionKind(entry.operation_type)
        except ValueError as exc:
            raise InteractionParseError(f"Unknown queued operation: {entry.operation_type!r}") from exc

        command = build_command(
            RegistrationAction(kind=kind, record_id=entry.record_id),
            acting_user=entry.acting_user,
            reason=entry.payload,
        )
        result = self._service.apply(command)

        if result.outcome is Outcome.NOT_FOUND:
            raise RegistrationNotFoundError(result.message)
        if not result.success:
            raise StatusTransitionError(result.message)

        if self._slack is not None and result.record is not None:
            update_origin_message(
                slack=self._slack,
                channel=entry.origin_channel,
                ts=entry.origin_message_ref,
                record=result.record,
                actor=entry.acting_user,
            )
