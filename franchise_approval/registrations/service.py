"""Apply approval commands: decide, persist, then run side effects."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Callable, List, Tuple

import structlog

from .effects import EffectExecutor, EffectReport
from .state import Approve, Command, Decision, Outcome, Reject, Revert, command_actor, decide
from .store import RegistrationRecord, RegistrationStore


@dataclass(frozen=True)
class ApprovalResult:
    outcome: Outcome
    record: RegistrationRecord | None
    reports: Tuple[EffectReport, ...] = field(default_factory=tuple)
    message: str = ""

    @property
    def success(self) -> bool:
        return self.outcome in (Outcome.APPLIED, Outcome.UNCHANGED)

    @property
    def failed_effects(self) -> List[EffectReport]:
        return [report for report in self.reports if not report.success]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ApprovalService:
    """Entry point for every registration status change.

    The transition is persisted before any side effect runs; a failing
    notification never rolls it back.
    """

    def __init__(
        self,
        *,
        store: RegistrationStore,
        executor: EffectExecutor,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._executor = executor
        self._now = now

    def approve(self, record_id: str, approver: str, *, silent: bool = False) -> ApprovalResult:
        return self.apply(Approve(record_id=record_id, approver=approver, silent=silent))

    def reject(self, record_id: str, rejector: str, reason: str) -> ApprovalResult:
        return self.apply(Reject(record_id=record_id, rejector=rejector, reason=reason))

    def revert(self, record_id: str, actor: str) -> ApprovalResult:
        return self.apply(Revert(record_id=record_id, actor=actor))

    def apply(self, command: Command) -> ApprovalResult:
        log = structlog.get_logger().bind(
            record_id=command.record_id,
            command=type(command).__name__.lower(),
            actor=command_actor(command),
        )
        record = self._store.find_by_id(command.record_id)
        now = self._now()
        decision = decide(record, command, now=now)

        if decision.outcome is not Outcome.APPLIED:
            log.info("transition_skipped", outcome=decision.outcome.value, reason=decision.message)
            return ApprovalResult(outcome=decision.outcome, record=record, message=decision.message)

        if not self._persist(decision, now):
            # Another writer moved the record between read and write.
            current = self._store.find_by_id(command.record_id)
            retry = decide(current, command, now=now)
            if retry.outcome is Outcome.UNCHANGED:
                log.info("transition_raced_unchanged")
                return ApprovalResult(outcome=Outcome.UNCHANGED, record=current, message=retry.message)
            message = retry.message or f"Registration {command.record_id} changed concurrently."
            log.warning("transition_conflict", outcome=retry.outcome.value)
            outcome = Outcome.NOT_FOUND if retry.outcome is Outcome.NOT_FOUND else Outcome.INVALID
            return ApprovalResult(outcome=outcome, record=current, message=message)

        log.info(
            "transition_applied",
            from_status=decision.from_status.value,
            to_status=decision.to_status.value,
        )
        reports = self._executor.execute(decision.effects)
        updated = self._store.find_by_id(command.record_id)
        return ApprovalResult(
            outcome=Outcome.APPLIED,
            record=updated,
            reports=tuple(reports),
            message=decision.message,
        )

    def _persist(self, decision: Decision, now: datetime) -> bool:
        command = decision.command
        written = self._store.update(
            command.record_id,
            decision.changes,
            expected_status=decision.from_status,
        )
        if not written:
            return False
        self._store.record_transition(
            command.record_id,
            from_status=decision.from_status,
            to_status=decision.to_status,
            changed_by=command_actor(command),
            changed_at=now,
        )
        return True
