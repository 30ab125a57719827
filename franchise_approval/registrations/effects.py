"""Best-effort execution of side effects requested by the state machine."""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Callable, Dict, Iterable, List, assert_never

import structlog

from franchise_approval.config import AppSettings
from franchise_approval.notifications import DispatchResult, NotificationDispatcher
from franchise_approval.security import build_first_login_url

from .state import Notify, ProvisionAccess, RequestPageGeneration, SideEffect
from .store import RegistrationStore


@dataclass(frozen=True)
class EffectReport:
    effect: SideEffect
    success: bool
    detail: str | None = None
    dispatch: DispatchResult | None = None


class EffectExecutor:
    """Run side effects in order; failures are logged and never raised.

    Values produced by earlier effects (the first-login URL) are merged into
    the payload of later notifications.
    """

    def __init__(
        self,
        *,
        settings: AppSettings,
        store: RegistrationStore,
        dispatcher: NotificationDispatcher,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._settings = settings
        self._store = store
        self._dispatcher = dispatcher
        self._clock = clock

    def execute(self, effects: Iterable[SideEffect]) -> List[EffectReport]:
        context: Dict[str, Any] = {}
        reports: List[EffectReport] = []
        for effect in effects:
            log = structlog.get_logger().bind(record_id=effect.record_id, effect=type(effect).__name__)
            try:
                report = self._execute_one(effect, context)
            except Exception as exc:
                log.exception("side_effect_failed")
                report = EffectReport(effect=effect, success=False, detail=str(exc))
            else:
                if not report.success:
                    log.warning("side_effect_incomplete", detail=report.detail)
            reports.append(report)
        return reports

    def _execute_one(self, effect: SideEffect, context: Dict[str, Any]) -> EffectReport:
        if isinstance(effect, ProvisionAccess):
            return self._provision_access(effect, context)
        if isinstance(effect, RequestPageGeneration):
            request_id = self._store.request_page_generation(effect.record_id, requested_by=effect.requested_by)
            structlog.get_logger().info("page_generation_requested", record_id=effect.record_id, page_request_id=request_id)
            return EffectReport(effect=effect, success=True)
        if isinstance(effect, Notify):
            payload = {**effect.payload, **context}
            result = self._dispatcher.send(effect.record_id, effect.template.value, payload)
            detail = None if result.success else "; ".join(f"{k}: {v}" for k, v in result.errors.items())
            return EffectReport(effect=effect, success=result.success, detail=detail, dispatch=result)
        assert_never(effect)

    def _provision_access(self, effect: ProvisionAccess, context: Dict[str, Any]) -> EffectReport:
        login_url = build_first_login_url(
            secret=self._settings.first_login_secret,
            base_url=self._settings.first_login_base_url,
            registration_id=effect.record_id,
            ttl_seconds=self._settings.first_login_ttl_hours * 3600,
            now=self._clock(),
        )
        context["login_url"] = login_url
        stamped = self._store.update(effect.record_id, {"access_issued_at": datetime.now(UTC)})
        structlog.get_logger().info("access_provisioned", record_id=effect.record_id, stamped=stamped)
        if not stamped:
            return EffectReport(effect=effect, success=False, detail="registration row missing")
        return EffectReport(effect=effect, success=True)
