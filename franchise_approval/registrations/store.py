"""Record store adapter for franchise registrations."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Callable, List, Mapping

from sqlalchemy import select, update as sql_update
from sqlalchemy.orm import Session, sessionmaker

from franchise_approval.db import session_scope
from franchise_approval.models import (
    ApprovalStatus,
    PageGenerationRequest,
    Registration,
    RegistrationStatus,
    StatusHistory,
)


@dataclass(frozen=True)
class RegistrationRecord:
    """Detached, read-only snapshot of a registration row."""

    id: str
    company_name: str
    representative: str | None
    contact_email: str | None
    phone: str | None
    status: RegistrationStatus
    approval_status: ApprovalStatus
    approver: str | None
    rejection_reason: str | None
    silent: bool
    submitted_at: datetime
    decided_at: datetime | None
    updated_at: datetime
    access_issued_at: datetime | None

    @classmethod
    def from_row(cls, row: Registration) -> "RegistrationRecord":
        return cls(
            id=row.id,
            company_name=row.company_name,
            representative=row.representative,
            contact_email=row.contact_email,
            phone=row.phone,
            status=RegistrationStatus(row.status),
            approval_status=ApprovalStatus(row.approval_status),
            approver=row.approver,
            rejection_reason=row.rejection_reason,
            silent=bool(row.silent),
            submitted_at=row.submitted_at,
            decided_at=row.decided_at,
            updated_at=row.updated_at,
            access_issued_at=row.access_issued_at,
        )


_UPDATABLE_FIELDS = frozenset(
    {
        "status",
        "approval_status",
        "approver",
        "rejection_reason",
        "silent",
        "decided_at",
        "access_issued_at",
        "company_name",
        "representative",
        "contact_email",
        "phone",
    }
)


def _column_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value


class RegistrationStore:
    """Field-level access to registration rows keyed by registration id.

    Every method opens its own short transaction; callers never rely on
    multi-row atomicity across calls.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def create(
        self,
        *,
        registration_id: str,
        company_name: str,
        representative: str | None = None,
        contact_email: str | None = None,
        phone: str | None = None,
        submitted_at: datetime | None = None,
    ) -> RegistrationRecord:
        """Insert a freshly submitted registration in ``under_review``."""

        now = submitted_at or datetime.now(UTC)
        with session_scope(self._session_factory) as session:
            row = Registration(
                id=registration_id,
                company_name=company_name,
                representative=representative,
                contact_email=contact_email,
                phone=phone,
                status=RegistrationStatus.UNDER_REVIEW.value,
                approval_status=ApprovalStatus.PENDING.value,
                submitted_at=now,
                updated_at=now,
            )
            session.add(row)
            session.flush()
            return RegistrationRecord.from_row(row)

    def find_by_id(self, registration_id: str) -> RegistrationRecord | None:
        with session_scope(self._session_factory) as session:
            row = session.get(Registration, registration_id)
            if row is None:
                return None
            return RegistrationRecord.from_row(row)

    def update(
        self,
        registration_id: str,
        fields: Mapping[str, Any],
        *,
        expected_status: RegistrationStatus | None = None,
    ) -> bool:
        """Write *fields* to the row; return False when it does not exist.

        With *expected_status* the write only lands while the row still holds
        that status, so two writers racing on one registration cannot both
        apply a transition.
        """

        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown registration fields: {', '.join(sorted(unknown))}")

        values = {name: _column_value(value) for name, value in fields.items()}
        values["updated_at"] = datetime.now(UTC)

        stmt = sql_update(Registration).where(Registration.id == registration_id)
        if expected_status is not None:
            stmt = stmt.where(Registration.status == expected_status.value)

        with session_scope(self._session_factory) as session:
            result = session.execute(stmt.values(**values))
            return result.rowcount == 1

    def scan(self, predicate: Callable[[RegistrationRecord], bool]) -> List[RegistrationRecord]:
        """Return every registration matching *predicate*, oldest submission first."""

        with session_scope(self._session_factory) as session:
            rows = session.execute(select(Registration).order_by(Registration.submitted_at)).scalars()
            records = [RegistrationRecord.from_row(row) for row in rows]
        return [record for record in records if predicate(record)]

    def record_transition(
        self,
        registration_id: str,
        *,
        from_status: RegistrationStatus,
        to_status: RegistrationStatus,
        changed_by: str,
        changed_at: datetime,
    ) -> None:
        """Append a status history row for an applied transition."""

        with session_scope(self._session_factory) as session:
            session.add(
                StatusHistory(
                    registration_id=registration_id,
                    from_status=from_status.value,
                    to_status=to_status.value,
                    changed_at=changed_at,
                    changed_by=changed_by,
                )
            )

    def request_page_generation(self, registration_id: str, *, requested_by: str) -> int:
        """Queue a listing page build for *registration_id* and return the row id."""

        with session_scope(self._session_factory) as session:
            request = PageGenerationRequest(
                registration_id=registration_id,
                requested_by=requested_by,
                requested_at=datetime.now(UTC),
            )
            session.add(request)
            session.flush()
            return request.id
