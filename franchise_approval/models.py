"""SQLAlchemy models for franchise registrations and the deferred queue."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import List

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from franchise_approval.db import Base


class RegistrationStatus(str, Enum):
    UNDER_REVIEW = "under_review"
    RESUBMIT_REQUESTED = "resubmit_requested"
    APPROVED = "approved"
    REJECTED = "rejected"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Registration(Base):
    """A franchise partner registration awaiting or past review."""

    __tablename__ = "registrations"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    company_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    representative: Mapped[str | None] = mapped_column(String(255), nullable=True)
    contact_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default=RegistrationStatus.UNDER_REVIEW.value
    )
    approval_status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=ApprovalStatus.PENDING.value
    )
    approver: Mapped[str | None] = mapped_column(String(64), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    silent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )
    access_issued_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    status_history: Mapped[List["StatusHistory"]] = relationship(
        "StatusHistory",
        back_populates="registration",
        cascade="all, delete-orphan",
        order_by="StatusHistory.changed_at",
    )


class StatusHistory(Base):
    """Audit log of registration status transitions."""

    __tablename__ = "status_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    registration_id: Mapped[str] = mapped_column(
        ForeignKey("registrations.id", ondelete="CASCADE"), nullable=False
    )
    from_status: Mapped[str] = mapped_column(String(32), nullable=False)
    to_status: Mapped[str] = mapped_column(String(32), nullable=False)
    changed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    changed_by: Mapped[str] = mapped_column(String(64), nullable=False)

    registration: Mapped[Registration] = relationship("Registration", back_populates="status_history")


class DeferredAction(Base):
    """Append-only queue entry for work that cannot finish inside the ack budget.

    Rows are never deleted; ``processed`` flips once and the table doubles as
    the audit log of modal submissions.
    """

    __tablename__ = "deferred_actions"
    __table_args__ = (
        Index("ix_deferred_actions_processed", "processed", "id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    enqueued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    operation_type: Mapped[str] = mapped_column(String(32), nullable=False)
    record_id: Mapped[str] = mapped_column(String(32), nullable=False)
    acting_user: Mapped[str] = mapped_column(String(64), nullable=False)
    payload: Mapped[str | None] = mapped_column(Text, nullable=True)
    origin_channel: Mapped[str | None] = mapped_column(String(32), nullable=True)
    origin_message_ref: Mapped[str | None] = mapped_column(String(32), nullable=True)
    processed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)


class PageGenerationRequest(Base):
    """Outbox row asking the external page generator to build a partner page."""

    __tablename__ = "page_generation_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    registration_id: Mapped[str] = mapped_column(
        ForeignKey("registrations.id", ondelete="CASCADE"), nullable=False
    )
    requested_by: Mapped[str] = mapped_column(String(64), nullable=False)
    requested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="requested")
