"""SQLAlchemy models for approval requests."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import DateTime, Integer, String, Text, update
from sqlalchemy.orm import Mapped, Session, mapped_column

from slack_approval_workflow.db import Base

STATUS_PENDING = "PENDING"
STATUS_APPROVED = "APPROVED"
STATUS_REJECTED = "REJECTED"


class ApprovalRecord(Base):
    """One approval request and the Slack message it was delivered in."""

    __tablename__ = "approval_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    requester_id: Mapped[str] = mapped_column(String(32), nullable=False)
    approver_id: Mapped[str] = mapped_column(String(32), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=STATUS_PENDING)
    channel_id: Mapped[str | None] = mapped_column(String(32), nullable=True)
    ts: Mapped[str | None] = mapped_column(String(32), nullable=True)
    decided_by: Mapped[str | None] = mapped_column(String(32), nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC)
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


class StatusTransitionError(Exception):
    """Raised when a request is no longer in a state that accepts the decision."""


class OptimisticLockError(Exception):
    """Raised when another click resolved the request first."""


_ALLOWED_TRANSITIONS = {
    STATUS_PENDING: {STATUS_APPROVED, STATUS_REJECTED},
    STATUS_APPROVED: set(),
    STATUS_REJECTED: set(),
}


def advance_request_status(
    session: Session,
    record: ApprovalRecord,
    *,
    new_status: str,
    decided_by: str,
    decided_at: datetime | None = None,
) -> ApprovalRecord:
    """Move *record* to *new_status* guarded by its version column."""

    previous_status = record.status
    if new_status not in _ALLOWED_TRANSITIONS.get(previous_status, set()):
        raise StatusTransitionError(f"Cannot transition from {previous_status} to {new_status}")

    decided_time = decided_at or datetime.now(UTC)
    stmt = (
        update(ApprovalRecord)
        .where(ApprovalRecord.id == record.id, ApprovalRecord.version == record.version)
        .values(
            status=new_status,
            decided_by=decided_by,
            decided_at=decided_time,
            updated_at=datetime.now(UTC),
            version=record.version + 1,
        )
    )
    result = session.execute(stmt)
    if result.rowcount != 1:
        session.rollback()
        raise OptimisticLockError(f"Approval request {record.id} was resolved concurrently")

    session.refresh(record)
    return record
