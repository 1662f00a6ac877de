"""Request store operations used by the submission and decision handlers."""

from __future__ import annotations

from datetime import UTC, datetime

from slack_approval_workflow.db import session_scope
from slack_approval_workflow.models import (
    STATUS_APPROVED,
    STATUS_PENDING,
    STATUS_REJECTED,
    ApprovalRecord,
    advance_request_status,
)
from slack_approval_workflow.actions import APPROVE

from .requests import ApprovalRequest


def save_request(request: ApprovalRequest) -> ApprovalRecord:
    """Persist *request* as pending and return the detached record."""

    with session_scope() as session:
        record = ApprovalRecord(
            requester_id=request.requester_id,
            approver_id=request.approver_id,
            reason=request.reason,
            status=STATUS_PENDING,
            created_at=datetime.now(UTC),
            updated_at=datetime.now(UTC),
        )
        session.add(record)
        session.flush()
        session.refresh(record)
        session.expunge(record)
        return record


def save_message_reference(*, request_id: int, channel_id: str, ts: str) -> None:
    """Remember where the approver message for *request_id* was posted."""

    with session_scope() as session:
        record = session.get(ApprovalRecord, request_id)
        if record is None:
            return
        record.channel_id = channel_id
        record.ts = ts


def get_request(request_id: int) -> ApprovalRecord | None:
    with session_scope() as session:
        record = session.get(ApprovalRecord, request_id)
        if record is not None:
            session.expunge(record)
        return record


def resolve_request(request_id: int, *, decision: str, decided_by: str) -> ApprovalRecord | None:
    """Atomically move a pending request to its decided status.

    Returns ``None`` for an unknown id. Raises ``StatusTransitionError`` when the
    request was already decided and ``OptimisticLockError`` when a concurrent
    click won the race.
    """

    new_status = STATUS_APPROVED if decision == APPROVE else STATUS_REJECTED
    with session_scope() as session:
        record = session.get(ApprovalRecord, request_id)
        if record is None:
            return None
        advance_request_status(session, record, new_status=new_status, decided_by=decided_by)
        session.expunge(record)
        return record
