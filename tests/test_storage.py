"""Tests for the approval request store and its status transitions."""

from pathlib import Path
import sys

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from slack_approval_workflow import config  # noqa: E402
from slack_approval_workflow.approvals import ApprovalRequest  # noqa: E402
from slack_approval_workflow.approvals.storage import (  # noqa: E402
    get_request,
    resolve_request,
    save_message_reference,
    save_request,
)
from slack_approval_workflow.db import Base, get_engine, get_session_factory, init_db  # noqa: E402
from slack_approval_workflow.models import (  # noqa: E402
    ApprovalRecord,
    OptimisticLockError,
    StatusTransitionError,
    advance_request_status,
)


@pytest.fixture(autouse=True)
def setup_database(monkeypatch, tmp_path):
    db_path = tmp_path / "store.db"
    monkeypatch.setenv("SLACK_BOT_TOKEN", "token")
    monkeypatch.setenv("SLACK_SIGNING_SECRET", "secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_path}")
    config.get_settings.cache_clear()
    get_engine.cache_clear()
    get_session_factory.cache_clear()

    init_db()

    yield

    Base.metadata.drop_all(get_engine())
    get_engine().dispose()
    config.get_settings.cache_clear()
    get_engine.cache_clear()
    get_session_factory.cache_clear()


def _approval():
    return ApprovalRequest(requester_id="U123", approver_id="U456", reason="Need budget sign-off")


def test_save_request_persists_pending_record():
    record = save_request(_approval())

    stored = get_request(record.id)
    assert stored.status == "PENDING"
    assert stored.requester_id == "U123"
    assert stored.approver_id == "U456"
    assert stored.reason == "Need budget sign-off"
    assert stored.version == 1


def test_save_message_reference_updates_record():
    record = save_request(_approval())

    save_message_reference(request_id=record.id, channel_id="D456", ts="1700000000.1")

    stored = get_request(record.id)
    assert stored.channel_id == "D456"
    assert stored.ts == "1700000000.1"


def test_save_message_reference_ignores_unknown_request():
    save_message_reference(request_id=999, channel_id="D456", ts="1.1")

    assert get_request(999) is None


@pytest.mark.parametrize("decision, status", [("approve", "APPROVED"), ("reject", "REJECTED")])
def test_resolve_request_records_decision(decision, status):
    record = save_request(_approval())

    resolved = resolve_request(record.id, decision=decision, decided_by="U456")

    assert resolved.status == status
    assert resolved.decided_by == "U456"
    assert resolved.decided_at is not None
    assert resolved.version == 2


def test_resolve_request_only_once():
    record = save_request(_approval())
    resolve_request(record.id, decision="approve", decided_by="U456")

    with pytest.raises(StatusTransitionError):
        resolve_request(record.id, decision="reject", decided_by="U456")

    assert get_request(record.id).status == "APPROVED"


def test_resolve_unknown_request_returns_none():
    assert resolve_request(404, decision="approve", decided_by="U456") is None


def test_optimistic_lock_detects_concurrent_resolution():
    record = save_request(_approval())
    factory = get_session_factory()

    with factory() as first, factory() as second:
        first_copy = first.get(ApprovalRecord, record.id)
        second_copy = second.get(ApprovalRecord, record.id)

        advance_request_status(first, first_copy, new_status="APPROVED", decided_by="U456")
        first.commit()

        with pytest.raises(OptimisticLockError):
            advance_request_status(second, second_copy, new_status="REJECTED", decided_by="U456")

    assert get_request(record.id).status == "APPROVED"


def test_pending_is_not_a_valid_target():
    record = save_request(_approval())
    factory = get_session_factory()

    with factory() as session:
        stored = session.get(ApprovalRecord, record.id)
        with pytest.raises(StatusTransitionError):
            advance_request_status(session, stored, new_status="PENDING", decided_by="U456")
