"""Tests for approval message builders."""

from datetime import datetime
from pathlib import Path
import sys

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from slack_approval_workflow.actions import parse_action_value, parse_decision_token  # noqa: E402
from slack_approval_workflow.approvals import (  # noqa: E402
    ApprovalRequest,
    build_approver_message,
    build_decision_notification,
    build_request_modal,
    build_resolved_update,
    extract_request_text,
)
from slack_approval_workflow.approvals.messages import format_request_summary, format_request_text  # noqa: E402


@pytest.fixture
def approval():
    return ApprovalRequest(requester_id="U123", approver_id="U456", reason="Need budget sign-off")


def test_request_modal_fields():
    view = build_request_modal()

    assert view["callback_id"] == "approval_modal_submit"
    assert view["title"]["text"] == "Request Approval"
    approver_block, reason_block = view["blocks"]
    assert approver_block["block_id"] == "approver_block"
    assert approver_block["element"] == {
        "type": "users_select",
        "action_id": "approver_select_action",
        "placeholder": {"type": "plain_text", "text": "Select an approver"},
    }
    assert reason_block["block_id"] == "request_text_block"
    assert reason_block["element"]["action_id"] == "request_text_action"
    assert reason_block["element"]["multiline"] is True


def test_approver_message_fences_reason(approval):
    message = build_approver_message(approval, request_id=5)

    section, actions = message["blocks"]
    assert "```Need budget sign-off```" in section["text"]["text"]
    assert "<@U123> has requested your approval" in section["text"]["text"]
    assert section["text"]["text"].startswith("Hi <@U456>!")
    assert message["text"] == section["text"]["text"]

    assert actions["type"] == "actions"
    assert actions["block_id"] == "approval_actions_U123"
    approve, reject = actions["elements"]
    assert approve["action_id"] == "approve_request_U123"
    assert approve["style"] == "primary"
    assert reject["action_id"] == "reject_request_U123"
    assert reject["style"] == "danger"
    assert parse_decision_token(reject["action_id"]).requester_id == "U123"
    assert parse_action_value(approve["value"]).request_id == 5


def test_approver_message_without_request_id_has_no_value(approval):
    message = build_approver_message(approval)

    for button in message["blocks"][1]["elements"]:
        assert "value" not in button


def test_extract_request_text_reads_fenced_reason(approval):
    blocks = build_approver_message(approval)["blocks"]

    assert extract_request_text(blocks) == "Your request:\n```Need budget sign-off```"


def test_extract_request_text_trims_and_keeps_multiline():
    text = format_request_text(ApprovalRequest(requester_id="U1", approver_id="U2", reason="\n line 1\nline 2 \n"))
    blocks = [{"type": "section", "text": {"type": "mrkdwn", "text": text}}]

    assert extract_request_text(blocks) == "Your request:\n```line 1\nline 2```"


def test_extract_request_text_without_fence():
    blocks = [{"type": "section", "text": {"type": "mrkdwn", "text": "no fences here"}}]

    assert extract_request_text(blocks) == "Your request (details couldn't be fully extracted)"


@pytest.mark.parametrize(
    "blocks",
    [
        None,
        [],
        [{"type": "actions", "elements": []}],
        [{"type": "section", "text": {"type": "plain_text", "text": "```x```"}}],
        [{"type": "section"}],
        ["not-a-block"],
    ],
)
def test_extract_request_text_placeholder(blocks):
    assert extract_request_text(blocks) == "Your request"


def test_extract_request_text_uses_first_mrkdwn_section():
    blocks = [
        {"type": "header", "text": {"type": "plain_text", "text": "```header```"}},
        {"type": "section", "text": {"type": "mrkdwn", "text": "```first```"}},
        {"type": "section", "text": {"type": "mrkdwn", "text": "```second```"}},
    ]

    assert extract_request_text(blocks) == "Your request:\n```first```"


def test_decision_notification():
    notification = build_decision_notification(
        request_text="Your request:\n```x```", decision_label="Rejected", decided_by="U456"
    )

    assert notification["text"] == "Your request:\n```x```\n\nhas been *Rejected* by <@U456>."
    assert notification["blocks"] == [
        {"type": "section", "text": {"type": "mrkdwn", "text": notification["text"]}}
    ]


def test_resolved_update_replaces_actions_with_context(approval):
    blocks = build_approver_message(approval)["blocks"]
    decided_at = datetime(2024, 5, 1, 9, 30, 0)

    update = build_resolved_update(blocks, decision_label="Approved", requester_id="U123", decided_at=decided_at)

    assert update["text"] == "Request Approved."
    assert [block["type"] for block in update["blocks"]] == ["section", "context"]
    assert update["blocks"][0] == blocks[0]
    note = update["blocks"][-1]["elements"][0]
    assert note["type"] == "mrkdwn"
    assert note["text"] == "*Approved* by you on 2024-05-01 09:30:00. Requester <@U123> notified."
    # the original message blocks are left untouched
    assert blocks[1]["type"] == "actions"


def test_resolved_update_flags_unreached_requester(approval):
    blocks = build_approver_message(approval)["blocks"]
    decided_at = datetime(2024, 5, 1, 9, 30, 0)

    update = build_resolved_update(
        blocks,
        decision_label="Rejected",
        requester_id="U123",
        decided_at=decided_at,
        requester_notified=False,
    )

    assert [block["type"] for block in update["blocks"]] == ["section", "context"]
    assert update["blocks"][-1]["elements"][0]["text"] == (
        "*Rejected* by you on 2024-05-01 09:30:00. "
        "Requester <@U123> could not be notified, please let them know."
    )


def test_request_summary_keeps_embedded_fences():
    summary = format_request_summary("  see ```diff``` below \n")

    assert summary == "Your request:\n```see ```diff``` below```"
