"""Block Kit message builders for approval requests and decisions."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping

from slack_approval_workflow.actions import (
    APPROVE,
    REJECT,
    build_action_value,
    build_decision_token,
)

from .requests import ApprovalRequest

FENCE = "```"
_FENCED_TEXT = re.compile(r"```([\s\S]*?)```")

VALIDATION_FAILED_TEXT = (
    "Sorry, something went wrong with your submission. Please ensure all fields are filled."
)
ALREADY_DECIDED_TEXT = "This request has already been decided."
PLACEHOLDER_REQUEST_TEXT = "Your request"
UNEXTRACTED_REQUEST_TEXT = "Your request (details couldn't be fully extracted)"


def _section(text: str) -> Dict[str, Any]:
    return {"type": "section", "text": {"type": "mrkdwn", "text": text}}


def _button(label: str, action_id: str, style: str, value: str | None) -> Dict[str, Any]:
    button: Dict[str, Any] = {
        "type": "button",
        "text": {"type": "plain_text", "text": label, "emoji": True},
        "style": style,
        "action_id": action_id,
    }
    if value is not None:
        button["value"] = value
    return button


def format_request_text(request: ApprovalRequest) -> str:
    """Return the approver-facing text with the reason fenced verbatim."""

    return (
        f"Hi <@{request.approver_id}>! :wave:\n\n"
        f"<@{request.requester_id}> has requested your approval for:\n\n"
        f"{FENCE}{request.reason}{FENCE}\n\n"
        "Please review and respond below."
    )


def build_approver_message(request: ApprovalRequest, *, request_id: int | None = None) -> Dict[str, Any]:
    """Build the interactive message sent to the approver.

    Both buttons carry a decision token in ``action_id``; when the request was
    recorded, its id rides along in ``value``.
    """

    text = format_request_text(request)
    value = build_action_value(request_id) if request_id is not None else None
    return {
        "text": text,
        "blocks": [
            _section(text),
            {
                "type": "actions",
                "block_id": f"approval_actions_{request.requester_id}",
                "elements": [
                    _button("Approve", build_decision_token(APPROVE, request.requester_id), "primary", value),
                    _button("Reject", build_decision_token(REJECT, request.requester_id), "danger", value),
                ],
            },
        ],
    }


def confirmation_text(approver_id: str) -> str:
    return f"Your approval request has been sent to <@{approver_id}>."


def delivery_failed_text(approver_id: str) -> str:
    return f"Sorry, there was an error sending your request to <@{approver_id}>. Please try again later."


def format_request_summary(reason: str) -> str:
    """Quote *reason* back to the requester."""

    return f"Your request:\n{FENCE}{reason.strip()}{FENCE}"


def extract_request_text(blocks: Iterable[Mapping[str, Any]] | None) -> str:
    """Recover the fenced reason from the approver message for the requester's notice.

    Falls back to placeholder text instead of raising when the message does not
    have the expected shape.
    """

    for block in blocks or []:
        if not isinstance(block, Mapping) or block.get("type") != "section":
            continue
        text_obj = block.get("text")
        if not isinstance(text_obj, Mapping) or text_obj.get("type") != "mrkdwn":
            continue
        body = text_obj.get("text")
        if not isinstance(body, str) or not body:
            return PLACEHOLDER_REQUEST_TEXT
        match = _FENCED_TEXT.search(body)
        if match and match.group(1):
            return format_request_summary(match.group(1))
        return UNEXTRACTED_REQUEST_TEXT
    return PLACEHOLDER_REQUEST_TEXT


def build_decision_notification(*, request_text: str, decision_label: str, decided_by: str) -> Dict[str, Any]:
    """Message telling the requester how their request was decided."""

    text = f"{request_text}\n\nhas been *{decision_label}* by <@{decided_by}>."
    return {"text": text, "blocks": [_section(text)]}


def format_local_timestamp(moment: datetime | None = None) -> str:
    moment = moment or datetime.now().astimezone()
    return moment.strftime("%Y-%m-%d %H:%M:%S %Z").strip()


def build_resolved_update(
    blocks: Iterable[Mapping[str, Any]] | None,
    *,
    decision_label: str,
    requester_id: str,
    decided_at: datetime | None = None,
    requester_notified: bool = True,
) -> Dict[str, Any]:
    """Return the approver message with its buttons replaced by a decision note.

    When the requester notice could not be delivered the note says so, so the
    approver can pass the outcome on.
    """

    updated: List[Dict[str, Any]] = [
        dict(block) for block in blocks or [] if isinstance(block, Mapping) and block.get("type") != "actions"
    ]
    if requester_notified:
        outcome = f"Requester <@{requester_id}> notified."
    else:
        outcome = f"Requester <@{requester_id}> could not be notified, please let them know."
    updated.append(
        {
            "type": "context",
            "elements": [
                {
                    "type": "mrkdwn",
                    "text": f"*{decision_label}* by you on {format_local_timestamp(decided_at)}. {outcome}",
                }
            ],
        }
    )
    return {"text": f"Request {decision_label}.", "blocks": updated}
