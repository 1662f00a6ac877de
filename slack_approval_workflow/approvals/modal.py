"""Builder for the approval request modal."""

from __future__ import annotations

from typing import Any, Dict

APPROVAL_MODAL_CALLBACK_ID = "approval_modal_submit"
APPROVER_BLOCK_ID = "approver_block"
APPROVER_ACTION_ID = "approver_select_action"
REQUEST_TEXT_BLOCK_ID = "request_text_block"
REQUEST_TEXT_ACTION_ID = "request_text_action"


def _plain_text(text: str) -> Dict[str, Any]:
    return {"type": "plain_text", "text": text}


def build_request_modal() -> Dict[str, Any]:
    """Return the modal asking for an approver and a reason."""

    return {
        "type": "modal",
        "callback_id": APPROVAL_MODAL_CALLBACK_ID,
        "title": _plain_text("Request Approval"),
        "submit": _plain_text("Submit"),
        "close": _plain_text("Cancel"),
        "blocks": [
            {
                "type": "input",
                "block_id": APPROVER_BLOCK_ID,
                "label": _plain_text("Choose Approver"),
                "element": {
                    "type": "users_select",
                    "action_id": APPROVER_ACTION_ID,
                    "placeholder": _plain_text("Select an approver"),
                },
            },
            {
                "type": "input",
                "block_id": REQUEST_TEXT_BLOCK_ID,
                "label": _plain_text("Reason for Approval"),
                "element": {
                    "type": "plain_text_input",
                    "action_id": REQUEST_TEXT_ACTION_ID,
                    "multiline": True,
                },
            },
        ],
    }
