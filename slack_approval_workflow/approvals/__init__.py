"""Approval request modal, parsing, messages and deliveries."""

from .modal import (
    APPROVAL_MODAL_CALLBACK_ID,
    APPROVER_ACTION_ID,
    APPROVER_BLOCK_ID,
    REQUEST_TEXT_ACTION_ID,
    REQUEST_TEXT_BLOCK_ID,
    build_request_modal,
)
from .requests import ApprovalRequest, SubmissionError, parse_submission
from .messages import (
    build_approver_message,
    build_decision_notification,
    build_resolved_update,
    extract_request_text,
)

__all__ = [
    "APPROVAL_MODAL_CALLBACK_ID",
    "APPROVER_ACTION_ID",
    "APPROVER_BLOCK_ID",
    "REQUEST_TEXT_ACTION_ID",
    "REQUEST_TEXT_BLOCK_ID",
    "ApprovalRequest",
    "SubmissionError",
    "build_request_modal",
    "parse_submission",
    "build_approver_message",
    "build_decision_notification",
    "build_resolved_update",
    "extract_request_text",
]
