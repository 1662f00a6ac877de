"""Parsing and validation of approval modal submissions."""

from __future__ import annotations

from typing import Any, Dict

from pydantic import BaseModel, ValidationError, field_validator

from .modal import (
    APPROVER_ACTION_ID,
    APPROVER_BLOCK_ID,
    REQUEST_TEXT_ACTION_ID,
    REQUEST_TEXT_BLOCK_ID,
)

# Slack's built-in bot user; it can appear in a users_select but never acts.
RESERVED_USER_IDS = frozenset({"USLACKBOT"})


class ApprovalRequest(BaseModel):
    """A validated approval request as entered in the modal."""

    requester_id: str
    approver_id: str
    reason: str

    @field_validator("requester_id", "approver_id")
    @classmethod
    def _check_user_id(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("User id is required.")
        if value in RESERVED_USER_IDS:
            raise ValueError(f"{value} cannot take part in an approval.")
        return value

    @field_validator("reason")
    @classmethod
    def _check_reason(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Reason is required.")
        return value


class SubmissionError(ValueError):
    """Raised when the submitted modal does not describe a complete request."""

    def __init__(self, message: str, *, missing: list[str] | None = None) -> None:
        super().__init__(message)
        self.missing = missing or []


def _state_value(values: Dict[str, Any], block_id: str, action_id: str, key: str) -> Any:
    block = values.get(block_id)
    if not isinstance(block, dict):
        return None
    control = block.get(action_id)
    if not isinstance(control, dict):
        return None
    return control.get(key)


def parse_submission(state_values: Dict[str, Any], requester_id: str) -> ApprovalRequest:
    """Build an :class:`ApprovalRequest` from ``view.state.values``.

    The reason is kept verbatim; it is only checked for being non-blank.
    """

    approver_id = _state_value(state_values or {}, APPROVER_BLOCK_ID, APPROVER_ACTION_ID, "selected_user")
    reason = _state_value(state_values or {}, REQUEST_TEXT_BLOCK_ID, REQUEST_TEXT_ACTION_ID, "value")

    missing = []
    if not approver_id:
        missing.append("approver")
    if not isinstance(reason, str) or not reason.strip():
        missing.append("reason")
    if missing:
        raise SubmissionError("Submission is missing required fields.", missing=missing)

    try:
        return ApprovalRequest(requester_id=requester_id or "", approver_id=approver_id, reason=reason)
    except ValidationError as exc:
        fields = [str(error["loc"][0]) for error in exc.errors() if error.get("loc")]
        raise SubmissionError("Submission failed validation.", missing=fields) from exc
