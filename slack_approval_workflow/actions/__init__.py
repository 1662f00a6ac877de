"""Decision tokens and button payloads for the Approve/Reject controls."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass

APPROVE = "approve"
REJECT = "reject"
TOKEN_DELIMITER = "_"

DECISION_LABELS = {
    APPROVE: "Approved",
    REJECT: "Rejected",
}

DECISION_ACTION_PATTERN = re.compile(r"^(approve|reject)_request_")


@dataclass(frozen=True)
class DecisionToken:
    """A decision and the requester it answers, as carried in a button ``action_id``."""

    decision: str
    requester_id: str

    @property
    def label(self) -> str:
        return DECISION_LABELS[self.decision]


def build_decision_token(decision: str, requester_id: str) -> str:
    """Return ``<decision>_request_<requester_id>``.

    The requester id is recovered positionally by :func:`parse_decision_token`,
    so an id containing the delimiter is refused rather than encoded into a token
    that would parse back to a different user.
    """

    if decision not in DECISION_LABELS:
        raise ValueError(f"Unknown decision: {decision!r}")
    if not requester_id:
        raise ValueError("Requester id is required.")
    if TOKEN_DELIMITER in requester_id:
        raise ValueError(f"Requester id must not contain {TOKEN_DELIMITER!r}.")
    return f"{decision}{TOKEN_DELIMITER}request{TOKEN_DELIMITER}{requester_id}"


def parse_decision_token(action_id: str) -> DecisionToken:
    """Split *action_id* into its decision (first segment) and requester (last segment).

    Ids that contain the delimiter come back truncated to their last segment:
    ``approve_request_U_1`` parses to requester ``1``.
    """

    if not DECISION_ACTION_PATTERN.match(action_id or ""):
        raise ValueError("Not a decision action.")

    parts = action_id.split(TOKEN_DELIMITER)
    requester_id = parts[-1]
    if not requester_id:
        raise ValueError("Decision action is missing the requester id.")
    return DecisionToken(decision=parts[0], requester_id=requester_id)


@dataclass(frozen=True)
class ActionContext:
    """Store reference carried in a decision button's ``value``."""

    request_id: int


def build_action_value(request_id: int) -> str:
    return json.dumps({"request_id": request_id}, separators=(",", ":"))


def parse_action_value(raw_value: str | None) -> ActionContext | None:
    """Return the referenced request, or ``None`` when the button carries no usable reference."""

    if not raw_value:
        return None

    try:
        payload = json.loads(raw_value)
    except json.JSONDecodeError:
        return None

    if not isinstance(payload, dict):
        return None

    request_id = payload.get("request_id")
    # bool is an int subclass; a stray True must not resolve request 1
    if not isinstance(request_id, int) or isinstance(request_id, bool):
        return None
    return ActionContext(request_id=request_id)
