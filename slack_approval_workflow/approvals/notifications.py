"""Slack deliveries for approval requests and decisions.

These run on the worker pool after the triggering event has been acknowledged;
failures are logged and never retried.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping

import structlog
from slack_sdk.errors import SlackApiError
from sqlalchemy.exc import SQLAlchemyError

from slack_approval_workflow.actions import DecisionToken
from slack_approval_workflow.slack_client import SlackClient, slack_error_code

from .messages import (
    build_approver_message,
    build_decision_notification,
    build_resolved_update,
    confirmation_text,
    delivery_failed_text,
    extract_request_text,
    format_request_summary,
)
from .requests import ApprovalRequest
from .storage import save_message_reference


def _error_code(exc: Exception) -> str:
    if isinstance(exc, SlackApiError):
        return slack_error_code(exc)
    return str(exc)


def notify_requester(*, client, requester_id: str, text: str, logger, operation: str) -> bool:
    """Best-effort DM to the requester; returns whether Slack accepted it."""

    slack_client = SlackClient(client=client)
    try:
        slack_client.post_message(channel=requester_id, text=text)
    except SlackApiError as exc:
        error_code = slack_error_code(exc)
        structlog.get_logger().error(
            "requester_message_failed", operation=operation, requester_id=requester_id, error=error_code
        )
        logger.error(
            "Failed to message requester",
            extra={"operation": operation, "requester_id": requester_id, "error": error_code},
        )
        return False
    return True


def send_approval_request(
    *,
    client,
    request: ApprovalRequest,
    logger,
    request_id: int | None = None,
) -> bool:
    """Post the interactive message to the approver, then confirm to the requester.

    When the approver message cannot be delivered the requester is told instead.
    Returns whether the approver message was posted.
    """

    slack_client = SlackClient(client=client)
    log = structlog.get_logger().bind(
        request_id=request_id,
        requester_id=request.requester_id,
        approver_id=request.approver_id,
    )

    try:
        payload = build_approver_message(request, request_id=request_id)
        response = slack_client.post_message(
            channel=request.approver_id,
            text=payload["text"],
            blocks=payload["blocks"],
        )
    except (SlackApiError, ValueError) as exc:
        error_code = _error_code(exc)
        log.error("approval_request_failed", error=error_code)
        logger.error(
            "Failed to send approval request message",
            extra={"approver_id": request.approver_id, "error": error_code},
        )
        notify_requester(
            client=client,
            requester_id=request.requester_id,
            text=delivery_failed_text(request.approver_id),
            logger=logger,
            operation="delivery_failed_notice",
        )
        return False

    log.info("approval_request_sent")

    channel_id = response.get("channel")
    ts = response.get("ts")
    if request_id is not None and channel_id and ts:
        try:
            save_message_reference(request_id=request_id, channel_id=channel_id, ts=ts)
        except SQLAlchemyError:
            logger.exception(
                "Failed to store approver message reference",
                extra={"request_id": request_id},
            )

    if notify_requester(
        client=client,
        requester_id=request.requester_id,
        text=confirmation_text(request.approver_id),
        logger=logger,
        operation="confirmation",
    ):
        log.info("requester_confirmed")
    return True


def deliver_decision(
    *,
    client,
    token: DecisionToken,
    requester_id: str,
    decided_by: str,
    channel_id: str | None,
    message: Mapping[str, Any],
    logger,
    reason: str | None = None,
    message_ts: str | None = None,
    decided_at: datetime | None = None,
) -> bool:
    """Tell the requester about the decision and resolve the approver's message.

    *reason* is the stored request text; without it the text is recovered from
    the approver message. The approver message is rewritten even when the
    requester could not be reached, since the decision is already final.
    Returns whether the requester was notified.
    """

    slack_client = SlackClient(client=client)
    log = structlog.get_logger().bind(
        requester_id=requester_id,
        decided_by=decided_by,
        decision=token.decision,
    )
    blocks = message.get("blocks") or []

    request_text = format_request_summary(reason) if reason else extract_request_text(blocks)
    notification = build_decision_notification(
        request_text=request_text,
        decision_label=token.label,
        decided_by=decided_by,
    )
    notified = True
    try:
        slack_client.post_message(
            channel=requester_id,
            text=notification["text"],
            blocks=notification["blocks"],
        )
    except SlackApiError as exc:
        notified = False
        error_code = slack_error_code(exc)
        log.error("requester_notification_failed", error=error_code)
        logger.error(
            "Error processing approval decision",
            extra={"requester_id": requester_id, "error": error_code},
        )
    else:
        log.info("requester_notified")

    ts = message.get("ts") or message_ts
    if not channel_id or not ts:
        log.warning("approver_message_reference_missing")
        return notified

    update = build_resolved_update(
        blocks,
        decision_label=token.label,
        requester_id=requester_id,
        decided_at=decided_at,
        requester_notified=notified,
    )
    try:
        slack_client.update_message(channel=channel_id, ts=ts, text=update["text"], blocks=update["blocks"])
    except SlackApiError as exc:
        error_code = slack_error_code(exc)
        log.error("approver_message_update_failed", error=error_code)
        logger.error(
            "Failed to update approver message",
            extra={"channel": channel_id, "error": error_code},
        )
        return notified
    log.info("approver_message_updated", channel=channel_id, requester_notified=notified)
    return notified
