"""Application entry point for the Slack approval bot."""

from __future__ import annotations

import sys
from importlib.metadata import PackageNotFoundError, version
from uuid import uuid4

from dotenv import load_dotenv
from flask import Flask, jsonify, request, copy_current_request_context
from slack_bolt import App as SlackApp
from slack_bolt.adapter.flask import SlackRequestHandler
from slack_sdk.errors import SlackApiError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
import structlog
from structlog.contextvars import bind_contextvars, unbind_contextvars

from slack_approval_workflow.actions import (
    APPROVE,
    DECISION_ACTION_PATTERN,
    build_decision_token,
    parse_action_value,
    parse_decision_token,
)
from slack_approval_workflow.approvals import (
    APPROVAL_MODAL_CALLBACK_ID,
    SubmissionError,
    build_request_modal,
    parse_submission,
)
from slack_approval_workflow.approvals.messages import (
    ALREADY_DECIDED_TEXT,
    VALIDATION_FAILED_TEXT,
    delivery_failed_text,
)
from slack_approval_workflow.approvals.notifications import (
    deliver_decision,
    notify_requester,
    send_approval_request,
)
from slack_approval_workflow.approvals.storage import resolve_request, save_request
from slack_approval_workflow.background import run_async
from slack_approval_workflow.config import AppSettings, ConfigurationError, get_settings
from slack_approval_workflow.db import init_db, session_scope
from slack_approval_workflow.logging_config import configure_logging
from slack_approval_workflow.models import OptimisticLockError, StatusTransitionError
from slack_approval_workflow.security import (
    SLACK_SIGNATURE_HEADER,
    SLACK_TIMESTAMP_HEADER,
    is_valid_slack_request,
)
from slack_approval_workflow.slack_client import SlackClient, slack_error_code

DISTRIBUTION_NAME = "slack-approval-workflow"
CONFIG_ERROR_MESSAGE = (
    "Error: SLACK_SIGNING_SECRET and SLACK_BOT_TOKEN must be set in the environment or the .env file"
)


def _create_bolt_app(settings: AppSettings) -> SlackApp:
    """Initialise the Slack Bolt application using validated settings."""

    return SlackApp(
        token=settings.bot_token,
        signing_secret=settings.signing_secret,
        token_verification_enabled=False,
    )


def _register_error_handlers(flask_app: Flask) -> None:
    """Register a JSON error handler that attaches a trace identifier."""

    @flask_app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):  # type: ignore[override]
        trace_id = str(uuid4())
        flask_app.logger.exception(
            "Unhandled application error", extra={"trace_id": trace_id}, exc_info=error
        )
        response = jsonify({"error": "internal_server_error", "trace_id": trace_id})
        response.status_code = 500
        return response


def _open_modal(client, trigger_id: str, view: dict, user_id: str | None, logger) -> None:
    try:
        SlackClient(client=client).open_view(trigger_id=trigger_id, view=view)
    except SlackApiError as exc:
        error_code = slack_error_code(exc)
        structlog.get_logger().error("modal_open_failed", user_id=user_id, error=error_code)
        logger.error("Error opening approval modal", extra={"user_id": user_id, "error": error_code})
        return
    structlog.get_logger().info("modal_opened", user_id=user_id)


def _handle_approval_command(ack, command, client, logger):
    trace_id = str(uuid4())
    bind_contextvars(trace_id=trace_id)
    log = structlog.get_logger().bind(trace_id=trace_id)
    try:
        ack()
        user_id = command.get("user_id")
        log.info("slash_command_received", command=command.get("command"), user_id=user_id)

        trigger_id = command.get("trigger_id")
        if not trigger_id:
            log.warning("trigger_id_missing", user_id=user_id)
            return

        run_async(
            _open_modal,
            client,
            trigger_id,
            build_request_modal(),
            user_id,
            logger,
            trace_id=trace_id,
        )
    finally:
        unbind_contextvars("trace_id")


def _handle_view_submission(ack, body, client, logger):
    trace_id = str(uuid4())
    bind_contextvars(trace_id=trace_id)
    log = structlog.get_logger().bind(trace_id=trace_id)
    try:
        ack()
        requester_id = body.get("user", {}).get("id", "")
        view = body.get("view", {})
        values = view.get("state", {}).get("values", {})
        log = log.bind(requester_id=requester_id)

        try:
            approval = parse_submission(values, requester_id)
        except SubmissionError as exc:
            log.warning("submission_invalid", missing=exc.missing)
            if requester_id:
                run_async(
                    notify_requester,
                    client=client,
                    requester_id=requester_id,
                    text=VALIDATION_FAILED_TEXT,
                    logger=logger,
                    operation="validation_failed",
                    trace_id=trace_id,
                )
            return

        try:
            build_decision_token(APPROVE, approval.requester_id)
            record = save_request(approval)
        except ValueError:
            log.error("decision_token_invalid")
            run_async(
                notify_requester,
                client=client,
                requester_id=requester_id,
                text=delivery_failed_text(approval.approver_id),
                logger=logger,
                operation="delivery_failed_notice",
                trace_id=trace_id,
            )
            return
        except SQLAlchemyError:
            logger.exception("Failed to store approval request", extra={"requester_id": requester_id})
            run_async(
                notify_requester,
                client=client,
                requester_id=requester_id,
                text=delivery_failed_text(approval.approver_id),
                logger=logger,
                operation="delivery_failed_notice",
                trace_id=trace_id,
            )
            return

        log.info("request_created", request_id=record.id, approver_id=approval.approver_id)
        run_async(
            send_approval_request,
            client=client,
            request=approval,
            logger=logger,
            request_id=record.id,
            trace_id=trace_id,
        )
    finally:
        unbind_contextvars("trace_id")


def _post_already_decided(client, channel_id: str, user_id: str, logger) -> None:
    try:
        SlackClient(client=client).post_ephemeral(channel=channel_id, user=user_id, text=ALREADY_DECIDED_TEXT)
    except SlackApiError as exc:
        logger.warning(
            "Failed to tell approver the request was already decided",
            extra={"user_id": user_id, "error": slack_error_code(exc)},
        )


def _handle_decision_action(ack, body, client, logger, action=None):
    trace_id = str(uuid4())
    bind_contextvars(trace_id=trace_id)
    log = structlog.get_logger().bind(trace_id=trace_id)
    try:
        ack()
        if action is None:
            actions = body.get("actions") or [{}]
            action = actions[0]

        try:
            token = parse_decision_token(action.get("action_id", ""))
        except ValueError:
            log.warning("invalid_decision_action", action_id=action.get("action_id"))
            return

        user_id = body.get("user", {}).get("id", "")
        channel_id = body.get("channel", {}).get("id")
        message = body.get("message") or {}
        requester_id = token.requester_id
        reason = None
        message_ts = None
        log = log.bind(decision=token.decision, decided_by=user_id)

        context = parse_action_value(action.get("value"))
        if context is not None:
            log = log.bind(request_id=context.request_id)
            try:
                record = resolve_request(context.request_id, decision=token.decision, decided_by=user_id)
            except (StatusTransitionError, OptimisticLockError):
                log.info("decision_already_recorded")
                if channel_id and user_id:
                    run_async(_post_already_decided, client, channel_id, user_id, logger, trace_id=trace_id)
                return
            except SQLAlchemyError:
                logger.exception(
                    "Failed to record approval decision",
                    extra={"request_id": context.request_id},
                )
                record = None

            if record is None:
                log.warning("request_record_unavailable")
            else:
                requester_id = record.requester_id
                reason = record.reason
                channel_id = channel_id or record.channel_id
                message_ts = record.ts
                log.info("decision_recorded", status=record.status)

        run_async(
            deliver_decision,
            client=client,
            token=token,
            requester_id=requester_id,
            decided_by=user_id,
            channel_id=channel_id,
            message=message,
            logger=logger,
            reason=reason,
            message_ts=message_ts,
            trace_id=trace_id,
        )
    finally:
        unbind_contextvars("trace_id")


def _register_command_handlers(bolt_app: SlackApp, settings: AppSettings) -> None:
    @bolt_app.command(settings.command_name)
    def handle_approval_command(ack, command, client, logger):
        _handle_approval_command(ack=ack, command=command, client=client, logger=logger)


def _register_view_handlers(bolt_app: SlackApp) -> None:
    @bolt_app.view(APPROVAL_MODAL_CALLBACK_ID)
    def handle_submission(ack, body, client, logger):
        _handle_view_submission(ack=ack, body=body, client=client, logger=logger)


def _register_action_handlers(bolt_app: SlackApp) -> None:
    @bolt_app.action(DECISION_ACTION_PATTERN)
    def handle_decision(ack, body, action, client, logger):
        _handle_decision_action(ack=ack, body=body, client=client, logger=logger, action=action)


_LOGGING_CONFIGURED = False


def _load_version() -> str:
    try:
        return version(DISTRIBUTION_NAME)
    except PackageNotFoundError:
        return "unknown"


def create_app(settings: AppSettings | None = None) -> Flask:
    """Create and configure the Flask application."""

    global _LOGGING_CONFIGURED
    settings = settings or get_settings()
    if not _LOGGING_CONFIGURED:
        configure_logging(settings.log_level)
        _LOGGING_CONFIGURED = True

    bolt_app = _create_bolt_app(settings)
    handler = SlackRequestHandler(bolt_app)

    flask_app = Flask(__name__)
    flask_app.config["APP_VERSION"] = _load_version()
    flask_app.logger.setLevel(settings.log_level)
    _register_error_handlers(flask_app)
    _register_command_handlers(bolt_app, settings)
    _register_view_handlers(bolt_app)
    _register_action_handlers(bolt_app)

    @flask_app.route("/slack/events", methods=["POST"])
    def slack_events():
        raw_body = request.get_data(as_text=True)
        timestamp = request.headers.get(SLACK_TIMESTAMP_HEADER, "")
        signature = request.headers.get(SLACK_SIGNATURE_HEADER, "")
        if not is_valid_slack_request(
            signing_secret=settings.signing_secret,
            timestamp=timestamp,
            body=raw_body,
            signature=signature,
        ):
            response = jsonify({"error": "invalid_signature"})
            response.status_code = 401
            return response

        trace_id = str(uuid4())

        @copy_current_request_context
        def process_request():
            handler.handle(request)

        run_async(process_request, trace_id=trace_id)
        return "", 200

    @flask_app.route("/healthz", methods=["GET"])
    def healthz():
        health: dict[str, object] = {
            "ok": True,
            "version": flask_app.config.get("APP_VERSION", "unknown"),
            "config": "valid",
        }
        try:
            with session_scope() as session:
                session.execute(text("SELECT 1"))
            health["db"] = "up"
        except Exception as exc:
            health["db"] = "down"
            health["db_error"] = str(exc)
            health["ok"] = False

        status = 200 if health["ok"] else 503
        return jsonify(health), status

    return flask_app


def main() -> None:
    """Validate configuration, then serve the bot on the configured port."""

    load_dotenv()
    try:
        settings = get_settings()
    except ConfigurationError as exc:
        if exc.missing_secrets:
            print(CONFIG_ERROR_MESSAGE, file=sys.stderr)
        print(str(exc), file=sys.stderr)
        sys.exit(1)

    flask_app = create_app(settings)
    init_db()
    structlog.get_logger().info("app_ready", port=settings.port, command=settings.command_name)
    flask_app.run(host="0.0.0.0", port=settings.port)


if __name__ == "__main__":  # pragma: no cover - manual execution helper
    main()
