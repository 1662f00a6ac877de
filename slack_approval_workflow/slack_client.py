"""Thin wrapper around the Slack WebClient calls the approval flow makes."""

from __future__ import annotations

from typing import Any, Mapping, Sequence

from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError


def slack_error_code(exc: SlackApiError) -> str:
    """Return Slack's ``error`` field for *exc*, or its message when absent."""

    response = getattr(exc, "response", None)
    if response is None:
        return str(exc)
    try:
        return response.get("error") or str(exc)
    except AttributeError:
        return str(exc)


class SlackClient:
    """Encapsulate WebClient interactions so handlers can be tested with fakes."""

    def __init__(self, *, token: str | None = None, client: WebClient | None = None) -> None:
        if client is None and token is None:
            raise ValueError("Either an instantiated client or a bot token must be provided.")

        self._client = client or WebClient(token=token)

    @property
    def client(self) -> WebClient:
        return self._client

    def open_view(self, *, trigger_id: str, view: Mapping[str, Any]) -> Mapping[str, Any]:
        """Open a modal for the user behind *trigger_id*."""

        return self._client.views_open(trigger_id=trigger_id, view=dict(view))

    def post_message(
        self,
        *,
        channel: str,
        text: str,
        blocks: Sequence[Mapping[str, Any]] | None = None,
    ) -> Mapping[str, Any]:
        """Post a message; a user id as *channel* delivers it as a DM from the bot."""

        if blocks is None:
            return self._client.chat_postMessage(channel=channel, text=text)
        return self._client.chat_postMessage(channel=channel, text=text, blocks=list(blocks))

    def post_ephemeral(self, *, channel: str, user: str, text: str) -> Mapping[str, Any]:
        return self._client.chat_postEphemeral(channel=channel, user=user, text=text)

    def update_message(
        self,
        *,
        channel: str,
        ts: str,
        text: str,
        blocks: Sequence[Mapping[str, Any]],
    ) -> Mapping[str, Any]:
        """Replace the content of an existing message."""

        return self._client.chat_update(channel=channel, ts=ts, text=text, blocks=list(blocks))
