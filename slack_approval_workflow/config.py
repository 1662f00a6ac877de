"""Pydantic-based configuration helpers for the Slack approval bot."""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Iterable, List

from pydantic import BaseModel, Field, ValidationError, field_validator

DEFAULT_PORT = 3000
DEFAULT_DATABASE_URL = "sqlite:///approvals.db"
DEFAULT_COMMAND = "/approval-test"
DEFAULT_LOG_LEVEL = "INFO"
SECRET_ENV_VARS = ("SLACK_SIGNING_SECRET", "SLACK_BOT_TOKEN")


class ConfigurationError(RuntimeError):
    """Raised when required settings are missing or invalid."""

    def __init__(self, message: str, fields: List[str]):
        super().__init__(message)
        self.fields = fields

    @property
    def missing_secrets(self) -> bool:
        return any(field in SECRET_ENV_VARS for field in self.fields)


class AppSettings(BaseModel):
    """Settings required to initialise the Slack bot and its request store."""

    bot_token: str = Field(..., alias="SLACK_BOT_TOKEN")
    signing_secret: str = Field(..., alias="SLACK_SIGNING_SECRET")
    port: int = Field(DEFAULT_PORT, alias="PORT")
    database_url: str = Field(DEFAULT_DATABASE_URL, alias="DATABASE_URL")
    command_name: str = Field(DEFAULT_COMMAND, alias="APPROVAL_COMMAND")
    log_level: str = Field(DEFAULT_LOG_LEVEL, alias="LOG_LEVEL")

    @field_validator("bot_token", "signing_secret")
    @classmethod
    def _require_value(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Value must not be empty")
        return value.strip()

    @field_validator("port")
    @classmethod
    def _ensure_valid_port(cls, value: int) -> int:
        if not 0 < value < 65536:
            raise ValueError("Port must be between 1 and 65535")
        return value

    @field_validator("command_name")
    @classmethod
    def _ensure_slash_prefix(cls, value: str) -> str:
        value = value.strip()
        if not value.startswith("/") or len(value) < 2:
            raise ValueError("Slash command must start with '/'")
        return value

    @field_validator("log_level")
    @classmethod
    def _ensure_known_level(cls, value: str) -> str:
        value = value.strip().upper()
        if not isinstance(logging.getLevelName(value), int):
            raise ValueError("Unknown log level")
        return value


def _format_missing(fields: Iterable[str]) -> str:
    """Return a human-friendly comma-separated list of missing env vars."""

    unique: List[str] = []
    for field in fields:
        if field not in unique:
            unique.append(field)
    return ", ".join(unique)


@lru_cache()
def get_settings() -> AppSettings:
    """Fetch and cache settings from environment variables."""

    try:
        return AppSettings.model_validate(os.environ)
    except ValidationError as exc:
        invalid = [str(error["loc"][0]) for error in exc.errors()]
        message = (
            "Missing or invalid environment variables: "
            f"{_format_missing(invalid)}"
        )
        raise ConfigurationError(message, invalid) from exc
