"""Pydantic models describing MailBrief configuration documents."""
from __future__ import annotations

import os
from typing import Dict, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..errors import ConfigError

DEFAULT_FREQUENCY_HOURS = 12
DEFAULT_FETCH_PREFIX = "Fetch Email Body:"


def _secret(value: Optional[str], env_name: Optional[str], label: str) -> str:
    if value:
        return value
    if env_name:
        resolved = os.environ.get(env_name)
        if resolved:
            return resolved
        raise ConfigError(f"{label} password not set (expected environment variable {env_name})")
    raise ConfigError(f"{label} password not configured")


class PathsConfig(BaseModel):
    """Filesystem layout used by the runtime."""

    model_config = ConfigDict(extra="forbid")

    state_dir: str


class ImapSettings(BaseModel):
    """Gmail IMAP account the briefing reads from."""

    model_config = ConfigDict(extra="forbid")

    host: str = "imap.gmail.com"
    port: int = 993
    ssl: bool = True
    username: str
    password: Optional[str] = None
    password_env: Optional[str] = "MAILBRIEF_IMAP_PASSWORD"
    folder: str = "[Gmail]/All Mail"

    def resolve_password(self) -> str:
        return _secret(self.password, self.password_env, "IMAP")


class SmtpSettings(BaseModel):
    """Outbound relay used to deliver briefings and fetch replies."""

    model_config = ConfigDict(extra="forbid")

    host: str = "smtp.gmail.com"
    port: int = 587
    starttls: bool = True
    username: Optional[str] = None
    password: Optional[str] = None
    password_env: Optional[str] = "MAILBRIEF_SMTP_PASSWORD"
    from_name: str = "MailBrief"

    def resolve_password(self) -> str:
        return _secret(self.password, self.password_env, "SMTP")


class LLMSettings(BaseModel):
    """Remote language model used for summaries and sender ranking."""

    model_config = ConfigDict(extra="forbid")

    endpoint: str = "https://generativelanguage.googleapis.com/v1beta"
    model: str = "gemini-1.5-flash"
    api_key_env: str = "GEMINI_API_KEY"
    timeout_s: float = Field(default=30.0, gt=0)
    summary_language: str = "English"

    def api_key(self) -> Optional[str]:
        return os.environ.get(self.api_key_env) or None


class BriefingSettings(BaseModel):
    """Rendering and delivery knobs for the briefing email."""

    model_config = ConfigDict(extra="forbid")

    timezone: str = "America/New_York"
    fetch_prefix: str = DEFAULT_FETCH_PREFIX
    include_unranked: bool = False
    daily_send_quota: int = Field(default=100, ge=0)
    link_template: str = "https://mail.google.com/mail/u/0/#inbox/{thread_id}"

    @field_validator("timezone")
    @classmethod
    def _known_zone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown timezone '{value}'") from exc
        return value

    @field_validator("fetch_prefix")
    @classmethod
    def _non_blank_prefix(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("fetch_prefix must not be blank")
        return value

    @field_validator("link_template")
    @classmethod
    def _templated_link(cls, value: str) -> str:
        if "{thread_id}" not in value:
            raise ValueError("link_template must contain '{thread_id}'")
        return value


class ServiceSettings(BaseModel):
    """Lifecycle defaults applied when (re)enabling the periodic jobs."""

    model_config = ConfigDict(extra="forbid")

    settle_seconds: float = Field(default=10.0, ge=0)
    request_job_hours: int = Field(default=1, ge=1, le=24)
    default_frequency_hours: int = Field(default=DEFAULT_FREQUENCY_HOURS, ge=1, le=24)


class RuntimeConfig(BaseModel):
    """Root configuration loaded from ``config.yaml``."""

    model_config = ConfigDict(extra="forbid")

    version: int = 1
    paths: PathsConfig
    imap: ImapSettings
    smtp: SmtpSettings = Field(default_factory=SmtpSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    briefing: BriefingSettings = Field(default_factory=BriefingSettings)
    service: ServiceSettings = Field(default_factory=ServiceSettings)

    @model_validator(mode="after")
    def _smtp_defaults_to_imap_login(self) -> "RuntimeConfig":
        if self.smtp.username is None:
            self.smtp.username = self.imap.username
        return self


class ServiceConfig(BaseModel):
    """Persisted service state: who receives briefings and which jobs exist.

    Field aliases are the keys used inside the config store. Instances are
    frozen snapshots; a re-enable replaces the whole document.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    recipient_email: str = Field(alias="recipientEmail", min_length=1)
    frequency_hours: int = Field(default=DEFAULT_FREQUENCY_HOURS, alias="frequencyHours", ge=1, le=24)
    briefing_job_handle: Optional[str] = Field(default=None, alias="briefingJobHandle")
    request_job_handle: Optional[str] = Field(default=None, alias="requestJobHandle")

    def to_store(self) -> Dict[str, str]:
        """Return the string mapping persisted by the config store."""

        payload = self.model_dump(by_alias=True, exclude_none=True)
        return {key: str(value) for key, value in payload.items()}
