"""Typed engine settings with Pydantic validation."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import tomllib
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

CHAT_SCOPE = "chat"
DOCUMENT_QA_SCOPE = "documentQA"
PARSER_SCOPE = "parser"

DEFAULT_PLACEHOLDER_TEXT = "AI is thinking..."
DEFAULT_CANCEL_MESSAGE = "Generation cancelled by user"
DEFAULT_FAILURE_MESSAGE = "Failed to generate response"


def _strip_required(value: object, field_name: str) -> str:
    if value is None:
        raise ValueError(f"{field_name} must not be empty")
    text = str(value).strip()
    if not text:
        raise ValueError(f"{field_name} must not be empty")
    return text


class ScopeSettings(BaseModel):
    """Event wiring and presentation for one logical scope."""

    model_config = ConfigDict(validate_assignment=True)

    request_event: str
    response_event: str
    progress_event: str
    id_prefix: str
    placeholder_text: str = DEFAULT_PLACEHOLDER_TEXT
    prompt_field: str = "prompt"
    echo_prompt: bool = True

    @field_validator(
        "request_event", "response_event", "progress_event", "id_prefix", "prompt_field",
        mode="before",
    )
    @classmethod
    def _normalise_names(cls, value: object, info) -> str:
        return _strip_required(value, info.field_name)

    @field_validator("placeholder_text", mode="before")
    @classmethod
    def _normalise_placeholder(cls, value: str | None) -> str:
        if value is None:
            return DEFAULT_PLACEHOLDER_TEXT
        text = str(value).strip()
        return text or DEFAULT_PLACEHOLDER_TEXT


def default_scopes() -> dict[str, ScopeSettings]:
    """Return the scopes used by the assistant UI out of the box."""
    return {
        CHAT_SCOPE: ScopeSettings(
            request_event="inference-completion-request",
            response_event="inference-completion-response",
            progress_event="inference-completion-progress",
            id_prefix="inference",
        ),
        DOCUMENT_QA_SCOPE: ScopeSettings(
            request_event="query-document-request",
            response_event="query-document-response",
            progress_event="query-document-progress",
            id_prefix="document",
            prompt_field="query",
        ),
        PARSER_SCOPE: ScopeSettings(
            request_event="add-document-request",
            response_event="add-document-response",
            progress_event="add-document-progress",
            id_prefix="parser",
            placeholder_text="Processing document...",
            prompt_field="source",
        ),
    }


class EngineSettings(BaseModel):
    """Aggregate settings for the correlation engine."""

    model_config = ConfigDict(validate_assignment=True)

    scopes: dict[str, ScopeSettings] = Field(default_factory=default_scopes)
    default_scope: str = CHAT_SCOPE
    cancel_message: str = DEFAULT_CANCEL_MESSAGE
    failure_message: str = DEFAULT_FAILURE_MESSAGE
    log_level: int = Field(default=logging.INFO)

    @field_validator("scopes", mode="after")
    @classmethod
    def _require_scopes(
        cls, value: dict[str, ScopeSettings]
    ) -> dict[str, ScopeSettings]:
        if not value:
            raise ValueError("at least one scope must be configured")
        cleaned: dict[str, ScopeSettings] = {}
        for name, scope in value.items():
            key = name.strip()
            if not key:
                raise ValueError("scope names must not be empty")
            cleaned[key] = scope
        return cleaned

    @field_validator("cancel_message", "failure_message", mode="before")
    @classmethod
    def _normalise_messages(cls, value: str | None, info) -> str:
        return _strip_required(value, info.field_name)

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalise_log_level(cls, value: int | str | None) -> int:
        """Accept numeric levels as well as names such as ``"debug"``."""
        if value is None:
            return logging.INFO
        if isinstance(value, bool):
            raise TypeError("Boolean is not a valid log level")
        if isinstance(value, str):
            raw = value.strip()
            if not raw:
                return logging.INFO
            if raw.isdigit():
                return int(raw)
            level = logging.getLevelName(raw.upper())
            if not isinstance(level, int):
                raise ValueError(f"unknown log level: {value}")
            return level
        return int(value)

    @model_validator(mode="after")
    def _require_known_default_scope(self) -> EngineSettings:
        if self.default_scope not in self.scopes:
            raise ValueError(
                f"default_scope {self.default_scope!r} is not one of the configured scopes"
            )
        return self


def load_engine_settings(path: str | Path) -> EngineSettings:
    """Load :class:`EngineSettings` from *path* with validation.

    Format is detected by file extension: ``.toml`` uses :mod:`tomllib`,
    everything else is treated as JSON.  Any validation errors are wrapped into
    :class:`ValueError` with a human-friendly message.
    """
    p = Path(path)
    with p.open("rb") as fh:
        data = tomllib.load(fh) if p.suffix.lower() == ".toml" else json.load(fh)
    try:
        return EngineSettings.model_validate(data)
    except ValidationError as exc:
        raise ValueError(str(exc)) from exc


__all__ = [
    "CHAT_SCOPE",
    "DOCUMENT_QA_SCOPE",
    "PARSER_SCOPE",
    "DEFAULT_CANCEL_MESSAGE",
    "DEFAULT_FAILURE_MESSAGE",
    "DEFAULT_PLACEHOLDER_TEXT",
    "EngineSettings",
    "ScopeSettings",
    "default_scopes",
    "load_engine_settings",
]
