"""Error taxonomy for the correlation engine."""

from __future__ import annotations

from enum import Enum

__all__ = [
    "DropReason",
    "EngineError",
    "OperationStateError",
    "TransportError",
    "ValidationError",
]


class EngineError(RuntimeError):
    """Base class for errors raised by the engine."""


class ValidationError(EngineError, ValueError):
    """Raised before dispatch when the submitted input is unusable."""


class TransportError(EngineError):
    """Raised when the publish/subscribe transport refuses an operation."""

    def __init__(self, message: str, *, event_name: str | None = None) -> None:
        super().__init__(message)
        self.event_name = event_name


class OperationStateError(EngineError):
    """Raised on an illegal operation status transition."""


class DropReason(str, Enum):
    """Why an incoming backend event was discarded without side effects."""

    STALE_EVENT = "stale_event"
    CANCELLATION_RACE = "cancellation_race"
    INVALID_PAYLOAD = "invalid_payload"
