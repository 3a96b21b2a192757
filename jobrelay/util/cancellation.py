"""Cancellation flag shared between a job runner and whoever may stop it."""

from __future__ import annotations

import threading

__all__ = ["CancellationEvent", "OperationCancelledError"]


class OperationCancelledError(RuntimeError):
    """Raised when an in-flight job is aborted via cancellation."""

    def __init__(self, message: str = "Operation cancelled by user") -> None:
        super().__init__(message)


class CancellationEvent:
    """Lightweight wrapper around :class:`threading.Event` for cancellations.

    Each backend job gets a fresh instance; once set it stays set.
    """

    __slots__ = ("_event", "_reason")

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason: str | None = None

    @property
    def cancelled(self) -> bool:
        """Return ``True`` when cancellation has been requested."""

        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def set(self, reason: str | None = None) -> None:
        """Signal cancellation."""

        self._reason = reason
        self._event.set()

    def raise_if_cancelled(self) -> None:
        """Raise :class:`OperationCancelledError` if cancellation occurred."""

        if self._event.is_set():
            raise OperationCancelledError()

