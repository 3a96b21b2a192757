"""Publish/subscribe transport consumed by the engine."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

logger = logging.getLogger(__name__)

EventHandler = Callable[[Any], None]
BackendCanceller = Callable[[str], Awaitable[Any]]


class EventTransport(Protocol):
    """Fire-and-forget event primitive shared with the backend."""

    def emit(self, event_name: str, payload: Any) -> None:  # pragma: no cover - protocol
        """Publish *payload* under *event_name*."""

    def subscribe(self, event_name: str, handler: EventHandler) -> None:  # pragma: no cover - protocol
        """Invoke *handler* for every event published under *event_name*."""

    def unsubscribe(
        self, event_name: str, handler: EventHandler | None = None
    ) -> None:  # pragma: no cover - protocol
        """Remove *handler* (or every handler when ``None``) from *event_name*."""


class LocalEventBus:
    """In-process :class:`EventTransport` delivering synchronously.

    Handlers run in registration order inside :meth:`emit`.  A handler that
    raises is logged and does not prevent delivery to the others, matching
    a transport that owns its own dispatch loop.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = {}

    # ------------------------------------------------------------------
    def emit(self, event_name: str, payload: Any) -> None:
        handlers = list(self._handlers.get(event_name, ()))
        logger.debug("Emitting %s to %d handler(s)", event_name, len(handlers))
        for handler in handlers:
            try:
                handler(payload)
            except Exception:
                logger.exception("Handler for %s failed", event_name)

    # ------------------------------------------------------------------
    def subscribe(self, event_name: str, handler: EventHandler) -> None:
        self._handlers.setdefault(event_name, []).append(handler)

    # ------------------------------------------------------------------
    def unsubscribe(self, event_name: str, handler: EventHandler | None = None) -> None:
        if handler is None:
            self._handlers.pop(event_name, None)
            return
        handlers = self._handlers.get(event_name)
        if not handlers:
            return
        try:
            handlers.remove(handler)
        except ValueError:
            return
        if not handlers:
            del self._handlers[event_name]

    # ------------------------------------------------------------------
    def handler_count(self, event_name: str) -> int:
        return len(self._handlers.get(event_name, ()))


__all__ = ["BackendCanceller", "EventHandler", "EventTransport", "LocalEventBus"]
