"""Progress tracking for the operation currently running in each scope."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any

from .errors import DropReason
from .normalizer import ProgressEvent, normalize_progress
from .operations import Operation, OperationRegistry
from ..util.signals import Signal

logger = logging.getLogger(__name__)


class ProgressRelay:
    """Keep the latest :class:`ProgressEvent` per scope.

    Only events for the scope's current operation are accepted; anything
    else is dropped without touching state.  There is no history buffer,
    each accepted event overwrites the single slot.  An update that carries
    only a status or message keeps the percentage already stored for the
    same request.
    """

    def __init__(self, registry: OperationRegistry) -> None:
        self._registry = registry
        self._latest: dict[str, ProgressEvent] = {}
        self.changed = Signal()
        registry.released.connect(self._on_operation_released)

    # ------------------------------------------------------------------
    def on_progress(self, scope: str, payload: Any) -> ProgressEvent | None:
        """Record *payload* for *scope*; return the stored event when accepted."""
        event = payload if isinstance(payload, ProgressEvent) else normalize_progress(payload)
        if event is None:
            self._drop(scope, None, DropReason.INVALID_PAYLOAD)
            return None
        operation = self._registry.current(scope)
        if operation is None or operation.id != event.request_id:
            self._drop(scope, event.request_id, DropReason.STALE_EVENT)
            return None
        if operation.cancel_requested:
            self._drop(scope, event.request_id, DropReason.CANCELLATION_RACE)
            return None
        previous = self._latest.get(scope)
        if (
            not event.has_progress
            and previous is not None
            and previous.request_id == event.request_id
        ):
            event = replace(event, progress=previous.progress)
        self._latest[scope] = event
        self._registry.mark_streaming(scope, operation.id)
        self.changed.emit((scope, event))
        return event

    # ------------------------------------------------------------------
    def current(self, scope: str) -> ProgressEvent | None:
        return self._latest.get(scope)

    # ------------------------------------------------------------------
    def reset(self, scope: str) -> None:
        if self._latest.pop(scope, None) is not None:
            self.changed.emit((scope, None))

    # ------------------------------------------------------------------
    def _on_operation_released(self, operation: Operation) -> None:
        self.reset(operation.scope)

    # ------------------------------------------------------------------
    @staticmethod
    def _drop(scope: str, request_id: str | None, reason: DropReason) -> None:
        logger.debug(
            "Dropping progress for %s in scope %s: %s", request_id, scope, reason.value
        )


__all__ = ["ProgressRelay"]
