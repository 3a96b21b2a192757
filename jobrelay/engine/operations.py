"""Registry of in-flight backend operations keyed by scope."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum

from ..telemetry import log_event
from ..util.signals import Signal
from ..util.time import utc_now_iso
from .errors import OperationStateError

logger = logging.getLogger(__name__)


class OperationStatus(str, Enum):
    """Lifecycle states of an operation."""

    PENDING = "pending"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATUSES


_TERMINAL_STATUSES = frozenset(
    {OperationStatus.COMPLETED, OperationStatus.FAILED, OperationStatus.CANCELLED}
)

_ALLOWED_TRANSITIONS: dict[OperationStatus, frozenset[OperationStatus]] = {
    OperationStatus.PENDING: frozenset({OperationStatus.STREAMING}) | _TERMINAL_STATUSES,
    OperationStatus.STREAMING: _TERMINAL_STATUSES,
    OperationStatus.COMPLETED: frozenset(),
    OperationStatus.FAILED: frozenset(),
    OperationStatus.CANCELLED: frozenset(),
}


@dataclass(slots=True)
class Operation:
    """Track metadata for one request dispatched to the backend."""

    id: str
    scope: str
    status: OperationStatus = OperationStatus.PENDING
    started_at: str = field(default_factory=utc_now_iso)
    placeholder_message_id: str | None = None
    cancel_requested: bool = False
    finished_at: str | None = None
    started_monotonic: float = field(default_factory=time.monotonic)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def transition(self, status: OperationStatus) -> None:
        """Move to *status* enforcing the monotonic lifecycle."""
        if status is self.status and status is OperationStatus.STREAMING:
            return
        if status not in _ALLOWED_TRANSITIONS[self.status]:
            raise OperationStateError(
                f"operation {self.id} cannot move from {self.status.value} to {status.value}"
            )
        self.status = status
        if status.is_terminal:
            self.finished_at = utc_now_iso()


class OperationRegistry:
    """Hold at most one non-terminal operation per scope.

    Operations are serialized per scope rather than queued: :meth:`start`
    refuses a second operation while the first is still running.
    """

    def __init__(self) -> None:
        self._active: dict[str, Operation] = {}
        self._last: dict[str, Operation] = {}
        self.busy_changed = Signal()
        self.released = Signal()

    # ------------------------------------------------------------------
    def start(self, scope: str, request_id: str) -> Operation | None:
        """Admit a new operation for *scope* or return ``None`` when busy."""
        current = self._active.get(scope)
        if current is not None:
            logger.info(
                "Scope %s busy with %s; rejecting %s", scope, current.id, request_id
            )
            return None
        operation = Operation(id=request_id, scope=scope)
        self._active[scope] = operation
        log_event(
            "OPERATION_STARTED",
            {"scope": scope, "request_id": request_id},
        )
        self.busy_changed.emit((scope, True))
        return operation

    # ------------------------------------------------------------------
    def current(self, scope: str) -> Operation | None:
        return self._active.get(scope)

    # ------------------------------------------------------------------
    def last(self, scope: str) -> Operation | None:
        """Return the most recently finished operation for *scope*."""
        return self._last.get(scope)

    # ------------------------------------------------------------------
    def is_busy(self, scope: str) -> bool:
        return scope in self._active

    # ------------------------------------------------------------------
    def matches(self, scope: str, request_id: str | None) -> bool:
        """Return ``True`` when *request_id* is the scope's current operation."""
        operation = self._active.get(scope)
        return operation is not None and request_id is not None and operation.id == request_id

    # ------------------------------------------------------------------
    def attach_placeholder(self, scope: str, request_id: str, message_id: str) -> bool:
        operation = self._active.get(scope)
        if operation is None or operation.id != request_id:
            return False
        operation.placeholder_message_id = message_id
        return True

    # ------------------------------------------------------------------
    def mark_streaming(self, scope: str, request_id: str) -> bool:
        """Enter ``STREAMING`` for the current operation on its first progress event."""
        operation = self._active.get(scope)
        if operation is None or operation.id != request_id:
            return False
        operation.transition(OperationStatus.STREAMING)
        return True

    # ------------------------------------------------------------------
    def request_cancel(self, scope: str) -> Operation | None:
        """Flag the current operation as being cancelled.

        Returns ``None`` when nothing is running or a cancellation is
        already in progress, which makes repeated cancels no-ops.
        """
        operation = self._active.get(scope)
        if operation is None or operation.cancel_requested:
            return None
        operation.cancel_requested = True
        return operation

    # ------------------------------------------------------------------
    def complete(
        self,
        scope: str,
        request_id: str,
        status: OperationStatus,
    ) -> Operation | None:
        """Finish the current operation when *request_id* still owns the scope."""
        if not status.is_terminal:
            raise OperationStateError(f"{status.value} is not a terminal status")
        operation = self._active.get(scope)
        if operation is None or operation.id != request_id:
            logger.debug(
                "Ignoring completion of %s in scope %s; current is %s",
                request_id,
                scope,
                operation.id if operation is not None else None,
            )
            return None
        operation.transition(status)
        del self._active[scope]
        self._last[scope] = operation
        log_event(
            "OPERATION_FINISHED",
            {
                "scope": scope,
                "request_id": request_id,
                "status": status.value,
            },
            start_time=operation.started_monotonic,
        )
        self.released.emit(operation)
        self.busy_changed.emit((scope, False))
        return operation

    # ------------------------------------------------------------------
    def reset(self, scope: str) -> Operation | None:
        """Terminate whatever runs in *scope* locally, without contacting the backend."""
        operation = self._active.get(scope)
        if operation is None:
            return None
        return self.complete(scope, operation.id, OperationStatus.CANCELLED)

    # ------------------------------------------------------------------
    def scopes(self) -> tuple[str, ...]:
        """Return scopes that currently have an operation in flight."""
        return tuple(self._active)


__all__ = ["Operation", "OperationRegistry", "OperationStatus"]
