"""User-initiated cancellation of in-flight operations."""

from __future__ import annotations

import logging

from ..settings import DEFAULT_CANCEL_MESSAGE
from ..telemetry import log_event
from .operations import Operation, OperationRegistry, OperationStatus
from .timeline import MessageTimeline
from .transport import BackendCanceller

logger = logging.getLogger(__name__)


class CancellationCoordinator:
    """Cancel optimistically on the client and ask the backend to stop.

    The placeholder is rewritten and the operation flagged before anything
    is awaited, so a response racing the backend cancel is already recognised
    as belonging to a cancelled operation.  The scope is freed whatever the
    backend answers.
    """

    def __init__(
        self,
        *,
        registry: OperationRegistry,
        timeline: MessageTimeline,
        cancel_backend: BackendCanceller | None = None,
        message: str = DEFAULT_CANCEL_MESSAGE,
    ) -> None:
        self._registry = registry
        self._timeline = timeline
        self._cancel_backend = cancel_backend
        self._message = message

    # ------------------------------------------------------------------
    @property
    def message(self) -> str:
        return self._message

    # ------------------------------------------------------------------
    async def cancel(self, scope: str) -> Operation | None:
        """Cancel the operation running in *scope*; no-op when idle."""
        operation = self._registry.request_cancel(scope)
        if operation is None:
            logger.debug("Nothing to cancel in scope %s", scope)
            return None

        self._timeline.replace_placeholder(
            scope,
            operation.id,
            {"role": "error", "content": self._message, "is_loading": False},
        )
        log_event(
            "OPERATION_CANCELLED",
            {"scope": scope, "request_id": operation.id},
            start_time=operation.started_monotonic,
        )

        try:
            await self._notify_backend(scope, operation)
        finally:
            self._registry.complete(scope, operation.id, OperationStatus.CANCELLED)
        return operation

    # ------------------------------------------------------------------
    async def _notify_backend(self, scope: str, operation: Operation) -> None:
        if self._cancel_backend is None:
            return
        try:
            ack = await self._cancel_backend(scope)
        except Exception as exc:
            logger.warning(
                "Backend cancel for %s in scope %s failed: %s", operation.id, scope, exc
            )
            return
        logger.info("Backend acknowledged cancel of %s: %r", operation.id, ack)


__all__ = ["CancellationCoordinator"]
