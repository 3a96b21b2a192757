"""Per-scope controller correlating requests with backend events."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from ..settings import DEFAULT_FAILURE_MESSAGE, ScopeSettings
from ..telemetry import log_event
from .cancellation import CancellationCoordinator
from .errors import DropReason, TransportError, ValidationError
from .ids import RequestIdGenerator
from .normalizer import CanonicalResult, ProgressEvent, extract_request_id, normalize_response
from .operations import Operation, OperationRegistry, OperationStatus
from .progress import ProgressRelay
from .timeline import Message, MessageTimeline
from .transport import EventTransport

logger = logging.getLogger(__name__)

ResultHook = Callable[[Operation, CanonicalResult], None]


class ScopeController:
    """Turn the fire-and-forget transport into request/response for one scope.

    Handlers never cache the id of the running request: they read the
    scope's current operation from the registry each time they run, so an
    event that arrives after its operation finished is recognised as stale.
    """

    def __init__(
        self,
        *,
        scope: str,
        settings: ScopeSettings,
        transport: EventTransport,
        registry: OperationRegistry,
        timeline: MessageTimeline,
        relay: ProgressRelay,
        coordinator: CancellationCoordinator,
        id_generator: RequestIdGenerator | None = None,
        failure_message: str = DEFAULT_FAILURE_MESSAGE,
        on_result: ResultHook | None = None,
    ) -> None:
        self._scope = scope
        self._settings = settings
        self._transport = transport
        self._registry = registry
        self._timeline = timeline
        self._relay = relay
        self._coordinator = coordinator
        self._ids = id_generator or RequestIdGenerator(settings.id_prefix)
        self._failure_message = failure_message
        self._on_result = on_result
        self._attached = False

    # ------------------------------------------------------------------
    @property
    def scope(self) -> str:
        return self._scope

    # ------------------------------------------------------------------
    @property
    def settings(self) -> ScopeSettings:
        return self._settings

    # ------------------------------------------------------------------
    @property
    def attached(self) -> bool:
        return self._attached

    # ------------------------------------------------------------------
    @property
    def is_busy(self) -> bool:
        return self._registry.is_busy(self._scope)

    # ------------------------------------------------------------------
    @property
    def current_operation(self) -> Operation | None:
        return self._registry.current(self._scope)

    # ------------------------------------------------------------------
    @property
    def progress(self) -> ProgressEvent | None:
        return self._relay.current(self._scope)

    # ------------------------------------------------------------------
    def messages(self) -> tuple[Message, ...]:
        return self._timeline.messages(self._scope)

    # ------------------------------------------------------------------
    def attach(self) -> None:
        """Subscribe to the scope's response and progress events once."""
        if self._attached:
            return
        settings = self._settings
        try:
            self._transport.subscribe(settings.response_event, self._on_response)
            self._transport.subscribe(settings.progress_event, self._on_progress)
        except Exception as exc:
            self._unsubscribe_quietly()
            raise TransportError(
                f"failed to subscribe to {settings.response_event}: {exc}",
                event_name=settings.response_event,
            ) from exc
        self._attached = True
        logger.info("Scope %s listening on %s", self._scope, settings.response_event)

    # ------------------------------------------------------------------
    def detach(self) -> None:
        """Remove this controller's subscriptions."""
        if not self._attached:
            return
        self._unsubscribe_quietly()
        self._attached = False

    # ------------------------------------------------------------------
    def _unsubscribe_quietly(self) -> None:
        for event_name, handler in (
            (self._settings.response_event, self._on_response),
            (self._settings.progress_event, self._on_progress),
        ):
            try:
                self._transport.unsubscribe(event_name, handler)
            except Exception:
                logger.exception("Failed to unsubscribe from %s", event_name)

    # ------------------------------------------------------------------
    def submit(self, text: str, **parameters: Any) -> str | None:
        """Dispatch *text* to the backend.

        Returns the request id, or ``None`` when the scope is busy or the
        transport refused the request.  Blank input raises
        :class:`ValidationError` before anything is recorded.
        """
        normalized = text.strip() if isinstance(text, str) else ""
        if not normalized:
            raise ValidationError(f"cannot submit empty input to scope {self._scope}")
        if self._registry.is_busy(self._scope):
            logger.info("Scope %s is busy; ignoring submit", self._scope)
            return None

        request_id = self._ids.next_id()
        operation = self._registry.start(self._scope, request_id)
        if operation is None:  # pragma: no cover - guarded by is_busy above
            return None

        if self._settings.echo_prompt:
            self._timeline.append("user", normalized, scope=self._scope)
        placeholder_id = self._timeline.append(
            "assistant",
            self._settings.placeholder_text,
            scope=self._scope,
            is_loading=True,
            request_id=request_id,
        )
        self._registry.attach_placeholder(self._scope, request_id, placeholder_id)

        payload: dict[str, Any] = dict(parameters)
        payload[self._settings.prompt_field] = normalized
        payload["requestId"] = request_id
        payload["scope"] = self._scope

        try:
            self.attach()
            self._transport.emit(self._settings.request_event, payload)
        except Exception as exc:
            self._fail_dispatch(operation, exc)
            return None
        logger.info("Submitted %s on %s", request_id, self._settings.request_event)
        return request_id

    # ------------------------------------------------------------------
    def _fail_dispatch(self, operation: Operation, exc: Exception) -> None:
        reason = exc.__cause__ if isinstance(exc, TransportError) and exc.__cause__ else exc
        logger.error("Failed to submit %s: %s", operation.id, reason)
        log_event(
            "REQUEST_DISPATCH_FAILED",
            {"scope": self._scope, "request_id": operation.id, "error": str(reason)},
            level=logging.ERROR,
        )
        self._timeline.replace_placeholder(
            self._scope,
            operation.id,
            {
                "role": "error",
                "content": f"Error: Failed to submit request: {reason}",
                "is_loading": False,
            },
        )
        self._registry.complete(self._scope, operation.id, OperationStatus.FAILED)

    # ------------------------------------------------------------------
    def _resolve_operation(self, payload: Any) -> Operation | None:
        """Return the operation *payload* belongs to or ``None`` to drop it."""
        operation = self._registry.current(self._scope)
        request_id = extract_request_id(payload)
        if operation is None:
            self._drop(request_id, DropReason.STALE_EVENT)
            return None
        if request_id is None:
            logger.warning(
                "Response without request id in scope %s; attributing to %s",
                self._scope,
                operation.id,
            )
        elif request_id != operation.id:
            self._drop(request_id, DropReason.STALE_EVENT)
            return None
        if operation.cancel_requested:
            self._drop(operation.id, DropReason.CANCELLATION_RACE)
            return None
        return operation

    # ------------------------------------------------------------------
    def _on_response(self, payload: Any) -> None:
        operation = self._resolve_operation(payload)
        if operation is None:
            return
        try:
            result = normalize_response(payload)
            self._finalize(operation, result)
        except Exception:
            logger.exception("Failed to apply response for %s", operation.id)
            self._registry.complete(self._scope, operation.id, OperationStatus.FAILED)
            return
        if self._on_result is not None:
            try:
                self._on_result(operation, result)
            except Exception:
                logger.exception("Result hook failed for %s", operation.id)

    # ------------------------------------------------------------------
    def _finalize(self, operation: Operation, result: CanonicalResult) -> None:
        if result.success:
            updates: dict[str, Any] = {
                "role": "assistant",
                "content": result.result,
                "is_loading": False,
                "processing_time": result.processing_time,
            }
            status = OperationStatus.COMPLETED
        else:
            reason = result.failure_reason(self._failure_message)
            if not reason.startswith("Error:"):
                reason = f"Error: {reason}"
            updates = {
                "role": "error",
                "content": reason,
                "is_loading": False,
                "processing_time": result.processing_time,
            }
            status = OperationStatus.FAILED
        self._timeline.replace_placeholder(self._scope, operation.id, updates)
        self._registry.complete(self._scope, operation.id, status)

    # ------------------------------------------------------------------
    def _on_progress(self, payload: Any) -> None:
        self._relay.on_progress(self._scope, payload)

    # ------------------------------------------------------------------
    async def cancel(self) -> Operation | None:
        return await self._coordinator.cancel(self._scope)

    # ------------------------------------------------------------------
    def clear(self) -> None:
        """Empty the scope's timeline; any running operation is dropped locally."""
        self._timeline.clear(self._scope)

    # ------------------------------------------------------------------
    def _drop(self, request_id: str | None, reason: DropReason) -> None:
        logger.debug(
            "Dropping response %s in scope %s: %s", request_id, self._scope, reason.value
        )
        log_event(
            "EVENT_DROPPED",
            {"scope": self._scope, "request_id": request_id, "reason": reason.value},
            level=logging.DEBUG,
        )


__all__ = ["ResultHook", "ScopeController"]
