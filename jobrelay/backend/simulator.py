"""In-process backend honouring the request/progress/response event contract.

Every request event is answered by zero or more progress events and exactly
one response event carrying the same request id.  Jobs run as asyncio tasks
on the caller's loop; each job owns a cancellation flag, checked between
stages, that only a cancel for its own scope can set.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from ..engine.normalizer import FAILURE_SENTINELS, extract_request_id
from ..engine.transport import EventTransport
from ..settings import EngineSettings, ScopeSettings
from ..util.cancellation import CancellationEvent, OperationCancelledError

logger = logging.getLogger(__name__)

Responder = Callable[[str, Mapping[str, Any]], Awaitable[str] | str]


@dataclass(frozen=True, slots=True)
class ProgressStage:
    """One progress notification emitted while a job runs."""

    status: str
    message: str
    progress: int


DEFAULT_STAGES: tuple[ProgressStage, ...] = (
    ProgressStage("starting", "Initializing job...", 0),
    ProgressStage("processing", "Processing input...", 20),
    ProgressStage("generating", "Generating result...", 50),
    ProgressStage("saving", "Saving result...", 80),
)
COMPLETED_STAGE = ProgressStage("completed", "Job finished successfully", 100)


def echo_responder(prompt: str, request: Mapping[str, Any]) -> str:
    """Default job body: answer with the submitted text."""
    return f"Echo: {prompt}"


class SimulatedBackend:
    """Answer request events published on a transport."""

    def __init__(
        self,
        transport: EventTransport,
        *,
        settings: EngineSettings | None = None,
        responder: Responder | None = None,
        stages: Iterable[ProgressStage] = DEFAULT_STAGES,
        step_delay: float = 0.0,
    ) -> None:
        self._transport = transport
        self._settings = settings or EngineSettings()
        self._responder = responder or echo_responder
        self._stages = tuple(stages)
        self._step_delay = max(0.0, step_delay)
        self._cancellations: dict[str, CancellationEvent] = {}
        self._tasks: set[asyncio.Task[None]] = set()
        self._handlers: dict[str, Callable[[Any], None]] = {}
        self.requests: list[dict[str, Any]] = []

    # ------------------------------------------------------------------
    def start(self) -> None:
        """Subscribe to the request event of every configured scope."""
        for name, scope_settings in self._settings.scopes.items():
            event_name = scope_settings.request_event
            if event_name in self._handlers:
                continue

            def handler(
                payload: Any, _name: str = name, _settings: ScopeSettings = scope_settings
            ) -> None:
                self._on_request(_name, _settings, payload)

            self._handlers[event_name] = handler
            self._transport.subscribe(event_name, handler)

    # ------------------------------------------------------------------
    def stop(self) -> None:
        """Remove subscriptions and abandon running jobs."""
        for event_name, handler in self._handlers.items():
            self._transport.unsubscribe(event_name, handler)
        self._handlers.clear()
        for task in list(self._tasks):
            task.cancel()

    # ------------------------------------------------------------------
    async def cancel_job(self, scope: str | None = None) -> dict[str, Any]:
        """Ask the job of *scope* (every job when ``None``) to stop at its next checkpoint."""
        targets = list(self._cancellations) if scope is None else [scope]
        cancelled = 0
        for name in targets:
            cancellation = self._cancellations.get(name)
            if cancellation is not None and not cancellation.cancelled:
                cancellation.set(f"cancelled by client in scope {name}")
                cancelled += 1
        logger.info("Cancellation requested for %d job(s) in scope %s", cancelled, scope)
        return {"ok": True, "scope": scope, "cancelled": cancelled}

    # ------------------------------------------------------------------
    async def drain(self) -> None:
        """Wait until every job started so far has emitted its response."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    def _on_request(self, scope: str, settings: ScopeSettings, payload: Any) -> None:
        if not isinstance(payload, Mapping):
            self._emit_response(
                settings,
                {"RequestID": "", "Success": False, "Error": "Invalid request data format"},
            )
            return
        request = dict(payload)
        self.requests.append(request)
        request_id = extract_request_id(request) or ""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._emit_response(
                settings,
                {
                    "RequestID": request_id,
                    "Success": False,
                    "Error": "Backend is not running",
                },
            )
            return
        cancellation = CancellationEvent()
        self._cancellations[scope] = cancellation
        task = loop.create_task(
            self._run_job(scope, settings, request_id, request, cancellation)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # ------------------------------------------------------------------
    async def _run_job(
        self,
        scope: str,
        settings: ScopeSettings,
        request_id: str,
        request: Mapping[str, Any],
        cancellation: CancellationEvent,
    ) -> None:
        started = time.monotonic()
        # Yield once so the submitting callback finishes before any event arrives.
        await asyncio.sleep(0)
        try:
            for stage in self._stages:
                self._emit_progress(settings, request_id, stage)
                await asyncio.sleep(self._step_delay)
                cancellation.raise_if_cancelled()
            prompt = str(request.get(settings.prompt_field, ""))
            result = self._responder(prompt, request)
            if inspect.isawaitable(result):
                result = await result
            cancellation.raise_if_cancelled()
            text = str(result)
            self._emit_progress(settings, request_id, COMPLETED_STAGE)
        except OperationCancelledError as exc:
            logger.info("Job %s cancelled (%s)", request_id, cancellation.reason)
            text = str(exc)
        except asyncio.CancelledError:
            logger.info("Job %s abandoned", request_id)
            raise
        except Exception as exc:
            logger.exception("Job %s failed", request_id)
            text = f"Error: {exc}"
        finally:
            if self._cancellations.get(scope) is cancellation:
                del self._cancellations[scope]

        success = not any(marker in text for marker in FAILURE_SENTINELS)
        response: dict[str, Any] = {
            "RequestID": request_id,
            "Success": success,
            "Result": text,
            "ProcessingTime": int((time.monotonic() - started) * 1000),
        }
        if not success:
            response["Error"] = text
        self._emit_response(settings, response)

    # ------------------------------------------------------------------
    def _emit_progress(
        self, settings: ScopeSettings, request_id: str, stage: ProgressStage
    ) -> None:
        self._transport.emit(
            settings.progress_event,
            {
                "requestId": request_id,
                "status": stage.status,
                "message": stage.message,
                "progress": stage.progress,
            },
        )

    # ------------------------------------------------------------------
    def _emit_response(self, settings: ScopeSettings, response: Mapping[str, Any]) -> None:
        logger.debug("Emitting response on %s: %s", settings.response_event, response)
        self._transport.emit(settings.response_event, dict(response))


__all__ = [
    "COMPLETED_STAGE",
    "DEFAULT_STAGES",
    "ProgressStage",
    "Responder",
    "SimulatedBackend",
    "echo_responder",
]
