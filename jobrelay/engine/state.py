"""Application-level owner of the engine state."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from ..settings import EngineSettings
from .cancellation import CancellationCoordinator
from .controller import ResultHook, ScopeController
from .errors import ValidationError
from .normalizer import ProgressEvent
from .operations import Operation, OperationRegistry
from .progress import ProgressRelay
from .timeline import Message, MessageTimeline, snapshot
from .transport import BackendCanceller, EventTransport

logger = logging.getLogger(__name__)


class AssistantEngine:
    """Own the registry, timeline and progress relay shared by all scopes.

    Callers interact through scope names; the components are only reachable
    through this object so no state lives in module globals.
    """

    def __init__(
        self,
        *,
        transport: EventTransport,
        cancel_backend: BackendCanceller | None = None,
        settings: EngineSettings | None = None,
        result_hooks: Mapping[str, ResultHook] | None = None,
    ) -> None:
        self._settings = settings or EngineSettings()
        self._transport = transport
        self.registry = OperationRegistry()
        self.timeline = MessageTimeline()
        self.relay = ProgressRelay(self.registry)
        self.coordinator = CancellationCoordinator(
            registry=self.registry,
            timeline=self.timeline,
            cancel_backend=cancel_backend,
            message=self._settings.cancel_message,
        )
        self.timeline.cleared.connect(self._on_timeline_cleared)
        hooks = dict(result_hooks or {})
        self._controllers: dict[str, ScopeController] = {
            name: ScopeController(
                scope=name,
                settings=scope_settings,
                transport=transport,
                registry=self.registry,
                timeline=self.timeline,
                relay=self.relay,
                coordinator=self.coordinator,
                failure_message=self._settings.failure_message,
                on_result=hooks.get(name),
            )
            for name, scope_settings in self._settings.scopes.items()
        }

    # ------------------------------------------------------------------
    @property
    def settings(self) -> EngineSettings:
        return self._settings

    # ------------------------------------------------------------------
    @property
    def scopes(self) -> tuple[str, ...]:
        return tuple(self._controllers)

    # ------------------------------------------------------------------
    def scope(self, name: str | None = None) -> ScopeController:
        """Return the controller for *name* (the default scope when ``None``)."""
        key = name or self._settings.default_scope
        try:
            return self._controllers[key]
        except KeyError:
            raise ValidationError(f"unknown scope: {key!r}") from None

    # ------------------------------------------------------------------
    def submit(self, text: str, *, scope: str | None = None, **parameters: Any) -> str | None:
        return self.scope(scope).submit(text, **parameters)

    # ------------------------------------------------------------------
    async def cancel(self, scope: str | None = None) -> Operation | None:
        return await self.scope(scope).cancel()

    # ------------------------------------------------------------------
    def clear(self, scope: str | None = None) -> None:
        self.scope(scope).clear()

    # ------------------------------------------------------------------
    def is_busy(self, scope: str | None = None) -> bool:
        return self.scope(scope).is_busy

    # ------------------------------------------------------------------
    def progress(self, scope: str | None = None) -> ProgressEvent | None:
        return self.scope(scope).progress

    # ------------------------------------------------------------------
    def messages(self, scope: str | None = None) -> tuple[Message, ...]:
        """Return detached copies of the scope's messages."""
        return tuple(snapshot(message) for message in self.scope(scope).messages())

    # ------------------------------------------------------------------
    def start(self) -> None:
        """Subscribe every scope up front instead of on first submit."""
        for controller in self._controllers.values():
            controller.attach()

    # ------------------------------------------------------------------
    def shutdown(self) -> None:
        """Drop in-flight operations locally and remove all subscriptions."""
        for name, controller in self._controllers.items():
            if self.registry.reset(name) is not None:
                logger.info("Abandoned running operation in scope %s on shutdown", name)
            controller.detach()

    # ------------------------------------------------------------------
    def _on_timeline_cleared(self, scope: str) -> None:
        operation = self.registry.reset(scope)
        if operation is not None:
            logger.info("Cleared scope %s while %s was running", scope, operation.id)
        self.relay.reset(scope)


__all__ = ["AssistantEngine"]
