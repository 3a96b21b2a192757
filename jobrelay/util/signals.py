"""Minimal observer primitive shared by the engine components."""

from __future__ import annotations

from collections.abc import Callable
from contextlib import suppress
from typing import Any


class Signal:
    """Simple signal implementation used to publish state changes."""

    __slots__ = ("_listeners",)

    def __init__(self) -> None:
        self._listeners: list[Callable[[Any], None]] = []

    def connect(self, callback: Callable[[Any], None]) -> None:
        if callback not in self._listeners:
            self._listeners.append(callback)

    def disconnect(self, callback: Callable[[Any], None]) -> None:
        with suppress(ValueError):
            self._listeners.remove(callback)

    def emit(self, payload: Any) -> None:
        for listener in list(self._listeners):
            listener(payload)

    def __len__(self) -> int:
        return len(self._listeners)


__all__ = ["Signal"]
