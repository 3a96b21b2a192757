"""Pytest configuration for the jobrelay test suite."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from jobrelay.engine import AssistantEngine, LocalEventBus
from jobrelay.settings import EngineSettings


class RecordingCanceller:
    """Backend cancel capability that records calls and can be told to fail."""

    def __init__(self, *, error: Exception | None = None) -> None:
        self.calls = 0
        self.scopes: list[str] = []
        self.error = error
        self.before_return: Callable[[], None] | None = None

    async def __call__(self, scope: str) -> dict[str, Any]:
        self.calls += 1
        self.scopes.append(scope)
        if self.before_return is not None:
            self.before_return()
        if self.error is not None:
            raise self.error
        return {"ok": True}


@pytest.fixture(autouse=True)
def _isolated_log_dir(tmp_path, monkeypatch):
    """Keep any log files written during tests inside the temporary directory."""

    monkeypatch.setenv("JOBRELAY_LOG_DIR", str(tmp_path / "logs"))


@pytest.fixture
def bus() -> LocalEventBus:
    return LocalEventBus()


@pytest.fixture
def settings() -> EngineSettings:
    return EngineSettings()


@pytest.fixture
def canceller() -> RecordingCanceller:
    return RecordingCanceller()


@pytest.fixture
def engine(bus, settings, canceller):
    engine = AssistantEngine(transport=bus, cancel_backend=canceller, settings=settings)
    yield engine
    engine.shutdown()
