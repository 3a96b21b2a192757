import asyncio

import pytest

from jobrelay.engine import (
    CancellationCoordinator,
    MessageTimeline,
    OperationRegistry,
    OperationStatus,
)

pytestmark = pytest.mark.unit


def _run(coro):
    return asyncio.run(coro)


def _start(registry: OperationRegistry, timeline: MessageTimeline, request_id: str = "r1") -> str:
    registry.start("chat", request_id)
    placeholder = timeline.append(
        "assistant", "AI is thinking...", scope="chat", is_loading=True, request_id=request_id
    )
    registry.attach_placeholder("chat", request_id, placeholder)
    return placeholder


def test_cancel_rewrites_placeholder_and_frees_scope(canceller):
    registry, timeline = OperationRegistry(), MessageTimeline()
    placeholder = _start(registry, timeline)
    coordinator = CancellationCoordinator(
        registry=registry, timeline=timeline, cancel_backend=canceller
    )

    operation = _run(coordinator.cancel("chat"))

    assert operation.status is OperationStatus.CANCELLED
    assert registry.is_busy("chat") is False
    message = timeline.get(placeholder)
    assert message.role == "error"
    assert message.is_loading is False
    assert "cancelled" in message.content
    assert canceller.calls == 1
    assert canceller.scopes == ["chat"]


def test_cancel_when_idle_is_noop(canceller):
    coordinator = CancellationCoordinator(
        registry=OperationRegistry(), timeline=MessageTimeline(), cancel_backend=canceller
    )
    assert _run(coordinator.cancel("chat")) is None
    assert canceller.calls == 0


def test_repeated_cancel_is_idempotent(canceller):
    registry, timeline = OperationRegistry(), MessageTimeline()
    _start(registry, timeline)
    coordinator = CancellationCoordinator(
        registry=registry, timeline=timeline, cancel_backend=canceller
    )

    async def scenario():
        return await asyncio.gather(coordinator.cancel("chat"), coordinator.cancel("chat"))

    first, second = _run(scenario())

    assert first is not None
    assert second is None
    assert canceller.calls == 1
    errors = [m for m in timeline.messages("chat") if m.role == "error"]
    assert len(errors) == 1


def test_backend_failure_still_frees_scope(canceller):
    canceller.error = RuntimeError("backend down")
    registry, timeline = OperationRegistry(), MessageTimeline()
    _start(registry, timeline)
    coordinator = CancellationCoordinator(
        registry=registry, timeline=timeline, cancel_backend=canceller
    )

    operation = _run(coordinator.cancel("chat"))

    assert operation.status is OperationStatus.CANCELLED
    assert registry.is_busy("chat") is False


def test_flag_is_set_before_backend_is_awaited(canceller):
    registry, timeline = OperationRegistry(), MessageTimeline()
    _start(registry, timeline)
    seen = {}

    def inspect_state():
        current = registry.current("chat")
        seen["cancel_requested"] = current.cancel_requested
        seen["loading"] = timeline.loading("chat")

    canceller.before_return = inspect_state
    coordinator = CancellationCoordinator(
        registry=registry, timeline=timeline, cancel_backend=canceller
    )

    _run(coordinator.cancel("chat"))

    assert seen == {"cancel_requested": True, "loading": ()}


def test_custom_message_without_backend():
    registry, timeline = OperationRegistry(), MessageTimeline()
    placeholder = _start(registry, timeline)
    coordinator = CancellationCoordinator(
        registry=registry, timeline=timeline, message="Stopped (cancelled)"
    )

    _run(coordinator.cancel("chat"))

    assert coordinator.message == "Stopped (cancelled)"
    assert timeline.get(placeholder).content == "Stopped (cancelled)"
