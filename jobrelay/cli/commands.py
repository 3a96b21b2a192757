"""Command implementations for the CLI interface."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from dataclasses import asdict, dataclass
from typing import Callable

from jobrelay.backend.simulator import SimulatedBackend
from jobrelay.engine import AssistantEngine, LocalEventBus, ValidationError, normalize_response
from jobrelay.settings import EngineSettings


@dataclass
class Command:
    """Describe a CLI command and its argument handler."""

    func: Callable[[argparse.Namespace], int]
    help: str
    add_arguments: Callable[[argparse.ArgumentParser], None]


def _settings(args: argparse.Namespace) -> EngineSettings:
    settings = getattr(args, "engine_settings", None)
    return settings if isinstance(settings, EngineSettings) else EngineSettings()


async def _ask(args: argparse.Namespace) -> int:
    settings = _settings(args)
    bus = LocalEventBus()
    backend = SimulatedBackend(bus, settings=settings, step_delay=args.step_delay)
    engine = AssistantEngine(
        transport=bus,
        cancel_backend=backend.cancel_job,
        settings=settings,
    )
    backend.start()
    scope = args.scope or settings.default_scope

    def on_progress(change: tuple[str, object]) -> None:
        changed_scope, event = change
        if changed_scope == scope and event is not None:
            sys.stdout.write(f"[{event.progress:3d}%] {event.status}: {event.message}\n")

    engine.relay.changed.connect(on_progress)
    try:
        request_id = engine.submit(args.text, scope=scope)
    except ValidationError as exc:
        sys.stderr.write(f"{exc}\n")
        return 2
    if request_id is None:
        sys.stderr.write("request was not dispatched\n")
    elif args.cancel_after is not None:
        await asyncio.sleep(args.cancel_after)
        await engine.cancel(scope)
    await backend.drain()
    engine.shutdown()
    backend.stop()

    for message in engine.messages(scope):
        suffix = ""
        if message.processing_time is not None:
            suffix = f" ({message.processing_time:.0f} ms)"
        sys.stdout.write(f"{message.role}: {message.content}{suffix}\n")
    last = engine.registry.last(scope)
    if last is None:
        return 1
    return 0 if last.status.value == "completed" else 1


def cmd_ask(args: argparse.Namespace) -> int:
    """Run *text* through the engine against the simulated backend."""

    return asyncio.run(_ask(args))


def add_ask_arguments(p: argparse.ArgumentParser) -> None:
    """Configure parser for the ``ask`` command."""
    p.add_argument("text", help="text to submit")
    p.add_argument("--scope", help="scope to submit to (defaults to the configured scope)")
    p.add_argument(
        "--cancel-after",
        type=float,
        default=None,
        metavar="SECONDS",
        help="cancel the request after the given delay",
    )
    p.add_argument(
        "--step-delay",
        type=float,
        default=0.05,
        metavar="SECONDS",
        help="delay between simulated progress stages",
    )


def cmd_normalize(args: argparse.Namespace) -> int:
    """Print the canonical form of a raw backend response."""

    raw = args.payload if args.payload is not None else sys.stdin.read()
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        payload = raw
    result = normalize_response(payload)
    json.dump(asdict(result), sys.stdout, ensure_ascii=False)
    sys.stdout.write("\n")
    return 0 if result.success else 1


def add_normalize_arguments(p: argparse.ArgumentParser) -> None:
    """Configure parser for the ``normalize`` command."""
    p.add_argument(
        "payload",
        nargs="?",
        help="JSON payload (read from stdin when omitted); non-JSON text is used as is",
    )


COMMANDS: dict[str, Command] = {
    "ask": Command(cmd_ask, "submit text to the simulated backend", add_ask_arguments),
    "normalize": Command(cmd_normalize, "normalize a backend response", add_normalize_arguments),
}
