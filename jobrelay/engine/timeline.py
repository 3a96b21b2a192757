"""Ordered conversation entries and placeholder bookkeeping."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from typing import Any, Literal

from ..util.signals import Signal
from ..util.time import utc_now_iso
from .ids import new_message_id

logger = logging.getLogger(__name__)

Role = Literal["user", "assistant", "system", "error"]

_ROLES: frozenset[str] = frozenset({"user", "assistant", "system", "error"})


@dataclass(slots=True)
class Message:
    """One entry of a scope's conversation."""

    id: str
    scope: str
    role: Role
    content: str
    timestamp: str = field(default_factory=utc_now_iso)
    is_loading: bool = False
    request_id: str | None = None
    processing_time: float | None = None
    meta: dict[str, Any] = field(default_factory=dict)


_MESSAGE_FIELDS = frozenset(f.name for f in fields(Message))
_IMMUTABLE_FIELDS = frozenset({"id", "scope"})


def _check_role(role: str) -> None:
    if role not in _ROLES:
        raise ValueError(f"unknown message role: {role!r}")


class MessageTimeline:
    """Hold messages for every scope in submission order.

    Placeholders are regular messages with ``is_loading`` set; they are
    rewritten in place when their operation finishes so the reader never
    sees a duplicate entry.
    """

    def __init__(self) -> None:
        self._messages: dict[str, list[Message]] = {}
        self.changed = Signal()
        self.cleared = Signal()

    # ------------------------------------------------------------------
    def append(
        self,
        role: Role,
        content: str,
        *,
        scope: str,
        is_loading: bool = False,
        request_id: str | None = None,
        processing_time: float | None = None,
        timestamp: str | None = None,
        message_id: str | None = None,
        **meta: Any,
    ) -> str:
        """Add a message to *scope* and return its identifier."""
        _check_role(role)
        message = Message(
            id=message_id or new_message_id(),
            scope=scope,
            role=role,
            content=content,
            timestamp=timestamp or utc_now_iso(),
            is_loading=is_loading,
            request_id=request_id,
            processing_time=processing_time,
            meta=dict(meta),
        )
        self._messages.setdefault(scope, []).append(message)
        self.changed.emit(message)
        return message.id

    # ------------------------------------------------------------------
    def get(self, message_id: str) -> Message | None:
        for messages in self._messages.values():
            for message in messages:
                if message.id == message_id:
                    return message
        return None

    # ------------------------------------------------------------------
    def messages(self, scope: str) -> tuple[Message, ...]:
        return tuple(self._messages.get(scope, ()))

    # ------------------------------------------------------------------
    def loading(self, scope: str) -> tuple[Message, ...]:
        return tuple(m for m in self._messages.get(scope, ()) if m.is_loading)

    # ------------------------------------------------------------------
    def find_placeholder(self, scope: str, request_id: str | None) -> Message | None:
        """Return the loading message tagged with *request_id* in *scope*."""
        if request_id is None:
            return None
        for message in self._messages.get(scope, ()):
            if message.is_loading and message.request_id == request_id:
                return message
        return None

    # ------------------------------------------------------------------
    def update(self, message_id: str, **changes: Any) -> Message | None:
        """Merge *changes* into the message, keeping its timestamp unless given."""
        message = self.get(message_id)
        if message is None:
            return None
        self._merge(message, changes)
        self.changed.emit(message)
        return message

    # ------------------------------------------------------------------
    def replace_placeholder(
        self,
        scope: str,
        request_id: str | None,
        updates: Mapping[str, Any],
    ) -> Message:
        """Finalize the placeholder for *request_id*.

        Looks for the loading message carrying *request_id*, then for any
        loading message of *scope* (the id may have been lost on the way),
        and finally appends a new terminal message so a result is never
        silently discarded.
        """
        message = self.find_placeholder(scope, request_id)
        if message is None:
            loading = self.loading(scope)
            if loading:
                message = loading[0]
                logger.warning(
                    "No placeholder tagged %s in scope %s; using loading message %s",
                    request_id,
                    scope,
                    message.id,
                )
        if message is None:
            logger.warning(
                "No loading message in scope %s for %s; appending result", scope, request_id
            )
            changes = {
                k: v for k, v in updates.items() if k not in _IMMUTABLE_FIELDS
            }
            changes["is_loading"] = False
            changes.setdefault("request_id", request_id)
            role = changes.pop("role", "assistant")
            content = changes.pop("content", "")
            meta = dict(changes.pop("meta", None) or {})
            meta.update({k: changes.pop(k) for k in list(changes) if k not in _MESSAGE_FIELDS})
            message_id = self.append(role, content, scope=scope, **changes, **meta)
            created = self.get(message_id)
            assert created is not None
            return created
        self._merge(message, dict(updates))
        self.changed.emit(message)
        return message

    # ------------------------------------------------------------------
    def clear(self, scope: str) -> None:
        """Drop every message of *scope* and notify listeners."""
        removed = self._messages.pop(scope, [])
        logger.info("Cleared %d message(s) from scope %s", len(removed), scope)
        self.cleared.emit(scope)

    # ------------------------------------------------------------------
    @staticmethod
    def _merge(message: Message, changes: dict[str, Any]) -> None:
        forbidden = _IMMUTABLE_FIELDS & changes.keys()
        if forbidden:
            raise ValueError(f"message fields cannot be changed: {sorted(forbidden)}")
        if "role" in changes:
            _check_role(changes["role"])
        if changes.get("timestamp") is None:
            changes.pop("timestamp", None)
        meta_updates = changes.pop("meta", None) or {}
        extra = {k: changes.pop(k) for k in list(changes) if k not in _MESSAGE_FIELDS}
        for name, value in changes.items():
            setattr(message, name, value)
        if meta_updates or extra:
            message.meta = {**message.meta, **dict(meta_updates), **extra}


def snapshot(message: Message) -> Message:
    """Return a detached copy of *message* safe to hand to observers."""
    return replace(message, meta=dict(message.meta))


__all__ = ["Message", "MessageTimeline", "Role", "snapshot"]
