"""Identifier generation for requests and timeline messages."""

from __future__ import annotations

import itertools
import secrets
import string
from collections.abc import Callable

from ..util.time import epoch_millis

_ALPHABET = string.digits + string.ascii_lowercase


def _random_suffix(length: int) -> str:
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


class RequestIdGenerator:
    """Mint identifiers of the form ``<prefix>_req_<millis>_<random>``.

    The random suffix mirrors the ids the backend already logs; a
    per-generator counter is mixed into it so two ids minted within the
    same millisecond still differ even with a degenerate random source.
    """

    def __init__(
        self,
        prefix: str,
        *,
        clock: Callable[[], int] = epoch_millis,
        suffix_length: int = 9,
    ) -> None:
        cleaned = prefix.strip()
        if not cleaned:
            raise ValueError("request id prefix must not be empty")
        self._prefix = cleaned
        self._clock = clock
        self._suffix_length = suffix_length
        self._counter = itertools.count(1)
        self._millis: int | None = None
        self._issued: set[str] = set()

    @property
    def prefix(self) -> str:
        return self._prefix

    def next_id(self) -> str:
        millis = self._clock()
        if millis != self._millis:
            # Only ids of the current millisecond can collide.
            self._millis = millis
            self._issued.clear()
        while True:
            sequence = next(self._counter)
            suffix = _random_suffix(self._suffix_length)
            candidate = f"{self._prefix}_req_{millis}_{suffix}"
            if candidate in self._issued:
                candidate = f"{candidate}{sequence}"
            if candidate not in self._issued:
                self._issued.add(candidate)
                return candidate

    __call__ = next_id


def new_message_id() -> str:
    """Return an identifier for a timeline message."""
    return f"msg_{epoch_millis()}_{_random_suffix(5)}_{secrets.token_hex(2)}"


__all__ = ["RequestIdGenerator", "new_message_id"]
