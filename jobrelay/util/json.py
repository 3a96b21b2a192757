"""JSON serialisation helpers."""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from enum import Enum
from typing import Any

from .strings import coerce_text


def make_json_safe(
    value: Any,
    *,
    stringify_keys: bool = False,
    sort_sets: bool = True,
    default: Callable[[Any], str] | None = None,
    max_depth: int | None = None,
) -> Any:
    """Return a structure compatible with :func:`json.dumps`."""

    if default is None:
        default = repr

    def _describe(item: Any) -> str:
        return f"<unserialisable {type(item).__name__}>"

    def _convert(item: Any, depth: int) -> Any:
        if max_depth is not None and depth > max_depth:
            return "<max depth>"
        if isinstance(item, Enum):
            return _convert(item.value, depth)
        if isinstance(item, Mapping):
            result: dict[Any, Any] = {}
            for key, val in item.items():
                if stringify_keys and not isinstance(key, str):
                    key = coerce_text(key, fallback=_describe(key))
                result[key] = _convert(val, depth + 1)
            return result
        if isinstance(item, (list, tuple)):
            return [_convert(entry, depth + 1) for entry in item]
        if isinstance(item, (set, frozenset)):
            converted = [_convert(entry, depth + 1) for entry in item]
            if sort_sets:
                try:
                    converted.sort()
                except TypeError:
                    converted.sort(key=repr)
            return converted
        if isinstance(item, (str, int, float, bool)) or item is None:
            return item
        if isinstance(item, Sequence) and not isinstance(item, (bytes, bytearray)):
            return [_convert(entry, depth + 1) for entry in item]
        try:
            converted = default(item)
        except Exception:
            return _describe(item)
        if isinstance(converted, (str, int, float, bool)) or converted is None:
            return converted
        return coerce_text(converted, fallback=_describe(item))

    return _convert(value, 0)


__all__ = ["make_json_safe"]
