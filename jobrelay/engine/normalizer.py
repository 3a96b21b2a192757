"""Normalisation of loosely typed backend payloads.

The backend emits responses and progress updates whose field names vary in
casing (``success`` vs ``Success``, ``requestId`` vs ``RequestID``) and whose
values are not reliably typed.  Every lookup of a raw field goes through this
module so the rest of the engine only ever sees :class:`CanonicalResult` and
:class:`ProgressEvent` instances.

Classification of a response follows a fixed precedence:

1. the ``success`` flag; for plain string payloads it is inferred from the
   text, which counts as a success unless it carries one of
   :data:`FAILURE_SENTINELS`; for mappings an absent flag is inferred
   ``True``;
2. ``result``, ``error`` and ``processingTime`` are extracted;
3. a "successful" response with a non-empty error, or with a blank result,
   is downgraded to a failure so an empty answer never renders as a silent
   blank message.

Anything that is neither a mapping nor a string yields
:data:`INVALID_RESPONSE`.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from ..util.strings import coerce_text, is_blank

logger = logging.getLogger(__name__)

INVALID_RESPONSE_MESSAGE = "Invalid response format"
NO_CONTENT_MESSAGE = "No content generated"

# Substrings the backend writes into its textual result when a job fails.
FAILURE_SENTINELS: tuple[str, ...] = ("Error:", "cancelled")

REQUEST_ID_KEYS: tuple[str, ...] = ("requestId", "RequestID", "requestID", "request_id")
SUCCESS_KEYS: tuple[str, ...] = ("success", "Success")
RESULT_KEYS: tuple[str, ...] = ("result", "Result", "response")
ERROR_KEYS: tuple[str, ...] = ("error", "Error", "errorMessage")
PROCESSING_TIME_KEYS: tuple[str, ...] = ("processingTime", "ProcessingTime", "processing_time")
PROGRESS_KEYS: tuple[str, ...] = ("progress", "Progress")
STATUS_KEYS: tuple[str, ...] = ("status", "Status")
MESSAGE_KEYS: tuple[str, ...] = ("message", "Message")

_MISSING = object()


@dataclass(frozen=True, slots=True)
class CanonicalResult:
    """Backend response reduced to a single well-typed shape."""

    success: bool
    result: str
    error: str
    processing_time: float | None = None

    def failure_reason(self, default: str) -> str:
        """Return the most specific failure description available."""
        for candidate in (self.error, self.result):
            if not is_blank(candidate):
                return candidate.strip()
        return default


INVALID_RESPONSE = CanonicalResult(
    success=False,
    result=INVALID_RESPONSE_MESSAGE,
    error=INVALID_RESPONSE_MESSAGE,
    processing_time=None,
)


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    """Latest progress snapshot reported for a request.

    ``has_progress`` is ``False`` when the payload carried no usable
    percentage and ``progress`` only holds the default of ``0``.
    """

    request_id: str
    progress: int
    message: str = ""
    status: str = ""
    has_progress: bool = True


def _lookup(payload: Mapping[str, Any], keys: Sequence[str]) -> Any:
    for key in keys:
        if key in payload:
            value = payload[key]
            if value is not None:
                return value
    return _MISSING


def _as_text(value: Any) -> str:
    if value is _MISSING or value is None:
        return ""
    if isinstance(value, str):
        return value
    return coerce_text(value, allow_empty=True, fallback="") or ""


def _as_flag(value: Any) -> bool | None:
    if value is _MISSING:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "1", "yes"}:
            return True
        if lowered in {"false", "0", "no", ""}:
            return False
    if isinstance(value, (int, float)):
        return value != 0
    return False


def _as_number(value: Any) -> float | None:
    if value is _MISSING or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number) or number < 0:
        return None
    return number


def extract_request_id(payload: Any) -> str | None:
    """Return the request identifier carried by *payload*, if any."""
    if not isinstance(payload, Mapping):
        return None
    value = _lookup(payload, REQUEST_ID_KEYS)
    text = _as_text(value).strip()
    return text or None


def _classify_text(payload: str) -> CanonicalResult:
    failed = any(marker in payload for marker in FAILURE_SENTINELS)
    if failed:
        return CanonicalResult(success=False, result=payload, error=payload)
    return _apply_postconditions(True, payload, "", None)


def _apply_postconditions(
    success: bool,
    result: str,
    error: str,
    processing_time: float | None,
) -> CanonicalResult:
    if success and not is_blank(error):
        success = False
        result = error
    elif success and is_blank(result):
        success = False
        result = error if not is_blank(error) else NO_CONTENT_MESSAGE
        error = error or result
    return CanonicalResult(
        success=success,
        result=result,
        error=error,
        processing_time=processing_time,
    )


def _classify_mapping(payload: Mapping[str, Any]) -> CanonicalResult:
    flag = _as_flag(_lookup(payload, SUCCESS_KEYS))
    success = True if flag is None else flag
    result = _as_text(_lookup(payload, RESULT_KEYS))
    error = _as_text(_lookup(payload, ERROR_KEYS))
    processing_time = _as_number(_lookup(payload, PROCESSING_TIME_KEYS))
    return _apply_postconditions(success, result, error, processing_time)


def normalize_response(payload: Any) -> CanonicalResult:
    """Return the canonical classification of a raw response payload.

    Never raises: unexpected shapes map to :data:`INVALID_RESPONSE`.
    """
    try:
        if isinstance(payload, str):
            return _classify_text(payload)
        if isinstance(payload, Mapping):
            return _classify_mapping(payload)
    except Exception:  # pragma: no cover
        logger.exception("Failed to normalise backend response")
    return INVALID_RESPONSE


def normalize_progress(payload: Any) -> ProgressEvent | None:
    """Return a :class:`ProgressEvent` for *payload* or ``None`` when unusable."""
    if not isinstance(payload, Mapping):
        return None
    try:
        request_id = extract_request_id(payload)
        if request_id is None:
            return None
        raw_progress = _as_number(_lookup(payload, PROGRESS_KEYS))
        progress = 0 if raw_progress is None else int(min(raw_progress, 100.0))
        return ProgressEvent(
            request_id=request_id,
            progress=progress,
            has_progress=raw_progress is not None,
            message=_as_text(_lookup(payload, MESSAGE_KEYS)),
            status=_as_text(_lookup(payload, STATUS_KEYS)),
        )
    except Exception:  # pragma: no cover
        logger.exception("Failed to normalise progress payload")
        return None


__all__ = [
    "CanonicalResult",
    "FAILURE_SENTINELS",
    "INVALID_RESPONSE",
    "INVALID_RESPONSE_MESSAGE",
    "NO_CONTENT_MESSAGE",
    "ProgressEvent",
    "extract_request_id",
    "normalize_progress",
    "normalize_response",
]
