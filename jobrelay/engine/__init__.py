"""Asynchronous operation correlation engine."""

from .cancellation import CancellationCoordinator
from .controller import ScopeController
from .errors import (
    DropReason,
    EngineError,
    OperationStateError,
    TransportError,
    ValidationError,
)
from .ids import RequestIdGenerator
from .normalizer import (
    CanonicalResult,
    ProgressEvent,
    extract_request_id,
    normalize_progress,
    normalize_response,
)
from .operations import Operation, OperationRegistry, OperationStatus
from .progress import ProgressRelay
from .state import AssistantEngine
from .timeline import Message, MessageTimeline
from .transport import EventTransport, LocalEventBus

__all__ = [
    "AssistantEngine",
    "CancellationCoordinator",
    "CanonicalResult",
    "DropReason",
    "EngineError",
    "EventTransport",
    "LocalEventBus",
    "Message",
    "MessageTimeline",
    "Operation",
    "OperationRegistry",
    "OperationStateError",
    "OperationStatus",
    "ProgressEvent",
    "ProgressRelay",
    "RequestIdGenerator",
    "ScopeController",
    "TransportError",
    "ValidationError",
    "extract_request_id",
    "normalize_progress",
    "normalize_response",
]
