"""
Progress Events Module

Event types emitted by connector operations and the sink interface used
to receive them.
"""

import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from threading import RLock
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Progress events exposed to callers."""
    PREPARE = "prepare"
    CREATE_PROJECT = "create-project"
    RETRIEVE = "retrieve"
    PROCESS = "process"
    LOADING_LOCAL = "loading-local"
    LOADING_ORG = "loading-org"
    COPY_DATA = "copy-data"
    COPY_FILE = "copy-file"
    COMPRESS_FILE = "compress-file"
    BEFORE_DOWNLOAD_TYPE = "before-download-type"
    AFTER_DOWNLOAD_TYPE = "after-download-type"
    BEFORE_DOWNLOAD_OBJECT = "before-download-object"
    AFTER_DOWNLOAD_OBJECT = "after-download-object"
    DOWNLOAD_ERROR = "download-error"
    ABORT = "abort"


@dataclass(frozen=True)
class ProgressEvent:
    """One progress notification."""
    type: EventType
    increment: float = 0.0
    percentage: float = 0.0
    operation: str = ""
    entity_name: Optional[str] = None
    entity_type: Optional[str] = None
    entity_item: Optional[str] = None
    payload: Any = None


class ProgressSink(ABC):
    """Receiver of progress events."""

    @abstractmethod
    def on_event(self, event: ProgressEvent) -> None:
        """Handle one event."""
        pass


class RecordingSink(ProgressSink):
    """Sink that keeps every event it receives, in arrival order."""

    def __init__(self) -> None:
        self._lock = RLock()
        self.events: List[ProgressEvent] = []

    def on_event(self, event: ProgressEvent) -> None:
        with self._lock:
            self.events.append(event)

    def of_type(self, event_type: EventType) -> List[ProgressEvent]:
        with self._lock:
            return [e for e in self.events if e.type == event_type]

    def types(self) -> List[EventType]:
        with self._lock:
            return [e.type for e in self.events]

    def clear(self) -> None:
        with self._lock:
            self.events.clear()


class CallbackSink(ProgressSink):
    """
    Sink dispatching events to callables registered per event type.

    Usage:
        sink = CallbackSink()
        sink.on(EventType.AFTER_DOWNLOAD_TYPE, lambda e: print(e.entity_type))
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._callbacks: Dict[EventType, List[Callable[[ProgressEvent], None]]] = defaultdict(list)

    def on(self, event_type: EventType, callback: Callable[[ProgressEvent], None]) -> "CallbackSink":
        with self._lock:
            self._callbacks[event_type].append(callback)
        return self

    def on_event(self, event: ProgressEvent) -> None:
        with self._lock:
            callbacks = list(self._callbacks.get(event.type, []))
        for callback in callbacks:
            callback(event)
