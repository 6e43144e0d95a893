from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class TranslationEvent:
    original_text: str
    translated_text: str
    source_language: str
    target_language: str
    timestamp: datetime = field(default_factory=datetime.now)


class EventChannel(Generic[T]):
    """Explicit subscription list; ``subscribe`` returns the unsubscribe handle."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._subscribers: list[Callable[[T], None]] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return _unsubscribe

    def emit(self, payload: T) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(payload)
            except Exception:  # noqa: BLE001 - subscriber boundary
                logging.exception("event_subscriber_failed channel=%s", self.name)


@dataclass(frozen=True)
class PipelineFault:
    stage: str
    error: Exception
    timestamp: datetime = field(default_factory=datetime.now)
