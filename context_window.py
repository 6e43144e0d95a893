from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime

from text_normalizer import ensure_eos


@dataclass(frozen=True)
class ContextEntry:
    source_text: str
    translated_text: str
    target_language: str
    timestamp: datetime = field(default_factory=datetime.now)


class ContextWindow:
    """Recent (source, translation) pairs used to give the backend context.

    Written by the dispatcher and readable from any thread, so every access
    goes through one lock.
    """

    DEFAULT_CAPACITY = 6

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("Context window capacity must be at least 1.")
        self._capacity = capacity
        self._entries: deque[ContextEntry] = deque()
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def count(self) -> int:
        with self._lock:
            return len(self._entries)

    def __len__(self) -> int:
        return self.count

    def add_context(self, source_text: str, translated_text: str, target_language: str) -> None:
        if not source_text or not translated_text:
            return
        with self._lock:
            if len(self._entries) >= self._capacity:
                self._entries.popleft()
            self._entries.append(ContextEntry(source_text, translated_text, target_language))

    def get_previous_context(self, count: int = 3) -> str:
        with self._lock:
            if not self._entries or count <= 0:
                return ""
            recent = list(self._entries)[-min(count, len(self._entries)) :]
        return "".join(ensure_eos(entry.source_text) for entry in recent if entry.source_text)

    def entries(self) -> list[ContextEntry]:
        with self._lock:
            return list(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
