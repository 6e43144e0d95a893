from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ResultValue:
    translated_text: str = ""
    is_complete: bool = False


EMPTY_RESULT = ResultValue()


class ResultSlot:
    """Single-slot, latest-wins handoff from the dispatcher to the display pacer.

    A publish overwrites any value not consumed yet. If the pacer lags by
    more than one publish, a completed sentence can be superseded before it
    is shown; ``overwritten`` counts those cases.
    """

    def __init__(self) -> None:
        self._value: Optional[ResultValue] = None
        self._lock = threading.Lock()
        self.overwritten = 0

    @property
    def has_value(self) -> bool:
        with self._lock:
            return self._value is not None

    def publish(self, translated_text: str, is_complete: bool) -> None:
        with self._lock:
            if self._value is not None:
                self.overwritten += 1
            self._value = ResultValue(translated_text, is_complete)

    def consume(self) -> ResultValue:
        with self._lock:
            value, self._value = self._value, None
        return value if value is not None else EMPTY_RESULT

    def clear(self) -> None:
        with self._lock:
            self._value = None
            self.overwritten = 0
