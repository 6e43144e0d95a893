from __future__ import annotations

import logging
from typing import Callable, Final, Optional

from result_slot import ResultSlot
from text_normalizer import strip_notice_prefix


class DisplayPacer:
    NORMAL_DELAY_MS: Final[int] = 40
    # Longer pause after a finished sentence so it can be read.
    CHOKE_DELAY_MS: Final[int] = 720

    def __init__(
        self,
        slot: ResultSlot,
        on_display: Optional[Callable[[str], None]] = None,
        normal_delay_ms: int = NORMAL_DELAY_MS,
        choke_delay_ms: int = CHOKE_DELAY_MS,
    ) -> None:
        self._slot = slot
        self._on_display = on_display
        self.normal_delay_ms = normal_delay_ms
        self.choke_delay_ms = choke_delay_ms
        self._last_displayed_text = ""

    @property
    def last_displayed_text(self) -> str:
        return self._last_displayed_text

    def tick(self) -> int:
        """Show the newest result if it is new; returns the delay before the next tick."""
        result = self._slot.consume()
        text = result.translated_text
        if not text:
            return self.normal_delay_ms
        # A result that is only a notice prefix has nothing to show.
        if not strip_notice_prefix(text):
            return self.normal_delay_ms
        if text == self._last_displayed_text:
            logging.debug("display_duplicate_skipped text=%r", text[:80])
            return self.normal_delay_ms

        self._last_displayed_text = text
        if self._on_display is not None:
            self._on_display(text)
        return self.choke_delay_ms if result.is_complete else self.normal_delay_ms

    def reset(self) -> None:
        self._last_displayed_text = ""
