from __future__ import annotations

import logging
from dataclasses import dataclass

from pending_queue import PendingQueue
from text_normalizer import SHORT_THRESHOLD, ends_with_eos, rfind_eos, utf8_len


@dataclass
class BufferedFragment:
    current_text: str = ""
    idle_count: int = 0
    sync_count: int = 0

    def clear(self) -> None:
        self.current_text = ""
        self.idle_count = 0
        self.sync_count = 0


class SentenceBuffer:
    """Decides when an evolving caption is stable enough to translate.

    Frequency control:
    - ``idle_count`` grows while the caption stays unchanged.
    - ``sync_count`` grows while the caption changes without reaching a
      sentence end (only once it is at least SHORT_THRESHOLD bytes long).

    A caption is pushed to the pending queue when it ends in sentence
    punctuation (immediately, from ``process_text``), or from
    ``should_translate`` once ``sync_count`` exceeds the sync interval or
    ``idle_count`` reaches the idle interval.

    Not synchronized: the owner must call ``process_text`` and
    ``should_translate`` from one logical thread of control.
    """

    def __init__(self, pending: PendingQueue) -> None:
        self._pending = pending
        self.state = BufferedFragment()

    @property
    def current_text(self) -> str:
        return self.state.current_text

    @property
    def idle_count(self) -> int:
        return self.state.idle_count

    @property
    def sync_count(self) -> int:
        return self.state.sync_count

    def process_text(self, full_text: str) -> bool:
        """Merge the latest normalized caption; returns True if it flushed."""
        if not full_text:
            return False
        caption = self.latest_caption(full_text)
        state = self.state
        if caption == state.current_text:
            state.idle_count += 1
            return False

        state.current_text = caption
        state.idle_count = 0
        if ends_with_eos(caption):
            state.sync_count = 0
            self._flush()
            return True
        if utf8_len(caption) >= SHORT_THRESHOLD:
            state.sync_count += 1
        return False

    def should_translate(self, max_sync_interval: int, max_idle_interval: int) -> bool:
        state = self.state
        if state.sync_count > max_sync_interval or state.idle_count == max_idle_interval:
            state.sync_count = 0
            state.idle_count = 0
            if state.current_text:
                logging.debug("buffer_forced_flush text=%r", state.current_text[:80])
                self._flush()
                return True
        return False

    def reset(self) -> None:
        self.state.clear()

    @staticmethod
    def latest_caption(full_text: str) -> str:
        """Cut the newest sentence out of the recognizer's full caption."""
        if ends_with_eos(full_text):
            last_eos = rfind_eos(full_text[:-1])
        else:
            last_eos = rfind_eos(full_text)
        latest = full_text[last_eos + 1 :]

        # Recognizers sometimes emit a tiny trailing fragment; pull in the
        # sentence before it.
        if last_eos > 0 and utf8_len(latest) < SHORT_THRESHOLD:
            last_eos = rfind_eos(full_text[:last_eos])
            latest = full_text[last_eos + 1 :]

        # Keep only complete sentences when the segment has any.
        tail_eos = rfind_eos(latest)
        if tail_eos != -1:
            latest = latest[: tail_eos + 1]
        return latest.strip()

    def _flush(self) -> None:
        self._pending.put(self.state.current_text)
        self.state.current_text = ""
