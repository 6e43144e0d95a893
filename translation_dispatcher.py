from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from time import perf_counter
from typing import Any, Callable, Final, Optional

from context_window import ContextWindow
from pending_queue import PendingQueue
from result_slot import ResultSlot
from text_normalizer import ends_with_eos
from translation_service import TEXT_MARKER, TranslationBackend, error_result, is_error_result

CONTEXT_OPEN: Final[str] = "<["
CONTEXT_CLOSE: Final[str] = "]>"
_TARGET_SENTENCE_RE: Final[re.Pattern[str]] = re.compile(r"<\[([^\]]+)\]>")


@dataclass(frozen=True)
class DispatchOutcome:
    original_text: str
    request_text: str
    translated_text: str
    is_complete: bool
    used_context: bool
    is_error: bool
    latency_s: float


class TranslationDispatcher:
    """Single-flight consumer of the pending queue.

    The pipeline's worker awaits ``dispatch_next`` in a loop, so calls never
    overlap. ``dispatch_once`` is for direct callers: it never waits for input,
    and a call made while another is still awaiting the backend returns
    immediately.
    """

    def __init__(
        self,
        pending: PendingQueue,
        slot: ResultSlot,
        context_window: ContextWindow,
        backend: TranslationBackend,
        target_language: str = "en",
        context_aware: bool = False,
        context_count: int = 3,
        backend_settings: Optional[dict[str, Any]] = None,
        log_callback: Optional[Callable[[str], None]] = None,
    ) -> None:
        self._pending = pending
        self._slot = slot
        self._context_window = context_window
        self._backend = backend
        self.target_language = target_language
        self.context_aware = context_aware
        self.context_count = context_count
        self._backend_settings = backend_settings or {}
        self._log = log_callback or (lambda _message: None)
        self._cancel_event = asyncio.Event()
        self._in_flight = False
        self.last_original_text = ""

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def set_cancel_event(self, cancel_event: asyncio.Event) -> None:
        self._cancel_event = cancel_event

    def reset(self) -> None:
        self.last_original_text = ""

    async def dispatch_once(self) -> Optional[DispatchOutcome]:
        """Translate the next pending sentence if one is ready and nothing is in flight."""
        if self._in_flight or self._cancel_event.is_set():
            return None
        original_text = self._pending.get_nowait()
        if original_text is None:
            return None
        return await self._run(original_text)

    async def dispatch_next(self) -> Optional[DispatchOutcome]:
        """Wait for the next pending sentence and translate it."""
        original_text = await self._pending.get()
        if self._cancel_event.is_set():
            return None
        return await self._run(original_text)

    def build_request(self, original_text: str) -> tuple[str, bool]:
        if not self.context_aware:
            return original_text, False
        previous_context = self._context_window.get_previous_context(self.context_count)
        if not previous_context:
            return original_text, False
        self._log(f"[CONTEXT] Using context: '{previous_context}'")
        return f"{previous_context} {CONTEXT_OPEN}{original_text}{CONTEXT_CLOSE}", True

    @staticmethod
    def extract_target(translated_text: str) -> Optional[str]:
        match = _TARGET_SENTENCE_RE.search(translated_text)
        if match is None:
            return None
        extracted = match.group(1).strip()
        return extracted or None

    async def _run(self, original_text: str) -> DispatchOutcome:
        self._in_flight = True
        try:
            return await self._dispatch(original_text)
        finally:
            self._in_flight = False

    async def _dispatch(self, original_text: str) -> DispatchOutcome:
        self.last_original_text = original_text
        self._log(f"[TRANSLATE_START] Original: '{original_text}', Target: {self.target_language}")
        request_text, used_context = self.build_request(original_text)
        is_complete = ends_with_eos(original_text)
        started = perf_counter()
        logging.debug("dispatch_start original=%r context=%s", original_text[:80], used_context)
        try:
            translated = await self._backend(
                request_text,
                self.target_language,
                self._cancel_event,
                self._backend_settings,
            )
            if self._cancel_event.is_set():
                raise asyncio.CancelledError()
            translated = (translated or "").replace(TEXT_MARKER, "").strip()
            if used_context:
                extracted = self.extract_target(translated)
                if extracted is not None:
                    translated = extracted
                    self._log(f"[CONTEXT] Extracted translation: '{translated}'")
                else:
                    logging.debug("context_extraction_failed result=%r", translated[:80])
            self._log(f"[TRANSLATE_API] Result: '{translated}'")
            is_error = is_error_result(translated)
            if is_error:
                logging.warning("dispatch_backend_error original=%r result=%r", original_text[:80], translated)
            else:
                self._context_window.add_context(original_text, translated, self.target_language)
        except asyncio.CancelledError:
            logging.debug("dispatch_cancelled original=%r", original_text[:80])
            raise
        except Exception as exc:  # noqa: BLE001 - dispatch boundary
            translated = error_result(f"Translation Failed: {exc}")
            is_error = True
            self._log(f"[TRANSLATE_ERROR] {translated}")
            logging.warning("dispatch_failed original=%r error=%s", original_text[:80], exc)

        self._slot.publish(translated, is_complete)
        return DispatchOutcome(
            original_text=original_text,
            request_text=request_text,
            translated_text=translated,
            is_complete=is_complete,
            used_context=used_context,
            is_error=is_error,
            latency_s=perf_counter() - started,
        )
