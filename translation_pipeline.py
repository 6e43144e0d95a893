from __future__ import annotations

import asyncio
import logging
import threading
from collections import deque
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from config_utils import PipelineConfig
from context_window import ContextWindow
from display_pacer import DisplayPacer
from events import EventChannel, PipelineFault, TranslationEvent
from metrics_reporter import SessionMetricsReporter
from pending_queue import PendingQueue
from result_slot import ResultSlot
from sentence_buffer import SentenceBuffer
from text_normalizer import normalize
from translation_dispatcher import TranslationDispatcher
from translation_service import CONTEXT_AWARE_APIS, TranslationBackend, create_backend


class CaptionKind(Enum):
    PARTIAL_UPDATE = "TextChanged"
    SENTENCE_COMPLETE = "SentenceDone"


class TranslationPipeline:
    """Recognizer captions in, paced and de-duplicated translations out.

    Three workers run on the event loop while the pipeline is started:

    - buffer worker: forces flushes of unpunctuated captions (sync/idle rules)
    - dispatch worker: awaits the pending queue and translates one sentence at a time
    - display worker: shows the newest translation, pausing after full sentences

    ``feed`` is synchronous and must be called from the loop's thread.
    """

    HISTORY_MAX_ENTRIES = 1000

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        backend: Optional[TranslationBackend] = None,
        metrics_reporter: Optional[SessionMetricsReporter] = None,
    ) -> None:
        self.config = config or PipelineConfig()
        self._backend_override = backend
        self.pending = PendingQueue(self.config.pending_queue_maxsize)
        self.result_slot = ResultSlot()
        self.context_window = ContextWindow(self.config.context_capacity)
        self.buffer = SentenceBuffer(self.pending)
        self.pacer = DisplayPacer(
            self.result_slot,
            on_display=self._on_translation_displayed,
            normal_delay_ms=self.config.display_interval_ms,
        )
        self.dispatcher: Optional[TranslationDispatcher] = None
        self.metrics_reporter = metrics_reporter or SessionMetricsReporter(enabled=True)
        self.translation_completed: EventChannel[TranslationEvent] = EventChannel("translation_completed")
        self.fault_occurred: EventChannel[PipelineFault] = EventChannel("fault_occurred")

        self._running = False
        self._tasks: list[asyncio.Task[None]] = []
        self._cancel_event: Optional[asyncio.Event] = None
        self._buffer_lock = threading.Lock()
        self._history: deque[str] = deque(maxlen=self.HISTORY_MAX_ENTRIES)
        self._history_lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def pending_count(self) -> int:
        return len(self.pending)

    @property
    def current_text(self) -> str:
        return self.buffer.current_text

    @property
    def last_displayed_text(self) -> str:
        return self.pacer.last_displayed_text

    @property
    def last_original_text(self) -> str:
        return self.dispatcher.last_original_text if self.dispatcher is not None else ""

    async def start(self) -> None:
        if self._running:
            raise RuntimeError("Translation pipeline is already running.")
        backend = self._backend_override or create_backend(self.config.api_name)
        context_aware = self.config.context_aware_enabled and (
            self._backend_override is not None or self.config.api_name in CONTEXT_AWARE_APIS
        )

        self._reset_state()
        self._cancel_event = asyncio.Event()
        self.dispatcher = TranslationDispatcher(
            self.pending,
            self.result_slot,
            self.context_window,
            backend,
            target_language=self.config.target_language,
            context_aware=context_aware,
            context_count=self.config.context_count,
            backend_settings=self._backend_settings(),
            log_callback=self._log_history,
        )
        self.dispatcher.set_cancel_event(self._cancel_event)
        self.metrics_reporter.start_session()

        self._running = True
        self._tasks = [
            asyncio.create_task(self._buffer_worker_loop(), name="buffer-worker"),
            asyncio.create_task(self._dispatch_worker_loop(), name="dispatch-worker"),
            asyncio.create_task(self._display_worker_loop(), name="display-worker"),
        ]
        logging.info(
            "pipeline_started api=%s target=%s context_aware=%s",
            self.config.api_name if self._backend_override is None else "custom",
            self.config.target_language,
            context_aware,
        )

    async def stop(self) -> None:
        was_running = self._running
        self._running = False
        if self._cancel_event is not None:
            self._cancel_event.set()

        try:
            tasks, self._tasks = self._tasks, []
            current = asyncio.current_task()
            for task in tasks:
                if task is not current:
                    task.cancel()
            for task in tasks:
                if task is current:
                    continue
                try:
                    await task
                except asyncio.CancelledError:
                    pass
                except Exception as exc:  # noqa: BLE001 - shutdown boundary
                    self._report_fault("stop", exc)

            if was_running:
                try:
                    summary = self.metrics_reporter.finalize_session(
                        dropped_pending=self.pending.dropped,
                        overwritten_results=self.result_slot.overwritten,
                    )
                except Exception as exc:  # noqa: BLE001 - metrics boundary
                    self._report_fault("metrics", exc)
                else:
                    logging.info("pipeline_stopped summary=%s", summary)
        finally:
            self._reset_state()
            self._cancel_event = None

    def feed(self, text: str, kind: CaptionKind = CaptionKind.PARTIAL_UPDATE) -> None:
        if not self._running:
            return
        if not text or not text.strip():
            return
        try:
            normalized = normalize(text, kind is CaptionKind.SENTENCE_COMPLETE)
            self._log_history(f"[INPUT] {kind.value}: '{normalized}' -> Target: {self.config.target_language}")
            with self._buffer_lock:
                self.buffer.process_text(normalized)
        except Exception as exc:  # noqa: BLE001 - caption boundary
            logging.exception("feed_failed text=%r", text[:80])
            self._report_fault("feed", exc)

    def history_log(self) -> str:
        with self._history_lock:
            return "\n".join(self._history)

    async def _buffer_worker_loop(self) -> None:
        interval_s = self.config.sync_interval_ms / 1000.0
        while self._running:
            try:
                with self._buffer_lock:
                    self.buffer.should_translate(self.config.max_sync_interval, self.config.max_idle_interval)
            except Exception as exc:  # noqa: BLE001 - worker boundary
                self._report_fault("buffer", exc)
            await asyncio.sleep(interval_s)

    async def _dispatch_worker_loop(self) -> None:
        # Minimum gap between backend calls.
        interval_s = self.config.translate_interval_ms / 1000.0
        dispatcher = self.dispatcher
        if dispatcher is None:
            return
        while self._running:
            try:
                outcome = await dispatcher.dispatch_next()
                if outcome is None:
                    continue
                self.metrics_reporter.record_dispatch(
                    original_text=outcome.original_text,
                    latency_s=outcome.latency_s,
                    is_error=outcome.is_error,
                    used_context=outcome.used_context,
                    pending_backlog=len(self.pending),
                )
                await asyncio.sleep(interval_s)
            except asyncio.CancelledError:
                break
            except Exception as exc:  # noqa: BLE001 - worker boundary
                self._report_fault("dispatch", exc)

    async def _display_worker_loop(self) -> None:
        while self._running:
            try:
                delay_ms = self.pacer.tick()
            except Exception as exc:  # noqa: BLE001 - worker boundary
                self._report_fault("display", exc)
                delay_ms = self.config.display_interval_ms
            await asyncio.sleep(delay_ms / 1000.0)

    def _on_translation_displayed(self, translated_text: str) -> None:
        self._log_history(f"[OUTPUT] Translated: '{translated_text}'")
        event = TranslationEvent(
            original_text=self.last_original_text,
            translated_text=translated_text,
            source_language=self.config.source_language,
            target_language=self.config.target_language,
        )
        self.translation_completed.emit(event)

    def _report_fault(self, stage: str, exc: Exception) -> None:
        logging.warning("pipeline_fault stage=%s error=%s", stage, exc)
        try:
            self.metrics_reporter.record_fault(stage, str(exc), len(self.pending))
        except Exception:  # noqa: BLE001 - metrics boundary
            logging.exception("metrics_record_failed stage=%s", stage)
        self.fault_occurred.emit(PipelineFault(stage=stage, error=exc))

    def _backend_settings(self) -> dict[str, Any]:
        settings = dict(self.config.backend_settings)
        settings.setdefault("source_language", self.config.source_language)
        return settings

    def _reset_state(self) -> None:
        self.pending.clear()
        self.result_slot.clear()
        self.context_window.clear()
        with self._buffer_lock:
            self.buffer.reset()
        self.pacer.reset()
        if self.dispatcher is not None:
            self.dispatcher.reset()

    def _log_history(self, message: str) -> None:
        stamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
        with self._history_lock:
            self._history.append(f"[{stamp}] {message}")
        logging.debug("history %s", message)
