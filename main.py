from __future__ import annotations

import asyncio
import logging
import os
import sys
from typing import Optional

from dotenv import load_dotenv

from config_utils import PipelineConfig, read_bool_env, read_float_env
from events import PipelineFault, TranslationEvent
from metrics_reporter import SessionMetricsReporter
from translation_pipeline import CaptionKind, TranslationPipeline


class ConsoleCaptionController:
    """Feeds stdin lines to a pipeline and prints the translations.

    A non-empty line is the recognizer's full current caption. An empty line
    marks the last caption as a finished sentence.
    """

    def __init__(self, pipeline: TranslationPipeline, drain_timeout_s: float = 10.0) -> None:
        self.pipeline = pipeline
        self.drain_timeout_s = drain_timeout_s
        self._last_line = ""
        self._unsubscribers = [
            pipeline.translation_completed.subscribe(self._on_translation),
            pipeline.fault_occurred.subscribe(self._on_fault),
        ]

    async def run(self) -> None:
        loop = asyncio.get_running_loop()
        await self.pipeline.start()
        try:
            while True:
                line: Optional[str] = await loop.run_in_executor(None, sys.stdin.readline)
                if not line:
                    break
                self.handle_line(line)
            # End of input finishes whatever caption is still open.
            if self.pipeline.current_text:
                self.handle_line("")
            await self._drain()
        finally:
            await self.pipeline.stop()
            for unsubscribe in self._unsubscribers:
                unsubscribe()

    def handle_line(self, line: str) -> None:
        caption = line.rstrip("\r\n")
        if caption.strip():
            self._last_line = caption
            self.pipeline.feed(caption, CaptionKind.PARTIAL_UPDATE)
            return
        if self._last_line:
            self.pipeline.feed(self._last_line, CaptionKind.SENTENCE_COMPLETE)
            self._last_line = ""

    async def _drain(self) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.drain_timeout_s
        pipeline = self.pipeline
        while loop.time() < deadline:
            dispatcher = pipeline.dispatcher
            busy = dispatcher is not None and dispatcher.in_flight
            if not (pipeline.current_text or pipeline.pending_count or busy or pipeline.result_slot.has_value):
                break
            await asyncio.sleep(0.05)
        # Let the pacer finish its post-sentence pause.
        await asyncio.sleep(pipeline.pacer.choke_delay_ms / 1000.0)

    @staticmethod
    def _on_translation(event: TranslationEvent) -> None:
        print(f"{event.original_text} -> {event.translated_text}", flush=True)

    @staticmethod
    def _on_fault(fault: PipelineFault) -> None:
        logging.error("pipeline_fault stage=%s error=%s", fault.stage, fault.error)


def main() -> None:
    load_dotenv()
    log_level_name = (os.getenv("LOG_LEVEL", "INFO") or "INFO").upper()
    log_level = getattr(logging, log_level_name, logging.INFO)
    logging.basicConfig(level=log_level, format="%(asctime)s %(levelname)s %(message)s")

    metrics_enabled = read_bool_env("METRICS_ENABLED", False)
    metrics_reporter = SessionMetricsReporter(
        enabled=True,
        output_path=os.getenv("METRICS_OUTPUT_PATH", "./reports/session_metrics.jsonl") if metrics_enabled else None,
        summary_path=os.getenv("METRICS_SUMMARY_PATH", "./reports/session_summary.json") if metrics_enabled else None,
        append_mode=read_bool_env("METRICS_APPEND_MODE", False),
    )
    pipeline = TranslationPipeline(PipelineConfig.from_env(), metrics_reporter=metrics_reporter)
    controller = ConsoleCaptionController(pipeline, drain_timeout_s=read_float_env("DRAIN_TIMEOUT_SECONDS", 10.0))
    try:
        asyncio.run(controller.run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
