from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Optional


def _percentile(values: list[float], ratio: float) -> float:
    if not values:
        return 0.0
    ordered = sorted(values)
    if len(ordered) == 1:
        return ordered[0]
    index = (len(ordered) - 1) * ratio
    lower = int(index)
    upper = min(lower + 1, len(ordered) - 1)
    if lower == upper:
        return ordered[lower]
    weight = index - lower
    return ordered[lower] * (1.0 - weight) + ordered[upper] * weight


class SessionMetricsReporter:
    """Dispatch latency and error counts for one Start/Stop session.

    Counters are always kept in memory; JSONL events and the summary file are
    written only when ``output_path``/``summary_path`` are given.
    """

    def __init__(
        self,
        enabled: bool = True,
        output_path: Optional[str] = None,
        summary_path: Optional[str] = None,
        append_mode: bool = False,
    ) -> None:
        self._enabled = enabled
        self._output_path = Path(output_path) if output_path else None
        self._summary_path = Path(summary_path) if summary_path else None
        self._append_mode = append_mode
        self._session_started_at: Optional[datetime] = None
        self._latencies: list[float] = []
        self._dispatches = 0
        self._error_results = 0
        self._context_dispatches = 0
        self._fault_events = 0

    @property
    def enabled(self) -> bool:
        return self._enabled

    def start_session(self) -> None:
        if not self._enabled:
            return
        self._session_started_at = datetime.now()
        self._latencies.clear()
        self._dispatches = 0
        self._error_results = 0
        self._context_dispatches = 0
        self._fault_events = 0
        self._ensure_parent_dirs()
        if self._output_path is not None and not self._append_mode:
            self._output_path.write_text("", encoding="utf-8")

    def record_dispatch(
        self,
        original_text: str,
        latency_s: float,
        is_error: bool,
        used_context: bool,
        pending_backlog: int,
    ) -> None:
        if not self._enabled:
            return
        self._latencies.append(latency_s)
        self._dispatches += 1
        if is_error:
            self._error_results += 1
        if used_context:
            self._context_dispatches += 1
        self._append_jsonl(
            {
                "event_type": "dispatch",
                "recorded_at": datetime.now().isoformat(timespec="milliseconds"),
                "text_length": len(original_text),
                "latency_s": latency_s,
                "is_error": is_error,
                "used_context": used_context,
                "pending_backlog": pending_backlog,
            }
        )

    def record_fault(self, stage: str, error: str, pending_backlog: int) -> None:
        if not self._enabled:
            return
        self._fault_events += 1
        self._append_jsonl(
            {
                "event_type": "fault",
                "recorded_at": datetime.now().isoformat(timespec="milliseconds"),
                "stage": stage,
                "error": error,
                "pending_backlog": pending_backlog,
            }
        )

    def snapshot(self) -> dict[str, float]:
        if not self._latencies and self._fault_events == 0:
            return {"avg_latency_s": 0.0, "p95_latency_s": 0.0, "issue_rate_pct": 0.0}
        base = max(1, self._dispatches + self._fault_events)
        issues = self._error_results + self._fault_events
        return {
            "avg_latency_s": (sum(self._latencies) / len(self._latencies)) if self._latencies else 0.0,
            "p95_latency_s": _percentile(self._latencies, 0.95) if self._latencies else 0.0,
            "issue_rate_pct": (issues / base) * 100.0,
        }

    def finalize_session(self, dropped_pending: int = 0, overwritten_results: int = 0) -> dict[str, Any]:
        if not self._enabled or self._session_started_at is None:
            return {}
        now = datetime.now()
        started = self._session_started_at
        summary = {
            "session_started_at": started.isoformat(timespec="milliseconds"),
            "session_ended_at": now.isoformat(timespec="milliseconds"),
            "session_duration_s": max(0.0, (now - started).total_seconds()),
            "dispatches": self._dispatches,
            "error_results": self._error_results,
            "context_dispatches": self._context_dispatches,
            "fault_events": self._fault_events,
            "dropped_pending": dropped_pending,
            "overwritten_results": overwritten_results,
            "issue_rate_pct": (
                (self._error_results + self._fault_events) / max(1, self._dispatches + self._fault_events)
            )
            * 100.0,
            "latency_avg_s": sum(self._latencies) / len(self._latencies) if self._latencies else 0.0,
            "latency_p50_s": _percentile(self._latencies, 0.50),
            "latency_p95_s": _percentile(self._latencies, 0.95),
            "latency_max_s": max(self._latencies) if self._latencies else 0.0,
        }
        self._session_started_at = None
        self._write_summary(summary)
        return summary

    def _ensure_parent_dirs(self) -> None:
        for path in (self._output_path, self._summary_path):
            if path is not None:
                path.parent.mkdir(parents=True, exist_ok=True)

    def _append_jsonl(self, payload: dict[str, Any]) -> None:
        if self._output_path is None:
            return
        self._ensure_parent_dirs()
        line = json.dumps(payload, ensure_ascii=False)
        with self._output_path.open("a", encoding="utf-8") as handle:
            handle.write(line)
            handle.write("\n")

    def _write_summary(self, summary: dict[str, Any]) -> None:
        if self._summary_path is None:
            return
        self._ensure_parent_dirs()
        with self._summary_path.open("w", encoding="utf-8") as handle:
            json.dump(summary, handle, ensure_ascii=False, indent=2)
