from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any


def read_float_env(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def read_int_env(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def read_bool_env(name: str, default: bool) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    if raw in {"1", "true", "yes", "on"}:
        return True
    if raw in {"0", "false", "no", "off"}:
        return False
    return default


def read_str_env(name: str, default: str) -> str:
    raw = (os.getenv(name) or "").strip()
    return raw or default


@dataclass
class PipelineConfig:
    api_name: str = "Google"
    target_language: str = "en"
    source_language: str = "auto"
    context_aware_enabled: bool = True
    context_capacity: int = 10
    context_count: int = 3
    # Tick counts, not milliseconds.
    max_sync_interval: int = 6
    max_idle_interval: int = 100
    sync_interval_ms: int = 25
    translate_interval_ms: int = 40
    display_interval_ms: int = 40
    pending_queue_maxsize: int = 64
    backend_settings: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_env(cls) -> PipelineConfig:
        defaults = cls()
        return cls(
            api_name=read_str_env("TRANSLATION_API", defaults.api_name),
            target_language=read_str_env("TARGET_LANGUAGE", defaults.target_language),
            source_language=read_str_env("SOURCE_LANGUAGE", defaults.source_language),
            context_aware_enabled=read_bool_env("CONTEXT_AWARE_ENABLED", defaults.context_aware_enabled),
            context_capacity=read_int_env("CONTEXT_CAPACITY", defaults.context_capacity),
            context_count=read_int_env("CONTEXT_COUNT", defaults.context_count),
            max_sync_interval=read_int_env("MAX_SYNC_INTERVAL", defaults.max_sync_interval),
            max_idle_interval=read_int_env("MAX_IDLE_INTERVAL", defaults.max_idle_interval),
            sync_interval_ms=read_int_env("SYNC_INTERVAL_MS", defaults.sync_interval_ms),
            translate_interval_ms=read_int_env("TRANSLATE_INTERVAL_MS", defaults.translate_interval_ms),
            display_interval_ms=read_int_env("DISPLAY_INTERVAL_MS", defaults.display_interval_ms),
            pending_queue_maxsize=read_int_env("PENDING_QUEUE_MAXSIZE", defaults.pending_queue_maxsize),
            backend_settings=read_backend_settings(),
        )


def read_backend_settings() -> dict[str, Any]:
    """Collect provider settings; the pipeline passes them to the backend untouched."""
    api_key = (os.getenv("TRANSLATION_API_KEY") or os.getenv("OPENAI_API_KEY") or "").strip()
    return {
        "api_url": read_str_env("TRANSLATION_API_URL", ""),
        "api_key": api_key,
        "model_name": read_str_env("TRANSLATION_MODEL", ""),
        "fallback_model_name": read_str_env("TRANSLATION_FALLBACK_MODEL", ""),
        "temperature": read_float_env("TRANSLATION_TEMPERATURE", 0.7),
        "prompt": read_str_env("TRANSLATION_PROMPT", ""),
        "timeout_s": read_float_env("TRANSLATION_TIMEOUT_SECONDS", 30.0),
    }
