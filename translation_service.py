from __future__ import annotations

import asyncio
import re
from typing import Any, Awaitable, Callable, Final, Optional

import httpx
from openai import APIConnectionError, APIStatusError, APITimeoutError, AsyncOpenAI

ERROR_PREFIX: Final[str] = "[ERROR] "
# Wraps the user text in LLM requests; the dispatcher strips it from replies.
TEXT_MARKER: Final[str] = "🔤"
_MODEL_THINKING_RE: Final[re.Pattern[str]] = re.compile(r"<think>.*?</think>", re.DOTALL)

# translate(text, target_language, cancel_event, settings) -> translated text or "[ERROR] ..."
TranslationBackend = Callable[[str, str, asyncio.Event, dict[str, Any]], Awaitable[str]]


def error_result(reason: str) -> str:
    return f"{ERROR_PREFIX}{reason}"


def is_error_result(text: str) -> bool:
    return (text or "").startswith(ERROR_PREFIX.strip())


def _setting(settings: dict[str, Any], name: str, default: Any) -> Any:
    # Only a missing or blank value falls back; an explicit 0 is kept.
    value = settings.get(name)
    if value is None or value == "":
        return default
    return value


def _raise_if_cancelled(cancel_event: Optional[asyncio.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise asyncio.CancelledError()


class OpenAITranslationService:
    """Chat-completions translator for OpenAI-compatible endpoints.

    Ordinary failures come back as ``"[ERROR] ..."`` strings; only
    cancellation raises.
    """

    DEFAULT_PROMPT: Final[str] = (
        "You are a professional live-caption translator. Translate the following text to {language}. "
        "If part of the text is wrapped in <[ ]>, the text before it is earlier context: translate the whole "
        "text and keep the <[ ]> markers around the translation of the wrapped part. "
        "Only return the translated text without any explanation."
    )
    LANGUAGE_NAMES: Final[dict[str, str]] = {
        "zh-CN": "Simplified Chinese",
        "zh-TW": "Traditional Chinese",
        "en-US": "English",
        "en-GB": "English",
        "en": "English",
        "ja-JP": "Japanese",
        "ko-KR": "Korean",
        "fr-FR": "French",
        "th-TH": "Thai",
        "es": "Spanish",
    }
    _BASE_URLS: Final[dict[str, Optional[str]]] = {
        "OpenAI": None,
        "OpenRouter": "https://openrouter.ai/api/v1",
        "Ollama": "http://localhost:11434/v1",
    }
    _DEFAULT_MODELS: Final[dict[str, str]] = {
        "OpenAI": "gpt-4o-mini",
        "OpenRouter": "openai/gpt-4o-mini",
        "Ollama": "llama3",
    }

    def __init__(self, api_name: str = "OpenAI", client: Optional[AsyncOpenAI] = None) -> None:
        if api_name not in self._BASE_URLS:
            raise ValueError(f"Unsupported OpenAI-compatible API: {api_name}")
        self.api_name = api_name
        self._client = client
        self._client_key: Optional[tuple[str, str, float]] = None
        self._active_model_index = 0

    async def __call__(
        self,
        text: str,
        target_language: str,
        cancel_event: Optional[asyncio.Event] = None,
        settings: Optional[dict[str, Any]] = None,
    ) -> str:
        _raise_if_cancelled(cancel_event)
        settings = settings or {}
        try:
            client = self._resolve_client(settings)
        except ValueError as exc:
            return error_result(str(exc))

        language = self.language_name(target_language)
        prompt = str(settings.get("prompt") or self.DEFAULT_PROMPT).replace("{language}", language)
        messages = [
            {"role": "system", "content": prompt},
            {"role": "user", "content": f"{TEXT_MARKER} {text} {TEXT_MARKER}"},
        ]
        temperature = float(_setting(settings, "temperature", 0.7))
        try:
            content = await self._chat(client, messages, temperature, self._models(settings))
        except asyncio.CancelledError:
            raise
        except APITimeoutError:
            return error_result(f"{self.api_name} request timed out")
        except APIConnectionError as exc:
            return error_result(f"{self.api_name} connection failed: {exc}")
        except APIStatusError as exc:
            return error_result(f"{self.api_name} HTTP {exc.status_code}: {exc.message}")
        except Exception as exc:  # noqa: BLE001 - API boundary
            return error_result(f"{type(exc).__name__}: {exc}")
        _raise_if_cancelled(cancel_event)
        if not content:
            return error_result("No translation result")
        return content

    @classmethod
    def language_name(cls, target_language: str) -> str:
        return cls.LANGUAGE_NAMES.get(target_language, target_language)

    def _models(self, settings: dict[str, Any]) -> list[str]:
        primary = str(settings.get("model_name") or self._DEFAULT_MODELS[self.api_name])
        models = [primary]
        fallback = str(settings.get("fallback_model_name") or "")
        if fallback and fallback not in models:
            models.append(fallback)
        return models

    def _resolve_client(self, settings: dict[str, Any]) -> AsyncOpenAI:
        api_key = str(settings.get("api_key") or "")
        base_url = str(settings.get("api_url") or self._BASE_URLS[self.api_name] or "")
        timeout_s = float(_setting(settings, "timeout_s", 30.0))
        if self._client is not None and self._client_key is None:
            # Injected client.
            return self._client
        if not api_key:
            if self.api_name != "Ollama":
                raise ValueError(f"{self.api_name} API key is not configured")
            api_key = "ollama"
        key = (api_key, base_url, timeout_s)
        if self._client is None or self._client_key != key:
            self._client = AsyncOpenAI(api_key=api_key, base_url=base_url or None, timeout=timeout_s)
            self._client_key = key
            self._active_model_index = 0
        return self._client

    async def _chat(
        self,
        client: AsyncOpenAI,
        messages: list[dict[str, str]],
        temperature: float,
        models: list[str],
    ) -> str:
        if self._active_model_index >= len(models):
            self._active_model_index = 0
        while True:
            model_name = models[self._active_model_index]
            try:
                response = await client.chat.completions.create(
                    model=model_name,
                    temperature=temperature,
                    messages=messages,
                )
            except APIStatusError as exc:
                # Promote to the fallback model once and keep it for later requests.
                if exc.status_code in (400, 404) and self._active_model_index + 1 < len(models):
                    self._active_model_index += 1
                    continue
                raise
            content = response.choices[0].message.content or ""
            return self._sanitize(content)

    @staticmethod
    def _sanitize(text: str) -> str:
        cleaned = _MODEL_THINKING_RE.sub("", text or "")
        return re.sub(r"\s+", " ", cleaned).strip()


class GoogleTranslationService:
    """Keyless Google dictionary-extension endpoint."""

    API_URL: Final[str] = "https://clients5.google.com/translate_a/t"
    DEFAULT_TIMEOUT_S: Final[float] = 8.0

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self._transport = transport

    async def __call__(
        self,
        text: str,
        target_language: str,
        cancel_event: Optional[asyncio.Event] = None,
        settings: Optional[dict[str, Any]] = None,
    ) -> str:
        _raise_if_cancelled(cancel_event)
        settings = settings or {}
        timeout_s = float(_setting(settings, "timeout_s", self.DEFAULT_TIMEOUT_S))
        params = {
            "client": "dict-chrome-ex",
            "sl": self.map_language(str(_setting(settings, "source_language", "auto"))),
            "tl": self.map_language(target_language),
            "q": text,
        }
        try:
            async with httpx.AsyncClient(timeout=timeout_s, transport=self._transport) as client:
                response = await client.get(str(settings.get("api_url") or self.API_URL), params=params)
        except asyncio.CancelledError:
            raise
        except httpx.TimeoutException:
            return error_result(
                f"Translation Failed: The request was canceled due to timeout (> {timeout_s:g} seconds), "
                "please use a faster API or check network connection."
            )
        except httpx.HTTPError as exc:
            return error_result(f"Translation Failed: {exc}")
        _raise_if_cancelled(cancel_event)

        if response.status_code != 200:
            return error_result(f"Translation Failed: HTTP Error - {response.status_code}")
        try:
            payload = response.json()
        except ValueError:
            return error_result("Translation Failed: Unexpected API response format")
        translated = self._extract(payload)
        if not translated:
            return error_result("Translation Failed: Unexpected API response format")
        return translated

    @staticmethod
    def map_language(target_language: str) -> str:
        if target_language in ("zh-CN", "zh-TW"):
            return target_language
        if "-" in target_language:
            return target_language.split("-")[0]
        return target_language

    @staticmethod
    def _extract(payload: Any) -> str:
        # Either [["translated", "src-lang"]] or ["translated"].
        if isinstance(payload, list) and payload:
            first = payload[0]
            if isinstance(first, list) and first:
                first = first[0]
            if isinstance(first, str):
                return first.strip()
        return ""


# Backends that keep <[ ]> markers intact well enough for context wrapping.
CONTEXT_AWARE_APIS: Final[frozenset[str]] = frozenset({"Google", "OpenAI", "OpenRouter", "Ollama"})

TRANSLATE_FUNCTIONS: Final[dict[str, Callable[[], TranslationBackend]]] = {
    "Google": GoogleTranslationService,
    "OpenAI": lambda: OpenAITranslationService("OpenAI"),
    "OpenRouter": lambda: OpenAITranslationService("OpenRouter"),
    "Ollama": lambda: OpenAITranslationService("Ollama"),
}


def create_backend(api_name: str) -> TranslationBackend:
    factory = TRANSLATE_FUNCTIONS.get(api_name)
    if factory is None:
        raise ValueError(f"Unsupported translation API: {api_name}")
    return factory()
