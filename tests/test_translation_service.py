from __future__ import annotations

import asyncio
import unittest
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
from openai import APIStatusError

from translation_service import (
    CONTEXT_AWARE_APIS,
    GoogleTranslationService,
    OpenAITranslationService,
    create_backend,
    is_error_result,
)


def _api_status_error(status_code: int, message: str) -> APIStatusError:
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    response = httpx.Response(status_code=status_code, request=request)
    return APIStatusError(message, response=response, body={"error": {"message": message}})


def _chat_response(content: str) -> SimpleNamespace:
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def _service_with_mock_client(**create_kwargs) -> OpenAITranslationService:
    client = MagicMock()
    client.chat.completions.create = AsyncMock(**create_kwargs)
    return OpenAITranslationService("OpenAI", client=client)


class OpenAITranslationServiceTests(unittest.TestCase):
    def test_missing_api_key_is_an_error_result(self) -> None:
        service = OpenAITranslationService("OpenAI")
        result = asyncio.run(service("Hello.", "zh-CN", asyncio.Event(), {}))
        self.assertTrue(result.startswith("[ERROR] "))
        self.assertIn("API key", result)

    def test_returns_sanitized_translation(self) -> None:
        service = _service_with_mock_client(return_value=_chat_response("<think>hmm</think>  你好，\n世界 "))
        result = asyncio.run(service("Hello, world", "zh-CN", asyncio.Event(), {}))
        self.assertEqual(result, "你好， 世界")

    def test_request_uses_language_name_and_text_markers(self) -> None:
        service = _service_with_mock_client(return_value=_chat_response("你好"))
        asyncio.run(service("Hello", "zh-CN", asyncio.Event(), {"model_name": "test-model", "temperature": 0.2}))
        kwargs = service._client.chat.completions.create.await_args.kwargs
        self.assertEqual(kwargs["model"], "test-model")
        self.assertEqual(kwargs["temperature"], 0.2)
        self.assertIn("Simplified Chinese", kwargs["messages"][0]["content"])
        self.assertEqual(kwargs["messages"][1]["content"], "🔤 Hello 🔤")

    def test_custom_prompt_replaces_language_placeholder(self) -> None:
        service = _service_with_mock_client(return_value=_chat_response("Hola"))
        asyncio.run(service("Hello", "es", asyncio.Event(), {"prompt": "Translate into {language}."}))
        kwargs = service._client.chat.completions.create.await_args.kwargs
        self.assertEqual(kwargs["messages"][0]["content"], "Translate into Spanish.")

    def test_fallback_model_is_promoted_after_primary_400(self) -> None:
        service = _service_with_mock_client(
            side_effect=[_api_status_error(400, "bad model"), _chat_response("hola")]
        )
        settings = {"model_name": "primary-bad", "fallback_model_name": "fallback-good"}
        result = asyncio.run(service("hello", "es", asyncio.Event(), settings))
        self.assertEqual(result, "hola")
        self.assertEqual(service._active_model_index, 1)
        models = [call.kwargs["model"] for call in service._client.chat.completions.create.await_args_list]
        self.assertEqual(models, ["primary-bad", "fallback-good"])

    def test_explicit_zero_temperature_is_kept(self) -> None:
        service = _service_with_mock_client(return_value=_chat_response("hola"))
        asyncio.run(service("hello", "es", asyncio.Event(), {"temperature": 0.0}))
        kwargs = service._client.chat.completions.create.await_args.kwargs
        self.assertEqual(kwargs["temperature"], 0.0)

    def test_blank_temperature_uses_default(self) -> None:
        service = _service_with_mock_client(return_value=_chat_response("hola"))
        asyncio.run(service("hello", "es", asyncio.Event(), {"temperature": ""}))
        kwargs = service._client.chat.completions.create.await_args.kwargs
        self.assertEqual(kwargs["temperature"], 0.7)

    def test_server_error_is_an_error_result(self) -> None:
        service = _service_with_mock_client(side_effect=_api_status_error(500, "server down"))
        result = asyncio.run(service("hello", "es", asyncio.Event(), {}))
        self.assertTrue(result.startswith("[ERROR] OpenAI HTTP 500"))

    def test_unexpected_exception_is_an_error_result(self) -> None:
        service = _service_with_mock_client(side_effect=KeyError("choices"))
        result = asyncio.run(service("hello", "es", asyncio.Event(), {}))
        self.assertTrue(result.startswith("[ERROR] KeyError"))

    def test_empty_completion_is_an_error_result(self) -> None:
        service = _service_with_mock_client(return_value=_chat_response(""))
        result = asyncio.run(service("hello", "es", asyncio.Event(), {}))
        self.assertTrue(is_error_result(result))

    def test_cancelled_request_raises(self) -> None:
        service = _service_with_mock_client(return_value=_chat_response("hola"))
        cancel_event = asyncio.Event()
        cancel_event.set()

        async def _run() -> None:
            with self.assertRaises(asyncio.CancelledError):
                await service("hello", "es", cancel_event, {})

        asyncio.run(_run())
        service._client.chat.completions.create.assert_not_awaited()

    def test_unknown_compatible_api_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            OpenAITranslationService("DeepL")


class GoogleTranslationServiceTests(unittest.TestCase):
    def test_returns_first_translation(self) -> None:
        seen: list[httpx.Request] = []

        def _handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[["hola mundo", "en"]])

        service = GoogleTranslationService(transport=httpx.MockTransport(_handler))
        result = asyncio.run(service("hello world", "es-ES", asyncio.Event(), {}))

        self.assertEqual(result, "hola mundo")
        self.assertEqual(seen[0].url.params["tl"], "es")
        self.assertEqual(seen[0].url.params["q"], "hello world")
        self.assertEqual(seen[0].url.params["sl"], "auto")

    def test_source_language_setting_is_sent(self) -> None:
        seen: list[httpx.Request] = []

        def _handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=["hello"])

        service = GoogleTranslationService(transport=httpx.MockTransport(_handler))
        result = asyncio.run(service("こんにちは", "en-US", asyncio.Event(), {"source_language": "ja-JP"}))

        self.assertEqual(result, "hello")
        self.assertEqual(seen[0].url.params["sl"], "ja")
        self.assertEqual(seen[0].url.params["tl"], "en")

    def test_keeps_chinese_variant_codes(self) -> None:
        self.assertEqual(GoogleTranslationService.map_language("zh-TW"), "zh-TW")
        self.assertEqual(GoogleTranslationService.map_language("en-US"), "en")
        self.assertEqual(GoogleTranslationService.map_language("ja"), "ja")

    def test_http_error_status_is_an_error_result(self) -> None:
        service = GoogleTranslationService(transport=httpx.MockTransport(lambda request: httpx.Response(503)))
        result = asyncio.run(service("hello", "es", asyncio.Event(), {}))
        self.assertEqual(result, "[ERROR] Translation Failed: HTTP Error - 503")

    def test_timeout_is_an_error_result(self) -> None:
        def _handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        service = GoogleTranslationService(transport=httpx.MockTransport(_handler))
        result = asyncio.run(service("hello", "es", asyncio.Event(), {}))
        self.assertTrue(result.startswith("[ERROR] Translation Failed: The request was canceled due to timeout"))

    def test_unexpected_payload_is_an_error_result(self) -> None:
        service = GoogleTranslationService(transport=httpx.MockTransport(lambda request: httpx.Response(200, json={})))
        result = asyncio.run(service("hello", "es", asyncio.Event(), {}))
        self.assertTrue(is_error_result(result))


class BackendRegistryTests(unittest.TestCase):
    def test_create_backend_by_name(self) -> None:
        self.assertIsInstance(create_backend("Google"), GoogleTranslationService)
        backend = create_backend("OpenRouter")
        self.assertIsInstance(backend, OpenAITranslationService)
        self.assertEqual(backend.api_name, "OpenRouter")

    def test_unknown_backend_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            create_backend("Nope")

    def test_context_aware_apis(self) -> None:
        self.assertIn("Google", CONTEXT_AWARE_APIS)
        self.assertIn("OpenAI", CONTEXT_AWARE_APIS)

    def test_error_result_detection(self) -> None:
        self.assertTrue(is_error_result("[ERROR] timeout"))
        self.assertFalse(is_error_result("hola"))
        self.assertFalse(is_error_result(""))


if __name__ == "__main__":
    unittest.main()
