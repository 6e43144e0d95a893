from __future__ import annotations

import os
import unittest
from unittest.mock import patch

from config_utils import PipelineConfig, read_bool_env, read_int_env, read_str_env


class EnvReaderTests(unittest.TestCase):
    def test_invalid_or_non_positive_numbers_fall_back(self) -> None:
        with patch.dict(os.environ, {"A": "abc", "B": "-3", "C": "7"}):
            self.assertEqual(read_int_env("A", 5), 5)
            self.assertEqual(read_int_env("B", 5), 5)
            self.assertEqual(read_int_env("C", 5), 7)

    def test_bool_and_str_readers(self) -> None:
        with patch.dict(os.environ, {"FLAG": "off", "ODD": "maybe", "NAME": "  OpenAI  ", "EMPTY": " "}):
            self.assertFalse(read_bool_env("FLAG", True))
            self.assertTrue(read_bool_env("ODD", True))
            self.assertEqual(read_str_env("NAME", "Google"), "OpenAI")
            self.assertEqual(read_str_env("EMPTY", "Google"), "Google")


class PipelineConfigTests(unittest.TestCase):
    def test_defaults(self) -> None:
        config = PipelineConfig()
        self.assertEqual(config.api_name, "Google")
        self.assertEqual(config.max_sync_interval, 6)
        self.assertEqual(config.max_idle_interval, 100)
        self.assertEqual(config.context_capacity, 10)
        self.assertEqual((config.sync_interval_ms, config.translate_interval_ms, config.display_interval_ms), (25, 40, 40))

    def test_from_env(self) -> None:
        env = {
            "TRANSLATION_API": "OpenRouter",
            "TARGET_LANGUAGE": "ja",
            "CONTEXT_AWARE_ENABLED": "false",
            "MAX_IDLE_INTERVAL": "40",
            "TRANSLATION_API_KEY": "sk-test",
            "TRANSLATION_MODEL": "some/model",
            "TRANSLATION_TEMPERATURE": "0.3",
        }
        with patch.dict(os.environ, env, clear=True):
            config = PipelineConfig.from_env()

        self.assertEqual(config.api_name, "OpenRouter")
        self.assertEqual(config.target_language, "ja")
        self.assertFalse(config.context_aware_enabled)
        self.assertEqual(config.max_idle_interval, 40)
        self.assertEqual(config.max_sync_interval, 6)
        self.assertEqual(config.backend_settings["api_key"], "sk-test")
        self.assertEqual(config.backend_settings["model_name"], "some/model")
        self.assertEqual(config.backend_settings["temperature"], 0.3)

    def test_openai_key_is_used_when_no_translation_key(self) -> None:
        with patch.dict(os.environ, {"OPENAI_API_KEY": "sk-openai"}, clear=True):
            config = PipelineConfig.from_env()
        self.assertEqual(config.backend_settings["api_key"], "sk-openai")
        self.assertEqual(config.backend_settings["timeout_s"], 30.0)


if __name__ == "__main__":
    unittest.main()
