"""
Unit tests for configuration loading.
"""

import os
import tempfile
import unittest
from unittest import mock

from conversation_orchestrator.config import EnvConfig, LLMConfig, OrchestratorConfig


class TestOrchestratorConfig(unittest.TestCase):
    """Defaults, validation and the alternate constructors."""

    def test_defaults(self):
        config = OrchestratorConfig(llm=LLMConfig(api_key="test-key"))

        self.assertEqual(config.max_ticks, 25)
        self.assertEqual(config.max_no_task_retries, 3)
        self.assertEqual(config.context_history_limit, 10)
        self.assertEqual(config.recent_results_limit, 5)
        self.assertEqual(config.recursion_limit, 110)

    def test_validation(self):
        with self.assertRaises(ValueError):
            OrchestratorConfig(max_ticks=0)
        with self.assertRaises(ValueError):
            OrchestratorConfig(log_level="LOUD")
        with self.assertRaises(ValueError):
            LLMConfig(provider="unknown")
        with self.assertRaises(ValueError):
            LLMConfig(temperature=3)

    def test_from_dict(self):
        config = OrchestratorConfig.from_dict({
            "llm": {"provider": "openai", "model_name": "gpt-4o", "api_key": "sk-test"},
            "max_ticks": 30,
        })
        self.assertEqual(config.llm.provider, "openai")
        self.assertEqual(config.llm.api_key_env_var, "OPENAI_API_KEY")
        self.assertEqual(config.max_ticks, 30)

    def test_to_dict_hides_api_key(self):
        config = OrchestratorConfig(llm=LLMConfig(api_key="secret"))
        self.assertNotIn("api_key", config.to_dict()["llm"])
        self.assertEqual(config.to_dict(include_secrets=True)["llm"]["api_key"], "secret")

    def test_from_env(self):
        env = {
            "ORCHESTRATOR_MAX_TICKS": "12",
            "ORCHESTRATOR_MAX_NO_TASK_RETRIES": "2",
            "ORCHESTRATOR_USE_LLM_TASK_EXTRACTION": "false",
            "ORCHESTRATOR_LOG_LEVEL": "debug",
            "LLM_API_KEY": "from-env",
        }
        with mock.patch.dict(os.environ, env):
            config = OrchestratorConfig.from_env()

        self.assertEqual(config.max_ticks, 12)
        self.assertEqual(config.max_no_task_retries, 2)
        self.assertFalse(config.use_llm_task_extraction)
        self.assertEqual(config.log_level, "DEBUG")
        self.assertEqual(config.llm.api_key, "from-env")


class TestEnvConfig(unittest.TestCase):
    """.env loading and typed getters."""

    def test_load_env_file_does_not_override(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, ".env")
            with open(path, "w", encoding="utf-8") as fh:
                fh.write("ORCH_TEST_NEW=from-file\nORCH_TEST_SET=from-file\n")

            with mock.patch.dict(os.environ, {"ORCH_TEST_SET": "from-env"}):
                self.assertTrue(EnvConfig.load_env_file(path))
                self.assertEqual(os.environ["ORCH_TEST_NEW"], "from-file")
                self.assertEqual(os.environ["ORCH_TEST_SET"], "from-env")

    def test_missing_file(self):
        self.assertFalse(EnvConfig.load_env_file("/nonexistent/.env"))

    def test_typed_getters(self):
        env = {"ORCH_BOOL": "yes", "ORCH_INT": "7", "ORCH_BAD_INT": "x", "ORCH_JSON": '{"a": 1}'}
        with mock.patch.dict(os.environ, env):
            self.assertTrue(EnvConfig.get_bool("ORCH_BOOL"))
            self.assertEqual(EnvConfig.get_int("ORCH_INT"), 7)
            self.assertEqual(EnvConfig.get_int("ORCH_BAD_INT", 3), 3)
            self.assertEqual(EnvConfig.get_json("ORCH_JSON"), {"a": 1})
            self.assertEqual(EnvConfig.missing("ORCH_INT", "ORCH_NOT_SET"), ["ORCH_NOT_SET"])

    def test_template_covers_guards(self):
        template = EnvConfig.show_config_template()
        self.assertIn("ORCHESTRATOR_MAX_TICKS=25", template)
        self.assertIn("ORCHESTRATOR_MAX_NO_TASK_RETRIES=3", template)


if __name__ == '__main__':
    unittest.main()
