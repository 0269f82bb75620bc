import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch
import logging

from taskpilot.config.settings import DEFAULT_RECOVERY_CONFIG_PATH, Settings, load_environment
from taskpilot.tools.base import PermissionTier

# Disable logging for most tests, enable specifically if testing log messages
logging.disable(logging.CRITICAL)


class SettingsTestCase(unittest.TestCase):

    def setUp(self):
        self.tmp_dir = tempfile.TemporaryDirectory()
        self.recovery_path = Path(self.tmp_dir.name) / "tool_recovery.yaml"

    def tearDown(self):
        self.tmp_dir.cleanup()

    def make_settings(self, **env):
        env.setdefault("TOOL_RECOVERY_CONFIG_PATH", str(self.recovery_path))
        with patch.dict(os.environ, env, clear=True):
            return Settings(load_env=False)


class TestSettingsDefaults(SettingsTestCase):

    def test_defaults(self):
        settings = self.make_settings()
        self.assertEqual(
            settings.TOOL_GRANTED_TIERS,
            [PermissionTier.READ_ONLY, PermissionTier.MODIFY_TASKS, PermissionTier.TIMER_CONTROL],
        )
        self.assertEqual(settings.TOOL_AUTO_APPROVE, [])
        self.assertEqual(settings.TOOL_CONFIRMATION_TIMEOUT_SECONDS, 30)
        self.assertEqual(settings.RECOVERY_POLICY_OVERRIDES, {})
        self.assertEqual(settings.LOG_LEVEL, "INFO")
        self.assertIsNone(settings.LOG_DIR)

    def test_default_recovery_path_is_project_root(self):
        with patch.dict(os.environ, {}, clear=True):
            with patch("taskpilot.config.settings.Path.exists", return_value=False):
                settings = Settings(load_env=False)
        self.assertEqual(settings.TOOL_RECOVERY_CONFIG_PATH, DEFAULT_RECOVERY_CONFIG_PATH)


class TestSettingsParsing(SettingsTestCase):

    def test_granted_tiers_accept_labels_and_skip_unknown(self):
        settings = self.make_settings(TOOL_GRANTED_TIERS="TimerControl, read_only, superuser")
        self.assertEqual(settings.TOOL_GRANTED_TIERS, [PermissionTier.READ_ONLY, PermissionTier.TIMER_CONTROL])

    def test_granted_tiers_all_invalid_uses_default(self):
        settings = self.make_settings(TOOL_GRANTED_TIERS="nobody")
        self.assertEqual(len(settings.TOOL_GRANTED_TIERS), 3)

    def test_auto_approve_list(self):
        settings = self.make_settings(TOOL_AUTO_APPROVE="create_task, update_task,,create_task")
        self.assertEqual(settings.TOOL_AUTO_APPROVE, ["create_task", "update_task"])

    def test_invalid_timeout_falls_back(self):
        for raw in ["soon", "0", "-5"]:
            settings = self.make_settings(TOOL_CONFIRMATION_TIMEOUT_SECONDS=raw)
            self.assertEqual(settings.TOOL_CONFIRMATION_TIMEOUT_SECONDS, 30, raw)

    def test_valid_timeout(self):
        settings = self.make_settings(TOOL_CONFIRMATION_TIMEOUT_SECONDS="45")
        self.assertEqual(settings.TOOL_CONFIRMATION_TIMEOUT_SECONDS, 45)

    def test_log_settings(self):
        settings = self.make_settings(LOG_LEVEL="debug", LOG_DIR="/var/log/taskpilot")
        self.assertEqual(settings.LOG_LEVEL, "DEBUG")
        self.assertEqual(settings.LOG_DIR, Path("/var/log/taskpilot"))

    def test_invalid_log_level(self):
        settings = self.make_settings(LOG_LEVEL="chatty")
        self.assertEqual(settings.LOG_LEVEL, "INFO")


class TestRecoveryOverrides(SettingsTestCase):

    def write(self, text):
        self.recovery_path.write_text(text, encoding="utf-8")

    def test_valid_file(self):
        self.write(
            "recovery:\n"
            "  NETWORK_ERROR:\n"
            "    max_retries: 5\n"
            "    base_delay_ms: 250\n"
            "  timeout_error:\n"
            "    backoff_multiplier: 3\n"
        )
        settings = self.make_settings()
        self.assertEqual(settings.RECOVERY_POLICY_OVERRIDES, {
            "NETWORK_ERROR": {"max_retries": 5, "base_delay_ms": 250},
            "TIMEOUT_ERROR": {"backoff_multiplier": 3.0},
        })

    def test_unknown_categories_keys_and_values_dropped(self):
        self.write(
            "recovery:\n"
            "  COFFEE_ERROR:\n"
            "    max_retries: 1\n"
            "  DATABASE_ERROR:\n"
            "    max_retries: lots\n"
            "    fallback: none\n"
            "    base_delay_ms: -10\n"
            "  UNKNOWN_ERROR: 3\n"
        )
        settings = self.make_settings()
        self.assertEqual(settings.RECOVERY_POLICY_OVERRIDES, {})

    def test_malformed_yaml(self):
        self.write("recovery: [unclosed\n")
        settings = self.make_settings()
        self.assertEqual(settings.RECOVERY_POLICY_OVERRIDES, {})

    def test_wrong_structure(self):
        self.write("- just\n- a list\n")
        settings = self.make_settings()
        self.assertEqual(settings.RECOVERY_POLICY_OVERRIDES, {})

    def test_empty_file(self):
        self.write("")
        settings = self.make_settings()
        self.assertEqual(settings.RECOVERY_POLICY_OVERRIDES, {})


class TestLoadEnvironment(unittest.TestCase):

    def test_missing_dotenv(self):
        self.assertFalse(load_environment(Path("/nonexistent/dir/.env")))

    def test_dotenv_values_loaded(self):
        with tempfile.TemporaryDirectory() as tmp:
            dotenv_path = Path(tmp) / ".env"
            dotenv_path.write_text("TOOL_AUTO_APPROVE=stop_timer\n", encoding="utf-8")
            with patch.dict(os.environ, {}, clear=True):
                self.assertTrue(load_environment(dotenv_path))
                self.assertEqual(os.environ["TOOL_AUTO_APPROVE"], "stop_timer")


if __name__ == '__main__':
    unittest.main()
