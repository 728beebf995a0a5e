"""
Unit tests for configuration loading.

Tests:
1. Config file lookup and dotted keys
2. Settings defaults and YAML overrides
3. Environment overrides
4. Invalid configuration
"""

import os
import shutil
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from rehoboam.config import CONFIG_ENV, Config, default_config_path, load_settings
from rehoboam.loop.errors import ConfigError
from rehoboam.loop.host import HostKind
from rehoboam.loop.models import LoopRole
from rehoboam.telemetry import ENDPOINT_ENV


class ConfigTestCase(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.path = Path(self.temp_dir) / "config.yaml"
        self.env = patch.dict(os.environ)
        self.env.start()
        for key in (CONFIG_ENV, ENDPOINT_ENV, "TMUX_PANE"):
            os.environ.pop(key, None)

    def tearDown(self):
        self.env.stop()
        shutil.rmtree(self.temp_dir)

    def write(self, text):
        self.path.write_text(text)
        return str(self.path)


class TestConfig(ConfigTestCase):
    """Test the YAML Config class."""

    def test_dotted_get(self):
        config = Config(self.write("loop:\n  max_iterations: 7\n  stop_word: null\n"))
        self.assertEqual(config.get("loop.max_iterations"), 7)
        self.assertEqual(config.get("loop.stop_word", "DONE"), "DONE")
        self.assertEqual(config.get("loop.missing.deeper", 1), 1)
        self.assertIsNone(config.get("agent.command"))

    def test_missing_file(self):
        self.assertEqual(Config(str(Path(self.temp_dir) / "none.yaml")).config, {})

    def test_empty_file(self):
        self.assertEqual(Config(self.write("")).config, {})

    def test_not_a_mapping(self):
        with self.assertRaises(ConfigError):
            Config(self.write("- a\n- b\n"))

    def test_invalid_yaml(self):
        with self.assertRaises(ConfigError):
            Config(self.write("loop: [unclosed\n"))

    def test_default_path_from_env(self):
        os.environ[CONFIG_ENV] = str(self.path)
        self.assertEqual(default_config_path(), self.path)

    def test_default_path(self):
        self.assertEqual(default_config_path(), Path.home() / ".config" / "rehoboam" / "config.yaml")


class TestLoadSettings(ConfigTestCase):
    """Test resolving Settings."""

    def test_defaults(self):
        settings = load_settings(str(Path(self.temp_dir) / "none.yaml"))

        self.assertEqual(settings.max_iterations, 50)
        self.assertEqual(settings.stop_word, "DONE")
        self.assertEqual(settings.role, LoopRole.AUTO)
        self.assertEqual(settings.dir_name, ".rehoboam")
        self.assertTrue(settings.archive_on_complete)
        self.assertFalse(settings.git_checkpoint)
        self.assertFalse(settings.judge)
        self.assertEqual(settings.agent_host, HostKind.SUBPROCESS)
        self.assertEqual(settings.agent_command, ["claude", "-p"])
        self.assertIsNone(settings.agent_timeout)
        self.assertIsNone(settings.telemetry_endpoint)
        self.assertEqual(settings.pane_id, "")

    def test_yaml_values(self):
        settings = load_settings(self.write(
            "loop:\n"
            "  max_iterations: 12\n"
            "  stop_word: SHIPPED\n"
            "  role: planner\n"
            "  archive_on_complete: no\n"
            "  task_queue: true\n"
            "  judge: yes\n"
            "agent:\n"
            "  host: tmux\n"
            "  command: my-agent --print\n"
            "  poll_interval: 0.5\n"
            "  timeout: 600\n"
            "telemetry:\n"
            "  endpoint: http://collector:4318\n"
            "discovery:\n"
            "  home: /srv/agent\n"
        ))

        self.assertEqual(settings.max_iterations, 12)
        self.assertEqual(settings.stop_word, "SHIPPED")
        self.assertEqual(settings.role, LoopRole.PLANNER)
        self.assertFalse(settings.archive_on_complete)
        self.assertTrue(settings.task_queue)
        self.assertTrue(settings.judge)
        self.assertEqual(settings.agent_host, HostKind.TMUX)
        self.assertEqual(settings.agent_command, ["my-agent", "--print"])
        self.assertEqual(settings.poll_interval, 0.5)
        self.assertEqual(settings.agent_timeout, 600.0)
        self.assertEqual(settings.telemetry_endpoint, "http://collector:4318")
        self.assertEqual(settings.discovery_home, Path("/srv/agent"))

    def test_environment_overrides(self):
        """Test the environment wins over YAML."""
        os.environ[ENDPOINT_ENV] = "http://env:4318"
        os.environ["TMUX_PANE"] = "%4"
        settings = load_settings(self.write("telemetry:\n  endpoint: http://yaml:4318\n"))

        self.assertEqual(settings.telemetry_endpoint, "http://env:4318")
        self.assertEqual(settings.pane_id, "%4")

    def test_invalid_values(self):
        for text in (
            "loop:\n  max_iterations: many\n",
            "loop:\n  role: boss\n",
            "loop:\n  git_checkpoint: maybe\n",
            "agent:\n  host: docker\n",
            "agent:\n  command: []\n",
        ):
            with self.subTest(text=text):
                with self.assertRaises(ConfigError):
                    load_settings(self.write(text))


if __name__ == "__main__":
    unittest.main()
