import asyncio
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from pydantic import ValidationError

from prayer_schedule.config import ConfigLoadRequest, YamlConfigLoader
from prayer_schedule.schedule.models import Strategy

CONFIG_YAML = """
schedule:
  endpoint: https://example.test/PrayerTimes2025.json
  cache_path: {cache_path}
"""


class YamlConfigLoaderTests(unittest.TestCase):
    def setUp(self) -> None:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.root = Path(tmp.name)
        self.yaml_path = self.root / "prayer-schedule.yaml"
        self.yaml_path.write_text(CONFIG_YAML.format(cache_path=self.root / "cache.json"), encoding="utf-8")

    def _load(self, env: dict[str, str]):
        request = ConfigLoadRequest(yaml_path=str(self.yaml_path), env_prefix="PSTEST__", dotenv_path=None)
        with mock.patch.dict(os.environ, env):
            return asyncio.run(YamlConfigLoader().load(request))

    def test_defaults_fill_missing_sections(self) -> None:
        config = self._load({})

        self.assertEqual(config.schedule.fetch_timeout_seconds, 10.0)
        self.assertIs(config.schedule.strategy, Strategy.PREFER_REMOTE)
        self.assertIsNone(config.schedule.bundled_path)
        self.assertEqual(config.logging.level, "INFO")

    def test_env_overrides_are_applied_and_coerced(self) -> None:
        config = self._load(
            {
                "PSTEST__SCHEDULE__FETCH_TIMEOUT_SECONDS": "3.5",
                "PSTEST__SCHEDULE__STRATEGY": "prefer_cache",
                "PSTEST__LOGGING__LEVEL": "DEBUG",
            }
        )

        self.assertEqual(config.schedule.fetch_timeout_seconds, 3.5)
        self.assertIs(config.schedule.strategy, Strategy.PREFER_CACHE)
        self.assertEqual(config.logging.level, "DEBUG")

    def test_dotenv_file_supplies_overrides(self) -> None:
        dotenv_path = self.root / ".env"
        dotenv_path.write_text("PSTEST__SCHEDULE__FETCH_TIMEOUT_SECONDS=4\n", encoding="utf-8")
        request = ConfigLoadRequest(yaml_path=str(self.yaml_path), env_prefix="PSTEST__", dotenv_path=str(dotenv_path))

        with mock.patch.dict(os.environ, {}):
            config = asyncio.run(YamlConfigLoader().load(request))

        self.assertEqual(config.schedule.fetch_timeout_seconds, 4.0)

    def test_conventional_layout_creates_data_dirs(self) -> None:
        config_dir = self.root / "data" / "config"
        config_dir.mkdir(parents=True)
        yaml_path = config_dir / "config.yaml"
        yaml_path.write_text(CONFIG_YAML.format(cache_path=self.root / "cache.json"), encoding="utf-8")
        request = ConfigLoadRequest(yaml_path=str(yaml_path), env_prefix="PSTEST__", dotenv_path=None)

        asyncio.run(YamlConfigLoader().load(request))

        self.assertTrue((self.root / "data" / "cache").is_dir())
        self.assertTrue((self.root / "data" / "logs").is_dir())

    def test_unknown_env_override_is_rejected(self) -> None:
        with self.assertRaises(KeyError):
            self._load({"PSTEST__SCHEDULE__RETRIES": "3"})

    def test_invalid_value_fails_validation(self) -> None:
        with self.assertRaises(ValidationError):
            self._load({"PSTEST__SCHEDULE__FETCH_TIMEOUT_SECONDS": "0"})

    def test_unknown_yaml_key_fails_validation(self) -> None:
        self.yaml_path.write_text(
            CONFIG_YAML.format(cache_path=self.root / "cache.json") + "  retries: 3\n",
            encoding="utf-8",
        )

        with self.assertRaises(ValidationError):
            self._load({})


if __name__ == "__main__":
    unittest.main()
