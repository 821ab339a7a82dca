import unittest
from pathlib import Path

from coursedesk.config import DEFAULT_BASE_URL, DEFAULT_TIMEOUT, load_settings
from coursedesk.errors import ConfigError


class TestSettings(unittest.TestCase):
    def test_defaults(self) -> None:
        s = load_settings({})
        self.assertEqual(s.base_url, DEFAULT_BASE_URL)
        self.assertEqual(s.timeout, DEFAULT_TIMEOUT)
        self.assertIsNone(s.refresh_timeout)
        self.assertEqual(s.token_path.name, "session.json")
        self.assertEqual(s.log_level, "WARNING")

    def test_from_env(self) -> None:
        s = load_settings(
            {
                "COURSEDESK_BASE_URL": "https://uni.example/api/",
                "COURSEDESK_TOKEN_FILE": "/tmp/cd/session.json",
                "COURSEDESK_TIMEOUT": "5",
                "COURSEDESK_REFRESH_TIMEOUT": "2.5",
                "COURSEDESK_LOG_LEVEL": "debug",
            }
        )
        self.assertEqual(s.base_url, "https://uni.example/api")
        self.assertEqual(s.token_path, Path("/tmp/cd/session.json"))
        self.assertEqual(s.timeout, 5.0)
        self.assertEqual(s.refresh_timeout, 2.5)
        self.assertEqual(s.log_level, "DEBUG")

    def test_invalid_numbers(self) -> None:
        with self.assertRaises(ConfigError):
            load_settings({"COURSEDESK_TIMEOUT": "soon"})
        with self.assertRaises(ConfigError):
            load_settings({"COURSEDESK_REFRESH_TIMEOUT": "-1"})

    def test_overrides_skip_none(self) -> None:
        s = load_settings({}).with_overrides(base_url="http://other/api", token_path=None)
        self.assertEqual(s.base_url, "http://other/api")
        self.assertEqual(s.token_path, load_settings({}).token_path)


if __name__ == "__main__":
    unittest.main()
