import os
import unittest
from unittest.mock import patch

from pydantic import ValidationError

from quotefeed.config.settings import Settings
from quotefeed.services.session import SessionOrchestrator


class TestQuoteFeedSettings(unittest.TestCase):
    def test_defaults_without_env(self):
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings.from_env()

        self.assertEqual(settings.INSTRUMENTS, ["945629"])
        self.assertEqual(settings.VENDOR_HOST, "forexpros.com")
        self.assertEqual(settings.URL_SCHEME, "wss")
        self.assertEqual(settings.TZ_ID, "8")
        self.assertEqual(settings.HEARTBEAT_SEC, 3.2)
        self.assertEqual(settings.RECONNECT_MAX_RETRIES, 5)

    def test_instruments_parse_comma_separated_values(self):
        with patch.dict(os.environ, {"QUOTEFEED_INSTRUMENTS": " 945629, 8984 ,, 1175153 "}, clear=True):
            settings = Settings.from_env()

        self.assertEqual(settings.INSTRUMENTS, ["945629", "8984", "1175153"])

    def test_blank_instruments_fall_back_to_default(self):
        with patch.dict(os.environ, {"QUOTEFEED_INSTRUMENTS": " , "}, clear=True):
            settings = Settings.from_env()

        self.assertEqual(settings.INSTRUMENTS, ["945629"])

    def test_env_overrides_are_typed(self):
        env = {
            "QUOTEFEED_VENDOR_HOST": "example.test",
            "QUOTEFEED_URL_SCHEME": "ws",
            "QUOTEFEED_HEARTBEAT_SEC": "1.5",
            "QUOTEFEED_RECONNECT_MAX_RETRIES": "7",
            "QUOTEFEED_STALE_AFTER_SEC": "30",
        }
        with patch.dict(os.environ, env, clear=True):
            settings = Settings.from_env()

        self.assertEqual(settings.VENDOR_HOST, "example.test")
        self.assertEqual(settings.URL_SCHEME, "ws")
        self.assertEqual(settings.HEARTBEAT_SEC, 1.5)
        self.assertEqual(settings.RECONNECT_MAX_RETRIES, 7)
        self.assertEqual(settings.STALE_AFTER_SEC, 30)

    def test_invalid_values_fail_validation(self):
        for name, value in (
            ("QUOTEFEED_HEARTBEAT_SEC", "0"),
            ("QUOTEFEED_HEARTBEAT_SEC", "fast"),
            ("QUOTEFEED_URL_SCHEME", "http"),
            ("QUOTEFEED_RECONNECT_MAX_RETRIES", "0"),
        ):
            with self.subTest(name=name, value=value):
                with patch.dict(os.environ, {name: value}, clear=True):
                    with self.assertRaises(ValidationError):
                        Settings.from_env()

    def test_orchestrator_from_settings(self):
        settings = Settings(VENDOR_HOST="example.test", URL_SCHEME="ws", HEARTBEAT_SEC=2.0, TZ_ID="12")

        orchestrator = SessionOrchestrator.from_settings(settings)

        self.assertEqual(orchestrator.heartbeat_interval_sec, 2.0)
        self.assertEqual(orchestrator.tz_id, "12")
        self.assertEqual(orchestrator.transport.connect_timeout_sec, settings.CONNECT_TIMEOUT_SEC)
        self.assertTrue(orchestrator.endpoint_factory().url.startswith("ws://stream2"))
        self.assertIn(".example.test/echo/", orchestrator.endpoint_factory().url)


if __name__ == "__main__":
    unittest.main()
