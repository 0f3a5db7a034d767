import os
import unittest
from unittest import mock

from config.settings import Settings, load_settings

BASE_ENV = {
    "PLAID_CLIENT_ID": "client",
    "PLAID_SECRET": "secret",
    "JWT_SECRET": "jwt",
    "DATABASE_URL": "postgresql://localhost/tradelog",
}


def _load(env):
    with mock.patch.dict(os.environ, env, clear=True):
        return load_settings(_env_file=None)


class LoadSettingsTests(unittest.TestCase):
    def test_missing_required_vars_are_fatal_and_listed(self):
        env = dict(BASE_ENV)
        del env["PLAID_SECRET"]
        env["JWT_SECRET"] = "  "

        with self.assertRaises(RuntimeError) as ctx:
            _load(env)

        self.assertIn("PLAID_SECRET", str(ctx.exception))
        self.assertIn("JWT_SECRET", str(ctx.exception))
        self.assertNotIn("DATABASE_URL", str(ctx.exception))

    def test_defaults(self):
        settings = _load(BASE_ENV)

        self.assertIsInstance(settings, Settings)
        self.assertEqual(settings.plaid_env, "sandbox")
        self.assertEqual(settings.allowed_origins, ("tradelog://",))
        self.assertEqual(settings.plaid_country_codes, ("US",))
        self.assertEqual(settings.apple_app_ids, ())
        self.assertEqual(settings.jwt_expires_in, "7d")
        self.assertEqual(settings.rate_limit, "100/900 seconds")

    def test_optional_overrides(self):
        settings = _load(dict(
            BASE_ENV,
            PLAID_ENV="Production",
            ALLOWED_ORIGINS="tradelog://, https://tradelog.app ,",
            RATE_LIMIT_WINDOW_MS="60000",
            RATE_LIMIT_MAX_REQUESTS="10",
            PLAID_COUNTRY_CODES="US,CA",
            APPLE_APP_IDS="ABCDE12345.app.tradelog",
        ))

        self.assertEqual(settings.plaid_env, "production")
        self.assertEqual(settings.allowed_origins, ("tradelog://", "https://tradelog.app"))
        self.assertEqual(settings.rate_limit, "10/60 seconds")
        self.assertEqual(settings.plaid_country_codes, ("US", "CA"))
        self.assertEqual(settings.apple_app_ids, ("ABCDE12345.app.tradelog",))

    def test_empty_origin_list_keeps_default(self):
        settings = _load(dict(BASE_ENV, ALLOWED_ORIGINS=" , "))

        self.assertEqual(settings.allowed_origins, ("tradelog://",))

    def test_unknown_plaid_env_is_fatal(self):
        with self.assertRaises(RuntimeError) as ctx:
            _load(dict(BASE_ENV, PLAID_ENV="staging"))

        self.assertIn("PLAID_ENV", str(ctx.exception))

    def test_non_numeric_rate_limit_is_fatal(self):
        with self.assertRaises(RuntimeError) as ctx:
            _load(dict(BASE_ENV, RATE_LIMIT_MAX_REQUESTS="lots"))

        self.assertIn("RATE_LIMIT_MAX_REQUESTS", str(ctx.exception))

    def test_settings_are_immutable(self):
        settings = _load(BASE_ENV)

        with self.assertRaises(Exception):
            settings.jwt_secret = "other"


if __name__ == "__main__":
    unittest.main()
