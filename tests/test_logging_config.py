import json
import logging
import unittest

from config.logging_config import JsonFormatter, SecretRedactionFilter, redact


class RedactionTests(unittest.TestCase):
    def test_plaid_tokens_are_masked(self):
        text = "exchanged public-sandbox-5c224a01-8314-4491-a06f-39e193d5cddc for access-production-8ab976e6-64bc-4b38"
        cleaned = redact(text)
        self.assertNotIn("5c224a01", cleaned)
        self.assertNotIn("8ab976e6", cleaned)
        self.assertIn("access-production-***", cleaned)

    def test_filter_rewrites_formatted_message(self):
        record = logging.LogRecord(
            "test", logging.INFO, __file__, 1,
            "token=%s", ("access-sandbox-8ab976e6-64bc-4b38-98f7-731e7a349970",), None,
        )
        self.assertTrue(SecretRedactionFilter().filter(record))
        self.assertEqual(record.getMessage(), "token=access-sandbox-***")

    def test_json_formatter_includes_request_id(self):
        record = logging.LogRecord("test", logging.INFO, __file__, 1, "hello", None, None)
        record.extra = {"request_id": "abc123"}
        payload = json.loads(JsonFormatter().format(record))
        self.assertEqual(payload["message"], "hello")
        self.assertEqual(payload["request_id"], "abc123")


if __name__ == "__main__":
    unittest.main()
