import unittest

from pydantic import ValidationError

from config.types import N8nConnectionSettings


class TestN8nConnectionSettings(unittest.TestCase):
    """Test cases for the N8nConnectionSettings class."""

    def test_defaults(self):
        settings = N8nConnectionSettings()
        self.assertEqual(settings.api_url, "http://localhost:5678/api/v1")
        self.assertIsNone(settings.api_key)
        self.assertEqual(settings.request_timeout, 30)
        self.assertEqual(settings.max_retries, 0)
        self.assertEqual(settings.execution_timeout, 300)

    def test_string_values_are_coerced(self):
        settings = N8nConnectionSettings(request_timeout="10", max_retries="3")
        self.assertEqual(settings.request_timeout, 10)
        self.assertEqual(settings.max_retries, 3)

    def test_rejects_non_positive_timeout(self):
        with self.assertRaises(ValidationError):
            N8nConnectionSettings(request_timeout=0)

    def test_rejects_negative_retries(self):
        with self.assertRaises(ValidationError):
            N8nConnectionSettings(max_retries=-1)


if __name__ == "__main__":
    unittest.main()
