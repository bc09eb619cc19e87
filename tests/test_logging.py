"""
Tests for log formatting and token redaction.
"""

import json
import logging

from saveplate.core.logging_config import CustomJsonFormatter, TokenRedactionFilter
from saveplate.core.security import TokenType


def make_record(msg, args=(), level=logging.INFO):
    return logging.LogRecord("saveplate.test", level, __file__, 10, msg, args, None)


class TestTokenRedaction:

    def test_jwt_in_message_redacted(self, codec):
        token = codec.issue(1, "a@example.com", TokenType.EMAIL)
        record = make_record(f"link http://localhost:3000/callback/{token}")

        assert TokenRedactionFilter().filter(record) is True
        assert token not in record.getMessage()
        assert "[redacted-token]" in record.getMessage()

    def test_jwt_in_args_redacted(self, codec):
        token = codec.issue(1, "a@example.com", TokenType.NORMAL)
        record = make_record("token was %s", (token,))

        TokenRedactionFilter().filter(record)

        assert record.getMessage() == "token was [redacted-token]"

    def test_plain_message_untouched(self):
        record = make_record("user %s signed in", ("a@example.com",))

        TokenRedactionFilter().filter(record)

        assert record.args == ("a@example.com",)
        assert record.getMessage() == "user a@example.com signed in"


class TestJsonFormatter:

    def test_standard_fields(self):
        formatter = CustomJsonFormatter('%(message)s', service="saveplate-auth", environment="test")

        line = json.loads(formatter.format(make_record("hello")))

        assert line["message"] == "hello"
        assert line["level"] == "INFO"
        assert line["logger"] == "saveplate.test"
        assert line["service"] == "saveplate-auth"
        assert line["environment"] == "test"
        assert "line" not in line

    def test_location_on_warnings(self):
        formatter = CustomJsonFormatter('%(message)s')

        line = json.loads(formatter.format(make_record("careful", level=logging.WARNING)))

        assert line["line"] == 10
