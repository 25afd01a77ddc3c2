"""Tests for log level resolution and sensitive data masking."""

import logging

import pytest

from common.logging_config import SensitiveDataFilter, resolve_log_level


def _record(msg, args=()):
    return logging.LogRecord("secretfs", logging.INFO, __file__, 1, msg, args, None)


@pytest.mark.parametrize("message", [
    "Authorization: Bearer eyJhbGciOi.secret",
    "token=abc123",
    "payload data.tar.gz: H4sIAAAAAAAA",
])
def test_sensitive_values_masked(message):
    record = _record(message)

    SensitiveDataFilter().filter(record)

    assert "***MASKED***" in record.msg
    for secret in ("eyJhbGciOi.secret", "abc123", "H4sIAAAAAAAA"):
        assert secret not in record.msg


def test_args_masked():
    record = _record("request %s", ("bearer abc",))

    SensitiveDataFilter().filter(record)

    assert record.args == ("bearer ***MASKED***",)


def test_plain_message_untouched():
    record = _record("wrote secret: fs-b1-00000 size: 10 bytes")

    assert SensitiveDataFilter().filter(record) is True
    assert record.msg == "wrote secret: fs-b1-00000 size: 10 bytes"


def test_debug_overrides_level(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "ERROR")

    assert resolve_log_level(debug=True) == logging.DEBUG
    assert resolve_log_level() == logging.ERROR
    assert resolve_log_level("warning") == logging.WARNING


def test_unknown_level_falls_back_to_info(monkeypatch):
    monkeypatch.delenv("LOG_LEVEL", raising=False)

    assert resolve_log_level() == logging.INFO
    assert resolve_log_level("chatty") == logging.INFO
