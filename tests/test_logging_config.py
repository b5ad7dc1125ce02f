"""Tests for the logging configuration."""

import json
import logging
import sys
from unittest.mock import patch

from eculink.config import logging as log_mod
from eculink.config.model import RuntimeConfig


def _record(**extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        name="eculink.transport",
        level=logging.WARNING,
        pathname=__file__,
        lineno=1,
        msg="lost %s",
        args=("link",),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_trims_prefix_and_serialises_extras() -> None:
    record = _record(frame=b"\x01\xff", kind="warning", attempt=3, _private="hidden", custom_obj=object())

    payload = json.loads(log_mod.StructuredLogFormatter().format(record))

    assert payload["logger"] == "transport"
    assert payload["level"] == "WARNING"
    assert payload["message"] == "lost link"
    assert payload["ts"].endswith("Z")
    assert payload["extra"]["frame"] == "\x01\\xff"
    assert payload["extra"]["kind"] == "warning"
    assert payload["extra"]["attempt"] == 3
    assert "_private" not in payload["extra"]
    assert "object" in payload["extra"]["custom_obj"]


def test_formatter_includes_exception() -> None:
    try:
        raise RuntimeError("kaboom")
    except RuntimeError:
        record = logging.LogRecord("other", logging.ERROR, __file__, 1, "failed", (), exc_info=sys.exc_info())

    payload = json.loads(log_mod.StructuredLogFormatter().format(record))

    assert payload["logger"] == "other"
    assert "kaboom" in payload["exception"]


def test_configure_logging_levels() -> None:
    with patch("eculink.config.logging.dictConfig") as mock_dict_config:
        log_mod.configure_logging(RuntimeConfig(debug_logging=True))

    config_arg = mock_dict_config.call_args[0][0]
    assert config_arg["root"]["level"] == "DEBUG"
    assert config_arg["handlers"]["eculink"]["level"] == "DEBUG"
    assert config_arg["loggers"]["websockets"]["level"] == "WARNING"
    assert config_arg["loggers"]["transitions"]["level"] == "WARNING"


def test_configure_logging_installs_structured_handler() -> None:
    log_mod.configure_logging(RuntimeConfig())

    root = logging.getLogger()
    assert root.level == logging.INFO
    assert any(isinstance(handler.formatter, log_mod.StructuredLogFormatter) for handler in root.handlers)


def test_build_handler_defaults_to_stream(monkeypatch) -> None:
    monkeypatch.delenv("ECULINK_LOG_SYSLOG", raising=False)

    handler = log_mod._build_handler()

    assert isinstance(handler, logging.StreamHandler)


def test_build_handler_uses_syslog_socket(monkeypatch, tmp_path) -> None:
    fake_socket = tmp_path / "log"
    fake_socket.touch()
    monkeypatch.setenv("ECULINK_LOG_SYSLOG", "1")

    with patch("eculink.config.logging.SYSLOG_SOCKET", fake_socket):
        with patch("eculink.config.logging.SysLogHandler") as mock_handler:
            handler = log_mod._build_handler()

    mock_handler.assert_called_once()
    assert mock_handler.call_args.kwargs["address"] == str(fake_socket)
    assert handler is mock_handler.return_value
    assert handler.ident == "eculink "


def test_build_handler_falls_back_without_socket(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("ECULINK_LOG_SYSLOG", "yes")

    with patch("eculink.config.logging.SYSLOG_SOCKET", tmp_path / "missing"):
        with patch("eculink.config.logging.SYSLOG_SOCKET_FALLBACK", tmp_path / "also-missing"):
            handler = log_mod._build_handler()

    assert isinstance(handler, logging.StreamHandler)
