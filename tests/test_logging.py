"""Tests for logging setup and the console request logger."""

import logging

import pytest

from restclient.clients.base import Connection
from restclient.http.response import HttpResponse
from restclient.utils.logging import (
    LOGGER_NAME,
    MAX_LOGGED_BODY,
    ConsoleRequestLogger,
    decode_request_content,
    format_body,
    get_logger,
    setup_logging,
)


@pytest.fixture
def restore_logger():
    logger = logging.getLogger(LOGGER_NAME)
    handlers = logger.handlers[:]
    level = logger.level
    yield logger
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()
    for handler in handlers:
        logger.addHandler(handler)
    logger.setLevel(level)


class TestSetupLogging:
    def test_console_and_file_handlers(self, tmp_path, restore_logger):
        log_file = tmp_path / "client.log"

        logger = setup_logging(level=logging.INFO, log_file=str(log_file))
        logger.info("hello from the client")

        assert logger is get_logger()
        assert len(logger.handlers) == 2
        for handler in logger.handlers:
            handler.flush()
        assert "hello from the client" in log_file.read_text()

    def test_repeated_setup_replaces_handlers(self, restore_logger):
        setup_logging()
        logger = setup_logging(verbose=True)
        assert len(logger.handlers) == 1
        assert logger.level == logging.DEBUG


class TestConsoleRequestLogger:
    def test_request_and_response_logged_at_debug(self, caplog):
        connection = Connection(url="http://api.example.com/a", method="POST")
        connection.set_header("Accept", "application/json")
        response = HttpResponse.build(200, "http://api.example.com/a", [("Server", "test")], b"done", 3.0)
        request_logger = ConsoleRequestLogger()

        with caplog.at_level(logging.DEBUG, logger=LOGGER_NAME):
            request_logger.log_request(connection, "From=Arsene")
            request_logger.log_response(response)

        assert "=== HTTP Request ===" in caplog.text
        assert "POST  http://api.example.com/a" in caplog.text
        assert "Accept: application/json" in caplog.text
        assert "Content: From=Arsene" in caplog.text
        assert "=== HTTP Response ===" in caplog.text
        assert "Status: 200" in caplog.text
        assert "done" in caplog.text

    def test_nothing_logged_above_debug(self, caplog):
        with caplog.at_level(logging.INFO, logger=LOGGER_NAME):
            ConsoleRequestLogger().log_request(Connection(url="http://x"), "body")
        assert caplog.text == ""

    def test_missing_response_is_ignored(self, caplog):
        with caplog.at_level(logging.DEBUG, logger=LOGGER_NAME):
            ConsoleRequestLogger().log_response(None)
        assert caplog.text == ""

    def test_enabled_flag(self):
        assert ConsoleRequestLogger().is_enabled()
        assert not ConsoleRequestLogger(enabled=False).is_enabled()

    def test_long_bodies_are_truncated(self):
        text = format_body(b"a" * (MAX_LOGGED_BODY + 10))
        assert text.startswith("a" * MAX_LOGGED_BODY)
        assert text.endswith(f"({MAX_LOGGED_BODY + 10} bytes)")
        assert format_body(None) == ""

    def test_request_content_is_url_decoded(self):
        assert decode_request_content(b"To=%2B233248067917&Content=Hello+there") == (
            "To=+233248067917&Content=Hello there"
        )
        assert decode_request_content(None) == ""
