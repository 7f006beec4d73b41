"""
Logging utilities for the REST client.

This module provides logging configuration, the request logger interface
the client reports to, and a console implementation of it.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Iterable, Optional, Tuple
from urllib.parse import unquote_plus

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = 'restclient'
MAX_LOGGED_BODY = 1024


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[str] = None,
    verbose: bool = False,
) -> logging.Logger:
    """Set up logging for the application.

    Args:
        level: Logging level (e.g., logging.INFO, logging.DEBUG)
        log_file: Optional file path to write logs to
        verbose: Whether to enable verbose logging

    Returns:
        Configured logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG if verbose else level)

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    console = Console(stderr=True)
    console_handler = RichHandler(
        console=console,
        show_path=True,
        show_time=True,
        markup=False,
        rich_tracebacks=True,
    )
    console_handler.setLevel(logging.DEBUG if verbose else level)
    console_handler.setFormatter(logging.Formatter('%(message)s', datefmt='%Y-%m-%d %H:%M:%S'))
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(filename)s:%(lineno)d - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        file_handler.setFormatter(file_formatter)
        file_handler.setLevel(logging.DEBUG)
        logger.addHandler(file_handler)

    return logger


def get_logger() -> logging.Logger:
    """Get the application logger.

    Returns:
        Application logger
    """
    return logging.getLogger(LOGGER_NAME)


def format_body(body: Optional[bytes]) -> str:
    """Render a body for the log, truncating long payloads."""
    if not body:
        return ""
    text = body.decode('utf-8', errors='replace')
    if len(text) > MAX_LOGGED_BODY:
        return f"{text[:MAX_LOGGED_BODY]}... ({len(body)} bytes)"
    return text


class RequestLogger(ABC):
    """Receives the requests and responses going through a RestClient."""

    @abstractmethod
    def is_enabled(self) -> bool:
        pass

    @abstractmethod
    def log(self, message: str) -> None:
        pass

    @abstractmethod
    def log_request(self, connection: Any, content: str) -> None:
        """Log an outgoing request.

        Args:
            connection: The prepared handler connection
            content: The request body, URL-decoded, or an empty string
        """
        pass

    @abstractmethod
    def log_response(self, response: Any) -> None:
        """Log a response. response may be None when nothing was received."""
        pass


class ConsoleRequestLogger(RequestLogger):
    """Request logger writing through the 'restclient' logging logger.

    Everything is logged at DEBUG level, so output depends on how
    setup_logging() (or the host application) configured the logger.
    """

    def __init__(self, enabled: bool = True, logger: Optional[logging.Logger] = None) -> None:
        self._enabled = enabled
        self.logger = logger or get_logger()

    def is_enabled(self) -> bool:
        return self._enabled

    def log(self, message: str) -> None:
        self.logger.debug(message)

    def log_request(self, connection: Any, content: str) -> None:
        if not self.logger.isEnabledFor(logging.DEBUG):
            return
        self.log("=== HTTP Request ===")
        self.log(f"{connection.method}  {connection.url}")
        self._log_headers(connection.headers.items())
        if content:
            if len(content) > MAX_LOGGED_BODY:
                content = f"{content[:MAX_LOGGED_BODY]}... ({len(content)} chars)"
            self.log(f"Content: {content}")

    def log_response(self, response: Any) -> None:
        if response is None or not self.logger.isEnabledFor(logging.DEBUG):
            return
        self.log("=== HTTP Response ===")
        self.log(f"Receive url: {response.url}")
        self.log(f"Status: {response.status} ({response.elapsed:.0f} ms)")
        self._log_headers(response.headers)
        self.log(f"Content:\n{format_body(response.body)}")

    def _log_headers(self, headers: Iterable[Tuple[str, str]]) -> None:
        for name, value in headers:
            self.log(f"  {name}: {value}")


def decode_request_content(body: Optional[bytes]) -> str:
    """Request body as logged: URL-decoded UTF-8 text."""
    if body is None:
        return ""
    return unquote_plus(body.decode('utf-8', errors='replace'))
