"""Shared fixtures and the mock request handler for restclient tests."""

import io
from typing import Dict, List, Optional, Tuple

import pytest
from click.testing import CliRunner

from restclient.clients.base import (
    AsyncInputStream,
    AsyncOutputStream,
    Connection,
    InputStream,
    OutputStream,
    ProtocolError,
    RequestHandler,
)
from restclient.clients.rest import RestClient
from restclient.utils.logging import ConsoleRequestLogger, RequestLogger

BASE_URL = "http://api.example.com"


class MockInput(InputStream):
    def __init__(self, status, body=b"", headers=(), url="", known_length=True, read_error=None,
                 declared_length=None):
        self.status = status
        self.reason = ""
        self.url = url
        self.headers = list(headers)
        self.content_length = len(body) if known_length else None
        if declared_length is not None:
            self.content_length = declared_length
        self.closed = False
        self._data = io.BytesIO(body)
        self._read_error = read_error

    def read(self, size=-1):
        if self._read_error is not None:
            raise self._read_error
        return self._data.read(size)

    def close(self):
        self.closed = True


class MockAsyncInput(AsyncInputStream):
    def __init__(self, status, body=b"", headers=(), url="", known_length=True, read_error=None,
                 declared_length=None):
        self.status = status
        self.reason = ""
        self.url = url
        self.headers = list(headers)
        self.content_length = len(body) if known_length else None
        if declared_length is not None:
            self.content_length = declared_length
        self.closed = False
        self._data = io.BytesIO(body)
        self._read_error = read_error

    async def read(self, size=-1):
        if self._read_error is not None:
            raise self._read_error
        return self._data.read(size)

    async def close(self):
        self.closed = True


class MockOutput(OutputStream):
    def __init__(self, write_error=None):
        self.data = bytearray()
        self.closed = False
        self._write_error = write_error

    def write(self, data):
        if self._write_error is not None:
            raise self._write_error
        self.data.extend(data)

    def close(self):
        self.closed = True


class MockAsyncOutput(AsyncOutputStream):
    def __init__(self, write_error=None):
        self.data = bytearray()
        self.closed = False
        self._write_error = write_error

    async def write(self, data):
        if self._write_error is not None:
            raise self._write_error
        self.data.extend(data)

    async def close(self):
        self.closed = True


class MockRequestHandler(RequestHandler):
    """In-memory request handler with canned responses per (method, url).

    Unknown routes answer 404. Setting `failure` makes open_input raise it,
    `write_error` makes body writes raise it, and `read_error` makes reading
    the response body raise it.
    """

    def __init__(self):
        self.routes: Dict[Tuple[str, str], dict] = {}
        self.connections: List[Connection] = []
        self.bodies: List[Optional[bytes]] = []
        self.closed: List[Connection] = []
        self.errors = []
        self.failure: Optional[BaseException] = None
        self.write_error: Optional[BaseException] = None
        self.read_error: Optional[BaseException] = None
        self.handler_closed = False

    def route(self, method, url, status=200, body=b"", headers=(), known_length=True, declared_length=None):
        self.routes[(method, url)] = {
            "status": status,
            "body": body,
            "headers": headers,
            "known_length": known_length,
            "declared_length": declared_length,
        }

    @property
    def last(self) -> Connection:
        return self.connections[-1]

    def prepare_connection(self, connection, method, content_type, accept, read_timeout, connect_timeout):
        connection.method = method
        connection.read_timeout = read_timeout
        connection.connect_timeout = connect_timeout
        if content_type:
            connection.set_header("Content-Type", content_type)
        if accept:
            connection.set_header("Accept", accept)
        connection.set_header("Accept-Charset", "UTF-8")
        self.connections.append(connection)

    def open_output(self, connection, content_length):
        connection.content_length = content_length
        connection.state = MockOutput(self.write_error)
        return connection.state

    async def open_output_async(self, connection, content_length):
        connection.content_length = content_length
        connection.state = MockAsyncOutput(self.write_error)
        return connection.state

    def open_input(self, connection):
        return self._respond(connection, MockInput)

    async def open_input_async(self, connection):
        return self._respond(connection, MockAsyncInput)

    def close_connection(self, connection):
        self.closed.append(connection)

    async def close_connection_async(self, connection):
        self.closed.append(connection)

    def close(self):
        self.handler_closed = True

    def on_error(self, error):
        self.errors.append(error)
        return super().on_error(error)

    def _respond(self, connection, stream_type):
        if self.failure is not None:
            raise self.failure
        output = connection.state
        self.bodies.append(bytes(output.data) if output is not None else None)

        route = self.routes.get((connection.method, connection.url))
        if route is None:
            route = {"status": 404, "body": b"Not Found", "headers": (), "known_length": True,
                     "declared_length": None}
        stream = stream_type(
            route["status"],
            route["body"],
            route["headers"],
            connection.url,
            route["known_length"],
            self.read_error,
            route["declared_length"],
        )
        if stream.status >= 400:
            raise ProtocolError(stream)
        return stream


class RecordingLogger(RequestLogger):
    """Request logger keeping everything it receives."""

    def __init__(self, fail=False):
        self.fail = fail
        self.messages = []
        self.requests = []
        self.responses = []

    def is_enabled(self):
        return True

    def log(self, message):
        self.messages.append(message)

    def log_request(self, connection, content):
        if self.fail:
            raise RuntimeError("logger broke")
        self.requests.append((connection.method, connection.url, content))

    def log_response(self, response):
        if self.fail:
            raise RuntimeError("logger broke")
        self.responses.append(response)


class CountingStream(io.BytesIO):
    """BytesIO counting how many times close() is called."""

    def __init__(self, data=b""):
        super().__init__(data)
        self.close_calls = 0

    def close(self):
        self.close_calls += 1
        super().close()


class FailingStream(io.BytesIO):
    """Stream whose reads fail after construction."""

    def __init__(self, data=b"partial"):
        super().__init__(data)
        self.close_calls = 0

    def read(self, size=-1):
        raise OSError("disk read failed")

    def close(self):
        self.close_calls += 1
        super().close()


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def handler():
    return MockRequestHandler()


@pytest.fixture
def recording_logger():
    return RecordingLogger()


@pytest.fixture
def client(handler, recording_logger):
    return RestClient(BASE_URL, handler, recording_logger)


@pytest.fixture
def console_client(handler):
    return RestClient(BASE_URL, handler, ConsoleRequestLogger(enabled=True))
