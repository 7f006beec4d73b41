"""
HTTP/1.1 request handler.

This module provides the default request handler, built on httpx. Blocking
calls share one httpx.Client; non-blocking calls use one httpx.AsyncClient
per event loop. Redirects are followed and responses report the final URL.
"""

import asyncio
import weakref
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Union

import httpx

from restclient.clients.base import (
    AsyncInputStream,
    AsyncOutputStream,
    Connection,
    InputStream,
    OutputStream,
    ProtocolError,
    RequestHandler,
)
from restclient.utils import tls
from restclient.utils.logging import get_logger

USER_AGENT = 'basic-rest-client/0.1.0'
DEFAULT_CONNECTION_LIMIT = 100
MAX_REDIRECTS = 50


def _host_header(url: str) -> str:
    return httpx.URL(url).netloc.decode('ascii')


def _response_has_body(method: str, status: int) -> bool:
    return not (method == 'HEAD' or 100 <= status < 200 or status in (204, 304))


def _declared_length(response: httpx.Response) -> Optional[int]:
    """Body length announced by the response, or None when only EOF tells."""
    if not _response_has_body(response.request.method, response.status_code):
        return 0
    # Decoded bodies no longer match the announced length
    if 'content-encoding' in response.headers:
        return None
    value = response.headers.get('content-length')
    try:
        return int(value) if value is not None else None
    except ValueError:
        return None


def _take(buffer: bytearray, size: int) -> bytes:
    if size < 0 or size > len(buffer):
        size = len(buffer)
    data = bytes(buffer[:size])
    del buffer[:size]
    return data


@contextmanager
def _transport_errors(action: str) -> Iterator[None]:
    """Re-raise httpx failures as the builtin errors every handler raises."""
    try:
        yield
    except httpx.TimeoutException as e:
        raise TimeoutError(f"{action}: {str(e) or 'timed out'}") from e
    except httpx.RequestError as e:
        raise ConnectionError(f"{action}: {str(e) or type(e).__name__}") from e


class _RequestState:
    def __init__(self) -> None:
        self.body: Optional[bytearray] = None
        self.response: Optional[httpx.Response] = None


class _BufferedOutput(OutputStream):
    """Collects the request body, which goes out together with the head."""

    def __init__(self, buffer: bytearray) -> None:
        self._buffer = buffer

    def write(self, data: bytes) -> None:
        self._buffer.extend(data)

    def close(self) -> None:
        pass


class _AsyncBufferedOutput(AsyncOutputStream):
    def __init__(self, buffer: bytearray) -> None:
        self._buffer = buffer

    async def write(self, data: bytes) -> None:
        self._buffer.extend(data)

    async def close(self) -> None:
        pass


def _describe(stream: Union[InputStream, AsyncInputStream], response: httpx.Response) -> None:
    stream.status = response.status_code
    stream.reason = response.reason_phrase
    stream.url = str(response.url)
    stream.headers = list(response.headers.multi_items())
    stream.content_length = _declared_length(response)


class _ResponseInput(InputStream):
    def __init__(self, response: httpx.Response) -> None:
        self._response = response
        self._chunks = response.iter_bytes()
        self._buffer = bytearray()
        _describe(self, response)

    def read(self, size: int = -1) -> bytes:
        with _transport_errors("Error receiving data"):
            while size < 0 or len(self._buffer) < size:
                chunk = next(self._chunks, None)
                if chunk is None:
                    break
                self._buffer.extend(chunk)
        return _take(self._buffer, size)

    def close(self) -> None:
        self._response.close()


class _AsyncResponseInput(AsyncInputStream):
    def __init__(self, response: httpx.Response) -> None:
        self._response = response
        self._chunks = response.aiter_bytes()
        self._buffer = bytearray()
        _describe(self, response)

    async def read(self, size: int = -1) -> bytes:
        with _transport_errors("Error receiving data"):
            while size < 0 or len(self._buffer) < size:
                chunk = await anext(self._chunks, None)
                if chunk is None:
                    break
                self._buffer.extend(chunk)
        return _take(self._buffer, size)

    async def close(self) -> None:
        await self._response.aclose()


class HttpRequestHandler(RequestHandler):
    """Default request handler speaking HTTP/1.1 through httpx.

    Features:
    - Blocking requests through httpx.Client
    - Non-blocking requests through httpx.AsyncClient
    - A cap on concurrently open connections (httpx.Limits)
    - Redirect following
    - TLS with optional verification or certificate pinning
    """

    def __init__(
        self,
        connection_limit: int = DEFAULT_CONNECTION_LIMIT,
        verify_ssl: bool = False,
        certificate_file: Optional[Union[str, Path]] = None,
        user_agent: str = USER_AGENT,
    ) -> None:
        """Initialize a new request handler.

        Args:
            connection_limit: Maximum number of connections open at once
            verify_ssl: Whether to verify SSL certificates
            certificate_file: Certificate (PEM or DER) the server must present
            user_agent: Value of the User-Agent header
        """
        if connection_limit < 1:
            raise ValueError("connection_limit must be at least 1")
        self.connection_limit = connection_limit
        self.verify_ssl = verify_ssl
        self.certificate_file = certificate_file
        self.user_agent = user_agent
        self.logger = get_logger()

        self._pinned_certificate = (
            tls.load_pinned_certificate(certificate_file) if certificate_file else None
        )
        self._ssl_context = None
        self._client: Optional[httpx.Client] = None
        self._async_clients: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, httpx.AsyncClient]" = (
            weakref.WeakKeyDictionary()
        )

    @property
    def ssl_context(self):
        if self._ssl_context is None:
            self._ssl_context = tls.get_http1_ssl_context(verify=self.verify_ssl)
        return self._ssl_context

    def _client_options(self) -> Dict[str, Any]:
        return {
            'verify': self.ssl_context,
            'limits': httpx.Limits(max_connections=self.connection_limit),
            'follow_redirects': True,
            'max_redirects': MAX_REDIRECTS,
            # Proxy and certificate settings come from the handler, not the environment
            'trust_env': False,
        }

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(**self._client_options())
        return self._client

    def _async_client(self) -> httpx.AsyncClient:
        # An AsyncClient's pool belongs to the loop it first ran on
        loop = asyncio.get_running_loop()
        client = self._async_clients.get(loop)
        if client is None:
            client = httpx.AsyncClient(**self._client_options())
            self._async_clients[loop] = client
        return client

    def prepare_connection(
        self,
        connection: Connection,
        method: str,
        content_type: Optional[str],
        accept: Optional[str],
        read_timeout: float,
        connect_timeout: float,
    ) -> None:
        connection.method = method.upper()
        connection.read_timeout = read_timeout
        connection.connect_timeout = connect_timeout
        connection.state = _RequestState()

        connection.set_header('Host', _host_header(connection.url))
        connection.set_header('User-Agent', self.user_agent)
        if content_type and content_type.strip():
            connection.set_header('Content-Type', content_type.strip())
        if accept and accept.strip():
            connection.set_header('Accept', accept.strip())
        connection.set_header('Accept-Charset', 'UTF-8')
        connection.set_header('Connection', 'close')

    def _build_request(
        self,
        client: Union[httpx.Client, httpx.AsyncClient],
        connection: Connection,
        trace,
    ) -> httpx.Request:
        state = self._state(connection)
        content = bytes(state.body) if state.body is not None else None
        try:
            return client.build_request(
                connection.method,
                connection.url,
                headers=connection.headers,
                content=content,
                timeout=httpx.Timeout(
                    connection.read_timeout,
                    connect=connection.connect_timeout,
                    pool=connection.connect_timeout,
                ),
                extensions={'trace': trace},
            )
        except httpx.InvalidURL as e:
            raise ValueError(f"Invalid request URL {connection.url!r}: {e}") from e

    def _state(self, connection: Connection) -> _RequestState:
        if not isinstance(connection.state, _RequestState):
            connection.state = _RequestState()
        return connection.state

    def _received(self, response: httpx.Response) -> None:
        for previous in response.history:
            self.logger.debug(f"Redirected: {previous.status_code} {previous.url}")
        self.logger.debug(f"Received response: {response.status_code} {response.reason_phrase}")
        for name, value in response.headers.multi_items():
            self.logger.debug(f"  {name}: {value}")

    # Blocking path

    def open_output(self, connection: Connection, content_length: int) -> OutputStream:
        state = self._state(connection)
        state.body = bytearray()
        connection.content_length = content_length
        return _BufferedOutput(state.body)

    def open_input(self, connection: Connection) -> InputStream:
        state = self._state(connection)
        request = self._build_request(self.client, connection, self._trace)

        self.logger.debug(f"Sending {request.method} {request.url}")
        with _transport_errors("Error sending request"):
            state.response = self.client.send(request, stream=True)

        self._received(state.response)
        stream = _ResponseInput(state.response)
        if stream.status >= 400:
            raise ProtocolError(stream)
        return stream

    def close_connection(self, connection: Connection) -> None:
        state = connection.state
        if isinstance(state, _RequestState) and state.response is not None:
            state.response.close()
            state.response = None

    def _trace(self, event: str, info: Dict[str, Any]) -> None:
        if event == 'connection.start_tls.complete':
            self._check_tls(info['return_value'])

    # Non-blocking path

    async def open_output_async(
        self, connection: Connection, content_length: int
    ) -> AsyncOutputStream:
        state = self._state(connection)
        state.body = bytearray()
        connection.content_length = content_length
        return _AsyncBufferedOutput(state.body)

    async def open_input_async(self, connection: Connection) -> AsyncInputStream:
        state = self._state(connection)
        client = self._async_client()
        request = self._build_request(client, connection, self._trace_async)

        self.logger.debug(f"Sending {request.method} {request.url}")
        with _transport_errors("Error sending request"):
            state.response = await client.send(request, stream=True)

        self._received(state.response)
        stream = _AsyncResponseInput(state.response)
        if stream.status >= 400:
            raise ProtocolError(stream)
        return stream

    async def close_connection_async(self, connection: Connection) -> None:
        state = connection.state
        if isinstance(state, _RequestState) and state.response is not None:
            await state.response.aclose()
            state.response = None

    async def _trace_async(self, event: str, info: Dict[str, Any]) -> None:
        if event == 'connection.start_tls.complete':
            self._check_tls(info['return_value'])

    def _check_tls(self, network_stream) -> None:
        """Log the negotiated protocol and enforce the pinned certificate."""
        ssl_object = network_stream.get_extra_info('ssl_object')
        protocol = tls.get_negotiated_protocol(ssl_object) if ssl_object else None
        if protocol:
            self.logger.debug(f"Negotiated protocol: {protocol}")
        if self._pinned_certificate is not None:
            tls.check_pinned_certificate(ssl_object, self._pinned_certificate)

    # Shutdown

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
        # Connections are never kept alive, so other loops' clients hold nothing open
        self._async_clients.clear()

    async def close_async(self) -> None:
        client = self._async_clients.pop(asyncio.get_running_loop(), None)
        if client is not None:
            await client.aclose()
        self.close()
