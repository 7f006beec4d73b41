"""
REST client.

This module drives each request through its lifecycle (open, prepare, write,
read) on a pluggable request handler, and turns every outcome into either an
HttpResponse or a raised TransportError.
"""

import base64
import re
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence
from urllib.parse import quote, urlsplit, urlunsplit

from restclient.clients.base import (
    AsyncInputStream,
    AsyncOutputStream,
    Connection,
    InputStream,
    OutputStream,
    ProtocolError,
    RequestHandler,
)
from restclient.clients.events import RequestEvents
from restclient.clients.http1 import HttpRequestHandler
from restclient.errors import InvalidHeaderError, InvalidUrlError, TransportError, UploadError
from restclient.http.multipart import HttpFile, MultipartEncoder
from restclient.http.parameters import ParameterMap
from restclient.http.request import (
    URL_ENCODED,
    HttpDelete,
    HttpGet,
    HttpHead,
    HttpPost,
    HttpPut,
    HttpRequest,
)
from restclient.http.response import STATUS_NO_RESPONSE, STATUS_TIMEOUT, HttpResponse
from restclient.utils.logging import (
    ConsoleRequestLogger,
    RequestLogger,
    decode_request_content,
    get_logger,
)

DEFAULT_ACCEPT = 'application/json'
DEFAULT_CONNECTION_TIMEOUT = 2
DEFAULT_READ_WRITE_TIMEOUT = 8

# Exceptions a handler may raise for a request that got no usable answer
TRANSPORT_FAILURES = (OSError, ValueError)

_INVALID_URL_CHARS = re.compile(r'[\x00-\x20\x7f]')

# RFC 3986 characters left as they are; existing %XX escapes are kept
_PATH_SAFE = "/:@!$&'()*+,;=%"
_QUERY_SAFE = _PATH_SAFE + "?"

_HEADER_NAME = re.compile(r"[!#$%&'*+\-.^_`|~0-9A-Za-z]+")
_INVALID_HEADER_VALUE = re.compile(r'[\r\n\x00]')


class _HandlerOutput:
    """Routes multipart writes through the handler's write_stream()."""

    def __init__(self, handler: RequestHandler, stream: OutputStream) -> None:
        self._handler = handler
        self._stream = stream

    def write(self, data: bytes) -> None:
        self._handler.write_stream(self._stream, data)


class _AsyncHandlerOutput:
    def __init__(self, handler: RequestHandler, stream: AsyncOutputStream) -> None:
        self._handler = handler
        self._stream = stream

    async def write(self, data: bytes) -> None:
        await self._handler.write_stream_async(self._stream, data)


class RestClient:
    """HTTP client for a REST API rooted at a base URL.

    Usage:
        client = RestClient("https://api.example.com/v3")
        client.basic_auth("client-id", "secret")
        response = client.get("/account/profile")

    Or asynchronously:
        response = await client.get_async("/account/profile")

    Protocol error responses (4xx/5xx) are returned like any other response.
    Requests that never got an answer raise TransportError.
    """

    def __init__(
        self,
        base_url: str = '',
        handler: Optional[RequestHandler] = None,
        logger: Optional[RequestLogger] = None,
        *,
        connection_timeout: float = DEFAULT_CONNECTION_TIMEOUT,
        read_write_timeout: float = DEFAULT_READ_WRITE_TIMEOUT,
        accept: str = DEFAULT_ACCEPT,
        events: Optional[RequestEvents] = None,
    ) -> None:
        """Initialize a new REST client.

        Args:
            base_url: Prefix joined to every request path
            handler: Request handler doing the network work
            logger: Receives every request and response
            connection_timeout: Connection timeout in seconds
            read_write_timeout: Read/write timeout in seconds
            accept: Accept header used when a request does not set one
            events: Observer hooks; a fresh RequestEvents when omitted
        """
        self._base_url = base_url or ''
        self.handler = handler or HttpRequestHandler()
        self.request_logger = logger or ConsoleRequestLogger(enabled=True)
        self.connection_timeout = connection_timeout
        self.read_write_timeout = read_write_timeout
        self.accept = accept
        self.events = events or RequestEvents()
        self.headers: Dict[str, str] = {}
        self.logger = get_logger()

    @property
    def base_url(self) -> str:
        return self._base_url

    def __enter__(self) -> "RestClient":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def close(self) -> None:
        self.handler.close()

    async def __aenter__(self) -> "RestClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.handler.close_async()

    # Configuration

    def clear_headers(self) -> None:
        """Remove every custom header, including the Authorization header."""
        self.headers.clear()

    def basic_auth(self, username: str, password: str) -> None:
        """Send HTTP basic credentials with every request."""
        token = base64.b64encode(f"{username}:{password}".encode('utf-8')).decode('ascii')
        self.headers['Authorization'] = f"Basic {token}"

    def payload(self) -> ParameterMap:
        """Return an empty ParameterMap to fill in."""
        return ParameterMap()

    # Execution

    def execute(self, request: HttpRequest) -> HttpResponse:
        """Send a request and wait for its response.

        Returns:
            The server response, including 4xx/5xx responses

        Raises:
            InvalidUrlError: If base URL and path do not form a valid URL
            InvalidHeaderError: If a header cannot be sent as given
            TransportError: If no response was received from the server
        """
        url = self.resolve_url(request.path)
        body = request.body

        def write_body(output: OutputStream) -> None:
            self.handler.write_stream(output, body)

        return self._run(
            request,
            url,
            len(body) if body is not None else None,
            write_body,
            decode_request_content(body),
        )

    async def execute_async(self, request: HttpRequest) -> HttpResponse:
        """Asynchronous counterpart of execute()."""
        url = self.resolve_url(request.path)
        body = request.body

        async def write_body(output: AsyncOutputStream) -> None:
            await self.handler.write_stream_async(output, body)

        return await self._run_async(
            request,
            url,
            len(body) if body is not None else None,
            write_body,
            decode_request_content(body),
        )

    def post_files(
        self,
        path: Optional[str],
        files: Sequence[HttpFile],
        parameters: Optional[ParameterMap] = None,
        *,
        accept: Optional[str] = None,
    ) -> HttpResponse:
        """Upload files, with optional form fields, as multipart/form-data.

        Every file stream is closed once the call returns or raises.

        Raises:
            InvalidUrlError: If base URL and path do not form a valid URL
            UploadError: If a file could not be read or the body not sent
        """
        encoder = MultipartEncoder(parameters, files)
        try:
            url = self.resolve_url(path)
            return self._run(
                self._upload_request(path, encoder, accept),
                url,
                encoder.content_length,
                lambda output: encoder.write_to(_HandlerOutput(self.handler, output)),
                f"<multipart body, {len(encoder.parts)} parts, {encoder.content_length} bytes>",
                UploadError,
            )
        finally:
            encoder.close()

    async def post_files_async(
        self,
        path: Optional[str],
        files: Sequence[HttpFile],
        parameters: Optional[ParameterMap] = None,
        *,
        accept: Optional[str] = None,
    ) -> HttpResponse:
        """Asynchronous counterpart of post_files()."""
        encoder = MultipartEncoder(parameters, files)
        try:
            url = self.resolve_url(path)
            return await self._run_async(
                self._upload_request(path, encoder, accept),
                url,
                encoder.content_length,
                lambda output: encoder.write_to_async(_AsyncHandlerOutput(self.handler, output)),
                f"<multipart body, {len(encoder.parts)} parts, {encoder.content_length} bytes>",
                UploadError,
            )
        finally:
            encoder.close()

    def resolve_url(self, path: Optional[str]) -> str:
        """Join the base URL and a request path into an absolute URL.

        Characters outside RFC 3986 in the path and query are percent-encoded.

        Raises:
            InvalidUrlError: If the result is not a usable http(s) URL
        """
        url = f"{self._base_url}{path or ''}"
        if _INVALID_URL_CHARS.search(url):
            raise InvalidUrlError(url, "contains whitespace or control characters")
        try:
            parsed = urlsplit(url)
            parsed.port
        except ValueError as e:
            raise InvalidUrlError(url, str(e)) from e
        if parsed.scheme.lower() not in ('http', 'https'):
            raise InvalidUrlError(url, "scheme must be http or https")
        if not parsed.hostname:
            raise InvalidUrlError(url, "missing host")
        return urlunsplit((
            parsed.scheme,
            parsed.netloc,
            quote(parsed.path, safe=_PATH_SAFE),
            quote(parsed.query, safe=_QUERY_SAFE),
            quote(parsed.fragment, safe=_QUERY_SAFE),
        ))

    def check_headers(self, request: HttpRequest) -> None:
        """Validate every header the request would carry.

        Raises:
            InvalidHeaderError: If a name is not an HTTP token or a value
                contains CR, LF or NUL
        """
        headers = dict(self.headers)
        headers['Accept'] = request.accept or self.accept or ''
        headers['Content-Type'] = request.content_type or ''
        for name, value in headers.items():
            if not _HEADER_NAME.fullmatch(name):
                raise InvalidHeaderError(name, "name is not a valid HTTP token")
            if _INVALID_HEADER_VALUE.search(value):
                raise InvalidHeaderError(name, "value contains CR, LF or NUL")

    def _upload_request(
        self, path: Optional[str], encoder: MultipartEncoder, accept: Optional[str]
    ) -> HttpRequest:
        return HttpRequest('POST', path or '', encoder.content_type, accept, None)

    def _run(
        self,
        request: HttpRequest,
        url: str,
        content_length: Optional[int],
        write_body: Callable[[OutputStream], Any],
        log_content: str,
        error_type: type = TransportError,
    ) -> HttpResponse:
        self.check_headers(request)
        self.events.fire('sending', request)
        self.logger.debug(f"Request: {request.method} {url}")
        started = time.monotonic()
        connection: Optional[Connection] = None
        try:
            try:
                connection = self._open(url, request)
                self._log_request(connection, log_content)
                if content_length is not None:
                    output = self.handler.open_output(connection, content_length)
                    write_body(output)
                    output.close()
                stream = self.handler.open_input(connection)
                response = self._read_response(stream, url, started)
            except ProtocolError as e:
                response = self._read_response(e.response, url, started)
        except UploadError as e:
            self._notify_error(e)
            raise
        except TRANSPORT_FAILURES as e:
            raise self._failed(e, url, started, error_type) from e
        finally:
            if connection is not None:
                self._release(connection)
        return self._completed(response)

    async def _run_async(
        self,
        request: HttpRequest,
        url: str,
        content_length: Optional[int],
        write_body: Callable[[AsyncOutputStream], Awaitable[Any]],
        log_content: str,
        error_type: type = TransportError,
    ) -> HttpResponse:
        self.check_headers(request)
        self.events.fire('sending', request)
        self.logger.debug(f"Request: {request.method} {url}")
        started = time.monotonic()
        connection: Optional[Connection] = None
        try:
            try:
                connection = self._open(url, request)
                self._log_request(connection, log_content)
                if content_length is not None:
                    output = await self.handler.open_output_async(connection, content_length)
                    await write_body(output)
                    await output.close()
                stream = await self.handler.open_input_async(connection)
                response = await self._read_response_async(stream, url, started)
            except ProtocolError as e:
                response = await self._read_response_async(e.response, url, started)
        except UploadError as e:
            self._notify_error(e)
            raise
        except TRANSPORT_FAILURES as e:
            raise self._failed(e, url, started, error_type) from e
        finally:
            if connection is not None:
                await self._release_async(connection)
        return self._completed(response)

    # Lifecycle steps shared by both drivers

    def _open(self, url: str, request: HttpRequest) -> Connection:
        connection = self.handler.open_connection(url)
        self.handler.prepare_connection(
            connection,
            request.method,
            request.content_type,
            request.accept or self.accept,
            self.read_write_timeout,
            self.connection_timeout,
        )
        # Custom headers win over the handler defaults
        for name, value in self.headers.items():
            connection.set_header(name, value)
        return connection

    def _read_response(self, stream: InputStream, url: str, started: float) -> HttpResponse:
        try:
            length = stream.content_length
            if length is not None and length > 0:
                chunks = []
                remaining = length
                while remaining > 0:
                    chunk = stream.read(remaining)
                    if not chunk:
                        break
                    chunks.append(chunk)
                    remaining -= len(chunk)
                body = b''.join(chunks)
                if remaining > 0:
                    raise ConnectionError(
                        f"Connection closed after {length - remaining} of {length} body bytes"
                    )
            elif length == 0:
                body = b''
            else:
                body = stream.read()
        finally:
            stream.close()
        return self._response_from(stream, url, body, started)

    async def _read_response_async(
        self, stream: AsyncInputStream, url: str, started: float
    ) -> HttpResponse:
        try:
            length = stream.content_length
            if length is not None and length > 0:
                chunks = []
                remaining = length
                while remaining > 0:
                    chunk = await stream.read(remaining)
                    if not chunk:
                        break
                    chunks.append(chunk)
                    remaining -= len(chunk)
                body = b''.join(chunks)
                if remaining > 0:
                    raise ConnectionError(
                        f"Connection closed after {length - remaining} of {length} body bytes"
                    )
            elif length == 0:
                body = b''
            else:
                body = await stream.read()
        finally:
            await stream.close()
        return self._response_from(stream, url, body, started)

    def _response_from(self, stream: Any, url: str, body: bytes, started: float) -> HttpResponse:
        return HttpResponse.build(
            stream.status,
            stream.url or url,
            stream.headers,
            body,
            (time.monotonic() - started) * 1000,
        )

    def _completed(self, response: HttpResponse) -> HttpResponse:
        self._log_response(response)
        self.events.fire('complete', response)
        if response.ok:
            self.events.fire('success', response)
        elif response.status >= 400:
            self.events.fire('failure', response)
        return response

    def _failed(
        self,
        cause: BaseException,
        url: str,
        started: float,
        error_type: type = TransportError,
    ) -> TransportError:
        """Classify a transport failure into a TransportError with a synthesized response."""
        elapsed = (time.monotonic() - started) * 1000
        if isinstance(cause, TimeoutError):
            response = HttpResponse.build(STATUS_TIMEOUT, url, elapsed=elapsed)
        else:
            message = str(cause) or type(cause).__name__
            response = HttpResponse.build(
                STATUS_NO_RESPONSE, url, body=message.encode('utf-8'), elapsed=elapsed
            )
        self.logger.debug(f"Request to {url} failed: {cause!r}")
        error = error_type(cause, response)
        self._log_message(str(error))
        self._log_response(response)
        self._notify_error(error)
        return error

    def _notify_error(self, error: TransportError) -> None:
        self.events.fire('error', error)
        try:
            self.handler.on_error(error)
        except Exception:
            self.logger.exception("Request handler failed in on_error")

    def _release(self, connection: Connection) -> None:
        try:
            self.handler.close_connection(connection)
        except OSError as e:
            self.logger.debug(f"Error closing connection: {e}")

    async def _release_async(self, connection: Connection) -> None:
        try:
            await self.handler.close_connection_async(connection)
        except OSError as e:
            self.logger.debug(f"Error closing connection: {e}")

    # Request logger calls never abort a request

    def _log_request(self, connection: Connection, content: str) -> None:
        try:
            if self.request_logger.is_enabled():
                self.request_logger.log_request(connection, content)
        except Exception:
            self.logger.exception("Request logger failed")

    def _log_response(self, response: Optional[HttpResponse]) -> None:
        try:
            if self.request_logger.is_enabled():
                self.request_logger.log_response(response)
        except Exception:
            self.logger.exception("Request logger failed")

    def _log_message(self, message: str) -> None:
        try:
            if self.request_logger.is_enabled():
                self.request_logger.log(message)
        except Exception:
            self.logger.exception("Request logger failed")

    # HTTP methods

    def get(
        self,
        path: Optional[str] = None,
        parameters: Optional[ParameterMap] = None,
        *,
        accept: Optional[str] = None,
        content_type: Optional[str] = URL_ENCODED,
    ) -> HttpResponse:
        return self.execute(HttpGet(path, parameters, content_type=content_type, accept=accept))

    async def get_async(
        self,
        path: Optional[str] = None,
        parameters: Optional[ParameterMap] = None,
        *,
        accept: Optional[str] = None,
        content_type: Optional[str] = URL_ENCODED,
    ) -> HttpResponse:
        return await self.execute_async(
            HttpGet(path, parameters, content_type=content_type, accept=accept)
        )

    def head(
        self,
        path: Optional[str] = None,
        parameters: Optional[ParameterMap] = None,
        *,
        accept: Optional[str] = None,
        content_type: Optional[str] = URL_ENCODED,
    ) -> HttpResponse:
        return self.execute(HttpHead(path, parameters, content_type=content_type, accept=accept))

    async def head_async(
        self,
        path: Optional[str] = None,
        parameters: Optional[ParameterMap] = None,
        *,
        accept: Optional[str] = None,
        content_type: Optional[str] = URL_ENCODED,
    ) -> HttpResponse:
        return await self.execute_async(
            HttpHead(path, parameters, content_type=content_type, accept=accept)
        )

    def delete(
        self,
        path: Optional[str] = None,
        parameters: Optional[ParameterMap] = None,
        *,
        accept: Optional[str] = None,
        content_type: Optional[str] = URL_ENCODED,
    ) -> HttpResponse:
        return self.execute(HttpDelete(path, parameters, content_type=content_type, accept=accept))

    async def delete_async(
        self,
        path: Optional[str] = None,
        parameters: Optional[ParameterMap] = None,
        *,
        accept: Optional[str] = None,
        content_type: Optional[str] = URL_ENCODED,
    ) -> HttpResponse:
        return await self.execute_async(
            HttpDelete(path, parameters, content_type=content_type, accept=accept)
        )

    def post(
        self,
        path: Optional[str] = None,
        parameters: Optional[ParameterMap] = None,
        *,
        accept: Optional[str] = None,
        content_type: Optional[str] = None,
        body: Optional[bytes] = None,
        query: Optional[ParameterMap] = None,
    ) -> HttpResponse:
        """POST form parameters, or a raw body with its content type."""
        return self.execute(
            HttpPost(path, parameters, accept=accept, content_type=content_type, body=body, query=query)
        )

    async def post_async(
        self,
        path: Optional[str] = None,
        parameters: Optional[ParameterMap] = None,
        *,
        accept: Optional[str] = None,
        content_type: Optional[str] = None,
        body: Optional[bytes] = None,
        query: Optional[ParameterMap] = None,
    ) -> HttpResponse:
        return await self.execute_async(
            HttpPost(path, parameters, accept=accept, content_type=content_type, body=body, query=query)
        )

    def put(
        self,
        path: Optional[str] = None,
        parameters: Optional[ParameterMap] = None,
        *,
        accept: Optional[str] = None,
        content_type: Optional[str] = None,
        body: Optional[bytes] = None,
        query: Optional[ParameterMap] = None,
    ) -> HttpResponse:
        """PUT form parameters, or a raw body with its content type."""
        return self.execute(
            HttpPut(path, parameters, accept=accept, content_type=content_type, body=body, query=query)
        )

    async def put_async(
        self,
        path: Optional[str] = None,
        parameters: Optional[ParameterMap] = None,
        *,
        accept: Optional[str] = None,
        content_type: Optional[str] = None,
        body: Optional[bytes] = None,
        query: Optional[ParameterMap] = None,
    ) -> HttpResponse:
        return await self.execute_async(
            HttpPut(path, parameters, accept=accept, content_type=content_type, body=body, query=query)
        )
