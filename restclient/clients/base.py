"""
Request handler interface.

This module defines the abstract base class that every request handler
(transport) must implement, together with the connection and stream types
the REST client exchanges with it.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from restclient.errors import TransportError


@dataclass
class Connection:
    """A not-yet-sent HTTP request owned by a request handler.

    Created by open_connection() and configured by prepare_connection().
    Custom headers set afterwards override the handler's defaults.

    Attributes:
        url: Absolute request URL
        method: HTTP method
        headers: Request headers in insertion order
        connect_timeout: Connection timeout in seconds
        read_timeout: Read/write timeout in seconds
        content_length: Body length when a body will be written
        state: Transport-specific state (socket, stream pair, ...)
    """

    url: str
    method: str = "GET"
    headers: Dict[str, str] = field(default_factory=dict)
    connect_timeout: float = 2.0
    read_timeout: float = 8.0
    content_length: Optional[int] = None
    state: Any = None

    def set_header(self, name: str, value: str) -> None:
        """Set a header, replacing any existing one with the same name in any case."""
        for existing in list(self.headers):
            if existing.lower() == name.lower():
                del self.headers[existing]
        self.headers[name] = value

    def get_header(self, name: str) -> Optional[str]:
        for existing, value in self.headers.items():
            if existing.lower() == name.lower():
                return value
        return None


class OutputStream(ABC):
    """Blocking request body stream."""

    @abstractmethod
    def write(self, data: bytes) -> None:
        pass

    @abstractmethod
    def close(self) -> None:
        pass


class AsyncOutputStream(ABC):
    """Non-blocking request body stream."""

    @abstractmethod
    async def write(self, data: bytes) -> None:
        pass

    @abstractmethod
    async def close(self) -> None:
        pass


class _ResponseHead:
    """Status line and headers shared by both input stream flavours."""

    status: int = 0
    reason: str = ""
    url: str = ""
    headers: List[Tuple[str, str]]
    content_length: Optional[int] = None


class InputStream(_ResponseHead, ABC):
    """Blocking response stream.

    content_length is None when the body length is only known by reading to
    the end of the stream.
    """

    @abstractmethod
    def read(self, size: int = -1) -> bytes:
        """Read up to size bytes, or everything left when size is negative."""
        pass

    @abstractmethod
    def close(self) -> None:
        pass


class AsyncInputStream(_ResponseHead, ABC):
    """Non-blocking response stream."""

    @abstractmethod
    async def read(self, size: int = -1) -> bytes:
        pass

    @abstractmethod
    async def close(self) -> None:
        pass


class ProtocolError(Exception):
    """Raised by a handler when the server answered with a 4xx/5xx status.

    The response stream stays open so the caller can read the error body.
    """

    def __init__(self, response: Union[InputStream, AsyncInputStream]) -> None:
        self.response = response
        super().__init__(f"HTTP {response.status} {response.reason}".strip())

    @property
    def status(self) -> int:
        return self.response.status


class RequestHandler(ABC):
    """Abstract base class for request handlers.

    Drives the connection for a single request through the open, prepare,
    write and read steps, in both blocking and non-blocking flavours.
    Handlers raise ProtocolError for error statuses, TimeoutError for
    timeouts and ConnectionError for any other socket failure.
    """

    def open_connection(self, url: str) -> Connection:
        """Create a connection for url. Nothing is sent yet."""
        return Connection(url=url)

    @abstractmethod
    def prepare_connection(
        self,
        connection: Connection,
        method: str,
        content_type: Optional[str],
        accept: Optional[str],
        read_timeout: float,
        connect_timeout: float,
    ) -> None:
        """Set the method, default headers and timeouts on a connection."""
        pass

    @abstractmethod
    def open_output(self, connection: Connection, content_length: int) -> OutputStream:
        """Connect and send the request head, returning the body stream."""
        pass

    @abstractmethod
    async def open_output_async(
        self, connection: Connection, content_length: int
    ) -> AsyncOutputStream:
        pass

    def write_stream(self, stream: OutputStream, data: bytes) -> None:
        if data:
            stream.write(data)

    async def write_stream_async(self, stream: AsyncOutputStream, data: bytes) -> None:
        if data:
            await stream.write(data)

    @abstractmethod
    def open_input(self, connection: Connection) -> InputStream:
        """Send the request if needed and return the response stream.

        Raises:
            ProtocolError: If the response status is 4xx or 5xx
        """
        pass

    @abstractmethod
    async def open_input_async(self, connection: Connection) -> AsyncInputStream:
        pass

    def close_connection(self, connection: Connection) -> None:
        """Release everything the connection holds."""

    async def close_connection_async(self, connection: Connection) -> None:
        """Release everything the connection holds."""

    def close(self) -> None:
        """Release handler-wide resources."""

    async def close_async(self) -> None:
        """Release handler-wide resources from inside an event loop."""
        self.close()

    def on_error(self, error: TransportError) -> bool:
        """Notification of a failed request.

        Returns:
            Whether the error still carries a status received from the server
        """
        response = error.response
        return response is not None and response.status > 0
