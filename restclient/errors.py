"""
Exception types raised by the REST client.

Protocol error responses (4xx/5xx) are not exceptions: they come back as a
normal HttpResponse. Only outcomes without a recoverable status are raised.
"""

from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from restclient.http.response import HttpResponse


class RestClientError(Exception):
    """Base class for all REST client errors."""


class InvalidUrlError(RestClientError):
    """Raised when the base URL and request path do not form a valid URL.

    Detected before any network I/O takes place.
    """

    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"Invalid request URL {url!r}: {reason}")


class InvalidHeaderError(RestClientError):
    """Raised when a request header cannot be sent as given.

    Header names must be HTTP tokens and values must not contain CR, LF or NUL.
    Detected before any network I/O takes place.
    """

    def __init__(self, name: str, reason: str) -> None:
        self.name = name
        self.reason = reason
        super().__init__(f"Invalid request header {name!r}: {reason}")


class TransportError(RestClientError):
    """Raised when a request produced no usable response from the server.

    Attributes:
        cause: The underlying transport exception
        response: A locally synthesized response (status <= 0) or None
    """

    def __init__(
        self,
        cause: BaseException,
        response: Optional["HttpResponse"] = None,
    ) -> None:
        self.cause = cause
        self.response = response
        super().__init__(str(cause) or type(cause).__name__)

    @property
    def status(self) -> Optional[int]:
        """Status of the attached response, if any."""
        return self.response.status if self.response is not None else None


class UploadError(TransportError):
    """Raised when a multipart upload fails reading a file or writing the body."""
