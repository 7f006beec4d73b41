"""
Request descriptors.

Each HTTP verb has its own descriptor class with the construction rules for
that verb. Descriptors are immutable once built.
"""

from dataclasses import dataclass
from typing import Optional

from restclient.http.parameters import ParameterMap

URL_ENCODED = "application/x-www-form-urlencoded;charset=UTF-8"
MULTIPART = "multipart/form-data"
OCTET_STREAM = "application/octet-stream"


def _with_query(path: Optional[str], parameters: Optional[ParameterMap]) -> str:
    path = path or ""
    if parameters is None or parameters.is_empty():
        return path
    separator = "&" if "?" in path else "?"
    return f"{path}{separator}{parameters.encode()}"


@dataclass(frozen=True)
class HttpRequest:
    """Description of one HTTP call.

    Attributes:
        method: HTTP method (GET, POST, PUT, DELETE or HEAD)
        path: Resource path, including any query string. Joined to the
            client's base URL at execution time.
        content_type: Value of the Content-Type header
        accept: Value of the Accept header, or None for the client default
        body: Request body bytes, or None when nothing is sent
    """

    method: str
    path: str
    content_type: Optional[str] = URL_ENCODED
    accept: Optional[str] = None
    body: Optional[bytes] = None

    @property
    def has_body(self) -> bool:
        return self.body is not None


class HttpGet(HttpRequest):
    """GET request. Parameters always go into the query string."""

    def __init__(
        self,
        path: Optional[str] = None,
        parameters: Optional[ParameterMap] = None,
        *,
        content_type: Optional[str] = URL_ENCODED,
        accept: Optional[str] = None,
    ) -> None:
        super().__init__("GET", _with_query(path, parameters), content_type, accept, None)


class HttpHead(HttpRequest):
    """HEAD request. Parameters always go into the query string."""

    def __init__(
        self,
        path: Optional[str] = None,
        parameters: Optional[ParameterMap] = None,
        *,
        content_type: Optional[str] = URL_ENCODED,
        accept: Optional[str] = None,
    ) -> None:
        super().__init__("HEAD", _with_query(path, parameters), content_type, accept, None)


class HttpDelete(HttpRequest):
    """DELETE request. Parameters always go into the query string."""

    def __init__(
        self,
        path: Optional[str] = None,
        parameters: Optional[ParameterMap] = None,
        *,
        content_type: Optional[str] = URL_ENCODED,
        accept: Optional[str] = None,
    ) -> None:
        super().__init__("DELETE", _with_query(path, parameters), content_type, accept, None)


class _BodyRequest(HttpRequest):
    """Shared construction for verbs that carry a body (POST, PUT).

    Either parameters are form-encoded into the body, or the caller provides
    a raw body, sent as application/octet-stream unless a content type is
    given. The two modes are mutually exclusive.
    """

    method_name = ""

    def __init__(
        self,
        path: Optional[str] = None,
        parameters: Optional[ParameterMap] = None,
        *,
        accept: Optional[str] = None,
        content_type: Optional[str] = None,
        body: Optional[bytes] = None,
        query: Optional[ParameterMap] = None,
    ) -> None:
        if parameters is not None and body is not None:
            raise ValueError(
                f"{self.method_name} takes either parameters or a raw body, not both"
            )

        if body is not None:
            content = bytes(body)
            mime_type = content_type or OCTET_STREAM
        else:
            content = parameters.encode_bytes() if parameters is not None else None
            mime_type = URL_ENCODED

        super().__init__(self.method_name, _with_query(path, query), mime_type, accept, content)


class HttpPost(_BodyRequest):
    """POST request."""

    method_name = "POST"


class HttpPut(_BodyRequest):
    """PUT request."""

    method_name = "PUT"
