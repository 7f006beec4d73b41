"""
Unified response model.

Successful exchanges, protocol error responses and locally synthesized
failure responses all share this shape.
"""

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

# Status sentinels for responses that never reached the server
STATUS_NO_RESPONSE = -1
STATUS_TIMEOUT = 0


@dataclass(frozen=True)
class HttpResponse:
    """Response to a single request.

    Attributes:
        status: HTTP status code, or a value <= 0 when nothing was received
        url: The request URL
        headers: Ordered (name, value) pairs; repeated names are kept
        body: Response body, or None
        elapsed: Duration of the exchange in milliseconds
    """

    status: int = STATUS_NO_RESPONSE
    url: str = ""
    headers: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)
    body: Optional[bytes] = None
    elapsed: float = 0.0

    @classmethod
    def build(
        cls,
        status: int,
        url: str,
        headers: Optional[Iterable[Tuple[str, str]]] = None,
        body: Optional[bytes] = None,
        elapsed: float = 0.0,
    ) -> "HttpResponse":
        return cls(status, url, tuple(headers or ()), body, elapsed)

    @property
    def received(self) -> bool:
        """Whether the server actually answered."""
        return self.status > 0

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def text(self) -> str:
        """Body decoded as UTF-8, or an empty string when there is none."""
        if self.body is None:
            return ""
        return self.body.decode("utf-8", errors="replace")

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Return the first value of a header (case-insensitive)."""
        values = self.header_values(name)
        return values[0] if values else default

    def header_values(self, name: str) -> List[str]:
        lowered = name.lower()
        return [value for key, value in self.headers if key.lower() == lowered]
