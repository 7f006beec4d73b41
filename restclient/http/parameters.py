"""
Ordered request parameters and their form encoding.
"""

from typing import Dict, Iterator, List, Mapping, Optional, Tuple
from urllib.parse import quote_plus


class ParameterMap:
    """Ordered collection of string parameters.

    Insertion order is preserved so the encoded form is stable. A key is only
    repeated when the caller explicitly uses add().

    Example:
        params = ParameterMap().set("From", "Arsene").set("To", "+233248067917")
        params.encode()  # 'From=Arsene&To=%2B233248067917'
    """

    def __init__(self, pairs: Optional[List[Tuple[str, str]]] = None) -> None:
        self._pairs: List[Tuple[str, str]] = []
        for key, value in pairs or []:
            self.add(key, value)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, object]) -> "ParameterMap":
        """Build a map from any mapping, converting values to strings."""
        params = cls()
        for key, value in mapping.items():
            params.set(key, "" if value is None else str(value))
        return params

    def set(self, key: str, value: str) -> "ParameterMap":
        """Set a parameter, replacing the first existing value for key.

        Returns:
            The map itself, so calls can be chained
        """
        for i, (existing, _) in enumerate(self._pairs):
            if existing == key:
                self._pairs[i] = (key, value)
                return self
        self._pairs.append((key, value))
        return self

    def add(self, key: str, value: str) -> "ParameterMap":
        """Append a parameter even if key is already present."""
        self._pairs.append((key, value))
        return self

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        for existing, value in self._pairs:
            if existing == key:
                return value
        return default

    def get_all(self, key: str) -> List[str]:
        return [value for existing, value in self._pairs if existing == key]

    def remove(self, key: str) -> bool:
        """Remove every value for key. Returns whether anything was removed."""
        before = len(self._pairs)
        self._pairs = [(k, v) for k, v in self._pairs if k != key]
        return len(self._pairs) != before

    def clear(self) -> None:
        self._pairs.clear()

    def is_empty(self) -> bool:
        return not self._pairs

    def keys(self) -> List[str]:
        return [key for key, _ in self._pairs]

    def values(self) -> List[str]:
        return [value for _, value in self._pairs]

    def items(self) -> List[Tuple[str, str]]:
        return list(self._pairs)

    def to_form_fields(self) -> List[Tuple[str, str]]:
        """Return the pairs used as scalar multipart fields."""
        return self.items()

    def to_dict(self) -> Dict[str, str]:
        """Return a plain dict; the last value wins for repeated keys."""
        return dict(self._pairs)

    def encode(self) -> str:
        """Encode as key=value&key=value.

        Keys are passed through as-is; values are form percent-encoded.
        A key with an empty value is emitted without '='.
        """
        parts = []
        for key, value in self._pairs:
            if value:
                parts.append(f"{key}={quote_plus(value)}")
            else:
                parts.append(key)
        return "&".join(parts)

    def encode_bytes(self) -> bytes:
        """UTF-8 bytes of encode()."""
        return self.encode().encode("utf-8")

    def __len__(self) -> int:
        return len(self._pairs)

    def __iter__(self) -> Iterator[Tuple[str, str]]:
        return iter(list(self._pairs))

    def __contains__(self, key: object) -> bool:
        return any(existing == key for existing, _ in self._pairs)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ParameterMap):
            return NotImplemented
        return self._pairs == other._pairs

    def __repr__(self) -> str:
        return f"ParameterMap({self._pairs!r})"
