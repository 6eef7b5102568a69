"""Immutable hex-encoded byte string.

The hub speaks hex text in both directions, so the engine keeps payloads in
their textual form and only decodes the bytes it inspects. Byte accessors are
1-based to line up with the INSTEON documentation (cmd1 is "byte 7" of a
standard message, data1 is "byte 10" and so on).
"""

from __future__ import annotations

import string
from collections.abc import Iterable
from typing import override

from insteon_hub.protocol.exceptions import HexDecodeError

_HEX_DIGITS = frozenset(string.hexdigits)


class HexString:
    """Upper-case hex text holding whole bytes."""

    __slots__ = ("_text",)

    def __init__(self, text: str = "") -> None:
        if len(text) % 2:
            raise HexDecodeError("odd_length", text)
        if not _HEX_DIGITS.issuperset(text):
            raise HexDecodeError("invalid_characters", text)
        self._text = text.upper()

    @classmethod
    def from_bytes(cls, data: bytes | Iterable[int]) -> HexString:
        """Build from raw bytes or an iterable of byte values."""
        return cls(bytes(data).hex())

    @property
    def text(self) -> str:
        return self._text

    def byte(self, position: int) -> int:
        """Return the byte at a 1-based position."""
        if position < 1 or position > len(self):
            raise HexDecodeError(f"byte {position} out of range (length {len(self)})", self._text)
        offset = (position - 1) * 2
        return int(self._text[offset : offset + 2], 16)

    def sub(self, start: int, length: int) -> HexString:
        """Return `length` bytes starting at 1-based `start`."""
        if start < 1 or length < 0 or start - 1 + length > len(self):
            raise HexDecodeError(f"slice {start}+{length} out of range (length {len(self)})", self._text)
        offset = (start - 1) * 2
        return HexString(self._text[offset : offset + length * 2])

    def to_bytes(self) -> bytes:
        return bytes.fromhex(self._text)

    def __len__(self) -> int:
        return len(self._text) // 2

    def __add__(self, other: HexString | str) -> HexString:
        other_text = other.text if isinstance(other, HexString) else HexString(other).text
        return HexString(self._text + other_text)

    @override
    def __eq__(self, other: object) -> bool:
        if isinstance(other, HexString):
            return self._text == other._text
        if isinstance(other, str):
            return self._text == other.upper()
        return NotImplemented

    @override
    def __hash__(self) -> int:
        return hash(self._text)

    @override
    def __str__(self) -> str:
        return self._text

    @override
    def __repr__(self) -> str:
        return f"HexString({self._text!r})"
