"""24-bit INSTEON device identifier."""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, override

from insteon_hub.protocol.exceptions import HexDecodeError


@dataclass(frozen=True, order=True, slots=True)
class InsteonID:
    """Device address such as 1A.2B.3C.

    InsteonID.NULL (00.00.00) stands for "no device" and for the broadcast
    context of group messages.
    """

    value: int

    NULL: ClassVar[InsteonID]

    def __post_init__(self) -> None:
        if not 0 <= self.value <= 0xFFFFFF:
            raise ValueError(f"InsteonID out of range: {self.value:#x}")

    @classmethod
    def parse(cls, text: str) -> InsteonID:
        """Parse "1A.2B.3C", "1A2B3C" or "1a 2b 3c"."""
        digits = text.replace(".", "").replace(" ", "").strip()
        if len(digits) != 6:
            raise HexDecodeError("insteon_id_length", text)
        try:
            return cls(int(digits, 16))
        except ValueError as e:
            raise HexDecodeError("insteon_id_characters", text) from e

    @classmethod
    def from_bytes(cls, high: int, middle: int, low: int) -> InsteonID:
        return cls((high << 16) | (middle << 8) | low)

    @property
    def is_null(self) -> bool:
        return self.value == 0

    @property
    def high(self) -> int:
        return (self.value >> 16) & 0xFF

    @property
    def middle(self) -> int:
        return (self.value >> 8) & 0xFF

    @property
    def low(self) -> int:
        return self.value & 0xFF

    def to_command_string(self) -> str:
        """Six upper-case hex digits, as embedded in hub requests."""
        return f"{self.value:06X}"

    @override
    def __str__(self) -> str:
        return f"{self.high:02X}.{self.middle:02X}.{self.low:02X}"


InsteonID.NULL = InsteonID(0)
