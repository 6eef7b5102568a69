"""Byte-addressable view over the hub's circular response buffer.

The hub keeps a 100-byte ring (200 hex characters) and clears it for every
command it receives. Readers keep two positions:
- C: start of the data not consumed yet
- N: end of the last read

read() returns bytes from C onwards (wrapping around the ring) and moves N,
advance() commits the read by moving C to N. A reader that finds an
incomplete message simply reads again later without advancing.
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod

from insteon_hub.logging_abstraction import get_logger
from insteon_hub.metrics import record_buffer_clear, record_buffer_fetch
from insteon_hub.protocol.hex_string import HexString
from insteon_hub.transport.hub_transport import HubTransport

logger = get_logger(__name__)

BUFFER_LENGTH_CHARS = 200


class CircularHexStream(ABC):
    """Ring buffer reader with bounded look-ahead, content supplied by subclasses."""

    def __init__(self, buffer_length_chars: int = BUFFER_LENGTH_CHARS) -> None:
        self.buffer_length_chars = buffer_length_chars
        self._content = ""
        self._previous_content: str | None = None
        self._current_pos = 0
        self._next_pos = 0

    @abstractmethod
    async def _get_data(self) -> str:
        """Fetch the current buffer content as hex text."""

    @abstractmethod
    async def _clear_source(self) -> None:
        """Clear the buffer at its source."""

    @property
    def current_position(self) -> int:
        """Byte offset of C (not wrapped)."""
        return self._current_pos

    @property
    def next_position(self) -> int:
        """Byte offset of N (not wrapped)."""
        return self._next_pos

    @property
    def content(self) -> str:
        return self._content

    def reset(self) -> None:
        self._current_pos = 0
        self._next_pos = 0

    async def clear(self) -> None:
        await self._clear_source()
        record_buffer_clear()
        self.reset()

    async def read(self, byte_count: int, acquire: bool = False) -> HexString:
        """Read `byte_count` bytes from C, fetching fresh content if asked to.

        A byte_count of 0 reads the whole buffer. Returns an empty HexString
        while the source has no content.
        """
        if acquire or not self._content:
            self._previous_content = self._content
            self._content = await self._get_data()

        size = len(self._content) // 2
        if size == 0:
            return HexString()

        if byte_count == 0:
            byte_count = size

        self._next_pos = self._current_pos + byte_count

        if not acquire or self._content != self._previous_content:
            logger.debug("Reading %d byte(s) from 'C' to 'N'", byte_count)
            logger.buffer(self._content, self._current_pos, self._next_pos, self.buffer_length_chars)

        chunks: list[str] = []
        position = self._current_pos % size
        remaining = byte_count
        while remaining > 0:
            take = min(remaining, size - position)
            chunks.append(self._content[position * 2 : (position + take) * 2])
            remaining -= take
            position = 0
        return HexString("".join(chunks))

    def advance(self, byte_count: int | None = None) -> None:
        """Move C to N, or move both C and N forward by `byte_count` bytes."""
        if byte_count is None:
            self._current_pos = self._next_pos
            logger.debug("Advancing 'C' to 'N'")
        else:
            self._current_pos += byte_count
            self._next_pos = self._current_pos
            logger.debug("Advancing 'C' and 'N' by %d byte(s)", byte_count)

    def __str__(self) -> str:
        return self._content


class HubResponseStream(CircularHexStream):
    """Response stream backed by a HubTransport's buffstatus resource."""

    def __init__(self, transport: HubTransport, min_fetch_interval: float = 0.02) -> None:
        super().__init__(BUFFER_LENGTH_CHARS)
        self.transport = transport
        self.min_fetch_interval = min_fetch_interval
        self._last_fetch = 0.0

    async def _get_data(self) -> str:
        wait = self.min_fetch_interval - (time.monotonic() - self._last_fetch)
        # Always yield so polling loops never starve the event loop
        await asyncio.sleep(max(wait, 0.0))
        try:
            content = await self.transport.fetch_buffer()
        except Exception:
            record_buffer_fetch("error")
            raise
        record_buffer_fetch("ok")
        self._last_fetch = time.monotonic()
        return content[: self.buffer_length_chars]

    async def _clear_source(self) -> None:
        await self.transport.clear_buffer()
