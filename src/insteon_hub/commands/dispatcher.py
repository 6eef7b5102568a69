"""Header-driven dispatcher over the hub response stream.

Loop per command until it completes or stops making progress:
1. Clear the buffer first if the command asked for it
2. Read the 2-byte header with a fresh fetch
3. 0x02 <code>: parse the message (IM echo or fixed-length IM message) and
   hand the event to the command
4. 0x06: stray ACK, skip it
5. 0x15: hub NAK, the command fails with NAK
6. Any other non-zero header: the ring wrapped over the current message.
   If a standard/extended message header sits exactly one standard message
   further, skip to it
7. No progress for the command's response timeout completes it with Timeout
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from insteon_hub.commands.events import (
    AllLinkingCompleted,
    AllLinkRecordReceived,
    ExtendedReceived,
    ImEcho,
    InformationalMessage,
    NoDeviceReceived,
    Reaction,
    ResponseEvent,
    StandardReceived,
)
from insteon_hub.commands.outcome import ErrorKind, error_kind_from_exception
from insteon_hub.logging_abstraction import get_logger
from insteon_hub.metrics import record_buffer_resync
from insteon_hub.protocol.hex_string import HexString
from insteon_hub.protocol.messages import (
    ACK,
    IM_ALL_LINK_RECORD_RESPONSE,
    IM_ALL_LINKING_COMPLETED,
    IM_EXTENDED_MESSAGE_RECEIVED,
    IM_NO_DEVICE_STANDARD_MESSAGE,
    IM_STANDARD_MESSAGE_RECEIVED,
    MESSAGE_BODY_LENGTHS,
    MESSAGE_START,
    NAK,
    STANDARD_MESSAGE_LENGTH,
    AllLinkingCompletedMessage,
    ExtendedMessage,
    StandardMessage,
)
from insteon_hub.transport.response_stream import CircularHexStream

if TYPE_CHECKING:
    from insteon_hub.commands.command import Command

logger = get_logger(__name__)

HEADER_LENGTH = 2
# Bytes skipped when the ring overwrote the message under the read position
RESYNC_SKIP_LENGTH = HEADER_LENGTH + STANDARD_MESSAGE_LENGTH


def parse_message(code: int, body: HexString) -> ResponseEvent:
    """Build the typed event for a fixed-length IM message."""
    if code == IM_STANDARD_MESSAGE_RECEIVED:
        return StandardReceived(StandardMessage.from_hex(body))
    if code == IM_NO_DEVICE_STANDARD_MESSAGE:
        return NoDeviceReceived(StandardMessage.from_hex(body))
    if code == IM_EXTENDED_MESSAGE_RECEIVED:
        return ExtendedReceived(ExtendedMessage.from_hex(body))
    if code == IM_ALL_LINKING_COMPLETED:
        return AllLinkingCompleted(AllLinkingCompletedMessage.from_hex(body))
    if code == IM_ALL_LINK_RECORD_RESPONSE:
        return AllLinkRecordReceived(body)
    return InformationalMessage(code, body)


class ResponseDispatcher:
    """Runs one command's response loop over a stream."""

    def __init__(self, command: Command, stream: CircularHexStream, response_timeout: float) -> None:
        self.command = command
        self.stream = stream
        self.response_timeout = response_timeout

    async def run(self) -> None:
        command = self.command
        stream = self.stream
        start_time = time.monotonic()

        while not command.is_complete:
            if command.request_clear_buffer:
                await stream.clear()
                command.request_clear_buffer = False

            advanced = False
            try:
                header = await stream.read(HEADER_LENGTH, acquire=True)
                if len(header) == HEADER_LENGTH:
                    first = header.byte(1)
                    if first == MESSAGE_START:
                        advanced = await self._process_message()
                    elif first == ACK:
                        logger.debug("Received extra ACK from the IM")
                        stream.advance(1)
                        advanced = True
                    elif first == NAK:
                        logger.debug("Received NAK from the IM")
                        stream.advance(1)
                        advanced = True
                        command.complete(ErrorKind.NAK)
                    elif first != 0 or header.byte(2) != 0:
                        advanced = await self._resync()
            except Exception as e:  # translated into the command's error kind
                kind = error_kind_from_exception(e)
                command.complete(kind)
                logger.error(
                    "✗ %s: %s (%s)",
                    command.log_name,
                    kind.description,
                    e,
                    extra={"error_kind": kind.name},
                )

            if advanced:
                start_time = time.monotonic()
            elif not command.is_complete and time.monotonic() - start_time >= self.response_timeout:
                command.complete(ErrorKind.TIMEOUT)

        logger.debug("Command %s set to complete, %s", command.log_name, command.error_kind.description)

    async def _process_message(self) -> bool:
        command = self.command
        stream = self.stream
        header = await stream.read(HEADER_LENGTH, acquire=True)
        if len(header) < HEADER_LENGTH or header.byte(1) != MESSAGE_START:
            return False
        code = header.byte(2)

        if command.expects_im_echo and code == command.code:
            length = HEADER_LENGTH + command.echo_length + 1
            response = await stream.read(length)
            status = response.byte(length)
            if status == ACK:
                payload = response.sub(HEADER_LENGTH + 1, command.echo_length)
                logger.debug("Received valid response from the IM: %s", payload)
                reaction = command.handle(ImEcho(payload))
                self._apply(reaction)
                if reaction.advance and not command.is_complete:
                    await command.after_echo()
                return reaction.advance
            if status == NAK:
                logger.debug("Received NAK from the IM: %s", response)
                stream.advance()
                command.complete(ErrorKind.NAK)
                return True
            return False

        body_length = MESSAGE_BODY_LENGTHS.get(code)
        if body_length is None:
            logger.debug("Unknown IM message code 0x%02X", code)
            return False

        response = await stream.read(HEADER_LENGTH + body_length)
        event = parse_message(code, response.sub(HEADER_LENGTH + 1, body_length))
        reaction = command.handle(event)
        self._apply(reaction)
        return reaction.advance

    def _apply(self, reaction: Reaction) -> None:
        if reaction.advance:
            self.stream.advance()
        if reaction.completion is not None:
            self.command.complete(reaction.completion)

    async def _resync(self) -> bool:
        # The ring may have wrapped over the message at C; the rest of the
        # response can still be one standard message further
        response = await self.stream.read(RESYNC_SKIP_LENGTH + HEADER_LENGTH)
        if response.byte(RESYNC_SKIP_LENGTH + 1) == MESSAGE_START and response.byte(RESYNC_SKIP_LENGTH + 2) in (
            IM_STANDARD_MESSAGE_RECEIVED,
            IM_EXTENDED_MESSAGE_RECEIVED,
        ):
            logger.debug("Unexpected header, skipping %d bytes to next message", RESYNC_SKIP_LENGTH)
            self.stream.advance(RESYNC_SKIP_LENGTH)
            record_buffer_resync()
            return True
        return False
