"""Command state machine.

A Command describes one exchange with the hub: how the request line is
framed, how long to wait for a response, and how to react to each event the
dispatcher parses from the response stream. try_run() drives it:

    for each attempt (1..max_attempts):
        take the execution gate (unless macro or sub-command)
        send the request, dispatch the response until complete or timeout
        release the gate
        stop on success, on the last attempt or on a non-recoverable error
        otherwise back off (base_delay * attempt) outside the gate

Device-addressed commands are Commands with `to_device` set. They share the
same state machine and add the standard/extended INSTEON framing and the
routing of device replies (direct ACK/NAK, broadcasts, extended responses).
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from collections.abc import Sequence
from enum import Enum
from typing import ClassVar

from insteon_hub import const
from insteon_hub.commands.dispatcher import ResponseDispatcher
from insteon_hub.commands.events import (
    CONSUME,
    WAIT,
    AllLinkingCompleted,
    AllLinkRecordReceived,
    ExtendedReceived,
    ImEcho,
    InformationalMessage,
    NoDeviceReceived,
    Reaction,
    ResponseEvent,
    StandardReceived,
    done,
)
from insteon_hub.commands.outcome import CommandOutcome, ErrorKind, error_kind_from_exception
from insteon_hub.correlation import command_scope, set_attempt
from insteon_hub.logging_abstraction import get_logger
from insteon_hub.metrics import (
    record_command_attempt,
    record_command_latency,
    record_command_outcome,
    record_command_retry,
)
from insteon_hub.protocol.hex_string import HexString
from insteon_hub.protocol.insteon_id import InsteonID
from insteon_hub.protocol.messages import (
    EXTENDED_DATA_LENGTH,
    EXTENDED_FLAG,
    IM_SEND_INSTEON_MESSAGE,
    MAX_HOPS,
    ExtendedMessage,
    MessageType,
    StandardMessage,
    compute_checksum,
)
from insteon_hub.session import HubSession
from insteon_hub.transport.exceptions import ExecutionGateError

logger = get_logger(__name__)

DEFAULT_MAX_ATTEMPTS = const.DEFAULT_MAX_ATTEMPTS

# Echo of a 0x62 send: id(3) flags cmd1 cmd2
DEVICE_ECHO_LENGTH = 6


class CommandClass(Enum):
    """Request family, selects the request token and suffix."""

    BARE = "0"
    HUB = "1"
    HUB_CONFIG = "2"
    IM = "3"

    @property
    def token(self) -> str:
        return self.value


class CommandState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETE = "complete"
    CANCELLED = "cancelled"


class Command:
    """One hub exchange, run through try_run().

    Subclasses set the framing in __init__ (command_class, code, params,
    echo_length) and react to events by overriding handle() or, for
    device-addressed commands, the on_* hooks.
    """

    log_name: ClassVar[str] = "Command"
    is_macro: ClassVar[bool] = False

    def __init__(
        self,
        session: HubSession,
        *,
        to_device: InsteonID | None = None,
        cmd1: int = 0,
        cmd2: int = 0,
        data: Sequence[int] | None = None,
        response_timeout: float | None = None,
        suppress_logging: bool = False,
    ) -> None:
        self.session = session
        self.command_class = CommandClass.IM
        self.code = 0
        self.to_device = to_device
        self.cmd1 = cmd1
        self.cmd2 = cmd2
        self.data: list[int] | None = None
        if data is not None:
            self.set_data(data)
        self.expect_extended_response = False
        self.response_timeout = (
            response_timeout if response_timeout is not None else session.timeout_config.response_timeout_seconds
        )
        self.suppress_logging = suppress_logging
        self.request_clear_buffer = False

        self.state = CommandState.IDLE
        self.error_kind = ErrorKind.NO_ERROR
        self.outcome: CommandOutcome | None = None
        self._complete = False
        self._params = ""
        self._echo_length = 0

        # Results, None until received
        self.im_response: HexString | None = None
        self.standard_response: StandardMessage | None = None
        self.extended_response: ExtendedMessage | None = None

        if to_device is not None:
            self.code = IM_SEND_INSTEON_MESSAGE

    # Framing

    @property
    def is_device_command(self) -> bool:
        return self.to_device is not None

    @property
    def params(self) -> str:
        if self.to_device is None:
            return self._params
        flags = MAX_HOPS | (EXTENDED_FLAG if self.data is not None else 0)
        params = f"{self.to_device.to_command_string()}{flags:02X}{self.cmd1:02X}{self.cmd2:02X}"
        if self.data is not None:
            data = list(self.data)
            data[13] = compute_checksum(self.cmd1, self.cmd2, data)
            params += bytes(data).hex().upper()
        return params

    @params.setter
    def params(self, value: str) -> None:
        self._params = value.upper()

    @property
    def echo_length(self) -> int:
        """Bytes the IM echoes back, excluding the 0x02 <code> header and ACK."""
        if self.to_device is None:
            return self._echo_length
        return DEVICE_ECHO_LENGTH + (EXTENDED_DATA_LENGTH if self.data is not None else 0)

    @echo_length.setter
    def echo_length(self, value: int) -> None:
        self._echo_length = value

    @property
    def expects_im_echo(self) -> bool:
        return self.command_class is CommandClass.IM and self.code > 0

    def set_data(self, data: Sequence[int]) -> None:
        """Switch to the extended form with the given data bytes (zero padded)."""
        if len(data) > EXTENDED_DATA_LENGTH:
            raise ValueError(f"Extended data is at most {EXTENDED_DATA_LENGTH} bytes, got {len(data)}")
        self.data = list(data) + [0] * (EXTENDED_DATA_LENGTH - len(data))

    def clear_data(self) -> None:
        """Switch to the extended form with all-zero data."""
        self.data = [0] * EXTENDED_DATA_LENGTH

    def build_request(self) -> str:
        """Request line, e.g. "3?0262AABBCC0F1100=I=3"."""
        token = self.command_class.token
        if self.command_class is CommandClass.BARE:
            body = f"{self.code:02X}{self.params}" if self.code > 0 else self.params
            return f"{token}?{body}=I={token}"
        if self.command_class is CommandClass.IM:
            body = f"02{self.code:02X}{self.params}" if self.code > 0 else self.params
            return f"{token}?{body}=I={token}"
        if self.command_class is CommandClass.HUB:
            return f"{token}?{self.params}=M={token}"
        return f"{token}?{self.params}"

    # Completion

    @property
    def is_complete(self) -> bool:
        return self._complete

    @property
    def is_cancelled(self) -> bool:
        return self.state is CommandState.CANCELLED

    def complete(self, kind: ErrorKind = ErrorKind.NO_ERROR) -> None:
        if self.state is CommandState.CANCELLED and kind is not ErrorKind.CANCELLED:
            return
        self.error_kind = kind
        self._complete = True
        if kind is not ErrorKind.CANCELLED:
            self.state = CommandState.COMPLETE

    async def cancel(self) -> None:
        """Cooperative cancel: the running attempt ends as a success-equivalent."""
        self.state = CommandState.CANCELLED
        self.complete(ErrorKind.CANCELLED)

    # Run loop

    async def try_run(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        parent: Command | None = None,
    ) -> CommandOutcome:
        """Run the command, retrying recoverable failures.

        Args:
            max_attempts: Attempt budget (at least 1)
            parent: Running command this one is a sub-command of. The parent
                must hold the execution gate; the sub-command runs under it.

        Returns:
            CommandOutcome (also kept in self.outcome)
        """
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")

        with command_scope(self.log_name, self.to_device) as run:
            start = time.perf_counter()
            attempt = 0
            success = False
            self.session.notify_traffic(True)
            try:
                for attempt in range(1, max_attempts + 1):
                    if self.is_cancelled:
                        success = True
                        break

                    if parent is not None and not self.is_macro and not self.session.gate.locked():
                        raise ExecutionGateError("parent does not hold the execution gate", self.log_name)

                    holding_gate = False
                    if not self.is_macro and parent is None:
                        await self.session.gate.acquire(self)
                        holding_gate = True

                    try:
                        set_attempt(attempt)
                        self._echo(attempt, max_attempts)
                        record_command_attempt(self.log_name)
                        success = await self._run_attempt()
                    finally:
                        if holding_gate:
                            self.session.gate.release(self)

                    if success or attempt == max_attempts or not self.error_kind.is_recoverable:
                        break

                    delay = self.session.retry_policy.get_delay(attempt)
                    logger.debug(
                        "%s failed (%s), waiting %.0fms before next attempt",
                        self.log_name,
                        self.error_kind.description,
                        delay * 1000,
                    )
                    record_command_retry(self.log_name, self.error_kind.name)
                    await asyncio.sleep(delay)
            finally:
                self.session.notify_traffic(False)

            if self.is_cancelled:
                self.error_kind = ErrorKind.CANCELLED
                success = True
            self.outcome = CommandOutcome(success, self.error_kind, max(attempt, 1), run.correlation_id)
            self._log_outcome(self.outcome)
            record_command_outcome(self.log_name, self.error_kind.name)
            record_command_latency(self.log_name, time.perf_counter() - start)
            return self.outcome

    async def _run_attempt(self) -> bool:
        if self.is_cancelled:
            # Cancelled while waiting for the gate
            return True
        self._complete = False
        self.error_kind = ErrorKind.NO_ERROR
        self.state = CommandState.RUNNING
        self.prepare_attempt()

        try:
            await self.before_send()
            if not self.is_complete:
                await self.session.wait_for_spacing()
            # The hub clears its buffer for every command
            self.session.stream.reset()
            if not self.is_complete and await self._send():
                await self.receive()
        finally:
            self.session.mark_command_complete()

        return self.error_kind.is_success

    async def _send(self) -> bool:
        request = self.build_request()
        logger.debug("Sending command (%s): %s", self.log_name, request)
        try:
            await self.session.transport.send(request)
        except Exception as e:  # translated into the command's error kind
            self.complete(error_kind_from_exception(e))
            logger.error(
                "✗ %s: %s (%s)",
                self.log_name,
                self.error_kind.description,
                e,
                extra={"error_kind": self.error_kind.name},
            )
            return False
        return True

    # Overridable steps

    def prepare_attempt(self) -> None:
        """Reset per-attempt state before each attempt."""

    async def before_send(self) -> None:
        """Run sub-commands that must precede the request (gate already held)."""

    async def receive(self) -> None:
        """Read the response to the request just sent, until complete or timed out."""
        await ResponseDispatcher(self, self.session.stream, self.response_timeout).run()

    async def after_echo(self) -> None:
        """Called once the IM echo has been consumed and the command is still running."""

    def log_params(self) -> str:
        if self.to_device is not None:
            return f"{self.to_device}, cmd1: {self.cmd1:02X}, cmd2: {self.cmd2:02X}"
        return self.params

    def describe_result(self) -> str | None:
        """One-line description of a successful result, logged at INFO."""
        return None

    # Event handling

    def handle(self, event: ResponseEvent) -> Reaction:
        """React to one event from the response stream."""
        if self.to_device is not None:
            return self._handle_device_event(event)

        if isinstance(event, ImEcho):
            self.im_response = event.payload
            return done()
        # Anything else the IM reports while a hub command runs is informational
        return CONSUME

    def _is_to_hub(self, message: StandardMessage | ExtendedMessage) -> bool:
        hub_id = self.session.hub_id
        return hub_id.is_null or message.to_id == hub_id

    def _may_be_partial(self, message: StandardMessage | ExtendedMessage) -> bool:
        """Whether a message may still be being written into the ring.

        The hub zeroes what follows the last message, so a body caught mid-write
        reads as a direct message to 00.00.00. Such messages are left in place
        and re-read on the next poll.
        """
        if message.message_type is MessageType.DIRECT:
            return True
        return message.message_type in (MessageType.DIRECT_ACK, MessageType.DIRECT_NAK) and not self._is_to_hub(
            message
        )

    def _handle_device_event(self, event: ResponseEvent) -> Reaction:
        if isinstance(event, ImEcho):
            if self.code == IM_SEND_INSTEON_MESSAGE and event.payload != self.params:
                return WAIT
            self.im_response = event.payload
            return CONSUME

        if isinstance(event, StandardReceived):
            message = event.message
            if self._may_be_partial(message):
                return WAIT
            from_target = message.from_id == self.to_device
            message_type = message.message_type
            if message_type is MessageType.DIRECT_ACK and self._is_to_hub(message):
                if from_target:
                    logger.debug("Received standard direct ACK from device %s", message.from_id)
                    return self.on_standard_response(message)
            elif message_type is MessageType.DIRECT_NAK and self._is_to_hub(message):
                if from_target and message.cmd1 == self.cmd1:
                    logger.debug("Received standard direct NAK from device %s", message.from_id)
                    return self.on_direct_nak(message)
            elif message_type is MessageType.BROADCAST:
                if from_target:
                    return self.on_broadcast(message)
            # All-link broadcasts, cleanups and traffic of other devices
            return CONSUME

        if isinstance(event, NoDeviceReceived):
            message = event.message
            if (
                message.message_type is MessageType.DIRECT_ACK
                and self._is_to_hub(message)
                and message.from_id == self.to_device
            ):
                logger.debug("Received 'no device found' message from the IM (%s)", message.from_id)
                self.standard_response = message
                return done(ErrorKind.NO_DEVICE_RESPONSE)
            if self._may_be_partial(message):
                return WAIT
            return CONSUME

        if isinstance(event, ExtendedReceived):
            message = event.message
            if message.from_id == self.to_device:
                if self._is_to_hub(message):
                    return self.on_extended_response(message)
                # Same slot as the reply, still being written
                return WAIT
            return CONSUME

        if isinstance(event, AllLinkingCompleted | AllLinkRecordReceived | InformationalMessage):
            return CONSUME
        return WAIT

    def on_standard_response(self, message: StandardMessage) -> Reaction:
        self.standard_response = message
        if self.expect_extended_response:
            return CONSUME
        return done()

    def on_direct_nak(self, message: StandardMessage) -> Reaction:
        self.standard_response = message
        if self.expect_extended_response:
            # Some devices NAK once or twice before sending the extended response
            logger.debug("Extended response message expected, NAK considered as ACK")
            return CONSUME
        if message.cmd2 == self.cmd2:
            # Some devices NAK set commands with cmd2 echoed as their way to ACK
            logger.debug("Cmd2 of NAK message is same as sent, NAK considered as ACK")
            return done()
        code = message.nak_error_code
        logger.debug(
            "Direct NAK from %s: %s",
            message.from_id,
            code.name if code is not None else f"0x{message.cmd2:02X}",
        )
        return done(ErrorKind.NAK)

    def on_broadcast(self, message: StandardMessage) -> Reaction:
        return CONSUME

    def on_extended_response(self, message: ExtendedMessage) -> Reaction:
        if self.expect_extended_response:
            logger.debug("Received valid extended message response from device %s", message.from_id)
            self.extended_response = message
            return done()
        return WAIT

    # Logging

    def _echo(self, attempt: int, max_attempts: int) -> None:
        if self.suppress_logging:
            return
        suffix = f" (attempt {attempt}/{max_attempts})" if attempt > 1 else ""
        params = self.log_params()
        logger.info(
            "→ %s%s%s",
            self.log_name,
            f" {params}" if params else "",
            suffix,
            extra={"max_attempts": max_attempts},
        )

    def _log_outcome(self, outcome: CommandOutcome) -> None:
        if outcome.success:
            description = self.describe_result()
            if outcome.cancelled:
                logger.info("✓ %s cancelled", self.log_name)
            elif description and not self.suppress_logging:
                logger.info("✓ %s", description)
            else:
                logger.debug("✓ %s succeeded", self.log_name)
        else:
            logger.warning(
                "✗ %s failed after %d attempt(s): %s",
                self.log_name,
                outcome.attempt,
                outcome.error_kind.description,
                extra={"error_kind": outcome.error_kind.name, "attempts": outcome.attempt},
            )

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.log_params()})"


class MacroCommand(Command, ABC):
    """Command that orchestrates sub-commands instead of talking to the hub.

    Macros never take the execution gate; each sub-command takes it for its
    own attempts, so the macro's own steps (merging, formatting) run outside.
    """

    is_macro: ClassVar[bool] = True

    def __init__(self, session: HubSession, **kwargs) -> None:
        super().__init__(session, **kwargs)
        self._current: Command | None = None

    @abstractmethod
    async def run(self) -> bool:
        """Run one attempt; set self.error_kind and return False on failure."""

    async def run_sub_command(self, command: Command, max_attempts: int = DEFAULT_MAX_ATTEMPTS) -> CommandOutcome:
        self._current = command
        try:
            return await command.try_run(max_attempts)
        finally:
            self._current = None

    async def _run_attempt(self) -> bool:
        self.error_kind = ErrorKind.NO_ERROR
        self.state = CommandState.RUNNING
        self._complete = False
        success = await self.run()
        if self.is_cancelled:
            return True
        if not success and self.error_kind.is_success:
            self.error_kind = ErrorKind.UNKNOWN
        if success:
            self.error_kind = ErrorKind.NO_ERROR
            self.complete()
        return success

    async def cancel(self) -> None:
        current = self._current
        await super().cancel()
        if current is not None:
            await current.cancel()
