"""Unit tests for the command state machine: retries, the execution gate and cancellation."""

from __future__ import annotations

import asyncio

import aiohttp
import pytest

from insteon_hub.commands import (
    Command,
    CommandClass,
    CommandOutcome,
    ErrorKind,
    GetImInfoCommand,
    MacroCommand,
    PingCommand,
)
from insteon_hub.commands.dispatcher import ResponseDispatcher
from insteon_hub.commands.events import WAIT, ExtendedReceived, StandardReceived
from insteon_hub.commands.outcome import error_kind_from_exception
from insteon_hub.protocol.exceptions import InvalidMessageError
from insteon_hub.protocol.hex_string import HexString
from insteon_hub.protocol.messages import ExtendedMessage, StandardMessage
from insteon_hub.session import HubSession
from insteon_hub.transport import RetryPolicy
from insteon_hub.transport.exceptions import ExecutionGateError, HubRequestError, HubTimeoutError, HubTransientError
from tests.helpers.links import DEVICE_ID, HUB_ID, fast_timeouts
from tests.helpers.streams import StaticStream, ring

BACKOFF_SECONDS = 0.2

PING_ECHO = "0262" + "1A2B3C0F0F00" + "06"
# Direct ACK from 1A.2B.3C to the hub for a ping
PING_ACK = "1A2B3C" + "112233" + "2B0F00"


class HoldersObserver:
    """Records which command held the gate at each request sent to the hub."""

    def __init__(self, session: HubSession) -> None:
        self.session = session
        self.holders: list[Command | None] = []

    def __call__(self, request: str) -> None:
        self.holders.append(self.session.gate.holder)


class TestBuildRequest:
    """Tests for request framing."""

    def test_im_command(self, session):
        """Test a raw IM request."""
        assert GetImInfoCommand(session).build_request() == "3?0260=I=3"

    def test_device_command(self, session):
        """Test a standard message to a device."""
        assert PingCommand(session, DEVICE_ID).build_request() == "3?02621A2B3C0F0F00=I=3"

    def test_hub_command(self, session):
        """Test a hub-class request, e.g. the buffer clear."""
        command = Command(session)
        command.command_class = CommandClass.HUB
        command.params = "XB"
        assert command.build_request() == "1?XB=M=1"

    def test_hub_config_command(self, session):
        """Test that hub-config requests carry no suffix."""
        command = Command(session)
        command.command_class = CommandClass.HUB_CONFIG
        command.params = "0102"
        assert command.build_request() == "2?0102"

    def test_extended_data_too_long(self, session):
        """Test that extended data is limited to 14 bytes."""
        with pytest.raises(ValueError):
            Command(session, to_device=DEVICE_ID, data=[0] * 15)


class TestRetries:
    """Tests for the attempt loop."""

    @pytest.mark.asyncio
    async def test_success_first_attempt(self, session, hub):
        """Test that a successful command is sent once."""
        command = GetImInfoCommand(session)
        outcome = await command.try_run()
        assert outcome.success
        assert outcome.attempt == 1
        assert command.im_id == HUB_ID
        assert len(hub.requests) == 1

    @pytest.mark.asyncio
    async def test_transient_send_failure_retried(self, session, hub):
        """Test that a transient transport error is retried."""
        hub.fail_sends = 1
        outcome = await GetImInfoCommand(session).try_run(max_attempts=3)
        assert outcome.success
        assert outcome.attempt == 2

    @pytest.mark.asyncio
    async def test_nak_retried(self, session, hub, device):
        """Test that an IM NAK is treated as recoverable."""
        hub.nak_count = 2
        outcome = await PingCommand(session, DEVICE_ID).try_run(max_attempts=3)
        assert outcome.success
        assert outcome.attempt == 3

    @pytest.mark.asyncio
    async def test_attempts_bounded(self, session, hub):
        """Test that a device that never answers exhausts the budget."""
        outcome = await PingCommand(session, DEVICE_ID).try_run(max_attempts=2)
        assert not outcome.success
        assert outcome.error_kind is ErrorKind.TIMEOUT
        assert outcome.attempt == 2
        assert len(hub.requests) == 2

    @pytest.mark.asyncio
    async def test_fatal_error_not_retried(self, session, hub):
        """Test that a rejected request is not retried."""
        command = GetImInfoCommand(session)
        command.params = "ZZ"
        outcome = await command.try_run(max_attempts=3)
        assert outcome.error_kind is ErrorKind.TRANSPORT_FATAL
        assert outcome.attempt == 1

    @pytest.mark.asyncio
    async def test_max_attempts_validated(self, session):
        """Test that at least one attempt is required."""
        with pytest.raises(ValueError):
            await GetImInfoCommand(session).try_run(max_attempts=0)

    @pytest.mark.asyncio
    async def test_outcome_kept(self, session):
        """Test that the outcome stays available on the command."""
        command = GetImInfoCommand(session)
        outcome = await command.try_run()
        assert command.outcome is outcome
        assert outcome.correlation_id


class TestExecutionGate:
    """Tests for the single-flight execution gate."""

    @pytest.mark.asyncio
    async def test_concurrent_commands_serialized(self, session, hub):
        """Test that concurrent commands take turns at the hub."""
        observer = HoldersObserver(session)
        hub.send_observers.append(observer)
        first = GetImInfoCommand(session)
        second = GetImInfoCommand(session)

        outcomes = await asyncio.gather(first.try_run(), second.try_run())

        assert all(outcomes)
        assert observer.holders == [first, second]
        assert not session.gate.locked()

    @pytest.mark.asyncio
    async def test_gate_released_during_backoff(self, hub):
        """Test that another command runs while a failed one backs off."""
        async with HubSession(
            hub,
            HUB_ID,
            retry_policy=RetryPolicy(base_delay_seconds=BACKOFF_SECONDS),
            timeout_config=fast_timeouts(),
        ) as session:
            observer = HoldersObserver(session)
            hub.send_observers.append(observer)
            hub.fail_sends = 1
            retried = GetImInfoCommand(session)
            other = GetImInfoCommand(session)

            await asyncio.gather(retried.try_run(), other.try_run())

        assert observer.holders == [retried, other, retried]
        assert retried.outcome is not None and retried.outcome.attempt == 2

    @pytest.mark.asyncio
    async def test_sub_command_requires_gate(self, session):
        """Test that a sub-command refuses to run when its parent holds no gate."""
        parent = GetImInfoCommand(session)
        with pytest.raises(ExecutionGateError):
            await GetImInfoCommand(session).try_run(parent=parent)

    @pytest.mark.asyncio
    async def test_traffic_listeners(self, session):
        """Test that listeners see traffic start and stop."""
        events: list[bool] = []
        session.add_traffic_listener(events.append)
        await GetImInfoCommand(session).try_run()
        assert events == [True, False]


class TestDeviceReplyRouting:
    """Tests for replies that are still being written into the ring."""

    @pytest.mark.asyncio
    async def test_partial_reply_read_again(self, session):
        """Test that a reply caught mid-write is re-read until complete."""
        command = PingCommand(session, DEVICE_ID)
        partial = ring((0, PING_ECHO), (9, "0250" + "1A2B3C"))
        full = ring((0, PING_ECHO), (9, "0250" + PING_ACK))
        stream = StaticStream(partial, partial, partial, partial, full)
        await ResponseDispatcher(command, stream, command.response_timeout).run()
        assert command.error_kind is ErrorKind.NO_ERROR
        assert command.standard_response is not None
        assert command.standard_response.from_id == DEVICE_ID

    def test_direct_message_not_consumed(self, session):
        """Test that zero-padded bodies are left in place."""
        command = PingCommand(session, DEVICE_ID)
        message = StandardMessage.from_hex(HexString("1A2B3C" + "000000" + "000000"))
        assert command.handle(StandardReceived(message)) is WAIT

    def test_ack_to_other_id_not_consumed(self, session):
        """Test that a direct ACK whose destination is not the hub is left in place."""
        command = PingCommand(session, DEVICE_ID)
        message = StandardMessage.from_hex(HexString("1A2B3C" + "112200" + "2B0F00"))
        assert command.handle(StandardReceived(message)) is WAIT

    def test_partial_extended_reply_not_consumed(self, session):
        """Test that an extended reply from the device not yet addressed to the hub waits."""
        command = PingCommand(session, DEVICE_ID)
        message = ExtendedMessage.from_hex(HexString("1A2B3C" + "000000" + "1B2F00" + "00" * 14))
        assert command.handle(ExtendedReceived(message)) is WAIT

    def test_other_device_ack_consumed(self, session):
        """Test that complete traffic from other devices is skipped."""
        command = PingCommand(session, DEVICE_ID)
        message = StandardMessage.from_hex(HexString("445566" + "112233" + "2B0F00"))
        assert command.handle(StandardReceived(message)).advance


class TestCancel:
    """Tests for cooperative cancellation."""

    @pytest.mark.asyncio
    async def test_cancel_running_command(self, session):
        """Test that a cancelled command ends as a success-equivalent."""
        command = PingCommand(session, DEVICE_ID)
        task = asyncio.create_task(command.try_run(max_attempts=3))
        await asyncio.sleep(0.05)
        await command.cancel()
        outcome = await task
        assert outcome.success
        assert outcome.cancelled
        assert outcome.attempt == 1

    @pytest.mark.asyncio
    async def test_cancelled_before_run(self, session, hub):
        """Test that a command cancelled up front never reaches the hub."""
        command = GetImInfoCommand(session)
        await command.cancel()
        outcome = await command.try_run()
        assert outcome.cancelled
        assert hub.requests == []

    @pytest.mark.asyncio
    async def test_macro_cancels_current_sub_command(self, session, hub):
        """Test that cancelling a macro cancels the sub-command it is running."""

        class PingTwice(MacroCommand):
            async def run(self) -> bool:
                await self.run_sub_command(PingCommand(self.session, DEVICE_ID), max_attempts=1)
                if self.is_cancelled:
                    return True
                await self.run_sub_command(PingCommand(self.session, DEVICE_ID), max_attempts=1)
                return True

        macro = PingTwice(session)
        task = asyncio.create_task(macro.try_run(max_attempts=1))
        await asyncio.sleep(0.05)
        await macro.cancel()
        outcome = await task
        assert outcome.cancelled
        assert len(hub.requests) == 1


class TestOutcome:
    """Tests for outcomes and error classification."""

    def test_inconsistent_outcome_rejected(self):
        """Test that success must agree with the error kind."""
        with pytest.raises(ValueError):
            CommandOutcome(True, ErrorKind.TIMEOUT, 1)

    def test_cancelled_is_success(self):
        """Test that cancellation is not a failure."""
        assert ErrorKind.CANCELLED.is_success
        assert not ErrorKind.CANCELLED.is_recoverable

    @pytest.mark.parametrize(
        ("exc", "kind"),
        [
            (HubTransientError("reset"), ErrorKind.TRANSPORT_TRANSIENT),
            (HubTimeoutError("slow"), ErrorKind.TIMEOUT),
            (TimeoutError(), ErrorKind.TIMEOUT),
            (HubRequestError("denied", status=401), ErrorKind.TRANSPORT_FATAL),
            (aiohttp.ClientConnectionError(), ErrorKind.TRANSPORT_FATAL),
            (InvalidMessageError("standard_length", 9, 3), ErrorKind.TRANSPORT_FATAL),
            (RuntimeError("boom"), ErrorKind.UNKNOWN),
        ],
    )
    def test_error_kind_from_exception(self, exc, kind):
        """Test translation of exceptions raised during an attempt."""
        assert error_kind_from_exception(exc) is kind
