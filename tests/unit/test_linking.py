"""Unit tests for IM all-linking, run against the simulated hub."""

from __future__ import annotations

import asyncio

import pytest

from insteon_hub.commands import (
    EnterLinkingModeCommand,
    StartImLinkingCommand,
    linking_action_from_name,
)
from insteon_hub.protocol.messages import LinkingAction
from tests.helpers.links import DEVICE_ID
from tests.helpers.streams import wait_for_request

LINKING_TIMEOUT = 2.0


class TestLinkingActionNames:
    """Tests for console action names."""

    @pytest.mark.parametrize(
        ("name", "action"),
        [
            ("Responder", LinkingAction.RESPONDER),
            ("controller", LinkingAction.CONTROLLER),
            ("AUTO", LinkingAction.AUTO),
            ("Unlink", LinkingAction.DELETE),
        ],
    )
    def test_names(self, name, action):
        """Test the accepted names, in any case."""
        assert linking_action_from_name(name) is action

    def test_unknown(self):
        """Test that unknown names are rejected."""
        with pytest.raises(ValueError):
            linking_action_from_name("Both")


class TestEnterLinkingMode:
    """Tests for putting a device in linking mode."""

    @pytest.mark.asyncio
    async def test_set_button_broadcast(self, session, device):
        """Test that the device ACK and SET broadcast complete the command."""
        command = EnterLinkingModeCommand(session, DEVICE_ID, 1)
        assert await command.try_run()
        assert device.in_linking_mode
        assert (command.device_category, command.device_subcategory, command.device_revision) == (0x01, 0x20, 0x45)

    @pytest.mark.asyncio
    async def test_i2cs_gets_extended_request(self, session, hub, device):
        """Test that an i2cs device is sent the extended form."""
        await EnterLinkingModeCommand(session, DEVICE_ID, 1).try_run()
        linking_requests = [r for r in hub.requests if r.startswith("3?02621A2B3C")][1:]
        assert linking_requests[0].startswith("3?02621A2B3C1F0901")

    @pytest.mark.asyncio
    async def test_older_device_gets_standard_request(self, session, hub, device):
        """Test that devices before i2cs are sent the standard form."""
        device.engine_version = 1
        await EnterLinkingModeCommand(session, DEVICE_ID, 1).try_run()
        assert hub.requests[-1] == "3?02621A2B3C0F0901=I=3"


class TestStartImLinking:
    """Tests for the IM linking flow."""

    @pytest.mark.asyncio
    async def test_link_device_as_controller(self, session, hub, device):
        """Test linking with the device put in linking mode remotely."""
        command = StartImLinkingCommand(
            session, 1, LinkingAction.CONTROLLER, DEVICE_ID, response_timeout=LINKING_TIMEOUT
        )
        assert await command.try_run(max_attempts=1)
        assert command.linking_completed is not None
        assert command.linking_completed.device_id == DEVICE_ID
        assert [(r.destination, r.group, r.is_controller) for r in hub.im_records] == [(DEVICE_ID, 1, True)]
        assert command.describe_result().startswith("Linked IM, group 1 as Controller")

    @pytest.mark.asyncio
    async def test_unlink_device(self, session, hub, device):
        """Test unlinking with the device put in unlinking mode remotely."""
        await StartImLinkingCommand(
            session, 1, LinkingAction.CONTROLLER, DEVICE_ID, response_timeout=LINKING_TIMEOUT
        ).try_run(max_attempts=1)

        command = StartImLinkingCommand(session, 1, LinkingAction.DELETE, DEVICE_ID, response_timeout=LINKING_TIMEOUT)
        assert await command.try_run(max_attempts=1)
        assert hub.im_records == []
        assert command.describe_result().startswith("Unlinked IM")

    @pytest.mark.asyncio
    async def test_manual_set_button(self, session, hub, device):
        """Test linking completed by pressing the SET button."""
        command = StartImLinkingCommand(session, 2, LinkingAction.RESPONDER, response_timeout=LINKING_TIMEOUT)
        task = asyncio.create_task(command.try_run(max_attempts=1))
        await wait_for_request(hub, "3?0264")
        hub.press_set_button(DEVICE_ID)

        assert await task
        assert [(r.destination, r.group, r.is_controller) for r in hub.im_records] == [(DEVICE_ID, 2, False)]

    @pytest.mark.asyncio
    async def test_cancel_sends_cancel_request(self, session, hub):
        """Test that cancelling stops linking mode on the IM."""
        command = StartImLinkingCommand(session, 1, LinkingAction.AUTO, response_timeout=LINKING_TIMEOUT)
        task = asyncio.create_task(command.try_run(max_attempts=1))
        await wait_for_request(hub, "3?0264")
        await asyncio.sleep(0.05)
        await command.cancel()

        outcome = await task
        assert outcome.cancelled
        assert hub.requests[-1] == "3?0265=I=3"

    @pytest.mark.asyncio
    async def test_no_link_times_out(self, session):
        """Test that linking mode without a SET press ends in failure."""
        command = StartImLinkingCommand(session, 1, LinkingAction.AUTO, response_timeout=0.1)
        outcome = await command.try_run(max_attempts=1)
        assert not outcome.success
