"""All-linking between the hub's IM and a device.

StartImLinkingCommand puts the IM in linking mode (0x64) and waits for the
all-linking completed report (0x53). When a device id is given, the device is
put in linking (or unlinking) mode by a sub-command instead of waiting for
someone to press its SET button.
"""

from __future__ import annotations

from typing import ClassVar

from insteon_hub.commands.command import Command, CommandState
from insteon_hub.commands.device_commands import GetEngineVersionCommand
from insteon_hub.commands.events import (
    CONSUME,
    WAIT,
    AllLinkingCompleted,
    ImEcho,
    Reaction,
    ResponseEvent,
    done,
)
from insteon_hub.commands.outcome import ErrorKind
from insteon_hub.logging_abstraction import get_logger
from insteon_hub.protocol.insteon_id import InsteonID
from insteon_hub.protocol.messages import (
    DEVICE_ENTER_LINKING_MODE,
    DEVICE_ENTER_UNLINKING_MODE,
    IM_CANCEL_ALL_LINKING,
    IM_START_ALL_LINKING,
    SET_BUTTON_PRESSED_CONTROLLER,
    SET_BUTTON_PRESSED_RESPONDER,
    AllLinkingCompletedMessage,
    LinkingAction,
    StandardMessage,
)
from insteon_hub.session import HubSession

logger = get_logger(__name__)

# Time given to press the SET button
LINKING_RESPONSE_TIMEOUT = 240.0
START_LINKING_ECHO_LENGTH = 2

_ACTION_NAMES = {
    "responder": LinkingAction.RESPONDER,
    "controller": LinkingAction.CONTROLLER,
    "auto": LinkingAction.AUTO,
    "unlink": LinkingAction.DELETE,
}


def linking_action_from_name(name: str) -> LinkingAction:
    """Parse "Responder", "Controller", "Auto" or "Unlink" (case-insensitive)."""
    try:
        return _ACTION_NAMES[name.lower()]
    except KeyError:
        raise ValueError(f"Invalid linking action: {name}") from None


class EnterLinkingModeCommand(Command):
    """Put a device in linking mode for a group, as if its SET button was held.

    Completes once the device both ACKed the request and broadcast its
    SET-button-pressed message, which carries its category and revision.
    """

    log_name: ClassVar[str] = "EnterLinkingMode"

    def __init__(self, session: HubSession, device_id: InsteonID, group: int, **kwargs) -> None:
        super().__init__(session, to_device=device_id, cmd1=DEVICE_ENTER_LINKING_MODE, cmd2=group, **kwargs)
        self.set_button_message: StandardMessage | None = None

    def prepare_attempt(self) -> None:
        self.standard_response = None
        self.set_button_message = None

    async def before_send(self) -> None:
        engine = GetEngineVersionCommand(self.session, self.to_device, suppress_logging=True)
        outcome = await engine.try_run(parent=self.session.gate.holder)
        version = engine.engine_version
        if outcome.success and version is not None and version >= 2:
            # i2cs devices only accept the extended form
            self.clear_data()

    def log_params(self) -> str:
        return f"{self.to_device}, Group: {self.cmd2}"

    def on_standard_response(self, message: StandardMessage) -> Reaction:
        self.standard_response = message
        if self.set_button_message is not None:
            return done()
        return CONSUME

    def on_broadcast(self, message: StandardMessage) -> Reaction:
        if message.cmd1 not in (SET_BUTTON_PRESSED_RESPONDER, SET_BUTTON_PRESSED_CONTROLLER):
            return CONSUME
        self.set_button_message = message
        if self.standard_response is not None:
            return done()
        return CONSUME

    @property
    def device_category(self) -> int | None:
        return self.set_button_message.device_category if self.set_button_message else None

    @property
    def device_subcategory(self) -> int | None:
        return self.set_button_message.device_subcategory if self.set_button_message else None

    @property
    def device_revision(self) -> int | None:
        return self.set_button_message.device_revision if self.set_button_message else None

    def describe_result(self) -> str | None:
        return f"Device {self.to_device} entered linking mode"


class EnterUnlinkingModeCommand(Command):
    log_name: ClassVar[str] = "EnterUnlinkingMode"

    def __init__(self, session: HubSession, device_id: InsteonID, group: int, **kwargs) -> None:
        super().__init__(session, to_device=device_id, cmd1=DEVICE_ENTER_UNLINKING_MODE, cmd2=group, **kwargs)
        self.clear_data()

    def describe_result(self) -> str | None:
        return f"Device {self.to_device} entered unlinking mode"


class CancelImLinkingCommand(Command):
    log_name: ClassVar[str] = "CancelIMLinking"

    def __init__(self, session: HubSession, **kwargs) -> None:
        super().__init__(session, **kwargs)
        self.code = IM_CANCEL_ALL_LINKING

    def describe_result(self) -> str | None:
        return "Cancelled IM linking"


class StartImLinkingCommand(Command):
    """Start all-linking on the IM and wait for the link to be made.

    Args:
        group: Group to link
        action: Make the IM responder, controller, either (auto) or unlink
        device_id: Device to put in linking mode; None waits for a manual SET press
    """

    log_name: ClassVar[str] = "StartIMLinking"

    def __init__(
        self,
        session: HubSession,
        group: int,
        action: LinkingAction,
        device_id: InsteonID | None = None,
        **kwargs,
    ) -> None:
        kwargs.setdefault("response_timeout", LINKING_RESPONSE_TIMEOUT)
        super().__init__(session, **kwargs)
        self.code = IM_START_ALL_LINKING
        self.echo_length = START_LINKING_ECHO_LENGTH
        self.group = group
        self.action = action
        self.device_id = device_id
        self.params = f"{action.value:02X}{group:02X}"
        self.linking_completed: AllLinkingCompletedMessage | None = None

    def prepare_attempt(self) -> None:
        self.linking_completed = None

    def log_params(self) -> str:
        device = f"{self.device_id}, " if self.device_id else ""
        return f"{device}Group: {self.group}, {self.action.name.title()}"

    def handle(self, event: ResponseEvent) -> Reaction:
        if isinstance(event, ImEcho):
            self.im_response = event.payload
            # Now wait for the link to be made
            return CONSUME
        if isinstance(event, AllLinkingCompleted):
            message = event.message
            if self.device_id is not None and message.device_id != self.device_id:
                return WAIT
            self.linking_completed = message
            return done()
        return CONSUME

    async def after_echo(self) -> None:
        if self.device_id is None or self.device_id.is_null:
            return
        if self.action is LinkingAction.DELETE:
            command: Command = EnterUnlinkingModeCommand(self.session, self.device_id, self.group, suppress_logging=True)
        else:
            command = EnterLinkingModeCommand(self.session, self.device_id, self.group, suppress_logging=True)
        outcome = await command.try_run(parent=self)
        if not outcome.success:
            self.complete(ErrorKind.SUB_COMMAND_FAILED)

    async def cancel(self) -> None:
        if self.state is CommandState.RUNNING:
            await CancelImLinkingCommand(self.session).try_run(parent=self)
        await super().cancel()

    def describe_result(self) -> str | None:
        message = self.linking_completed
        if message is None:
            return None
        verb = "Unlinked" if self.action is LinkingAction.DELETE else "Linked"
        role = {LinkingAction.RESPONDER: "Responder", LinkingAction.CONTROLLER: "Controller"}.get(message.action, "member")
        return (
            f"{verb} IM, group {message.group} as {role} to device {message.device_id}, "
            f"Category: {message.category:02X}, Subcategory: {message.subcategory:02X}, "
            f"Rev: {message.firmware}"
        )
