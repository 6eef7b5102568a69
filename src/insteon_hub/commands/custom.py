"""Raw requests for exploring and configuring the hub.

The hub takes four request families, all sent here verbatim:
- 0 (bare): short IM commands, e.g. "0?08=I=0" stops linking
- 1 (hub): hub commands, e.g. "1?XB=M=1" clears the response buffer
- 2 (hub config): channel and schedule configuration, e.g. "2?S215=..."
- 3 (IM): full IM messages, e.g. "3?0260=I=3"
"""

from __future__ import annotations

import asyncio
from typing import ClassVar

from insteon_hub.commands.command import Command, CommandClass
from insteon_hub.protocol.hex_string import HexString
from insteon_hub.session import HubSession

# Time the IM gets to write its reply before the buffer is read
DEFAULT_SETTLE_SECONDS = 0.5


def command_class_from_token(token: str) -> CommandClass:
    """Parse a request family given as "0".."3" or by name ("bare", "hub", "hubconfig", "im")."""
    key = token.replace("_", "").replace("-", "").lower()
    for command_class in CommandClass:
        if key in (command_class.value, command_class.name.replace("_", "").lower()):
            return command_class
    raise ValueError(f"Unknown command type: {token}")


class CustomHubCommand(Command):
    """Send a request body as is and capture what the hub wrote back.

    Nothing is parsed: the command completes once the hub accepted the
    request. For IM requests the response buffer is read after `settle`
    seconds and kept in `response`, trailing cleared bytes removed.
    """

    log_name: ClassVar[str] = "Custom"

    def __init__(
        self,
        session: HubSession,
        command_class: CommandClass,
        body: str,
        settle: float = DEFAULT_SETTLE_SECONDS,
        **kwargs,
    ) -> None:
        super().__init__(session, **kwargs)
        if not body:
            raise ValueError("Custom command needs a request body")
        self.command_class = command_class
        # Hub config values are case sensitive
        self._params = body
        self.settle = settle
        self.response: HexString | None = None

    def prepare_attempt(self) -> None:
        self.response = None

    async def receive(self) -> None:
        if self.command_class is CommandClass.IM:
            if self.settle > 0:
                await asyncio.sleep(self.settle)
            content = str(await self.session.stream.read(0, acquire=True))
            while content.endswith("00"):
                content = content[:-2]
            self.response = HexString(content)
        self.complete()

    def log_params(self) -> str:
        return f"Type: {self.command_class.name}, Command: {self.params}"

    def describe_result(self) -> str | None:
        if self.response is None:
            return f"{self.command_class.name} request accepted"
        return f"Response buffer: {self.response or '(empty)'}"
