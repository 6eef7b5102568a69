"""
Run scopes for hub commands.

A run is one top-level command and everything it spawns: retries,
sub-commands and driver steps. They all share the run's correlation ID, so a
whole database sync can be followed in the logs. Inside the run, the command
currently on the wire, its target device and the attempt number are tracked
as well; the log formatters pick them up without every call site passing
them along.
"""

from __future__ import annotations

import contextvars
import dataclasses
import uuid
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import cast

from uuid_extensions import uuid7

__all__ = [
    "CommandRun",
    "command_scope",
    "correlation_context",
    "current_run",
    "generate_correlation_id",
    "get_correlation_id",
    "set_attempt",
]


@dataclass(frozen=True, slots=True)
class CommandRun:
    """What is running in the current context.

    Attributes:
        correlation_id: ID shared by the top-level command and its sub-commands
        command: Log name of the innermost running command
        device_id: Dotted ID of the device that command targets
        attempt: 1-based attempt of that command, 0 before the first one
    """

    correlation_id: str | None
    command: str | None = None
    device_id: str | None = None
    attempt: int = 0


_current_run: contextvars.ContextVar[CommandRun | None] = contextvars.ContextVar(
    "insteon_command_run",
    default=None,
)


def generate_correlation_id() -> str:
    """
    Generate a new correlation ID.

    Returns:
        Time-ordered UUIDv7 hex string (no dashes)
    """
    return cast(uuid.UUID, uuid7()).hex


def current_run() -> CommandRun | None:
    """The run scope of the current context, None outside any."""
    return _current_run.get()


def get_correlation_id() -> str | None:
    """Correlation ID of the current run, None outside any."""
    run = _current_run.get()
    return run.correlation_id if run is not None else None


@contextmanager
def correlation_context(correlation_id: str | None = None) -> Generator[str]:
    """
    Open a fresh run scope with no command in it yet.

    Used by the console around a whole invocation, so that settings errors
    and the command log share one ID.

    Yields:
        The correlation ID of the scope
    """
    run = CommandRun(correlation_id or generate_correlation_id())
    token = _current_run.set(run)
    try:
        yield cast(str, run.correlation_id)
    finally:
        _current_run.reset(token)


@contextmanager
def command_scope(command: str, device_id: object | None = None) -> Generator[CommandRun]:
    """
    Enter a command within the current run, or start a run if there is none.

    A sub-command joins the caller's correlation ID; log lines emitted inside
    the scope are tagged with this command and device. The enclosing command
    is restored on exit.

    Example:
        with command_scope("GetImDatabase") as run:
            ...  # run.correlation_id is shared with every sub-command
    """
    outer = _current_run.get()
    correlation_id = outer.correlation_id if outer is not None and outer.correlation_id else None
    run = CommandRun(
        correlation_id or generate_correlation_id(),
        command,
        str(device_id) if device_id is not None else None,
    )
    token = _current_run.set(run)
    try:
        yield run
    finally:
        _current_run.reset(token)


def set_attempt(attempt: int) -> None:
    """Record the attempt number of the command of the current scope."""
    run = _current_run.get()
    if run is not None:
        _current_run.set(dataclasses.replace(run, attempt=attempt))
