"""Logging for the INSTEON hub engine.

Dual-format output (JSON + human-readable). Every line carries the run's
correlation ID and, inside a command, the command's name, target device and
attempt number taken from the run scope (see `insteon_hub.correlation`).
Those and the error kind are first-class fields of the JSON output; anything
else passed through `extra=` lands in its `context` object.
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import cast, override

from insteon_hub.correlation import current_run

__all__ = [
    "HUB_FIELDS",
    "HumanReadableFormatter",
    "InsteonLogger",
    "JSONFormatter",
    "format_buffer",
    "get_logger",
]

HUB_FIELDS = ("command", "device_id", "attempt", "error_kind")


def hub_fields(record: logging.LogRecord) -> tuple[dict[str, object], dict[str, object]]:
    """Split a record's structured data into hub fields and free context.

    Hub fields come from the run scope; values passed through `extra=` take
    precedence (the gate logs on behalf of the command it waits for).
    """
    fields: dict[str, object] = {}
    run = current_run()
    if run is not None:
        fields["correlation_id"] = run.correlation_id
        if run.command is not None:
            fields["command"] = run.command
        if run.device_id is not None:
            fields["device_id"] = run.device_id
        if run.attempt:
            fields["attempt"] = run.attempt

    context: dict[str, object] = {}
    extra_data = getattr(record, "extra_data", None)
    if isinstance(extra_data, Mapping) and extra_data:
        for key, value in cast("Mapping[str, object]", extra_data).items():
            if key in HUB_FIELDS:
                fields[key] = value
            else:
                context[key] = value
    return fields, context


class JSONFormatter(logging.Formatter):
    """Formatter that outputs one JSON object per line."""

    @override
    def format(self, record: logging.LogRecord) -> str:
        fields, context = hub_fields(record)
        log_data: dict[str, object] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
            "correlation_id": fields.pop("correlation_id", None),
        }
        for key in HUB_FIELDS:
            log_data[key] = fields.get(key)
        if context:
            log_data["context"] = context
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Formatter for the console.

    Format: timestamp level [module:line] [corr] command@device#attempt > message | context
    """

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s.%(msecs)03d %(levelname)s [%(module)s:%(lineno)d] %(hub_tag)s> %(message)s",
            datefmt="%m/%d/%y %H:%M:%S",
        )

    @override
    def format(self, record: logging.LogRecord) -> str:
        fields, context = hub_fields(record)
        record.hub_tag = self._tag(fields)

        formatted = super().format(record)

        error_kind = fields.get("error_kind")
        if error_kind is not None:
            context = {"error": error_kind, **context}
        if context:
            formatted += " | " + " | ".join(f"{k}={v}" for k, v in context.items())
        return formatted

    @staticmethod
    def _tag(fields: Mapping[str, object]) -> str:
        # UUIDv7 ids share their leading timestamp bits, the tail tells runs apart
        correlation_id = fields.get("correlation_id")
        tag = f"[{str(correlation_id)[-8:]}] " if correlation_id else "[--------] "
        command = fields.get("command")
        if command is None:
            return tag
        tag += str(command)
        if fields.get("device_id") is not None:
            tag += f"@{fields['device_id']}"
        attempt = fields.get("attempt")
        if isinstance(attempt, int) and attempt > 1:
            tag += f"#{attempt}"
        return tag + " "


def format_buffer(content: str, current: int, next_: int, length_chars: int) -> list[str]:
    """Render the response ring with markers under the read positions.

    Trailing zeros (the cleared part of the ring) are trimmed down to half the
    ring, or to N when N lies further. The second line marks C and N.

    Args:
        content: Ring content as hex text
        current: C, byte offset (wrapped or not)
        next_: N, byte offset (wrapped or not)
        length_chars: Full ring length in hex characters

    """
    size = len(content) // 2
    if size == 0:
        return []
    c = (current % size) * 2
    n = (next_ % size) * 2
    shown = content.rstrip("0")
    width = max(len(shown), length_chars // 2, n)
    shown = shown.ljust(width, "0")
    if width < length_chars:
        shown += "..."
    if c < n:
        markers = " " * c + "C" + " " * (n - c - 1) + "N"
    elif c > n:
        markers = " " * n + "N" + " " * (c - n - 1) + "C"
    else:
        markers = " " * c + "C"
    return [shown, markers]


class InsteonLogger:
    """Logger wrapper providing dual-format output (JSON + human-readable).

    Wraps a stdlib logger; records still propagate, so anything attached to the
    root logger (pytest's caplog included) sees them.
    """

    def __init__(
        self,
        name: str,
        log_format: str = "human",
        json_file: str | Path | None = None,
        human_output: str | None = "stdout",
    ) -> None:
        """Initialize InsteonLogger.

        Args:
            name: Logger name (typically module name)
            log_format: Output format - "json", "human", or "both"
            json_file: Path for JSON output file (None to disable file output)
            human_output: "stdout", "stderr", or file path for human-readable output

        """
        self.name: str = name
        self.logger: logging.Logger = logging.getLogger(name)
        self.log_format: str = log_format

        from insteon_hub.const import INSTEON_DEBUG

        self.logger.setLevel(logging.DEBUG if INSTEON_DEBUG else logging.INFO)

        # Modules share loggers with their tests; configure once
        if not self.logger.handlers:
            self._configure_handlers(json_file, human_output)

    def _configure_handlers(self, json_file: str | Path | None, human_output: str | None) -> None:
        handler_level = self.logger.level

        if self.log_format in ("json", "both") and json_file:
            try:
                json_path = Path(json_file)
                json_path.parent.mkdir(parents=True, exist_ok=True)
                json_handler = logging.FileHandler(json_path, mode="a")
                json_handler.setFormatter(JSONFormatter())
                json_handler.setLevel(handler_level)
                self.logger.addHandler(json_handler)
            except OSError as e:
                print(f"Warning: Failed to create JSON log file {json_file}: {e}", file=sys.stderr)

        if self.log_format in ("human", "both"):
            output = human_output or "stdout"
            if output == "stdout":
                human_handler = logging.StreamHandler(sys.stdout)
            elif output == "stderr":
                human_handler = logging.StreamHandler(sys.stderr)
            else:
                try:
                    human_path = Path(output)
                    human_path.parent.mkdir(parents=True, exist_ok=True)
                    human_handler = logging.FileHandler(human_path, mode="a")
                except OSError as e:
                    print(f"Warning: Failed to create human log file {output}: {e}", file=sys.stderr)
                    human_handler = logging.StreamHandler(sys.stdout)

            human_handler.setFormatter(HumanReadableFormatter())
            human_handler.setLevel(handler_level)
            self.logger.addHandler(human_handler)

    def _log(self, level: int, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        extra_payload = {"extra_data": dict(extra)} if extra else None
        # stacklevel points module/lineno at the caller, not at this wrapper
        self.logger.log(level, msg, *args, extra=extra_payload, stacklevel=3)

    def debug(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.DEBUG, msg, *args, extra=extra)

    def info(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.INFO, msg, *args, extra=extra)

    def warning(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.WARNING, msg, *args, extra=extra)

    def error(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.ERROR, msg, *args, extra=extra)

    def exception(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        """Log at ERROR with the current exception's traceback."""
        extra_payload = {"extra_data": dict(extra)} if extra else None
        self.logger.exception(msg, *args, extra=extra_payload, stacklevel=2)

    def buffer(self, content: str, current: int, next_: int, length_chars: int) -> None:
        """Dump the response ring with its C/N markers at DEBUG."""
        if not self.logger.isEnabledFor(logging.DEBUG):
            return
        for line in format_buffer(content, current, next_, length_chars):
            self.logger.debug(line, stacklevel=2)


def get_logger(
    name: str,
    log_format: str | None = None,
    json_file: str | Path | None = None,
    human_output: str | None = None,
) -> InsteonLogger:
    """Get or create an InsteonLogger, defaults from the INSTEON_LOG_* environment."""
    from insteon_hub.const import (
        INSTEON_LOG_FORMAT,
        INSTEON_LOG_HUMAN_OUTPUT,
        INSTEON_LOG_JSON_FILE,
    )

    return InsteonLogger(
        name=name,
        log_format=log_format or INSTEON_LOG_FORMAT,
        json_file=json_file or INSTEON_LOG_JSON_FILE,
        human_output=human_output or INSTEON_LOG_HUMAN_OUTPUT,
    )
