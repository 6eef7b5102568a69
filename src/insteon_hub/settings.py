"""Hub connection settings.

Settings come from a YAML file's `hub:` section when one is given, with the
INSTEON_* environment variables (see const.py) filling in whatever the file
leaves out.

Example config file:

    hub:
      host: 192.168.1.20
      port: 25105
      username: admin
      password: secret
      response_timeout_ms: 5000
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import cast

import yaml
from pydantic import BaseModel, Field, field_validator

from insteon_hub import const
from insteon_hub.logging_abstraction import get_logger
from insteon_hub.protocol.exceptions import HexDecodeError
from insteon_hub.protocol.insteon_id import InsteonID
from insteon_hub.transport.retry_policy import RetryPolicy, TimeoutConfig

logger = get_logger(__name__)

CONFIG_SECTION = "hub"


class HubSettings(BaseModel):
    """Connection and pacing settings of one hub."""

    host: str = Field(default_factory=lambda: const.INSTEON_HUB_HOST)
    port: int = Field(default_factory=lambda: const.INSTEON_HUB_PORT, ge=1, le=65535)
    username: str | None = Field(default_factory=lambda: const.INSTEON_HUB_USERNAME)
    password: str | None = Field(default_factory=lambda: const.INSTEON_HUB_PASSWORD)
    hub_id: str | None = None
    http_timeout_seconds: float = Field(default_factory=lambda: float(const.INSTEON_HTTP_TIMEOUT), gt=0)
    response_timeout_ms: int = Field(default_factory=lambda: const.INSTEON_RESPONSE_TIMEOUT_MS, gt=0)
    command_spacing_ms: int = Field(default_factory=lambda: const.INSTEON_COMMAND_SPACING_MS, ge=0)
    buffer_poll_ms: int = Field(default_factory=lambda: const.INSTEON_BUFFER_POLL_MS, ge=0)
    retry_base_delay_ms: int = Field(default_factory=lambda: const.INSTEON_RETRY_BASE_DELAY_MS, ge=0)
    metrics_port: int = Field(default_factory=lambda: const.INSTEON_METRICS_PORT, ge=1, le=65535)

    @field_validator("host")
    @classmethod
    def _host_not_empty(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("hub host must not be empty")
        return value

    @field_validator("hub_id")
    @classmethod
    def _valid_hub_id(cls, value: str | None) -> str | None:
        if value is None:
            return None
        try:
            return str(InsteonID.parse(value))
        except (HexDecodeError, ValueError) as e:
            raise ValueError(f"invalid hub id {value!r}") from e

    @property
    def insteon_id(self) -> InsteonID:
        return InsteonID.parse(self.hub_id) if self.hub_id else InsteonID.NULL

    def timeout_config(self) -> TimeoutConfig:
        return TimeoutConfig(
            response_timeout_ms=self.response_timeout_ms,
            command_spacing_ms=self.command_spacing_ms,
            buffer_poll_ms=self.buffer_poll_ms,
            http_timeout_seconds=self.http_timeout_seconds,
        )

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(base_delay_seconds=self.retry_base_delay_ms / 1000.0)


def load_settings(config_file: str | Path | None = None) -> HubSettings:
    """Load settings from the `hub:` section of a YAML file, env for the rest.

    Raises:
        OSError: config file cannot be read
        yaml.YAMLError: config file is not valid YAML
        pydantic.ValidationError: settings out of range
    """
    config_file = config_file or const.INSTEON_CONFIG_FILE
    if not config_file:
        return HubSettings()

    path = Path(config_file)
    logger.debug("Parsing config file: %s", path)
    try:
        with path.open() as f:
            raw_config = cast("Mapping[str, object] | None", yaml.safe_load(f))
    except Exception:
        logger.exception("Failed to parse config file: %s", path)
        raise

    if not isinstance(raw_config, Mapping):
        logger.warning("Invalid config structure: expected mapping at root")
        return HubSettings()
    section = raw_config.get(CONFIG_SECTION)
    if not isinstance(section, Mapping):
        logger.warning("No '%s' section found in config file", CONFIG_SECTION)
        return HubSettings()
    return HubSettings.model_validate(dict(cast("Mapping[str, object]", section)))
