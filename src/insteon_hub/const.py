import logging
import os
import zoneinfo

import tzlocal

from insteon_hub import __version__

__all__ = [
    "DEFAULT_MAX_ATTEMPTS",
    "INSTEON_BUFFER_POLL_MS",
    "INSTEON_COMMAND_SPACING_MS",
    "INSTEON_CONFIG_FILE",
    "INSTEON_DEBUG",
    "INSTEON_ENABLE_EXPORTER",
    "INSTEON_HTTP_TIMEOUT",
    "INSTEON_HUB_HOST",
    "INSTEON_HUB_PASSWORD",
    "INSTEON_HUB_PORT",
    "INSTEON_HUB_USERNAME",
    "INSTEON_LOG_FORMAT",
    "INSTEON_LOG_HUMAN_OUTPUT",
    "INSTEON_LOG_JSON_FILE",
    "INSTEON_MAX_ATTEMPTS",
    "INSTEON_METRICS_PORT",
    "INSTEON_PERF_THRESHOLD_MS",
    "INSTEON_PERF_TRACKING",
    "INSTEON_RESPONSE_TIMEOUT_MS",
    "INSTEON_RETRY_BASE_DELAY_MS",
    "INSTEON_VERSION",
    "LOCAL_TZ",
    "LOG_FORMATTER",
    "RECORD_READ_MAX_ATTEMPTS",
    "YES_ANSWER",
]

YES_ANSWER = ("true", "1", "yes", "y", "t", 1, "on", "o")
LOCAL_TZ = zoneinfo.ZoneInfo(str(tzlocal.get_localzone()))

LOG_FORMATTER = logging.Formatter(
    "%(asctime)s.%(msecs)d %(levelname)s [%(module)s:%(lineno)d] > %(message)s",
    "%m/%d/%y %H:%M:%S",
)
INSTEON_VERSION: str = __version__


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, str(default))
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


INSTEON_HUB_HOST: str = os.environ.get("INSTEON_HUB_HOST", "insteon-hub.local")
INSTEON_HUB_PORT: int = _env_int("INSTEON_HUB_PORT", 25105)
_username = os.environ.get("INSTEON_HUB_USERNAME")
INSTEON_HUB_USERNAME: str | None = _username if _username else None
_password = os.environ.get("INSTEON_HUB_PASSWORD")
INSTEON_HUB_PASSWORD: str | None = _password if _password else None
INSTEON_CONFIG_FILE: str | None = os.environ.get("INSTEON_CONFIG_FILE") or None

# Seconds for a single HTTP round trip to the hub
INSTEON_HTTP_TIMEOUT: int = _env_int("INSTEON_HTTP_TIMEOUT", 10)
# No progress in the response stream for this long completes a command with Timeout
INSTEON_RESPONSE_TIMEOUT_MS: int = _env_int("INSTEON_RESPONSE_TIMEOUT_MS", 5000)
# Minimum interval between the end of a command and the next request
INSTEON_COMMAND_SPACING_MS: int = _env_int("INSTEON_COMMAND_SPACING_MS", 50)
# Minimum interval between two buffstatus.xml fetches
INSTEON_BUFFER_POLL_MS: int = _env_int("INSTEON_BUFFER_POLL_MS", 20)
INSTEON_RETRY_BASE_DELAY_MS: int = _env_int("INSTEON_RETRY_BASE_DELAY_MS", 100)
INSTEON_MAX_ATTEMPTS: int = _env_int("INSTEON_MAX_ATTEMPTS", 3)
DEFAULT_MAX_ATTEMPTS: int = INSTEON_MAX_ATTEMPTS
# Devices drop record reads under load, link-database walks get a larger budget
RECORD_READ_MAX_ATTEMPTS: int = 15

INSTEON_DEBUG: bool = os.environ.get("INSTEON_DEBUG", "0").casefold() in YES_ANSWER

# Logging configuration
INSTEON_LOG_FORMAT: str = os.environ.get("INSTEON_LOG_FORMAT", "human").casefold()
if INSTEON_LOG_FORMAT not in ("json", "human", "both"):
    INSTEON_LOG_FORMAT = "human"
INSTEON_LOG_JSON_FILE: str | None = os.environ.get("INSTEON_LOG_JSON_FILE") or None
INSTEON_LOG_HUMAN_OUTPUT: str = os.environ.get("INSTEON_LOG_HUMAN_OUTPUT", "stdout")

# Performance instrumentation
INSTEON_PERF_TRACKING: bool = os.environ.get("INSTEON_PERF_TRACKING", "false").casefold() in YES_ANSWER
INSTEON_PERF_THRESHOLD_MS: int = _env_int("INSTEON_PERF_THRESHOLD_MS", 500)

# Prometheus exporter
INSTEON_ENABLE_EXPORTER: bool = os.environ.get("INSTEON_ENABLE_EXPORTER", "false").casefold() in YES_ANSWER
INSTEON_METRICS_PORT: int = _env_int("INSTEON_METRICS_PORT", 9400)
