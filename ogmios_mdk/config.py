"""
Client configuration.

Settings come from defaults, environment variables, or the ``ogmios``
section of a YAML settings file.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from .exceptions import InvalidArgument

DEFAULT_CONNECTION_STRING = "ws://127.0.0.1:1337"

# Maximum number of nextBlock requests in flight for a chain follower.
DEFAULT_BURST_SIZE = 100

# 0 disables aiohttp's message size limit; blocks can be large.
DEFAULT_MAX_MSG_SIZE = 0


@dataclass
class ClientConfig:
    """Configuration for an Ogmios connection.

    Attributes:
        url: WebSocket URL of the Ogmios server
        burst_size: Maximum number of pipelined requests of a chain follower
        max_msg_size: Largest accepted inbound message in bytes (0 = unlimited)
        heartbeat: Seconds between WebSocket pings, or None to disable
    """

    url: str = DEFAULT_CONNECTION_STRING
    burst_size: int = DEFAULT_BURST_SIZE
    max_msg_size: int = DEFAULT_MAX_MSG_SIZE
    heartbeat: float | None = None

    def __post_init__(self) -> None:
        if isinstance(self.burst_size, bool) or not isinstance(self.burst_size, int) or self.burst_size < 1:
            raise InvalidArgument("burst_size", "expected a positive integer", self.burst_size)
        if isinstance(self.max_msg_size, bool) or not isinstance(self.max_msg_size, int) or self.max_msg_size < 0:
            raise InvalidArgument("max_msg_size", "expected a non-negative integer", self.max_msg_size)
        if self.heartbeat is not None and self.heartbeat <= 0:
            raise InvalidArgument("heartbeat", "expected a positive number of seconds", self.heartbeat)

    @classmethod
    def from_env(cls) -> ClientConfig:
        """Create config from environment variables.

        Recognized environment variables:
        - OGMIOS_URL: WebSocket URL of the server
        - OGMIOS_BURST_SIZE: Chain follower pipelining depth
        - OGMIOS_MAX_MSG_SIZE: Inbound message size limit in bytes
        - OGMIOS_HEARTBEAT: WebSocket ping interval in seconds

        Returns:
            ClientConfig instance

        Raises:
            InvalidArgument: If a variable holds an invalid value
        """
        heartbeat = os.environ.get("OGMIOS_HEARTBEAT")
        return cls(
            url=os.environ.get("OGMIOS_URL", DEFAULT_CONNECTION_STRING),
            burst_size=_int_setting("OGMIOS_BURST_SIZE", os.environ.get("OGMIOS_BURST_SIZE"), DEFAULT_BURST_SIZE),
            max_msg_size=_int_setting(
                "OGMIOS_MAX_MSG_SIZE", os.environ.get("OGMIOS_MAX_MSG_SIZE"), DEFAULT_MAX_MSG_SIZE
            ),
            heartbeat=_float_setting("OGMIOS_HEARTBEAT", heartbeat) if heartbeat else None,
        )

    @classmethod
    def from_file(cls, path: Path | str) -> ClientConfig:
        """Create config from the ``ogmios`` section of a YAML file.

        ```yaml
        ogmios:
          url: "ws://localhost:1337"
          burst_size: 50
        ```

        A missing file or section yields the defaults.
        """
        config_path = Path(path)
        if not config_path.exists():
            return cls()

        content = yaml.safe_load(config_path.read_text()) or {}
        section: dict[str, Any] = content.get("ogmios") or {}
        return cls(
            url=section.get("url", DEFAULT_CONNECTION_STRING),
            burst_size=section.get("burst_size", DEFAULT_BURST_SIZE),
            max_msg_size=section.get("max_msg_size", DEFAULT_MAX_MSG_SIZE),
            heartbeat=section.get("heartbeat"),
        )


def _int_setting(name: str, raw: str | None, default: int) -> int:
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise InvalidArgument(name, "expected an integer", raw) from None


def _float_setting(name: str, raw: str) -> float:
    try:
        return float(raw)
    except ValueError:
        raise InvalidArgument(name, "expected a number", raw) from None
