"""
Logger helpers for the client components.

Records emitted by a client carry the connection they belong to; records
emitted by a chain follower carry the state of its request window at the
time of the record. Both are plain ``extra`` attributes, so any handler
or formatter can pick them up.
"""

from __future__ import annotations

import logging
from collections.abc import MutableMapping
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .follower import ChainFollower

PACKAGE_LOGGER = "ogmios_mdk"


def get_client_logger(name: str) -> logging.Logger:
    """
    Get a logger for a client component.

    Args:
        name: Component name (e.g., 'client')

    Returns:
        Logger instance with name 'ogmios_mdk.{name}'
    """
    return logging.getLogger(f"{PACKAGE_LOGGER}.{name}")


class ConnectionLoggerAdapter(logging.LoggerAdapter):
    """Adds the connection url to every record.

    Fields passed in a call's own ``extra`` take precedence.
    """

    def __init__(self, logger: logging.Logger, url: str) -> None:
        super().__init__(logger, {"url": url})

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**(self.extra or {}), **kwargs.get("extra", {})}
        return msg, kwargs


class FollowerLoggerAdapter(logging.LoggerAdapter):
    """Adds a chain follower's window state to every record.

    The state is read when the record is emitted, not when the adapter is
    created: ``count``, ``in_flight`` and ``yielded``.
    """

    def __init__(self, logger: logging.Logger, follower: ChainFollower) -> None:
        super().__init__(logger, {})
        self.follower = follower

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        state = {
            "count": self.follower.count,
            "in_flight": self.follower.in_flight,
            "yielded": self.follower.yielded,
        }
        kwargs["extra"] = {**state, **kwargs.get("extra", {})}
        return msg, kwargs
