"""
The channel the client talks over.

The engine needs only a small part of aiohttp's WebSocket API, so any
object providing it can stand in for a real connection (tests use an
in-memory one). ``aiohttp.ClientWebSocketResponse`` satisfies it as is.
"""

from __future__ import annotations

from typing import Any, Protocol


class ChannelMessage(Protocol):
    """An inbound message, shaped like ``aiohttp.WSMessage``.

    ``type`` is an ``aiohttp.WSMsgType``. For TEXT/BINARY, ``data`` is the
    payload; for CLOSE, ``data`` is the close code and ``extra`` the reason;
    for ERROR, ``data`` is the exception.
    """

    @property
    def type(self) -> Any: ...

    @property
    def data(self) -> Any: ...

    @property
    def extra(self) -> Any: ...


class Channel(Protocol):
    """An ordered, full-duplex message stream."""

    @property
    def close_code(self) -> int | None: ...

    async def send_str(self, data: str) -> None: ...

    async def receive(self) -> ChannelMessage: ...

    async def close(self, *, code: int = ..., message: bytes = ...) -> bool: ...
