"""
Request/response correlation over a single ordered channel.

Responses carry no usable label, so they are matched to requests purely
by arrival order: every request registers a pending slot at the back of a
FIFO queue, and every inbound message resolves the slot at the front.
The channel delivers messages in the order requests were sent, which is
what makes this sound.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Any

import aiohttp

from .channel import Channel
from .codec import decode
from .exceptions import (
    NORMAL_CLOSURE,
    ChannelClosed,
    ChannelClosedAbnormally,
    ChannelError,
    MalformedPayload,
    OgmiosError,
)
from .rpc import rpc, unwrap

logger = logging.getLogger(__name__)

_DATA_TYPES = (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY)
_CLOSE_TYPES = (aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSING, aiohttp.WSMsgType.CLOSED)


class Correlator:
    """Matches inbound messages to pending requests in FIFO order.

    A background reader task is the single listener on the channel. It
    decodes each inbound message and resolves the oldest pending slot with
    it. When the channel closes or fails, every pending slot fails with the
    termination error, and so does every later request.

    Example:
        >>> correlator = Correlator(ws)
        >>> correlator.start()
        >>> tip = await correlator.ask("queryNetwork/tip")
        >>> await correlator.close()
    """

    def __init__(self, channel: Channel) -> None:
        """Initialize the correlator.

        Args:
            channel: Channel to read from and write to
        """
        self._channel = channel
        self._pending: deque[asyncio.Future[Any]] = deque()
        self._reader_task: asyncio.Task[None] | None = None
        self._termination: OgmiosError | None = None
        self._closing = False
        self._terminated = asyncio.Event()

    @property
    def pending_count(self) -> int:
        """Number of requests still waiting for a response."""
        return len(self._pending)

    @property
    def termination(self) -> OgmiosError | None:
        """The error the channel terminated with, or None while it is open."""
        return self._termination

    def start(self) -> None:
        """Start listening on the channel."""
        if self._reader_task is not None:
            return
        self._reader_task = asyncio.create_task(self._read_loop())
        logger.debug("Correlator started")

    def expect_close(self) -> None:
        """Announce a local close, so the closing handshake reads as normal."""
        self._closing = True

    async def close(self) -> None:
        """Stop listening; pending requests fail with ChannelClosed."""
        self._closing = True
        if self._reader_task is not None:
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass
            self._reader_task = None
        self._terminate(ChannelClosed())

    async def wait_terminated(self) -> OgmiosError:
        """Wait until the channel terminates and return the reason."""
        await self._terminated.wait()
        if self._termination is None:
            raise RuntimeError("Correlator signalled termination without a reason")
        return self._termination

    async def send(self, method: str, params: dict[str, Any] | None = None, id: Any = None) -> None:
        """Write one request to the channel without awaiting a response.

        Args:
            method: Remote method name
            params: Method parameters
            id: Optional identifier, echoed back by the peer

        Raises:
            ChannelClosed: If the channel has already terminated
            ChannelError: If the write fails
        """
        if self._termination is not None:
            raise self._termination

        payload = rpc(method, params, id)
        logger.debug(f"Sending {method} ({len(payload)} bytes)")
        try:
            await self._channel.send_str(payload)
        except (ConnectionError, aiohttp.ClientError) as e:
            raise ChannelError(f"Failed to send {method}: {e}", e) from e

    async def request(self, method: str, params: dict[str, Any] | None = None) -> asyncio.Future[Any]:
        """Send a request and return the slot its response will resolve.

        The slot is registered before the request is written, so it always
        sits in the queue at the position matching the send order. The slot
        resolves with the decoded response envelope.

        Returns:
            Future resolving to the decoded response
        """
        if self._termination is not None:
            raise self._termination

        slot: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending.append(slot)
        try:
            await self.send(method, params)
        except BaseException:
            # Nothing was written, so nothing will answer this slot.
            if slot in self._pending:
                self._pending.remove(slot)
            if slot.done() and not slot.cancelled():
                slot.exception()
            slot.cancel()
            raise
        return slot

    async def ask(self, method: str, params: dict[str, Any] | None = None) -> Any:
        """Send a request and await its result.

        The response is taken to be the next message the channel delivers
        after the ones already owed to pending slots. Only one conversation
        may be outstanding: calling ``ask`` concurrently, or while a chain
        follower has requests in flight, is a caller error and the
        correlation of the responses is undefined.

        Args:
            method: Remote method name
            params: Method parameters

        Returns:
            The ``result`` field of the response

        Raises:
            RemoteRejection: If the peer answers with an ``error``
            ChannelClosed: If the channel closes before the response arrives
            ChannelError: If the channel fails
        """
        if self._pending:
            logger.warning(
                f"ask({method}) issued with {len(self._pending)} request(s) still in flight; "
                "responses may be mismatched"
            )
        slot = await self.request(method, params)
        return unwrap(await slot, method)

    async def _read_loop(self) -> None:
        """Dispatch inbound messages until the channel terminates."""
        try:
            while True:
                msg = await self._channel.receive()
                if msg.type in _DATA_TYPES:
                    self._dispatch(msg.data)
                elif msg.type in _CLOSE_TYPES:
                    code = msg.data if msg.type == aiohttp.WSMsgType.CLOSE else self._channel.close_code
                    self._terminate(self._closure_error(code, msg.extra))
                    return
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    cause = msg.data if isinstance(msg.data, BaseException) else None
                    self._terminate(ChannelError(f"WebSocket error: {msg.data}", cause))
                    return
                else:
                    logger.debug(f"Ignoring control message: {msg.type}")
        except asyncio.CancelledError:
            self._terminate(ChannelClosed())
            raise
        except Exception as e:
            logger.error(f"Channel receive failed: {e}")
            self._terminate(ChannelError(f"Channel receive failed: {e}", e))

    def _dispatch(self, data: str | bytes) -> None:
        """Resolve the oldest pending slot with one inbound message."""
        if not self._pending:
            logger.warning("Dropping message received with no request pending")
            return

        slot = self._pending.popleft()
        try:
            message = decode(data)
        except MalformedPayload as e:
            if slot.done():
                logger.warning(f"Discarding malformed response to an abandoned request: {e}")
            else:
                slot.set_exception(e)
            return

        if slot.done():
            # The requester gave up; the response still had to be consumed.
            logger.debug("Discarding response to an abandoned request")
            return
        slot.set_result(message)

    def _closure_error(self, code: int | None, reason: Any) -> ChannelClosed:
        reason_str = reason.decode("utf-8", "replace") if isinstance(reason, bytes) else str(reason or "")
        if code == NORMAL_CLOSURE or self._closing:
            return ChannelClosed(details={"code": code, "reason": reason_str})
        return ChannelClosedAbnormally(code, reason_str)

    def _terminate(self, error: OgmiosError) -> None:
        """Record the termination reason and fail all pending slots."""
        if self._termination is None:
            self._termination = error
            if isinstance(error, ChannelClosedAbnormally) or isinstance(error, ChannelError):
                logger.warning(f"Channel terminated: {error.message} {error.details}")
            else:
                logger.info("Channel closed")
        failed = 0
        while self._pending:
            slot = self._pending.popleft()
            if not slot.done():
                slot.set_exception(self._termination)
                failed += 1
        if failed:
            logger.debug(f"Failed {failed} pending request(s) on termination")
        self._terminated.set()
