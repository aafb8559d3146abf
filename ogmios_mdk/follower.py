"""
Pipelined chain follower.

Streams blocks from an intersection point by keeping a window of
``nextBlock`` requests in flight. Responses carry no id, so the window is
a FIFO queue: the oldest request is always the one the next response
answers. Each event handed to the consumer frees a slot, which is
refilled with one new request until the requested count is covered.

The first response after an intersection is always a rollback to the
intersection itself. It carries no information and is dropped.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Sequence
from typing import Any

from .config import DEFAULT_BURST_SIZE
from .correlator import Correlator
from .exceptions import ChannelClosed, ChannelError, InvalidArgument, MalformedPayload
from .logging_utils import FollowerLoggerAdapter
from .rpc import unwrap
from .types import ChainPoint, Direction, FollowerEvent, Point

logger = logging.getLogger(__name__)

FIND_INTERSECTION_METHOD = "findIntersection"
NEXT_BLOCK_METHOD = "nextBlock"
TIP_METHOD = "queryNetwork/tip"


def normalize_follower_args(points: Any = None, count: Any = None) -> tuple[list[Any] | None, int | None]:
    """
    Validate chain follower arguments.

    A single integer passed in place of ``points`` is taken as the count.

    Returns:
        Tuple of (points or None, count or None)

    Raises:
        InvalidArgument: If points is not a list/tuple or count is not a
            non-negative integer
    """
    if count is None and isinstance(points, int) and not isinstance(points, bool):
        points, count = None, points

    if points is not None and not isinstance(points, (list, tuple)):
        raise InvalidArgument("points", "expected a list of points", points)

    if count is not None and (isinstance(count, bool) or not isinstance(count, int) or count < 0):
        raise InvalidArgument("count", "expected a non-negative integer", count)

    return (list(points) if points is not None else None), count


class ChainFollower:
    """Async iterator over chain-sync events.

    Obtain one through ``OgmiosClient.start_follower``. It is single pass:
    once exhausted or closed it stays closed; start a new follower to
    stream again.

    Example:
        >>> async with await client.start_follower([ORIGIN], count=10) as follower:
        ...     async for event in follower:
        ...         print(event.direction, event.block["height"])
    """

    def __init__(
        self,
        correlator: Correlator,
        count: int | None = None,
        burst_size: int = DEFAULT_BURST_SIZE,
    ) -> None:
        """Initialize the follower.

        Args:
            correlator: Correlator of the connection to stream over
            count: Number of events to yield, or None for an endless stream
            burst_size: Maximum number of nextBlock requests in flight
        """
        self._correlator = correlator
        self.count = count
        self.burst_size = burst_size
        self.intersection: ChainPoint | None = None
        self.tip: Any = None

        self._window: deque[asyncio.Future[Any]] = deque()
        # One response more than the count: the intersection rollback.
        self._budget: int | None = None if count is None else (count + 1 if count > 0 else 0)
        self._issued = 0
        self._yielded = 0
        self._handshake_pending = True
        self._started = False
        self._closed = False
        self._termination: ChannelClosed | ChannelError | None = None
        self._log = FollowerLoggerAdapter(logger, self)

    @property
    def in_flight(self) -> int:
        """Number of nextBlock requests awaiting a response."""
        return len(self._window)

    @property
    def yielded(self) -> int:
        """Number of events handed to the consumer so far."""
        return self._yielded

    @property
    def closed(self) -> bool:
        return self._closed

    async def start(self, points: Sequence[Any] | None = None) -> None:
        """Negotiate the intersection and fill the initial window.

        Without points, the intersection is the node's current tip, which
        costs one extra round trip.

        Raises:
            RemoteRejection: If the node rejects the points
        """
        if self._started:
            raise RuntimeError("Chain follower already started")
        self._started = True

        try:
            if points is None:
                points = [await self._current_tip()]
            result = await self._correlator.ask(FIND_INTERSECTION_METHOD, {"points": list(points)})
        except BaseException:
            self._closed = True
            raise

        if isinstance(result, dict):
            intersection = result.get("intersection")
            if intersection is not None:
                self.intersection = Point.from_json(intersection)
            self.tip = result.get("tip")
        self._log.info(f"Intersection found at {self.intersection}")

        initial = self.burst_size if self.count is None else min(self.count, self.burst_size)
        for _ in range(initial):
            await self._issue()

    def __aiter__(self) -> ChainFollower:
        return self

    async def __anext__(self) -> FollowerEvent:
        if not self._started:
            raise RuntimeError("Chain follower not started; use OgmiosClient.start_follower")

        while not self._closed and self._window:
            if self._count_reached():
                break

            slot = self._window.popleft()
            try:
                result = unwrap(await slot, NEXT_BLOCK_METHOD)
                event = FollowerEvent.from_result(result)
                await self._refill()
            except (KeyError, TypeError, ValueError) as e:
                self._abandon()
                raise MalformedPayload(f"unexpected {NEXT_BLOCK_METHOD} result: {e}") from e
            except BaseException:
                self._abandon()
                raise

            if self._handshake_pending:
                self._handshake_pending = False
                if event.direction is not Direction.BACKWARD:
                    self._log.warning(f"Expected a rollback after intersection, got {event.direction.value}")
                continue

            self._yielded += 1
            return event

        if self._termination is not None and not self._closed and not self._count_reached():
            # Everything received before the channel ended has been delivered.
            self._abandon()
            raise self._termination

        await self.aclose()
        raise StopAsyncIteration

    async def aclose(self) -> None:
        """Stop following and drain the requests still in flight.

        Every response already owed to this follower is awaited and
        discarded, so the next request on the connection gets its own
        response.
        """
        if self._closed:
            return
        self._closed = True

        drained = 0
        while self._window:
            slot = self._window.popleft()
            try:
                await slot
            except (ChannelClosed, ChannelError):
                # The channel is gone; nothing else will arrive.
                self._abandon()
                break
            except MalformedPayload as e:
                self._log.warning(f"Discarding malformed response while draining: {e}")
            drained += 1
        self._log.debug(f"Chain follower closed after {self._yielded} event(s), drained {drained}")

    async def __aenter__(self) -> ChainFollower:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if exc_type is asyncio.CancelledError:
            self._abandon()
        else:
            await self.aclose()

    async def _current_tip(self) -> ChainPoint:
        """The node's tip, reduced to the point findIntersection expects."""
        tip = await self._correlator.ask(TIP_METHOD)
        try:
            point = Point.from_json(tip)
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedPayload(f"unexpected {TIP_METHOD} result: {e}") from e
        self._log.debug(f"Following from tip: {point}")
        return point

    def _has_budget(self) -> bool:
        return self._budget is None or self._issued < self._budget

    def _count_reached(self) -> bool:
        return self.count is not None and self._yielded >= self.count

    async def _refill(self) -> None:
        """Replace a retired request, unless the channel is already gone.

        Responses that arrived before the channel ended stay in the window
        and are still delivered; the termination is raised once they run out.
        """
        if self._termination is not None or not self._has_budget():
            return
        try:
            await self._issue()
        except (ChannelClosed, ChannelError) as e:
            self._termination = e
            self._log.info(f"Channel ended; delivering {self.in_flight} buffered response(s) at most")

    async def _issue(self) -> None:
        slot = await self._correlator.request(NEXT_BLOCK_METHOD)
        self._window.append(slot)
        self._issued += 1

    def _abandon(self) -> None:
        """Close without waiting; outstanding responses are discarded on arrival."""
        self._closed = True
        while self._window:
            slot = self._window.popleft()
            if slot.done():
                if not slot.cancelled():
                    slot.exception()
            else:
                slot.cancel()
