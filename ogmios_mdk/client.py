"""
Ogmios client.

Owns one WebSocket connection to an Ogmios server and exposes generic
requests, the ``queryLedgerState`` / ``queryNetwork`` method families, and
pipelined chain following over it.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import aiohttp

from .channel import Channel
from .config import ClientConfig
from .correlator import Correlator
from .exceptions import NORMAL_CLOSURE, ChannelClosedAbnormally, ChannelError, OgmiosError
from .follower import ChainFollower, normalize_follower_args
from .logging_utils import ConnectionLoggerAdapter, get_client_logger

logger = get_client_logger("client")

T = TypeVar("T")


class MethodFamily:
    """Requests sharing a method prefix, e.g. ``queryLedgerState/``.

    Example:
        >>> await client.query_ledger_state("tip")  # queryLedgerState/tip
    """

    def __init__(self, client: OgmiosClient, prefix: str) -> None:
        self._client = client
        self.prefix = prefix

    async def __call__(self, method: str, params: dict[str, Any] | None = None) -> Any:
        return await self._client.ask(f"{self.prefix}/{method}", params)


class OgmiosClient:
    """Client for an Ogmios server over a single WebSocket.

    Requests made with ``ask`` are answered in order; only one may be
    outstanding at a time, and none while a chain follower is active.

    Example:
        >>> async with await OgmiosClient.connect("ws://127.0.0.1:1337") as client:
        ...     tip = await client.query_network("tip")
        ...     async with await client.start_follower(count=10) as follower:
        ...         async for event in follower:
        ...             print(event.direction, event.block)
    """

    def __init__(
        self,
        channel: Channel,
        config: ClientConfig | None = None,
        session: aiohttp.ClientSession | None = None,
        url: str | None = None,
    ) -> None:
        """Initialize the client over an already open channel.

        Args:
            channel: Open WebSocket (or any object satisfying ``Channel``)
            config: Client configuration (defaults if omitted)
            session: HTTP session owning the channel, closed with the client
            url: URL the channel is connected to, for logging
        """
        self.config = config or ClientConfig()
        self.url = url or self.config.url
        self._channel = channel
        self._session = session
        self._correlator = Correlator(channel)
        self._started = False
        self._closed = False
        self._log = ConnectionLoggerAdapter(logger, self.url)

        self.query_ledger_state = MethodFamily(self, "queryLedgerState")
        self.query_network = MethodFamily(self, "queryNetwork")

    @classmethod
    async def connect(cls, url: str | None = None, config: ClientConfig | None = None) -> OgmiosClient:
        """Open a connection to an Ogmios server.

        Args:
            url: Server URL (default: from config)
            config: Client configuration (default: from environment)

        Returns:
            A started client

        Raises:
            ChannelError: If the connection cannot be established
        """
        if config is None:
            config = ClientConfig.from_env()
        url = url or config.url

        session = aiohttp.ClientSession()
        try:
            ws = await session.ws_connect(url, max_msg_size=config.max_msg_size, heartbeat=config.heartbeat)
        except (aiohttp.ClientError, OSError) as e:
            await session.close()
            raise ChannelError(f"Connection failed to {url}: {e}", e) from e

        client = cls(ws, config=config, session=session, url=url)
        client.start()
        return client

    def start(self) -> None:
        """Start listening for responses."""
        if self._started:
            return
        self._started = True
        self._correlator.start()
        self._log.info(f"Connected to {self.url}")

    async def close(self, code: int = NORMAL_CLOSURE) -> None:
        """Close the connection; pending requests fail with ChannelClosed."""
        if self._closed:
            return
        self._closed = True

        self._correlator.expect_close()
        try:
            await self._channel.close(code=code)
        except (ConnectionError, aiohttp.ClientError) as e:
            self._log.warning(f"Error while closing connection: {e}")
        await self._correlator.close()
        if self._session is not None:
            await self._session.close()
        self._log.info("Connection closed")

    async def __aenter__(self) -> OgmiosClient:
        self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    @property
    def termination(self) -> OgmiosError | None:
        """Why the connection ended, or None while it is open."""
        return self._correlator.termination

    async def wait_closed(self) -> OgmiosError:
        """Wait for the connection to end and return the reason."""
        return await self._correlator.wait_terminated()

    async def send(self, method: str, params: dict[str, Any] | None = None, id: Any = None) -> None:
        """Send a request without waiting for its response.

        The response, if any, is left to whoever reads the channel next;
        pass an ``id`` to recognize it.
        """
        await self._correlator.send(method, params, id)

    async def ask(self, method: str, params: dict[str, Any] | None = None) -> Any:
        """Send a request and return its result.

        Must not be called concurrently, nor while a chain follower has
        requests in flight: responses are matched by arrival order only.

        Raises:
            RemoteRejection: If the server answers with an error
        """
        return await self._correlator.ask(method, params)

    async def start_follower(self, points: Any = None, count: Any = None) -> ChainFollower:
        """Start following the chain.

        Args:
            points: Points to find an intersection with; defaults to the
                current tip. An integer here is taken as ``count``.
            count: Number of events to yield; endless if omitted

        Returns:
            A started ChainFollower, to iterate with ``async for``

        Raises:
            InvalidArgument: If points or count are malformed (nothing is sent)
            RemoteRejection: If no intersection is found
        """
        points, count = normalize_follower_args(points, count)
        follower = ChainFollower(self._correlator, count=count, burst_size=self.config.burst_size)
        await follower.start(points)
        self._log.debug(f"Chain follower started (count={count}, burst={self.config.burst_size})")
        return follower


async def ogmios(
    application: Callable[[OgmiosClient], Awaitable[T]],
    connection_string: str | None = None,
    config: ClientConfig | None = None,
) -> T | None:
    """
    Connect to Ogmios, run an application, then close the connection.

    Args:
        application: Coroutine function receiving the connected client; its
            return value is returned once the connection is closed
        connection_string: Server URL (default: from config)
        config: Client configuration (default: from environment)

    Returns:
        The application's result, or None if the server closed the
        connection normally before the application finished

    Raises:
        ChannelClosedAbnormally: If the connection ends with an error code
        ChannelError: If the connection cannot be established or fails

    Example:
        >>> async def tip(client):
        ...     return await client.query_ledger_state("tip")
        >>> await ogmios(tip)
    """
    client = await OgmiosClient.connect(connection_string, config)
    app_task = asyncio.ensure_future(application(client))
    closed_task = asyncio.ensure_future(client.wait_closed())
    try:
        done, _ = await asyncio.wait({app_task, closed_task}, return_when=asyncio.FIRST_COMPLETED)
        if app_task in done:
            return app_task.result()

        termination = closed_task.result()
        app_task.cancel()
        try:
            await app_task
        except (asyncio.CancelledError, OgmiosError):
            pass
        if isinstance(termination, (ChannelClosedAbnormally, ChannelError)):
            raise termination
        return None
    finally:
        closed_task.cancel()
        if not app_task.done():
            app_task.cancel()
        await client.close()
