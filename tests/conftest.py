"""
Shared test configuration and fixtures.

Provides an in-memory channel standing in for the WebSocket, and a fake
Ogmios node that scripts the replies to the requests the client sends.
"""

import asyncio
import json
import logging
from collections.abc import Callable
from typing import Any, NamedTuple

import aiohttp
import pytest

from ogmios_mdk import ClientConfig, OgmiosClient

logger = logging.getLogger(__name__)

TIP = {"slot": 1000, "id": "f" * 64, "height": 50}

TEST_BURST_SIZE = 5


class Message(NamedTuple):
    """Inbound message, shaped like aiohttp.WSMessage."""

    type: aiohttp.WSMsgType
    data: Any
    extra: Any = None


def envelope(method: str, result: Any = None, error: Any = None) -> dict[str, Any]:
    """Build a JSON-RPC response as Ogmios sends it."""
    response: dict[str, Any] = {"jsonrpc": "2.0", "method": method}
    if error is not None:
        response["error"] = error
    else:
        response["result"] = result
    return response


class FakeNode:
    """
    Scripted Ogmios node.

    Answers the tip queries, findIntersection and nextBlock the way Ogmios
    does: the first nextBlock after an intersection is a rollback to it,
    then forward blocks follow with increasing heights.
    """

    def __init__(self, known_points: list[Any] | None = None, stall_after: int | None = None):
        """
        Args:
            known_points: Points findIntersection accepts besides "origin" and the tip
            stall_after: Stop answering nextBlock after this many forward blocks
        """
        self.known_points = list(known_points or []) + [TIP]
        self.stall_after = stall_after
        self.next_block_requests = 0
        self.forward_sent = 0
        self.intersection: Any = None
        self._rolled_back = False
        self.next_block_error: dict[str, Any] | None = None

    def block(self, height: int) -> dict[str, Any]:
        return {
            "type": "praos",
            "era": "conway",
            "id": f"{height:064x}",
            "height": height,
            "slot": height * 20,
            "transactions": [
                {
                    "id": f"{height:064x}",
                    "fee": {"ada": {"lovelace": 170000 + height}},
                    "outputs": [{"address": "addr_test1", "value": {"ada": {"lovelace": 2**70 + height}}}],
                }
            ],
        }

    def knows(self, point: Any) -> bool:
        """Whether findIntersection accepts this point; only id and slot are allowed."""
        if point == "origin":
            return True
        if not isinstance(point, dict) or set(point) != {"id", "slot"}:
            return False
        return any(point["id"] == known["id"] and point["slot"] == known["slot"] for known in self.known_points)

    def __call__(self, request: dict[str, Any]) -> list[dict[str, Any]]:
        method = request["method"]

        if method in ("queryNetwork/tip", "queryLedgerState/tip"):
            return [envelope(method, TIP)]

        if method == "findIntersection":
            points = request["params"]["points"]
            for point in points:
                if self.knows(point):
                    self.intersection = point
                    self._rolled_back = False
                    return [envelope(method, {"intersection": point, "tip": TIP})]
            return [
                envelope(
                    method,
                    error={
                        "code": 1000,
                        "message": "Invalid request: no intersection found with the given points.",
                        "data": {"tip": TIP},
                    },
                )
            ]

        if method == "nextBlock":
            self.next_block_requests += 1
            if self.next_block_error is not None:
                return [envelope(method, error=self.next_block_error)]
            if not self._rolled_back:
                self._rolled_back = True
                return [envelope(method, {"direction": "backward", "point": self.intersection, "tip": TIP})]
            if self.stall_after is not None and self.forward_sent >= self.stall_after:
                return []
            self.forward_sent += 1
            return [envelope(method, {"direction": "forward", "block": self.block(self.forward_sent), "tip": TIP})]

        return [envelope(method, error={"code": -32601, "message": f"Method not found: {method}"})]


class ScriptedChannel:
    """In-memory channel; replies come from a responder or are pushed by tests."""

    def __init__(self, responder: Callable[[dict[str, Any]], list[Any]] | None = None):
        self.responder = responder
        self.sent: list[dict[str, Any]] = []
        self.close_code: int | None = None
        self._inbox: asyncio.Queue[Message] = asyncio.Queue()

    @property
    def sent_methods(self) -> list[str]:
        return [request["method"] for request in self.sent]

    async def send_str(self, data: str) -> None:
        if self.close_code is not None:
            raise ConnectionResetError("Cannot write to closing transport")
        request = json.loads(data)
        self.sent.append(request)
        if self.responder is not None:
            for reply in self.responder(request):
                self.push(reply)

    def push(self, reply: Any) -> None:
        data = reply if isinstance(reply, str) else json.dumps(reply)
        self._inbox.put_nowait(Message(aiohttp.WSMsgType.TEXT, data))

    def push_close(self, code: int, reason: str = "") -> None:
        self.close_code = code
        self._inbox.put_nowait(Message(aiohttp.WSMsgType.CLOSE, code, reason))

    def push_error(self, error: Exception) -> None:
        self._inbox.put_nowait(Message(aiohttp.WSMsgType.ERROR, error))

    async def receive(self) -> Message:
        return await self._inbox.get()

    async def close(self, *, code: int = 1000, message: bytes = b"") -> bool:
        if self.close_code is not None:
            return False
        self.close_code = code
        self._inbox.put_nowait(Message(aiohttp.WSMsgType.CLOSED, None))
        return True


@pytest.fixture
def node():
    """Fake Ogmios node."""
    return FakeNode()


@pytest.fixture
def channel(node):
    """Channel answered by the fake node."""
    return ScriptedChannel(responder=node)


@pytest.fixture
async def client(channel):
    """Started client over the scripted channel, with a small burst size."""
    client = OgmiosClient(channel, config=ClientConfig(burst_size=TEST_BURST_SIZE))
    client.start()
    yield client
    await client.close()
