"""
Ogmios MDK

A minimalist asyncio development kit for Ogmios.

Provides:
- A single-connection client with generic requests and the
  queryLedgerState / queryNetwork method families
- Pipelined chain following with a bounded request window
- A JSON codec keeping ledger quantities as exact integers

Usage:

    >>> from ogmios_mdk import OgmiosClient, ORIGIN
    >>> async with await OgmiosClient.connect("ws://127.0.0.1:1337") as client:
    ...     tip = await client.query_ledger_state("tip")
    ...
    ...     async with await client.start_follower([ORIGIN], count=100) as follower:
    ...         async for event in follower:
    ...             print(event.direction, event.block["height"])

One-shot applications:

    >>> from ogmios_mdk import ogmios
    >>> async def tip(client):
    ...     return await client.query_network("tip")
    >>> result = await ogmios(tip)
"""

from .client import MethodFamily, OgmiosClient, ogmios
from .codec import BigInt, Json, decode, encode
from .config import ClientConfig
from .correlator import Correlator
from .exceptions import (
    ChannelClosed,
    ChannelClosedAbnormally,
    ChannelError,
    InvalidArgument,
    MalformedPayload,
    OgmiosError,
    RemoteRejection,
)
from .follower import ChainFollower
from .rpc import rpc
from .types import ORIGIN, Direction, FollowerEvent, Point

__all__ = [
    # Client
    "OgmiosClient",
    "MethodFamily",
    "ogmios",
    "Correlator",
    "ChainFollower",
    "ClientConfig",
    # Codec
    "BigInt",
    "Json",
    "decode",
    "encode",
    "rpc",
    # Types
    "ORIGIN",
    "Point",
    "Direction",
    "FollowerEvent",
    # Exceptions
    "OgmiosError",
    "MalformedPayload",
    "RemoteRejection",
    "InvalidArgument",
    "ChannelClosed",
    "ChannelClosedAbnormally",
    "ChannelError",
]

__version__ = "1.0.0"
