"""
Chain-sync data types.

Points identify positions on the chain; follower events are what the
chain follower yields to its consumer.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal, Union

# The point before the first block of the chain.
ORIGIN: Literal["origin"] = "origin"


@dataclass(frozen=True)
class Point:
    """A position on the chain: a block header hash and its slot."""

    id: str
    slot: int

    def to_json(self) -> dict[str, Any]:
        """Wire form, as expected by ``findIntersection``."""
        return {"id": self.id, "slot": self.slot}

    @classmethod
    def from_json(cls, data: Any) -> Point | Literal["origin"]:
        """Build a point from its wire form; ``"origin"`` is returned as is."""
        if data == ORIGIN:
            return ORIGIN
        return cls(id=data["id"], slot=int(data["slot"]))


ChainPoint = Union[Point, Literal["origin"]]


class Direction(Enum):
    """Direction of a chain-sync event."""

    FORWARD = "forward"
    BACKWARD = "backward"


@dataclass(frozen=True)
class FollowerEvent:
    """A roll-forward or roll-backward event from the chain follower.

    Attributes:
        direction: Forward (new block) or backward (rollback)
        block: The new block, on forward events
        point: The point rolled back to, on backward events
        tip: The node's tip at the time of the event, when reported
    """

    direction: Direction
    block: Any = None
    point: ChainPoint | None = None
    tip: Any = None

    @property
    def is_forward(self) -> bool:
        return self.direction is Direction.FORWARD

    @classmethod
    def from_result(cls, result: dict[str, Any]) -> FollowerEvent:
        """Build an event from a ``nextBlock`` result."""
        direction = Direction(result["direction"])
        point = result.get("point")
        return cls(
            direction=direction,
            block=result.get("block"),
            point=Point.from_json(point) if point is not None else None,
            tip=result.get("tip"),
        )
