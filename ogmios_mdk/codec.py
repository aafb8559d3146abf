"""
JSON codec preserving the precision of ledger quantities.

Ogmios carries monetary and quantity fields (lovelace, native assets,
metadata integers) whose magnitude can exceed what a double represents
exactly. Parsing keeps every integer as a Python ``int``; a second pass
then marks the integers that are quantities by their position in the
document, turning them into ``BigInt``. Everything else is left as parsed.

Note that the second pass traverses the whole document, so it is linear
in the size of each message.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any

from .exceptions import MalformedPayload

logger = logging.getLogger(__name__)

# Depth of quantity maps: policy id -> asset name -> amount.
ASSET_QUANTITY_DEPTH = 2

_CONSTRUCTOR_TOKEN = '"constructor"'
_CONSTRUCTOR_REPLACEMENT = '"constr"'


class BigInt(int):
    """An arbitrary-precision integer found in a quantity position."""

    __slots__ = ()

    def __repr__(self) -> str:
        return f"BigInt({int(self)})"


class _ForbiddenKey(ValueError):
    """A parsed object carries a key the strict parser refuses."""


def _strict_object(pairs: list[tuple[str, Any]]) -> dict[str, Any]:
    obj: dict[str, Any] = {}
    for key, value in pairs:
        if key == "constructor":
            raise _ForbiddenKey("forbidden constructor")
        obj[key] = value
    return obj


def _reject_constant(name: str) -> Any:
    raise ValueError(f"non-standard constant {name}")


def _parse(text: str) -> Any:
    return json.loads(
        text,
        object_pairs_hook=_strict_object,
        parse_constant=_reject_constant,
    )


# ---------------------------------------------------------------------------
# Sanitation pass
# ---------------------------------------------------------------------------


def _children(node: Any) -> Iterator[tuple[str | int, Any]]:
    if isinstance(node, dict):
        yield from list(node.items())
    elif isinstance(node, list):
        yield from list(enumerate(node))


def _is_container(node: Any) -> bool:
    return isinstance(node, (dict, list))


def _promote(value: Any) -> Any:
    """Turn a numeric leaf into a BigInt; leave anything else as is."""
    if isinstance(value, bool) or isinstance(value, BigInt):
        return value
    if isinstance(value, int):
        return BigInt(value)
    if isinstance(value, float) and value.is_integer():
        return BigInt(int(value))
    return value


def _promote_fields(node: dict[str, Any], fields: tuple[str, ...]) -> dict[str, Any]:
    for key, value in _children(node):
        if key in fields:
            node[key] = _promote(value)
        else:
            node[key] = sanitize(value, key)
    return node


def _promote_within(node: Any, depth: int) -> Any:
    for key, value in _children(node):
        if _is_container(value):
            if depth > 1:
                _promote_within(value, depth - 1)
        else:
            node[key] = _promote(value)
    return node


def _promote_everywhere(node: Any) -> Any:
    if not _is_container(node):
        return _promote(node)
    for key, value in _children(node):
        node[key] = _promote_everywhere(value)
    return node


def _promote_script(node: dict[str, Any]) -> dict[str, Any]:
    node["atLeast"] = _promote(node["atLeast"])
    if "from" in node:
        node["from"] = sanitize(node["from"], "from")
    return node


@dataclass(frozen=True)
class SanitationRule:
    """A structural trigger and the rewrite it applies to the matched node."""

    name: str
    matches: Callable[[Any, str | None], bool]
    rewrite: Callable[[Any], Any]


def _has_field(field: str) -> Callable[[Any, str | None], bool]:
    return lambda node, parent: isinstance(node, dict) and field in node


SANITATION_RULES: tuple[SanitationRule, ...] = (
    SanitationRule(
        name="lovelace",
        matches=_has_field("lovelace"),
        rewrite=lambda node: _promote_fields(node, ("lovelace",)),
    ),
    SanitationRule(
        name="asset-quantity",
        matches=lambda node, parent: _has_field("ada")(node, parent) or parent in ("mint", "value"),
        rewrite=lambda node: _promote_within(node, ASSET_QUANTITY_DEPTH),
    ),
    SanitationRule(
        name="multisig-script",
        matches=lambda node, parent: (
            isinstance(node, dict) and node.get("clause") == "some" and "atLeast" in node
        ),
        rewrite=_promote_script,
    ),
    SanitationRule(
        name="metadata",
        matches=lambda node, parent: parent == "labels",
        rewrite=_promote_everywhere,
    ),
)


def sanitize(node: Any, parent: str | int | None = None) -> Any:
    """Walk a parsed document, promoting quantities to BigInt in place.

    Args:
        node: Parsed JSON value
        parent: Name of the field holding ``node``, if any

    Returns:
        The same value, with quantity leaves promoted
    """
    if not _is_container(node):
        return node

    context = parent if isinstance(parent, str) else None
    for rule in SANITATION_RULES:
        if rule.matches(node, context):
            return rule.rewrite(node)

    for key, value in _children(node):
        node[key] = sanitize(value, key)
    return node


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def decode(text: str | bytes | bytearray) -> Any:
    """
    Parse a JSON payload, promoting quantity fields to BigInt.

    Objects holding a ``constructor`` field (Plutus data) are refused by the
    strict parser; on that failure only, the field is renamed ``constr`` and
    the payload parsed again.

    Args:
        text: JSON text, as str or UTF-8 bytes

    Returns:
        The parsed and sanitized value

    Raises:
        MalformedPayload: If the payload is not valid JSON
    """
    if isinstance(text, (bytes, bytearray)):
        try:
            text = text.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedPayload(str(e)) from e

    try:
        try:
            parsed = _parse(text)
        except _ForbiddenKey:
            logger.debug("Payload holds a 'constructor' field, renaming it to 'constr'")
            parsed = _parse(text.replace(_CONSTRUCTOR_TOKEN, _CONSTRUCTOR_REPLACEMENT))
    except ValueError as e:
        raise MalformedPayload(str(e), text) from e

    return sanitize(parsed)


def _default(value: Any) -> Any:
    to_json = getattr(value, "to_json", None)
    if callable(to_json):
        return to_json()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def encode(value: Any) -> str:
    """
    Serialize a value to compact JSON.

    BigInt values are written as bare numeric literals, so ``decode`` of the
    result gives back an equal document.
    """
    return json.dumps(value, separators=(",", ":"), allow_nan=False, default=_default)


class _JsonNamespace:
    """Drop-in ``parse`` / ``stringify`` pair, for callers used to JSON.parse."""

    @staticmethod
    def parse(text: str | bytes | bytearray) -> Any:
        return decode(text)

    @staticmethod
    def stringify(value: Any) -> str:
        return encode(value)


Json = _JsonNamespace()
