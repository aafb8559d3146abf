"""
JSON-RPC 2.0 envelopes.

Builds request payloads and unwraps response envelopes into a result or a
``RemoteRejection``.
"""

from __future__ import annotations

from typing import Any

from .codec import encode
from .exceptions import MalformedPayload, RemoteRejection

JSONRPC_VERSION = "2.0"


def rpc(method: str, params: dict[str, Any] | None = None, id: Any = None) -> str:
    """
    Create an encoded JSON-RPC 2.0 request.

    Args:
        method: Remote method name (e.g., "queryLedgerState/tip")
        params: Method parameters (default: {})
        id: Optional identifier, echoed back by the peer

    Returns:
        The request, encoded as JSON text
    """
    payload: dict[str, Any] = {
        "jsonrpc": JSONRPC_VERSION,
        "method": method,
        "params": params if params is not None else {},
    }
    if id is not None:
        payload["id"] = id
    return encode(payload)


def unwrap(response: Any, method: str | None = None) -> Any:
    """
    Extract the result of a response envelope.

    Args:
        response: Decoded response
        method: Method the response answers, for error context

    Returns:
        The ``result`` field

    Raises:
        RemoteRejection: If the response carries an ``error`` field
        MalformedPayload: If the response is not an envelope
    """
    if not isinstance(response, dict):
        raise MalformedPayload(f"expected a JSON-RPC response object, got {type(response).__name__}")
    if "error" in response:
        raise RemoteRejection(response["error"], method=method)
    return response.get("result")
