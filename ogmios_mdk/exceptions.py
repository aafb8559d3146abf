"""
Custom exceptions for the Ogmios client.

Every failure surfaced by the codec, the correlator or the chain follower
is one of these, so callers can catch ``OgmiosError`` to handle them all.
"""

from typing import Any

# WebSocket close code for a normal closure (RFC 6455, section 7.4.1).
NORMAL_CLOSURE = 1000


class OgmiosError(Exception):
    """Base exception for all Ogmios client errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class MalformedPayload(OgmiosError):
    """Raised when an inbound payload is not valid JSON."""

    def __init__(self, reason: str, payload: str | None = None):
        details = {"reason": reason}
        if payload is not None:
            # Blocks can be large; keep only a prefix for diagnostics.
            details["payload"] = payload[:256]
        super().__init__(f"Malformed payload: {reason}", details)
        self.reason = reason
        self.payload = payload


class RemoteRejection(OgmiosError):
    """Raised when the peer answers a request with an ``error`` field.

    The error value is kept verbatim in ``error``; it is not interpreted.
    """

    def __init__(self, error: Any, method: str | None = None):
        details: dict[str, Any] = {"error": error}
        if method:
            details["method"] = method
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            message = error["message"]
        else:
            message = f"Request rejected by remote: {error!r}"
        super().__init__(message, details)
        self.error = error
        self.method = method

    @property
    def code(self) -> Any:
        """The peer error code, when the error carries one."""
        if isinstance(self.error, dict):
            return self.error.get("code")
        return None


class InvalidArgument(OgmiosError):
    """Raised when a caller passes an argument of the wrong shape."""

    def __init__(self, argument: str, reason: str, value: Any = None):
        details = {"argument": argument, "reason": reason}
        if value is not None:
            details["value"] = repr(value)
        super().__init__(f"Invalid argument '{argument}': {reason}", details)
        self.argument = argument
        self.reason = reason
        self.value = value


class ChannelClosed(OgmiosError):
    """Raised for requests pending on, or issued after, a closed channel."""

    def __init__(self, message: str = "connection closed.", details: dict | None = None):
        super().__init__(message, details)


class ChannelClosedAbnormally(ChannelClosed):
    """Raised when the channel closes with a code other than 1000."""

    def __init__(self, code: int | None, reason: str = "", data: Any = None):
        details: dict[str, Any] = {"code": code, "reason": reason}
        if data is not None:
            details["data"] = data
        super().__init__("connection ended with error.", details)
        self.code = code
        self.reason = reason
        self.data = data


class ChannelError(OgmiosError):
    """Raised on a transport-level failure of the channel.

    Note: Named ChannelError to avoid shadowing the builtin ConnectionError.
    """

    def __init__(self, reason: str, cause: BaseException | None = None):
        details = {"reason": reason}
        if cause:
            details["cause"] = str(cause)
        super().__init__(reason, details)
        self.reason = reason
        self.cause = cause
