"""Error taxonomy for the proxy.

Every failure that can happen while handling one request is a ``BridgeError``
subclass carrying the JSON-RPC error code it maps to. The dispatcher is the
only place that turns these into JSON-RPC error responses.
"""

from typing import Optional

from .protocol import INTERNAL_ERROR, METHOD_NOT_FOUND, PARSE_ERROR


class BridgeError(Exception):
    """Base class for per-request failures."""

    code = INTERNAL_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class CodecError(BridgeError):
    """Inbound line is not valid JSON or not a JSON-RPC 2.0 request."""

    code = PARSE_ERROR


class UnknownMethod(BridgeError):
    """Requested method is not supported by the proxy."""

    code = METHOD_NOT_FOUND

    def __init__(self, method: str):
        super().__init__(f"Method not found: {method}")
        self.method = method


class ValidationError(BridgeError):
    """Request parameters failed local validation and were not forwarded."""

    pass


class TransportError(BridgeError):
    """Upstream HTTP exchange failed.

    Args:
        message: Concise description of the failure
        status_code: HTTP status code, if the failure was a non-2xx response
        retryable: Whether another attempt may succeed
        attempts: Number of attempts made when the error is final
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        retryable: bool = False,
        attempts: int = 0,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable
        self.attempts = attempts


class NoResponseInStream(BridgeError):
    """Upstream stream ended without a result or error payload."""

    def __init__(self, message: str = "No valid JSON-RPC response in upstream stream"):
        super().__init__(message)
