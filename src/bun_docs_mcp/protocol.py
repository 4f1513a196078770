"""JSON-RPC 2.0 protocol handling for the Bun Docs MCP Proxy.

This module handles decoding, validation, and encoding of JSON-RPC 2.0 messages
according to the specification at https://www.jsonrpc.org/specification
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Union


# JSON-RPC error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

JSONRPC_VERSION = "2.0"

RequestId = Union[int, str, None]

logger = logging.getLogger(__name__)


class _NoResult:
    """Marker for a response that carries no ``result`` member."""

    def __repr__(self) -> str:
        return "NO_RESULT"


NO_RESULT: Any = _NoResult()


@dataclass(frozen=True)
class JsonRpcRequest:
    """JSON-RPC 2.0 request.

    Args:
        jsonrpc: JSON-RPC version (always "2.0")
        method: Method name to invoke
        id: Request identifier, echoed verbatim in the response
        params: Optional method parameters (object or array)
        is_notification: True when the request carried no ``id`` member
        raw: Decoded inbound object, forwarded upstream unchanged
    """

    jsonrpc: str
    method: str
    id: RequestId
    params: Optional[Union[dict, list]] = None
    is_notification: bool = False
    raw: Optional[dict] = field(default=None, compare=False, repr=False)

    def to_dict(self) -> dict:
        """Convert request to dictionary.

        Returns the inbound object when the request was decoded from the wire,
        so every member the caller sent reaches the upstream server.
        """
        if self.raw is not None:
            return self.raw
        result: dict = {"jsonrpc": self.jsonrpc, "id": self.id, "method": self.method}
        if self.params is not None:
            result["params"] = self.params
        return result


@dataclass(frozen=True)
class JsonRpcError:
    """JSON-RPC 2.0 error object.

    Args:
        code: Error code
        message: Error message
        data: Optional additional error data
    """

    code: int
    message: str
    data: Optional[Any] = None

    def to_dict(self) -> dict:
        """Convert error to dictionary."""
        result: dict = {"code": self.code, "message": self.message}
        if self.data is not None:
            result["data"] = self.data
        return result


@dataclass(frozen=True)
class JsonRpcResponse:
    """JSON-RPC 2.0 response.

    Args:
        id: Request identifier
        result: Result value (for success, may be None for a JSON null)
        error: Error object (for failures)
        jsonrpc: JSON-RPC version

    Note: Response must have either result OR error, but not both.
    """

    id: RequestId
    result: Any = NO_RESULT
    error: Optional[JsonRpcError] = None
    jsonrpc: str = JSONRPC_VERSION

    def __post_init__(self):
        """Validate response after initialization."""
        has_result = self.result is not NO_RESULT
        if has_result and self.error is not None:
            raise ValueError("Response cannot have both result and error")
        if not has_result and self.error is None:
            raise ValueError("Response must have either result or error")

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def to_dict(self) -> dict:
        """Convert response to dictionary."""
        result: dict = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            result["error"] = self.error.to_dict()
        else:
            result["result"] = self.result
        return result

    def to_json(self) -> str:
        """Convert response to a single-line JSON string."""
        return json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=False)


def decode_request(line: Union[bytes, str]) -> JsonRpcRequest:
    """Decode a JSON-RPC request from one inbound line.

    Args:
        line: Raw line (bytes or str) containing a single JSON document

    Returns:
        JsonRpcRequest instance

    Raises:
        CodecError: If the line is not valid JSON or not a JSON-RPC 2.0 request
    """
    from .errors import CodecError

    if isinstance(line, bytes):
        try:
            line = line.decode("utf-8")
        except UnicodeDecodeError as e:
            raise CodecError(f"Parse error: invalid UTF-8 at byte {e.start}") from e

    try:
        data = json.loads(line)
    except json.JSONDecodeError as e:
        raise CodecError(f"Parse error: {e.msg} at line {e.lineno} column {e.colno}") from e
    except RecursionError as e:
        raise CodecError("Parse error: JSON nested too deeply") from e

    if not isinstance(data, dict):
        raise CodecError("Parse error: request must be a JSON object")

    # Validate required fields
    if "jsonrpc" not in data:
        raise CodecError("Parse error: missing required field: jsonrpc")
    if data["jsonrpc"] != JSONRPC_VERSION:
        raise CodecError(
            f"Parse error: invalid jsonrpc version: {data['jsonrpc']!r} (expected '2.0')"
        )
    if "method" not in data:
        raise CodecError("Parse error: missing required field: method")
    if not isinstance(data["method"], str):
        raise CodecError("Parse error: method must be a string")

    request_id = data.get("id")
    if request_id is not None and (
        isinstance(request_id, bool) or not isinstance(request_id, (int, str))
    ):
        raise CodecError("Parse error: id must be a string, integer or null")

    params = data.get("params")
    if params is not None and not isinstance(params, (dict, list)):
        raise CodecError("Parse error: params must be an object or array")

    return JsonRpcRequest(
        jsonrpc=data["jsonrpc"],
        method=data["method"],
        id=request_id,
        params=params,
        is_notification="id" not in data,
        raw=data,
    )


def encode_response(response: JsonRpcResponse) -> bytes:
    """Encode a response as one line of UTF-8 JSON (no trailing newline)."""
    return response.to_json().encode("utf-8")


def request_id_of(line: Union[bytes, str]) -> RequestId:
    """Best-effort extraction of the ``id`` member from a rejected line.

    Returns None when the line cannot be parsed far enough to find an id.
    """
    try:
        data = json.loads(line)
    except (json.JSONDecodeError, UnicodeDecodeError, RecursionError):
        return None
    if not isinstance(data, dict):
        return None
    request_id = data.get("id")
    if isinstance(request_id, bool) or not isinstance(request_id, (int, str)):
        return None
    return request_id


def error_response(
    request_id: RequestId,
    code: int,
    message: str,
    data: Optional[Any] = None,
) -> JsonRpcResponse:
    """Create JSON-RPC error response.

    Args:
        request_id: Request identifier (can be None for parse errors)
        code: Error code
        message: Error message
        data: Optional additional error data

    Returns:
        JsonRpcResponse with error
    """
    return JsonRpcResponse(
        id=request_id, error=JsonRpcError(code=code, message=message, data=data)
    )


def success_response(request_id: RequestId, result: Any) -> JsonRpcResponse:
    """Create JSON-RPC success response."""
    return JsonRpcResponse(id=request_id, result=result)


def response_from_payload(request_id: RequestId, payload: dict) -> JsonRpcResponse:
    """Build the response for a request from an upstream terminal payload.

    The inbound request id always wins over whatever id the upstream payload
    carries, including when the payload has no id at all.

    Args:
        request_id: Identifier of the inbound request
        payload: Object extracted from the upstream stream, containing
            ``result`` or ``error``

    Returns:
        JsonRpcResponse relaying the upstream result or error
    """
    upstream_id = payload.get("id")
    if upstream_id is not None and upstream_id != request_id:
        logger.warning(
            "Upstream response id %r does not match request id %r", upstream_id, request_id
        )

    if "result" in payload:
        return success_response(request_id, payload["result"])

    error = payload.get("error")
    if (
        isinstance(error, dict)
        and isinstance(error.get("code"), int)
        and not isinstance(error.get("code"), bool)
        and isinstance(error.get("message"), str)
    ):
        return error_response(request_id, error["code"], error["message"], error.get("data"))

    logger.warning("Upstream returned a malformed error object: %r", error)
    return error_response(request_id, INTERNAL_ERROR, "Upstream returned a malformed error")
