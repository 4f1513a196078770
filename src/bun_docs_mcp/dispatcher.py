"""Method routing for inbound JSON-RPC requests.

``initialize``, ``tools/list`` and ``resources/list`` are answered locally.
``tools/call`` is forwarded upstream exactly as the caller sent it.
``resources/read`` of ``bun://docs?query=...`` runs the search tool upstream
and returns the reply as resource contents. Anything else is rejected without
a network call.
"""

import logging
from typing import Awaitable, Callable, Dict
from urllib.parse import parse_qs, urlsplit

from . import catalog
from .errors import BridgeError, UnknownMethod, ValidationError
from .http_client import BunDocsClient
from .protocol import (
    INTERNAL_ERROR,
    JsonRpcRequest,
    JsonRpcResponse,
    error_response,
    response_from_payload,
    success_response,
)

logger = logging.getLogger(__name__)

NOTIFICATION_PREFIX = "notifications/"

Handler = Callable[[JsonRpcRequest], Awaitable[JsonRpcResponse]]


def parse_docs_uri(uri: str) -> str:
    """Extract the search term from a ``bun://docs?query=...`` URI.

    Args:
        uri: Resource URI from ``resources/read`` params

    Returns:
        The URL-decoded, non-empty search query

    Raises:
        ValidationError: If the URI is not a docs URI or the query is empty
    """
    parts = urlsplit(uri)
    if parts.scheme != "bun" or parts.netloc != "docs" or parts.path not in ("", "/"):
        raise ValidationError(f"Invalid URI format: {uri}")

    values = parse_qs(parts.query, keep_blank_values=True).get("query", [])
    query = values[0].strip() if values else ""
    if not query:
        raise ValidationError("Search query must not be empty")
    return query


class Dispatcher:
    """Routes each request to a local answer or to the upstream server.

    Args:
        client: Transport client used for forwarded methods
    """

    def __init__(self, client: BunDocsClient):
        self.client = client
        self._handlers: Dict[str, Handler] = {
            "initialize": self._handle_initialize,
            "tools/list": self._handle_tools_list,
            "resources/list": self._handle_resources_list,
            "tools/call": self._handle_tools_call,
            "resources/read": self._handle_resources_read,
        }

    def expects_response(self, request: JsonRpcRequest) -> bool:
        """MCP notifications (no id, ``notifications/*``) get no reply."""
        return not (
            request.is_notification and request.method.startswith(NOTIFICATION_PREFIX)
        )

    async def handle(self, request: JsonRpcRequest) -> JsonRpcResponse:
        """Handle one request and always produce a response.

        Args:
            request: Decoded inbound request

        Returns:
            Success or error response carrying the request id
        """
        logger.info("Received method: %s", request.method)
        try:
            handler = self._handlers.get(request.method)
            if handler is None:
                raise UnknownMethod(request.method)
            return await handler(request)

        except BridgeError as e:
            logger.error("Request %r (%s) failed: %s", request.id, request.method, e.message)
            return error_response(request.id, e.code, e.message)

        except Exception:
            logger.exception("Unexpected error handling %s", request.method)
            return error_response(request.id, INTERNAL_ERROR, "Internal error")

    async def _handle_initialize(self, request: JsonRpcRequest) -> JsonRpcResponse:
        return success_response(request.id, catalog.initialize_result())

    async def _handle_tools_list(self, request: JsonRpcRequest) -> JsonRpcResponse:
        return success_response(request.id, catalog.tools_list_result())

    async def _handle_resources_list(self, request: JsonRpcRequest) -> JsonRpcResponse:
        return success_response(request.id, catalog.resources_list_result())

    async def _handle_tools_call(self, request: JsonRpcRequest) -> JsonRpcResponse:
        payload = await self.client.forward_request(request.to_dict())
        logger.info("Got response from Bun docs for request %r", request.id)
        return response_from_payload(request.id, payload)

    async def _handle_resources_read(self, request: JsonRpcRequest) -> JsonRpcResponse:
        params = request.params
        if not isinstance(params, dict):
            raise ValidationError("Missing params")
        uri = params.get("uri")
        if not isinstance(uri, str):
            raise ValidationError("Missing or invalid uri parameter")
        query = parse_docs_uri(uri)
        logger.debug("Reading docs resource for query %r", query)

        # The upstream only knows the search tool, so the read becomes a search
        payload = await self.client.forward_request(
            catalog.search_request(query, request.id)
        )
        if "result" not in payload:
            return response_from_payload(request.id, payload)
        return success_response(request.id, catalog.resource_contents(uri, payload))
