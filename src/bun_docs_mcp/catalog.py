"""Static MCP metadata and the request and result shapes built by the proxy."""

import copy
import json

from . import __version__
from .protocol import RequestId

PROTOCOL_VERSION = "2024-11-05"
SERVER_NAME = "bun-docs-mcp-proxy"

SEARCH_TOOL_NAME = "SearchBun"
DOCS_RESOURCE_URI = "bun://docs"
RESOURCE_MIME_TYPE = "application/json"

TOOLS = [
    {
        "name": SEARCH_TOOL_NAME,
        "description": "Search Bun documentation",
        "inputSchema": {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Search query"}
            },
            "required": ["query"],
        },
    }
]

RESOURCES = [
    {
        "uri": DOCS_RESOURCE_URI,
        "name": "Bun Documentation",
        "description": "Search and browse Bun documentation",
        "mimeType": RESOURCE_MIME_TYPE,
    }
]


def initialize_result() -> dict:
    """Result of the MCP ``initialize`` handshake."""
    return {
        "protocolVersion": PROTOCOL_VERSION,
        "capabilities": {"tools": {}, "resources": {}},
        "serverInfo": {"name": SERVER_NAME, "version": __version__},
    }


def tools_list_result() -> dict:
    return {"tools": copy.deepcopy(TOOLS)}


def resources_list_result() -> dict:
    return {"resources": copy.deepcopy(RESOURCES)}


def search_request(query: str, request_id: RequestId = 1) -> dict:
    """Build the ``tools/call`` request that runs a documentation search.

    Args:
        query: Search term passed to the ``SearchBun`` tool
        request_id: Identifier to send upstream

    Returns:
        JSON-RPC request as dictionary
    """
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "method": "tools/call",
        "params": {"name": SEARCH_TOOL_NAME, "arguments": {"query": query}},
    }


def resource_contents(uri: str, payload: dict) -> dict:
    """Wrap an upstream search reply as the result of ``resources/read``.

    The whole upstream payload is carried as compact JSON text.
    """
    return {
        "contents": [
            {
                "uri": uri,
                "mimeType": RESOURCE_MIME_TYPE,
                "text": json.dumps(payload, separators=(",", ":"), ensure_ascii=False),
            }
        ]
    }
