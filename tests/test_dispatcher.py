"""Unit tests for method routing.

The transport client is replaced by a stub that records forwarded requests,
so tests can assert exactly which methods reach the network.
"""

import json

import pytest

from bun_docs_mcp.catalog import PROTOCOL_VERSION, SERVER_NAME
from bun_docs_mcp.dispatcher import Dispatcher, parse_docs_uri
from bun_docs_mcp.errors import NoResponseInStream, TransportError, ValidationError
from bun_docs_mcp.protocol import (
    INTERNAL_ERROR,
    METHOD_NOT_FOUND,
    JsonRpcRequest,
    decode_request,
)


class StubClient:
    """Records forwarded requests and replays canned outcomes."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.forwarded = []

    async def forward_request(self, request_data):
        self.forwarded.append(request_data)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def request(method, request_id=1, params=None):
    return JsonRpcRequest(jsonrpc="2.0", method=method, id=request_id, params=params)


class TestParseDocsUri:
    def test_query_extracted(self):
        assert parse_docs_uri("bun://docs?query=Bun.serve") == "Bun.serve"

    def test_query_is_url_decoded(self):
        assert parse_docs_uri("bun://docs?query=http%20server") == "http server"
        assert parse_docs_uri("bun://docs?query=http+server") == "http server"

    @pytest.mark.parametrize(
        "uri", ["bun://docs", "bun://docs?query=", "bun://docs?query=%20%20", "bun://docs?other=x"]
    )
    def test_empty_query_rejected(self, uri):
        with pytest.raises(ValidationError, match="must not be empty"):
            parse_docs_uri(uri)

    @pytest.mark.parametrize(
        "uri", ["invalid://uri", "", "https://bun.com/docs?query=x", "bun://other?query=x"]
    )
    def test_invalid_uri_rejected(self, uri):
        with pytest.raises(ValidationError, match="Invalid URI format"):
            parse_docs_uri(uri)


@pytest.mark.asyncio
class TestLocalMethods:
    """Methods answered without any network call."""

    async def test_initialize(self):
        client = StubClient()
        response = await Dispatcher(client).handle(request("initialize"))

        result = response.to_dict()["result"]
        assert result["protocolVersion"] == PROTOCOL_VERSION == "2024-11-05"
        assert result["serverInfo"]["name"] == SERVER_NAME == "bun-docs-mcp-proxy"
        assert result["capabilities"] == {"tools": {}, "resources": {}}
        assert client.forwarded == []

    async def test_tools_list(self):
        client = StubClient()
        response = await Dispatcher(client).handle(request("tools/list", "test-id"))

        data = response.to_dict()
        assert data["id"] == "test-id"
        tools = data["result"]["tools"]
        assert len(tools) == 1
        assert tools[0]["name"] == "SearchBun"
        assert tools[0]["inputSchema"]["type"] == "object"
        assert tools[0]["inputSchema"]["properties"]["query"]["type"] == "string"
        assert tools[0]["inputSchema"]["required"] == ["query"]
        assert client.forwarded == []

    async def test_resources_list(self):
        client = StubClient()
        response = await Dispatcher(client).handle(request("resources/list", "res-list"))

        resources = response.to_dict()["result"]["resources"]
        assert resources == [
            {
                "uri": "bun://docs",
                "name": "Bun Documentation",
                "description": "Search and browse Bun documentation",
                "mimeType": "application/json",
            }
        ]
        assert client.forwarded == []

    async def test_catalog_results_are_copies(self):
        dispatcher = Dispatcher(StubClient())
        first = await dispatcher.handle(request("tools/list"))
        first.result["tools"][0]["inputSchema"]["properties"].clear()

        second = await dispatcher.handle(request("tools/list"))

        assert "query" in second.result["tools"][0]["inputSchema"]["properties"]

    @pytest.mark.parametrize("method", ["prompts/list", "ping", "tools/unknown", ""])
    async def test_unknown_method(self, method):
        client = StubClient()
        response = await Dispatcher(client).handle(request(method, 42))

        data = response.to_dict()
        assert data["id"] == 42
        assert data["error"]["code"] == METHOD_NOT_FOUND
        assert "result" not in data
        assert client.forwarded == []


@pytest.mark.asyncio
class TestForwardedMethods:
    """Methods relayed to the upstream server."""

    async def test_tools_call_forwarded_verbatim(self):
        line = '{"jsonrpc":"2.0","id":5,"method":"tools/call","params":{"name":"SearchBun","arguments":{"query":"Bun.serve","extra":{"deep":[1,2]}}}}'
        client = StubClient({"result": {"content": [{"type": "text", "text": "hit"}]}})

        response = await Dispatcher(client).handle(decode_request(line))

        assert client.forwarded == [decode_request(line).raw]
        assert response.to_dict() == {
            "jsonrpc": "2.0",
            "id": 5,
            "result": {"content": [{"type": "text", "text": "hit"}]},
        }

    async def test_tools_call_upstream_error_relayed(self):
        client = StubClient({"error": {"code": -32000, "message": "Tool failed"}})

        response = await Dispatcher(client).handle(request("tools/call", 6, {"name": "x"}))

        assert response.error.code == -32000
        assert response.error.message == "Tool failed"
        assert response.id == 6

    async def test_transport_error_becomes_internal_error(self):
        client = StubClient(
            TransportError("Upstream request failed after 3 attempt(s): HTTP 503")
        )

        response = await Dispatcher(client).handle(request("tools/call", 7, {}))

        assert response.error.code == INTERNAL_ERROR
        assert "HTTP 503" in response.error.message
        assert response.id == 7

    async def test_no_response_in_stream_becomes_internal_error(self):
        client = StubClient(NoResponseInStream())

        response = await Dispatcher(client).handle(request("tools/call", 8, {}))

        assert response.error.code == INTERNAL_ERROR
        assert "No valid JSON-RPC response" in response.error.message

    async def test_unexpected_exception_is_concise_internal_error(self):
        client = StubClient(RuntimeError("secret internal detail"))

        response = await Dispatcher(client).handle(request("tools/call", 9, {}))

        assert response.error.code == INTERNAL_ERROR
        assert response.error.message == "Internal error"

    async def test_resources_read_runs_search_tool(self):
        uri = "bun://docs?query=http%20server"
        upstream = {"jsonrpc": "2.0", "id": "r1", "result": {"content": [{"type": "text", "text": "hit"}]}}
        client = StubClient(upstream)

        response = await Dispatcher(client).handle(
            request("resources/read", "r1", {"uri": uri})
        )

        assert client.forwarded == [
            {
                "jsonrpc": "2.0",
                "id": "r1",
                "method": "tools/call",
                "params": {"name": "SearchBun", "arguments": {"query": "http server"}},
            }
        ]
        data = response.to_dict()
        assert data["id"] == "r1"
        contents = data["result"]["contents"]
        assert len(contents) == 1
        assert contents[0]["uri"] == uri
        assert contents[0]["mimeType"] == "application/json"
        assert json.loads(contents[0]["text"]) == upstream

    async def test_resources_read_upstream_error_relayed(self):
        client = StubClient({"error": {"code": -32000, "message": "Search failed"}})

        response = await Dispatcher(client).handle(
            request("resources/read", 11, {"uri": "bun://docs?query=x"})
        )

        assert response.error.code == -32000
        assert response.error.message == "Search failed"
        assert response.id == 11

    @pytest.mark.parametrize(
        "params,message",
        [
            (None, "Missing params"),
            ({"other": "value"}, "Missing or invalid uri parameter"),
            ({"uri": 123}, "Missing or invalid uri parameter"),
            ({"uri": "bun://docs"}, "must not be empty"),
            ({"uri": "bun://docs?query="}, "must not be empty"),
            ({"uri": "invalid://uri"}, "Invalid URI format"),
        ],
    )
    async def test_resources_read_validation_not_forwarded(self, params, message):
        client = StubClient()

        response = await Dispatcher(client).handle(request("resources/read", "r2", params))

        assert response.error.code == INTERNAL_ERROR
        assert message in response.error.message
        assert response.id == "r2"
        assert client.forwarded == []


class TestNotifications:
    def test_mcp_notifications_get_no_response(self):
        dispatcher = Dispatcher(StubClient())
        notification = decode_request('{"jsonrpc":"2.0","method":"notifications/initialized"}')

        assert dispatcher.expects_response(notification) is False

    def test_requests_with_null_id_get_response(self):
        dispatcher = Dispatcher(StubClient())
        with_null_id = decode_request('{"jsonrpc":"2.0","method":"tools/list","id":null}')

        assert dispatcher.expects_response(with_null_id) is True

    def test_unknown_method_without_id_gets_response(self):
        dispatcher = Dispatcher(StubClient())
        unknown = decode_request('{"jsonrpc":"2.0","method":"foo"}')

        assert dispatcher.expects_response(unknown) is True
