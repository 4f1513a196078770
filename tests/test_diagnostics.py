"""Unit tests for configuration diagnostics.

This module tests source tracking, output formatting and the upstream
connectivity probe.
"""

import json

import httpx
import pytest

from bun_docs_mcp.diagnostics import (
    DiagnosticsResult,
    diagnose_configuration,
    probe_upstream,
)
from bun_docs_mcp.config import BridgeConfig

INITIALIZE_REPLY = {
    "jsonrpc": "2.0",
    "id": 1,
    "result": {
        "protocolVersion": "2024-11-05",
        "serverInfo": {"name": "bun-docs", "version": "2.1.0"},
    },
}


def initialize_upstream(request: httpx.Request) -> httpx.Response:
    assert json.loads(request.content)["method"] == "initialize"
    return httpx.Response(200, json=INITIALIZE_REPLY)


class TestDiagnosticsResult:
    """Test DiagnosticsResult formatting."""

    def test_format_output_sections(self):
        result = DiagnosticsResult(
            env_vars={"BUN_DOCS_MCP_TIMEOUT": "2"},
            file_config={"log_level": "debug"},
            effective_config={"timeout": 2.0, "log_level": "debug"},
            sources={"timeout": "environment", "log_level": "file"},
            connectivity_status="success",
            connectivity_message="Upstream reachable",
            upstream_server="bun-docs 2.1.0",
        )

        output = result.format_output()

        assert "Environment Variables:\n  BUN_DOCS_MCP_TIMEOUT: 2" in output
        assert "  log_level: debug (from file)" in output
        assert "  timeout: 2.0 (from environment)" in output
        assert "  Status: Upstream reachable" in output
        assert "  Server: bun-docs 2.1.0" in output

    def test_format_output_when_nothing_configured(self):
        output = DiagnosticsResult().format_output()

        assert "(none set)" in output
        assert "(not used)" in output
        assert "Status: Not tested" in output


class TestDiagnoseConfiguration:
    """Test configuration diagnostics."""

    def test_all_defaults(self):
        result = diagnose_configuration(check_connectivity=False)

        assert result.env_vars == {}
        assert result.file_config == {}
        assert result.config_file is None
        assert result.effective_config["endpoint_url"] == "https://bun.com/docs/mcp"
        assert set(result.sources.values()) == {"default"}
        assert result.connectivity_status == "not_tested"

    def test_sources_are_tracked(self, tmp_path, monkeypatch):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"log_level": "debug", "timeout": 8}))
        path.chmod(0o600)
        monkeypatch.setenv("BUN_DOCS_MCP_TIMEOUT", "2")

        result = diagnose_configuration(config_path=str(path), check_connectivity=False)

        assert result.env_vars == {"BUN_DOCS_MCP_TIMEOUT": "2"}
        assert result.config_file == path.resolve()
        assert result.effective_config["timeout"] == 2.0
        assert result.sources["timeout"] == "environment"
        assert result.sources["log_level"] == "file"
        assert result.sources["max_attempts"] == "default"

    def test_env_vars_ignored_when_disabled(self, monkeypatch):
        monkeypatch.setenv("BUN_DOCS_MCP_LOG_LEVEL", "error")

        result = diagnose_configuration(use_env=False, check_connectivity=False)

        assert result.env_vars == {}
        assert result.effective_config["log_level"] == "info"

    def test_invalid_config_raises(self, monkeypatch):
        monkeypatch.setenv("BUN_DOCS_MCP_ENDPOINT", "http://insecure.example.com")

        with pytest.raises(ValueError, match="must use HTTPS"):
            diagnose_configuration(check_connectivity=False)

    def test_connectivity_success(self, make_client):
        result = diagnose_configuration(client=make_client(initialize_upstream))

        assert result.connectivity_status == "success"
        assert result.upstream_server == "bun-docs 2.1.0"
        assert "Server: bun-docs 2.1.0" in result.format_output()

    def test_connectivity_failure(self, make_client):
        def down(request):
            raise httpx.ConnectError("refused", request=request)

        result = diagnose_configuration(client=make_client(down))

        assert result.connectivity_status == "error"
        assert "connection failed" in result.connectivity_message
        assert result.upstream_server is None


@pytest.mark.asyncio
class TestProbeUpstream:
    """Test the initialize probe."""

    async def test_upstream_error_payload(self, make_client):
        def rejecting(request):
            return httpx.Response(
                200,
                json={"jsonrpc": "2.0", "id": 1, "error": {"code": -32600, "message": "nope"}},
            )

        status, message, server = await probe_upstream(
            BridgeConfig(), make_client(rejecting)
        )

        assert status == "error"
        assert "nope" in message
        assert server is None

    async def test_http_error(self, make_client):
        def forbidden(request):
            return httpx.Response(403, text="forbidden")

        status, message, _ = await probe_upstream(BridgeConfig(), make_client(forbidden))

        assert status == "error"
        assert "HTTP 403" in message
