"""Configuration diagnostics for the Bun Docs MCP Proxy.

This module reports where each configuration value comes from, the effective
configuration, and whether the upstream endpoint answers an ``initialize``.
"""

import asyncio
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .catalog import PROTOCOL_VERSION, SERVER_NAME
from .config import (
    DEFAULT_CONFIG_PATH,
    ENV_VARS,
    BridgeConfig,
    load_config,
    read_config_file,
)
from .errors import BridgeError
from .http_client import BunDocsClient


async def probe_upstream(
    config: BridgeConfig, client: Optional[BunDocsClient] = None
) -> Tuple[str, str, Optional[str]]:
    """Send an ``initialize`` request upstream.

    Args:
        config: Effective configuration
        client: Transport client (built from config when omitted)

    Returns:
        Tuple of (status, message, server):
            status: "success" or "error"
            message: Description of result
            server: Upstream server name and version if reported, else None
    """
    client = client or BunDocsClient(
        endpoint_url=config.endpoint_url, retry_policy=config.retry_policy()
    )
    probe = {
        "jsonrpc": "2.0",
        "id": 1,
        "method": "initialize",
        "params": {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": {},
            "clientInfo": {"name": f"{SERVER_NAME}-diagnostics", "version": "1"},
        },
    }

    try:
        payload = await client.forward_request(probe)
    except BridgeError as e:
        return ("error", f"Connection failed: {e.message}", None)
    finally:
        await client.close()

    if "error" in payload:
        error = payload["error"]
        message = error.get("message") if isinstance(error, dict) else error
        return ("error", f"Upstream returned an error: {message}", None)

    server = None
    result = payload.get("result")
    if isinstance(result, dict) and isinstance(result.get("serverInfo"), dict):
        info = result["serverInfo"]
        server = f"{info.get('name', 'unknown')} {info.get('version', '')}".strip()
    return ("success", "Upstream reachable", server)


@dataclass
class DiagnosticsResult:
    """Result of configuration diagnostics.

    Attributes:
        env_vars: Environment variables found
        file_config: Configuration from file
        config_file: Path of the config file that was read, if any
        effective_config: Final effective configuration
        sources: Source of each config value (environment/file/default)
        connectivity_status: Upstream connectivity test status
        connectivity_message: Upstream connectivity test message
        upstream_server: Upstream server name/version if available
    """

    env_vars: Dict[str, str] = field(default_factory=dict)
    file_config: Dict[str, Any] = field(default_factory=dict)
    config_file: Optional[Path] = None
    effective_config: Dict[str, Any] = field(default_factory=dict)
    sources: Dict[str, str] = field(default_factory=dict)
    connectivity_status: str = "not_tested"
    connectivity_message: str = ""
    upstream_server: Optional[str] = None

    def format_output(self) -> str:
        """Render the report printed by ``--diagnose``."""
        config_title = "Config File"
        if self.config_file is not None:
            config_title += f" ({self.config_file})"

        effective = [
            f"{key}: {value} (from {self.sources.get(key, 'unknown')})"
            for key, value in sorted(self.effective_config.items())
        ]

        if self.connectivity_status in ("success", "error"):
            upstream = [f"Status: {self.connectivity_message}"]
            if self.upstream_server:
                upstream.append(f"Server: {self.upstream_server}")
        else:
            upstream = ["Status: Not tested"]

        parts = ["Configuration Diagnostics", "=" * 50, ""]
        parts += _section("Environment Variables", _pairs(self.env_vars), "(none set)")
        parts += _section(config_title, _pairs(self.file_config), "(not used)")
        parts += _section("Effective Configuration", effective)
        parts += _section("Upstream Connectivity", upstream)
        return "\n".join(parts)


def _pairs(values: Dict[str, Any]) -> List[str]:
    return [f"{key}: {value}" for key, value in sorted(values.items())]


def _section(title: str, entries: List[str], empty: str = "") -> List[str]:
    """Title line, indented entries (or the ``empty`` note), blank line."""
    body = entries or ([empty] if empty else [])
    return [f"{title}:"] + [f"  {entry}" for entry in body] + [""]


def diagnose_configuration(
    config_path: Optional[str] = None,
    use_env: bool = True,
    client: Optional[BunDocsClient] = None,
    check_connectivity: bool = True,
) -> DiagnosticsResult:
    """Diagnose configuration sources and settings.

    Args:
        config_path: Path to config file (default: ~/.bun-docs-mcp/config.json)
        use_env: Whether to use environment variables
        client: Transport client for the connectivity probe
        check_connectivity: Whether to contact the upstream endpoint

    Returns:
        DiagnosticsResult with all diagnostic information
    """
    result = DiagnosticsResult()

    if use_env:
        for env_var in ENV_VARS.values():
            if env_var in os.environ:
                result.env_vars[env_var] = os.environ[env_var]

    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
    if config_path is not None or path.exists():
        result.config_file = path.expanduser().resolve()
        result.file_config = read_config_file(path)

    config = load_config(config_path=config_path, use_env=use_env)
    defaults = BridgeConfig()

    for key, env_var in ENV_VARS.items():
        result.effective_config[key] = getattr(config, key)
        if env_var in result.env_vars:
            result.sources[key] = "environment"
        elif key in result.file_config:
            result.sources[key] = "file"
        elif getattr(config, key) == getattr(defaults, key):
            result.sources[key] = "default"
        else:
            result.sources[key] = "unknown"

    if check_connectivity:
        try:
            status, message, server = asyncio.run(probe_upstream(config, client))
            result.connectivity_status = status
            result.connectivity_message = message
            result.upstream_server = server
        except Exception as e:
            result.connectivity_status = "error"
            result.connectivity_message = f"Connectivity test failed: {str(e)}"

    return result
