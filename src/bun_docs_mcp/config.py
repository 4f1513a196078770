"""Configuration management for the Bun Docs MCP Proxy.

This module handles loading and validating configuration from an optional
config file and environment variables. Every setting has a default, so the
proxy runs without any configuration at all.
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .http_client import (
    BUN_DOCS_ENDPOINT,
    DEFAULT_ATTEMPT_TIMEOUT,
    DEFAULT_MAX_ATTEMPTS,
    RetryPolicy,
)


# Default configuration values
DEFAULT_LOG_LEVEL = "info"
DEFAULT_CONFIG_PATH = Path.home() / ".bun-docs-mcp" / "config.json"
VALID_LOG_LEVELS = ["debug", "info", "warning", "error"]
MIN_TIMEOUT = 0.1
MAX_TIMEOUT = 300
MAX_ATTEMPTS_LIMIT = 10

# Environment variable for each config field
ENV_VARS = {
    "endpoint_url": "BUN_DOCS_MCP_ENDPOINT",
    "timeout": "BUN_DOCS_MCP_TIMEOUT",
    "max_attempts": "BUN_DOCS_MCP_MAX_ATTEMPTS",
    "log_level": "BUN_DOCS_MCP_LOG_LEVEL",
}

logger = logging.getLogger(__name__)


@dataclass
class BridgeConfig:
    """Configuration for the proxy.

    Args:
        endpoint_url: Upstream MCP endpoint (must use HTTPS)
        timeout: Per-attempt timeout in seconds (0.1-300, default: 5)
        max_attempts: Attempts per forwarded request (1-10, default: 3)
        log_level: Logging level (debug/info/warning/error, default: info)
    """

    endpoint_url: str = BUN_DOCS_ENDPOINT
    timeout: float = DEFAULT_ATTEMPT_TIMEOUT
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    log_level: str = DEFAULT_LOG_LEVEL

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.endpoint_url:
            raise ValueError("endpoint_url cannot be empty")

        # Allow localhost/127.0.0.1 for testing, but require HTTPS for all other URLs
        is_localhost = (
            "://localhost" in self.endpoint_url or "://127.0.0.1" in self.endpoint_url
        )
        if not self.endpoint_url.startswith("https://") and not is_localhost:
            raise ValueError(
                "endpoint_url must use HTTPS. " f"Got: {self.endpoint_url[:20]}..."
            )

        if self.timeout < MIN_TIMEOUT or self.timeout > MAX_TIMEOUT:
            raise ValueError(
                f"timeout must be between {MIN_TIMEOUT} and {MAX_TIMEOUT} seconds. "
                f"Got: {self.timeout}"
            )

        if self.max_attempts < 1 or self.max_attempts > MAX_ATTEMPTS_LIMIT:
            raise ValueError(
                f"max_attempts must be between 1 and {MAX_ATTEMPTS_LIMIT}. "
                f"Got: {self.max_attempts}"
            )

        if self.log_level not in VALID_LOG_LEVELS:
            raise ValueError(
                f"log_level must be one of {VALID_LOG_LEVELS}. "
                f"Got: {self.log_level}"
            )

    def retry_policy(self) -> RetryPolicy:
        """Build the retry policy described by this configuration."""
        return RetryPolicy(
            max_attempts=self.max_attempts, timeout_per_attempt=self.timeout
        )


def read_config_file(path: Path) -> dict:
    """Read a JSON config file, warning about loose permissions.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file is not a JSON object
    """
    path = path.expanduser().resolve()
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    file_perms = os.stat(path).st_mode & 0o777
    if file_perms != 0o600:
        logger.warning(
            f"Configuration file {path} has permissions {oct(file_perms)}. "
            f"Recommend setting to 0600: chmod 0600 {path}"
        )

    with open(path) as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a JSON object")
    return data


def read_env_overrides() -> dict:
    """Collect config values set through environment variables."""
    overrides: dict = {}
    for key, env_var in ENV_VARS.items():
        if env_var not in os.environ:
            continue
        raw = os.environ[env_var]
        try:
            if key == "timeout":
                overrides[key] = float(raw)
            elif key == "max_attempts":
                overrides[key] = int(raw)
            else:
                overrides[key] = raw
        except ValueError:
            raise ValueError(f"Invalid value for {env_var}: {raw!r}")
    return overrides


def load_config(
    config_path: Optional[str] = None, use_env: bool = True
) -> BridgeConfig:
    """Load configuration from file and/or environment variables.

    Args:
        config_path: Path to config JSON file. When omitted, the default path
            (~/.bun-docs-mcp/config.json) is read only if it exists.
        use_env: Whether to use environment variables (overrides file config)

    Returns:
        BridgeConfig instance

    Raises:
        FileNotFoundError: If an explicit config file is not found
        json.JSONDecodeError: If the config file contains invalid JSON
        ValueError: If a value is invalid

    Environment Variables:
        BUN_DOCS_MCP_ENDPOINT: Upstream endpoint URL
        BUN_DOCS_MCP_TIMEOUT: Per-attempt timeout in seconds
        BUN_DOCS_MCP_MAX_ATTEMPTS: Attempts per forwarded request
        BUN_DOCS_MCP_LOG_LEVEL: Log level
    """
    config_data: dict = {}

    if config_path is not None:
        config_data.update(read_config_file(Path(config_path)))
    elif DEFAULT_CONFIG_PATH.exists():
        config_data.update(read_config_file(DEFAULT_CONFIG_PATH))

    unknown = set(config_data) - set(ENV_VARS)
    if unknown:
        raise ValueError(f"Unknown config field(s): {', '.join(sorted(unknown))}")

    if use_env:
        config_data.update(read_env_overrides())

    return BridgeConfig(**config_data)
