"""Shared pytest fixtures for Bun Docs MCP Proxy tests."""

from typing import Callable

import httpx
import pytest

from bun_docs_mcp.config import ENV_VARS
from bun_docs_mcp.http_client import BunDocsClient, RetryPolicy

TEST_ENDPOINT = "https://bun.com/docs/mcp"


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep the user's environment and ~/.bun-docs-mcp out of every test."""
    for env_var in ENV_VARS.values():
        monkeypatch.delenv(env_var, raising=False)
    missing = tmp_path / "no-such-dir" / "config.json"
    monkeypatch.setattr("bun_docs_mcp.config.DEFAULT_CONFIG_PATH", missing)
    monkeypatch.setattr("bun_docs_mcp.diagnostics.DEFAULT_CONFIG_PATH", missing)


@pytest.fixture
def fast_policy() -> RetryPolicy:
    """Three attempts, short deadline, no sleeping between attempts."""
    return RetryPolicy(max_attempts=3, timeout_per_attempt=1.0, backoff=None)


@pytest.fixture
def make_client(fast_policy) -> Callable[..., BunDocsClient]:
    """Build a client whose network is an ``httpx.MockTransport`` handler."""

    def _make(handler, retry_policy: RetryPolicy = None) -> BunDocsClient:
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return BunDocsClient(
            endpoint_url=TEST_ENDPOINT,
            retry_policy=retry_policy or fast_policy,
            http_client=http_client,
        )

    return _make
