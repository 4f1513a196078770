"""HTTP client for forwarding requests to the Bun docs MCP server.

This module handles HTTP communication with the upstream server: one POST per
forwarded request, SSE streaming of the reply, a per-attempt deadline and a
bounded retry loop for transient failures.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, Optional
import asyncio
import json
import logging

import httpx

from .errors import NoResponseInStream, TransportError
from .extractor import extract_response, is_terminal_payload
from .sse_parser import DEFAULT_MAX_RECORD_SIZE, aiter_sse_records


BUN_DOCS_ENDPOINT = "https://bun.com/docs/mcp"

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_ATTEMPT_TIMEOUT = 5.0
BACKOFF_BASE = 0.2
BACKOFF_MAX = 1.0

# Error bodies are read up to this many bytes, and logged up to the snippet size
MAX_ERROR_BODY_SIZE = 100_000
ERROR_SNIPPET_SIZE = 2048

logger = logging.getLogger(__name__)


def exponential_backoff(attempt: int) -> float:
    """Delay in seconds after failed attempt number ``attempt`` (1-based).

    Gives 0.2s, 0.4s, 0.8s and then stays at 1s.
    """
    if attempt < 1:
        raise ValueError("attempt must be >= 1")
    return min(BACKOFF_BASE * (2 ** (attempt - 1)), BACKOFF_MAX)


@dataclass(frozen=True)
class RetryPolicy:
    """Retry configuration for one forwarded request.

    Args:
        max_attempts: Total number of attempts, including the first one
        timeout_per_attempt: Deadline in seconds for a single attempt, covering
            connect, headers and reading the stream up to the terminal payload
        backoff: Maps a failed attempt number to a delay in seconds; None
            means retry immediately
    """

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    timeout_per_attempt: float = DEFAULT_ATTEMPT_TIMEOUT
    backoff: Optional[Callable[[int], float]] = exponential_backoff

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.timeout_per_attempt <= 0:
            raise ValueError("timeout_per_attempt must be positive")

    def delay_after(self, attempt: int) -> float:
        """Delay before the attempt following ``attempt``."""
        if self.backoff is None:
            return 0.0
        return max(0.0, self.backoff(attempt))


def main_content_type(headers: httpx.Headers) -> str:
    """Return the lowercase media type of a response, without parameters."""
    content_type = headers.get("Content-Type", "")
    return content_type.split(";", 1)[0].strip().lower()


def is_transient_status(status_code: int) -> bool:
    """Server errors are worth another attempt; client errors are not."""
    return status_code >= 500


class BunDocsClient:
    """HTTP client for forwarding JSON-RPC requests to the Bun docs server.

    Args:
        endpoint_url: URL of the upstream MCP endpoint
        retry_policy: Attempts, per-attempt timeout and backoff
        http_client: Pre-built ``httpx.AsyncClient`` (e.g. on a mock transport);
            one is created lazily when omitted
        max_record_size: Largest SSE record accepted from the stream
    """

    def __init__(
        self,
        endpoint_url: str = BUN_DOCS_ENDPOINT,
        retry_policy: Optional[RetryPolicy] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        max_record_size: int = DEFAULT_MAX_RECORD_SIZE,
    ):
        self.endpoint_url = endpoint_url
        self.retry_policy = retry_policy or RetryPolicy()
        self.max_record_size = max_record_size
        self._client = http_client
        self._owns_client = http_client is None

    def get_request_headers(self) -> dict[str, str]:
        """Get request headers for the forwarded POST."""
        return {
            "Content-Type": "application/json",
            "Accept": "application/json, text/event-stream",
        }

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.retry_policy.timeout_per_attempt
            )
        return self._client

    async def forward_request(self, request_data: dict) -> dict:
        """Forward a JSON-RPC request and return the upstream terminal payload.

        Args:
            request_data: JSON-RPC request as dictionary, sent verbatim

        Returns:
            The JSON object holding the upstream ``result`` or ``error``

        Raises:
            TransportError: When every attempt failed, or on a 4xx response
            NoResponseInStream: When the upstream reply held no terminal payload
        """
        policy = self.retry_policy
        attempt = 0
        last_error: Optional[TransportError] = None

        while attempt < policy.max_attempts:
            attempt += 1
            try:
                payload = await asyncio.wait_for(
                    self._attempt(request_data), timeout=policy.timeout_per_attempt
                )
                if attempt > 1:
                    logger.info("Upstream request succeeded on attempt %d", attempt)
                return payload

            except asyncio.TimeoutError:
                last_error = TransportError(
                    f"timed out after {policy.timeout_per_attempt:g} seconds",
                    retryable=True,
                )

            except TransportError as e:
                if not e.retryable:
                    logger.error("Upstream request failed: %s", e.message)
                    raise TransportError(
                        f"Upstream request failed: {e.message}",
                        status_code=e.status_code,
                        attempts=attempt,
                    ) from e
                last_error = e

            if attempt < policy.max_attempts:
                delay = policy.delay_after(attempt)
                logger.warning(
                    "Upstream attempt %d of %d failed: %s; retrying in %.2fs",
                    attempt,
                    policy.max_attempts,
                    last_error.message,
                    delay,
                )
                if delay > 0:
                    await asyncio.sleep(delay)

        assert last_error is not None
        logger.error(
            "Upstream request failed after %d attempt(s): %s", attempt, last_error.message
        )
        raise TransportError(
            f"Upstream request failed after {attempt} attempt(s): {last_error.message}",
            status_code=last_error.status_code,
            attempts=attempt,
        )

    async def _attempt(self, request_data: dict) -> dict:
        """Run a single POST and read the reply up to the terminal payload."""
        client = self._get_client()
        headers = self.get_request_headers()

        try:
            async with client.stream(
                "POST", self.endpoint_url, json=request_data, headers=headers
            ) as response:
                logger.debug("Upstream response status: %d", response.status_code)

                if not response.is_success:
                    await self._raise_for_status(response)

                content_type = main_content_type(response.headers)
                if content_type.startswith("text/event-stream"):
                    return await self._read_sse(response)
                return await self._read_json(response)

        except httpx.TimeoutException as e:
            raise TransportError(f"timed out: {type(e).__name__}", retryable=True) from e

        except httpx.ConnectError as e:
            raise TransportError("connection failed", retryable=True) from e

        except httpx.TransportError as e:
            raise TransportError(f"network error: {type(e).__name__}", retryable=True) from e

    async def _raise_for_status(self, response: httpx.Response) -> None:
        body = bytearray()
        try:
            async for chunk in response.aiter_bytes():
                body.extend(chunk)
                if len(body) >= MAX_ERROR_BODY_SIZE:
                    break
        except httpx.HTTPError as e:
            logger.debug("Failed to read error response body: %s", e)

        snippet = bytes(body[:ERROR_SNIPPET_SIZE]).decode("utf-8", errors="replace")
        logger.debug(
            "Upstream error: status=%d content_type=%s body_snippet=%r",
            response.status_code,
            main_content_type(response.headers) or "<none>",
            snippet,
        )
        status = response.status_code
        raise TransportError(
            f"HTTP {status}", status_code=status, retryable=is_transient_status(status)
        )

    async def _read_sse(self, response: httpx.Response) -> dict:
        records = aiter_sse_records(response.aiter_bytes(), self.max_record_size)
        try:
            return await extract_response(records)
        finally:
            await records.aclose()

    async def _read_json(self, response: httpx.Response) -> dict:
        body = await response.aread()
        try:
            payload = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise TransportError("upstream returned an invalid JSON body") from e
        if not is_terminal_payload(payload):
            raise NoResponseInStream("No valid JSON-RPC response in upstream body")
        return payload

    async def fetch_doc_markdown(self, url: str) -> str:
        """Fetch a documentation page as raw Markdown.

        Args:
            url: Full URL of the documentation page

        Returns:
            Markdown source of the page

        Raises:
            TransportError: On network failure or a non-2xx status
        """
        client = self._get_client()
        try:
            response = await client.get(
                url,
                headers={"Accept": "text/markdown"},
                timeout=self.retry_policy.timeout_per_attempt,
            )
        except httpx.HTTPError as e:
            raise TransportError(f"failed to fetch markdown: {type(e).__name__}") from e

        if not response.is_success:
            raise TransportError(
                f"failed to fetch markdown: HTTP {response.status_code}",
                status_code=response.status_code,
            )
        logger.debug("Fetched %d bytes of markdown from %s", len(response.text), url)
        return response.text

    async def close(self):
        """Close HTTP client and cleanup resources."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        """Enter async context manager."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Exit async context manager."""
        await self.close()
