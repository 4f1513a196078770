"""Direct documentation search from the command line.

Runs a ``SearchBun`` tool call through the same forwarding path the stdio
bridge uses and renders the result as JSON, plain text or Markdown.
"""

import json
import logging
import re
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urlsplit

from rich.console import Console
from rich.markup import escape

from .catalog import search_request
from .config import BridgeConfig
from .errors import BridgeError
from .http_client import BunDocsClient
from .protocol import response_from_payload

OUTPUT_FORMATS = ["json", "text", "markdown"]

MARKDOWN_HEADING = "# Bun Documentation Search Results"

_URL_RE = re.compile(r"https?://[^\s<>()\[\]\"']+")

logger = logging.getLogger(__name__)


def _content_texts(result: Any) -> Optional[list]:
    """Text of each ``content`` item, or None if the result has no content list."""
    if not isinstance(result, dict) or not isinstance(result.get("content"), list):
        return None
    return [
        item["text"]
        for item in result["content"]
        if isinstance(item, dict) and isinstance(item.get("text"), str)
    ]


def format_json(result: Any) -> str:
    """Format search results as JSON."""
    return json.dumps(result, indent=2, ensure_ascii=False)


def format_text(result: Any) -> str:
    """Format search results as plain text."""
    texts = _content_texts(result)
    if texts is None:
        return format_json(result)
    return "".join(f"{text}\n\n" for text in texts)


def find_doc_link(text: str, docs_host: str) -> Optional[str]:
    """Return the first documentation URL on ``docs_host`` found in ``text``."""
    for match in _URL_RE.finditer(text):
        url = match.group(0).rstrip(".,;:")
        if urlsplit(url).hostname == docs_host:
            return url
    return None


async def format_markdown(result: Any, client: BunDocsClient) -> str:
    """Format search results as Markdown.

    Each result item that links to a documentation page is replaced by the
    page's Markdown source. Items without a link, or whose page cannot be
    fetched, keep their original text.
    """
    output = [MARKDOWN_HEADING, ""]
    texts = _content_texts(result)
    if texts is None:
        output += ["```json", format_json(result), "```", ""]
        return "\n".join(output)

    docs_host = urlsplit(client.endpoint_url).hostname or ""
    for text in texts:
        link = find_doc_link(text, docs_host)
        if link is not None:
            try:
                text = await client.fetch_doc_markdown(link)
            except BridgeError as e:
                logger.warning("Using search text for %s: %s", link, e.message)
        output += [text.rstrip("\n"), ""]
    return "\n".join(output) + "\n"


async def direct_search(query: str, output_format: str, client: BunDocsClient) -> str:
    """Run a documentation search and return the formatted output.

    Raises:
        BridgeError: If the search could not be completed
    """
    request = search_request(query)
    payload = await client.forward_request(request)
    response = response_from_payload(request["id"], payload)
    if response.error is not None:
        raise BridgeError(f"Search failed: {response.error.message}")

    if output_format == "text":
        return format_text(response.result)
    if output_format == "markdown":
        return await format_markdown(response.result, client)
    return format_json(response.result)


async def run_search(
    config: BridgeConfig,
    query: str,
    output_format: str = "json",
    output_path: Optional[str] = None,
    client: Optional[BunDocsClient] = None,
    console: Optional[Console] = None,
) -> int:
    """CLI search mode. Returns the process exit status."""
    console = console or Console(stderr=True)
    client = client or BunDocsClient(
        endpoint_url=config.endpoint_url, retry_policy=config.retry_policy()
    )

    try:
        formatted = await direct_search(query, output_format, client)
    except BridgeError as e:
        console.print(f"[red]Error:[/red] {escape(e.message)}")
        return 1
    finally:
        await client.close()

    if output_path:
        Path(output_path).write_text(formatted, encoding="utf-8")
        console.print(f"Output written to: {escape(output_path)}")
    else:
        print(formatted)
    return 0
