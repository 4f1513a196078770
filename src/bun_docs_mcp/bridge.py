"""Main bridge module connecting stdin/stdout to the Bun docs server.

This module implements the main loop that reads JSON-RPC requests from stdin,
dispatches them one at a time, and writes one response line per request to
stdout. Logging goes to stderr so stdout carries nothing but JSON-RPC.
"""

import argparse
import asyncio
import logging
import sys
from typing import BinaryIO, Optional, TextIO, Union

from .config import BridgeConfig
from .dispatcher import Dispatcher
from .errors import CodecError
from .http_client import BunDocsClient
from .protocol import (
    JsonRpcResponse,
    decode_request,
    encode_response,
    error_response,
    request_id_of,
)

logger = logging.getLogger(__name__)

# Max characters of a message shown in debug logs
DEBUG_MESSAGE_MAX_LEN = 80

LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"


def configure_logging(log_level: str = "info") -> None:
    """Send log records to stderr at the configured level."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format=LOG_FORMAT,
        stream=sys.stderr,
        force=True,
    )
    # httpx logs every request at info level
    logging.getLogger("httpx").setLevel(logging.WARNING)


class Bridge:
    """Stdio front end: one line in, one line out, strictly in order.

    Args:
        config: Proxy configuration
        client: Transport client (built from config when omitted)
    """

    def __init__(self, config: BridgeConfig, client: Optional[BunDocsClient] = None):
        self.config = config
        self.client = client or BunDocsClient(
            endpoint_url=config.endpoint_url, retry_policy=config.retry_policy()
        )
        self.dispatcher = Dispatcher(self.client)

    async def process_line(self, line: Union[bytes, str]) -> Optional[JsonRpcResponse]:
        """Process a single line of input containing a JSON-RPC request.

        Args:
            line: Raw bytes (or text) of one JSON-RPC request

        Returns:
            The response to write, or None for a notification
        """
        if logger.isEnabledFor(logging.DEBUG):
            preview = line[:DEBUG_MESSAGE_MAX_LEN]
            if isinstance(preview, bytes):
                preview = preview.decode("utf-8", errors="replace")
            logger.debug("Read message: %s", preview)
        try:
            request = decode_request(line)
        except CodecError as e:
            logger.error("Failed to parse JSON-RPC request: %s", e.message)
            return error_response(request_id_of(line), e.code, e.message)

        if not self.dispatcher.expects_response(request):
            logger.debug("Ignoring notification: %s", request.method)
            return None

        return await self.dispatcher.handle(request)

    async def run_stdio_loop(
        self,
        stdin: Optional[Union[BinaryIO, TextIO]] = None,
        stdout: Optional[TextIO] = None,
    ):
        """Run main stdio loop - read from stdin, write to stdout.

        Args:
            stdin: Input stream (default: the binary buffer of sys.stdin, so
                undecodable bytes reach the codec instead of the reader)
            stdout: Output stream (default: sys.stdout)
        """
        if stdin is None:
            stdin = sys.stdin.buffer
        if stdout is None:
            stdout = sys.stdout

        try:
            for line in stdin:
                line = line.strip()
                if not line:
                    continue

                response = await self.process_line(line)
                if response is None:
                    continue

                message = encode_response(response).decode("utf-8")
                logger.debug("Writing message: %s", message[:DEBUG_MESSAGE_MAX_LEN])
                stdout.write(message + "\n")
                stdout.flush()

            logger.info("Connection closed")

        finally:
            await self.client.close()

    async def run(self):
        """Run bridge with default stdin/stdout."""
        await self.run_stdio_loop()


async def async_main(config: BridgeConfig):  # pragma: no cover
    """Async main entry point for the stdio bridge."""
    logger.info("Bun Docs MCP Proxy starting")
    bridge = Bridge(config)
    await bridge.run()
    logger.info("Bun Docs MCP Proxy shutting down")


def build_parser() -> argparse.ArgumentParser:
    """Build the command line parser."""
    from . import __version__
    from .search_cli import OUTPUT_FORMATS

    parser = argparse.ArgumentParser(
        prog="bun-docs-mcp-proxy",
        description="Bun Docs MCP Proxy - stdio JSON-RPC bridge and CLI for Bun documentation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    parser.add_argument(
        "--config",
        type=str,
        metavar="PATH",
        help="Path to configuration file (default: ~/.bun-docs-mcp/config.json)",
    )

    parser.add_argument(
        "--diagnose",
        action="store_true",
        help="Run configuration diagnostics and exit",
    )

    parser.add_argument(
        "-s",
        "--search",
        type=str,
        metavar="QUERY",
        help="Search Bun documentation and print the result (enables CLI mode)",
    )

    parser.add_argument(
        "-o",
        "--output",
        type=str,
        metavar="PATH",
        help="Write search output to a file (default: stdout)",
    )

    parser.add_argument(
        "-f",
        "--format",
        choices=OUTPUT_FORMATS,
        default="json",
        help="Output format for search results (default: json)",
    )

    return parser


def main(argv=None):  # pragma: no cover
    """Synchronous wrapper for CLI entry point with argument parsing."""
    from .config import load_config
    from .diagnostics import diagnose_configuration
    from .search_cli import run_search

    args = build_parser().parse_args(argv)

    if args.diagnose:
        try:
            result = diagnose_configuration(config_path=args.config, use_env=True)
            print(result.format_output())
            sys.exit(0)
        except Exception as e:
            print(f"Diagnostics failed: {str(e)}", file=sys.stderr)
            sys.exit(1)

    try:
        config = load_config(config_path=args.config, use_env=True)
    except (OSError, ValueError) as e:
        print(f"Configuration Error: {str(e)}", file=sys.stderr)
        sys.exit(1)

    configure_logging(config.log_level)

    if args.search is not None:
        sys.exit(asyncio.run(run_search(config, args.search, args.format, args.output)))

    asyncio.run(async_main(config))


if __name__ == "__main__":
    main()
