"""Bun Docs MCP Proxy - bridges stdio JSON-RPC clients to the Bun docs server.

This package reads JSON-RPC 2.0 requests from stdin, forwards search calls to
the Bun documentation MCP endpoint (which answers with a Server-Sent Events
stream) and writes the extracted JSON-RPC response back to stdout.
"""

__version__ = "0.1.0"
