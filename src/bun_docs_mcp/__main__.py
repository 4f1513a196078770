"""Entry point for running the proxy with ``python -m bun_docs_mcp``."""

import sys


def main():
    """Main entry point for the proxy."""
    from bun_docs_mcp.bridge import main as bridge_main

    return bridge_main()


if __name__ == "__main__":
    sys.exit(main())
