"""PocketMCP entry point.

Changes:
  - 2026-02-21: Added auth-server subcommand and --token-format.
  - 2026-02-21: Added --tools to pick the tool pack at start-up.
  - 2026-02-20: Rich logging configured from LOG_LEVEL.
"""

import argparse
import logging
import os
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version

from pocketmcp import __version__
from pocketmcp.config import get_auth_server_settings, get_settings, reset_settings
from pocketmcp.logging_setup import setup_logging

logger = logging.getLogger(__name__)


def _installed_version() -> str:
    try:
        return get_version("pocketmcp")
    except PackageNotFoundError:
        return __version__


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="pocketmcp",
        description="PocketMCP - MCP server with a companion OAuth 2.0 authorization server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  pocketmcp serve                         Start the MCP server on :3000
  pocketmcp serve --tools widget          Expose the widget tool pack
  pocketmcp serve --dev                   Start with auto-reload
  pocketmcp auth-server                   Start the authorization server on :3001
  pocketmcp auth-server --token-format jwt
""",
    )
    parser.add_argument(
        "command",
        choices=["serve", "auth-server"],
        help="'serve' starts the MCP server, 'auth-server' the OAuth 2.0 server",
    )
    parser.add_argument("--host", type=str, default=None, help="Host to bind")
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to bind (default: PORT=3000 / AUTH_PORT=3001)",
    )
    parser.add_argument(
        "--tools",
        choices=["basic", "widget"],
        default=None,
        help="Tool pack to expose (serve only, default: TOOL_PACK or basic)",
    )
    parser.add_argument(
        "--dev",
        action="store_true",
        help="Auto-reload on code changes (serve only)",
    )
    parser.add_argument(
        "--token-format",
        choices=["opaque", "jwt"],
        default=None,
        help="Access token format (auth-server only, default: TOKEN_FORMAT or opaque)",
    )
    parser.add_argument(
        "--version",
        "-v",
        action="version",
        version=f"%(prog)s {_installed_version()}",
    )

    args = parser.parse_args()

    # Settings are environment-sourced; exporting keeps --dev reloads consistent.
    if args.tools:
        os.environ["TOOL_PACK"] = args.tools
    if args.token_format:
        os.environ["TOKEN_FORMAT"] = args.token_format
    reset_settings()

    try:
        if args.command == "serve":
            from pocketmcp.api.serve import run_resource_server

            setup_logging(get_settings().log_level)
            run_resource_server(host=args.host, port=args.port, dev=args.dev)
        else:
            from pocketmcp.api.serve import run_auth_server

            setup_logging(get_auth_server_settings().log_level)
            run_auth_server(host=args.host, port=args.port)
    except KeyboardInterrupt:
        logger.info("👋 PocketMCP stopped.")


if __name__ == "__main__":
    main()
