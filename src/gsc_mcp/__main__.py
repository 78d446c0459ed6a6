from __future__ import annotations

import argparse
import sys
from typing import Optional, Sequence

from gsc_mcp import SERVER_NAME, SERVER_VERSION


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gsc-mcp", description="Google Search Console MCP server")
    parser.add_argument("--version", action="version", version=f"{SERVER_NAME} {SERVER_VERSION}")
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("serve", help="Serve MCP over stdio (default)")
    sub.add_parser("auth", help="Run the browser OAuth flow and store a token")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if args.command == "auth":
        from gsc_mcp.auth.cli import main as auth_main

        return auth_main()

    from gsc_mcp.server import main as serve_main

    return serve_main()


if __name__ == "__main__":
    sys.exit(main())
