"""
Command-line entry-point.

    nest-mcp serve                          # HTTP + MCP server
    nest-mcp bootstrap --parquet FILE       # (re)build the company table
    nest-mcp inspect --parquet FILE         # print the export's column types
"""
from __future__ import annotations

import argparse
import json
import sys

from nest_mcp.core.config import get_settings
from nest_mcp.core.errors import CompanyQueryError
from nest_mcp.core.logging import get_logger

logger = get_logger(__name__)


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    settings = get_settings()
    host = args.host or settings.host
    port = args.port or settings.port
    logger.info("Starting server on %s:%d", host, port)
    uvicorn.run("nest_mcp.api.main:app", host=host, port=port, log_config=None, log_level=settings.log_level.lower())
    return 0


def _bootstrap(args: argparse.Namespace) -> int:
    from nest_mcp.db.bootstrap import build_company_table

    rows = build_company_table(args.parquet, fulltext=not args.no_fulltext)
    print(f"Built company table: {rows:,} rows")
    return 0


def _inspect(args: argparse.Namespace) -> int:
    from nest_mcp.db.bootstrap import inspect_parquet_schema

    print(json.dumps(inspect_parquet_schema(args.parquet), indent=2, default=str))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="nest-mcp", description="Company data query server")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP and MCP server")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)
    serve.set_defaults(func=_serve)

    bootstrap = sub.add_parser("bootstrap", help="Build the company table from a parquet export")
    bootstrap.add_argument("--parquet", required=True)
    bootstrap.add_argument("--no-fulltext", action="store_true", help="Skip the full-text index")
    bootstrap.set_defaults(func=_bootstrap)

    inspect = sub.add_parser("inspect", help="Show the column types of a parquet export")
    inspect.add_argument("--parquet", required=True)
    inspect.set_defaults(func=_inspect)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except CompanyQueryError as exc:
        print(json.dumps(exc.to_payload(), indent=2), file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
