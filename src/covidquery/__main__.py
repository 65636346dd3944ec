"""
=============================================================================
COMMAND-LINE ENTRY POINT
=============================================================================

    # Serve covid_final_data.csv on 0.0.0.0:4040
    python -m covidquery

    # Another dataset / port, one client at a time
    python -m covidquery serve --data ./data.csv --port 5050 --sequential

    # Ask a running server
    python -m covidquery query --region Punjab --date 20-05-2020

Configuration comes from COVIDQUERY_* environment variables first
(ServerConfig.from_env), then command-line flags override them.

=============================================================================
EXIT STATUS
=============================================================================

    0   stopped by SIGINT/SIGTERM
    1   startup or listener failure (dataset, bind, accept)
    2   bad command-line arguments or configuration

This is the only place that ends the process; library code raises.

=============================================================================
"""

import argparse
import json
import logging
import sys
from typing import Optional

from . import __version__
from .client import QueryClient
from .config import ServerConfig, LOG_LEVELS, LOG_FORMATS
from .errors import DatasetFormatError, ListenerError
from .server import QueryServer


logger = logging.getLogger("covidquery.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="covidquery",
        description="TCP query server over an in-memory COVID statistics dataset",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  covidquery                                   # Serve on 0.0.0.0:4040
  covidquery serve --data ./data.csv -p 5050   # Custom dataset and port
  covidquery serve --sequential                # One client at a time
  covidquery query --region Punjab             # Query a running server
        """,
    )
    parser.add_argument("--version", "-v", action="version", version=f"covidquery {__version__}")

    sub = parser.add_subparsers(dest="command")

    # ─────────────────────────────────────────────────────────────────────
    # serve
    # ─────────────────────────────────────────────────────────────────────
    serve = sub.add_parser("serve", help="Run the query server (default)")
    serve.add_argument("--host", "-H", default=None, help="Host to bind to (default: 0.0.0.0)")
    serve.add_argument("--port", "-p", type=int, default=None, help="Port to listen on (default: 4040)")
    serve.add_argument("--data", "-d", default=None, help="Dataset CSV (default: covid_final_data.csv)")
    serve.add_argument(
        "--workers", "-w",
        type=int,
        default=None,
        help="Maximum worker threads (default: 16)",
    )
    serve.add_argument(
        "--sequential",
        action="store_true",
        help="Serve one client at a time on the accept thread",
    )
    serve.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Per-connection socket timeout in seconds (default: none)",
    )
    serve.add_argument("--log-level", "-l", choices=LOG_LEVELS, default=None, help="Logging level")
    serve.add_argument("--log-format", choices=LOG_FORMATS, default=None, help="Access log format")

    # ─────────────────────────────────────────────────────────────────────
    # query
    # ─────────────────────────────────────────────────────────────────────
    query = sub.add_parser("query", help="Send one query to a running server")
    query.add_argument("--host", "-H", default="127.0.0.1", help="Server host (default: 127.0.0.1)")
    query.add_argument("--port", "-p", type=int, default=4040, help="Server port (default: 4040)")
    query.add_argument("--region", "-r", default="", help="Region to match exactly")
    query.add_argument("--date", "-d", default="", help="Date as DD-MM-YYYY")

    return parser


def config_from_args(args: argparse.Namespace) -> ServerConfig:
    """Environment first, then any flag that was given."""
    config = ServerConfig.from_env()

    if getattr(args, "host", None):
        config.host = args.host
    if getattr(args, "port", None) is not None:
        config.port = args.port
    if getattr(args, "data", None):
        config.data_file = args.data
    if getattr(args, "workers", None):
        config.max_workers = args.workers
        config.min_workers = min(config.min_workers, args.workers)
    if getattr(args, "sequential", False):
        config.concurrent = False
    if getattr(args, "timeout", None):
        config.timeout = args.timeout
    if getattr(args, "log_level", None):
        config.log_level = args.log_level
    if getattr(args, "log_format", None):
        config.log_format = args.log_format

    return config


def serve(args: argparse.Namespace) -> int:
    try:
        server = QueryServer(config_from_args(args))
    except ValueError as e:
        print(f"covidquery: invalid configuration: {e}", file=sys.stderr)
        return 2

    try:
        server.run()
    except DatasetFormatError as e:
        logger.critical(f"Malformed dataset: {e}")
        return 1
    except ListenerError as e:
        logger.critical(f"Listener failed: {e}")
        return 1
    except OSError as e:
        # Dataset file unreadable or bind failure
        logger.critical(f"Startup failed: {e}")
        return 1

    return 0


def query(args: argparse.Namespace) -> int:
    try:
        with QueryClient(args.host, args.port) as client:
            rows = client.query(region=args.region, date=args.date)
    except (OSError, ValueError) as e:
        print(f"covidquery: query failed: {e}", file=sys.stderr)
        return 1

    print(json.dumps(rows, indent=2, ensure_ascii=False))
    return 0


def main(argv: Optional[list] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "query":
        return query(args)
    return serve(args)


if __name__ == "__main__":
    sys.exit(main())
