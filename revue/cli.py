"""Command-line interface for the revue annotation server."""

import argparse
import asyncio
import sys
from pathlib import Path

from . import __version__
from .logging import setup_logging, get_logger

logger = get_logger(__name__)


def build_coordinator(db_path=None, memory: bool = False):
    """Create a coordinator over the SQLite store, or an in-memory one."""
    from .sync import SyncCoordinator

    if memory:
        from .store import MemoryDocumentStore, MemoryTaskMirror

        logger.info("Using in-memory store (data is lost on exit)")
        return SyncCoordinator(MemoryDocumentStore(), MemoryTaskMirror())

    from .sqlite_store import SQLiteDocumentStore, SQLiteTaskMirror

    store = SQLiteDocumentStore(db_path)
    mirror = SQLiteTaskMirror(store.db_path)
    logger.info("Using database: %s", store.db_path)
    return SyncCoordinator(store, mirror)


def cmd_serve(args):
    """Run the HTTP API."""
    import uvicorn

    from .api import create_app
    from .config import get_host, get_port, load_env

    load_env()
    host = args.host or get_host()
    port = args.port or get_port()
    coordinator = build_coordinator(Path(args.db) if args.db else None, memory=args.memory)

    logger.info("Serving revue API on http://%s:%d", host, port)
    uvicorn.run(create_app(coordinator), host=host, port=port, log_level="warning")


def cmd_targets(args):
    """List stored targets with their approval progress."""
    from .approval import approval_progress
    from .config import load_env

    load_env()
    coordinator = build_coordinator(Path(args.db) if args.db else None)
    asyncio.run(coordinator.load_all())

    targets = coordinator.targets()
    if not targets:
        logger.info("No targets yet")
        return
    for target in targets:
        approved, total = approval_progress(target)
        print(
            f"{target.id}  {target.target_type.value:<8} {target.name}  "
            f"[{approved}/{total} approved, {target.comment_count} comments, {target.status.value}]"
        )


def main():
    parser = argparse.ArgumentParser(
        prog="revue",
        description="Revue - pinned, threaded review comments on websites, mockups and videos",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  revue serve                           # Serve the API on 127.0.0.1:8766
  revue serve --port 9000 --db review.db
  revue serve --memory                  # Throwaway in-memory instance
  revue targets                         # List stored targets

Environment:
  REVUE_DB_PATH, REVUE_HOST, REVUE_PORT, REVUE_ROLLBACK_ON_FAILURE,
  REVUE_MAX_REPLY_DEPTH, REVUE_DEFAULT_VIDEO_SPAN (a .env file is read)
        """,
    )
    parser.add_argument("--version", action="version", version=f"revue {__version__}")
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Show debug output"
    )
    parser.add_argument(
        "--quiet", "-q", action="store_true", help="Show only errors"
    )
    parser.add_argument(
        "--log-file", metavar="FILE", help="Write logs to file"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run the annotation API server")
    serve_parser.add_argument("--host", help="Bind host (default: REVUE_HOST or 127.0.0.1)")
    serve_parser.add_argument("--port", "-p", type=int, help="Bind port (default: REVUE_PORT or 8766)")
    serve_parser.add_argument("--db", help="SQLite database file (default: REVUE_DB_PATH)")
    serve_parser.add_argument(
        "--memory", action="store_true", help="Keep everything in memory instead of SQLite"
    )

    # Targets command
    targets_parser = subparsers.add_parser("targets", help="List review targets")
    targets_parser.add_argument("--db", help="SQLite database file (default: REVUE_DB_PATH)")

    args = parser.parse_args()

    # Setup logging based on flags
    setup_logging(
        verbose=getattr(args, "verbose", False),
        quiet=getattr(args, "quiet", False),
        log_file=getattr(args, "log_file", None),
    )

    if args.command is None:
        parser.print_help()
        return

    commands = {
        "serve": cmd_serve,
        "targets": cmd_targets,
    }

    try:
        commands[args.command](args)
    except KeyboardInterrupt:
        logger.info("Interrupted")
        sys.exit(130)


if __name__ == "__main__":
    main()
