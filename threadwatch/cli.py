"""
threadwatch command line

Usage:
    python -m threadwatch migrate            Apply pending migrations
    python -m threadwatch version            Print the latest applied schema version
    python -m threadwatch logs --num 50      Print the newest stored log lines
    python -m threadwatch invites --count 5  Generate invites
    python -m threadwatch cleanup-invites    Delete expired, unaccepted invites

Connection settings are read from the environment (and .env), see threadwatch.db.
"""

from __future__ import annotations

import argparse
import logging

from dotenv import load_dotenv

from .db import create_db_engine, get_admin_url, get_engine, get_sessionmaker
from .errors import SchemaDriftError
from .logging_config import setup_logging
from .migrations import current_schema_version, run_migrations
from .services import invites, logs

logger = logging.getLogger(__name__)

EXIT_SCHEMA_DRIFT = 2


def _cmd_migrate(args: argparse.Namespace) -> int:
    engine = create_db_engine(get_admin_url())
    try:
        version = run_migrations(engine)
    finally:
        engine.dispose()

    print(f"Schema version: {version}")
    return 0


def _cmd_version(args: argparse.Namespace) -> int:
    version = current_schema_version(get_engine())
    print(version if version is not None else "No migrations applied")
    return 0


def _cmd_logs(args: argparse.Namespace) -> int:
    with get_sessionmaker()() as db:
        entries = logs.get_logs(db, args.num, args.last_id)

    for entry in entries:
        print(f"{entry.id} {entry.log_time.isoformat()} [{entry.log_level}] {entry.target}: {entry.message}")
    return 0


def _cmd_invites(args: argparse.Namespace) -> int:
    with get_sessionmaker()() as db:
        for invite_id in invites.generate_invites(db, args.count):
            print(invite_id)
    return 0


def _cmd_cleanup_invites(args: argparse.Namespace) -> int:
    with get_sessionmaker()() as db:
        deleted = invites.cleanup_expired(db)
    print(f"Deleted {deleted} expired invites")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="threadwatch", description="Thread watcher database tools")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    subparsers = parser.add_subparsers(dest="command", required=True)

    migrate = subparsers.add_parser("migrate", help="Apply pending migrations")
    migrate.set_defaults(func=_cmd_migrate)

    version = subparsers.add_parser("version", help="Print the latest applied schema version")
    version.set_defaults(func=_cmd_version)

    show_logs = subparsers.add_parser("logs", help="Print stored log lines, newest first")
    show_logs.add_argument("--num", type=int, default=100, help="Number of lines (default: 100)")
    show_logs.add_argument("--last-id", type=int, default=None, help="Only lines older than this id")
    show_logs.set_defaults(func=_cmd_logs)

    generate = subparsers.add_parser("invites", help="Generate invites")
    generate.add_argument("--count", type=int, default=1, help="Number of invites (default: 1)")
    generate.set_defaults(func=_cmd_invites)

    cleanup = subparsers.add_parser("cleanup-invites", help="Delete expired, unaccepted invites")
    cleanup.set_defaults(func=_cmd_cleanup_invites)

    return parser


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)

    try:
        return args.func(args)
    except SchemaDriftError as e:
        logger.critical(f"Refusing to continue, schema drift detected: {e}")
        return EXIT_SCHEMA_DRIFT
