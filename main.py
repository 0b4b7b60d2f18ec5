"""Command-line interface for the roster service."""

from __future__ import annotations
import argparse
import logging
import os
import sys
from typing import Sequence

from roster.config import load_naming_policy, resolve_config_path
from roster.database import Database, resolve_database_path
from roster.errors import DisplayNameError

logger = logging.getLogger("roster.main")

_KNOWN_COMMANDS = {"serve", "init-db", "suggest", "backfill-display-names", "list-users"}


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--db",
        dest="db_path",
        default=None,
        help="Path to the SQLite database (defaults to ROSTER_DB_PATH or data/roster.sqlite3)",
    )
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to the YAML configuration (defaults to ROSTER_CONFIG or config/roster.yaml)",
    )
    common.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    parser = argparse.ArgumentParser(description="Roster account service utilities")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("init-db", parents=[common], help="Initialise the roster database")

    serve_parser = subparsers.add_parser("serve", parents=[common], help="Start the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address for the API")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port for the API (default: 8000)")

    suggest_parser = subparsers.add_parser(
        "suggest", parents=[common], help="Preview the display name a new user would receive"
    )
    suggest_parser.add_argument("first_name")
    suggest_parser.add_argument("last_name", nargs="?", default="")

    subparsers.add_parser(
        "backfill-display-names",
        parents=[common],
        help="Assign display names to users created before display names existed",
    )
    subparsers.add_parser("list-users", parents=[common], help="List every registered user")

    args_list = list(argv) if argv is not None else sys.argv[1:]

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in _KNOWN_COMMANDS:
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _open_database(args: argparse.Namespace) -> Database:
    policy = load_naming_policy(resolve_config_path(args.config_path or os.getenv("ROSTER_CONFIG")))
    db_path = resolve_database_path(args.db_path or os.getenv("ROSTER_DB_PATH"))
    database = Database(db_path, policy=policy)
    database.initialize()
    logger.debug("Database initialised at %s", db_path)
    return database


def _serve(args: argparse.Namespace) -> None:
    from roster.application import create_application
    import uvicorn

    logger.info("Starting roster API on http://%s:%s", args.host, args.port)
    app = create_application(database_path=args.db_path, config_path=args.config_path)
    uvicorn.run(app, host=args.host, port=args.port, log_level="info")


def _list_users(database: Database) -> None:
    users = database.list_users()
    if not users:
        print("No users are currently registered.")
        return

    print(f"{len(users)} user(s) found:")
    print(f"{'ID':>4}  {'Display name':<24}  {'Name':<28}  Created")
    print("-" * 80)
    for user in users:
        created = user.created_at.strftime("%Y-%m-%d %H:%M:%S %Z")
        display_name = user.display_name or "<unassigned>"
        print(f"{user.id:>4}  {display_name:<24}  {user.full_name:<28}  {created}")


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    _configure_logging(args.verbose)

    if args.command == "serve":
        _serve(args)
        return 0

    try:
        database = _open_database(args)
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    if args.command == "init-db":
        print(f"Database ready at {database.path}")
        return 0

    if args.command == "suggest":
        try:
            suggestion = database.allocator.suggest(args.first_name, args.last_name)
        except DisplayNameError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1
        print(f"{suggestion.display_name} ({suggestion.strategy})")
        return 0

    if args.command == "backfill-display-names":
        try:
            assigned = database.backfill_display_names()
        except DisplayNameError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1
        print(f"Assigned display names to {assigned} user(s).")
        return 0

    if args.command == "list-users":
        _list_users(database)
        return 0

    return 1  # pragma: no cover - argparse rejects unknown commands


if __name__ == "__main__":
    raise SystemExit(main())
