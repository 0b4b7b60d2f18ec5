import argparse
import getpass
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from roster.config import load_naming_policy, resolve_config_path
from roster.database import Database, resolve_database_path


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a roster user account")
    parser.add_argument("first_name", help="Given name used to derive the display name")
    parser.add_argument("last_name", help="Family name used to derive the display name")
    parser.add_argument("email", help="Unique email address for login")
    parser.add_argument(
        "--display-name",
        dest="display_name",
        default=None,
        help="Request a specific display name instead of deriving one",
    )
    parser.add_argument(
        "--db",
        dest="db_path",
        default=None,
        help="Path to the SQLite database (defaults to ROSTER_DB_PATH or data/roster.sqlite3)",
    )
    parser.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to the YAML configuration (defaults to ROSTER_CONFIG or config/roster.yaml)",
    )
    return parser.parse_args(argv)


def prompt_for_password() -> str:
    for _ in range(3):
        password = getpass.getpass("Password: ")
        confirm = getpass.getpass("Confirm password: ")
        if password != confirm:
            print("Passwords do not match. Try again.", file=sys.stderr)
            continue
        if len(password) < 12:
            print("Password must be at least 12 characters long.", file=sys.stderr)
            continue
        return password
    raise SystemExit("Failed to set password after three attempts.")


def main(argv=None) -> int:
    args = parse_args(argv)
    password = prompt_for_password()

    policy = load_naming_policy(resolve_config_path(args.config_path or os.getenv("ROSTER_CONFIG")))
    db_path = resolve_database_path(args.db_path or os.getenv("ROSTER_DB_PATH"))

    database = Database(db_path, policy=policy)
    database.initialize()

    try:
        user = database.create_user(
            args.first_name,
            args.last_name,
            args.email,
            password,
            display_name=args.display_name,
        )
    except ValueError as exc:  # duplicates, invalid display names, etc.
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(f"Created user #{user.id}: {user.full_name} (@{user.display_name}) <{user.email}>")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
