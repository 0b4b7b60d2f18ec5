"""SQLite-backed persistence for user accounts."""
from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from passlib.context import CryptContext

from .config import NamingPolicy
from .errors import DisplayNameAllocationError, DisplayNameTakenError
from .models import User
from .naming import DisplayNameAllocator, normalize_display_name

logger = logging.getLogger("roster.database")

# Attempts made when a freshly allocated display name loses a race against
# another writer between the availability check and the INSERT.
_ALLOCATION_RETRIES = 3

_USERS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS {table} (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    first_name TEXT NOT NULL DEFAULT '',
    last_name TEXT NOT NULL DEFAULT '',
    display_name TEXT,
    email TEXT UNIQUE,
    password_hash TEXT,
    created_at TEXT NOT NULL
)
"""

_USER_COLUMNS = frozenset(
    {"id", "first_name", "last_name", "display_name", "email", "password_hash", "created_at"}
)

_pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the application database."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "roster.sqlite3").resolve(strict=False)


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_datetime(value: datetime) -> str:
    return value.isoformat()


def _parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _hash_password(password: str) -> str:
    return _pwd_context.hash(password)


def _verify_password(password: str, hashed: str) -> bool:
    try:
        return _pwd_context.verify(password, hashed)
    except ValueError:
        return False


def _glob_escape(value: str) -> str:
    return "".join(f"[{char}]" if char in "*?[" else char for char in value)


def _is_display_name_conflict(exc: sqlite3.IntegrityError) -> bool:
    return "users.display_name" in str(exc)


def _is_email_conflict(exc: sqlite3.IntegrityError) -> bool:
    return "users.email" in str(exc)


def _normalize_email(email: Optional[str]) -> Optional[str]:
    if not email:
        return None
    return email.strip().lower() or None


class Database:
    """Simple wrapper around SQLite for persisting users."""

    def __init__(self, path: Path, *, policy: Optional[NamingPolicy] = None) -> None:
        _ensure_directory(path)
        self._path = path
        self._allocator = DisplayNameAllocator(self, policy)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def allocator(self) -> DisplayNameAllocator:
        return self._allocator

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def initialize(self) -> None:
        """Create the required tables if they do not already exist."""

        with self._connect() as conn:
            conn.execute(_USERS_TABLE_SQL.format(table="users"))

            columns = {
                row["name"]
                for row in conn.execute("PRAGMA table_info(users)").fetchall()
            }
            if "first_name" not in columns:
                conn.execute("ALTER TABLE users ADD COLUMN first_name TEXT NOT NULL DEFAULT ''")
            if "last_name" not in columns:
                conn.execute("ALTER TABLE users ADD COLUMN last_name TEXT NOT NULL DEFAULT ''")
            if "display_name" not in columns:
                logger.info("Adding display_name column to legacy users table at %s", self._path)
                conn.execute("ALTER TABLE users ADD COLUMN display_name TEXT")
            if "password_hash" not in columns:
                conn.execute("ALTER TABLE users ADD COLUMN password_hash TEXT")

            if "name" in columns:
                self._split_legacy_names(conn)

            if columns - _USER_COLUMNS:
                self._rebuild_users_table(conn, sorted(columns - _USER_COLUMNS))

            conn.execute(
                "CREATE UNIQUE INDEX IF NOT EXISTS idx_users_display_name "
                "ON users(display_name COLLATE NOCASE)"
            )

    def _split_legacy_names(self, conn: sqlite3.Connection) -> None:
        rows = conn.execute(
            "SELECT id, name FROM users WHERE first_name = '' AND last_name = '' AND name IS NOT NULL"
        ).fetchall()
        for row in rows:
            parts = str(row["name"]).split(None, 1)
            if not parts:
                continue
            first_name = parts[0]
            last_name = parts[1] if len(parts) > 1 else ""
            conn.execute(
                "UPDATE users SET first_name = ?, last_name = ? WHERE id = ?",
                (first_name, last_name, row["id"]),
            )
        if rows:
            logger.info("Split legacy names into first/last name for %s user(s)", len(rows))

    def _rebuild_users_table(self, conn: sqlite3.Connection, extra_columns: List[str]) -> None:
        # SQLite cannot drop columns carrying NOT NULL constraints, so copy into a fresh table.
        logger.info("Dropping legacy users columns %s at %s", ", ".join(extra_columns), self._path)
        copied = ", ".join(sorted(_USER_COLUMNS))
        conn.execute("DROP INDEX IF EXISTS idx_users_display_name")
        conn.execute(_USERS_TABLE_SQL.format(table="users_migrated"))
        conn.execute(f"INSERT INTO users_migrated ({copied}) SELECT {copied} FROM users")
        conn.execute("DROP TABLE users")
        conn.execute("ALTER TABLE users_migrated RENAME TO users")

    # ------------------------------------------------------------------
    # User management
    # ------------------------------------------------------------------
    def create_user(
        self,
        first_name: str,
        last_name: str,
        email: Optional[str],
        password: str,
        *,
        display_name: Optional[str] = None,
    ) -> User:
        """Create a new user, allocating a display name when none is supplied."""

        if not password:
            raise ValueError("Password must not be empty")

        first_name = (first_name or "").strip()
        last_name = (last_name or "").strip()
        normalized_email = _normalize_email(email)
        password_hash = _hash_password(password)

        requested: Optional[str] = None
        if display_name is not None:
            requested = normalize_display_name(display_name)
            if not self._allocator.is_available(requested):
                raise DisplayNameTakenError(requested)

        for _ in range(_ALLOCATION_RETRIES):
            if requested is not None:
                chosen = requested
            else:
                chosen = self._allocator.allocate(first_name, last_name).display_name

            created_at = _current_timestamp()
            with self._connect() as conn:
                try:
                    cursor = conn.execute(
                        """
                        INSERT INTO users (
                            first_name,
                            last_name,
                            display_name,
                            email,
                            password_hash,
                            created_at
                        )
                        VALUES (?, ?, ?, ?, ?, ?)
                        """,
                        (
                            first_name,
                            last_name,
                            chosen,
                            normalized_email,
                            password_hash,
                            _serialize_datetime(created_at),
                        ),
                    )
                except sqlite3.IntegrityError as exc:
                    if _is_email_conflict(exc):
                        raise ValueError("A user with that email already exists") from exc
                    if not _is_display_name_conflict(exc):
                        raise
                    if requested is not None:
                        raise DisplayNameTakenError(requested) from exc
                    logger.info("Display name %s was claimed concurrently; allocating again", chosen)
                    continue

                user_id = cursor.lastrowid

            logger.info("Created user %s with display name %s", user_id, chosen)
            return User(
                id=user_id,
                first_name=first_name,
                last_name=last_name,
                display_name=chosen,
                email=normalized_email,
                created_at=created_at,
            )

        raise DisplayNameAllocationError(
            f"Display name allocation kept colliding after {_ALLOCATION_RETRIES} attempts"
        )

    def get_user(self, user_id: int) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE email = ?",
                (email.strip().lower(),),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def get_user_by_display_name(self, display_name: str) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE display_name = ? COLLATE NOCASE",
                (display_name.strip(),),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def list_users(self) -> List[User]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM users ORDER BY id").fetchall()
        return [self._row_to_user(row) for row in rows]

    def authenticate_user(self, email: str, password: str) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE email = ?",
                (email.strip().lower(),),
            ).fetchone()
        if row is None:
            return None
        stored_hash = row["password_hash"]
        if not stored_hash or not _verify_password(password, stored_hash):
            return None
        return self._row_to_user(row)

    def verify_user_password(self, user_id: int, password: str) -> bool:
        """Return ``True`` if the supplied password matches the stored hash."""

        with self._connect() as conn:
            row = conn.execute(
                "SELECT password_hash FROM users WHERE id = ?",
                (user_id,),
            ).fetchone()

        if row is None:
            return False

        stored_hash = row["password_hash"]
        if not stored_hash:
            return False

        return _verify_password(password, stored_hash)

    def update_user_profile(
        self,
        user_id: int,
        *,
        first_name: str,
        last_name: str,
        email: Optional[str],
    ) -> User:
        """Update the name parts/email address for an existing user.

        The display name is left untouched; it is assigned once at creation.
        """

        normalized_first = first_name.strip()
        normalized_last = last_name.strip()
        if not normalized_first and not normalized_last:
            raise ValueError("Name must not be empty")

        normalized_email = _normalize_email(email)

        with self._connect() as conn:
            try:
                conn.execute(
                    "UPDATE users SET first_name = ?, last_name = ?, email = ? WHERE id = ?",
                    (normalized_first, normalized_last, normalized_email, user_id),
                )
            except sqlite3.IntegrityError as exc:
                if _is_email_conflict(exc):
                    raise ValueError("A user with that email already exists") from exc
                raise

        refreshed = self.get_user(user_id)
        if refreshed is None:
            raise ValueError("User not found")
        return refreshed

    def set_user_password(self, user_id: int, password: str) -> None:
        if not password:
            raise ValueError("Password must not be empty")
        password_hash = _hash_password(password)
        with self._connect() as conn:
            conn.execute(
                "UPDATE users SET password_hash = ? WHERE id = ?",
                (password_hash, user_id),
            )

    def delete_user(self, user_id: int) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM users WHERE id = ?", (user_id,))
            return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Display names
    # ------------------------------------------------------------------
    def display_name_exists(self, display_name: str) -> bool:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT 1 FROM users WHERE display_name = ? COLLATE NOCASE LIMIT 1",
                (display_name,),
            ).fetchone()
        return row is not None

    def display_names_with_prefix(self, prefix: str) -> List[str]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT display_name FROM users WHERE display_name GLOB ?",
                (f"{_glob_escape(prefix.lower())}*",),
            ).fetchall()
        return [str(row["display_name"]) for row in rows]

    def assign_display_name(self, user_id: int) -> Optional[str]:
        """Give *user_id* a display name if it has none yet.

        Returns the newly assigned name, or ``None`` when the user already had one.
        """

        for _ in range(_ALLOCATION_RETRIES):
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT first_name, last_name, display_name FROM users WHERE id = ?",
                    (user_id,),
                ).fetchone()
            if row is None:
                raise ValueError("User not found")
            if row["display_name"]:
                return None

            chosen = self._allocator.allocate(row["first_name"], row["last_name"]).display_name
            with self._connect() as conn:
                try:
                    cursor = conn.execute(
                        "UPDATE users SET display_name = ? WHERE id = ? AND display_name IS NULL",
                        (chosen, user_id),
                    )
                except sqlite3.IntegrityError as exc:
                    if not _is_display_name_conflict(exc):
                        raise
                    logger.info("Display name %s was claimed concurrently; allocating again", chosen)
                    continue
                if cursor.rowcount == 0:
                    return None
            return chosen

        raise DisplayNameAllocationError(
            f"Display name allocation kept colliding after {_ALLOCATION_RETRIES} attempts"
        )

    def backfill_display_names(self) -> int:
        """Assign display names to every user created before they existed."""

        with self._connect() as conn:
            rows = conn.execute(
                "SELECT id FROM users WHERE display_name IS NULL ORDER BY id"
            ).fetchall()

        assigned = 0
        for row in rows:
            if self.assign_display_name(int(row["id"])) is not None:
                assigned += 1

        if assigned:
            logger.info("Backfilled display names for %s user(s)", assigned)
        return assigned

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _row_to_user(self, row: sqlite3.Row) -> User:
        return User(
            id=int(row["id"]),
            first_name=str(row["first_name"] or ""),
            last_name=str(row["last_name"] or ""),
            display_name=row["display_name"],
            email=row["email"],
            created_at=_parse_datetime(str(row["created_at"])),
        )


__all__ = ["Database", "resolve_database_path"]
