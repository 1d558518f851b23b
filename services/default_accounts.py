"""
Default Accounts Service

Two ways of putting the default ``admin`` and ``Jan`` accounts into the
users table:

- ``ensure_default_users`` is idempotent and safe to run on every deploy.
  Missing accounts are created; existing rows, including changed passwords,
  are left alone.
- ``reset_and_reseed`` is destructive operator tooling. It empties every
  user-related table in one transaction and recreates both accounts.

Usage:
    from services.default_accounts import ensure_default_users, reset_and_reseed

    result = ensure_default_users(db_path)
    print(result["created"], result["existing"])
"""

import logging
import sqlite3
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import bcrypt

from config.env_config import Config
from db import create_connection, get_columns, get_connection, get_db_path, table_exists
from file_lock_manager import get_database_lock
from services.lifecycle_errors import TransactionError

logger = logging.getLogger(__name__)

# (username, config variable holding the password, is_admin)
DEFAULT_ACCOUNTS: Tuple[Tuple[str, str, bool], ...] = (
    ("admin", "DEFAULT_ADMIN_PASSWORD", True),
    ("Jan", "DEFAULT_USER_PASSWORD", False),
)

# Children before parents; users last
RESET_TABLES: List[str] = [
    "fertilizer_usage",
    "plant_days",
    "plant_setup_mappings",
    "setup_day_entries",
    "user_strains",
    "harvests",
    "help_requests",
    "feedback",
    "plants",
    "plant_setups",
    "users",
]

USERS_TABLE_SQL = """
    CREATE TABLE users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        username TEXT UNIQUE NOT NULL,
        password_hash TEXT,
        email TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        is_admin INTEGER DEFAULT 0,
        onboarding_completed INTEGER DEFAULT 0
    )
"""

# Columns added after the first release of the users table
USER_COLUMN_PATCHES = {
    "is_admin": "INTEGER DEFAULT 0",
    "onboarding_completed": "INTEGER DEFAULT 0",
}


def hash_password(password: str, rounds: int = None) -> str:
    """Salted bcrypt hash at the configured work factor."""
    if rounds is None:
        rounds = Config.BCRYPT_ROUNDS
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds)).decode("utf-8")


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Not a bcrypt hash
        return False


def ensure_users_table(conn: sqlite3.Connection) -> None:
    """Create the users table, or patch in columns an older table lacks."""
    if not table_exists(conn, "users"):
        logger.info("Users table does not exist. Creating it...")
        conn.execute(USERS_TABLE_SQL)
        return

    columns = get_columns(conn, "users")
    for column, definition in USER_COLUMN_PATCHES.items():
        if column not in columns:
            logger.info(f"Adding {column} column to users table...")
            conn.execute(f"ALTER TABLE users ADD COLUMN {column} {definition}")


def ensure_default_users(db_path: Union[str, Path, None] = None, rounds: int = None) -> Dict:
    """Create ``admin`` and ``Jan`` when they are missing.

    Existing accounts are matched by exact username and never modified.

    Returns:
        Dict with the ``created`` and ``existing`` usernames
    """
    path = get_db_path(db_path)
    logger.info(f"Checking for default users in {path}")

    created = []
    existing = []

    with get_connection(path) as conn:
        ensure_users_table(conn)

        for username, password_var, is_admin in DEFAULT_ACCOUNTS:
            row = conn.execute("SELECT id FROM users WHERE username = ?", (username,)).fetchone()
            if row is not None:
                logger.info(f"User {username} already exists")
                existing.append(username)
                continue

            logger.info(f"Creating {username} user...")
            cursor = conn.execute(
                "INSERT OR IGNORE INTO users (username, password_hash, is_admin) VALUES (?, ?, ?)",
                (username, hash_password(Config.get(password_var), rounds), int(is_admin)),
            )
            if cursor.rowcount:
                created.append(username)
            else:
                existing.append(username)

        users = conn.execute("SELECT id, username, is_admin FROM users ORDER BY id").fetchall()

    for user in users:
        logger.debug(
            f"ID: {user['id']}, Username: {user['username']}, "
            f"Admin: {'Yes' if user['is_admin'] else 'No'}"
        )

    return {"status": "success", "created": created, "existing": existing}


def _clear_and_seed(conn: sqlite3.Connection, seeds: List[Tuple[str, str, int]]) -> List[str]:
    """Body of the reset transaction. Returns the tables that were cleared."""
    tables = {
        row[0]
        for row in conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name NOT LIKE 'sqlite_%'"
        )
    }
    logger.info(f"Found tables: {', '.join(sorted(tables))}")

    cleared = []
    for table in RESET_TABLES:
        if table not in tables:
            continue
        logger.info(f"Clearing table: {table}")
        conn.execute(f"DELETE FROM {table}")
        if table_exists(conn, "sqlite_sequence"):
            conn.execute("DELETE FROM sqlite_sequence WHERE name = ?", (table,))
        cleared.append(table)

    ensure_users_table(conn)

    for username, password_hash, is_admin in seeds:
        logger.info(f"Creating {username} user...")
        conn.execute(
            "INSERT INTO users (username, password_hash, is_admin) VALUES (?, ?, ?)",
            (username, password_hash, is_admin),
        )

    violations = conn.execute("PRAGMA foreign_key_check").fetchall()
    if violations:
        tables_hit = sorted({row[0] for row in violations})
        raise TransactionError(f"Foreign key violations after reset in: {', '.join(tables_hit)}")

    return cleared


def reset_and_reseed(db_path: Union[str, Path, None] = None, rounds: int = None) -> Dict:
    """Empty all user-related tables and recreate the default accounts.

    Runs as a single transaction with foreign keys off while clearing.
    Foreign key integrity is checked before commit. Any failure rolls back
    every table cleared so far.

    Raises:
        TransactionError: when the lock, the connection, clearing or seeding
            fails. Nothing is changed in that case.
    """
    path = get_db_path(db_path)
    if not path.exists():
        logger.warning(f"Database file not found at {path}, a new one will be created")

    # Hash before taking the lock to keep the exclusive window short
    seeds = [
        (username, hash_password(Config.get(password_var), rounds), int(is_admin))
        for username, password_var, is_admin in DEFAULT_ACCOUNTS
    ]

    lock = get_database_lock(path, Config.get("DB_LOCK_TIMEOUT"))

    try:
        with lock.exclusive("reset"):
            conn = create_connection(path)
            try:
                conn.isolation_level = None
                # foreign_keys is a no-op inside a transaction, so switch it first
                conn.execute("PRAGMA foreign_keys = OFF")
                conn.execute("BEGIN")
                try:
                    cleared = _clear_and_seed(conn, seeds)
                    conn.execute("COMMIT")
                except Exception:
                    if conn.in_transaction:
                        conn.execute("ROLLBACK")
                    raise
            finally:
                conn.close()
    except TransactionError as e:
        logger.error(f"Error resetting database {path}, rolled back: {e}")
        raise
    except Exception as e:
        # Lock timeouts and unreadable files land here as well
        logger.error(f"Error resetting database {path}, rolled back: {e}")
        raise TransactionError(f"Reset failed, no changes were kept: {e}") from e

    logger.info(f"Database reset complete, cleared {len(cleared)} tables")
    return {
        "status": "success",
        "cleared_tables": cleared,
        "created": [username for username, _, _ in DEFAULT_ACCOUNTS],
    }
