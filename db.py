"""
Centralized Database Access Module

Single entry point for connections to the GrowGuide SQLite database.

Features:
    - Scoped connections with commit on success, rollback on error
    - Shared database lock held for the connection's lifetime, so lifecycle
      operations (backup, restore, upload, reset) never copy a file that is
      being written
    - Pragmas applied on every connection
    - Schema creation for all application tables

Usage:
    from db import get_connection, init_database

    init_database()
    with get_connection() as conn:
        conn.execute("SELECT * FROM plants WHERE user_id = ?", (1,))
"""

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import List, Union

from config.env_config import Config, get_db_path as _configured_db_path
from file_lock_manager import get_database_lock

logger = logging.getLogger(__name__)

DB_CONFIG = {
    "timeout": 30.0,
    "pragmas": {
        # Rollback journal keeps every committed page in the main file,
        # which the byte-for-byte backup relies on.
        "journal_mode": "DELETE",
        "busy_timeout": 30000,
        "synchronous": "NORMAL",
        "foreign_keys": "ON",
    },
}

SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    username TEXT UNIQUE NOT NULL,
    password_hash TEXT,
    email TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    is_admin INTEGER DEFAULT 0,
    onboarding_completed INTEGER DEFAULT 0
);

CREATE TABLE IF NOT EXISTS strains (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    type TEXT NOT NULL,
    thc TEXT NOT NULL,
    cbd TEXT NOT NULL,
    flowering_time INTEGER,
    description TEXT,
    effects TEXT
);

CREATE TABLE IF NOT EXISTS user_strains (
    user_id INTEGER,
    strain_id INTEGER,
    selected_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE,
    FOREIGN KEY(strain_id) REFERENCES strains(id) ON DELETE CASCADE,
    PRIMARY KEY(user_id, strain_id)
);

CREATE TABLE IF NOT EXISTS plants (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER,
    strain_id INTEGER,
    name TEXT,
    breeder TEXT,
    status TEXT DEFAULT 'active',
    start_date DATE,
    FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE,
    FOREIGN KEY(strain_id) REFERENCES strains(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS plant_days (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    plant_id INTEGER NOT NULL,
    date DATE NOT NULL,
    day_number INTEGER,
    watered INTEGER DEFAULT 0,
    topped INTEGER DEFAULT 0,
    water_amount REAL,
    temperature REAL,
    humidity REAL,
    notes TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY(plant_id) REFERENCES plants(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS plant_setups (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    name TEXT NOT NULL,
    description TEXT,
    phase TEXT DEFAULT 'vegetation',
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS plant_setup_mappings (
    setup_id INTEGER NOT NULL,
    plant_id INTEGER NOT NULL,
    PRIMARY KEY(setup_id, plant_id),
    FOREIGN KEY(setup_id) REFERENCES plant_setups(id) ON DELETE CASCADE,
    FOREIGN KEY(plant_id) REFERENCES plants(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS setup_day_entries (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    setup_id INTEGER NOT NULL,
    date DATE NOT NULL,
    watered INTEGER DEFAULT 0,
    topped INTEGER DEFAULT 0,
    water_amount REAL,
    temperature REAL,
    humidity REAL,
    notes TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY(setup_id) REFERENCES plant_setups(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS fertilizer_usage (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    plant_day_id INTEGER,
    setup_day_id INTEGER,
    fertilizer_name TEXT NOT NULL,
    amount TEXT,
    FOREIGN KEY(plant_day_id) REFERENCES plant_days(id) ON DELETE CASCADE,
    FOREIGN KEY(setup_day_id) REFERENCES setup_day_entries(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS harvests (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    plant_id INTEGER NOT NULL,
    consumption_material TEXT,
    consumption_method TEXT,
    description TEXT,
    bud_density TEXT,
    trichome_color TEXT,
    curing_begin DATE,
    curing_end DATE,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY(plant_id) REFERENCES plants(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS help_requests (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER,
    name TEXT,
    email TEXT,
    subject TEXT,
    message TEXT NOT NULL,
    image_paths TEXT,
    status TEXT DEFAULT 'open',
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE SET NULL
);

CREATE TABLE IF NOT EXISTS feedback (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER,
    username TEXT NOT NULL,
    message TEXT NOT NULL,
    route TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE SET NULL
);
"""


def get_db_path(db_path: Union[str, Path, None] = None) -> Path:
    """Resolve an explicit path or fall back to the configured one."""
    if db_path is not None:
        return Path(db_path)
    return _configured_db_path()


def _apply_pragmas(conn: sqlite3.Connection) -> None:
    for pragma, value in DB_CONFIG["pragmas"].items():
        conn.execute(f"PRAGMA {pragma}={value}")


def create_connection(db_path: Union[str, Path], timeout: float = None) -> sqlite3.Connection:
    """Open a connection with row factory and pragmas, without any locking."""
    if timeout is None:
        timeout = DB_CONFIG["timeout"]

    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(db_path), timeout=timeout)
    conn.row_factory = sqlite3.Row
    _apply_pragmas(conn)
    return conn


@contextmanager
def get_connection(db_path: Union[str, Path, None] = None, timeout: float = None):
    """
    Get a database connection as a context manager.

    Holds the shared database lock until the block exits. Commits when the
    block succeeds, rolls back when it raises.

    Example:
        with get_connection() as conn:
            rows = conn.execute("SELECT * FROM strains").fetchall()
    """
    path = get_db_path(db_path)
    lock = get_database_lock(path, Config.get("DB_LOCK_TIMEOUT"))

    with lock.shared():
        conn = create_connection(path, timeout)
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()


def table_exists(conn: sqlite3.Connection, table: str) -> bool:
    row = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name = ?", (table,)
    ).fetchone()
    return row is not None


def get_columns(conn: sqlite3.Connection, table: str) -> List[str]:
    return [row[1] for row in conn.execute(f"PRAGMA table_info({table})").fetchall()]


def init_database(db_path: Union[str, Path, None] = None) -> Path:
    """Create all application tables that do not exist yet."""
    path = get_db_path(db_path)
    with get_connection(path) as conn:
        conn.executescript(SCHEMA)
    logger.info(f"Database schema ready at {path}")
    return path
