"""
db.py
SQLite helpers + initialization (creates DB/tables, app settings flags)
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path

from errors import BackendError

logger = logging.getLogger(__name__)

DB_FILE = Path(__file__).with_name("membership.db")


def configure(db_file: Path | str) -> None:
    global DB_FILE
    DB_FILE = Path(db_file)


def _lower(value):
    # Unicode-aware; SQLite's own lower() and LIKE only fold ASCII
    return value.lower() if isinstance(value, str) else value


@contextmanager
def get_conn():
    try:
        conn = sqlite3.connect(DB_FILE, check_same_thread=False)
    except sqlite3.Error as e:
        raise BackendError(f"Could not open database {DB_FILE}: {e}") from e
    conn.row_factory = sqlite3.Row
    conn.create_function("py_lower", 1, _lower, deterministic=True)
    try:
        conn.execute("PRAGMA foreign_keys = ON")
        yield conn
        conn.commit()
    except sqlite3.Error as e:
        conn.rollback()
        logger.error("Database error: %s", e)
        raise BackendError(str(e)) from e
    finally:
        conn.close()


def execute(sql: str, params: tuple = ()) -> int:
    """Returns the number of rows touched."""
    with get_conn() as conn:
        cur = conn.execute(sql, params)
        return cur.rowcount


def fetch_one(sql: str, params: tuple = ()):
    with get_conn() as conn:
        cur = conn.execute(sql, params)
        return cur.fetchone()


def fetch_all(sql: str, params: tuple = ()) -> list[sqlite3.Row]:
    with get_conn() as conn:
        cur = conn.execute(sql, params)
        return cur.fetchall()


def _create_tables() -> None:
    execute(
        """
        CREATE TABLE IF NOT EXISTS users (
            id TEXT PRIMARY KEY,
            email TEXT NOT NULL UNIQUE,
            full_name TEXT,
            role TEXT NOT NULL CHECK(role IN ('staff','admin')),
            password_hash TEXT NOT NULL,
            created_at TEXT NOT NULL
        )
        """
    )

    execute(
        """
        CREATE TABLE IF NOT EXISTS sessions (
            token TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            expires_at TEXT NOT NULL,
            FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
        )
        """
    )

    execute(
        """
        CREATE TABLE IF NOT EXISTS customers (
            id TEXT PRIMARY KEY,
            first_name TEXT NOT NULL,
            last_name TEXT NOT NULL,
            email TEXT NOT NULL,
            phone TEXT,
            membership_type TEXT NOT NULL CHECK(membership_type IN ('prestige','premier')),
            membership_number TEXT NOT NULL,
            expiry_date TEXT NOT NULL,
            created_at TEXT NOT NULL,
            visits INTEGER NOT NULL DEFAULT 0 CHECK(visits >= 0)
        )
        """
    )

    execute("CREATE INDEX IF NOT EXISTS idx_customers_created_at ON customers(created_at)")
    execute("CREATE INDEX IF NOT EXISTS idx_customers_membership_number ON customers(membership_number)")

    # Small settings table (used to force password change on first login)
    execute(
        """
        CREATE TABLE IF NOT EXISTS app_settings (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        )
        """
    )


def get_setting(key: str, default: str | None = None) -> str | None:
    row = fetch_one("SELECT value FROM app_settings WHERE key = ?", (key,))
    if row:
        return str(row["value"])
    return default


def set_setting(key: str, value: str) -> None:
    execute(
        """
        INSERT INTO app_settings(key, value) VALUES(?, ?)
        ON CONFLICT(key) DO UPDATE SET value=excluded.value
        """,
        (key, value),
    )


def init_db() -> None:
    """
    Create tables if missing. Safe to call on every start.
    """
    DB_FILE.parent.mkdir(parents=True, exist_ok=True)
    _create_tables()
    if get_setting("force_password_change") is None:
        set_setting("force_password_change", "0")


def is_force_password_change() -> bool:
    return get_setting("force_password_change") == "1"


def clear_force_password_change() -> None:
    set_setting("force_password_change", "0")
