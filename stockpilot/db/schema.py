"""Database schema definitions and migration helpers."""

from __future__ import annotations

import sqlite3
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from ..errors import PersistenceError

_SCHEMA_VERSION = 1

_DDL = """
CREATE TABLE IF NOT EXISTS categories (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT
);

CREATE TABLE IF NOT EXISTS suppliers (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    email TEXT,
    phone TEXT,
    address TEXT,
    created_at TEXT NOT NULL DEFAULT (datetime('now', 'localtime'))
);

CREATE TABLE IF NOT EXISTS products (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT,
    sku TEXT UNIQUE,
    category_id TEXT REFERENCES categories(id),
    supplier_id TEXT REFERENCES suppliers(id),
    unit_price REAL NOT NULL DEFAULT 0.0,
    quantity INTEGER NOT NULL DEFAULT 0,
    min_stock INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL DEFAULT (datetime('now', 'localtime'))
);

CREATE INDEX IF NOT EXISTS idx_products_name ON products(name);

CREATE TABLE IF NOT EXISTS purchases (
    id TEXT PRIMARY KEY,
    purchase_number TEXT NOT NULL UNIQUE,
    supplier_id TEXT NOT NULL REFERENCES suppliers(id),
    total_amount REAL NOT NULL,
    tax_amount REAL NOT NULL DEFAULT 0.0,
    status TEXT NOT NULL DEFAULT 'pending',
    purchase_date TEXT,
    notes TEXT,
    created_at TEXT NOT NULL DEFAULT (datetime('now', 'localtime'))
);

CREATE TABLE IF NOT EXISTS purchase_items (
    id TEXT PRIMARY KEY,
    purchase_id TEXT NOT NULL REFERENCES purchases(id) ON DELETE CASCADE,
    product_id TEXT NOT NULL REFERENCES products(id),
    quantity INTEGER NOT NULL,
    unit_price REAL NOT NULL,
    total_price REAL NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_purchase_items_purchase ON purchase_items(purchase_id);

CREATE TABLE IF NOT EXISTS ai_documents (
    id TEXT PRIMARY KEY,
    filename TEXT NOT NULL,
    mime_type TEXT,
    original_data TEXT,
    extracted_data TEXT,
    status TEXT NOT NULL DEFAULT 'processing',
    document_type TEXT,
    amount REAL,
    vendor TEXT,
    category TEXT,
    description TEXT,
    document_date TEXT,
    confidence REAL,
    created_at TEXT NOT NULL DEFAULT (datetime('now', 'localtime'))
);

CREATE INDEX IF NOT EXISTS idx_ai_documents_status ON ai_documents(status);

CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER NOT NULL
);
"""

DEFAULT_CATEGORIES: list[tuple[str, str]] = [
    ("Office Supplies", "Office equipment and supplies"),
    ("Travel", "Business travel expenses"),
    ("Meals & Entertainment", "Business meals and entertainment"),
    ("Equipment", "Business equipment purchases"),
    ("Software", "Software licenses and subscriptions"),
]


def new_id() -> str:
    return str(uuid.uuid4())


def name_key(name: str) -> str:
    """Comparison key for case-insensitive exact name matching."""
    return name.strip().casefold()


def _casefold(value: str | None) -> str | None:
    return name_key(value) if value is not None else None


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run a block inside ``BEGIN IMMEDIATE``; store errors become PersistenceError."""
    try:
        conn.execute("BEGIN IMMEDIATE")
    except sqlite3.Error as e:
        raise PersistenceError(f"Could not start transaction: {e}") from e
    try:
        yield conn
    except sqlite3.Error as e:
        conn.rollback()
        raise PersistenceError(str(e)) from e
    except BaseException:
        conn.rollback()
        raise
    else:
        conn.commit()


def ensure_schema(db_path: str | Path) -> sqlite3.Connection:
    """Open (or create) the database and ensure the schema is up to date.

    The connection runs in autocommit mode; multi-statement writes open
    their own ``BEGIN IMMEDIATE`` transaction.

    Args:
        db_path: Path to the SQLite database file, or ``":memory:"``.

    Returns:
        An open sqlite3.Connection with the schema applied.
    """
    if str(db_path) != ":memory:":
        db_path = Path(db_path).expanduser()
        db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(db_path), isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.execute("PRAGMA busy_timeout=5000")
    conn.create_function("name_key", 1, _casefold, deterministic=True)

    # Check current schema version
    try:
        row = conn.execute("SELECT version FROM schema_version").fetchone()
        current_version = row["version"] if row else 0
    except sqlite3.OperationalError:
        current_version = 0

    if current_version < _SCHEMA_VERSION:
        conn.executescript(_DDL)
        conn.execute("BEGIN IMMEDIATE")
        if current_version == 0:
            conn.executemany(
                "INSERT INTO categories (id, name, description) VALUES (?, ?, ?)",
                [(new_id(), name, desc) for name, desc in DEFAULT_CATEGORIES],
            )
        conn.execute("DELETE FROM schema_version")
        conn.execute(
            "INSERT INTO schema_version (version) VALUES (?)",
            (_SCHEMA_VERSION,),
        )
        conn.commit()

    return conn
