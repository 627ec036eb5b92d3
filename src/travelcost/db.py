from __future__ import annotations

import sqlite3
from pathlib import Path


def connect_sqlite(path: str | Path = ":memory:") -> sqlite3.Connection:
    if str(path) != ":memory:":
        Path(path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def default_migration_path() -> Path:
    return Path(__file__).resolve().parent / "migrations" / "001_initial_schema.sql"


def apply_sqlite_migration(conn: sqlite3.Connection, migration_path: str | Path | None = None) -> None:
    sql = Path(migration_path or default_migration_path()).read_text(encoding="utf-8")
    conn.executescript(sql)
