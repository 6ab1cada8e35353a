from __future__ import annotations

import os
import sqlite3
from typing import Any

from .errors import StoreWriteFailure
from .models import CHARACTER_FIELDS, NUMBER_FIELDS, CharacterRecord


def _resolve_db_path(db_path: str) -> str:
    """Return a file path usable by sqlite.

    If a bind-mounted *file* path does not exist, Docker creates a *directory*
    at that location. In that case the DB file is placed inside it.
    """
    if db_path == ":memory:":
        return db_path

    p = os.path.abspath(db_path)
    if os.path.isdir(p):
        p = os.path.join(p, "blizbase.db")

    parent = os.path.dirname(p)
    if parent and not os.path.exists(parent):
        os.makedirs(parent, exist_ok=True)

    return p


def _column_sql(name: str) -> str:
    if name in NUMBER_FIELDS:
        return f"{name} REAL NOT NULL DEFAULT 0"
    return f"{name} TEXT NOT NULL DEFAULT ''"


def _row_to_record(row: sqlite3.Row) -> CharacterRecord:
    data: dict[str, Any] = {"id": str(row["id"])}
    for name in CHARACTER_FIELDS:
        value = row[name]
        if name in NUMBER_FIELDS:
            data[name] = value if isinstance(value, (int, float)) else 0
        else:
            data[name] = "" if value is None else str(value)
    return CharacterRecord(**data)


class CharacterStore:
    """SQLite-backed ``characters`` collection keyed by Battle.net character id."""

    def __init__(self, db_path: str):
        self.db_path = _resolve_db_path(db_path)
        self._memory_conn: sqlite3.Connection | None = None
        if self.db_path == ":memory:":
            # A fresh :memory: connection is a fresh database; keep one around.
            self._memory_conn = sqlite3.connect(":memory:", check_same_thread=False)
            self._memory_conn.row_factory = sqlite3.Row

    def connect(self) -> sqlite3.Connection:
        if self._memory_conn is not None:
            return self._memory_conn
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Create the table if it does not exist and add any missing columns."""
        columns = ",\n              ".join(_column_sql(n) for n in CHARACTER_FIELDS)
        with self.connect() as conn:
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS characters (
                  id TEXT PRIMARY KEY CHECK (id <> '' AND id NOT GLOB '*[^0-9]*'),
                  {columns}
                )
                """
            )
            existing = {r["name"] for r in conn.execute("PRAGMA table_info(characters)").fetchall()}
            for name in CHARACTER_FIELDS:
                if name not in existing:
                    conn.execute(f"ALTER TABLE characters ADD COLUMN {_column_sql(name)}")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_characters_name ON characters(name)")

    def list_all(self) -> list[CharacterRecord]:
        with self.connect() as conn:
            rows = conn.execute("SELECT * FROM characters ORDER BY name, id").fetchall()
            return [_row_to_record(r) for r in rows]

    def get(self, record_id: str) -> CharacterRecord | None:
        with self.connect() as conn:
            row = conn.execute("SELECT * FROM characters WHERE id=?", (record_id,)).fetchone()
            return _row_to_record(row) if row else None

    def count(self) -> int:
        with self.connect() as conn:
            return int(conn.execute("SELECT COUNT(*) FROM characters").fetchone()[0])

    def save(self, record: CharacterRecord) -> None:
        """Create or fully overwrite the record."""
        names = ("id",) + CHARACTER_FIELDS
        placeholders = ", ".join("?" for _ in names)
        updates = ",\n                  ".join(f"{n}=excluded.{n}" for n in CHARACTER_FIELDS)
        values = tuple(getattr(record, n) for n in names)
        try:
            with self.connect() as conn:
                conn.execute(
                    f"""
                    INSERT INTO characters ({", ".join(names)})
                    VALUES ({placeholders})
                    ON CONFLICT(id) DO UPDATE SET
                      {updates}
                    """,
                    values,
                )
        except sqlite3.Error as e:
            raise StoreWriteFailure(f"Saving character {record.id} failed: {e}") from e

    def delete(self, record_id: str) -> None:
        try:
            with self.connect() as conn:
                conn.execute("DELETE FROM characters WHERE id=?", (record_id,))
        except sqlite3.Error as e:
            raise StoreWriteFailure(f"Deleting character {record_id} failed: {e}") from e
