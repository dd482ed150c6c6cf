"""
Taxonomy storage backend (SQLite).

Provides ordered list fetches, single-record lookups and the few mutations
the admin area and the Markdown importer need. Failures surface as
StoreError so callers can render the message instead of crashing the page.
"""
import sqlite3
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Dict, Any

from .schema import ENTITIES, EntityType, Record

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Raised when the datastore cannot satisfy a query or mutation."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class RecordNotFound(StoreError):
    """Raised when a mutation targets a row that does not exist."""
    pass


def _connect(db_path: str) -> sqlite3.Connection:
    """Open a connection with FK enforcement and WAL mode."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute("PRAGMA journal_mode = WAL")
    return conn


def utc_now() -> str:
    """ISO-8601 UTC timestamp."""
    return datetime.now(timezone.utc).isoformat()


def _entity(table: str) -> EntityType:
    entity = ENTITIES.get(table)
    if entity is None:
        raise StoreError(f"Unknown table: {table}")
    return entity


def _check_column(entity: EntityType, column: str) -> str:
    # Column names are interpolated into SQL, so only schema fields pass
    if column not in entity.record.columns():
        raise StoreError(f"Unknown column {column!r} for table {entity.table}")
    return column


_TABLES = {
    "ideas": """
        CREATE TABLE IF NOT EXISTS ideas (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            idea_number INTEGER NOT NULL UNIQUE,
            title TEXT NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            status TEXT NOT NULL DEFAULT 'planned',
            created TEXT NOT NULL DEFAULT '',
            tags TEXT,  -- JSON list
            body TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """,
    "stories": """
        CREATE TABLE IF NOT EXISTS stories (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            story_number INTEGER NOT NULL UNIQUE,
            title TEXT NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            status TEXT NOT NULL DEFAULT 'backlog',
            priority TEXT NOT NULL DEFAULT 'medium',
            created TEXT NOT NULL DEFAULT '',
            body TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """,
    "sprints": """
        CREATE TABLE IF NOT EXISTS sprints (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            sprint_id TEXT NOT NULL UNIQUE,
            year INTEGER NOT NULL DEFAULT 0,
            sprint_number INTEGER NOT NULL DEFAULT 0,
            start_date TEXT NOT NULL DEFAULT '',
            end_date TEXT NOT NULL DEFAULT '',
            status TEXT NOT NULL DEFAULT 'planned',
            goals TEXT,  -- JSON list
            body TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """,
    "updates": """
        CREATE TABLE IF NOT EXISTS updates (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            notation TEXT NOT NULL UNIQUE,
            sprint_id TEXT NOT NULL DEFAULT '',
            idea_number INTEGER NOT NULL DEFAULT 0,
            story_number INTEGER NOT NULL DEFAULT 0,
            date TEXT NOT NULL DEFAULT '',
            type TEXT NOT NULL DEFAULT 'note',
            body TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """,
    "figures": """
        CREATE TABLE IF NOT EXISTS figures (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            figure_number INTEGER NOT NULL UNIQUE,
            title TEXT NOT NULL,
            image_path TEXT NOT NULL DEFAULT '',
            description TEXT,
            alt_text TEXT,
            created TEXT NOT NULL DEFAULT '',
            uploaded_date TEXT,
            file_type TEXT,
            status TEXT NOT NULL DEFAULT 'active',
            tags TEXT,  -- JSON list
            dimensions TEXT,
            file_size TEXT,
            body TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """,
    "materials": """
        CREATE TABLE IF NOT EXISTS materials (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            slug TEXT NOT NULL UNIQUE,
            title TEXT NOT NULL,
            date TEXT NOT NULL DEFAULT '',
            author TEXT,
            tags TEXT,  -- JSON list
            excerpt TEXT,
            canonical_source_url TEXT,
            body TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """,
}


class TaxonomyStore:
    """SQLite-backed store for taxonomy records."""

    def __init__(self, db_path: str = None):
        """Initialize store and create tables if needed."""
        if db_path is None:
            db_path = str(Path.home() / ".local" / "share" / "taxonomy" / "taxonomy.db")
        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _init_schema(self):
        """Create tables if they don't exist."""
        with _connect(self.db_path) as conn:
            for ddl in _TABLES.values():
                conn.execute(ddl)
            self._migrate_columns(conn)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_updates_date ON updates(date)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_materials_date ON materials(date)")
            conn.commit()

    def _migrate_columns(self, conn):
        """Add columns introduced after the first schema (ignored if present)."""
        new_columns = [
            ("figures", "dimensions", "TEXT"),
            ("figures", "file_size", "TEXT"),
            ("materials", "canonical_source_url", "TEXT"),
        ]
        for table, col_name, col_type in new_columns:
            existing = {r["name"] for r in conn.execute(f"PRAGMA table_info({table})")}
            if col_name not in existing:
                conn.execute(f"ALTER TABLE {table} ADD COLUMN {col_name} {col_type}")

    # ── Queries ──────────────────────────────────────────────────────────────

    def fetch(self, table: str, order_by: str = None, descending: bool = None) -> List[Record]:
        """
        Return every record of ``table`` ordered by ``order_by``.

        Defaults to the entity's own sort key and direction. Raises StoreError.
        """
        entity = _entity(table)
        column = _check_column(entity, order_by or entity.order_by)
        if descending is None:
            descending = entity.descending
        direction = "DESC" if descending else "ASC"
        try:
            with _connect(self.db_path) as conn:
                rows = conn.execute(
                    f"SELECT * FROM {entity.table} ORDER BY {column} {direction}, id {direction}"
                ).fetchall()
        except sqlite3.Error as e:
            logger.warning(f"fetch {table} failed: {e}")
            raise StoreError(str(e)) from e
        return [self._row_to_record(entity, row) for row in rows]

    def get(self, table: str, column: str, value) -> Optional[Record]:
        """Retrieve a single record where ``column = value``, or None."""
        entity = _entity(table)
        column = _check_column(entity, column)
        try:
            with _connect(self.db_path) as conn:
                row = conn.execute(
                    f"SELECT * FROM {entity.table} WHERE {column} = ? LIMIT 1",
                    (value,)
                ).fetchone()
        except sqlite3.Error as e:
            logger.warning(f"get {table}.{column}={value!r} failed: {e}")
            raise StoreError(str(e)) from e
        if not row:
            return None
        return self._row_to_record(entity, row)

    def get_by_key(self, table: str, key) -> Optional[Record]:
        """Retrieve a record by its display key (idea_number, slug, ...)."""
        entity = _entity(table)
        return self.get(table, entity.key_field, key)

    def count(self, table: str) -> int:
        entity = _entity(table)
        try:
            with _connect(self.db_path) as conn:
                return conn.execute(f"SELECT COUNT(*) FROM {entity.table}").fetchone()[0]
        except sqlite3.Error as e:
            raise StoreError(str(e)) from e

    # ── Mutations ────────────────────────────────────────────────────────────

    def save(self, record: Record) -> Record:
        """
        Insert a new record (id is None) or update an existing one by id.

        Returns the stored record, re-read from the database.
        """
        entity = self._entity_for(record)
        row = record.to_row()
        now = utc_now()
        row["updated_at"] = now
        try:
            with _connect(self.db_path) as conn:
                if record.id is None:
                    row["created_at"] = row.get("created_at") or now
                    cols = ", ".join(row)
                    marks = ", ".join("?" for _ in row)
                    cur = conn.execute(
                        f"INSERT INTO {entity.table} ({cols}) VALUES ({marks})",
                        tuple(row.values())
                    )
                    record_id = cur.lastrowid
                else:
                    row.pop("created_at", None)
                    assignments = ", ".join(f"{c} = ?" for c in row)
                    cur = conn.execute(
                        f"UPDATE {entity.table} SET {assignments} WHERE id = ?",
                        tuple(row.values()) + (record.id,)
                    )
                    if cur.rowcount == 0:
                        raise RecordNotFound(f"No {entity.name} with id {record.id}")
                    record_id = record.id
                conn.commit()
                stored = conn.execute(
                    f"SELECT * FROM {entity.table} WHERE id = ?", (record_id,)
                ).fetchone()
        except sqlite3.Error as e:
            logger.warning(f"save {entity.name} {record.display_key} failed: {e}")
            raise StoreError(str(e)) from e
        return self._row_to_record(entity, stored)

    def upsert(self, record: Record) -> Record:
        """Insert or update a record, matching on its display key."""
        entity = self._entity_for(record)
        row = record.to_row()
        now = utc_now()
        row["created_at"] = row.get("created_at") or now
        row["updated_at"] = now
        key = entity.key_field
        cols = ", ".join(row)
        marks = ", ".join("?" for _ in row)
        updates = ", ".join(
            f"{c} = excluded.{c}" for c in row if c not in (key, "created_at")
        )
        try:
            with _connect(self.db_path) as conn:
                conn.execute(
                    f"INSERT INTO {entity.table} ({cols}) VALUES ({marks}) "
                    f"ON CONFLICT({key}) DO UPDATE SET {updates}",
                    tuple(row.values())
                )
                conn.commit()
                stored = conn.execute(
                    f"SELECT * FROM {entity.table} WHERE {key} = ?", (row[key],)
                ).fetchone()
        except sqlite3.Error as e:
            logger.warning(f"upsert {entity.name} {record.display_key} failed: {e}")
            raise StoreError(str(e)) from e
        return self._row_to_record(entity, stored)

    def delete(self, table: str, record_id: int) -> None:
        """Delete one row by surrogate id. Raises RecordNotFound if absent."""
        entity = _entity(table)
        try:
            with _connect(self.db_path) as conn:
                cur = conn.execute(f"DELETE FROM {entity.table} WHERE id = ?", (record_id,))
                conn.commit()
        except sqlite3.Error as e:
            logger.warning(f"delete {table} id={record_id} failed: {e}")
            raise StoreError(str(e)) from e
        if cur.rowcount == 0:
            raise RecordNotFound(f"No {entity.name} with id {record_id}")
        logger.info(f"Deleted {entity.name} id={record_id}")

    def next_number(self, table: str) -> int:
        """Next free display number for numbered entities (ideas, stories, figures)."""
        entity = _entity(table)
        if not entity.key_is_int:
            raise StoreError(f"{table} has no numeric display key")
        try:
            with _connect(self.db_path) as conn:
                row = conn.execute(
                    f"SELECT MAX({entity.key_field}) FROM {entity.table}"
                ).fetchone()
        except sqlite3.Error as e:
            raise StoreError(str(e)) from e
        return (row[0] or 0) + 1

    # ── Helpers ──────────────────────────────────────────────────────────────

    def _entity_for(self, record: Record) -> EntityType:
        for entity in ENTITIES.values():
            if isinstance(record, entity.record):
                return entity
        raise StoreError(f"Unsupported record type: {type(record).__name__}")

    def _row_to_record(self, entity: EntityType, row: sqlite3.Row) -> Record:
        """Convert a database row to a typed record (JSON columns parsed in from_row)."""
        data: Dict[str, Any] = dict(row)
        return entity.record.from_row(data)
