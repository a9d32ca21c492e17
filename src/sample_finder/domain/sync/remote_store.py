"""
Remote store for cloud sync.

Table-like collections (profiles, assets, palettes, palette_items, receipts,
subscriptions) over SQLite or PostgreSQL. The URL decides the backend:

- ``postgres://`` / ``postgresql://`` -> PostgreSQL via psycopg2
- ``sqlite:///relative.db``, ``sqlite:////abs/path.db`` or a bare path -> SQLite

The dedup keys used by reconciliation are enforced as UNIQUE constraints.
Blocking database calls run in a worker thread so callers can await them.
"""

import asyncio
import json
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Protocol, Sequence, Tuple

from loguru import logger

from ..library.models import new_id


class RemoteStoreError(Exception):
    """A statement against the remote store failed."""

    pass


TABLE_COLUMNS: Dict[str, Tuple[str, ...]] = {
    "profiles": ("id", "email", "created_at"),
    "assets": (
        "id",
        "user_id",
        "title",
        "original_filename",
        "content_hash",
        "duration_ms",
        "rms",
        "spectral_centroid",
        "descriptor",
        "embedding",
        "tags",
        "created_at",
    ),
    "palettes": ("id", "user_id", "name", "notes", "created_at"),
    "palette_items": ("id", "palette_id", "asset_id", "position"),
    "receipts": (
        "id",
        "user_id",
        "asset_id",
        "source_url",
        "notes",
        "license_flags",
        "created_at",
    ),
    "subscriptions": (
        "id",
        "user_id",
        "stripe_customer_id",
        "stripe_subscription_id",
        "status",
        "price_id",
        "current_period_end",
        "cancel_at_period_end",
        "updated_at",
    ),
}

JSON_COLUMNS = {"embedding", "tags", "license_flags"}
BOOL_COLUMNS = {"cancel_at_period_end"}

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS profiles (
        id TEXT PRIMARY KEY,
        email TEXT,
        created_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS assets (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        title TEXT,
        original_filename TEXT,
        content_hash TEXT NOT NULL,
        duration_ms INTEGER DEFAULT 0,
        rms DOUBLE PRECISION DEFAULT 0,
        spectral_centroid DOUBLE PRECISION,
        descriptor TEXT,
        embedding TEXT, -- JSON array
        tags TEXT, -- JSON array
        created_at TEXT,
        UNIQUE (user_id, content_hash)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS palettes (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        name TEXT NOT NULL,
        notes TEXT,
        created_at TEXT,
        UNIQUE (user_id, name)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS palette_items (
        id TEXT PRIMARY KEY,
        palette_id TEXT NOT NULL REFERENCES palettes (id) ON DELETE CASCADE,
        asset_id TEXT NOT NULL REFERENCES assets (id) ON DELETE CASCADE,
        position INTEGER NOT NULL,
        UNIQUE (palette_id, asset_id)
    )
    """,
    # No unique (user_id, asset_id): one receipt per asset is expected, not enforced
    """
    CREATE TABLE IF NOT EXISTS receipts (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        asset_id TEXT NOT NULL REFERENCES assets (id) ON DELETE CASCADE,
        source_url TEXT,
        notes TEXT,
        license_flags TEXT, -- JSON object
        created_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS subscriptions (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL UNIQUE,
        stripe_customer_id TEXT,
        stripe_subscription_id TEXT,
        status TEXT,
        price_id TEXT,
        current_period_end TEXT,
        cancel_at_period_end INTEGER DEFAULT 0,
        updated_at TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_receipts_user_asset ON receipts (user_id, asset_id)",
    "CREATE INDEX IF NOT EXISTS idx_palette_items_palette ON palette_items (palette_id, position)",
]


def is_postgres_url(url: str) -> bool:
    return url.startswith(("postgres://", "postgresql://"))


def sqlite_path_from_url(url: str) -> Path:
    """'sqlite:///data/remote.db' -> Path('data/remote.db'); bare paths pass through."""
    if url.startswith("sqlite:///"):
        url = url[len("sqlite:///"):]
    elif url.startswith("sqlite://"):
        raise ValueError(f"Unsupported SQLite URL (expected sqlite:///path): {url}")
    return Path(url).expanduser()


def _encode(column: str, value: Any) -> Any:
    if column in JSON_COLUMNS and value is not None:
        return json.dumps(value)
    if column in BOOL_COLUMNS and value is not None:
        return int(bool(value))
    return value


def _decode_row(row: Dict[str, Any]) -> Dict[str, Any]:
    decoded = {}
    for column, value in row.items():
        if column in JSON_COLUMNS and isinstance(value, str):
            value = json.loads(value)
        elif column in BOOL_COLUMNS and value is not None:
            value = bool(value)
        decoded[column] = value
    return decoded


class RemoteTable:
    """One collection of the remote store. All methods are awaitable."""

    def __init__(self, store: "SQLRemoteStore", name: str) -> None:
        if name not in TABLE_COLUMNS:
            raise ValueError(f"Unknown table: {name}")
        self.store = store
        self.name = name
        self.columns = TABLE_COLUMNS[name]

    def _check_columns(self, names: Sequence[str]) -> None:
        unknown = [n for n in names if n not in self.columns]
        if unknown:
            raise ValueError(f"Unknown column(s) for {self.name}: {unknown}")

    def _where(self, filters: Dict[str, Any]) -> Tuple[str, Tuple[Any, ...]]:
        if not filters:
            return "", ()
        self._check_columns(list(filters))
        clause = " AND ".join(f"{column} = ?" for column in filters)
        params = tuple(_encode(c, v) for c, v in filters.items())
        return f" WHERE {clause}", params

    async def select(self, **filters: Any) -> List[Dict[str, Any]]:
        where, params = self._where(filters)
        rows, _ = await self.store.run(f"SELECT * FROM {self.name}{where}", params)
        return [_decode_row(row) for row in rows]

    async def find_one(self, **filters: Any) -> Optional[Dict[str, Any]]:
        where, params = self._where(filters)
        rows, _ = await self.store.run(
            f"SELECT * FROM {self.name}{where} LIMIT 1", params
        )
        return _decode_row(rows[0]) if rows else None

    async def count(self, **filters: Any) -> int:
        where, params = self._where(filters)
        rows, _ = await self.store.run(
            f"SELECT COUNT(*) AS n FROM {self.name}{where}", params
        )
        return int(rows[0]["n"])

    async def insert(self, row: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a row, issuing an id when none is given. Returns the stored row."""
        row = dict(row)
        row.setdefault("id", new_id())
        self._check_columns(list(row))

        columns = ", ".join(row)
        placeholders = ", ".join("?" for _ in row)
        params = tuple(_encode(c, v) for c, v in row.items())
        await self.store.run(
            f"INSERT INTO {self.name} ({columns}) VALUES ({placeholders})", params
        )
        return row

    async def update(self, values: Dict[str, Any], **filters: Any) -> int:
        """Update matching rows. Returns the number of rows changed."""
        if not filters:
            raise ValueError("update() requires at least one filter")
        self._check_columns(list(values))
        assignments = ", ".join(f"{column} = ?" for column in values)
        where, where_params = self._where(filters)
        params = tuple(_encode(c, v) for c, v in values.items()) + where_params
        _, rowcount = await self.store.run(
            f"UPDATE {self.name} SET {assignments}{where}", params
        )
        return rowcount

    async def upsert(
        self,
        row: Dict[str, Any],
        on_conflict: Sequence[str],
        update_columns: Optional[Sequence[str]] = None,
    ) -> None:
        """Insert, or overwrite columns of the row matching ``on_conflict``.

        Args:
            row: Column values to insert
            on_conflict: Unique key columns
            update_columns: Columns overwritten on conflict; defaults to every
                non-key column of ``row``. Empty means the existing row is kept.
        """
        row = dict(row)
        row.setdefault("id", new_id())
        if update_columns is None:
            updates = [c for c in row if c != "id" and c not in on_conflict]
        else:
            updates = list(update_columns)
            unknown = [c for c in updates if c not in row]
            if unknown:
                raise ValueError(f"update_columns not in row: {unknown}")
        self._check_columns(list(row) + list(on_conflict))

        columns = ", ".join(row)
        placeholders = ", ".join("?" for _ in row)
        if updates:
            action = "DO UPDATE SET " + ", ".join(f"{c} = excluded.{c}" for c in updates)
        else:
            action = "DO NOTHING"
        params = tuple(_encode(c, v) for c, v in row.items())
        await self.store.run(
            f"INSERT INTO {self.name} ({columns}) VALUES ({placeholders}) "
            f"ON CONFLICT ({', '.join(on_conflict)}) {action}",
            params,
        )


class RemoteStore(Protocol):
    """Handle used by reconciliation and billing."""

    def table(self, name: str) -> RemoteTable: ...


class SQLRemoteStore:
    """SQLite/PostgreSQL implementation of the remote store."""

    def __init__(self, database_url: str) -> None:
        if not database_url:
            raise ValueError("database_url is required")
        self.database_url = database_url
        self.postgres = is_postgres_url(database_url)
        self.sqlite_path = None if self.postgres else sqlite_path_from_url(database_url)
        self._tables: Dict[str, RemoteTable] = {}

    @contextmanager
    def _connect(self) -> Iterator[Any]:
        if self.postgres:
            import psycopg2

            try:
                conn = psycopg2.connect(self.database_url)
            except psycopg2.Error as e:
                raise RemoteStoreError(f"Could not connect to PostgreSQL: {e}") from e
            errors: Tuple[type, ...] = (psycopg2.Error,)
        else:
            self.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self.sqlite_path, timeout=30.0)
            conn.execute("PRAGMA foreign_keys = ON")
            errors = (sqlite3.Error,)

        try:
            yield conn
            conn.commit()
        except errors as e:
            conn.rollback()
            raise RemoteStoreError(str(e)) from e
        finally:
            conn.close()

    def _sql(self, query: str) -> str:
        # psycopg2 uses %s placeholders
        return query.replace("?", "%s") if self.postgres else query

    def execute(
        self, query: str, params: Tuple[Any, ...] = ()
    ) -> Tuple[List[Dict[str, Any]], int]:
        """Run one statement. Returns (rows as dicts, rowcount)."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(self._sql(query), params)
            rows: List[Dict[str, Any]] = []
            if cursor.description:
                columns = [desc[0] for desc in cursor.description]
                rows = [dict(zip(columns, row)) for row in cursor.fetchall()]
            rowcount = cursor.rowcount
            cursor.close()
            return rows, rowcount

    async def run(
        self, query: str, params: Tuple[Any, ...] = ()
    ) -> Tuple[List[Dict[str, Any]], int]:
        return await asyncio.to_thread(self.execute, query, params)

    def init_schema(self) -> None:
        """Create tables and indexes if they do not exist."""
        with self._connect() as conn:
            cursor = conn.cursor()
            for statement in SCHEMA:
                cursor.execute(statement)
            cursor.close()
        logger.info(
            f"Remote store schema ready ({'postgresql' if self.postgres else self.sqlite_path})"
        )

    def table(self, name: str) -> RemoteTable:
        if name not in self._tables:
            self._tables[name] = RemoteTable(self, name)
        return self._tables[name]


def open_remote_store(database_url: str) -> SQLRemoteStore:
    """Create the store for ``database_url`` and make sure its schema exists."""
    store = SQLRemoteStore(database_url)
    store.init_schema()
    return store
