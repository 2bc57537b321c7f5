import asyncio
import logging
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from wishkeeper.errors import PersistenceError
from wishkeeper.models import Collection, Container, Entry
from wishkeeper.store import (
    COLLECTION_COLUMNS,
    CONTAINER_COLUMNS,
    ENTRY_COLUMNS,
    RecordStore,
    check_columns,
)

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SqliteRecordStore(RecordStore):
    """Local single-file store with the same tables as the hosted backend.

    Each call opens its own connection and runs on a worker thread so the
    event loop is never blocked.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def init_schema(self) -> None:
        conn = self._get_conn()
        cursor = conn.cursor()
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS list_folders (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS wish_lists (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                is_christmas INTEGER NOT NULL DEFAULT 0,
                folder_id TEXT REFERENCES list_folders(id),
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS wish_items (
                id TEXT PRIMARY KEY,
                wish_list_id TEXT NOT NULL REFERENCES wish_lists(id) ON DELETE CASCADE,
                name TEXT NOT NULL,
                link TEXT,
                details TEXT,
                is_bought INTEGER NOT NULL DEFAULT 0,
                starred INTEGER NOT NULL DEFAULT 0,
                priority INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        conn.commit()
        conn.close()

    async def _run(self, operation: str, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except sqlite3.Error as exc:
            raise PersistenceError(operation, str(exc)) from exc

    def _select(self, sql: str, params: tuple = ()) -> list[dict[str, Any]]:
        conn = self._get_conn()
        try:
            rows = conn.execute(sql, params).fetchall()
        finally:
            conn.close()
        return [dict(row) for row in rows]

    def _insert(self, table: str, fields: dict[str, Any]) -> dict[str, Any]:
        now = _now()
        row = {"id": uuid.uuid4().hex, **fields, "created_at": now, "updated_at": now}
        columns = ", ".join(row)
        placeholders = ", ".join("?" for _ in row)
        conn = self._get_conn()
        try:
            conn.execute(
                f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
                tuple(row.values()),
            )
            conn.commit()
            stored = conn.execute(f"SELECT * FROM {table} WHERE id = ?", (row["id"],)).fetchone()
        finally:
            conn.close()
        return dict(stored)

    def _update(self, table: str, record_id: str, fields: dict[str, Any]) -> None:
        row = {**fields, "updated_at": _now()}
        assignments = ", ".join(f"{column} = ?" for column in row)
        conn = self._get_conn()
        try:
            conn.execute(
                f"UPDATE {table} SET {assignments} WHERE id = ?",
                (*row.values(), record_id),
            )
            conn.commit()
        finally:
            conn.close()

    def _delete(self, table: str, record_id: str) -> None:
        conn = self._get_conn()
        try:
            conn.execute(f"DELETE FROM {table} WHERE id = ?", (record_id,))
            conn.commit()
        finally:
            conn.close()

    async def list_containers(self) -> list[Container]:
        rows = await self._run(
            "list_containers",
            self._select,
            "SELECT * FROM list_folders ORDER BY created_at ASC, rowid ASC",
        )
        return [Container.from_dict(row) for row in rows]

    async def create_container(self, name: str) -> Container:
        row = await self._run("create_container", self._insert, "list_folders", {"name": name})
        logger.debug("created folder %s", row["id"])
        return Container.from_dict(row)

    async def update_container(self, container_id: str, fields: dict[str, Any]) -> None:
        check_columns(fields, CONTAINER_COLUMNS)
        await self._run("update_container", self._update, "list_folders", container_id, fields)

    async def delete_container(self, container_id: str) -> None:
        await self._run("delete_container", self._delete, "list_folders", container_id)

    async def list_collections(self) -> list[Collection]:
        rows = await self._run(
            "list_collections",
            self._select,
            "SELECT * FROM wish_lists ORDER BY created_at DESC, rowid DESC",
        )
        return [Collection.from_dict(row) for row in rows]

    async def create_collection(self, fields: dict[str, Any]) -> Collection:
        check_columns(fields, COLLECTION_COLUMNS)
        row = await self._run("create_collection", self._insert, "wish_lists", fields)
        logger.debug("created wish list %s", row["id"])
        return Collection.from_dict(row)

    async def update_collection(self, collection_id: str, fields: dict[str, Any]) -> None:
        check_columns(fields, COLLECTION_COLUMNS)
        await self._run("update_collection", self._update, "wish_lists", collection_id, fields)

    async def delete_collection(self, collection_id: str) -> None:
        await self._run("delete_collection", self._delete, "wish_lists", collection_id)

    async def list_entries(self, collection_id: str) -> list[Entry]:
        rows = await self._run(
            "list_entries",
            self._select,
            "SELECT * FROM wish_items WHERE wish_list_id = ? "
            "ORDER BY priority ASC, created_at ASC, rowid ASC",
            (collection_id,),
        )
        return [Entry.from_dict(row) for row in rows]

    async def create_entry(self, fields: dict[str, Any]) -> Entry:
        check_columns(fields, ENTRY_COLUMNS)
        row = await self._run("create_entry", self._insert, "wish_items", fields)
        logger.debug("created wish item %s", row["id"])
        return Entry.from_dict(row)

    async def update_entry(self, entry_id: str, fields: dict[str, Any]) -> None:
        check_columns(fields, ENTRY_COLUMNS)
        await self._run("update_entry", self._update, "wish_items", entry_id, fields)

    async def delete_entry(self, entry_id: str) -> None:
        await self._run("delete_entry", self._delete, "wish_items", entry_id)
