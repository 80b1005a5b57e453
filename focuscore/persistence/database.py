"""
SQLite record store.

Provides async database initialization and a RecordStore backed by a
local SQLite file. Uses aiosqlite for async SQLite access.

Schema is defined in schema.sql (consolidated, no migrations).
"""

import json
import re
import uuid
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, List, Optional

import aiosqlite
import structlog

from focuscore.core.config import settings
from focuscore.core.exceptions import PersistenceError
from focuscore.domain.models.session import ensure_utc
from focuscore.persistence.change_feed import LocalChangeFeed
from focuscore.persistence.store import RELATIONS, Query, Row

log = structlog.get_logger(__name__)

# Path to consolidated schema file
SCHEMA_FILE = Path(__file__).parent / "schema.sql"

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


async def init_database(db_path: Path | None = None) -> None:
    """
    Initialize database from consolidated schema.

    Args:
        db_path: Optional path to database file. Uses settings.database_path if not provided.

    Creates the database file if it doesn't exist and applies the schema.
    Existing databases are left intact (CREATE TABLE IF NOT EXISTS).
    """
    db_path = Path(db_path or settings.database_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    log.info("initializing_database", path=str(db_path))

    if not SCHEMA_FILE.exists():
        log.error("schema_file_not_found", path=str(SCHEMA_FILE))
        raise FileNotFoundError(f"Schema file not found: {SCHEMA_FILE}")

    async with aiosqlite.connect(db_path) as db:
        # WAL mode for better concurrent read performance
        await db.execute("PRAGMA journal_mode = WAL")
        await db.executescript(SCHEMA_FILE.read_text())
        await db.commit()

    log.info("database_initialized", path=str(db_path))


async def check_database_health(db_path: Path | None = None) -> dict:
    """
    Check database health for health endpoint.

    Returns:
        Dict with health status and basic metrics.
    """
    db_path = Path(db_path or settings.database_path)
    try:
        async with aiosqlite.connect(db_path) as db:
            cursor = await db.execute("SELECT COUNT(*) FROM sessions")
            row = await cursor.fetchone()
            session_count = row[0] if row else 0

            cursor = await db.execute("PRAGMA integrity_check")
            integrity = await cursor.fetchone()

            return {
                "status": "healthy",
                "session_count": session_count,
                "integrity": integrity[0] if integrity else "unknown",
                "path": str(db_path),
            }
    except Exception as e:
        log.error("database_health_check_failed", error=str(e))
        return {"status": "unhealthy", "error": str(e)}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_db(value: Any) -> Any:
    """Convert a Python value to its SQLite column representation."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return ensure_utc(value).isoformat()
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return value


def _check_identifier(name: str) -> str:
    if not _IDENTIFIER.match(name):
        raise PersistenceError(f"Invalid column name: {name!r}")
    return name


def _check_relation(relation: str) -> str:
    if relation not in RELATIONS:
        raise PersistenceError(f"Unknown relation: {relation!r}")
    return relation


class SqliteRecordStore:
    """RecordStore over a local SQLite file.

    Inserts are published to the attached LocalChangeFeed after commit,
    which stands in for the hosted store's realtime channel.
    """

    def __init__(self, db_path: str | Path, feed: Optional[LocalChangeFeed] = None):
        self.db_path = str(db_path)
        self.feed = feed

    async def insert(self, relation: str, values: Row) -> Row:
        _check_relation(relation)
        row = {_check_identifier(k): _to_db(v) for k, v in values.items()}
        row.setdefault("id", str(uuid.uuid4()))
        row.setdefault("created_at", _now_iso())

        columns = ", ".join(row)
        placeholders = ", ".join("?" for _ in row)
        try:
            async with aiosqlite.connect(self.db_path) as db:
                db.row_factory = aiosqlite.Row
                await db.execute(
                    f"INSERT INTO {relation} ({columns}) VALUES ({placeholders})",
                    tuple(row.values()),
                )
                await db.commit()
                cursor = await db.execute(
                    f"SELECT * FROM {relation} WHERE id = ?", (row["id"],)
                )
                stored = await cursor.fetchone()
        except aiosqlite.Error as e:
            log.error("store_insert_failed", relation=relation, error=str(e))
            raise PersistenceError(f"Insert into {relation} failed: {e}") from e

        if stored is None:
            raise PersistenceError(f"Row {row['id']} not found in {relation} after insert")

        result = dict(stored)
        if self.feed is not None:
            self.feed.publish(relation, result)
        return result

    async def update(
        self,
        relation: str,
        row_id: str,
        values: Row,
        match: Optional[Row] = None,
    ) -> Optional[Row]:
        _check_relation(relation)
        assignments = ", ".join(f"{_check_identifier(k)} = ?" for k in values)
        params: List[Any] = [_to_db(v) for v in values.values()]

        where = ["id = ?"]
        params.append(row_id)
        for column, value in (match or {}).items():
            where.append(f"{_check_identifier(column)} = ?")
            params.append(_to_db(value))

        try:
            async with aiosqlite.connect(self.db_path) as db:
                db.row_factory = aiosqlite.Row
                cursor = await db.execute(
                    f"UPDATE {relation} SET {assignments} WHERE {' AND '.join(where)}",
                    tuple(params),
                )
                await db.commit()
                if cursor.rowcount == 0:
                    return None
                cursor = await db.execute(
                    f"SELECT * FROM {relation} WHERE id = ?", (row_id,)
                )
                stored = await cursor.fetchone()
        except aiosqlite.Error as e:
            log.error("store_update_failed", relation=relation, row_id=row_id, error=str(e))
            raise PersistenceError(f"Update of {relation}/{row_id} failed: {e}") from e

        return dict(stored) if stored else None

    async def get(self, relation: str, row_id: str) -> Optional[Row]:
        _check_relation(relation)
        try:
            async with aiosqlite.connect(self.db_path) as db:
                db.row_factory = aiosqlite.Row
                cursor = await db.execute(
                    f"SELECT * FROM {relation} WHERE id = ?", (row_id,)
                )
                row = await cursor.fetchone()
        except aiosqlite.Error as e:
            log.error("store_get_failed", relation=relation, row_id=row_id, error=str(e))
            raise PersistenceError(f"Read of {relation}/{row_id} failed: {e}") from e
        return dict(row) if row else None

    async def select(self, query: Query) -> List[Row]:
        relation = _check_relation(query.relation)
        where: List[str] = []
        params: List[Any] = []

        for column, value in query.equals.items():
            where.append(f"{_check_identifier(column)} = ?")
            params.append(_to_db(value))

        if query.range_column:
            column = _check_identifier(query.range_column)
            if query.range_start is not None:
                where.append(f"{column} >= ?")
                params.append(_to_db(query.range_start))
            if query.range_end is not None:
                where.append(f"{column} < ?")
                params.append(_to_db(query.range_end))

        sql = f"SELECT * FROM {relation}"
        if where:
            sql += " WHERE " + " AND ".join(where)
        if query.order_by:
            direction = "DESC" if query.descending else "ASC"
            sql += f" ORDER BY {_check_identifier(query.order_by)} {direction}"
        if query.limit is not None:
            sql += " LIMIT ?"
            params.append(int(query.limit))

        try:
            async with aiosqlite.connect(self.db_path) as db:
                db.row_factory = aiosqlite.Row
                cursor = await db.execute(sql, tuple(params))
                rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            log.error("store_select_failed", relation=relation, error=str(e))
            raise PersistenceError(f"Query on {relation} failed: {e}") from e
        return [dict(row) for row in rows]
