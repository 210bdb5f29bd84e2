"""
Database infrastructure with SQLite and async support.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import aiosqlite

from sitewatch.config import WatchIdentity
from sitewatch.interfaces import SnapshotStore
from sitewatch.models import Snapshot


logger = logging.getLogger(__name__)


class Database:
    """Async SQLite database wrapper."""

    def __init__(self, db_path: str = "db.sqlite3"):
        self.db_path = Path(db_path)
        self._connection: Optional[aiosqlite.Connection] = None

    async def connect(self) -> None:
        """Connect to the database and run migrations."""
        if self._connection:
            return

        # Open connection with a longer busy timeout
        self._connection = await aiosqlite.connect(self.db_path, timeout=30)
        self._connection.row_factory = aiosqlite.Row
        await self._connection.execute("PRAGMA journal_mode=WAL;")
        await self._connection.execute("PRAGMA busy_timeout=30000;")
        await self._run_migrations()

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    async def execute(self, sql: str, params: Tuple[Any, ...] = ()) -> aiosqlite.Cursor:
        """Execute a SQL statement."""
        if not self._connection:
            await self.connect()
        return await self._connection.execute(sql, params)

    async def fetch_one(self, sql: str, params: Tuple[Any, ...] = ()) -> Optional[aiosqlite.Row]:
        """Fetch one row."""
        cursor = await self.execute(sql, params)
        return await cursor.fetchone()

    async def upsert(
        self,
        table: str,
        data: Dict[str, Any],
        pk_columns: List[str],
    ) -> None:
        """Upsert one row and commit it."""
        columns = list(data.keys())
        placeholders = ", ".join("?" * len(columns))
        values = list(data.values())

        update_columns = [col for col in columns if col not in pk_columns]
        if update_columns:
            update_clause = ", ".join(f"{col} = excluded.{col}" for col in update_columns)
            conflict_clause = f"ON CONFLICT({', '.join(pk_columns)}) DO UPDATE SET {update_clause}"
        else:
            conflict_clause = f"ON CONFLICT({', '.join(pk_columns)}) DO NOTHING"

        sql = f"""
            INSERT INTO {table} ({', '.join(columns)})
            VALUES ({placeholders})
            {conflict_clause}
        """

        await self.execute(sql, tuple(values))
        await self._connection.commit()

    async def _run_migrations(self) -> None:
        """Create the schema if it does not exist yet."""
        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS migrations (
                version INTEGER PRIMARY KEY,
                applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)
        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS watches (
                name TEXT NOT NULL,
                url TEXT NOT NULL,
                content TEXT NOT NULL,
                last_seen TEXT NOT NULL,
                PRIMARY KEY (name, url)
            )
        """)
        await self._connection.execute("INSERT OR IGNORE INTO migrations (version) VALUES (1)")
        await self._connection.commit()


class SqliteSnapshotStore(SnapshotStore):
    """Snapshot store backed by the ``watches`` table."""

    def __init__(self, db: Database):
        self.db = db

    async def get(self, identity: WatchIdentity) -> Optional[Snapshot]:
        row = await self.db.fetch_one(
            "SELECT content, last_seen FROM watches WHERE name = ? AND url = ?",
            (identity.name, identity.url),
        )
        if row is None:
            return None
        return Snapshot(content=row["content"], last_seen=datetime.fromisoformat(row["last_seen"]))

    async def put(self, identity: WatchIdentity, snapshot: Snapshot) -> None:
        await self.db.upsert(
            "watches",
            {
                "name": identity.name,
                "url": identity.url,
                "content": snapshot.content,
                "last_seen": snapshot.last_seen.isoformat(),
            },
            pk_columns=["name", "url"],
        )
        logger.debug(f"Stored snapshot for {identity} ({len(snapshot.content)} chars)")
