"""SQLite-based session history store."""

import asyncio
import json
import logging
import sqlite3
from pathlib import Path

import aiosqlite
from pydantic import ValidationError as PydanticValidationError

from ..exceptions import PersistenceError
from .models import Session

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 50


class SessionStore:
    """Async SQLite store holding a rolling window of sessions.

    Stores one row per session for:
    - Finalized sessions appended when a session ends
    - In-progress snapshots upserted by auto-save

    After every write only the newest `history_limit` rows are kept. Read
    failures degrade to an empty history; write failures raise PersistenceError.
    """

    def __init__(self, db_path: Path | None = None, history_limit: int = DEFAULT_HISTORY_LIMIT):
        """Initialize SessionStore.

        Args:
            db_path: Path to SQLite database. Defaults to <data dir>/sessions.db
            history_limit: Maximum number of sessions kept
        """
        if db_path is None:
            from ..config import settings

            db_path = settings.get_data_dir() / "sessions.db"
        self.db_path = Path(db_path)
        self.history_limit = history_limit
        self._initialized = False
        self._init_lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Create schema if not exists."""
        if self._initialized:
            return

        async with self._init_lock:
            if self._initialized:
                return

            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            try:
                async with aiosqlite.connect(self.db_path) as db:
                    await db.execute("PRAGMA journal_mode = WAL")
                    await db.execute("PRAGMA busy_timeout = 5000")

                    await db.execute("""
                        CREATE TABLE IF NOT EXISTS sessions (
                            session_id TEXT PRIMARY KEY,
                            started_at TEXT NOT NULL,
                            ended_at TEXT,
                            payload TEXT NOT NULL
                        )
                    """)
                    await db.execute("CREATE INDEX IF NOT EXISTS idx_started_at ON sessions(started_at)")
                    await db.commit()
            except sqlite3.Error as e:
                raise PersistenceError(f"Cannot initialize session store at {self.db_path}: {e}") from e

            self._initialized = True

    async def save(self, session: Session) -> None:
        """Insert or replace a session row, then trim the history."""
        await self.initialize()

        try:
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute(
                    """
                    INSERT OR REPLACE INTO sessions (session_id, started_at, ended_at, payload)
                    VALUES (?, ?, ?, ?)
                """,
                    (
                        session.id,
                        session.start_time.isoformat(),
                        session.end_time.isoformat() if session.end_time else None,
                        json.dumps(session.to_dict()),
                    ),
                )
                await db.execute(
                    """
                    DELETE FROM sessions WHERE session_id NOT IN (
                        SELECT session_id FROM sessions ORDER BY started_at DESC LIMIT ?
                    )
                """,
                    (self.history_limit,),
                )
                await db.commit()
        except sqlite3.Error as e:
            logger.error(f"Failed to save session {session.id}: {e}")
            raise PersistenceError(f"Failed to save session {session.id}: {e}") from e

    async def get(self, session_id: str) -> Session | None:
        """Get a single session by ID."""
        await self.initialize()

        try:
            async with aiosqlite.connect(self.db_path) as db:
                async with db.execute("SELECT payload FROM sessions WHERE session_id = ?", (session_id,)) as cursor:
                    row = await cursor.fetchone()
        except sqlite3.Error as e:
            logger.warning(f"Failed to read session {session_id}: {e}")
            return None

        return self._row_to_session(row[0]) if row else None

    async def history(self, limit: int | None = None, completed_only: bool = False) -> list[Session]:
        """Sessions ordered newest first."""
        await self.initialize()

        query = "SELECT payload FROM sessions"
        if completed_only:
            query += " WHERE ended_at IS NOT NULL"
        query += " ORDER BY started_at DESC LIMIT ?"

        try:
            async with aiosqlite.connect(self.db_path) as db:
                async with db.execute(query, (limit or self.history_limit,)) as cursor:
                    rows = await cursor.fetchall()
        except sqlite3.Error as e:
            logger.warning(f"Failed to read session history: {e}")
            return []

        sessions = [self._row_to_session(row[0]) for row in rows]
        return [s for s in sessions if s is not None]

    async def count(self) -> int:
        await self.initialize()

        try:
            async with aiosqlite.connect(self.db_path) as db:
                async with db.execute("SELECT COUNT(*) FROM sessions") as cursor:
                    row = await cursor.fetchone()
        except sqlite3.Error as e:
            logger.warning(f"Failed to count sessions: {e}")
            return 0

        return row[0] if row else 0

    @staticmethod
    def _row_to_session(payload: str) -> Session | None:
        """Convert a stored JSON payload to a Session, skipping corrupt rows."""
        try:
            return Session.from_dict(json.loads(payload))
        except (json.JSONDecodeError, PydanticValidationError, TypeError) as e:
            logger.warning(f"Skipping corrupt session row: {e}")
            return None
