"""
Query history storage.

Successful single-model queries are appended to a SQLite table. Records are
never updated or deleted by promptfan.
"""

import asyncio
import logging
import sqlite3
import threading
import uuid
from contextlib import closing
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Tuple, Union

from .context import QueryContext
from .errors import HistoryReadError, HistoryWriteError

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 10

_COLUMNS = "id, timestamp, prompt, model, response, duration_ms, temperature"


@dataclass(frozen=True)
class QueryRecord:
    """Immutable log entry of one completed query."""
    id: str
    timestamp: datetime
    prompt: str
    model: str
    response: str
    duration_ms: int
    temperature: float


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _row_to_record(row: Tuple) -> QueryRecord:
    return QueryRecord(
        id=row[0],
        timestamp=datetime.fromisoformat(row[1]),
        prompt=row[2],
        model=row[3],
        response=row[4] or "",
        duration_ms=row[5] or 0,
        temperature=row[6] if row[6] is not None else 0.0,
    )


class QueryHistory:
    """
    Append-only log of completed queries.

    One SQLite connection is shared by every caller; access is serialised so
    concurrent appends from background tasks cannot interleave. Blocking
    database work runs in a worker thread.

    Usage:
        with QueryHistory(get_history_path()) as history:
            await history.log_query("hi", "deepseek-chat", "hello", 0.42, 0.7)
            recent = await history.get_recent_queries(5)
    """

    def __init__(self, db_path: Union[str, Path], for_reading: bool = False):
        """
        Open (and create if needed) the history database.

        Args:
            db_path: Path to the SQLite database file
            for_reading: Report open failures as read errors, for callers that
                only query the history

        Raises:
            HistoryWriteError: If the database cannot be opened or initialised
            HistoryReadError: Instead of HistoryWriteError when for_reading is set
        """
        self.db_path = Path(db_path)
        self._lock = threading.Lock()
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._initialize_schema()
        except (OSError, sqlite3.Error) as e:
            error_class = HistoryReadError if for_reading else HistoryWriteError
            raise error_class(f"failed to open history database {self.db_path}: {e}") from e

    def _initialize_schema(self) -> None:
        try:
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS queries (
                    id TEXT PRIMARY KEY,
                    timestamp TEXT NOT NULL,
                    prompt TEXT NOT NULL,
                    model TEXT NOT NULL,
                    response TEXT,
                    duration_ms INTEGER,
                    temperature REAL
                )
            """)
            self._conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_queries_timestamp ON queries (timestamp)"
            )
            self._conn.commit()
        except sqlite3.Error:
            self._conn.close()
            raise

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __enter__(self) -> "QueryHistory":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    async def log_query(
        self,
        prompt: str,
        model: str,
        response: str,
        duration: float,
        temperature: float,
        ctx: Optional[QueryContext] = None,
    ) -> QueryRecord:
        """
        Append one query record.

        Args:
            prompt: Prompt text
            model: Model that produced the response
            response: Response text
            duration: Elapsed time of the remote call in seconds
            temperature: Sampling temperature in effect

        Returns:
            The record as written

        Raises:
            HistoryWriteError: If the insert fails
        """
        record = QueryRecord(
            id=str(uuid.uuid4()),
            timestamp=datetime.now(timezone.utc),
            prompt=prompt,
            model=model,
            response=response,
            duration_ms=int(duration * 1000),
            temperature=float(temperature),
        )
        ctx = ctx or QueryContext.background()
        await ctx.run(asyncio.to_thread(self._insert, record))
        return record

    def _insert(self, record: QueryRecord) -> None:
        try:
            with self._lock:
                with self._conn:
                    self._conn.execute(
                        f"INSERT INTO queries ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                        (
                            record.id,
                            record.timestamp.isoformat(timespec="microseconds"),
                            record.prompt,
                            record.model,
                            record.response,
                            record.duration_ms,
                            record.temperature,
                        ),
                    )
        except (sqlite3.Error, ValueError) as e:
            # ValueError covers text sqlite cannot encode, such as lone surrogates
            raise HistoryWriteError(f"failed to log query: {e}") from e

    async def get_recent_queries(
        self,
        limit: int = DEFAULT_LIMIT,
        ctx: Optional[QueryContext] = None,
    ) -> List[QueryRecord]:
        """
        Most recent records first, at most ``limit`` of them (10 when limit <= 0).

        Raises:
            HistoryReadError: If the database cannot be read or holds a corrupt row
        """
        if limit <= 0:
            limit = DEFAULT_LIMIT
        ctx = ctx or QueryContext.background()
        return await ctx.run(asyncio.to_thread(
            self._fetch,
            f"SELECT {_COLUMNS} FROM queries ORDER BY timestamp DESC, rowid DESC LIMIT ?",
            (limit,),
        ))

    async def search_queries(
        self,
        text: str,
        limit: int = DEFAULT_LIMIT,
        ctx: Optional[QueryContext] = None,
    ) -> List[QueryRecord]:
        """
        Records whose prompt or response contains ``text``, newest first.

        Matching uses SQLite's LIKE with wildcards escaped: a literal substring
        match that ignores case for ASCII letters only.

        Raises:
            HistoryReadError: If the database cannot be read or holds a corrupt row
        """
        if limit <= 0:
            limit = DEFAULT_LIMIT
        pattern = f"%{_escape_like(text)}%"
        ctx = ctx or QueryContext.background()
        return await ctx.run(asyncio.to_thread(
            self._fetch,
            f"""
                SELECT {_COLUMNS} FROM queries
                WHERE prompt LIKE ? ESCAPE '\\' OR response LIKE ? ESCAPE '\\'
                ORDER BY timestamp DESC, rowid DESC LIMIT ?
            """,
            (pattern, pattern, limit),
        ))

    def _fetch(self, sql: str, params: Tuple) -> List[QueryRecord]:
        try:
            with self._lock:
                with closing(self._conn.execute(sql, params)) as cursor:
                    rows = cursor.fetchall()
            # Parse everything before returning so a corrupt row fails the whole read
            return [_row_to_record(row) for row in rows]
        except sqlite3.Error as e:
            raise HistoryReadError(f"failed to fetch queries: {e}") from e
        except (TypeError, ValueError) as e:
            raise HistoryReadError(f"corrupt query record: {e}") from e
