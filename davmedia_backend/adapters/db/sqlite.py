"""
SQLite database manager (aiosqlite-backed).

Critical guarantee:
- The adapter never raises to callers; it returns `Result(...)`.

One connection is opened lazily and shared; aiosqlite serializes statements on
its worker thread, and write statements additionally go through an asyncio
lock so multi-statement writes (executemany/executescript) never interleave.
"""

from __future__ import annotations

import asyncio
import random
import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import aiosqlite

from ...config import DB_TIMEOUT
from ...shared import ErrorCode, Result, get_logger

logger = get_logger(__name__)

SQLITE_BUSY_TIMEOUT_MS = max(1000, int(float(DB_TIMEOUT) * 1000))
# Negative cache_size is in KiB. -16000 ~= 16 MiB cache.
SQLITE_CACHE_SIZE_KIB = -16000


def _is_locked_error(exc: Exception) -> bool:
    msg = str(exc).lower()
    return "database is locked" in msg or "database table is locked" in msg or "busy" in msg


class Sqlite:
    """
    Async SQLite access returning Result objects.
    """

    def __init__(self, db_path: str, timeout: float = DB_TIMEOUT):
        self.db_path = Path(db_path)
        self._timeout = float(timeout)
        self._conn: Optional[aiosqlite.Connection] = None
        self._conn_lock = asyncio.Lock()
        self._write_lock = asyncio.Lock()
        self._closed = False
        self._lock_retry_attempts = 6
        self._lock_retry_base_seconds = 0.05
        self._lock_retry_max_seconds = 0.75

        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Connection management
    # ------------------------------------------------------------------

    async def _apply_connection_pragmas(self, conn: aiosqlite.Connection) -> None:
        await conn.execute(f"PRAGMA busy_timeout = {SQLITE_BUSY_TIMEOUT_MS}")
        await conn.execute(f"PRAGMA cache_size = {SQLITE_CACHE_SIZE_KIB}")
        await conn.execute("PRAGMA journal_mode = WAL")
        await conn.execute("PRAGMA synchronous = NORMAL")

    async def _connection(self) -> aiosqlite.Connection:
        if self._conn is not None:
            return self._conn
        async with self._conn_lock:
            if self._conn is None:
                if self._closed:
                    raise sqlite3.ProgrammingError("Database adapter is closed")
                conn = await aiosqlite.connect(str(self.db_path), timeout=self._timeout)
                conn.row_factory = sqlite3.Row
                await self._apply_connection_pragmas(conn)
                self._conn = conn
            return self._conn

    async def _sleep_backoff(self, attempt: int) -> None:
        delay = min(self._lock_retry_max_seconds, self._lock_retry_base_seconds * (2 ** attempt))
        await asyncio.sleep(delay * (0.5 + random.random() / 2))

    @staticmethod
    def _rows_to_dicts(rows: Any) -> List[Dict[str, Any]]:
        out: List[Dict[str, Any]] = []
        for row in rows or []:
            out.append({key: row[key] for key in row.keys()})
        return out

    @staticmethod
    def _is_write_sql(query: str) -> bool:
        q = str(query or "").lstrip()
        if not q:
            return False
        head = q.split(None, 1)[0].upper()
        return head not in ("SELECT", "PRAGMA", "WITH", "EXPLAIN")

    @staticmethod
    def _is_insert_sql(query: str) -> bool:
        q = str(query or "").lstrip()
        if not q:
            return False
        return q.split(None, 1)[0].upper() in ("INSERT", "REPLACE")

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def _run_with_retry(self, op) -> Result[Any]:
        try:
            for attempt in range(self._lock_retry_attempts + 1):
                try:
                    return await op()
                except sqlite3.OperationalError as exc:
                    if _is_locked_error(exc) and attempt < self._lock_retry_attempts:
                        await self._sleep_backoff(attempt)
                        continue
                    raise
            return Result.Err(ErrorCode.DB_ERROR, "Query failed after retries")
        except sqlite3.IntegrityError as exc:
            logger.warning("Integrity error: %s", exc)
            return Result.Err(ErrorCode.DB_ERROR, f"Integrity error: {exc}")
        except sqlite3.OperationalError as exc:
            logger.error("Operational error: %s", exc)
            return Result.Err(ErrorCode.DB_ERROR, f"Operational error: {exc}")
        except sqlite3.DatabaseError as exc:
            logger.error("Database error: %s", exc)
            return Result.Err(ErrorCode.DB_ERROR, str(exc))
        except Exception as exc:
            logger.error("Unexpected database error: %s", exc)
            return Result.Err(ErrorCode.DB_ERROR, str(exc))

    async def aexecute(self, query: str, params: Optional[tuple] = None, fetch: bool = False) -> Result[Any]:
        """Execute one statement. With `fetch=True` returns rows as dicts."""

        async def _op() -> Result[Any]:
            conn = await self._connection()
            if self._is_write_sql(query):
                async with self._write_lock:
                    return await self._execute_on_conn(conn, query, params, fetch=fetch, commit=True)
            return await self._execute_on_conn(conn, query, params, fetch=fetch, commit=False)

        return await self._run_with_retry(_op)

    async def _execute_on_conn(
        self,
        conn: aiosqlite.Connection,
        query: str,
        params: Optional[tuple],
        *,
        fetch: bool,
        commit: bool,
    ) -> Result[Any]:
        cursor = await conn.execute(query, params or ())
        try:
            if fetch:
                rows = await cursor.fetchall()
                if commit:
                    await conn.commit()
                return Result.Ok(self._rows_to_dicts(rows))
            if commit:
                await conn.commit()
            rowcount = getattr(cursor, "rowcount", None)
            # sqlite3 reports the connection's last insert rowid after any statement.
            if self._is_insert_sql(query):
                last_id = getattr(cursor, "lastrowid", None)
                if last_id:
                    return Result.Ok(last_id)
            return Result.Ok(rowcount if rowcount is not None and rowcount >= 0 else 0)
        finally:
            await cursor.close()

    async def aquery(self, sql: str, params: Optional[tuple] = None) -> Result[List[Dict[str, Any]]]:
        """Execute a SELECT query and return rows (async)."""
        return await self.aexecute(sql, params, fetch=True)

    async def aquery_one(self, sql: str, params: Optional[tuple] = None) -> Result[Optional[Dict[str, Any]]]:
        """Execute a SELECT query and return the first row or None."""
        res = await self.aquery(sql, params)
        if not res.ok:
            return Result.Err(res.code, res.error or "Query failed")
        rows = res.data or []
        return Result.Ok(rows[0] if rows else None)

    async def aexecutemany(self, query: str, params_list: List[Tuple]) -> Result[int]:
        """Execute one statement for each parameter tuple inside a single commit."""

        async def _op() -> Result[int]:
            conn = await self._connection()
            async with self._write_lock:
                await conn.executemany(query, params_list)
                await conn.commit()
            return Result.Ok(len(params_list))

        return await self._run_with_retry(_op)

    async def aexecutescript(self, script: str) -> Result[bool]:
        async def _op() -> Result[bool]:
            conn = await self._connection()
            async with self._write_lock:
                await conn.executescript(script)
                await conn.commit()
            return Result.Ok(True)

        return await self._run_with_retry(_op)

    async def ahas_table(self, table_name: str) -> bool:
        res = await self.aquery(
            "SELECT name FROM sqlite_master WHERE type='table' AND name = ?",
            (table_name,),
        )
        return bool(res.ok and res.data)

    async def aget_schema_version(self) -> int:
        if not await self.ahas_table("metadata"):
            return 0
        res = await self.aquery_one("SELECT value FROM metadata WHERE key = 'schema_version'")
        if not res.ok or not res.data:
            return 0
        try:
            return int(res.data.get("value") or 0)
        except (TypeError, ValueError):
            return 0

    async def aset_schema_version(self, version: int) -> Result[bool]:
        res = await self.aexecute(
            "INSERT OR REPLACE INTO metadata (key, value) VALUES ('schema_version', ?)",
            (str(int(version)),),
        )
        if not res.ok:
            return Result.Err(res.code, res.error or "Failed to set schema version")
        return Result.Ok(True)

    def get_runtime_status(self) -> Dict[str, Any]:
        return {
            "db_path": str(self.db_path),
            "connected": self._conn is not None,
            "closed": self._closed,
        }

    async def aclose(self) -> None:
        """Close the shared connection; further calls reopen nothing."""
        async with self._conn_lock:
            self._closed = True
            conn, self._conn = self._conn, None
        if conn is not None:
            try:
                await conn.close()
            except Exception as exc:
                logger.debug("Error closing database connection: %s", exc)
