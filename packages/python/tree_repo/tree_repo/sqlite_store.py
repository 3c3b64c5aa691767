"""Relational storage adapter backed by SQLite.

Structural columns are real columns; caller payload is kept as JSON text in
the ``payload`` column and merged back into the returned records.
"""

from __future__ import annotations

import asyncio
import json
import re
import sqlite3
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, List, Mapping, Optional, Sequence, Tuple

from loguru import logger

from db_core import Filter, Record, connect_sqlite

from .errors import StorageError
from .models import RESERVED_KEYS
from .store import UPDATABLE_COLUMNS, Shift, check_column, split_condition

_SQL_OPERATORS = {
    "$eq": "=",
    "$gt": ">",
    "$gte": ">=",
    "$lt": "<",
    "$lte": "<=",
}
_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_COLUMNS = "id, parent_id, lft, rgt, depth, payload"


def validate_identifier(name: str) -> str:
    if not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid table name: {name!r}")
    return name


def build_where(where: Optional[Filter]) -> Tuple[str, List[Any]]:
    """Translate a MongoDB-style filter into a SQL ``WHERE`` clause."""

    clauses: List[str] = []
    params: List[Any] = []
    for column, condition in (where or {}).items():
        check_column(column)
        for op, operand in split_condition(condition).items():
            if operand is None and op == "$eq":
                clauses.append(f"{column} IS NULL")
                continue
            clauses.append(f"{column} {_SQL_OPERATORS[op]} ?")
            params.append(operand)
    if not clauses:
        return "", params
    return " WHERE " + " AND ".join(clauses), params


def build_set(
    shifts: Optional[Mapping[str, Shift]], values: Optional[Mapping[str, Any]]
) -> Tuple[str, List[Any]]:
    parts: List[str] = []
    params: List[Any] = []
    for column, shift in (shifts or {}).items():
        check_column(column, UPDATABLE_COLUMNS)
        parts.append(f"{column} = {column} * ? + ?")
        params.extend([shift.scale, shift.offset])
    for column, value in (values or {}).items():
        check_column(column, UPDATABLE_COLUMNS)
        parts.append(f"{column} = ?")
        params.append(value)
    if not parts:
        raise StorageError("update_many called without shifts or values")
    return ", ".join(parts), params


def _row_to_record(row: sqlite3.Row) -> Record:
    record: Record = json.loads(row["payload"] or "{}")
    record.update(
        id=row["id"],
        parent_id=row["parent_id"],
        lft=row["lft"],
        rgt=row["rgt"],
        depth=row["depth"],
    )
    return record


class SqliteTreeSession:
    """Operations available inside one SQLite unit of work.

    Statements run in a worker thread so a writer waiting on the file lock
    never stalls the event loop.
    """

    def __init__(self, conn: sqlite3.Connection, table_name: str):
        self._conn = conn
        self._table = table_name

    def _run(self, sql: str, params: Sequence[Any], fetch: Optional[str]) -> Any:
        cursor = self._conn.execute(sql, params)
        if fetch == "one":
            return cursor.fetchone()
        if fetch == "all":
            return cursor.fetchall()
        return cursor

    async def _execute(
        self, sql: str, params: Sequence[Any] = (), fetch: Optional[str] = None
    ) -> Any:
        try:
            return await asyncio.to_thread(self._run, sql, params, fetch)
        except (sqlite3.Error, TypeError, ValueError) as exc:
            raise StorageError(f"SQLite statement failed: {exc}") from exc

    async def select_one(self, where: Filter) -> Optional[Record]:
        clause, params = build_where(where)
        row = await self._execute(
            f"SELECT {_COLUMNS} FROM {self._table}{clause} LIMIT 1", params, fetch="one"
        )
        return _row_to_record(row) if row else None

    async def select_many(
        self, where: Optional[Filter] = None, order_by: str = "lft"
    ) -> List[Record]:
        check_column(order_by)
        clause, params = build_where(where)
        rows = await self._execute(
            f"SELECT {_COLUMNS} FROM {self._table}{clause} ORDER BY {order_by} ASC, id ASC",
            params,
            fetch="all",
        )
        return [_row_to_record(row) for row in rows]

    async def max_value(self, column: str) -> Optional[int]:
        check_column(column)
        row = await self._execute(f"SELECT MAX({column}) FROM {self._table}", fetch="one")
        return row[0]

    async def insert(self, row: Mapping[str, Any]) -> int:
        payload = {key: value for key, value in row.items() if key not in RESERVED_KEYS}
        try:
            encoded = json.dumps(payload)
        except (TypeError, ValueError) as exc:
            raise StorageError(f"Payload is not JSON serialisable: {exc}") from exc
        cursor = await self._execute(
            f"INSERT INTO {self._table} (parent_id, lft, rgt, depth, payload) "
            "VALUES (?, ?, ?, ?, ?)",
            (row.get("parent_id"), row["lft"], row["rgt"], row.get("depth", 0), encoded),
        )
        return int(cursor.lastrowid)

    async def update_many(
        self,
        where: Filter,
        shifts: Optional[Mapping[str, Shift]] = None,
        values: Optional[Mapping[str, Any]] = None,
    ) -> int:
        assignments, set_params = build_set(shifts, values)
        clause, where_params = build_where(where)
        cursor = await self._execute(
            f"UPDATE {self._table} SET {assignments}{clause}", set_params + where_params
        )
        return cursor.rowcount

    async def delete_many(self, where: Filter) -> int:
        clause, params = build_where(where)
        cursor = await self._execute(f"DELETE FROM {self._table}{clause}", params)
        return cursor.rowcount

    async def count(self, where: Optional[Filter] = None) -> int:
        clause, params = build_where(where)
        row = await self._execute(
            f"SELECT COUNT(*) FROM {self._table}{clause}", params, fetch="one"
        )
        return int(row[0])


class SqliteTreeStore:
    """SQLite-backed ``TreeStore``.

    One connection is shared by every unit of work and guarded by an
    ``asyncio.Lock``. Writers open ``BEGIN IMMEDIATE`` so a second process
    mutating the same file waits (up to the busy timeout) instead of
    interleaving with a half-shifted tree.
    """

    def __init__(self, path: Optional[str] = None, table_name: str = "tree_nodes"):
        self.table_name = validate_identifier(table_name)
        self._conn = connect_sqlite(path)
        self._lock = asyncio.Lock()

    def ensure_schema(self) -> None:
        """Create the node table and its interval indexes if they are missing."""

        table = self.table_name
        self._conn.executescript(
            f"""
            CREATE TABLE IF NOT EXISTS {table} (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                parent_id INTEGER NULL,
                lft INTEGER NOT NULL DEFAULT 0,
                rgt INTEGER NOT NULL DEFAULT 0,
                depth INTEGER NOT NULL DEFAULT 0,
                payload TEXT NOT NULL DEFAULT '{{}}'
            );
            CREATE INDEX IF NOT EXISTS idx_{table}_lft ON {table} (lft);
            CREATE INDEX IF NOT EXISTS idx_{table}_rgt ON {table} (rgt);
            CREATE INDEX IF NOT EXISTS idx_{table}_parent_id ON {table} (parent_id);
            """
        )

    def close(self) -> None:
        self._conn.close()

    def _rollback(self) -> None:
        try:
            self._conn.execute("ROLLBACK")
        except sqlite3.Error as exc:
            logger.warning(f"SQLite rollback failed on {self.table_name}: {exc}")

    @asynccontextmanager
    async def _unit(self, begin: str, commit: bool) -> AsyncIterator[SqliteTreeSession]:
        async with self._lock:
            try:
                await asyncio.to_thread(self._conn.execute, begin)
            except sqlite3.Error as exc:
                raise StorageError(f"Could not begin transaction: {exc}") from exc

            try:
                yield SqliteTreeSession(self._conn, self.table_name)
            except BaseException:
                await asyncio.to_thread(self._rollback)
                raise

            if not commit:
                await asyncio.to_thread(self._rollback)
                return
            try:
                await asyncio.to_thread(self._conn.execute, "COMMIT")
            except sqlite3.Error as exc:
                await asyncio.to_thread(self._rollback)
                raise StorageError(f"Could not commit transaction: {exc}") from exc

    def transaction(self):
        return self._unit("BEGIN IMMEDIATE", commit=True)

    def snapshot(self):
        return self._unit("BEGIN", commit=False)
