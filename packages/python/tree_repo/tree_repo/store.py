"""Storage port used by the tree reader, mutator and rebuilder.

A backend provides transactional units of work (``TreeStore``) and, inside
each of them, a small set of point/range operations (``TreeSession``).
Filters are MongoDB-style mappings over the structural columns, e.g.::

    {"lft": {"$gte": 4}, "rgt": {"$lte": 9}}
    {"parent_id": None}

Bulk arithmetic updates are expressed as ``Shift`` values; every shift of a
single ``update_many`` call reads the row's values from before that call.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import (
    Any,
    AsyncContextManager,
    AsyncIterator,
    Dict,
    List,
    Mapping,
    NamedTuple,
    Optional,
    Protocol,
)

from loguru import logger

from db_core import Filter, Record

from .errors import StorageError, WriteFailureError
from .models import STRUCTURAL_KEYS

FILTER_OPERATORS = ("$gt", "$gte", "$lt", "$lte")
UPDATABLE_COLUMNS = ("parent_id", "lft", "rgt", "depth")


class Shift(NamedTuple):
    """``column = column * scale + offset``."""

    scale: int = 1
    offset: int = 0


class TreeSession(Protocol):
    async def select_one(self, where: Filter) -> Optional[Record]:
        ...

    async def select_many(
        self, where: Optional[Filter] = None, order_by: str = "lft"
    ) -> List[Record]:
        ...

    async def max_value(self, column: str) -> Optional[int]:
        ...

    async def insert(self, row: Mapping[str, Any]) -> int:
        ...

    async def update_many(
        self,
        where: Filter,
        shifts: Optional[Mapping[str, Shift]] = None,
        values: Optional[Mapping[str, Any]] = None,
    ) -> int:
        ...

    async def delete_many(self, where: Filter) -> int:
        ...

    async def count(self, where: Optional[Filter] = None) -> int:
        ...


class TreeStore(Protocol):
    def transaction(self) -> AsyncContextManager[TreeSession]:
        """Write unit of work: commit on clean exit, roll back on any error."""
        ...

    def snapshot(self) -> AsyncContextManager[TreeSession]:
        """Read-only unit of work seeing one consistent state of the table."""
        ...


def check_column(column: str, allowed=STRUCTURAL_KEYS) -> str:
    if column not in allowed:
        raise StorageError(f"Unsupported column: {column!r}")
    return column


def split_condition(condition: Any) -> Dict[str, Any]:
    """Normalise a filter value into ``{operator: operand}`` form."""

    if isinstance(condition, Mapping):
        unknown = [op for op in condition if op not in FILTER_OPERATORS]
        if unknown:
            raise StorageError(f"Unsupported filter operator(s): {unknown}")
        return dict(condition)
    return {"$eq": condition}


@asynccontextmanager
async def unit_of_work(
    store: TreeStore, lock: asyncio.Lock, action: str
) -> AsyncIterator[TreeSession]:
    """Run one mutation under the writer lock inside one transaction.

    Domain errors raised inside the block roll back and propagate unchanged;
    backend failures roll back and surface as ``WriteFailureError``.
    """

    async with lock:
        try:
            async with store.transaction() as session:
                yield session
        except StorageError as exc:
            logger.error(f"{action} failed, transaction rolled back: {exc}")
            raise WriteFailureError(f"Failed to {action}: {exc}") from exc
