"""Facade wiring reader, mutator and rebuilder over one store."""

from __future__ import annotations

import asyncio
from typing import Any, List, Mapping, Optional

from .config import TreeSettings
from .config import settings as default_settings
from .models import IntegrityIssue, TreeNode
from .mongo_store import MongoTreeStore
from .mutator import TreeMutator
from .rebuilder import TreeRebuilder
from .reader import TreeReader
from .sqlite_store import SqliteTreeStore
from .store import TreeStore


class NestedSetTree:
    """One tree in one table.

    The mutator and the rebuilder share a single writer lock, so at most one
    structural change runs at a time through this object. Readers never take
    the lock; they rely on the store's snapshot isolation instead.
    """

    def __init__(self, store: TreeStore):
        self.store = store
        self._writer_lock = asyncio.Lock()
        self.reader = TreeReader(store)
        self.mutator = TreeMutator(store, self._writer_lock)
        self.rebuilder = TreeRebuilder(store, self._writer_lock)

    # -- reads -------------------------------------------------------------

    async def get_tree(self) -> List[TreeNode]:
        return await self.reader.get_tree()

    async def get_node(self, node_id: int) -> Optional[TreeNode]:
        return await self.reader.get_node(node_id)

    async def get_descendants(self, node_id: int, include_self: bool = False) -> List[TreeNode]:
        return await self.reader.get_descendants(node_id, include_self)

    async def get_ancestors(self, node_id: int, include_self: bool = False) -> List[TreeNode]:
        return await self.reader.get_ancestors(node_id, include_self)

    async def get_children(self, node_id: int) -> List[TreeNode]:
        return await self.reader.get_children(node_id)

    # -- writes ------------------------------------------------------------

    async def insert_root(self, payload: Optional[Mapping[str, Any]] = None) -> int:
        return await self.mutator.insert_root(payload)

    async def insert_child(self, parent_id: int, payload: Optional[Mapping[str, Any]] = None) -> int:
        return await self.mutator.insert_child(parent_id, payload)

    async def move_subtree(self, node_id: int, new_parent_id: int) -> TreeNode:
        return await self.mutator.move_subtree(node_id, new_parent_id)

    async def delete_node(self, node_id: int, delete_subtree: bool = True) -> List[int]:
        return await self.mutator.delete_node(node_id, delete_subtree)

    # -- repair ------------------------------------------------------------

    async def rebuild_tree(self) -> int:
        return await self.rebuilder.rebuild_tree()

    async def check_integrity(self) -> List[IntegrityIssue]:
        return await self.rebuilder.check_integrity()


def build_store(settings: Optional[TreeSettings] = None) -> TreeStore:
    """Instantiate the storage adapter selected by ``settings.backend``."""

    settings = settings or default_settings
    if settings.backend == "mongo":
        return MongoTreeStore(
            collection_name=settings.table_name,
            counters_collection=settings.counters_collection,
        )

    store = SqliteTreeStore(table_name=settings.table_name)
    store.ensure_schema()
    return store


def build_tree(settings: Optional[TreeSettings] = None) -> NestedSetTree:
    return NestedSetTree(build_store(settings))
