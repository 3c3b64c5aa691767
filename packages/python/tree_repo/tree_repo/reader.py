"""Read-only tree queries expressed as interval predicates."""

from __future__ import annotations

from typing import List, Optional

from .errors import NodeNotFoundError
from .models import TreeNode, to_node
from .store import TreeSession, TreeStore


async def fetch_node(session: TreeSession, node_id: int) -> TreeNode:
    record = await session.select_one({"id": node_id})
    if record is None:
        raise NodeNotFoundError(node_id)
    return to_node(record)


class TreeReader:
    """Stateless queries; every call reads through one store snapshot."""

    def __init__(self, store: TreeStore):
        self._store = store

    async def get_tree(self) -> List[TreeNode]:
        """All nodes in preorder (``lft`` ascending)."""

        async with self._store.snapshot() as session:
            records = await session.select_many(order_by="lft")
        return [to_node(record) for record in records]

    async def get_node(self, node_id: int) -> Optional[TreeNode]:
        async with self._store.snapshot() as session:
            record = await session.select_one({"id": node_id})
        return to_node(record) if record else None

    async def get_descendants(self, node_id: int, include_self: bool = False) -> List[TreeNode]:
        async with self._store.snapshot() as session:
            node = await fetch_node(session, node_id)
            if include_self:
                where = {"lft": {"$gte": node.lft}, "rgt": {"$lte": node.rgt}}
            else:
                where = {"lft": {"$gt": node.lft}, "rgt": {"$lt": node.rgt}}
            records = await session.select_many(where, order_by="lft")
        return [to_node(record) for record in records]

    async def get_ancestors(self, node_id: int, include_self: bool = False) -> List[TreeNode]:
        """Enclosing nodes, root first."""

        async with self._store.snapshot() as session:
            node = await fetch_node(session, node_id)
            if include_self:
                where = {"lft": {"$lte": node.lft}, "rgt": {"$gte": node.rgt}}
            else:
                where = {"lft": {"$lt": node.lft}, "rgt": {"$gt": node.rgt}}
            records = await session.select_many(where, order_by="lft")
        return [to_node(record) for record in records]

    async def get_children(self, node_id: int) -> List[TreeNode]:
        # Trusts parent_id; an unknown id simply has no children.
        async with self._store.snapshot() as session:
            records = await session.select_many({"parent_id": node_id}, order_by="lft")
        return [to_node(record) for record in records]
