"""Insert, move and delete operations on the nested-set intervals.

Every operation runs as one unit of work (see ``store.unit_of_work``): the
interval shifts are issued in order inside a single transaction and either
all of them commit or none do.
"""

from __future__ import annotations

import asyncio
from typing import Any, List, Mapping, Optional

from loguru import logger

from .errors import InvalidOperationError
from .models import TreeNode, merge_payload
from .reader import fetch_node
from .store import Shift, TreeSession, TreeStore, unit_of_work


async def _open_gap(session: TreeSession, at: int, width: int) -> None:
    # rgt first so the enclosing parent's own rgt is widened too
    await session.update_many({"rgt": {"$gte": at}}, shifts={"rgt": Shift(offset=width)})
    await session.update_many({"lft": {"$gte": at}}, shifts={"lft": Shift(offset=width)})


async def _close_gap(session: TreeSession, after: int, width: int) -> None:
    await session.update_many({"lft": {"$gt": after}}, shifts={"lft": Shift(offset=-width)})
    await session.update_many({"rgt": {"$gt": after}}, shifts={"rgt": Shift(offset=-width)})


class TreeMutator:
    """Structural writes. Callers share ``lock`` with any other writer of the same tree."""

    def __init__(self, store: TreeStore, lock: Optional[asyncio.Lock] = None):
        self._store = store
        self._lock = lock or asyncio.Lock()

    async def insert_root(self, payload: Optional[Mapping[str, Any]] = None) -> int:
        """Append a new root to the right of every existing top-level node."""

        async with unit_of_work(self._store, self._lock, "insert root node") as session:
            max_rgt = await session.max_value("rgt") or 0
            row = merge_payload(
                payload, parent_id=None, lft=max_rgt + 1, rgt=max_rgt + 2, depth=0
            )
            node_id = await session.insert(row)

        logger.info(f"Inserted root node {node_id} at [{row['lft']}, {row['rgt']}]")
        return node_id

    async def insert_child(
        self, parent_id: int, payload: Optional[Mapping[str, Any]] = None
    ) -> int:
        """Insert a node as the last child of ``parent_id``."""

        async with unit_of_work(self._store, self._lock, "insert child node") as session:
            parent = await fetch_node(session, parent_id)
            insert_at = parent.rgt
            await _open_gap(session, insert_at, 2)
            row = merge_payload(
                payload,
                parent_id=parent_id,
                lft=insert_at,
                rgt=insert_at + 1,
                depth=parent.depth + 1,
            )
            node_id = await session.insert(row)

        logger.info(f"Inserted node {node_id} under {parent_id} at [{insert_at}, {insert_at + 1}]")
        return node_id

    async def move_subtree(self, node_id: int, new_parent_id: int) -> TreeNode:
        """
        Relocate the subtree rooted at ``node_id`` to be the last child of
        ``new_parent_id``.

        The subtree is first marked by negating its intervals so that closing
        the gap it leaves behind cannot touch it, then re-homed into a gap
        opened at the new parent's right edge.
        """

        if node_id == new_parent_id:
            raise InvalidOperationError(f"Cannot move node {node_id} under itself")

        async with unit_of_work(self._store, self._lock, f"move node {node_id}") as session:
            node = await fetch_node(session, node_id)
            new_parent = await fetch_node(session, new_parent_id)
            if node.lft <= new_parent.lft and new_parent.rgt <= node.rgt:
                raise InvalidOperationError(
                    f"Cannot move node {node_id} inside its own subtree (target {new_parent_id})"
                )

            node_lft, node_rgt = node.lft, node.rgt
            width = node_rgt - node_lft + 1
            target = new_parent.rgt

            await _open_gap(session, target, width)
            if node_lft >= target:
                node_lft += width
                node_rgt += width
            logger.debug(f"Opened gap of {width} at {target}; subtree now at [{node_lft}, {node_rgt}]")

            await session.update_many(
                {"lft": {"$gte": node_lft}, "rgt": {"$lte": node_rgt}},
                shifts={"lft": Shift(scale=-1), "rgt": Shift(scale=-1)},
            )
            await _close_gap(session, node_rgt, width)

            # Closing the vacated gap pulls a gap on its right back by width.
            new_lft = target - width if target > node_rgt else target
            offset = new_lft - node_lft
            depth_delta = new_parent.depth + 1 - node.depth
            await session.update_many(
                {"lft": {"$lt": 0}},
                shifts={
                    "lft": Shift(scale=-1, offset=offset),
                    "rgt": Shift(scale=-1, offset=offset),
                    "depth": Shift(offset=depth_delta),
                },
            )
            await session.update_many({"id": node_id}, values={"parent_id": new_parent_id})
            moved = await fetch_node(session, node_id)

        logger.info(
            f"Moved subtree {node_id} ({node.size} nodes) under {new_parent_id} "
            f"to [{moved.lft}, {moved.rgt}]"
        )
        return moved

    async def delete_node(self, node_id: int, delete_subtree: bool = True) -> List[int]:
        """Delete a node (and by default its subtree); returns removed ids in preorder.

        Without ``delete_subtree`` a node that still has children is refused;
        children are never re-parented implicitly.
        """

        async with unit_of_work(self._store, self._lock, f"delete node {node_id}") as session:
            node = await fetch_node(session, node_id)
            if delete_subtree:
                where = {"lft": {"$gte": node.lft}, "rgt": {"$lte": node.rgt}}
                removed = [record["id"] for record in await session.select_many(where)]
                width = node.rgt - node.lft + 1
            else:
                children = await session.count({"parent_id": node_id})
                if children:
                    raise InvalidOperationError(
                        f"Node {node_id} has {children} children; pass delete_subtree=True "
                        "to remove the subtree"
                    )
                where = {"id": node_id}
                removed = [node_id]
                width = 2

            await session.delete_many(where)
            await _close_gap(session, node.rgt, width)

        logger.info(f"Deleted {len(removed)} node(s) rooted at {node_id}")
        return removed
