"""Recompute intervals from parent references and verify stored intervals.

``rebuild_tree`` is the repair path when a tree is suspected to be
inconsistent; ``check_integrity`` tells whether that is the case.
"""

from __future__ import annotations

import asyncio
from bisect import bisect_left
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Tuple

from loguru import logger

from .errors import InvalidOperationError, WriteFailureError
from .models import IntegrityIssue, TreeNode, to_node
from .store import TreeStore, unit_of_work

Interval = Tuple[int, int, int]


def compute_intervals(rows: Iterable[Tuple[int, Optional[int]]]) -> Dict[int, Interval]:
    """Number a forest given as ``(id, parent_id)`` pairs in preorder.

    Siblings are visited in ascending id order. Returns ``{id: (lft, rgt, depth)}``.
    Raises ``InvalidOperationError`` when some rows cannot be reached from a
    root, i.e. the parent references contain a cycle or point at a missing row.
    """

    children: Dict[Optional[int], List[int]] = defaultdict(list)
    all_ids = []
    for node_id, parent_id in sorted(rows, key=lambda pair: pair[0]):
        children[parent_id].append(node_id)
        all_ids.append(node_id)

    intervals: Dict[int, Interval] = {}
    lefts: Dict[int, Tuple[int, int]] = {}
    counter = 1
    # (node_id, depth, leaving)
    stack: List[Tuple[int, int, bool]] = [(root, 0, False) for root in reversed(children[None])]
    while stack:
        node_id, depth, leaving = stack.pop()
        if leaving:
            lft, node_depth = lefts[node_id]
            intervals[node_id] = (lft, counter, node_depth)
            counter += 1
            continue
        if node_id in lefts:
            raise InvalidOperationError(f"Node {node_id} reached twice while rebuilding")
        lefts[node_id] = (counter, depth)
        counter += 1
        stack.append((node_id, depth, True))
        stack.extend((child, depth + 1, False) for child in reversed(children.get(node_id, [])))

    unreachable = [node_id for node_id in all_ids if node_id not in intervals]
    if unreachable:
        raise InvalidOperationError(
            f"parent_id references do not form a forest; unreachable nodes: {unreachable[:20]}"
        )
    return intervals


def find_issues(nodes: List[TreeNode]) -> List[IntegrityIssue]:
    """Check nodes (sorted by ``lft``) against the nested-set rules."""

    issues: List[IntegrityIssue] = []
    ids = {node.id for node in nodes}
    lefts = [node.lft for node in nodes]

    endpoints = sorted([node.lft for node in nodes] + [node.rgt for node in nodes])
    if endpoints != list(range(1, 2 * len(nodes) + 1)):
        issues.append(
            IntegrityIssue(rule="contiguous", message="lft/rgt values are not exactly 1..2n")
        )

    stack: List[TreeNode] = []
    for index, node in enumerate(nodes):
        if node.lft >= node.rgt:
            issues.append(
                IntegrityIssue(node_id=node.id, rule="lft<rgt", message=f"[{node.lft}, {node.rgt}]")
            )
            continue
        if (node.rgt - node.lft) % 2 != 1:
            issues.append(
                IntegrityIssue(node_id=node.id, rule="odd-width", message=f"[{node.lft}, {node.rgt}]")
            )
        else:
            inside = bisect_left(lefts, node.rgt) - index
            if inside != node.size:
                issues.append(
                    IntegrityIssue(
                        node_id=node.id,
                        rule="size",
                        message=f"interval holds {inside} nodes, width implies {node.size}",
                    )
                )

        while stack and stack[-1].rgt < node.lft:
            stack.pop()
        enclosing = stack[-1] if stack else None
        if enclosing is not None and node.rgt > enclosing.rgt:
            issues.append(
                IntegrityIssue(
                    node_id=node.id,
                    rule="overlap",
                    message=f"overlaps node {enclosing.id} without being contained",
                )
            )
        if node.depth != len(stack):
            issues.append(
                IntegrityIssue(
                    node_id=node.id,
                    rule="depth",
                    message=f"depth {node.depth}, {len(stack)} enclosing nodes",
                )
            )
        expected_parent = enclosing.id if enclosing else None
        if node.parent_id != expected_parent:
            detail = "" if node.parent_id is None or node.parent_id in ids else " (missing row)"
            issues.append(
                IntegrityIssue(
                    node_id=node.id,
                    rule="parent",
                    message=f"parent_id {node.parent_id}{detail}, enclosed by {expected_parent}",
                )
            )
        stack.append(node)
    return issues


class TreeRebuilder:
    def __init__(self, store: TreeStore, lock: Optional[asyncio.Lock] = None):
        self._store = store
        self._lock = lock or asyncio.Lock()

    async def rebuild_tree(self) -> int:
        """Rewrite every node's lft/rgt/depth from parent_id alone.

        Existing intervals are ignored. All rows are rewritten in one
        transaction; returns the number of rows rewritten.
        """

        async with unit_of_work(self._store, self._lock, "rebuild tree") as session:
            records = await session.select_many(order_by="id")
            intervals = compute_intervals(
                (record["id"], record.get("parent_id")) for record in records
            )
            for node_id, (lft, rgt, depth) in intervals.items():
                matched = await session.update_many(
                    {"id": node_id}, values={"lft": lft, "rgt": rgt, "depth": depth}
                )
                if matched != 1:
                    raise WriteFailureError(f"Rebuild could not update node {node_id}")

        logger.info(f"Rebuilt intervals for {len(intervals)} node(s)")
        return len(intervals)

    async def check_integrity(self) -> List[IntegrityIssue]:
        async with self._store.snapshot() as session:
            records = await session.select_many(order_by="lft")
        issues = find_issues([to_node(record) for record in records])
        if issues:
            logger.warning(f"Tree integrity check found {len(issues)} issue(s)")
        return issues

    async def is_consistent(self) -> bool:
        return not await self.check_integrity()
