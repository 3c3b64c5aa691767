"""Pydantic models describing nested-set tree nodes."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict

# Columns owned by the nested-set logic. Caller payload never overrides them.
STRUCTURAL_KEYS = ("id", "parent_id", "lft", "rgt", "depth")
RESERVED_KEYS = frozenset(STRUCTURAL_KEYS)


class TreeNode(BaseModel):
    """A stored node: structural fields plus arbitrary payload attributes."""

    model_config = ConfigDict(extra="allow")

    id: int
    parent_id: Optional[int] = None
    lft: int
    rgt: int
    depth: int = 0

    @property
    def payload(self) -> Dict[str, Any]:
        return dict(self.model_extra or {})

    @property
    def size(self) -> int:
        """Number of nodes in the subtree rooted here, this node included."""
        return (self.rgt - self.lft + 1) // 2

    @property
    def is_leaf(self) -> bool:
        return self.rgt - self.lft == 1

    def to_record(self) -> Dict[str, Any]:
        return {**self.payload, **self.model_dump(include=set(STRUCTURAL_KEYS))}


class IntegrityIssue(BaseModel):
    """One violated nested-set rule found by the integrity check."""

    node_id: Optional[int] = None
    rule: str
    message: str


def merge_payload(payload: Optional[Mapping[str, Any]], **structural: Any) -> Dict[str, Any]:
    """Merge caller payload with computed structural fields; structural keys win."""

    row = {key: value for key, value in (payload or {}).items() if key not in RESERVED_KEYS}
    row.update(structural)
    return row


def to_node(record: Mapping[str, Any]) -> TreeNode:
    return TreeNode.model_validate(dict(record))
