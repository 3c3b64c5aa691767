"""Nested-set (MPTT) tree repository: interval-encoded hierarchies in a flat table."""

from .config import TreeSettings, settings
from .errors import (
    InvalidOperationError,
    NodeNotFoundError,
    StorageError,
    TreeError,
    WriteFailureError,
)
from .models import IntegrityIssue, TreeNode
from .mongo_store import MongoTreeStore
from .mutator import TreeMutator
from .reader import TreeReader
from .rebuilder import TreeRebuilder
from .store import Shift, TreeSession, TreeStore
from .sqlite_store import SqliteTreeStore
from .tree import NestedSetTree, build_store, build_tree

__all__ = [
    "TreeSettings",
    "settings",
    "TreeError",
    "NodeNotFoundError",
    "InvalidOperationError",
    "WriteFailureError",
    "StorageError",
    "IntegrityIssue",
    "TreeNode",
    "MongoTreeStore",
    "TreeMutator",
    "TreeReader",
    "TreeRebuilder",
    "Shift",
    "TreeSession",
    "TreeStore",
    "SqliteTreeStore",
    "NestedSetTree",
    "build_store",
    "build_tree",
]
