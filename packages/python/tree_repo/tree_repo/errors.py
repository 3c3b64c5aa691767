"""Domain-level errors for the nested-set tree repository."""

from typing import Optional


class TreeError(Exception):
    """Base class for every error raised by the tree repository."""


class NodeNotFoundError(TreeError):
    """Raised when a referenced node id does not exist."""

    def __init__(self, node_id: int, message: Optional[str] = None):
        self.node_id = node_id
        super().__init__(message or f"Node {node_id} not found")


class InvalidOperationError(TreeError):
    """Raised when a requested mutation would break the tree structure."""


class WriteFailureError(TreeError):
    """Raised when a mutation could not be committed; it has been rolled back."""


class StorageError(TreeError):
    """Raised by storage adapters for any backend-level failure."""
