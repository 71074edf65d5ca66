"""
Exception classes for nested_tree.

This module has zero dependencies so that every other module (database,
tree, settings, cli) can import it without pulling in optional packages.

Hierarchy:
    NestedTreeError
    ├── DatabaseError                  underlying store failures
    │   ├── DatabaseConnectionError
    │   ├── NotConnectedError
    │   ├── QueryError
    │   └── TransactionError
    ├── ConfigurationError             invalid settings (also a ValueError)
    ├── DataIntegrityError             corrupted lft/rgt or parent_id data
    ├── InvalidMoveError               move into own subtree (also a ValueError)
    └── NodeAttachedError              insert of an already placed row (also a ValueError)

Requested ids that do not exist are never errors: reads return empty results
and writes are no-ops.
"""

from typing import Any, List, Optional


class NestedTreeError(Exception):
    """Base exception for all nested_tree errors."""

    pass


class DatabaseError(NestedTreeError):
    """
    A statement or transaction failed in the underlying database.

    The driver exception is chained as ``__cause__``.
    """

    def __init__(self, message: str = "An unknown database error occurred"):
        super().__init__(message)


class DatabaseConnectionError(DatabaseError):
    """Raised when a connection to the database could not be established."""

    def __init__(self, message: str = "An error occurred connecting to the database"):
        super().__init__(message)


class NotConnectedError(DatabaseError):
    """Raised when the database has been closed."""

    def __init__(self, message: str = "The database is not connected"):
        super().__init__(message)


class QueryError(DatabaseError):
    """Raised when a statement fails to execute."""

    def __init__(
        self,
        message: str = "An error occurred executing a database query",
        statement: Optional[str] = None,
    ):
        super().__init__(message)
        self.statement = statement


class TransactionError(DatabaseError):
    """Raised when begin/commit/rollback is misused or fails."""

    pass


class ConfigurationError(NestedTreeError, ValueError):
    """Raised when tree settings are invalid."""

    pass


class DataIntegrityError(NestedTreeError):
    """
    Raised when boundary indices or parent links are inconsistent.

    Attributes:
        node_id: Row the fault was detected on, if known.
        details: Extra context (e.g. the ids forming a parent_id cycle).
    """

    def __init__(
        self,
        message: str,
        node_id: Any = None,
        details: Optional[List[Any]] = None,
    ):
        super().__init__(message)
        self.node_id = node_id
        self.details = details or []


class InvalidMoveError(NestedTreeError, ValueError):
    """Raised when a node would be moved into itself or its own subtree."""

    def __init__(self, node_id: Any, parent_id: Any):
        super().__init__(
            f"Cannot move node {node_id!r} under {parent_id!r}: "
            "target is the node itself or one of its descendants"
        )
        self.node_id = node_id
        self.parent_id = parent_id


class NodeAttachedError(NestedTreeError, ValueError):
    """Raised when insert_node is called for a row that already has boundaries."""

    def __init__(self, node_id: Any):
        super().__init__(
            f"Node {node_id!r} is already part of the tree; use move_node() instead"
        )
        self.node_id = node_id


__all__ = [
    "NestedTreeError",
    "DatabaseError",
    "DatabaseConnectionError",
    "NotConnectedError",
    "QueryError",
    "TransactionError",
    "ConfigurationError",
    "DataIntegrityError",
    "InvalidMoveError",
    "NodeAttachedError",
]
