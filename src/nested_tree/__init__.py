"""
nested_tree: nested-set (modified preorder tree traversal) hierarchies in SQL.

Example:
    >>> from nested_tree import Database, NestedSetTree
    >>>
    >>> db = Database("sqlite:///catalog.db")
    >>> tree = NestedSetTree(db, "categories", name_field="title")
    >>> tree.insert_node(1).insert_node(2, parent_id=1)
    >>> tree.get_ancestors(2)
    [{'id': 1, 'title': 'Books'}]
"""

__version__ = "0.3.1"

from .exceptions import (
    NestedTreeError,
    DatabaseError,
    DatabaseConnectionError,
    NotConnectedError,
    QueryError,
    TransactionError,
    ConfigurationError,
    DataIntegrityError,
    InvalidMoveError,
    NodeAttachedError,
)
from .database import Database
from .tree import NestedSetTree, NodeBounds
from .schema import define_tree_table, create_tree_table
from .settings import TreeSettings, load_settings

__all__ = [
    "__version__",
    # Core
    "NestedSetTree",
    "NodeBounds",
    "Database",
    # Schema
    "define_tree_table",
    "create_tree_table",
    # Configuration
    "TreeSettings",
    "load_settings",
    # Exceptions
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
