"""
Table definition helper for nested-set trees.

NestedSetTree never creates or alters tables; it works on any table that
has ``id``, ``parent_id``, ``lft``, ``rgt`` and a display-name column. This
helper builds such a table for bootstrapping, tests and the CLI ``init``
command.
"""

import logging

from sqlalchemy import Column, Index, Integer, MetaData, String, Table
from sqlalchemy.exc import SQLAlchemyError

from .database import Database
from .exceptions import QueryError

logger = logging.getLogger(__name__)


def define_tree_table(
    metadata: MetaData,
    table_name: str,
    name_field: str = "name",
) -> Table:
    """
    Define a nested-set table on the given metadata.

    ``lft``/``rgt`` are nullable: NULL marks a row that is not (or no
    longer) placed in the tree.

    Args:
        metadata: SQLAlchemy MetaData to attach the table to
        table_name: Table name, optionally "schema.table"
        name_field: Display-name column used for ordering and paths

    Returns:
        The SQLAlchemy Table
    """
    schema, _, name = table_name.rpartition(".")
    return Table(
        name,
        metadata,
        Column("id", Integer, primary_key=True, autoincrement=False),
        Column("parent_id", Integer, nullable=True),
        Column(name_field, String(255), nullable=False, default=""),
        Column("lft", Integer, nullable=True),
        Column("rgt", Integer, nullable=True),
        Index(f"idx_{name}_lft", "lft"),
        Index(f"idx_{name}_rgt", "rgt"),
        Index(f"idx_{name}_parent", "parent_id"),
        schema=schema or None,
    )


def create_tree_table(
    database: Database,
    table_name: str,
    name_field: str = "name",
) -> Table:
    """
    Create the nested-set table (and its indexes) if it does not exist.

    Returns:
        The SQLAlchemy Table

    Raises:
        QueryError: If the DDL fails
    """
    metadata = MetaData()
    table = define_tree_table(metadata, table_name, name_field)
    try:
        metadata.create_all(database._get_engine(), checkfirst=True)
    except SQLAlchemyError as e:
        raise QueryError(f"Cannot create table {table_name}: {e}") from e
    logger.debug("Ensured tree table %s exists", table_name)
    return table


__all__ = ["define_tree_table", "create_tree_table"]
