"""
Nested-set (modified preorder tree traversal) engine.

A tree is stored in a flat table: every row carries ``parent_id`` plus two
boundary indices, ``lft`` and ``rgt``, such that

    - descendants of a node are the rows with ``lft`` strictly inside the
      node's ``(lft, rgt)`` interval
    - ancestors of a node are the rows whose interval strictly contains it
    - ``(rgt - lft - 1) / 2`` is the number of descendants

so subtree, ancestor-chain and depth queries are single range scans.

    Example tree                 Boundaries
    ------------                 ----------
    A                            A (1, 10)
    ├── B                        B (2, 5)
    │   └── C                    C (3, 4)
    └── D                        D (6, 9)
        └── E                    E (7, 8)

The engine only manages ``lft``, ``rgt`` and ``parent_id``. Creating and
deleting the rows themselves is up to the caller. Rows whose boundaries are
NULL (or equal) are *detached*: not part of the tree, and treated as
not-found by every range-based read.

Every write that touches more than one row runs in a transaction. If the
caller already has one open the engine joins it and leaves commit/rollback
to the caller; otherwise the engine begins, commits, or rolls back and
re-raises on failure.

Example:
    >>> from nested_tree import Database, NestedSetTree
    >>>
    >>> db = Database("sqlite:///categories.db")
    >>> tree = NestedSetTree(db, "categories")
    >>> tree.insert_node(1)                  # top-level node
    >>> tree.insert_node(2, parent_id=1)     # child of 1
    >>> tree.get_descendants(1)
    [{'id': 2, 'name': 'Books', 'depth': 1}]
    >>> tree.move_node(2, 7)
    >>> tree.rebuild(sort=True)              # repair from parent_id alone
"""

import logging
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .database import Database
from .exceptions import (
    ConfigurationError,
    DataIntegrityError,
    InvalidMoveError,
    NodeAttachedError,
    TransactionError,
)
from .integrity import check_intervals, find_parent_cycle

logger = logging.getLogger(__name__)

_EXHAUSTED = object()


@dataclass(frozen=True)
class NodeBounds:
    """Boundary state of a single row."""

    id: Any
    parent_id: Any
    lft: Optional[int]
    rgt: Optional[int]

    @property
    def attached(self) -> bool:
        """True if the row has usable boundaries."""
        return self.lft is not None and self.rgt is not None and self.lft != self.rgt

    @property
    def width(self) -> int:
        """Span of the interval including the node's own pair."""
        return self.rgt - self.lft + 1

    def contains(self, other: "NodeBounds") -> bool:
        """True if ``other`` is this node or lies inside it."""
        return self.lft <= other.lft and other.rgt <= self.rgt


def _as_int(value: Any) -> Optional[int]:
    return None if value is None else int(value)


class NestedSetTree:
    """
    Maintains nested-set boundaries for a caller-owned table.

    Args:
        database: Relational collaborator used for every statement
        table_name: Table holding the tree rows
        name_field: Display-name column, used for sibling ordering and paths
        root_id: Sentinel parent_id of top-level rows. NULL is always treated
                 as top-level; set this to e.g. 0 when the table uses a
                 numeric sentinel.

    Raises:
        ConfigurationError: If table_name or name_field is empty
    """

    def __init__(
        self,
        database: Database,
        table_name: str,
        name_field: str = "name",
        root_id: Any = None,
    ):
        if not table_name or not table_name.strip():
            raise ConfigurationError("table_name cannot be empty")
        if not name_field or not name_field.strip():
            raise ConfigurationError("name_field cannot be empty")

        self._db = database
        self._table_name = table_name
        self._name_field = name_field
        self._root_id = root_id

        self._table = database.quote_identifier(table_name)
        self._name = database.quote_identifier(name_field)

    @property
    def database(self) -> Database:
        return self._db

    @property
    def table_name(self) -> str:
        return self._table_name

    @property
    def name_field(self) -> str:
        return self._name_field

    @property
    def root_id(self) -> Any:
        return self._root_id

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _is_root(self, parent_id: Any) -> bool:
        return parent_id is None or (
            self._root_id is not None and parent_id == self._root_id
        )

    def _parent_clause(self, parent_id: Any) -> Tuple[str, Dict[str, Any]]:
        """WHERE clause selecting the direct children of ``parent_id``."""
        if not self._is_root(parent_id):
            return "parent_id = :parent_id", {"parent_id": parent_id}
        if self._root_id is None:
            return "parent_id IS NULL", {}
        return "(parent_id IS NULL OR parent_id = :parent_id)", {
            "parent_id": self._root_id
        }

    def _find_node(self, node_id: Any) -> Optional[NodeBounds]:
        row = self._db.get_row(
            f"SELECT id, parent_id, lft, rgt FROM {self._table} WHERE id = :id",
            {"id": node_id},
        )
        if not row:
            return None
        return NodeBounds(
            id=row["id"],
            parent_id=row["parent_id"],
            lft=_as_int(row["lft"]),
            rgt=_as_int(row["rgt"]),
        )

    def _find_attached(self, node_id: Any) -> Optional[NodeBounds]:
        node = self._find_node(node_id)
        if node is None or not node.attached:
            return None
        return node

    def _count_ancestors(self, node: NodeBounds) -> int:
        count = self._db.get_one(
            f"SELECT COUNT(*) FROM {self._table} WHERE lft < :lft AND rgt > :rgt",
            {"lft": node.lft, "rgt": node.rgt},
        )
        return int(count or 0)

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[None]:
        """Join the caller's transaction, or own one for this operation."""
        if self._db.in_transaction():
            yield
            return

        self._db.begin()
        try:
            yield
        except BaseException as e:
            logger.debug("%s failed on %s, rolling back", operation, self._table_name)
            try:
                self._db.rollback()
            except TransactionError:
                # keep the original failure as the raised exception
                logger.error(
                    "Rollback of %s on %s failed after: %r",
                    operation,
                    self._table_name,
                    e,
                    exc_info=True,
                )
            raise
        self._db.commit()

    # =========================================================================
    # READ OPERATIONS
    # =========================================================================

    def get_node(self, node_id: Any) -> Optional[NodeBounds]:
        """
        Look up a row's boundary state.

        Returns:
            NodeBounds, or None if the row does not exist
        """
        return self._find_node(node_id)

    def count_ancestors(self, node_id: Any) -> int:
        """Number of nodes strictly containing ``node_id`` (0 if not found)."""
        node = self._find_attached(node_id)
        if node is None:
            return 0
        return self._count_ancestors(node)

    def get_ancestors(self, node_id: Any) -> List[Dict[str, Any]]:
        """
        Get the ancestor chain of a node, root first.

        Returns:
            List of {"id", <name_field>} dicts ordered from the top-level
            ancestor down to the direct parent (excludes the node itself)

        Example:
            >>> tree.get_ancestors(5)
            [{'id': 1, 'name': 'A'}, {'id': 4, 'name': 'D'}]
        """
        node = self._find_attached(node_id)
        if node is None:
            return []
        return self._db.get_all(
            f"""
            SELECT id, {self._name}
              FROM {self._table}
             WHERE lft < :lft
               AND rgt > :rgt
          ORDER BY lft ASC
            """,
            {"lft": node.lft, "rgt": node.rgt},
        )

    def count_siblings(self, node_id: Any) -> int:
        """Number of other rows sharing ``node_id``'s parent_id."""
        node = self._find_node(node_id)
        if node is None:
            return 0
        clause, params = self._parent_clause(node.parent_id)
        count = self._db.get_one(
            f"SELECT COUNT(*) FROM {self._table} WHERE {clause}", params
        )
        return max(int(count or 0) - 1, 0)

    def get_siblings(self, node_id: Any) -> List[Dict[str, Any]]:
        """
        Get all rows sharing ``node_id``'s parent_id, the node included.

        Returns:
            List of {"id", <name_field>} dicts ordered by name
        """
        node = self._find_node(node_id)
        if node is None:
            return []
        clause, params = self._parent_clause(node.parent_id)
        return self._db.get_all(
            f"SELECT id, {self._name} FROM {self._table} WHERE {clause} "
            f"ORDER BY {self._name} ASC, id ASC",
            params,
        )

    def count_children(self, node_id: Any) -> int:
        """
        Number of direct children.

        Passing the root sentinel (None or ``root_id``) counts top-level rows.
        """
        if not self._is_root(node_id) and self._find_node(node_id) is None:
            return 0
        clause, params = self._parent_clause(node_id)
        count = self._db.get_one(
            f"SELECT COUNT(*) FROM {self._table} WHERE {clause}", params
        )
        return int(count or 0)

    def get_children(self, node_id: Any) -> List[Dict[str, Any]]:
        """
        Get direct children ordered by name.

        Passing the root sentinel (None or ``root_id``) lists top-level rows.
        """
        if not self._is_root(node_id) and self._find_node(node_id) is None:
            return []
        clause, params = self._parent_clause(node_id)
        return self._db.get_all(
            f"SELECT id, {self._name} FROM {self._table} WHERE {clause} "
            f"ORDER BY {self._name} ASC, id ASC",
            params,
        )

    def count_descendants(self, node_id: Any) -> int:
        """
        Number of descendants, derived from the interval width.

        Raises:
            DataIntegrityError: If the width does not encode a whole number
                                of descendants
        """
        node = self._find_attached(node_id)
        if node is None:
            return 0
        span = node.rgt - node.lft - 1
        if span < 0 or span % 2:
            raise DataIntegrityError(
                f"Node {node_id!r} has an invalid interval ({node.lft}, {node.rgt})",
                node_id=node_id,
            )
        return span // 2

    def get_descendants(
        self,
        node_id: Any,
        absolute_depth: bool = False,
    ) -> List[Dict[str, Any]]:
        """
        Get every descendant in preorder with its depth.

        Depth is computed in one pass over the lft-ordered rows using a stack
        of the ``rgt`` values of the open subtrees.

        Args:
            node_id: Subtree root
            absolute_depth: Measure depth from the top of the whole tree
                            instead of from ``node_id``

        Returns:
            List of {"id", <name_field>, "depth"} dicts; direct children have
            depth 1 (relative) or ancestors + 1 (absolute)

        Raises:
            DataIntegrityError: If the subtree's intervals are not nested
        """
        node = self._find_attached(node_id)
        if node is None:
            return []

        rows = self._db.get_all(
            f"""
            SELECT id, {self._name}, lft, rgt
              FROM {self._table}
             WHERE lft > :lft
               AND lft < :rgt
          ORDER BY lft ASC
            """,
            {"lft": node.lft, "rgt": node.rgt},
        )

        offset = self._count_ancestors(node) if absolute_depth else 0

        stack: List[int] = []
        descendants = []
        for row in rows:
            lft = row.pop("lft")
            rgt = row.pop("rgt")
            if rgt is None:
                raise DataIntegrityError(
                    f"Node {row['id']!r} has lft {lft} but no rgt",
                    node_id=row["id"],
                )
            lft, rgt = int(lft), int(rgt)

            if rgt <= lft or rgt >= node.rgt:
                raise DataIntegrityError(
                    f"Node {row['id']!r} has interval ({lft}, {rgt}) outside "
                    f"its ancestor {node_id!r} ({node.lft}, {node.rgt})",
                    node_id=row["id"],
                )

            # left past the top subtree's right edge: that subtree is closed
            while stack and lft > stack[-1]:
                stack.pop()

            if stack and rgt > stack[-1]:
                raise DataIntegrityError(
                    f"Node {row['id']!r} ({lft}, {rgt}) partially overlaps "
                    f"an enclosing interval ending at {stack[-1]}",
                    node_id=row["id"],
                )

            row["depth"] = offset + len(stack) + 1

            if rgt - lft > 1:
                stack.append(rgt)

            descendants.append(row)

        return descendants

    def get_tree(
        self,
        node_id: Any,
        max_depth: int = 0,
        sort: bool = False,
    ) -> List[Dict[str, Any]]:
        """
        Get a subtree (node included) with absolute depth and materialized path.

        Args:
            node_id: Subtree root
            max_depth: Levels below ``node_id`` to include (0 = unlimited)
            sort: Order by path instead of preorder

        Returns:
            List of {"id", <name_field>, "depth", "path"} dicts. ``depth`` is
            the number of ancestors in the whole tree; ``path`` joins the
            names from ``node_id`` down with ".".

        Example:
            >>> tree.get_tree(1, max_depth=1)
            [{'id': 1, 'name': 'A', 'depth': 0, 'path': 'A'},
             {'id': 2, 'name': 'B', 'depth': 1, 'path': 'A.B'},
             {'id': 4, 'name': 'D', 'depth': 1, 'path': 'A.D'}]
        """
        node = self._find_attached(node_id)
        if node is None:
            return []

        rows = self._db.get_all(
            f"""
            SELECT n.id, n.{self._name}, COUNT(p.id) - 1 AS depth
              FROM {self._table} n, {self._table} p
             WHERE n.lft BETWEEN p.lft AND p.rgt
               AND n.lft BETWEEN :lft AND :rgt
               AND n.rgt > n.lft
               AND p.rgt > p.lft
          GROUP BY n.id, n.{self._name}, n.lft
          ORDER BY n.lft
            """,
            {"lft": node.lft, "rgt": node.rgt},
        )

        # depth values are absolute, so shift the limit by the node's own depth
        if max_depth:
            max_depth += self._count_ancestors(node)

        tree = []
        path: List[str] = []
        base_depth = None
        for item in rows:
            depth = int(item["depth"])
            if max_depth and depth > max_depth:
                continue
            if base_depth is None:
                base_depth = depth

            del path[depth - base_depth:]
            name = item[self._name_field]
            path.append("" if name is None else str(name))

            item["depth"] = depth
            item["path"] = ".".join(path)
            tree.append(item)

        if sort:
            tree.sort(key=lambda item: item["path"])

        return tree

    def visualise(
        self,
        node_id: Any,
        max_depth: int = 0,
        sort: bool = False,
    ) -> Dict[Any, str]:
        """
        Render a subtree as indented text lines.

        Indentation is relative to ``node_id``, one ``"|-- "`` per level.

        Returns:
            Ordered mapping of id to rendered line

        Example:
            >>> for line in tree.visualise(1).values():
            ...     print(line)
            A
            |-- B
            |-- |-- C
            |-- D
            |-- |-- E
        """
        data = self.get_tree(node_id, max_depth, sort)
        if not data:
            return {}

        base_depth = data[0]["depth"]
        return {
            item["id"]: "|-- " * (item["depth"] - base_depth)
            + ("" if item[self._name_field] is None else str(item[self._name_field]))
            for item in data
        }

    # =========================================================================
    # WRITE OPERATIONS
    # =========================================================================

    def insert_node(self, node_id: Any, parent_id: Any = None) -> "NestedSetTree":
        """
        Place an existing, detached row as the last child of ``parent_id``.

        With the root sentinel (default) the row becomes the last top-level
        node. The row's parent_id is set to match. Missing rows or a missing
        parent make this a no-op.

        Raises:
            NodeAttachedError: If the row already has boundaries
        """
        with self._transaction("insert_node"):
            node = self._find_node(node_id)
            if node is None:
                logger.debug("insert_node: node %r not found", node_id)
                return self
            if node.attached:
                raise NodeAttachedError(node_id)

            if self._is_root(parent_id):
                max_rgt = self._db.get_one(
                    f"SELECT MAX(rgt) FROM {self._table} WHERE rgt > lft"
                )
                lft = int(max_rgt or 0) + 1
                parent_id = self._root_id
            else:
                parent = self._find_attached(parent_id)
                if parent is None:
                    logger.debug("insert_node: parent %r not found", parent_id)
                    return self

                # widen enclosing intervals first, then shift everything to the right
                self._db.execute(
                    f"UPDATE {self._table} SET rgt = rgt + 2 WHERE rgt >= :rgt",
                    {"rgt": parent.rgt},
                )
                self._db.execute(
                    f"UPDATE {self._table} SET lft = lft + 2 WHERE lft >= :rgt",
                    {"rgt": parent.rgt},
                )
                lft = parent.rgt

            self._db.execute(
                f"UPDATE {self._table} SET lft = :lft, rgt = :rgt, parent_id = :parent_id "
                f"WHERE id = :id",
                {"lft": lft, "rgt": lft + 1, "parent_id": parent_id, "id": node_id},
            )

        logger.debug("Inserted node %r under %r at lft=%d", node_id, parent_id, lft)
        return self

    def remove_node(self, node_id: Any) -> "NestedSetTree":
        """
        Take a node and its whole subtree out of the tree.

        The subtree's rows are detached (NULL boundaries), not deleted;
        deleting them is the caller's job. The gap is closed so the rest of
        the tree stays contiguous. No-op if the node is not found.
        """
        with self._transaction("remove_node"):
            node = self._find_attached(node_id)
            if node is None:
                logger.debug("remove_node: node %r not found", node_id)
                return self

            diff = node.width

            self._db.execute(
                f"UPDATE {self._table} SET lft = NULL, rgt = NULL "
                f"WHERE lft BETWEEN :lft AND :rgt",
                {"lft": node.lft, "rgt": node.rgt},
            )
            self._db.execute(
                f"UPDATE {self._table} SET lft = lft - :diff WHERE lft >= :lft",
                {"diff": diff, "lft": node.lft},
            )
            self._db.execute(
                f"UPDATE {self._table} SET rgt = rgt - :diff WHERE rgt >= :rgt",
                {"diff": diff, "rgt": node.rgt},
            )

        logger.debug("Removed node %r (width %d)", node_id, diff)
        return self

    def move_node(self, node_id: Any, parent_id: Any) -> "NestedSetTree":
        """
        Move a subtree to become the last child of ``parent_id``.

        The subtree keeps its internal shape. Passing the root sentinel makes
        it the last top-level tree. No-op if either node is not found.

        Phases (order matters, each re-reads the parent):
            1. negate the subtree's boundaries, relative to its own lft
            2. close the gap it left
            3. open a gap before the new parent's rgt
            4. flip the negated rows back into the gap

        Raises:
            InvalidMoveError: If ``parent_id`` is the node or one of its
                              descendants
        """
        with self._transaction("move_node"):
            node = self._find_attached(node_id)
            if node is None:
                logger.debug("move_node: node %r not found", node_id)
                return self

            to_root = self._is_root(parent_id)
            if not to_root:
                parent = self._find_attached(parent_id)
                if parent is None:
                    logger.debug("move_node: parent %r not found", parent_id)
                    return self
                if node.contains(parent):
                    raise InvalidMoveError(node_id, parent_id)

            diff = node.width

            self._db.execute(
                f"UPDATE {self._table} "
                f"SET lft = -(lft - :lft + 1), rgt = -(rgt - :lft + 1) "
                f"WHERE lft >= :lft AND rgt <= :rgt",
                {"lft": node.lft, "rgt": node.rgt},
            )

            self._db.execute(
                f"UPDATE {self._table} SET lft = lft - :diff WHERE lft > :lft",
                {"diff": diff, "lft": node.lft},
            )
            self._db.execute(
                f"UPDATE {self._table} SET rgt = rgt - :diff WHERE rgt > :rgt",
                {"diff": diff, "rgt": node.rgt},
            )

            if to_root:
                max_rgt = self._db.get_one(
                    f"SELECT MAX(rgt) FROM {self._table} WHERE rgt > 0 AND rgt > lft"
                )
                # a virtual parent just past the right edge of the whole tree
                target_rgt = int(max_rgt or 0) + diff + 1
                parent_id = self._root_id
            else:
                parent = self._find_node(parent_id)
                self._db.execute(
                    f"UPDATE {self._table} SET lft = lft + :diff WHERE lft > :rgt",
                    {"diff": diff, "rgt": parent.rgt},
                )
                self._db.execute(
                    f"UPDATE {self._table} SET rgt = rgt + :diff WHERE rgt >= :rgt",
                    {"diff": diff, "rgt": parent.rgt},
                )
                parent = self._find_node(parent_id)
                target_rgt = parent.rgt

            self._db.execute(
                f"UPDATE {self._table} SET lft = :target - :diff - lft - 1 WHERE lft < 0",
                {"target": target_rgt, "diff": diff},
            )
            self._db.execute(
                f"UPDATE {self._table} SET rgt = :target - :diff - rgt - 1 WHERE rgt < 0",
                {"target": target_rgt, "diff": diff},
            )
            self._db.execute(
                f"UPDATE {self._table} SET parent_id = :parent_id WHERE id = :id",
                {"parent_id": parent_id, "id": node_id},
            )

        logger.debug("Moved node %r under %r (width %d)", node_id, parent_id, diff)
        return self

    def rebuild(self, sort: bool = False) -> "NestedSetTree":
        """
        Recompute every row's boundaries from parent_id alone.

        Use this to repair corrupted boundaries or to populate a table that
        was maintained through parent_id only. The whole table is rewritten
        in one transaction.

        Args:
            sort: Order siblings by name; otherwise the table's scan order
                  is used

        Raises:
            DataIntegrityError: If parent_id links contain a cycle

        Note:
            Rows whose parent_id references a missing row cannot be reached
            from the top level; they are left detached and logged.
        """
        with self._transaction("rebuild"):
            order = f" ORDER BY {self._name} ASC, id ASC" if sort else ""
            rows = self._db.get_all(
                f"SELECT id, parent_id FROM {self._table}{order}"
            )

            roots: List[Any] = []
            children: Dict[Any, List[Any]] = defaultdict(list)
            for row in rows:
                if self._is_root(row["parent_id"]):
                    roots.append(row["id"])
                else:
                    children[row["parent_id"]].append(row["id"])

            bounds = self._number_preorder(roots, children)

            unplaced = {
                row["id"]: row["parent_id"] for row in rows if row["id"] not in bounds
            }
            if unplaced:
                cycle = find_parent_cycle(unplaced)
                if cycle:
                    raise DataIntegrityError(
                        f"parent_id links form a cycle: {cycle}",
                        node_id=cycle[0],
                        details=cycle,
                    )
                logger.warning(
                    "rebuild of %s left %d row(s) with a missing parent detached: %s",
                    self._table_name,
                    len(unplaced),
                    sorted(unplaced, key=str),
                )

            self._db.execute(f"UPDATE {self._table} SET lft = NULL, rgt = NULL")
            self._db.execute(
                f"UPDATE {self._table} SET lft = :lft, rgt = :rgt WHERE id = :id",
                [
                    {"id": node_id, "lft": lft, "rgt": rgt}
                    for node_id, (lft, rgt) in bounds.items()
                ],
            )

        logger.debug("Rebuilt %s: %d node(s) placed", self._table_name, len(bounds))
        return self

    @staticmethod
    def _number_preorder(
        roots: List[Any],
        children: Dict[Any, List[Any]],
    ) -> Dict[Any, Tuple[int, int]]:
        """Assign (lft, rgt) by an iterative preorder walk."""
        bounds: Dict[Any, Tuple[int, int]] = {}
        lefts: Dict[Any, int] = {}
        counter = 1

        for root in roots:
            lefts[root] = counter
            counter += 1
            stack = [(root, iter(children.get(root, ())))]

            while stack:
                current, pending = stack[-1]
                child = next(pending, _EXHAUSTED)
                if child is _EXHAUSTED:
                    stack.pop()
                    bounds[current] = (lefts.pop(current), counter)
                    counter += 1
                else:
                    lefts[child] = counter
                    counter += 1
                    stack.append((child, iter(children.get(child, ()))))

        return bounds

    def verify(self) -> List[str]:
        """
        Check the table against the nested-set invariants.

        Returns:
            Problem descriptions; an empty list means the tree is consistent
        """
        rows = self._db.get_all(f"SELECT id, parent_id, lft, rgt FROM {self._table}")

        problems = []
        cycle = find_parent_cycle({row["id"]: row["parent_id"] for row in rows})
        if cycle:
            problems.append(f"parent_id links form a cycle: {cycle}")

        attached = []
        for row in rows:
            lft, rgt = row["lft"], row["rgt"]
            if lft is None and rgt is None:
                continue
            if lft is None or rgt is None:
                problems.append(
                    f"node {row['id']!r}: only one boundary is set ({lft}, {rgt})"
                )
            elif lft == rgt:
                # detached rows carry NULL boundaries, never a zero-width interval
                problems.append(f"node {row['id']!r}: zero-width interval ({lft}, {rgt})")
            else:
                attached.append(row)

        attached.sort(key=lambda row: int(row["lft"]))
        problems.extend(check_intervals(attached, self._is_root))

        for problem in problems:
            logger.debug("verify %s: %s", self._table_name, problem)
        return problems

    def __repr__(self) -> str:
        return f"NestedSetTree({self._table_name!r}, name_field={self._name_field!r})"


__all__ = ["NestedSetTree", "NodeBounds"]
