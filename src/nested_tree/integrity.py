"""
Consistency checks for nested-set data.

These helpers work on plain row dicts so they can be used both by
NestedSetTree.verify() and by rebuild(), which must refuse to number rows
whose parent_id links form a cycle.
"""

from collections import Counter
from typing import Any, Callable, Dict, Iterable, List

import networkx as nx


def find_parent_cycle(parent_map: Dict[Any, Any]) -> List[Any]:
    """
    Find one cycle in child -> parent links.

    Args:
        parent_map: Mapping of node id to its parent_id (None for roots)

    Returns:
        Ids forming the cycle, in link order, or an empty list
    """
    graph = nx.DiGraph()
    graph.add_edges_from(
        (child, parent) for child, parent in parent_map.items() if parent is not None
    )
    try:
        edges = nx.find_cycle(graph)
    except nx.NetworkXNoCycle:
        return []
    return [edge[0] for edge in edges]


def check_intervals(
    rows: Iterable[Dict[str, Any]],
    is_root: Callable[[Any], bool],
) -> List[str]:
    """
    Check attached rows against the nested-set invariants.

    ``rows`` must be ordered by ``lft`` and contain ``id``, ``parent_id``,
    ``lft`` and ``rgt``. The interval-derived parent of every row (the
    innermost interval containing it) is compared with its ``parent_id``.

    Returns:
        Human-readable problem descriptions (empty when consistent)
    """
    problems: List[str] = []
    boundaries: Counter = Counter()
    stack: List[Dict[str, Any]] = []

    for row in rows:
        node_id, lft, rgt = row["id"], int(row["lft"]), int(row["rgt"])
        boundaries.update((lft, rgt))

        if rgt <= lft:
            problems.append(f"node {node_id!r}: rgt ({rgt}) is not greater than lft ({lft})")
            continue
        if (rgt - lft - 1) % 2:
            problems.append(f"node {node_id!r}: odd interval width ({lft}, {rgt})")

        while stack and lft > stack[-1]["rgt"]:
            stack.pop()

        if stack and rgt > stack[-1]["rgt"]:
            enclosing = stack[-1]
            problems.append(
                f"node {node_id!r} ({lft}, {rgt}) partially overlaps "
                f"node {enclosing['id']!r} ({enclosing['lft']}, {enclosing['rgt']})"
            )
        else:
            expected = stack[-1]["id"] if stack else None
            actual = row["parent_id"]
            if expected is None:
                if not is_root(actual):
                    problems.append(
                        f"node {node_id!r}: top-level by boundaries but parent_id is {actual!r}"
                    )
            elif actual != expected:
                problems.append(
                    f"node {node_id!r}: boundaries place it under {expected!r} "
                    f"but parent_id is {actual!r}"
                )

        stack.append({"id": node_id, "lft": lft, "rgt": rgt})

    for value, count in sorted(boundaries.items()):
        if count > 1:
            problems.append(f"boundary value {value} is used {count} times")

    return problems


__all__ = ["find_parent_cycle", "check_intervals"]
