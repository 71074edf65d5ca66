"""
Tests for the integrity helpers plus property-based checks that random
sequences of tree writes keep the nested-set invariants.
"""

import unittest

from hypothesis import given, settings
from hypothesis import strategies as st

from nested_tree import InvalidMoveError, NestedSetTree, NodeAttachedError
from nested_tree.integrity import check_intervals, find_parent_cycle

from tree_fixtures import TABLE, assert_nested_set, load_rows, make_database


def is_root(parent_id):
    return parent_id is None


class TestFindParentCycle(unittest.TestCase):
    def test_no_cycle(self):
        self.assertEqual(find_parent_cycle({1: None, 2: 1, 3: 1, 4: 3}), [])

    def test_two_node_cycle(self):
        self.assertEqual(set(find_parent_cycle({1: None, 2: 3, 3: 2})), {2, 3})

    def test_self_reference(self):
        self.assertEqual(find_parent_cycle({1: 1}), [1])

    def test_missing_parent_is_not_a_cycle(self):
        self.assertEqual(find_parent_cycle({1: 99, 2: 1}), [])

    def test_empty(self):
        self.assertEqual(find_parent_cycle({}), [])


class TestCheckIntervals(unittest.TestCase):
    def rows(self, *items):
        return [{"id": i, "parent_id": p, "lft": l, "rgt": r} for i, p, l, r in items]

    def test_consistent(self):
        rows = self.rows((1, None, 1, 6), (2, 1, 2, 3), (3, 1, 4, 5), (4, None, 7, 8))
        self.assertEqual(check_intervals(rows, is_root), [])

    def test_sibling_recorded_as_child(self):
        rows = self.rows((1, None, 1, 4), (2, 1, 2, 3), (3, 2, 5, 6))
        problems = check_intervals(rows, is_root)
        self.assertEqual(problems, ["node 3: top-level by boundaries but parent_id is 2"])

    def test_custom_root_predicate(self):
        rows = self.rows((1, 0, 1, 2))
        self.assertEqual(check_intervals(rows, lambda p: p in (None, 0)), [])


ids = st.integers(min_value=1, max_value=6)
operations = st.lists(
    st.tuples(
        st.sampled_from(["insert", "remove", "move"]),
        ids,
        st.one_of(st.none(), ids),
    ),
    max_size=25,
)


class TestWriteInvariants(unittest.TestCase):
    """Any sequence of inserts, removes and moves keeps the tree valid."""

    def apply(self, tree, op, node_id, parent_id):
        try:
            if op == "insert":
                tree.insert_node(node_id, parent_id)
            elif op == "remove":
                tree.remove_node(node_id)
            else:
                tree.move_node(node_id, parent_id)
        except (NodeAttachedError, InvalidMoveError):
            pass

    @settings(max_examples=60, deadline=None)
    @given(operations)
    def test_random_writes_keep_invariants(self, ops):
        db = make_database()
        try:
            load_rows(db, [(i, None, f"n{i}", None, None) for i in range(1, 7)])
            tree = NestedSetTree(db, TABLE)

            for op, node_id, parent_id in ops:
                self.apply(tree, op, node_id, parent_id)
                assert_nested_set(self, db)

            self.assertEqual(tree.verify(), [])
            for node_id in range(1, 7):
                node = tree.get_node(node_id)
                if not node.attached:
                    continue
                self.assertEqual(
                    tree.count_descendants(node_id), len(tree.get_descendants(node_id))
                )
                ancestors = tree.get_ancestors(node_id)
                expected_parent = ancestors[-1]["id"] if ancestors else None
                self.assertEqual(node.parent_id, expected_parent)
        finally:
            db.close()

    @settings(max_examples=30, deadline=None)
    @given(operations)
    def test_rebuild_reproduces_boundaries(self, ops):
        """After any writes, rebuilding from parent_id yields a valid tree."""
        db = make_database()
        try:
            load_rows(db, [(i, None, f"n{i}", None, None) for i in range(1, 7)])
            tree = NestedSetTree(db, TABLE)
            for op, node_id, parent_id in ops:
                self.apply(tree, op, node_id, parent_id)

            tree.rebuild(sort=True)

            assert_nested_set(self, db)
            self.assertEqual(tree.verify(), [])
        finally:
            db.close()


if __name__ == "__main__":
    unittest.main()
