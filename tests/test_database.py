"""
Tests for the SQLAlchemy Database collaborator.

Covers fetch shapes, affected-row counts, per-thread transactions and
error mapping onto the nested_tree exception hierarchy.
"""

import threading
import unittest

from nested_tree import (
    ConfigurationError,
    Database,
    DatabaseError,
    NotConnectedError,
    QueryError,
    TransactionError,
)


class TestDatabaseFetch(unittest.TestCase):
    """Statement execution and fetch helpers."""

    def setUp(self):
        self.db = Database("sqlite:///:memory:")
        self.db.execute(
            "CREATE TABLE items (id INTEGER PRIMARY KEY, name TEXT, weight INTEGER)"
        )
        self.db.execute(
            "INSERT INTO items (id, name, weight) VALUES (:id, :name, :weight)",
            [
                {"id": 1, "name": "anvil", "weight": 50},
                {"id": 2, "name": "brick", "weight": 3},
                {"id": 3, "name": "cork", "weight": 0},
            ],
        )

    def tearDown(self):
        self.db.close()

    def test_execute_returns_affected_rows(self):
        """UPDATE reports how many rows it touched."""
        count = self.db.execute("UPDATE items SET weight = weight + 1 WHERE weight < :w", {"w": 10})
        self.assertEqual(count, 2)

    def test_execute_with_empty_param_list_is_noop(self):
        """An empty executemany list does nothing and returns 0."""
        self.assertEqual(self.db.execute("DELETE FROM items WHERE id = :id", []), 0)
        self.assertEqual(self.db.get_one("SELECT COUNT(*) FROM items"), 3)

    def test_get_all_returns_dicts(self):
        rows = self.db.get_all("SELECT id, name FROM items ORDER BY id")
        self.assertEqual(
            rows,
            [{"id": 1, "name": "anvil"}, {"id": 2, "name": "brick"}, {"id": 3, "name": "cork"}],
        )

    def test_get_assoc_two_columns(self):
        """Two selected columns map key -> value."""
        self.assertEqual(
            self.db.get_assoc("SELECT id, name FROM items ORDER BY id"),
            {1: "anvil", 2: "brick", 3: "cork"},
        )

    def test_get_assoc_more_columns(self):
        """More columns map key -> dict of the rest."""
        assoc = self.db.get_assoc("SELECT id, name, weight FROM items WHERE id = 2")
        self.assertEqual(assoc, {2: {"name": "brick", "weight": 3}})

    def test_get_row(self):
        self.assertEqual(
            self.db.get_row("SELECT name, weight FROM items WHERE id = :id", {"id": 1}),
            {"name": "anvil", "weight": 50},
        )

    def test_get_row_missing_returns_empty_dict(self):
        self.assertEqual(self.db.get_row("SELECT * FROM items WHERE id = 99"), {})

    def test_get_col(self):
        self.assertEqual(
            self.db.get_col("SELECT name FROM items ORDER BY weight"),
            ["cork", "brick", "anvil"],
        )

    def test_get_one(self):
        self.assertEqual(self.db.get_one("SELECT MAX(weight) FROM items"), 50)
        self.assertIsNone(self.db.get_one("SELECT name FROM items WHERE id = 99"))

    def test_bad_statement_raises_query_error(self):
        """Driver errors surface as QueryError carrying the statement."""
        with self.assertRaises(QueryError) as ctx:
            self.db.get_all("SELECT * FROM no_such_table")
        self.assertIn("no_such_table", ctx.exception.statement)
        self.assertIsInstance(ctx.exception, DatabaseError)
        self.assertIsNotNone(ctx.exception.__cause__)

    def test_quote_identifier_dotted(self):
        """Schema-qualified names are quoted part by part."""
        self.assertEqual(self.db.quote_identifier("main.items"), "main.items")
        self.assertEqual(self.db.quote_identifier("order"), '"order"')


class TestDatabaseTransactions(unittest.TestCase):
    """begin / commit / rollback and the transaction() context manager."""

    def setUp(self):
        self.db = Database("sqlite:///:memory:")
        self.db.execute("CREATE TABLE log (id INTEGER PRIMARY KEY, msg TEXT)")

    def tearDown(self):
        self.db.close()

    def count(self):
        return self.db.get_one("SELECT COUNT(*) FROM log")

    def test_commit_persists(self):
        self.db.begin()
        self.assertTrue(self.db.in_transaction())
        self.db.execute("INSERT INTO log (msg) VALUES ('a')")
        self.db.commit()

        self.assertFalse(self.db.in_transaction())
        self.assertEqual(self.count(), 1)

    def test_rollback_discards(self):
        self.db.begin()
        self.db.execute("INSERT INTO log (msg) VALUES ('a')")
        self.assertEqual(self.count(), 1)
        self.db.rollback()

        self.assertFalse(self.db.in_transaction())
        self.assertEqual(self.count(), 0)

    def test_nested_begin_raises(self):
        self.db.begin()
        try:
            with self.assertRaises(TransactionError):
                self.db.begin()
        finally:
            self.db.rollback()

    def test_commit_without_transaction_raises(self):
        with self.assertRaises(TransactionError):
            self.db.commit()

    def test_rollback_without_transaction_raises(self):
        with self.assertRaises(TransactionError):
            self.db.rollback()

    def test_context_manager_commits(self):
        with self.db.transaction():
            self.db.execute("INSERT INTO log (msg) VALUES ('a')")
            self.db.execute("INSERT INTO log (msg) VALUES ('b')")
        self.assertEqual(self.count(), 2)
        self.assertFalse(self.db.in_transaction())

    def test_context_manager_rolls_back_and_reraises(self):
        with self.assertRaises(RuntimeError):
            with self.db.transaction():
                self.db.execute("INSERT INTO log (msg) VALUES ('a')")
                raise RuntimeError("boom")
        self.assertEqual(self.count(), 0)
        self.assertFalse(self.db.in_transaction())


class TestDatabaseLifecycle(unittest.TestCase):
    """Engine creation and close()."""

    def test_closed_database_raises(self):
        db = Database("sqlite:///:memory:")
        db.close()
        self.assertFalse(db.is_connected)
        with self.assertRaises(NotConnectedError):
            db.get_one("SELECT 1")

    def test_close_releases_other_threads_transactions(self):
        """A transaction left open by another thread is rolled back on close."""
        db = Database("sqlite:///:memory:")
        opened = []

        def worker():
            db.begin()
            opened.append(db._local.connection)

        thread = threading.Thread(target=worker)
        thread.start()
        thread.join()

        with self.assertLogs("nested_tree.database", level="WARNING"):
            db.close()
        self.assertTrue(opened[0].closed)
        self.assertEqual(db._open, set())

    def test_close_is_idempotent(self):
        db = Database("sqlite:///:memory:")
        db.close()
        db.close()

    def test_context_manager_closes(self):
        with Database("sqlite:///:memory:") as db:
            self.assertEqual(db.get_one("SELECT 1"), 1)
        self.assertFalse(db.is_connected)

    def test_lazy_engine(self):
        """A lazy database creates its engine on first use."""
        db = Database("sqlite:///:memory:", lazy=True)
        self.assertIsNone(db._engine)
        self.assertEqual(db.get_one("SELECT 2"), 2)
        self.assertIsNotNone(db._engine)
        db.close()

    def test_unknown_dialect_raises_configuration_error(self):
        with self.assertRaises(ConfigurationError):
            Database("nosuchdialect://localhost/db")

    def test_repr(self):
        db = Database("sqlite:///:memory:", lazy=True)
        self.assertEqual(repr(db), "Database('sqlite:///:memory:')")


if __name__ == "__main__":
    unittest.main()
