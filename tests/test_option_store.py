import sqlite3
import tempfile
import unittest
from pathlib import Path

from release_manager.persistence.option_store import SqliteOptionStore


class TestSqliteOptionStore(unittest.TestCase):
    def test_get_returns_default_for_missing_key(self):
        with tempfile.TemporaryDirectory() as tmp:
            store = SqliteOptionStore(db_path=Path(tmp) / "nested" / "state.db")
            self.assertIsNone(store.get("missing"))
            self.assertEqual(store.get("missing", {}), {})
            self.assertTrue((Path(tmp) / "nested" / "state.db").exists())

    def test_set_overwrites_whole_value_and_survives_reopen(self):
        with tempfile.TemporaryDirectory() as tmp:
            db_path = Path(tmp) / "state.db"
            store = SqliteOptionStore(db_path=db_path)
            store.set("releases", {"a": {"plugin_name": "one"}})
            store.set("releases", {"b": {"plugin_name": "two"}})

            reopened = SqliteOptionStore(db_path=db_path)
            self.assertEqual(reopened.get("releases"), {"b": {"plugin_name": "two"}})

    def test_corrupt_value_falls_back_to_default(self):
        with tempfile.TemporaryDirectory() as tmp:
            db_path = Path(tmp) / "state.db"
            store = SqliteOptionStore(db_path=db_path)
            with sqlite3.connect(str(db_path)) as conn:
                conn.execute(
                    "INSERT INTO options (name, value, updated_at) VALUES (?, ?, ?)",
                    ("broken", "{not json", "2024-01-01T00:00:00+00:00"),
                )
            self.assertEqual(store.get("broken", "fallback"), "fallback")

    def test_unserialisable_value_raises(self):
        with tempfile.TemporaryDirectory() as tmp:
            store = SqliteOptionStore(db_path=Path(tmp) / "state.db")
            with self.assertRaises(TypeError):
                store.set("bad", {"value": object()})
