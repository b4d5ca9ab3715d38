"""Tests for the SQLite preferences store and persisted history."""
from __future__ import annotations

import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path

from homeguard.models import AlarmRecord
from homeguard.store import HISTORY_KEY, HistoryStore, PreferenceStore


def _records(count: int):
    start = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)
    kinds = ("away", "security")
    return [
        AlarmRecord(
            id=str(1_000 + index),
            timestamp=start + timedelta(minutes=index),
            reason=f"event {index}",
            type=kinds[index % 2],
        )
        for index in range(count)
    ]


class HistoryStoreTest(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.db_path = Path(self._tmp.name, "nested", "history.sqlite3")

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_missing_key_is_empty_history(self) -> None:
        store = HistoryStore.open(self.db_path)
        self.assertEqual(store.load(), [])
        self.assertIsNone(store.preferences.get_string_list(HISTORY_KEY))
        store.close()

    def test_round_trip_preserves_order(self) -> None:
        for count in (0, 1, 5):
            with self.subTest(count=count):
                store = HistoryStore.open(self.db_path)
                records = _records(count)
                self.assertTrue(store.save(records))
                store.close()

                reopened = HistoryStore.open(self.db_path)
                self.assertEqual(reopened.load(), records)
                reopened.close()

    def test_records_are_stored_as_json_strings_under_fixed_key(self) -> None:
        store = HistoryStore.open(self.db_path)
        store.save(_records(2))
        raw = store.preferences.get_string_list("alarmHistory")
        self.assertEqual(len(raw), 2)
        self.assertTrue(raw[0].startswith('{"id":"1000"'))
        store.close()

    def test_malformed_entries_are_skipped(self) -> None:
        preferences = PreferenceStore(self.db_path)
        good = _records(1)[0]
        preferences.set_string_list(HISTORY_KEY, ["not json", '{"id": "1"}', good.to_json()])
        store = HistoryStore(preferences)
        self.assertEqual(store.load(), [good])
        store.close()

    def test_overwrite_replaces_the_list(self) -> None:
        preferences = PreferenceStore(self.db_path)
        preferences.set_string_list("k", ["a"])
        preferences.set_string_list("k", ["b", "c"])
        self.assertEqual(preferences.get_string_list("k"), ["b", "c"])
        preferences.set_string_list("k", [])
        self.assertEqual(preferences.get_string_list("k"), [])
        preferences.dispose()


if __name__ == "__main__":
    unittest.main()
