import tempfile
import unittest
from pathlib import Path

from audio_dedup.store import LibraryStore

from fakes import make_record


class TestLibraryStore(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.root = Path(self._tmp.name)
        self.store = LibraryStore(self.root / "db" / "library.sqlite3")
        self.addCleanup(self.store.close)

    def _audio(self, name: str) -> Path:
        path = self.root / name
        path.write_bytes(b"audio")
        return path

    def test_upsert_assigns_ids_and_round_trips_fields(self) -> None:
        path = self._audio("a.mp3")
        stored = self.store.upsert(make_record(0, path, title="Song", bitrate=320, file_size=5), mtime_ns=1)
        self.assertGreater(stored.id, 0)
        self.assertEqual(stored.title, "Song")
        self.assertEqual(stored.path, path)
        self.assertEqual(self.store.get_file_by_path(path).id, stored.id)
        self.assertEqual(self.store.get_mtime(path), (1, 5))
        self.assertEqual(self.store.count(), 1)

    def test_unchanged_file_keeps_fingerprint(self) -> None:
        path = self._audio("a.mp3")
        stored = self.store.upsert(make_record(0, path, file_size=5), mtime_ns=1)
        self.assertTrue(self.store.update_fingerprint(stored.id, "1,2,3", 180))
        again = self.store.upsert(make_record(0, path, title="Retagged", file_size=5), mtime_ns=1)
        self.assertEqual(again.id, stored.id)
        self.assertEqual(again.fingerprint, "1,2,3")
        self.assertEqual(again.title, "Retagged")
        self.assertEqual(self.store.fingerprinted_count(), 1)

    def test_changed_file_loses_fingerprint(self) -> None:
        path = self._audio("a.mp3")
        stored = self.store.upsert(make_record(0, path, file_size=5), mtime_ns=1)
        self.store.update_fingerprint(stored.id, "1,2,3", 180)
        again = self.store.upsert(make_record(0, path, file_size=5), mtime_ns=2)
        self.assertIsNone(again.fingerprint)
        self.assertEqual([record.id for record in self.store.get_files_without_fingerprint()], [stored.id])

    def test_delete_removes_record_and_file(self) -> None:
        path = self._audio("a.mp3")
        stored = self.store.upsert(make_record(0, path), mtime_ns=1)
        self.assertTrue(self.store.delete_file(stored.id))
        self.assertFalse(path.exists())
        self.assertIsNone(self.store.get_file_by_id(stored.id))
        self.assertFalse(self.store.delete_file(stored.id))

    def test_delete_tolerates_file_already_gone(self) -> None:
        stored = self.store.upsert(make_record(0, self.root / "never.mp3"), mtime_ns=1)
        self.assertTrue(self.store.delete_file(stored.id))

    def test_remove_missing(self) -> None:
        kept = self.store.upsert(make_record(0, self._audio("a.mp3")), mtime_ns=1)
        self.store.upsert(make_record(0, self.root / "gone.mp3"), mtime_ns=1)
        self.assertEqual(self.store.remove_missing(), 1)
        self.assertEqual([record.id for record in self.store.get_all_files()], [kept.id])

    def test_records_only_mode_leaves_files(self) -> None:
        store = LibraryStore(self.root / "other.sqlite3", delete_from_disk=False)
        self.addCleanup(store.close)
        path = self._audio("b.mp3")
        stored = store.upsert(make_record(0, path), mtime_ns=1)
        self.assertTrue(store.delete_file(stored.id))
        self.assertTrue(path.exists())


if __name__ == "__main__":
    unittest.main()
