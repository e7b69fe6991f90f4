import os
import tempfile
import unittest
from pathlib import Path

from audio_dedup.config import LibrarySettings
from audio_dedup.indexer import LibraryIndexer
from audio_dedup.scanner import LibraryScanner
from audio_dedup.store import LibraryStore

from fakes import make_record


class StaticReader:
    """Tag reader that derives a title from the file name."""

    def __init__(self) -> None:
        self.reads = []

    def read(self, path: Path):
        self.reads.append(path.name)
        if path.name.startswith("corrupt"):
            return None
        return make_record(0, path, title=path.stem, file_size=path.stat().st_size)


class TestLibraryScanner(unittest.TestCase):
    def test_extension_and_exclude_filters(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            (root / "Album").mkdir()
            for name in ("Album/01.MP3", "Album/02.flac", "Album/cover.jpg", "Album/._01.mp3", "notes.txt"):
                (root / name).write_bytes(b"x")
            settings = LibrarySettings(roots=[str(root)], exclude_patterns=["._*"])
            names = [path.name for path in LibraryScanner(settings).iter_files()]
            self.assertEqual(names, ["01.MP3", "02.flac"])

    def test_missing_root_is_skipped(self) -> None:
        settings = LibrarySettings(roots=["/definitely/not/here"])
        self.assertEqual(list(LibraryScanner(settings).iter_files()), [])

    def test_extensions_without_dot(self) -> None:
        scanner = LibraryScanner(LibrarySettings(include_extensions=["OGG"]))
        self.assertTrue(scanner.should_include(Path("/x/song.ogg")))
        self.assertFalse(scanner.should_include(Path("/x/song.mp3")))


class TestLibraryIndexer(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.root = Path(self._tmp.name) / "music"
        self.root.mkdir()
        self.store = LibraryStore(Path(self._tmp.name) / "library.sqlite3")
        self.addCleanup(self.store.close)
        self.reader = StaticReader()
        scanner = LibraryScanner(LibrarySettings(roots=[str(self.root)]))
        self.indexer = LibraryIndexer(self.store, scanner, self.reader)

    def test_indexes_then_skips_unchanged(self) -> None:
        (self.root / "a.mp3").write_bytes(b"one")
        (self.root / "corrupt.mp3").write_bytes(b"two")
        first = self.indexer.index()
        self.assertEqual((first.scanned, first.indexed, first.failed), (2, 1, 1))
        self.assertEqual(self.store.get_all_files()[0].title, "a")

        second = self.indexer.index()
        self.assertEqual((second.indexed, second.unchanged), (0, 1))
        self.assertEqual(self.reader.reads.count("a.mp3"), 1)

        forced = self.indexer.index(force=True)
        self.assertEqual(forced.indexed, 1)

    def test_changed_file_is_reread(self) -> None:
        path = self.root / "a.mp3"
        path.write_bytes(b"one")
        self.indexer.index()
        path.write_bytes(b"longer content")
        stat = path.stat()
        os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns + 1_000_000_000))
        summary = self.indexer.index()
        self.assertEqual(summary.indexed, 1)

    def test_prunes_deleted_files(self) -> None:
        path = self.root / "a.mp3"
        path.write_bytes(b"one")
        self.indexer.index()
        path.unlink()
        summary = self.indexer.index()
        self.assertEqual(summary.removed, 1)
        self.assertEqual(self.store.count(), 0)


if __name__ == "__main__":
    unittest.main()
