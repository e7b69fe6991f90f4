from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional

from mutagen import File as MutagenFile
from mutagen import MutagenError

from .models import FileRecord, parse_int, parse_year
from .scanner import LibraryScanner
from .store import LibraryStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class IndexSummary:
    scanned: int = 0
    indexed: int = 0
    unchanged: int = 0
    failed: int = 0
    removed: int = 0

    def to_record(self) -> dict[str, int]:
        return {
            "scanned": self.scanned,
            "indexed": self.indexed,
            "unchanged": self.unchanged,
            "failed": self.failed,
            "removed": self.removed,
        }


class TagReader:
    """Reads descriptive tags and stream info through mutagen's easy interface."""

    def read(self, path: Path) -> Optional[FileRecord]:
        try:
            audio = MutagenFile(path, easy=True)
        except (MutagenError, OSError) as exc:
            logger.warning("Could not read tags from %s: %s", path, exc)
            return None
        if audio is None:
            logger.debug("Unsupported audio format %s", path)
            return None
        tags = audio.tags or {}
        info = getattr(audio, "info", None)
        length = getattr(info, "length", None)
        bitrate = getattr(info, "bitrate", None)
        sample_rate = getattr(info, "sample_rate", None)
        try:
            size = path.stat().st_size
        except OSError:
            size = None
        return FileRecord(
            id=0,
            path=path,
            title=self._first(tags, "title"),
            artist=self._first(tags, "artist"),
            album=self._first(tags, "album"),
            album_artist=self._first(tags, "albumartist"),
            genre=self._first(tags, "genre"),
            track_number=parse_int(self._first(tags, "tracknumber")),
            year=parse_year(self._first(tags, "date") or self._first(tags, "year")),
            duration_seconds=int(round(length)) if length else None,
            bitrate=int(bitrate // 1000) if bitrate else None,
            sample_rate=int(sample_rate) if sample_rate else None,
            file_size=size,
            file_type=path.suffix.lower().lstrip(".") or None,
        )

    @staticmethod
    def _first(tags: Any, key: str) -> Optional[str]:
        try:
            values = tags.get(key)
        except (KeyError, ValueError):
            return None
        if not values:
            return None
        if isinstance(values, (list, tuple)):
            values = values[0]
        text = str(values).strip()
        return text or None


class LibraryIndexer:
    def __init__(
        self,
        store: LibraryStore,
        scanner: LibraryScanner,
        reader: Optional[TagReader] = None,
    ) -> None:
        self.store = store
        self.scanner = scanner
        self.reader = reader or TagReader()

    def index(
        self,
        *,
        force: bool = False,
        prune: bool = True,
        progress: Optional[Callable[[int, Path], None]] = None,
    ) -> IndexSummary:
        summary = IndexSummary()
        for path in self.scanner.iter_files():
            summary.scanned += 1
            if progress:
                progress(summary.scanned, path)
            try:
                stat = path.stat()
            except OSError as exc:
                logger.warning("Skipping %s: %s", path, exc)
                summary.failed += 1
                continue
            if not force and self.store.get_mtime(path) == (stat.st_mtime_ns, stat.st_size):
                summary.unchanged += 1
                continue
            record = self.reader.read(path)
            if record is None:
                summary.failed += 1
                continue
            self.store.upsert(record, mtime_ns=stat.st_mtime_ns)
            summary.indexed += 1
        if prune:
            summary.removed = self.store.remove_missing()
        logger.info(
            "Indexed %d files (%d unchanged, %d failed, %d removed)",
            summary.indexed,
            summary.unchanged,
            summary.failed,
            summary.removed,
        )
        return summary
