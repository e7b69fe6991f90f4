from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from threading import Lock
from typing import Optional

from .models import FileRecord

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id",
    "path",
    "title",
    "artist",
    "album",
    "album_artist",
    "genre",
    "track_number",
    "year",
    "duration_seconds",
    "bitrate",
    "sample_rate",
    "fingerprint",
    "fingerprint_duration",
    "file_size",
    "file_type",
)
_SELECT = f"SELECT {', '.join(_COLUMNS)} FROM files"


class LibraryStore:
    """SQLite-backed file record store shared by the indexer and the duplicate engine."""

    def __init__(self, path: Path, delete_from_disk: bool = True) -> None:
        self.path = path
        self.delete_from_disk = delete_from_disk
        if str(path) != ":memory:":
            self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = Lock()
        self._conn = sqlite3.connect(str(self.path), check_same_thread=False)
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS files (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                path TEXT NOT NULL UNIQUE,
                title TEXT,
                artist TEXT,
                album TEXT,
                album_artist TEXT,
                genre TEXT,
                track_number INTEGER,
                year INTEGER,
                duration_seconds INTEGER,
                bitrate INTEGER,
                sample_rate INTEGER,
                fingerprint TEXT,
                fingerprint_duration INTEGER,
                file_size INTEGER,
                file_type TEXT,
                mtime_ns INTEGER NOT NULL DEFAULT 0
            )
            """
        )
        self._conn.execute("CREATE INDEX IF NOT EXISTS files_fingerprint ON files(fingerprint)")
        self._conn.commit()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __enter__(self) -> "LibraryStore":
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()

    def count(self) -> int:
        with self._lock:
            row = self._conn.execute("SELECT COUNT(*) FROM files").fetchone()
        return int(row[0])

    def fingerprinted_count(self) -> int:
        with self._lock:
            row = self._conn.execute(
                "SELECT COUNT(*) FROM files WHERE fingerprint IS NOT NULL AND TRIM(fingerprint) != ''"
            ).fetchone()
        return int(row[0])

    def get_all_files(self) -> list[FileRecord]:
        with self._lock:
            rows = self._conn.execute(f"{_SELECT} ORDER BY id").fetchall()
        return [self._row_to_record(row) for row in rows]

    def get_file_by_id(self, file_id: int) -> Optional[FileRecord]:
        with self._lock:
            row = self._conn.execute(f"{_SELECT} WHERE id = ?", (int(file_id),)).fetchone()
        return self._row_to_record(row) if row else None

    def get_file_by_path(self, path: Path | str) -> Optional[FileRecord]:
        with self._lock:
            row = self._conn.execute(f"{_SELECT} WHERE path = ?", (str(path),)).fetchone()
        return self._row_to_record(row) if row else None

    def get_files_without_fingerprint(self) -> list[FileRecord]:
        with self._lock:
            rows = self._conn.execute(
                f"{_SELECT} WHERE fingerprint IS NULL OR TRIM(fingerprint) = '' ORDER BY id"
            ).fetchall()
        return [self._row_to_record(row) for row in rows]

    def get_mtime(self, path: Path | str) -> Optional[tuple[int, int]]:
        """Stored (mtime_ns, size) for ``path``, used to skip unchanged files on re-index."""
        with self._lock:
            row = self._conn.execute(
                "SELECT mtime_ns, file_size FROM files WHERE path = ?", (str(path),)
            ).fetchone()
        if not row:
            return None
        return int(row[0] or 0), int(row[1] or 0)

    def upsert(self, record: FileRecord, mtime_ns: int = 0) -> FileRecord:
        """Insert or update by path. A changed file loses its stored fingerprint."""
        values = (
            str(record.path),
            record.title,
            record.artist,
            record.album,
            record.album_artist,
            record.genre,
            record.track_number,
            record.year,
            record.duration_seconds,
            record.bitrate,
            record.sample_rate,
            record.fingerprint,
            record.fingerprint_duration,
            record.file_size,
            record.file_type,
            int(mtime_ns),
        )
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO files(path, title, artist, album, album_artist, genre, track_number, year,
                                  duration_seconds, bitrate, sample_rate, fingerprint, fingerprint_duration,
                                  file_size, file_type, mtime_ns)
                VALUES(?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(path) DO UPDATE SET
                    title=excluded.title,
                    artist=excluded.artist,
                    album=excluded.album,
                    album_artist=excluded.album_artist,
                    genre=excluded.genre,
                    track_number=excluded.track_number,
                    year=excluded.year,
                    duration_seconds=excluded.duration_seconds,
                    bitrate=excluded.bitrate,
                    sample_rate=excluded.sample_rate,
                    fingerprint=COALESCE(excluded.fingerprint,
                        CASE WHEN files.mtime_ns = excluded.mtime_ns AND files.file_size IS excluded.file_size
                             THEN files.fingerprint END),
                    fingerprint_duration=COALESCE(excluded.fingerprint_duration,
                        CASE WHEN files.mtime_ns = excluded.mtime_ns AND files.file_size IS excluded.file_size
                             THEN files.fingerprint_duration END),
                    file_size=excluded.file_size,
                    file_type=excluded.file_type,
                    mtime_ns=excluded.mtime_ns
                """,
                values,
            )
            self._conn.commit()
            row = self._conn.execute(f"{_SELECT} WHERE path = ?", (str(record.path),)).fetchone()
        return self._row_to_record(row)

    def update_fingerprint(self, file_id: int, fingerprint: str, duration: Optional[int]) -> bool:
        with self._lock:
            cursor = self._conn.execute(
                "UPDATE files SET fingerprint = ?, fingerprint_duration = ? WHERE id = ?",
                (fingerprint, duration, int(file_id)),
            )
            self._conn.commit()
        return cursor.rowcount > 0

    def delete_file(self, file_id: int) -> bool:
        """Remove the record and, unless disabled, the file itself. A file already gone is fine."""
        record = self.get_file_by_id(file_id)
        if record is None:
            return False
        if self.delete_from_disk:
            try:
                Path(record.path).unlink()
            except FileNotFoundError:
                logger.debug("File %s was already gone", record.path)
            except OSError as exc:
                logger.warning("Could not delete %s: %s", record.path, exc)
                return False
        with self._lock:
            cursor = self._conn.execute("DELETE FROM files WHERE id = ?", (int(file_id),))
            self._conn.commit()
        return cursor.rowcount > 0

    def remove_missing(self) -> int:
        """Drop records whose file no longer exists on disk."""
        missing = [record.id for record in self.get_all_files() if not Path(record.path).exists()]
        if not missing:
            return 0
        with self._lock:
            self._conn.executemany("DELETE FROM files WHERE id = ?", [(file_id,) for file_id in missing])
            self._conn.commit()
        logger.info("Removed %d records for files that no longer exist", len(missing))
        return len(missing)

    @staticmethod
    def _row_to_record(row: tuple) -> FileRecord:
        data = dict(zip(_COLUMNS, row))
        data["path"] = Path(data["path"])
        return FileRecord(**data)

