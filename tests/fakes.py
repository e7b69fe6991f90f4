"""Shared in-memory collaborators for the duplicate engine tests."""

from __future__ import annotations

import random
from dataclasses import replace
from pathlib import Path
from threading import Event, Lock
from typing import Dict, Iterable, List, Optional

from audio_dedup.errors import FingerprintError
from audio_dedup.models import FileRecord, FingerprintResult


def make_record(file_id: int, path: str | Path | None = None, **fields) -> FileRecord:
    if path is None:
        path = f"/music/file{file_id}.mp3"
    return FileRecord(id=file_id, path=Path(path), **fields)


def pattern(seed: int, length: int = 32) -> List[int]:
    rng = random.Random(seed)
    return [rng.getrandbits(32) for _ in range(length)]


def encode(values: Iterable[int]) -> str:
    return ",".join(str(value) for value in values)


def flip_bits(values: List[int], bits_per_value: int) -> List[int]:
    """Copy of ``values`` with the lowest ``bits_per_value`` bits of every entry flipped."""
    mask = (1 << bits_per_value) - 1
    return [value ^ mask for value in values]


class FakeRepository:
    def __init__(self, records: Iterable[FileRecord] = ()) -> None:
        self._records: Dict[int, FileRecord] = {record.id: record for record in records}
        self._lock = Lock()
        self.deleted: List[int] = []
        self.load_calls = 0

    def get_all_files(self) -> List[FileRecord]:
        with self._lock:
            self.load_calls += 1
            return [self._records[key] for key in sorted(self._records)]

    def get_file_by_id(self, file_id: int) -> Optional[FileRecord]:
        with self._lock:
            return self._records.get(file_id)

    def delete_file(self, file_id: int) -> bool:
        with self._lock:
            if file_id not in self._records:
                return False
            del self._records[file_id]
            self.deleted.append(file_id)
            return True

    def update_fingerprint(self, file_id: int, fingerprint: str, duration: Optional[int]) -> bool:
        with self._lock:
            record = self._records.get(file_id)
            if record is None:
                return False
            self._records[file_id] = replace(record, fingerprint=fingerprint, fingerprint_duration=duration)
            return True

    def get_files_without_fingerprint(self) -> List[FileRecord]:
        with self._lock:
            return [
                self._records[key] for key in sorted(self._records) if not self._records[key].has_fingerprint
            ]


class BlockingRepository(FakeRepository):
    """Holds ``get_all_files`` until ``release`` is set."""

    def __init__(self, records: Iterable[FileRecord] = ()) -> None:
        super().__init__(records)
        self.entered = Event()
        self.release = Event()

    def get_all_files(self) -> List[FileRecord]:
        self.entered.set()
        self.release.wait(5)
        return super().get_all_files()


class FailingRepository(FakeRepository):
    def get_all_files(self) -> List[FileRecord]:
        raise RuntimeError("database is locked")


class FakeGenerator:
    name = "fake"

    def __init__(self, results: Optional[Dict[str, FingerprintResult]] = None, is_available: bool = True) -> None:
        self.results = results or {}
        self.is_available = is_available
        self.calls: List[str] = []
        self._lock = Lock()

    def available(self) -> bool:
        return self.is_available

    def generate(self, path: Path, length: int) -> FingerprintResult:
        with self._lock:
            self.calls.append(str(path))
        result = self.results.get(Path(path).name)
        if result is None:
            raise FingerprintError(str(path), "decoder failed")
        return result


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds
