from __future__ import annotations

from pathlib import Path
from typing import Optional, Protocol

from .models import DuplicateGroup, FileRecord, FingerprintResult, GroupBatch, ScanProgress


class FileRepository(Protocol):
    def get_all_files(self) -> list[FileRecord]: ...

    def get_file_by_id(self, file_id: int) -> Optional[FileRecord]: ...

    def delete_file(self, file_id: int) -> bool: ...

    def update_fingerprint(self, file_id: int, fingerprint: str, duration: Optional[int]) -> bool: ...

    def get_files_without_fingerprint(self) -> list[FileRecord]: ...


class FingerprintGenerator(Protocol):
    name: str

    def available(self) -> bool: ...

    def generate(self, path: Path, length: int) -> FingerprintResult: ...


class EventSink(Protocol):
    def publish_progress(self, progress: ScanProgress) -> None: ...

    def publish_groups(self, session_id: str, batch: GroupBatch) -> None: ...


class GroupingObserver(Protocol):
    """Receives clustering progress from DuplicateGroupingEngine."""

    def comparisons_completed(self, count: int) -> None: ...

    def anchor_processed(self, count: int) -> None: ...

    def group_found(self, group: DuplicateGroup) -> None: ...


def progress_channel(session_id: str) -> str:
    return f"duplicates/{session_id}"


def groups_channel(session_id: str) -> str:
    return f"duplicates/{session_id}/groups"
