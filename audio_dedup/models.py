from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

METADATA_FIELDS = ("title", "artist", "album", "genre", "track_number", "year")


@dataclass(frozen=True, slots=True)
class FileRecord:
    id: int
    path: Path
    title: Optional[str] = None
    artist: Optional[str] = None
    album: Optional[str] = None
    album_artist: Optional[str] = None
    genre: Optional[str] = None
    track_number: Optional[int] = None
    year: Optional[int] = None
    duration_seconds: Optional[int] = None
    bitrate: Optional[int] = None
    sample_rate: Optional[int] = None
    fingerprint: Optional[str] = None
    fingerprint_duration: Optional[int] = None
    file_size: Optional[int] = None
    file_type: Optional[str] = None

    @property
    def has_fingerprint(self) -> bool:
        return bool(self.fingerprint and self.fingerprint.strip())

    @property
    def directory(self) -> Path:
        return Path(self.path).parent

    def metadata_score(self) -> int:
        """Number of populated descriptive fields (title, artist, album, genre, track, year)."""
        score = 0
        for name in METADATA_FIELDS:
            value = getattr(self, name)
            if value is None:
                continue
            if isinstance(value, str) and not value.strip():
                continue
            score += 1
        return score

    def to_record(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "path": str(self.path),
            "title": self.title,
            "artist": self.artist,
            "album": self.album,
            "album_artist": self.album_artist,
            "genre": self.genre,
            "track_number": self.track_number,
            "year": self.year,
            "duration_seconds": self.duration_seconds,
            "bitrate": self.bitrate,
            "sample_rate": self.sample_rate,
            "fingerprint": "<omitted>" if self.has_fingerprint else None,
            "fingerprint_duration": self.fingerprint_duration,
            "file_size": self.file_size,
            "file_type": self.file_type,
        }


@dataclass(slots=True)
class DuplicateGroup:
    group_id: int
    files: List[FileRecord]
    similarities: List[Optional[float]] = field(default_factory=list)

    @property
    def file_count(self) -> int:
        return len(self.files)

    @property
    def anchor(self) -> FileRecord:
        return self.files[0]

    @property
    def representative_title(self) -> str:
        return self.anchor.title or ""

    @property
    def representative_artist(self) -> str:
        return self.anchor.artist or ""

    def file_ids(self) -> List[int]:
        return [record.id for record in self.files]

    def to_record(self) -> Dict[str, object]:
        payload: Dict[str, Any] = {
            "group_id": self.group_id,
            "file_count": self.file_count,
            "representative_title": self.representative_title,
            "representative_artist": self.representative_artist,
            "files": [record.to_record() for record in self.files],
        }
        if self.similarities:
            payload["similarities"] = list(self.similarities)
        return payload


@dataclass(slots=True)
class ResolutionDecision:
    group: DuplicateGroup
    file_to_keep: Optional[FileRecord]
    files_to_delete: List[FileRecord]
    needs_manual_review: bool
    reason: str
    similarities: Dict[int, Optional[float]] = field(default_factory=dict)

    def to_record(self) -> Dict[str, object]:
        return {
            "group_id": self.group.group_id,
            "file_to_keep": self.file_to_keep.to_record() if self.file_to_keep else None,
            "files_to_delete": [record.to_record() for record in self.files_to_delete],
            "needs_manual_review": self.needs_manual_review,
            "reason": self.reason,
            "similarities": {str(k): v for k, v in self.similarities.items()},
        }


@dataclass(slots=True)
class ResolutionOutcome:
    groups_processed: int
    files_deleted: int
    files_kept: int
    review_groups: List[DuplicateGroup] = field(default_factory=list)
    deleted_ids: List[int] = field(default_factory=list)

    @property
    def summary(self) -> str:
        if self.files_deleted == 0 and not self.review_groups:
            return "No duplicates found to process."
        if not self.review_groups:
            return (
                f"Auto-resolved {self.groups_processed} groups: deleted {self.files_deleted} files, "
                f"kept {self.files_kept} files."
            )
        resolved = self.groups_processed - len(self.review_groups)
        return (
            f"Auto-resolved {resolved} groups: deleted {self.files_deleted} files, "
            f"kept {self.files_kept} files. {len(self.review_groups)} groups require manual review."
        )

    def to_record(self) -> Dict[str, object]:
        return {
            "groups_processed": self.groups_processed,
            "files_deleted": self.files_deleted,
            "files_kept": self.files_kept,
            "review_group_ids": [group.group_id for group in self.review_groups],
            "deleted_ids": list(self.deleted_ids),
            "summary": self.summary,
        }


@dataclass(frozen=True, slots=True)
class FilePair:
    file_a: FileRecord
    file_b: FileRecord


@dataclass(slots=True)
class DirectoryConflict:
    directory_a: Path
    directory_b: Path
    pairs: List[FilePair] = field(default_factory=list)
    files_in_a: int = 0
    files_in_b: int = 0

    @property
    def total_pairs(self) -> int:
        return len(self.pairs)

    def to_record(self) -> Dict[str, object]:
        return {
            "directory_a": str(self.directory_a),
            "directory_b": str(self.directory_b),
            "files_in_a": self.files_in_a,
            "files_in_b": self.files_in_b,
            "total_pairs": self.total_pairs,
            "pairs": [[pair.file_a.id, pair.file_b.id] for pair in self.pairs],
        }


@dataclass(slots=True)
class DirectoryResolutionPreview:
    directory_to_keep: Path
    directory_to_delete: Path
    files_to_delete: List[FileRecord]
    files_to_keep: List[FileRecord]

    @property
    def total_files_to_delete(self) -> int:
        return len(self.files_to_delete)


@dataclass(slots=True)
class DirectoryResolutionResult:
    directory_kept: Path
    directory_cleared: Path
    files_deleted: int
    files_attempted: int
    deleted_ids: List[int] = field(default_factory=list)


class ScanStage(str, Enum):
    STARTING = "starting"
    LOADING = "loading"
    SCANNING = "scanning"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ERROR = "error"

    @property
    def terminal(self) -> bool:
        return self in (ScanStage.COMPLETED, ScanStage.CANCELLED, ScanStage.ERROR)


@dataclass(frozen=True, slots=True)
class ScanProgress:
    session_id: str
    stage: ScanStage
    total_files: int
    files_processed: int
    total_comparisons: int
    comparisons_completed: int
    groups_found: int
    cancelled: bool
    error: Optional[str] = None
    strategy: Optional[str] = None

    @property
    def percent_complete(self) -> int:
        if self.total_comparisons <= 0:
            return 100 if self.stage is ScanStage.COMPLETED else 0
        return min(100, (self.comparisons_completed * 100) // self.total_comparisons)

    @property
    def complete(self) -> bool:
        return self.stage is ScanStage.COMPLETED

    def to_record(self) -> Dict[str, object]:
        return {
            "session_id": self.session_id,
            "stage": self.stage.value,
            "total_files": self.total_files,
            "files_processed": self.files_processed,
            "total_comparisons": self.total_comparisons,
            "comparisons_completed": self.comparisons_completed,
            "groups_found": self.groups_found,
            "percent_complete": self.percent_complete,
            "cancelled": self.cancelled,
            "complete": self.complete,
            "error": self.error,
            "strategy": self.strategy,
        }


@dataclass(frozen=True, slots=True)
class GroupBatch:
    session_id: str
    groups: List[DuplicateGroup]
    total_groups_found: int

    def to_record(self) -> Dict[str, object]:
        return {
            "session_id": self.session_id,
            "groups": [group.to_record() for group in self.groups],
            "total_groups_found": self.total_groups_found,
        }


def parse_int(value: object) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        cleaned = str(value).strip()
    except Exception:
        return None
    if "/" in cleaned:
        cleaned = cleaned.split("/", 1)[0].strip()
    if cleaned.isdigit():
        return int(cleaned)
    return None


def parse_year(value: object) -> Optional[int]:
    if not value:
        return None
    match = re.search(r"(1[89]|20)\d{2}", str(value))
    if not match:
        return None
    return int(match.group(0))


@dataclass(frozen=True, slots=True)
class FingerprintResult:
    fingerprint: str
    duration: Optional[int] = None


@dataclass(frozen=True, slots=True)
class FingerprintFailure:
    file_id: int
    path: str
    reason: str


@dataclass(slots=True)
class FingerprintBatchResult:
    total: int = 0
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    cancelled: bool = False
    failures: List[FingerprintFailure] = field(default_factory=list)

    def to_record(self) -> Dict[str, object]:
        return {
            "total": self.total,
            "successful": self.successful,
            "failed": self.failed,
            "skipped": self.skipped,
            "cancelled": self.cancelled,
            "failures": [
                {"file_id": item.file_id, "path": item.path, "reason": item.reason}
                for item in self.failures
            ],
        }
