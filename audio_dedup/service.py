"""
Entry point for callers of the duplicate engine.

DuplicateService ties the grouping engine to the result cache and the file
repository, and forwards scan, auto-resolution and directory operations to
their components with the current grouping.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Collection, List, Optional

from .directories import DirectoryConflictResolver
from .fingerprint import AcousticFingerprintMatcher, SimilarFile
from .fuzzy import FuzzyMetadataMatcher
from .grouping import DuplicateGroupingEngine, Strategy
from .models import (
    DirectoryConflict,
    DirectoryResolutionPreview,
    DirectoryResolutionResult,
    DuplicateGroup,
    FileRecord,
    ResolutionDecision,
    ResolutionOutcome,
    ScanProgress,
)
from .protocols import FileRepository
from .resolution import AutoResolutionPlanner
from .result_cache import DuplicateResultCache
from .sessions import ScanSessionManager

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class FileComparison:
    file_a: FileRecord
    file_b: FileRecord
    metadata_duplicate: bool
    metadata_similarity: float
    metadata_explanation: str
    fingerprint_similarity: Optional[float]
    fingerprint_explanation: Optional[str]
    fingerprint_duplicate: Optional[bool] = None

    @property
    def is_duplicate(self) -> bool:
        if self.fingerprint_duplicate is not None:
            return self.fingerprint_duplicate
        return self.metadata_duplicate

    def to_record(self) -> dict[str, object]:
        return {
            "file_a": self.file_a.to_record(),
            "file_b": self.file_b.to_record(),
            "metadata_duplicate": self.metadata_duplicate,
            "metadata_similarity": self.metadata_similarity,
            "fingerprint_similarity": self.fingerprint_similarity,
            "is_duplicate": self.is_duplicate,
        }


class DuplicateService:
    def __init__(
        self,
        repository: FileRepository,
        engine: DuplicateGroupingEngine,
        cache: DuplicateResultCache,
        sessions: Optional[ScanSessionManager] = None,
        planner: Optional[AutoResolutionPlanner] = None,
        directories: Optional[DirectoryConflictResolver] = None,
    ) -> None:
        self.repository = repository
        self.engine = engine
        self.cache = cache
        self.sessions = sessions
        self.planner = planner or AutoResolutionPlanner(repository, cache, engine.fingerprints)
        self.directories = directories or DirectoryConflictResolver(repository, cache)

    @property
    def fuzzy(self) -> FuzzyMetadataMatcher:
        return self.engine.fuzzy

    @property
    def fingerprints(self) -> AcousticFingerprintMatcher:
        return self.engine.fingerprints

    def get_groups(self) -> List[DuplicateGroup]:
        cached = self.cache.get()
        if cached is not None:
            logger.debug("Using cached duplicate groups (%d)", len(cached))
            return cached
        groups = self.engine.compute_groups(self.repository.get_all_files())
        self.cache.put(groups)
        return list(groups)

    def get_group(self, group_id: int) -> Optional[DuplicateGroup]:
        for group in self.get_groups():
            if group.group_id == group_id:
                return group
        return None

    def group_count(self) -> int:
        return len(self.get_groups())

    def strategy(self) -> Strategy:
        return self.engine.select_strategy(self.repository.get_all_files())

    def invalidate_cache(self) -> None:
        self.cache.invalidate()

    def find_similar(self, file_id: int, threshold: Optional[float] = None) -> List[SimilarFile]:
        """Files whose fingerprint is close to the given file's, best first."""
        target = self.repository.get_file_by_id(file_id)
        if target is None:
            return []
        return self.fingerprints.find_similar(target, self.repository.get_all_files(), threshold)

    def compare_files(self, first_id: int, second_id: int) -> Optional[FileComparison]:
        first = self.repository.get_file_by_id(first_id)
        second = self.repository.get_file_by_id(second_id)
        if first is None or second is None:
            return None
        breakdown = self.fuzzy.compare(first, second)
        fp_similarity: Optional[float] = None
        fp_explanation: Optional[str] = None
        if first.has_fingerprint and second.has_fingerprint:
            fp_similarity = self.fingerprints.similarity(first.fingerprint, second.fingerprint)
            fp_explanation = self.fingerprints.explain(first.fingerprint, second.fingerprint)
        return FileComparison(
            file_a=first,
            file_b=second,
            metadata_duplicate=breakdown.is_duplicate,
            metadata_similarity=breakdown.similarity,
            metadata_explanation=self.fuzzy.explain(first, second),
            fingerprint_similarity=fp_similarity,
            fingerprint_explanation=fp_explanation,
            fingerprint_duplicate=None if fp_similarity is None else fp_similarity >= self.fingerprints.threshold,
        )

    def delete_file(self, file_id: int) -> bool:
        deleted = self.repository.delete_file(file_id)
        if deleted:
            self.cache.invalidate()
        return deleted

    def keep_one(self, group_id: int, keep_file_id: int) -> int:
        """Delete every other member of the group; returns the number deleted."""
        group = self.get_group(group_id)
        if group is None or keep_file_id not in group.file_ids():
            return 0
        deleted = 0
        for record in group.files:
            if record.id == keep_file_id:
                continue
            if self.repository.delete_file(record.id):
                deleted += 1
            else:
                logger.warning("Could not delete %s (id %d)", record.path, record.id)
        if deleted:
            self.cache.invalidate()
        logger.info("Kept file %d from group %d, deleted %d", keep_file_id, group_id, deleted)
        return deleted

    def start_scan(self) -> str:
        return self._require_sessions().start_scan()

    def scan_status(self, session_id: str) -> Optional[ScanProgress]:
        return self._require_sessions().status(session_id)

    def cancel_scan(self, session_id: str) -> bool:
        return self._require_sessions().cancel(session_id)

    def preview_auto_resolution(self, exclude_ids: Collection[int] = ()) -> List[ResolutionDecision]:
        return self.planner.preview(self.get_groups(), exclude_ids)

    def execute_auto_resolution(self, exclude_ids: Collection[int] = ()) -> ResolutionOutcome:
        return self.planner.execute(self.get_groups(), exclude_ids)

    def directory_conflicts(self) -> List[DirectoryConflict]:
        return self.directories.list_conflicts(self.get_groups())

    def preview_directory_resolution(
        self, directory_to_keep: Path, directory_to_delete: Path
    ) -> DirectoryResolutionPreview:
        return self.directories.preview_resolution(directory_to_keep, directory_to_delete, self.get_groups())

    def resolve_directory_conflict(
        self, directory_to_keep: Path, directory_to_delete: Path
    ) -> DirectoryResolutionResult:
        return self.directories.resolve(directory_to_keep, directory_to_delete, self.get_groups())

    def _require_sessions(self) -> ScanSessionManager:
        if self.sessions is None:
            raise RuntimeError("No scan session manager configured")
        return self.sessions
