"""
Survivor selection for duplicate groups.

Ranking is applied in order and the first criterion that leaves exactly one
candidate decides:

1. higher bitrate (unknown bitrate counts as 0)
2. more complete metadata (title, artist, album, genre, track, year)
3. canonical directory: the file whose parent directory names its artist or
   album, or failing that the single tied file the caller excluded from
   deletion

Groups that are still tied after the last criterion need manual review and
are never touched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Collection, Iterable, List, Optional, Sequence

from .fingerprint import AcousticFingerprintMatcher
from .match_utils import normalize_for_path
from .models import DuplicateGroup, FileRecord, ResolutionDecision, ResolutionOutcome
from .protocols import FileRepository
from .result_cache import DuplicateResultCache

logger = logging.getLogger(__name__)

REASON_BITRATE = "higher bitrate"
REASON_METADATA = "more complete metadata"
REASON_CANONICAL = "canonical directory"
REASON_REVIEW = "no decisive criterion, manual review required"


@dataclass(frozen=True, slots=True)
class RankResult:
    survivor: Optional[FileRecord]
    reason: str
    tied: tuple[FileRecord, ...] = ()


def _top(files: Sequence[FileRecord], key) -> List[FileRecord]:
    best = max(key(record) for record in files)
    return [record for record in files if key(record) == best]


def in_canonical_directory(record: FileRecord) -> bool:
    directory = normalize_for_path(str(record.directory))
    if not directory:
        return False
    for value in (record.artist, record.album):
        token = normalize_for_path(value)
        if token and token in directory:
            return True
    return False


class AutoResolutionPlanner:
    def __init__(
        self,
        repository: FileRepository,
        cache: Optional[DuplicateResultCache] = None,
        fingerprints: Optional[AcousticFingerprintMatcher] = None,
    ) -> None:
        self.repository = repository
        self.cache = cache
        self.fingerprints = fingerprints or AcousticFingerprintMatcher()

    def rank(self, files: Sequence[FileRecord], exclude_ids: Collection[int] = ()) -> RankResult:
        if not files:
            return RankResult(None, REASON_REVIEW)
        tied = _top(files, lambda record: record.bitrate or 0)
        if len(tied) == 1:
            return RankResult(tied[0], REASON_BITRATE)
        tied = _top(tied, lambda record: record.metadata_score())
        if len(tied) == 1:
            return RankResult(tied[0], REASON_METADATA)
        canonical = [record for record in tied if in_canonical_directory(record)]
        if len(canonical) == 1:
            return RankResult(canonical[0], REASON_CANONICAL)
        pool = canonical or tied
        excluded = [record for record in pool if record.id in exclude_ids]
        if len(excluded) == 1:
            return RankResult(excluded[0], REASON_CANONICAL)
        return RankResult(None, REASON_REVIEW, tuple(tied))

    def decide(self, group: DuplicateGroup, exclude_ids: Collection[int] = ()) -> ResolutionDecision:
        result = self.rank(group.files, exclude_ids)
        if result.survivor is None:
            return ResolutionDecision(
                group=group,
                file_to_keep=None,
                files_to_delete=[],
                needs_manual_review=True,
                reason=result.reason,
            )
        keeper = result.survivor
        to_delete = [
            record
            for record in group.files
            if record.id != keeper.id and record.id not in exclude_ids
        ]
        similarities = {}
        if keeper.has_fingerprint:
            for record in to_delete:
                if record.has_fingerprint:
                    similarities[record.id] = self.fingerprints.similarity(
                        keeper.fingerprint, record.fingerprint
                    )
        return ResolutionDecision(
            group=group,
            file_to_keep=keeper,
            files_to_delete=to_delete,
            needs_manual_review=False,
            reason=result.reason,
            similarities=similarities,
        )

    def preview(
        self, groups: Iterable[DuplicateGroup], exclude_ids: Collection[int] = ()
    ) -> List[ResolutionDecision]:
        return [self.decide(group, exclude_ids) for group in groups]

    def execute(
        self, groups: Iterable[DuplicateGroup], exclude_ids: Collection[int] = ()
    ) -> ResolutionOutcome:
        excluded = set(exclude_ids)
        outcome = ResolutionOutcome(groups_processed=0, files_deleted=0, files_kept=0)
        for decision in self.preview(groups, excluded):
            outcome.groups_processed += 1
            if decision.needs_manual_review:
                outcome.review_groups.append(decision.group)
                continue
            deleted_here = 0
            for record in decision.files_to_delete:
                if record.id in excluded:
                    continue
                if self.repository.delete_file(record.id):
                    deleted_here += 1
                    outcome.deleted_ids.append(record.id)
                    logger.info(
                        "Deleted %s (kept %s: %s)",
                        record.path,
                        decision.file_to_keep.path if decision.file_to_keep else "?",
                        decision.reason,
                    )
                else:
                    logger.warning("Could not delete duplicate %s (id %d)", record.path, record.id)
            outcome.files_deleted += deleted_here
            outcome.files_kept += decision.group.file_count - deleted_here
        if outcome.files_deleted and self.cache is not None:
            self.cache.invalidate()
        logger.info("%s", outcome.summary)
        return outcome
