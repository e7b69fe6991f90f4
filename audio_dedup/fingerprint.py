"""
Content-based duplicate matching over Chromaprint raw fingerprints.

A fingerprint is a comma-separated list of 32-bit integers. Two fingerprints
are compared position by position over the length of the shorter one; each
position contributes ``1 - popcount(a ^ b) / 32``. The mean over all aligned
positions is the similarity.
"""

from __future__ import annotations

import logging
import os
import time
from concurrent.futures import FIRST_COMPLETED, Future, ProcessPoolExecutor, wait
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Sequence

from .cancel import CancelToken, check
from .errors import ScanCancelled
from .models import FileRecord

logger = logging.getLogger(__name__)

DEFAULT_SIMILARITY_THRESHOLD = 0.85
MIN_FINGERPRINT_LENGTH = 10
PARALLEL_MIN_FILES = 256
UINT32_MASK = 0xFFFFFFFF

Fingerprint = tuple[int, ...]
RowProgress = Callable[[int, int], None]


@dataclass(frozen=True, slots=True)
class SimilarFile:
    record: FileRecord
    similarity: float


def parse_fingerprint(fingerprint: Optional[str]) -> Fingerprint:
    if not fingerprint:
        return ()
    values: list[int] = []
    for part in fingerprint.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            values.append(int(part) & UINT32_MASK)
        except ValueError:
            values.append(0)
    return tuple(values)


def fingerprint_similarity(a: Sequence[int], b: Sequence[int]) -> float:
    length = min(len(a), len(b))
    if length < MIN_FINGERPRINT_LENGTH:
        return 0.0
    different = 0
    for x, y in zip(a, b):
        different += (x ^ y).bit_count()
    return 1.0 - different / (32.0 * length)


def row_matches(prints: Sequence[Fingerprint], index: int, threshold: float) -> list[int]:
    """Indexes after ``index`` whose fingerprint clears ``threshold`` against it."""
    anchor = prints[index]
    if len(anchor) < MIN_FINGERPRINT_LENGTH:
        return []
    matches: list[int] = []
    for other in range(index + 1, len(prints)):
        candidate = prints[other]
        if len(candidate) < MIN_FINGERPRINT_LENGTH:
            continue
        if fingerprint_similarity(anchor, candidate) >= threshold:
            matches.append(other)
    return matches


_worker_prints: Sequence[Fingerprint] = ()
_worker_threshold: float = DEFAULT_SIMILARITY_THRESHOLD


def _init_worker(prints: Sequence[Fingerprint], threshold: float) -> None:
    global _worker_prints, _worker_threshold
    _worker_prints = prints
    _worker_threshold = threshold


def _match_chunk(rows: Sequence[int]) -> list[tuple[int, list[int]]]:
    return [(row, row_matches(_worker_prints, row, _worker_threshold)) for row in rows]


class AcousticFingerprintMatcher:
    """Pairwise and batch similarity over acoustic fingerprints."""

    def __init__(
        self,
        threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
        workers: Optional[int] = None,
        parallel_min_files: int = PARALLEL_MIN_FILES,
        chunk_size: Optional[int] = None,
    ) -> None:
        self.threshold = threshold
        self.workers = workers or os.cpu_count() or 1
        self.parallel_min_files = parallel_min_files
        self.chunk_size = chunk_size

    def parse(self, fingerprint: Optional[str]) -> Fingerprint:
        return parse_fingerprint(fingerprint)

    def similarity(self, fingerprint_a: Optional[str], fingerprint_b: Optional[str]) -> float:
        if not fingerprint_a or not fingerprint_b:
            return 0.0
        return fingerprint_similarity(parse_fingerprint(fingerprint_a), parse_fingerprint(fingerprint_b))

    def are_similar(
        self, a: FileRecord, b: FileRecord, threshold: Optional[float] = None
    ) -> bool:
        if not a.has_fingerprint or not b.has_fingerprint:
            return False
        limit = self.threshold if threshold is None else threshold
        return self.similarity(a.fingerprint, b.fingerprint) >= limit

    def find_similar(
        self,
        target: FileRecord,
        candidates: Iterable[FileRecord],
        threshold: Optional[float] = None,
    ) -> list[SimilarFile]:
        if not target.has_fingerprint:
            return []
        target_print = parse_fingerprint(target.fingerprint)
        if len(target_print) < MIN_FINGERPRINT_LENGTH:
            return []
        limit = self.threshold if threshold is None else threshold
        results: list[SimilarFile] = []
        for candidate in candidates:
            if candidate.id == target.id or not candidate.has_fingerprint:
                continue
            score = fingerprint_similarity(target_print, parse_fingerprint(candidate.fingerprint))
            if score >= limit:
                results.append(SimilarFile(candidate, score))
        results.sort(key=lambda item: item.similarity, reverse=True)
        return results

    def group_similarities(self, files: Sequence[FileRecord]) -> list[Optional[float]]:
        """Similarity of every member to the first one; the first member is the 1.0 reference."""
        if not files:
            return []
        anchor = files[0]
        anchor_print = parse_fingerprint(anchor.fingerprint) if anchor.has_fingerprint else None
        similarities: list[Optional[float]] = [1.0]
        for record in files[1:]:
            if anchor_print is None or not record.has_fingerprint:
                similarities.append(None)
                continue
            similarities.append(
                fingerprint_similarity(anchor_print, parse_fingerprint(record.fingerprint))
            )
        return similarities

    def group_all(
        self,
        files: Sequence[FileRecord],
        *,
        cancel: Optional[CancelToken] = None,
        progress: Optional[RowProgress] = None,
    ) -> list[list[FileRecord]]:
        """Anchor-first clusters of the fingerprinted records, in input order."""
        candidates = [record for record in files if record.has_fingerprint]
        count = len(candidates)
        if count < 2:
            return []
        logger.info(
            "Comparing fingerprints of %d files (%d comparisons)", count, count * (count - 1) // 2
        )
        started = time.monotonic()
        prints = [parse_fingerprint(record.fingerprint) for record in candidates]
        rows = self.match_rows(prints, cancel=cancel, progress=progress)
        clusters = assemble_clusters(candidates, rows, cancel=cancel)
        logger.info(
            "Found %d fingerprint groups in %.2fs", len(clusters), time.monotonic() - started
        )
        return clusters

    def match_rows(
        self,
        prints: Sequence[Fingerprint],
        *,
        cancel: Optional[CancelToken] = None,
        progress: Optional[RowProgress] = None,
    ) -> dict[int, list[int]]:
        count = len(prints)
        if self.workers <= 1 or count < max(2, self.parallel_min_files):
            rows: dict[int, list[int]] = {}
            for index in range(count):
                check(cancel)
                rows[index] = row_matches(prints, index, self.threshold)
                if progress:
                    progress(1, count - index - 1)
            return rows
        return self._match_rows_parallel(prints, cancel=cancel, progress=progress)

    def _match_rows_parallel(
        self,
        prints: Sequence[Fingerprint],
        *,
        cancel: Optional[CancelToken],
        progress: Optional[RowProgress],
    ) -> dict[int, list[int]]:
        count = len(prints)
        workers = min(self.workers, count)
        chunk_size = self.chunk_size or max(1, count // (workers * 8))
        chunks = [list(range(start, min(start + chunk_size, count))) for start in range(0, count, chunk_size)]
        logger.debug(
            "Matching %d fingerprints with %d workers in %d chunks", count, workers, len(chunks)
        )
        rows: dict[int, list[int]] = {}
        executor = ProcessPoolExecutor(
            max_workers=workers, initializer=_init_worker, initargs=(tuple(prints), self.threshold)
        )
        cancelled = False
        try:
            pending: set[Future] = {executor.submit(_match_chunk, chunk) for chunk in chunks}
            while pending:
                if cancel is not None and cancel.cancelled:
                    cancelled = True
                    raise ScanCancelled()
                done, pending = wait(pending, timeout=0.25, return_when=FIRST_COMPLETED)
                for future in done:
                    for row, matches in future.result():
                        rows[row] = matches
                        if progress:
                            progress(1, count - row - 1)
        finally:
            executor.shutdown(wait=True, cancel_futures=cancelled)
        return rows

    def explain(self, fingerprint_a: Optional[str], fingerprint_b: Optional[str]) -> str:
        if not fingerprint_a or not fingerprint_b:
            return "Cannot compare: one or both fingerprints missing"
        first = parse_fingerprint(fingerprint_a)
        second = parse_fingerprint(fingerprint_b)
        similarity = fingerprint_similarity(first, second)
        lines = [
            "Fingerprint Comparison:",
            f"  Fingerprint 1 length: {len(first)} segments",
            f"  Fingerprint 2 length: {len(second)} segments",
            f"  Compared segments: {min(len(first), len(second))}",
            f"  Overall similarity: {similarity:.1%}",
            f"  Threshold for duplicate: {self.threshold:.0%}",
            f"  Verdict: {'DUPLICATE' if similarity >= self.threshold else 'NOT DUPLICATE'}",
        ]
        return "\n".join(lines)


def assemble_clusters(
    records: Sequence[FileRecord],
    rows: dict[int, list[int]],
    *,
    cancel: Optional[CancelToken] = None,
) -> list[list[FileRecord]]:
    """Anchor-first assembly: each unassigned record claims its unassigned matches once."""
    assigned = [False] * len(records)
    clusters: list[list[FileRecord]] = []
    for index, record in enumerate(records):
        check(cancel)
        if assigned[index]:
            continue
        assigned[index] = True
        members = [record]
        for other in rows.get(index, ()):
            if assigned[other]:
                continue
            assigned[other] = True
            members.append(records[other])
        if len(members) > 1:
            clusters.append(members)
    return clusters
