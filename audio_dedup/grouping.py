"""
Strategy selection and anchor-first clustering.

The whole collection is grouped with one strategy: acoustic fingerprints when
more than half of the records carry one, metadata otherwise. Clustering is
anchor based: every unassigned record in turn becomes an anchor and claims the
unassigned records that match *it*. Matches of other members are not followed,
so a chain A~B, B~C with A!~C yields {A, B} and leaves C to later anchors.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, List, Optional, Sequence

from .cancel import CancelToken, check
from .config import MatchConfig
from .fingerprint import AcousticFingerprintMatcher
from .fuzzy import FuzzyMetadataMatcher
from .models import DuplicateGroup, FileRecord
from .protocols import GroupingObserver

logger = logging.getLogger(__name__)

MatchPredicate = Callable[[FileRecord, FileRecord], bool]


class Strategy(str, Enum):
    FINGERPRINT = "fingerprint"
    METADATA = "metadata"


class DuplicateGroupingEngine:
    def __init__(
        self,
        match_config: Optional[MatchConfig] = None,
        fingerprint_matcher: Optional[AcousticFingerprintMatcher] = None,
    ) -> None:
        self.match_config = match_config or MatchConfig()
        self.fuzzy = FuzzyMetadataMatcher(self.match_config)
        self.fingerprints = fingerprint_matcher or AcousticFingerprintMatcher()

    def select_strategy(self, files: Sequence[FileRecord]) -> Strategy:
        fingerprinted = sum(1 for record in files if record.has_fingerprint)
        if fingerprinted > len(files) // 2:
            return Strategy.FINGERPRINT
        return Strategy.METADATA

    def candidates(self, files: Sequence[FileRecord], strategy: Strategy) -> List[FileRecord]:
        if strategy is Strategy.FINGERPRINT:
            return [record for record in files if record.has_fingerprint]
        return list(files)

    def compute_groups(
        self,
        files: Sequence[FileRecord],
        *,
        cancel: Optional[CancelToken] = None,
        observer: Optional[GroupingObserver] = None,
        strategy: Optional[Strategy] = None,
    ) -> List[DuplicateGroup]:
        if len(files) < 2:
            return []
        strategy = strategy or self.select_strategy(files)
        logger.debug("Grouping %d files with %s strategy", len(files), strategy.value)
        if strategy is Strategy.FINGERPRINT:
            groups = self._fingerprint_groups(files, cancel, observer)
        else:
            groups = self.cluster(files, self.fuzzy.are_duplicates, cancel=cancel, observer=observer)
        logger.info("Found %d duplicate groups (%s)", len(groups), strategy.value)
        return groups

    def cluster(
        self,
        files: Sequence[FileRecord],
        matches: MatchPredicate,
        *,
        cancel: Optional[CancelToken] = None,
        observer: Optional[GroupingObserver] = None,
    ) -> List[DuplicateGroup]:
        count = len(files)
        assigned = [False] * count
        groups: List[DuplicateGroup] = []
        for index, anchor in enumerate(files):
            check(cancel)
            if not assigned[index]:
                assigned[index] = True
                members = [anchor]
                for other in range(index + 1, count):
                    if assigned[other]:
                        continue
                    check(cancel)
                    if matches(anchor, files[other]):
                        assigned[other] = True
                        members.append(files[other])
                if len(members) > 1:
                    group = DuplicateGroup(group_id=len(groups) + 1, files=members)
                    groups.append(group)
                    if observer:
                        observer.group_found(group)
            if observer:
                observer.comparisons_completed(count - index - 1)
                observer.anchor_processed(1)
        return groups

    def _fingerprint_groups(
        self,
        files: Sequence[FileRecord],
        cancel: Optional[CancelToken],
        observer: Optional[GroupingObserver],
    ) -> List[DuplicateGroup]:
        def on_rows(rows: int, comparisons: int) -> None:
            if observer:
                observer.comparisons_completed(comparisons)
                observer.anchor_processed(rows)

        clusters = self.fingerprints.group_all(files, cancel=cancel, progress=on_rows)
        groups: List[DuplicateGroup] = []
        for members in clusters:
            check(cancel)
            group = DuplicateGroup(
                group_id=len(groups) + 1,
                files=members,
                similarities=self.fingerprints.group_similarities(members),
            )
            groups.append(group)
            if observer:
                observer.group_found(group)
        return groups
