from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from .models import (
    DirectoryConflict,
    DirectoryResolutionPreview,
    DirectoryResolutionResult,
    DuplicateGroup,
    FilePair,
    FileRecord,
)
from .protocols import FileRepository
from .result_cache import DuplicateResultCache

logger = logging.getLogger(__name__)


def _is_within(directory: Path, root: Path) -> bool:
    return directory == root or root in directory.parents


class DirectoryConflictResolver:
    """Aggregates duplicate pairs by directory and clears one side of a pair."""

    def __init__(self, repository: FileRepository, cache: Optional[DuplicateResultCache] = None) -> None:
        self.repository = repository
        self.cache = cache

    def list_conflicts(self, groups: Iterable[DuplicateGroup]) -> List[DirectoryConflict]:
        conflicts: Dict[Tuple[str, str], DirectoryConflict] = {}
        side_a: Dict[Tuple[str, str], Set[int]] = {}
        side_b: Dict[Tuple[str, str], Set[int]] = {}
        for group in groups:
            members = group.files
            for i, first in enumerate(members):
                for second in members[i + 1 :]:
                    dir_first = str(first.directory)
                    dir_second = str(second.directory)
                    if dir_first == dir_second:
                        continue
                    if dir_first > dir_second:
                        first, second = second, first
                        dir_first, dir_second = dir_second, dir_first
                    key = (dir_first, dir_second)
                    conflict = conflicts.get(key)
                    if conflict is None:
                        conflict = DirectoryConflict(Path(dir_first), Path(dir_second))
                        conflicts[key] = conflict
                        side_a[key] = set()
                        side_b[key] = set()
                    conflict.pairs.append(FilePair(first, second))
                    side_a[key].add(first.id)
                    side_b[key].add(second.id)
        for key, conflict in conflicts.items():
            conflict.files_in_a = len(side_a[key])
            conflict.files_in_b = len(side_b[key])
        return sorted(
            conflicts.values(),
            key=lambda item: (-item.total_pairs, str(item.directory_a), str(item.directory_b)),
        )

    def preview_resolution(
        self,
        directory_to_keep: Path,
        directory_to_delete: Path,
        groups: Iterable[DuplicateGroup],
    ) -> DirectoryResolutionPreview:
        keep_root = Path(directory_to_keep)
        delete_root = Path(directory_to_delete)
        to_delete: List[FileRecord] = []
        to_keep: List[FileRecord] = []
        if keep_root == delete_root:
            return DirectoryResolutionPreview(keep_root, delete_root, to_delete, to_keep)
        for group in groups:
            doomed, survivors = self._split(group.files, keep_root, delete_root)
            if not doomed:
                continue
            to_delete.extend(doomed)
            to_keep.extend(record for record in survivors if _is_within(record.directory, keep_root))
        return DirectoryResolutionPreview(keep_root, delete_root, to_delete, to_keep)

    def resolve(
        self,
        directory_to_keep: Path,
        directory_to_delete: Path,
        groups: Iterable[DuplicateGroup],
    ) -> DirectoryResolutionResult:
        preview = self.preview_resolution(directory_to_keep, directory_to_delete, groups)
        deleted: List[int] = []
        for record in preview.files_to_delete:
            if self.repository.delete_file(record.id):
                deleted.append(record.id)
                logger.info("Deleted %s (a copy survives outside %s)", record.path, preview.directory_to_delete)
            else:
                logger.warning("Could not delete %s (id %d)", record.path, record.id)
        if deleted and self.cache is not None:
            self.cache.invalidate()
        logger.info(
            "Cleared %d of %d duplicates from %s",
            len(deleted),
            preview.total_files_to_delete,
            preview.directory_to_delete,
        )
        return DirectoryResolutionResult(
            directory_kept=preview.directory_to_keep,
            directory_cleared=preview.directory_to_delete,
            files_deleted=len(deleted),
            files_attempted=preview.total_files_to_delete,
            deleted_ids=deleted,
        )

    @staticmethod
    def _split(
        members: Sequence[FileRecord], keep_root: Path, delete_root: Path
    ) -> Tuple[List[FileRecord], List[FileRecord]]:
        """Members to delete and members that survive, for one group.

        Every member under ``delete_root`` goes unless it is also under
        ``keep_root``. A group left without a survivor is not touched.
        """
        doomed = [
            record
            for record in members
            if _is_within(record.directory, delete_root) and not _is_within(record.directory, keep_root)
        ]
        doomed_ids = {record.id for record in doomed}
        survivors = [record for record in members if record.id not in doomed_ids]
        if not survivors:
            return [], list(members)
        return doomed, survivors
