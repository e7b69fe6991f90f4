from __future__ import annotations

import fnmatch
from collections.abc import Iterator
from pathlib import Path

from .config import LibrarySettings


class LibraryScanner:
    """Walks the library roots and yields audio files matching the extension filter."""

    def __init__(self, settings: LibrarySettings) -> None:
        self.settings = settings
        self._exts = {self._normalize_ext(ext) for ext in self.settings.include_extensions}

    @staticmethod
    def _normalize_ext(ext: str) -> str:
        ext = ext.lower().strip()
        return ext if ext.startswith(".") else f".{ext}"

    def iter_files(self) -> Iterator[Path]:
        for root in self.settings.roots:
            if not root.exists():
                continue
            for file_path in sorted(root.rglob("*")):
                if not file_path.is_file():
                    continue
                if not self.should_include(file_path):
                    continue
                yield file_path

    def should_include(self, path: Path) -> bool:
        if path.suffix.lower() not in self._exts:
            return False
        rel = str(path)
        for pattern in self.settings.exclude_patterns:
            if fnmatch.fnmatch(rel, pattern) or fnmatch.fnmatch(path.name, pattern):
                return False
        return True
