from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .config import Settings
from .fingerprint import AcousticFingerprintMatcher
from .fingerprinting import FingerprintService, build_generator
from .grouping import DuplicateGroupingEngine
from .indexer import LibraryIndexer
from .protocols import EventSink
from .result_cache import DuplicateResultCache
from .scanner import LibraryScanner
from .service import DuplicateService
from .sessions import ScanSessionManager
from .store import LibraryStore


@dataclass
class AudioDedupApp:
    settings: Settings
    store: LibraryStore
    scanner: LibraryScanner
    cache: DuplicateResultCache
    engine: DuplicateGroupingEngine
    fingerprints: FingerprintService
    sink: Optional[EventSink] = None
    _sessions: ScanSessionManager | None = None
    _service: DuplicateService | None = None

    @classmethod
    def create(cls, settings: Settings, sink: Optional[EventSink] = None) -> "AudioDedupApp":
        store = LibraryStore(settings.store.path)
        matcher = AcousticFingerprintMatcher(
            threshold=settings.fingerprint.threshold,
            workers=settings.fingerprint.group_workers,
        )
        fingerprints = FingerprintService(
            store,
            build_generator(settings.fingerprint),
            length_seconds=settings.fingerprint.length_seconds,
            workers=settings.fingerprint.workers,
            max_failures=settings.fingerprint.max_failures,
        )
        return cls(
            settings=settings,
            store=store,
            scanner=LibraryScanner(settings.library),
            cache=DuplicateResultCache(settings.scan.cache_ttl_seconds),
            engine=DuplicateGroupingEngine(settings.matching, matcher),
            fingerprints=fingerprints,
            sink=sink,
        )

    def get_indexer(self) -> LibraryIndexer:
        return LibraryIndexer(self.store, self.scanner)

    def get_sessions(self) -> ScanSessionManager:
        if self._sessions is None:
            scan = self.settings.scan
            self._sessions = ScanSessionManager(
                self.store,
                self.engine,
                self.cache,
                self.sink,
                group_batch_size=scan.group_batch_size,
                progress_every_files=scan.progress_every_files,
                retention_seconds=scan.retention_seconds,
            )
        return self._sessions

    def get_service(self) -> DuplicateService:
        if self._service is None:
            self._service = DuplicateService(
                self.store, self.engine, self.cache, sessions=self.get_sessions()
            )
        return self._service

    def close(self) -> None:
        if self._sessions is not None:
            self._sessions.shutdown()
        self.store.close()
