"""
Background duplicate scans.

A ScanSessionManager owns one worker thread. Every ``start_scan`` call
registers a session and queues it behind any scan already running. The worker
publishes progress snapshots and batches of newly found groups to an
EventSink; the last event of a session is always its terminal snapshot.

Groups are published as the engine finds them. With the fingerprint strategy
the engine only assembles groups once every row has been matched, so a
fingerprint scan reports progress snapshots first and all of its group
batches at the end.
"""

from __future__ import annotations

import logging
import time
import uuid
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from threading import Lock
from typing import Callable, Dict, List, Optional

from .cancel import CancelToken
from .errors import ScanCancelled
from .events import LoggingEventSink
from .grouping import DuplicateGroupingEngine
from .models import DuplicateGroup, GroupBatch, ScanProgress, ScanStage
from .protocols import EventSink, FileRepository
from .result_cache import DuplicateResultCache

logger = logging.getLogger(__name__)

DEFAULT_GROUP_BATCH_SIZE = 25
DEFAULT_PROGRESS_EVERY_FILES = 100
DEFAULT_RETENTION_SECONDS = 30.0


@dataclass(slots=True)
class ScanSession:
    session_id: str
    started_at: float
    stage: ScanStage = ScanStage.STARTING
    total_files: int = 0
    files_processed: int = 0
    total_comparisons: int = 0
    comparisons_completed: int = 0
    groups_found: int = 0
    cancelled: bool = False
    error: Optional[str] = None
    strategy: Optional[str] = None
    finished_at: Optional[float] = None
    token: CancelToken = field(default_factory=CancelToken)
    future: Optional[Future] = None
    lock: Lock = field(default_factory=Lock)

    def snapshot(self) -> ScanProgress:
        with self.lock:
            return ScanProgress(
                session_id=self.session_id,
                stage=self.stage,
                total_files=self.total_files,
                files_processed=self.files_processed,
                total_comparisons=self.total_comparisons,
                comparisons_completed=self.comparisons_completed,
                groups_found=self.groups_found,
                cancelled=self.cancelled,
                error=self.error,
                strategy=self.strategy,
            )

    @property
    def terminal(self) -> bool:
        with self.lock:
            return self.stage.terminal


class _SessionObserver:
    def __init__(self, manager: "ScanSessionManager", session: ScanSession) -> None:
        self.manager = manager
        self.session = session
        self.pending: List[DuplicateGroup] = []
        self._last_bucket = 0

    def comparisons_completed(self, count: int) -> None:
        with self.session.lock:
            self.session.comparisons_completed += count

    def anchor_processed(self, count: int) -> None:
        session = self.session
        with session.lock:
            session.files_processed += count
            bucket = session.files_processed // self.manager.progress_every_files
        if bucket > self._last_bucket:
            self._last_bucket = bucket
            self.manager.sink.publish_progress(session.snapshot())

    def group_found(self, group: DuplicateGroup) -> None:
        with self.session.lock:
            self.session.groups_found += 1
        self.pending.append(group)
        if len(self.pending) >= self.manager.group_batch_size:
            self.flush()

    def flush(self) -> None:
        if not self.pending:
            return
        with self.session.lock:
            total = self.session.groups_found
        batch = GroupBatch(self.session.session_id, list(self.pending), total)
        self.pending.clear()
        self.manager.sink.publish_groups(self.session.session_id, batch)


class ScanSessionManager:
    def __init__(
        self,
        repository: FileRepository,
        engine: DuplicateGroupingEngine,
        cache: DuplicateResultCache,
        sink: Optional[EventSink] = None,
        *,
        group_batch_size: int = DEFAULT_GROUP_BATCH_SIZE,
        progress_every_files: int = DEFAULT_PROGRESS_EVERY_FILES,
        retention_seconds: float = DEFAULT_RETENTION_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.repository = repository
        self.engine = engine
        self.cache = cache
        self.sink: EventSink = sink or LoggingEventSink(logging.DEBUG)
        self.group_batch_size = max(1, group_batch_size)
        self.progress_every_files = max(1, progress_every_files)
        self.retention_seconds = retention_seconds
        self._clock = clock
        self._lock = Lock()
        self._sessions: Dict[str, ScanSession] = {}
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="duplicate-scan")
        self._closed = False

    def __enter__(self) -> "ScanSessionManager":
        return self

    def __exit__(self, *_exc: object) -> None:
        self.shutdown()

    def start_scan(self) -> str:
        session = ScanSession(session_id=uuid.uuid4().hex, started_at=self._clock())
        with self._lock:
            if self._closed:
                raise RuntimeError("ScanSessionManager has been shut down")
            self._evict_expired()
            self._sessions[session.session_id] = session
            session.future = self._executor.submit(self._run, session)
        logger.info("Queued duplicate scan %s", session.session_id)
        return session.session_id

    def status(self, session_id: str) -> Optional[ScanProgress]:
        session = self._get(session_id)
        return session.snapshot() if session else None

    def cancel(self, session_id: str) -> bool:
        session = self._get(session_id)
        if session is None:
            return False
        with session.lock:
            if session.stage.terminal:
                return False
            session.cancelled = True
        session.token.cancel()
        logger.info("Cancellation requested for scan %s", session_id)
        return True

    def wait(self, session_id: str, timeout: Optional[float] = None) -> Optional[ScanProgress]:
        """Block until the session reaches a terminal stage or ``timeout`` elapses."""
        session = self._get(session_id)
        if session is None:
            return None
        if session.future is not None:
            try:
                session.future.result(timeout=timeout)
            except FutureTimeout:
                pass
        return session.snapshot()

    def sessions(self) -> List[ScanProgress]:
        with self._lock:
            self._evict_expired()
            current = list(self._sessions.values())
        return [session.snapshot() for session in current]

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            active = [session for session in self._sessions.values() if not session.terminal]
        for session in active:
            with session.lock:
                session.cancelled = True
            session.token.cancel()
        self._executor.shutdown(wait=wait)

    def _get(self, session_id: str) -> Optional[ScanSession]:
        with self._lock:
            self._evict_expired()
            return self._sessions.get(session_id)

    def _evict_expired(self) -> None:
        now = self._clock()
        expired = [
            session_id
            for session_id, session in self._sessions.items()
            if session.finished_at is not None and now - session.finished_at >= self.retention_seconds
        ]
        for session_id in expired:
            del self._sessions[session_id]

    def _set_stage(self, session: ScanSession, stage: ScanStage, error: Optional[str] = None) -> None:
        with session.lock:
            session.stage = stage
            if stage is ScanStage.CANCELLED:
                session.cancelled = True
            if error is not None:
                session.error = error
            if stage.terminal:
                session.finished_at = self._clock()

    def _run(self, session: ScanSession) -> None:
        observer = _SessionObserver(self, session)
        try:
            session.token.raise_if_cancelled()
            self._set_stage(session, ScanStage.LOADING)
            self.sink.publish_progress(session.snapshot())
            files = self.repository.get_all_files()
            session.token.raise_if_cancelled()

            strategy = self.engine.select_strategy(files)
            candidates = len(self.engine.candidates(files, strategy))
            with session.lock:
                session.stage = ScanStage.SCANNING
                session.strategy = strategy.value
                session.total_files = candidates
                session.total_comparisons = candidates * (candidates - 1) // 2
            logger.info(
                "Scan %s: %d files, %d comparisons, %s strategy",
                session.session_id,
                candidates,
                session.total_comparisons,
                strategy.value,
            )
            self.sink.publish_progress(session.snapshot())

            groups = self.engine.compute_groups(
                files, cancel=session.token, observer=observer, strategy=strategy
            )
            session.token.raise_if_cancelled()
            observer.flush()
            # cancel() holds the same lock, so a request lands either here or on a finished session.
            with session.lock:
                if session.cancelled:
                    raise ScanCancelled()
                self.cache.put(groups)
                session.files_processed = session.total_files
                session.comparisons_completed = session.total_comparisons
                session.groups_found = len(groups)
                session.stage = ScanStage.COMPLETED
                session.finished_at = self._clock()
            logger.info("Scan %s completed with %d groups", session.session_id, len(groups))
        except ScanCancelled:
            observer.pending.clear()
            self._set_stage(session, ScanStage.CANCELLED)
            logger.info("Scan %s cancelled", session.session_id)
        except Exception as exc:
            logger.exception("Scan %s failed", session.session_id)
            self._set_stage(session, ScanStage.ERROR, error=str(exc) or exc.__class__.__name__)
        try:
            self.sink.publish_progress(session.snapshot())
        except Exception:
            logger.exception("Could not publish final state of scan %s", session.session_id)
