"""
Fingerprint generation for records that do not have one yet.

Generators turn an audio file into a Chromaprint raw fingerprint (the
comma-separated integer form the matcher compares). FingerprintService runs a
generator over every record missing a fingerprint on a small thread pool and
stores the results through the repository. Per-file failures are logged,
remembered (bounded) and never abort the batch.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from collections import OrderedDict
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from pathlib import Path
from threading import Lock
from typing import Callable, Dict, List, Optional

import acoustid

from .cancel import CancelToken
from .config import FingerprintSettings
from .errors import FingerprintError
from .fingerprint import UINT32_MASK
from .models import FileRecord, FingerprintBatchResult, FingerprintFailure, FingerprintResult
from .protocols import FileRepository, FingerprintGenerator

logger = logging.getLogger(__name__)

DEFAULT_LENGTH_SECONDS = 30
DEFAULT_WORKERS = 4
DEFAULT_MAX_FAILURES = 100
FPCALC_TIMEOUT_SECONDS = 120


def encode_raw(values: List[int]) -> str:
    return ",".join(str(value & UINT32_MASK) for value in values)


class AcoustidFingerprintGenerator:
    """Fingerprints through pyacoustid and decodes to raw integers with libchromaprint."""

    name = "acoustid"

    def available(self) -> bool:
        return bool(getattr(acoustid, "have_chromaprint", False))

    def generate(self, path: Path, length: int) -> FingerprintResult:
        try:
            duration, encoded = acoustid.fingerprint_file(str(path), maxlength=length)
        except acoustid.FingerprintGenerationError as exc:
            raise FingerprintError(str(path), str(exc)) from exc
        try:
            import chromaprint
        except ImportError as exc:
            raise FingerprintError(str(path), "libchromaprint is not available") from exc
        try:
            values, _algorithm = chromaprint.decode_fingerprint(encoded)
        except chromaprint.FingerprintError as exc:
            raise FingerprintError(str(path), f"could not decode fingerprint: {exc}") from exc
        if not values:
            raise FingerprintError(str(path), "empty fingerprint")
        return FingerprintResult(encode_raw(values), int(duration) if duration else None)


class FpcalcFingerprintGenerator:
    """Runs Chromaprint's ``fpcalc -raw`` and parses its key=value output."""

    name = "fpcalc"

    def __init__(self, executable: str = "fpcalc", timeout: float = FPCALC_TIMEOUT_SECONDS) -> None:
        self.executable = executable
        self.timeout = timeout

    def available(self) -> bool:
        return shutil.which(self.executable) is not None

    def generate(self, path: Path, length: int) -> FingerprintResult:
        command = [self.executable, "-length", str(length), "-raw", str(path)]
        try:
            completed = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError as exc:
            raise FingerprintError(str(path), f"{self.executable} not found") from exc
        except subprocess.TimeoutExpired as exc:
            raise FingerprintError(str(path), f"{self.executable} timed out") from exc
        if completed.returncode != 0:
            message = (completed.stderr or "").strip() or f"exit code {completed.returncode}"
            raise FingerprintError(str(path), message)
        return self.parse_output(str(path), completed.stdout)

    @staticmethod
    def parse_output(path: str, output: str) -> FingerprintResult:
        duration: Optional[int] = None
        fingerprint: Optional[str] = None
        for line in output.splitlines():
            key, _, value = line.partition("=")
            key = key.strip().upper()
            if key == "DURATION":
                try:
                    duration = int(float(value.strip()))
                except ValueError:
                    duration = None
            elif key == "FINGERPRINT":
                fingerprint = value.strip()
        if not fingerprint:
            raise FingerprintError(path, "no fingerprint in fpcalc output")
        return FingerprintResult(fingerprint, duration)


def build_generator(settings: FingerprintSettings) -> FingerprintGenerator:
    if settings.backend == "fpcalc":
        return FpcalcFingerprintGenerator(settings.fpcalc_path)
    return AcoustidFingerprintGenerator()


FingerprintProgress = Callable[[int, int], None]


class FingerprintService:
    def __init__(
        self,
        repository: FileRepository,
        generator: FingerprintGenerator,
        *,
        length_seconds: int = DEFAULT_LENGTH_SECONDS,
        workers: int = DEFAULT_WORKERS,
        max_failures: int = DEFAULT_MAX_FAILURES,
    ) -> None:
        self.repository = repository
        self.generator = generator
        self.length_seconds = length_seconds
        self.workers = max(1, workers)
        self.max_failures = max(1, max_failures)
        self._failures: "OrderedDict[int, FingerprintFailure]" = OrderedDict()
        self._lock = Lock()

    def available(self) -> bool:
        return self.generator.available()

    def failures(self) -> List[FingerprintFailure]:
        with self._lock:
            return list(self._failures.values())

    def clear_failures(self) -> None:
        with self._lock:
            self._failures.clear()

    def generate_for(self, file_id: int) -> Optional[FingerprintResult]:
        record = self.repository.get_file_by_id(file_id)
        if record is None:
            return None
        try:
            result = self._generate(record)
        except FingerprintError as exc:
            self._record_failure(record, exc.reason)
            return None
        self.repository.update_fingerprint(record.id, result.fingerprint, result.duration)
        return result

    def generate_missing(
        self,
        *,
        cancel: Optional[CancelToken] = None,
        progress: Optional[FingerprintProgress] = None,
    ) -> FingerprintBatchResult:
        pending = self.repository.get_files_without_fingerprint()
        batch = FingerprintBatchResult(total=len(pending))
        runnable: List[FileRecord] = []
        for record in pending:
            if Path(record.path).exists():
                runnable.append(record)
            else:
                batch.skipped += 1
                logger.debug("Skipping missing file %s", record.path)
        if not runnable:
            return batch
        logger.info(
            "Fingerprinting %d files with %s (%d workers)", len(runnable), self.generator.name, self.workers
        )
        executor = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="fingerprint")
        futures: Dict[Future, FileRecord] = {}
        collected: set[Future] = set()
        try:
            futures = {executor.submit(self._generate, record): record for record in runnable}
            for future in as_completed(futures):
                if cancel is not None and cancel.cancelled:
                    batch.cancelled = True
                    break
                self._collect(future, futures[future], batch)
                collected.add(future)
                if progress:
                    progress(len(collected), len(runnable))
        finally:
            executor.shutdown(wait=True, cancel_futures=batch.cancelled)
        if batch.cancelled:
            # Units that were already running have finished; keep their results.
            for future, record in futures.items():
                if future in collected or future.cancelled():
                    continue
                if future.done():
                    self._collect(future, record, batch)
            logger.info("Fingerprinting cancelled after %d files", batch.successful + batch.failed)
        logger.info(
            "Fingerprinting finished: %d ok, %d failed, %d skipped",
            batch.successful,
            batch.failed,
            batch.skipped,
        )
        return batch

    def _generate(self, record: FileRecord) -> FingerprintResult:
        return self.generator.generate(Path(record.path), self.length_seconds)

    def _collect(self, future: Future, record: FileRecord, batch: FingerprintBatchResult) -> None:
        try:
            result = future.result()
        except FingerprintError as exc:
            batch.failed += 1
            batch.failures.append(self._record_failure(record, exc.reason))
            return
        except Exception as exc:
            logger.exception("Unexpected error fingerprinting %s", record.path)
            batch.failed += 1
            batch.failures.append(self._record_failure(record, str(exc) or exc.__class__.__name__))
            return
        if self.repository.update_fingerprint(record.id, result.fingerprint, result.duration):
            batch.successful += 1
        else:
            batch.failed += 1
            batch.failures.append(self._record_failure(record, "record no longer exists"))

    def _record_failure(self, record: FileRecord, reason: str) -> FingerprintFailure:
        logger.warning("Fingerprint failed for %s: %s", record.path, reason)
        failure = FingerprintFailure(record.id, str(record.path), reason)
        with self._lock:
            self._failures.pop(record.id, None)
            self._failures[record.id] = failure
            while len(self._failures) > self.max_failures:
                self._failures.popitem(last=False)
        return failure
