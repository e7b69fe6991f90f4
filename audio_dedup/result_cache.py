from __future__ import annotations

import logging
import time
from threading import Lock
from typing import Callable, List, Optional, Sequence, Tuple

from .models import DuplicateGroup

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 60.0


class DuplicateResultCache:
    """Remembers the last grouping for a bounded time.

    Two concurrent misses may both recompute; the later ``put`` wins.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = Lock()
        self._groups: Optional[Tuple[DuplicateGroup, ...]] = None
        self._computed_at: Optional[float] = None

    def get(self) -> Optional[List[DuplicateGroup]]:
        with self._lock:
            if self._groups is None or self._computed_at is None:
                return None
            if self._clock() - self._computed_at >= self.ttl_seconds:
                logger.debug("Duplicate cache expired")
                self._groups = None
                self._computed_at = None
                return None
            return list(self._groups)

    def put(self, groups: Sequence[DuplicateGroup]) -> None:
        with self._lock:
            self._groups = tuple(groups)
            self._computed_at = self._clock()

    def invalidate(self) -> None:
        with self._lock:
            if self._groups is not None:
                logger.debug("Duplicate cache invalidated")
            self._groups = None
            self._computed_at = None

    @property
    def computed_at(self) -> Optional[float]:
        with self._lock:
            return self._computed_at

    def age(self) -> Optional[float]:
        with self._lock:
            if self._computed_at is None:
                return None
            return self._clock() - self._computed_at
