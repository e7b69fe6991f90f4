from __future__ import annotations

from threading import Event
from typing import Optional

from .errors import ScanCancelled


class CancelToken:
    """Cooperative cancellation flag shared between a caller and a worker loop."""

    def __init__(self) -> None:
        self._event = Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ScanCancelled()


def check(token: Optional[CancelToken]) -> None:
    if token is not None:
        token.raise_if_cancelled()
