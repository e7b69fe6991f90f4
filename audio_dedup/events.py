from __future__ import annotations

import json
import logging
import queue
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, Optional, Union

from .models import GroupBatch, ScanProgress
from .protocols import groups_channel, progress_channel

logger = logging.getLogger(__name__)

EventPayload = Union[ScanProgress, GroupBatch]


@dataclass(frozen=True, slots=True)
class ScanEvent:
    channel: str
    payload: EventPayload

    def to_record(self) -> Dict[str, Any]:
        return {"channel": self.channel, "payload": self.payload.to_record()}


class LoggingEventSink:
    def __init__(self, level: int = logging.INFO) -> None:
        self.level = level

    def publish_progress(self, progress: ScanProgress) -> None:
        logger.log(
            self.level,
            "[%s] %s: %d/%d files, %d%% complete, %d groups",
            progress_channel(progress.session_id),
            progress.stage.value,
            progress.files_processed,
            progress.total_files,
            progress.percent_complete,
            progress.groups_found,
        )
        if progress.error:
            logger.error("[%s] scan failed: %s", progress_channel(progress.session_id), progress.error)

    def publish_groups(self, session_id: str, batch: GroupBatch) -> None:
        logger.log(
            self.level,
            "[%s] %d new groups (%d total)",
            groups_channel(session_id),
            len(batch.groups),
            batch.total_groups_found,
        )


class QueueEventSink:
    """Buffers events in a thread-safe queue for a consumer on another thread."""

    def __init__(self, maxsize: int = 0) -> None:
        self.events: "queue.Queue[ScanEvent]" = queue.Queue(maxsize=maxsize)

    def publish_progress(self, progress: ScanProgress) -> None:
        self.events.put(ScanEvent(progress_channel(progress.session_id), progress))

    def publish_groups(self, session_id: str, batch: GroupBatch) -> None:
        self.events.put(ScanEvent(groups_channel(session_id), batch))

    def drain(self) -> list[ScanEvent]:
        drained: list[ScanEvent] = []
        while True:
            try:
                drained.append(self.events.get_nowait())
            except queue.Empty:
                return drained

    def get(self, timeout: Optional[float] = None) -> ScanEvent:
        return self.events.get(timeout=timeout)


class CallbackEventSink:
    def __init__(self, callback: Callable[[ScanEvent], None]) -> None:
        self.callback = callback

    def publish_progress(self, progress: ScanProgress) -> None:
        self.callback(ScanEvent(progress_channel(progress.session_id), progress))

    def publish_groups(self, session_id: str, batch: GroupBatch) -> None:
        self.callback(ScanEvent(groups_channel(session_id), batch))


class JsonLinesEventSink:
    """Appends one JSON object per event to ``output_path``."""

    def __init__(self, output_path: Path) -> None:
        self.output_path = output_path
        self._lock = Lock()
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text("", encoding="utf-8")

    def publish_progress(self, progress: ScanProgress) -> None:
        self._write(ScanEvent(progress_channel(progress.session_id), progress))

    def publish_groups(self, session_id: str, batch: GroupBatch) -> None:
        self._write(ScanEvent(groups_channel(session_id), batch))

    def _write(self, event: ScanEvent) -> None:
        line = json.dumps(event.to_record(), sort_keys=True)
        with self._lock:
            with self.output_path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")


class FanOutEventSink:
    def __init__(self, *sinks: Any) -> None:
        self.sinks = [sink for sink in sinks if sink is not None]

    def publish_progress(self, progress: ScanProgress) -> None:
        for sink in self.sinks:
            sink.publish_progress(progress)

    def publish_groups(self, session_id: str, batch: GroupBatch) -> None:
        for sink in self.sinks:
            sink.publish_groups(session_id, batch)
