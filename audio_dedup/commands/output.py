from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Optional

from ..models import DuplicateGroup, FileRecord


@dataclass(frozen=True, slots=True)
class CheckLine:
    label: str
    status: str
    detail: Optional[str] = None

    def render(self) -> str:
        if self.detail:
            return f"{self.label}: {self.status} ({self.detail})"
        return f"{self.label}: {self.status}"


def ok(label: str, detail: Optional[str] = None) -> str:
    return CheckLine(label, "OK", detail).render()


def warning(label: str, detail: Optional[str] = None) -> str:
    return CheckLine(label, "WARNING", detail).render()


def error(label: str, detail: Optional[str] = None) -> str:
    return CheckLine(label, "ERROR", detail).render()


def print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True, default=str))


def describe_file(record: FileRecord) -> str:
    bitrate = f"{record.bitrate} kbps" if record.bitrate else "? kbps"
    duration = f"{record.duration_seconds}s" if record.duration_seconds is not None else "?s"
    return (
        f"[{record.id}] {record.artist or '<unknown>'} - {record.title or '<unknown>'} "
        f"({bitrate}, {duration}) {record.path}"
    )


def describe_group(group: DuplicateGroup) -> list[str]:
    title = group.representative_title or "<untitled>"
    artist = group.representative_artist or "<unknown>"
    lines = [f"Group {group.group_id}: {artist} - {title} ({group.file_count} files)"]
    for index, record in enumerate(group.files):
        line = f"    {describe_file(record)}"
        if index < len(group.similarities) and group.similarities[index] is not None and index > 0:
            line += f" [{group.similarities[index]:.1%}]"
        lines.append(line)
    return lines
