"""
Metadata-based duplicate matching.

Two records are compared field by field after the normalization selected by
the MatchConfig. Title, artist, album and duration each count towards the
"fields matched" total when they clear their own threshold; bitrate and track
number are reported alongside. A duration outside tolerance, or a track number
mismatch when the config requires equal track numbers, disqualifies the pair
regardless of the count.

Missing values never raise: a field that is absent on either side simply does
not count as matched.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .config import MatchConfig
from .match_utils import (
    bitrate_within,
    collapse_whitespace,
    duration_within,
    fold_accents,
    jaro_winkler,
    strip_album_edition,
    strip_artist_prefix,
    strip_featuring,
    strip_punctuation,
    token_sort_similarity,
)
from .models import FileRecord

TEXT_FIELDS = ("title", "artist", "album")


@dataclass(slots=True)
class FieldComparison:
    name: str
    score: Optional[float]
    threshold: Optional[float]
    matched: bool
    counted: bool = True
    detail: str = ""

    def render(self) -> str:
        label = self.name.replace("_", " ").capitalize()
        if self.score is not None and self.threshold is not None:
            return f"{label}: {self.score:.1%} (threshold: {self.threshold:.1%})"
        if self.detail:
            return f"{label}: {self.detail}"
        return f"{label}: {'MATCH' if self.matched else 'NO MATCH'}"


@dataclass(slots=True)
class MatchBreakdown:
    fields: List[FieldComparison] = field(default_factory=list)
    matched_count: int = 0
    minimum_fields: int = 0
    disqualified: Optional[str] = None

    @property
    def is_duplicate(self) -> bool:
        return self.disqualified is None and self.matched_count >= self.minimum_fields

    @property
    def similarity(self) -> float:
        if not self.is_duplicate:
            return 0.0
        scores = [
            item.score
            for item in self.fields
            if item.name in TEXT_FIELDS and item.score is not None
        ]
        if not scores:
            return 0.0
        return sum(scores) / len(scores)

    def get(self, name: str) -> Optional[FieldComparison]:
        for item in self.fields:
            if item.name == name:
                return item
        return None


class FuzzyMetadataMatcher:
    """Pairwise metadata similarity under a fixed MatchConfig."""

    def __init__(self, config: Optional[MatchConfig] = None) -> None:
        self.config = config or MatchConfig()

    def similarity(self, a: FileRecord, b: FileRecord) -> float:
        return self.compare(a, b).similarity

    def are_duplicates(self, a: FileRecord, b: FileRecord) -> bool:
        return self.compare(a, b).is_duplicate

    def explain(self, a: FileRecord, b: FileRecord) -> str:
        breakdown = self.compare(a, b)
        lines = ["Similarity Breakdown:"]
        lines.extend(f"  {item.render()}" for item in breakdown.fields)
        lines.append(
            f"  Fields matched: {breakdown.matched_count} (minimum: {breakdown.minimum_fields})"
        )
        if breakdown.disqualified:
            lines.append(f"  Disqualified: {breakdown.disqualified}")
        lines.append(f"  Result: {'DUPLICATE' if breakdown.is_duplicate else 'NOT DUPLICATE'}")
        return "\n".join(lines)

    def compare(self, a: FileRecord, b: FileRecord) -> MatchBreakdown:
        config = self.config
        breakdown = MatchBreakdown(minimum_fields=config.minimum_fields_to_match)
        thresholds = {
            "title": config.title_threshold,
            "artist": config.artist_threshold,
            "album": config.album_threshold,
        }
        for name in TEXT_FIELDS:
            score = self.field_similarity(name, getattr(a, name), getattr(b, name))
            threshold = thresholds[name]
            matched = score is not None and score >= threshold
            breakdown.fields.append(
                FieldComparison(
                    name=name,
                    score=score,
                    threshold=threshold,
                    matched=matched,
                    detail="missing" if score is None else "",
                )
            )
            if matched:
                breakdown.matched_count += 1

        duration_ok = duration_within(
            a.duration_seconds,
            b.duration_seconds,
            config.duration_tolerance_seconds,
            config.duration_tolerance_percent,
        )
        if duration_ok is None:
            duration_detail = "missing"
        else:
            diff = abs((a.duration_seconds or 0) - (b.duration_seconds or 0))
            duration_detail = f"{'MATCH' if duration_ok else 'NO MATCH'} ({diff}s apart)"
        breakdown.fields.append(
            FieldComparison(
                name="duration",
                score=None,
                threshold=None,
                matched=bool(duration_ok),
                detail=duration_detail,
            )
        )
        if duration_ok:
            breakdown.matched_count += 1
        elif duration_ok is False:
            breakdown.disqualified = "duration outside tolerance"

        bitrate_ok = bitrate_within(a.bitrate, b.bitrate, config.bitrate_tolerance_kbps)
        breakdown.fields.append(
            FieldComparison(
                name="bitrate",
                score=None,
                threshold=None,
                matched=bool(bitrate_ok),
                counted=False,
                detail="missing"
                if bitrate_ok is None
                else f"{'MATCH' if bitrate_ok else 'NO MATCH'} ({a.bitrate} vs {b.bitrate} kbps)",
            )
        )

        track_ok = self._track_numbers_agree(a.track_number, b.track_number)
        breakdown.fields.append(
            FieldComparison(
                name="track",
                score=None,
                threshold=None,
                matched=bool(track_ok),
                counted=False,
                detail="skipped" if track_ok is None else ("MATCH" if track_ok else "NO MATCH"),
            )
        )
        if config.track_number_must_match and track_ok is False and breakdown.disqualified is None:
            breakdown.disqualified = "track numbers differ"
        return breakdown

    def field_similarity(self, name: str, a: Optional[str], b: Optional[str]) -> Optional[float]:
        if a is None or b is None:
            return None
        norm_a = self.normalize(name, a)
        norm_b = self.normalize(name, b)
        if not norm_a or not norm_b:
            return None
        if norm_a == norm_b:
            return 1.0
        score = jaro_winkler(norm_a, norm_b)
        if not self.config.word_order_sensitive and name in ("title", "artist"):
            score = max(score, token_sort_similarity(norm_a, norm_b))
        return score

    def normalize(self, name: str, value: str) -> str:
        config = self.config
        normalized = value.strip()
        if config.ignore_case:
            normalized = fold_accents(normalized).lower()
        steps: list[Callable[[str], str]] = []
        if name == "artist":
            if config.ignore_artist_prefixes:
                steps.append(strip_artist_prefix)
            if config.ignore_featuring:
                steps.append(strip_featuring)
        elif name == "title":
            if config.ignore_featuring:
                steps.append(strip_featuring)
        elif name == "album":
            if config.ignore_album_editions:
                steps.append(strip_album_edition)
        for step in steps:
            normalized = step(normalized)
        if config.ignore_punctuation:
            normalized = strip_punctuation(normalized)
        return collapse_whitespace(normalized)

    def _track_numbers_agree(self, a: Optional[int], b: Optional[int]) -> Optional[bool]:
        if a is None and b is None:
            return True
        if a is None or b is None:
            if self.config.ignore_missing_track_number:
                return None
            return False
        return a == b
