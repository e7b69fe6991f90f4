from __future__ import annotations

import re
import unicodedata
from typing import Optional

from rapidfuzz.distance import JaroWinkler

PUNCTUATION_PATTERN = re.compile(r"[^\w\s]+|_+")
WHITESPACE_PATTERN = re.compile(r"\s+")
ARTIST_PREFIX_PATTERN = re.compile(r"^(the|a|an)\s+", re.IGNORECASE)
FEATURING_PATTERN = re.compile(
    r"\s*[\(\[]?\s*\b(?:feat\.?|ft\.?|featuring)\s+.*$",
    re.IGNORECASE,
)
ALBUM_EDITION_PATTERN = re.compile(
    r"\s*[\(\[]?\s*(?:\d{4}\s+)?\b(?:deluxe|remaster(?:ed)?|special|limited|extended|expanded|"
    r"anniversary|collector'?s?)\b\s*(?:edition|version)?\s*[\)\]]?.*$",
    re.IGNORECASE,
)


def fold_accents(value: str) -> str:
    cleaned = unicodedata.normalize("NFKD", value)
    return "".join(ch for ch in cleaned if not unicodedata.combining(ch))


def normalize_match_text(value: str) -> str:
    cleaned = fold_accents(value)
    cleaned = cleaned.encode("ascii", "ignore").decode("ascii")
    cleaned = cleaned.lower()
    cleaned = re.sub(r"[^a-z0-9]+", " ", cleaned)
    return cleaned.strip()


def strip_artist_prefix(value: str) -> str:
    stripped = ARTIST_PREFIX_PATTERN.sub("", value, count=1)
    return stripped or value


def strip_featuring(value: str) -> str:
    stripped = FEATURING_PATTERN.sub("", value, count=1).strip()
    return stripped or value


def strip_album_edition(value: str) -> str:
    stripped = ALBUM_EDITION_PATTERN.sub("", value, count=1).strip()
    return stripped or value


def strip_punctuation(value: str) -> str:
    return PUNCTUATION_PATTERN.sub(" ", value)


def collapse_whitespace(value: str) -> str:
    return WHITESPACE_PATTERN.sub(" ", value).strip()


def jaro_winkler(a: str, b: str) -> float:
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    return JaroWinkler.normalized_similarity(a, b)


def token_sort_similarity(a: str, b: str) -> float:
    """Order-invariant similarity: Jaro-Winkler over the sorted token multisets."""
    if not a or not b:
        return 0.0
    return JaroWinkler.normalized_similarity(" ".join(sorted(a.split())), " ".join(sorted(b.split())))


def duration_within(
    a: Optional[int],
    b: Optional[int],
    tolerance_seconds: int,
    tolerance_percent: float,
) -> Optional[bool]:
    """Both the absolute and the relative tolerance must hold; None when a side is unknown."""
    if a is None or b is None:
        return None
    diff = abs(a - b)
    if diff > tolerance_seconds:
        return False
    mean = (a + b) / 2.0
    if mean <= 0:
        return diff == 0
    return (diff / mean) * 100.0 <= tolerance_percent


def bitrate_within(a: Optional[int], b: Optional[int], tolerance_kbps: int) -> Optional[bool]:
    if not a or not b:
        return None
    return abs(a - b) <= tolerance_kbps


def normalize_for_path(value: Optional[str]) -> str:
    if not value:
        return ""
    return re.sub(r"[^a-z0-9]", "", fold_accents(value).lower())
