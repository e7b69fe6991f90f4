from __future__ import annotations

from pathlib import Path
from typing import List, Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigError


class MatchConfig(BaseModel):
    """Resolved fuzzy-matching policy. Thresholds are fractions in 0.0-1.0."""

    model_config = ConfigDict(frozen=True)

    name: str = "Balanced"
    title_threshold: float = 0.85
    artist_threshold: float = 0.90
    album_threshold: float = 0.85
    duration_tolerance_seconds: int = Field(default=10, ge=0)
    duration_tolerance_percent: float = Field(default=5.0, ge=0.0)
    bitrate_tolerance_kbps: int = Field(default=64, ge=0)
    minimum_fields_to_match: int = Field(default=2, ge=1, le=4)
    ignore_case: bool = True
    ignore_punctuation: bool = True
    word_order_sensitive: bool = False
    track_number_must_match: bool = False
    ignore_missing_track_number: bool = True
    ignore_artist_prefixes: bool = True
    ignore_featuring: bool = False
    ignore_album_editions: bool = True

    @field_validator("title_threshold", "artist_threshold", "album_threshold", mode="before")
    @classmethod
    def _fraction(cls, value: float | int | str) -> float:
        number = float(value)
        # Percent-style values (85, 90) are accepted as written in older profiles.
        if number > 1.0:
            number = number / 100.0
        return max(0.0, min(1.0, number))

    @classmethod
    def strict(cls) -> "MatchConfig":
        return cls(
            name="Strict",
            title_threshold=1.0,
            artist_threshold=1.0,
            album_threshold=1.0,
            duration_tolerance_seconds=0,
            duration_tolerance_percent=0.0,
            track_number_must_match=True,
            ignore_missing_track_number=False,
            minimum_fields_to_match=4,
        )

    @classmethod
    def lenient(cls) -> "MatchConfig":
        return cls(
            name="Lenient",
            title_threshold=0.70,
            artist_threshold=0.75,
            album_threshold=0.70,
            duration_tolerance_seconds=30,
            duration_tolerance_percent=10.0,
            minimum_fields_to_match=2,
            ignore_featuring=True,
        )

    @classmethod
    def balanced(cls) -> "MatchConfig":
        return cls()

    @classmethod
    def preset(cls, name: str) -> "MatchConfig":
        presets = {"strict": cls.strict, "lenient": cls.lenient, "balanced": cls.balanced}
        try:
            return presets[name.lower()]()
        except KeyError:
            raise ConfigError(f"Unknown matching preset {name!r}") from None

    def summary(self) -> str:
        options = []
        if self.ignore_case:
            options.append("IgnoreCase")
        if self.ignore_punctuation:
            options.append("IgnorePunct")
        if self.ignore_artist_prefixes:
            options.append("IgnorePrefix")
        if self.ignore_featuring:
            options.append("IgnoreFeat")
        if self.ignore_album_editions:
            options.append("IgnoreEditions")
        if not self.word_order_sensitive:
            options.append("AnyWordOrder")
        lines = [
            f"Fuzzy Search Configuration: {self.name}",
            f"  Title Similarity: {self.title_threshold:.0%}",
            f"  Artist Similarity: {self.artist_threshold:.0%}",
            f"  Album Similarity: {self.album_threshold:.0%}",
            f"  Duration Tolerance: {self.duration_tolerance_seconds}s / {self.duration_tolerance_percent:.1f}%",
            f"  Bitrate Tolerance: {self.bitrate_tolerance_kbps} kbps",
            f"  Track Number Match: {'Required' if self.track_number_must_match else 'Optional'}",
            f"  Min Fields Match: {self.minimum_fields_to_match}/4",
            f"  Options: {' '.join(options)}",
        ]
        return "\n".join(lines)


class LibrarySettings(BaseModel):
    roots: List[Path] = Field(default_factory=list)
    include_extensions: List[str] = Field(default_factory=lambda: [".mp3", ".flac", ".m4a", ".ogg"])
    exclude_patterns: List[str] = Field(default_factory=list)

    @field_validator("roots", mode="before")
    @classmethod
    def _expand_roots(cls, values: List[str]) -> List[Path]:
        return [Path(v).expanduser().resolve() for v in values or []]


class StoreSettings(BaseModel):
    path: Path = Path("./library.sqlite3")

    @field_validator("path", mode="before")
    @classmethod
    def _expand_path(cls, value: str | Path) -> Path:
        return Path(value).expanduser().resolve()


class FingerprintSettings(BaseModel):
    backend: Literal["acoustid", "fpcalc"] = "acoustid"
    fpcalc_path: str = "fpcalc"
    length_seconds: int = Field(default=30, gt=0)
    workers: int = Field(default=4, ge=1)
    threshold: float = Field(default=0.85, ge=0.0, le=1.0)
    group_workers: Optional[int] = Field(default=None, ge=1)
    max_failures: int = Field(default=100, ge=1)


class ScanSettings(BaseModel):
    cache_ttl_seconds: float = Field(default=60.0, ge=0.0)
    group_batch_size: int = Field(default=25, ge=1)
    progress_every_files: int = Field(default=100, ge=1)
    retention_seconds: float = Field(default=30.0, ge=0.0)


class Settings(BaseModel):
    library: LibrarySettings = LibrarySettings()
    store: StoreSettings = StoreSettings()
    matching: MatchConfig = MatchConfig()
    fingerprint: FingerprintSettings = FingerprintSettings()
    scan: ScanSettings = ScanSettings()

    @field_validator("matching", mode="before")
    @classmethod
    def _matching_preset(cls, value: object) -> object:
        if isinstance(value, str):
            return MatchConfig.preset(value)
        if isinstance(value, dict) and "preset" in value:
            overrides = {k: v for k, v in value.items() if k != "preset"}
            base = MatchConfig.preset(str(value["preset"]))
            return {**base.model_dump(), **overrides}
        return value

    @classmethod
    def load(cls, path: Path) -> "Settings":
        try:
            with path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh)
        except OSError as exc:
            raise ConfigError(f"Could not read {path}: {exc}") from exc
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
        try:
            return cls.model_validate(raw or {})
        except ValidationError as exc:
            raise ConfigError(f"Invalid configuration in {path}:\n{exc}") from exc


def find_config(explicit_path: Optional[Path]) -> Optional[Path]:
    if explicit_path:
        if not explicit_path.exists():
            raise ConfigError(f"Config file {explicit_path} does not exist")
        return explicit_path
    cwd = Path.cwd()
    for candidate in (cwd / "config.yaml", cwd / "config.yml"):
        if candidate.exists():
            return candidate
    return None
