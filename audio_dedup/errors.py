from __future__ import annotations


class AudioDedupError(Exception):
    """Base class for errors raised by the duplicate engine."""


class ConfigError(AudioDedupError):
    """Raised when the configuration file is missing or invalid."""


class FingerprintError(AudioDedupError):
    """Raised by a fingerprint generator when a file cannot be fingerprinted."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class ScanCancelled(AudioDedupError):
    """Raised inside a clustering loop once its cancel token has been set."""
