"""Exception hierarchy for the tracking layer."""

from __future__ import annotations


class TrackwireError(Exception):
    """Base class for every error raised by trackwire."""


class ConfigurationError(TrackwireError):
    """Settings are missing or invalid; the layer refuses to install."""


class CollectorError(TrackwireError):
    """Any failed exchange with the remote collector."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PolicyFetchError(CollectorError):
    """Policy or rate-check lookup failed (network, status or body shape)."""


class TransmissionError(CollectorError):
    """Posting events to the ingestion endpoint failed."""


__all__ = [
    "CollectorError",
    "ConfigurationError",
    "PolicyFetchError",
    "TrackwireError",
    "TransmissionError",
]
