"""
Error taxonomy shared by every upstream call site.

    UpstreamUnavailableError - network failure, timeout, 5xx. Retryable.
    RateLimitError           - 429 / RPC rate limit. Retryable, longer backoff.
    UpstreamError            - 4xx / JSON-RPC error. Terminal.
    DecodeError              - malformed or unexpected payload. Skip the item.
    ConfigurationMissingError - required endpoint or key absent. Disable the unit.
    CycleFailedError         - every unit of a cycle failed.

Duplicate inserts are not errors; the store reports them as UpsertOutcome.DUPLICATE.
"""

from __future__ import annotations

from typing import Optional


class RadarError(Exception):
    """Base exception for launch radar errors."""


class UpstreamError(RadarError):
    """Terminal upstream failure (client error, JSON-RPC error)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class UpstreamUnavailableError(UpstreamError):
    """Upstream unreachable, timed out or returned a server error."""


class RateLimitError(UpstreamUnavailableError):
    """Rate limit exceeded."""


class DecodeError(RadarError):
    """A single log, event or article could not be decoded."""


class ConfigurationMissingError(RadarError):
    """A required endpoint or credential is not configured."""


class CycleFailedError(RadarError):
    """Every independent unit within a cycle failed."""
