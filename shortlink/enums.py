"""Shared enums for the shortlink service.

This module defines all status and state enums used across the codebase.
Using enums instead of string literals provides type safety and prevents typos.
"""

from enum import StrEnum

__all__ = ["CacheStatus", "HealthStatus", "RequestStatus"]


class HealthStatus(StrEnum):
    """Health check status values."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"

    @classmethod
    def from_str(cls, value: str) -> "HealthStatus":
        """Safely parse from string, falling back to UNHEALTHY for unknown values."""
        try:
            return cls(value)
        except ValueError:
            return cls.UNHEALTHY


class RequestStatus(StrEnum):
    """Request status values for metrics and logging."""

    SUCCESS = "success"
    VALIDATION_ERROR = "validation_error"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    ERROR = "error"

    @classmethod
    def from_str(cls, value: str) -> "RequestStatus":
        """Safely parse from string, falling back to ERROR for unknown values."""
        try:
            return cls(value)
        except ValueError:
            return cls.ERROR


class CacheStatus(StrEnum):
    """Outcome of a cache lookup, used as a metrics label."""

    HIT = "hit"
    MISS = "miss"
    UNAVAILABLE = "unavailable"
