"""Shared enums for the link shortener.

This module defines all status and state enums used across the codebase.
Using enums instead of string literals provides type safety and prevents typos.
"""

from enum import StrEnum

__all__ = ["HealthStatus", "RequestStatus", "CacheStatus"]


class HealthStatus(StrEnum):
    """Health check status values."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class RequestStatus(StrEnum):
    """Request outcome values for metrics and logging."""

    SUCCESS = "success"
    INVALID_INPUT = "invalid_input"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    UNAVAILABLE = "unavailable"


class CacheStatus(StrEnum):
    """Cache lookup outcome, also sent as the ``X-Cache`` response header."""

    HIT = "HIT"
    MISS = "MISS"

    @classmethod
    def from_hit(cls, cache_hit: bool) -> "CacheStatus":
        return cls.HIT if cache_hit else cls.MISS
