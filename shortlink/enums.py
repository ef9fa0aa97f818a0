"""Shared enums for the short link service.

This module defines all status enums used across the codebase.
Using enums instead of string literals provides type safety and prevents typos.
"""

from enum import StrEnum

__all__ = ["HealthStatus", "Reachability", "RequestStatus"]


class HealthStatus(StrEnum):
    """Health check status values."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    DISABLED = "disabled"


class Reachability(StrEnum):
    """Outcome of the reachability probe run by the security pre-check."""

    REACHABLE = "reachable"
    UNREACHABLE = "unreachable"
    UNVERIFIABLE = "unverifiable"
    SKIPPED = "skipped"


class RequestStatus(StrEnum):
    """Request status values for metrics and logging."""

    SUCCESS = "success"
    VALIDATION_ERROR = "validation_error"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    ERROR = "error"
