"""Error taxonomy for generation and tracking.

Expected empty outcomes (no roads, margin erased the polygon, nothing inside
the mask) are valid zero-length results and never raise.
"""
from __future__ import annotations

from typing import Optional


class CoverageError(Exception):
    """Base class for every error raised by field_coverage."""


class InvalidConfig(CoverageError, ValueError):
    """Generation settings rejected before any computation."""


class InvalidGeometry(CoverageError, ValueError):
    """Input that is not a single, well-formed polygon."""


class RoadDataUnavailable(CoverageError):
    """Road data could not be fetched (timeout, HTTP failure, malformed body).

    Distinct from a successful fetch that found zero roads.
    """

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class InvalidTransition(CoverageError, RuntimeError):
    """Tracking command not allowed from the current session status."""

    def __init__(self, command: str, status: str):
        super().__init__(f"Cannot {command} a session that is {status}")
        self.command = command
        self.status = status
