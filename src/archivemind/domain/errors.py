"""
Exception taxonomy for Archivemind.

Adapters and repositories raise these; the service layer catches them at its boundary
and converts them into result objects carrying an `ErrorCode`.
"""

from __future__ import annotations

from typing import Any, List, Optional

from .entities import ErrorCode


class ArchivemindError(Exception):
    """Base exception for all Archivemind errors"""
    code: ErrorCode = ErrorCode.UNEXPECTED


class NotFoundError(ArchivemindError):
    """Channel, guild or archive record does not exist"""
    code = ErrorCode.CHANNEL_NOT_FOUND


class AlreadyArchivedError(ArchivemindError):
    """A non-restored archive already exists for the channel"""
    code = ErrorCode.ALREADY_ARCHIVED


class PermissionDeniedError(ArchivemindError):
    """The platform refused the operation"""
    code = ErrorCode.PERMISSION_DENIED


class PersistenceFailureError(ArchivemindError):
    """Database write or read failed"""
    code = ErrorCode.PERSISTENCE_FAILURE


class RateLimitedError(ArchivemindError):
    """Transient platform throttling; safe to retry"""
    code = ErrorCode.RATE_LIMITED

    def __init__(self, message: str = "Rate limited", retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class ExtractionFailureError(ArchivemindError):
    """Extracting resources from a single message failed"""
    code = ErrorCode.EXTRACTION_FAILED


class AmbiguousMatchError(ArchivemindError):
    """More than one archive record matches a name-based lookup"""
    code = ErrorCode.AMBIGUOUS_MATCH

    def __init__(self, message: str, candidates: Optional[List[Any]] = None):
        super().__init__(message)
        self.candidates = list(candidates or [])
