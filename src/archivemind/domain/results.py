# src/archivemind/domain/results.py
"""
Structured results returned across the service boundary.

Every public service operation returns one of these instead of raising, so command
handlers, the HTTP API and the scheduler can render outcomes uniformly.
"""

from dataclasses import dataclass, field, asdict
from typing import Optional, List, Dict, Any

from .entities import ErrorCode


@dataclass
class OperationResult:
    success: bool
    message: str = ""
    error: Optional[ErrorCode] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["error"] = self.error.value if self.error else None
        return data

    @classmethod
    def fail(cls, error: ErrorCode, message: str, **kwargs: Any):
        return cls(success=False, error=error, message=message, **kwargs)


@dataclass
class ArchiveResult(OperationResult):
    archived_channel_id: Optional[int] = None
    resource_count: int = 0
    failed_resource_count: int = 0
    deleted: bool = False


@dataclass
class RestoreResult(OperationResult):
    channel_id: Optional[str] = None
    archived_channel_id: Optional[int] = None
    resource_count: int = 0
    candidates: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class ForgetResult(OperationResult):
    archived_channel_id: Optional[int] = None
    deleted_resources: int = 0
    deleted_warnings: int = 0
    candidates: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class SaveReport:
    saved: int = 0
    duplicates: int = 0
    failed: int = 0


@dataclass
class SweepReport:
    checked: int = 0
    warned: int = 0
    archived: int = 0
    deactivated: int = 0
    failed: int = 0
