# src/archivemind/domain/entities.py
"""
Core domain types for channel lifecycle management.

Platform objects (channels, messages, attachments, permission overwrites) are plain
dataclasses so the services never depend on a specific chat-platform SDK. Resource and
warning kinds are closed enumerations shared with the ORM layer.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List, Dict, Any
from enum import Enum

# --- ENUMERATIONS ---

class ResourceType(Enum):
    """Kinds of artifact the rescue engine can extract from message history."""
    FILE = "FILE"
    LINK = "LINK"
    CODE = "CODE"
    PIN = "PIN"
    IMAGE = "IMAGE"
    DOCUMENT = "DOCUMENT"

class WarningType(Enum):
    """Pre-archive warning levels, ordered from earliest to most urgent."""
    SEVEN_DAYS = "SEVEN_DAYS"
    THREE_DAYS = "THREE_DAYS"
    ONE_DAY = "ONE_DAY"
    FINAL = "FINAL"

    @property
    def threshold_days(self) -> float:
        return WARNING_THRESHOLDS[self]

# Days-until-archive at or below which each warning becomes due.
WARNING_THRESHOLDS: Dict[WarningType, float] = {
    WarningType.SEVEN_DAYS: 7.0,
    WarningType.THREE_DAYS: 3.0,
    WarningType.ONE_DAY: 1.0,
    WarningType.FINAL: 0.5,
}

class ErrorCode(Enum):
    """Machine-readable failure codes carried on operation results."""
    CHANNEL_NOT_FOUND = "CHANNEL_NOT_FOUND"
    ALREADY_ARCHIVED = "ALREADY_ARCHIVED"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    PERSISTENCE_FAILURE = "PERSISTENCE_FAILURE"
    RATE_LIMITED = "RATE_LIMITED"
    EXTRACTION_FAILED = "EXTRACTION_FAILED"
    AMBIGUOUS_MATCH = "AMBIGUOUS_MATCH"
    DELETE_FAILED = "DELETE_FAILED"
    INVALID_INPUT = "INVALID_INPUT"
    UNEXPECTED = "UNEXPECTED"

# --- PLATFORM VALUE OBJECTS ---

@dataclass(frozen=True)
class PermissionOverwrite:
    """
    One permission overwrite on a channel. `allow`/`deny` are platform bitfields,
    which can exceed 64 bits, so they are kept as Python ints and serialized as strings.
    """
    id: str
    type: int
    allow: int = 0
    deny: int = 0

    def to_snapshot(self) -> Dict[str, Any]:
        return {"id": self.id, "type": self.type, "allow": str(self.allow), "deny": str(self.deny)}

    @classmethod
    def from_snapshot(cls, data: Dict[str, Any]) -> "PermissionOverwrite":
        return cls(
            id=str(data["id"]),
            type=int(data.get("type", 0)),
            allow=int(data.get("allow") or 0),
            deny=int(data.get("deny") or 0),
        )

@dataclass(frozen=True)
class Attachment:
    file_name: str
    url: str
    size: int = 0

@dataclass
class PlatformMessage:
    """A message as returned by the platform's history endpoint."""
    id: str
    channel_id: str
    author_id: str
    author_name: str
    content: str = ""
    attachments: List[Attachment] = field(default_factory=list)
    pinned: bool = False
    author_is_bot: bool = False
    created_at: Optional[datetime] = None

@dataclass
class PlatformChannel:
    """Text channel metadata needed to snapshot and later recreate a channel."""
    id: str
    guild_id: str
    name: str
    category_id: Optional[str] = None
    category_name: Optional[str] = None
    topic: Optional[str] = None
    nsfw: bool = False
    rate_limit_per_user: int = 0
    position: Optional[int] = None
    permission_overwrites: List[PermissionOverwrite] = field(default_factory=list)

@dataclass
class ChannelConfig:
    """Parameters for creating a channel during restore."""
    name: str
    category_id: Optional[str] = None
    topic: Optional[str] = None
    nsfw: bool = False
    rate_limit_per_user: int = 0
    position: Optional[int] = None
    permission_overwrites: List[PermissionOverwrite] = field(default_factory=list)

# --- RESCUE / ARCHIVE ---

@dataclass
class DetectedResource:
    """An artifact extracted from history, not yet persisted."""
    type: ResourceType
    author_id: str
    author_name: str
    message_id: str
    url: Optional[str] = None
    content: Optional[str] = None
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    language: Optional[str] = None
    context: str = ""

    @property
    def dedup_value(self) -> str:
        return self.url or self.content or ""

    @property
    def dedup_key(self) -> tuple:
        return (self.type, self.dedup_value)

@dataclass
class ArchiveOptions:
    inactivity_days: int = 0
    rescue_resources: bool = True
    grace_period_days: int = 0
    reason: Optional[str] = None

@dataclass
class LiveMessage:
    """Minimal view of an incoming message for the real-time path."""
    channel_id: str
    message_id: str
    content: str
    has_attachments: bool = False
    author_is_bot: bool = False
