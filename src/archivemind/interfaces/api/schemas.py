# --- START OF FILE: src/archivemind/interfaces/api/schemas.py ---
from __future__ import annotations
from typing import Dict, List
from pydantic import BaseModel
from datetime import datetime


class WatchedChannelOut(BaseModel):
    channel_id: str
    guild_id: str
    inactivity_days: int
    rescue_enabled: bool
    last_activity: datetime
    watched_since: datetime
    idle_days: float
    days_until_archive: float


class ActivityStatsOut(BaseModel):
    total_watched: int
    active_channels: int
    inactive_channels: int
    near_archive: int
    average_inactivity_days: float


class GuildOverviewOut(BaseModel):
    guild_id: str
    archived_channels: int
    restored_channels: int
    active_archives: int
    total_resources: int
    resources_by_type: Dict[str, int]
    archives_by_category: Dict[str, int]
    total_file_size: int


class TopChannelOut(BaseModel):
    archived_channel_id: int
    name: str
    category: str | None = None
    restored: bool
    resource_count: int


class GuildStatsOut(BaseModel):
    overview: GuildOverviewOut
    activity: ActivityStatsOut
    top_channels: List[TopChannelOut]


class ArchiveOut(BaseModel):
    id: int
    original_id: str
    name: str
    category: str | None = None
    archived_at: datetime
    restored: bool
    restored_at: datetime | None = None
    resource_count: int


class ResourceOut(BaseModel):
    id: int
    type: str
    url: str | None = None
    content: str | None = None
    file_name: str | None = None
    file_size: int | None = None
    language: str | None = None
    author_id: str
    author_name: str
    original_message_id: str
    archived_channel_id: int
    tags: List[str] = []
    created_at: datetime | None = None
# --- END OF FILE ---
