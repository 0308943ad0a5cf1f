#--- START OF FILE: src/archivemind/infrastructure/db/repository.py ---
# File: src/archivemind/infrastructure/db/repository.py
"""
Repositories for the four persisted entities.

Repositories take an open Session and never commit; the caller's `session_scope`
owns the transaction boundary.
"""

import logging
from typing import List, Optional, Dict, Any, Tuple
from datetime import datetime

from sqlalchemy.orm import Session
from sqlalchemy import func, or_

from archivemind.domain.entities import ResourceType, WarningType
from .models import WatchedChannel, ArchivedChannel, Resource, ArchiveWarning, utcnow

logger = logging.getLogger(__name__)

# ==========================================================
# WATCHED CHANNEL REPOSITORY
# ==========================================================
class WatchedChannelRepository:
    """Repository for WatchedChannel rows."""
    def __init__(self, session: Session):
        self.session = session

    def find_by_channel_id(self, channel_id: str) -> Optional[WatchedChannel]:
        return self.session.query(WatchedChannel).filter(WatchedChannel.channel_id == channel_id).one_or_none()

    def find_active(self, channel_id: str) -> Optional[WatchedChannel]:
        return self.session.query(WatchedChannel).filter(
            WatchedChannel.channel_id == channel_id,
            WatchedChannel.is_active == True
        ).one_or_none()

    def list_active(self, guild_id: Optional[str] = None) -> List[WatchedChannel]:
        """Active watches, least recently active first."""
        query = self.session.query(WatchedChannel).filter(WatchedChannel.is_active == True)
        if guild_id:
            query = query.filter(WatchedChannel.guild_id == guild_id)
        return query.order_by(WatchedChannel.last_activity.asc(), WatchedChannel.id.asc()).all()

    def upsert(self, channel_id: str, guild_id: str, inactivity_days: int, rescue_enabled: bool,
               now: Optional[datetime] = None) -> Tuple[WatchedChannel, bool]:
        """Returns (row, created)."""
        now = now or utcnow()
        watched = self.find_by_channel_id(channel_id)
        if watched:
            watched.inactivity_days = inactivity_days
            watched.rescue_enabled = rescue_enabled
            watched.guild_id = guild_id
            watched.is_active = True
            self.session.flush()
            return watched, False

        watched = WatchedChannel(
            channel_id=channel_id,
            guild_id=guild_id,
            inactivity_days=inactivity_days,
            rescue_enabled=rescue_enabled,
            last_activity=now,
            watched_since=now,
            is_active=True,
        )
        self.session.add(watched)
        self.session.flush()
        return watched, True

    def deactivate(self, channel_id: str) -> bool:
        watched = self.find_by_channel_id(channel_id)
        if not watched:
            return False
        watched.is_active = False
        self.session.flush()
        return True

    def delete_for_guild(self, guild_id: str) -> int:
        count = self.session.query(WatchedChannel).filter(
            WatchedChannel.guild_id == guild_id
        ).delete(synchronize_session=False)
        self.session.flush()
        return count

# ==========================================================
# ARCHIVE WARNING REPOSITORY
# ==========================================================
class ArchiveWarningRepository:
    """Repository for ArchiveWarning rows."""
    def __init__(self, session: Session):
        self.session = session

    def sent_since(self, channel_id: str, warning_type: WarningType, since: datetime) -> bool:
        return self.session.query(ArchiveWarning.id).filter(
            ArchiveWarning.channel_id == channel_id,
            ArchiveWarning.warning_type == warning_type,
            ArchiveWarning.sent_at >= since,
        ).first() is not None

    def add(self, channel_id: str, warning_type: WarningType, sent_at: Optional[datetime] = None) -> ArchiveWarning:
        warning = ArchiveWarning(channel_id=channel_id, warning_type=warning_type, sent_at=sent_at or utcnow())
        self.session.add(warning)
        self.session.flush()
        return warning

    def count_for_channel(self, channel_id: str) -> int:
        return self.session.query(func.count(ArchiveWarning.id)).filter(
            ArchiveWarning.channel_id == channel_id
        ).scalar() or 0

    def delete_for_channel(self, channel_id: str) -> int:
        count = self.session.query(ArchiveWarning).filter(
            ArchiveWarning.channel_id == channel_id
        ).delete(synchronize_session=False)
        self.session.flush()
        return count

# ==========================================================
# ARCHIVED CHANNEL REPOSITORY
# ==========================================================
class ArchivedChannelRepository:
    """Repository for ArchivedChannel snapshots."""
    def __init__(self, session: Session):
        self.session = session

    def get(self, archived_channel_id: int) -> Optional[ArchivedChannel]:
        return self.session.get(ArchivedChannel, archived_channel_id)

    def find_unrestored_by_original_id(self, original_id: str) -> Optional[ArchivedChannel]:
        return self.session.query(ArchivedChannel).filter(
            ArchivedChannel.original_id == original_id,
            ArchivedChannel.restored == False
        ).order_by(ArchivedChannel.archived_at.desc()).first()

    def find_unrestored_by_name(self, name: str, guild_id: str) -> List[ArchivedChannel]:
        """All restore candidates for a name, most recent first."""
        return self.session.query(ArchivedChannel).filter(
            ArchivedChannel.name == name,
            ArchivedChannel.guild_id == guild_id,
            ArchivedChannel.restored == False
        ).order_by(ArchivedChannel.archived_at.desc(), ArchivedChannel.id.desc()).all()

    def find_by_name(self, name: str, guild_id: str) -> List[ArchivedChannel]:
        return self.session.query(ArchivedChannel).filter(
            ArchivedChannel.name == name,
            ArchivedChannel.guild_id == guild_id
        ).order_by(ArchivedChannel.archived_at.desc(), ArchivedChannel.id.desc()).all()

    def list_for_guild(self, guild_id: str, include_restored: bool = True, limit: int = 50) -> List[ArchivedChannel]:
        query = self.session.query(ArchivedChannel).filter(ArchivedChannel.guild_id == guild_id)
        if not include_restored:
            query = query.filter(ArchivedChannel.restored == False)
        return query.order_by(ArchivedChannel.archived_at.desc()).limit(limit).all()

    def add(self, **kwargs) -> ArchivedChannel:
        archived = ArchivedChannel(**kwargs)
        self.session.add(archived)
        self.session.flush()
        logger.debug(f"ArchivedChannel record created with ID: {archived.id}")
        return archived

    def claim_restore(self, archived_id: int, when: Optional[datetime] = None) -> bool:
        """Conditionally flags a row restored. False when it was already restored."""
        claimed = self.session.query(ArchivedChannel).filter(
            ArchivedChannel.id == archived_id,
            ArchivedChannel.restored == False
        ).update(
            {ArchivedChannel.restored: True, ArchivedChannel.restored_at: when or utcnow()},
            synchronize_session=False,
        )
        return claimed == 1

    def release_restore(self, archived_id: int) -> None:
        self.session.query(ArchivedChannel).filter(ArchivedChannel.id == archived_id).update(
            {ArchivedChannel.restored: False, ArchivedChannel.restored_at: None},
            synchronize_session=False,
        )

    def delete(self, archived: ArchivedChannel) -> None:
        self.session.delete(archived)
        self.session.flush()

    def count_by_category(self, guild_id: str) -> Dict[str, int]:
        rows = self.session.query(ArchivedChannel.category, func.count(ArchivedChannel.id)).filter(
            ArchivedChannel.guild_id == guild_id
        ).group_by(ArchivedChannel.category).all()
        return {(category or "No Category"): count for category, count in rows}

    def count_for_guild(self, guild_id: str, restored: Optional[bool] = None) -> int:
        query = self.session.query(func.count(ArchivedChannel.id)).filter(ArchivedChannel.guild_id == guild_id)
        if restored is not None:
            query = query.filter(ArchivedChannel.restored == restored)
        return query.scalar() or 0

# ==========================================================
# RESOURCE REPOSITORY
# ==========================================================
class ResourceRepository:
    """Repository for rescued Resource rows."""
    def __init__(self, session: Session):
        self.session = session

    def exists(self, archived_channel_id: int, dedup_key: str) -> bool:
        return self.session.query(Resource.id).filter(
            Resource.channel_id == archived_channel_id,
            Resource.dedup_key == dedup_key
        ).first() is not None

    def add(self, **kwargs) -> Resource:
        resource = Resource(**kwargs)
        self.session.add(resource)
        self.session.flush()
        return resource

    def count_for_channel(self, archived_channel_id: int) -> int:
        return self.session.query(func.count(Resource.id)).filter(
            Resource.channel_id == archived_channel_id
        ).scalar() or 0

    def delete_for_channel(self, archived_channel_id: int) -> int:
        count = self.session.query(Resource).filter(
            Resource.channel_id == archived_channel_id
        ).delete(synchronize_session=False)
        self.session.flush()
        return count

    def count_by_type(self, guild_id: str) -> Dict[ResourceType, int]:
        rows = self.session.query(Resource.type, func.count(Resource.id)).join(
            ArchivedChannel, Resource.channel_id == ArchivedChannel.id
        ).filter(ArchivedChannel.guild_id == guild_id).group_by(Resource.type).all()
        return {rtype: count for rtype, count in rows}

    def total_file_size(self, guild_id: str) -> int:
        return self.session.query(func.coalesce(func.sum(Resource.file_size), 0)).join(
            ArchivedChannel, Resource.channel_id == ArchivedChannel.id
        ).filter(ArchivedChannel.guild_id == guild_id).scalar() or 0

    def top_channels(self, guild_id: str, limit: int = 10) -> List[Any]:
        """(ArchivedChannel, resource_count) pairs, busiest first."""
        count_col = func.count(Resource.id).label("resource_count")
        return self.session.query(ArchivedChannel, count_col).join(
            Resource, Resource.channel_id == ArchivedChannel.id
        ).filter(ArchivedChannel.guild_id == guild_id).group_by(ArchivedChannel.id).order_by(
            count_col.desc(), ArchivedChannel.id.asc()
        ).limit(limit).all()

    def search(self, guild_id: str, query: Optional[str] = None, resource_type: Optional[ResourceType] = None,
               author_id: Optional[str] = None, limit: int = 25) -> List[Resource]:
        """
        Case-insensitive substring match over url, file name, content and context.
        Tag matching is done by the caller since JSON containment differs per dialect.
        """
        q = self.session.query(Resource).join(
            ArchivedChannel, Resource.channel_id == ArchivedChannel.id
        ).filter(ArchivedChannel.guild_id == guild_id)
        if resource_type:
            q = q.filter(Resource.type == resource_type)
        if author_id:
            q = q.filter(Resource.author_id == author_id)
        if query:
            pattern = f"%{query.lower()}%"
            q = q.filter(or_(
                func.lower(Resource.url).like(pattern),
                func.lower(Resource.file_name).like(pattern),
                func.lower(Resource.content).like(pattern),
                func.lower(Resource.context).like(pattern),
            ))
        return q.order_by(Resource.created_at.desc(), Resource.id.desc()).limit(limit).all()

    def list_for_guild(self, guild_id: str, resource_type: Optional[ResourceType] = None,
                       author_id: Optional[str] = None) -> List[Resource]:
        q = self.session.query(Resource).join(
            ArchivedChannel, Resource.channel_id == ArchivedChannel.id
        ).filter(ArchivedChannel.guild_id == guild_id)
        if resource_type:
            q = q.filter(Resource.type == resource_type)
        if author_id:
            q = q.filter(Resource.author_id == author_id)
        return q.order_by(Resource.created_at.desc(), Resource.id.desc()).all()

    def list_by_author(self, author_id: str) -> List[Resource]:
        return self.session.query(Resource).filter(
            Resource.author_id == author_id
        ).order_by(Resource.created_at.desc()).all()
#--- END OF FILE ---
