# src/archivemind/application/services/stats_service.py
"""Read-only aggregates over archives and rescued resources."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from archivemind.domain.entities import ResourceType
from archivemind.infrastructure.db.models import Resource
from archivemind.infrastructure.db.repository import ArchivedChannelRepository, ResourceRepository
from archivemind.infrastructure.db.uow import SessionScopeFactory

log = logging.getLogger(__name__)

# How many rows the substring query pulls before tag matches are merged in.
SEARCH_WINDOW = 500


def resource_to_dict(resource: Resource) -> Dict[str, Any]:
    return {
        "id": resource.id,
        "type": resource.type.value,
        "url": resource.url,
        "content": resource.content,
        "file_name": resource.file_name,
        "file_size": resource.file_size,
        "language": resource.language,
        "author_id": resource.author_id,
        "author_name": resource.author_name,
        "original_message_id": resource.original_message_id,
        "archived_channel_id": resource.channel_id,
        "tags": list(resource.tags or []),
        "created_at": resource.created_at.isoformat() if resource.created_at else None,
    }


@dataclass
class StatsService:
    """
    Guild-level statistics and resource lookup for dashboards and commands.
    Every method opens its own short session.
    """
    session_scope: SessionScopeFactory

    def guild_overview(self, guild_id: str) -> Dict[str, Any]:
        with self.session_scope() as session:
            archives = ArchivedChannelRepository(session)
            resources = ResourceRepository(session)
            total = archives.count_for_guild(guild_id)
            restored = archives.count_for_guild(guild_id, restored=True)
            by_type = resources.count_by_type(guild_id)
            by_category = archives.count_by_category(guild_id)
            total_size = resources.total_file_size(guild_id)

        return {
            "guild_id": guild_id,
            "archived_channels": total,
            "restored_channels": restored,
            "active_archives": total - restored,
            "total_resources": sum(by_type.values()),
            "resources_by_type": {t.value: by_type.get(t, 0) for t in ResourceType},
            "archives_by_category": by_category,
            "total_file_size": int(total_size),
        }

    def top_channels(self, guild_id: str, limit: int = 10) -> List[Dict[str, Any]]:
        with self.session_scope() as session:
            rows = ResourceRepository(session).top_channels(guild_id, limit)
            return [
                {
                    "archived_channel_id": archived.id,
                    "name": archived.name,
                    "category": archived.category,
                    "restored": archived.restored,
                    "resource_count": count,
                }
                for archived, count in rows
            ]

    def find_resources(self, guild_id: str, query: Optional[str] = None,
                       resource_type: Optional[ResourceType] = None, author_id: Optional[str] = None,
                       limit: int = 25) -> List[Dict[str, Any]]:
        """Substring match over url, file name, content and context, plus exact tag match."""
        with self.session_scope() as session:
            repo = ResourceRepository(session)
            matches = repo.search(guild_id, query, resource_type, author_id, limit=SEARCH_WINDOW)
            if query:
                tag = query.strip().lower()
                seen = {r.id for r in matches}
                for resource in repo.list_for_guild(guild_id, resource_type, author_id):
                    if resource.id not in seen and tag in (resource.tags or []):
                        matches.append(resource)
                        seen.add(resource.id)
            matches.sort(key=lambda r: (r.created_at, r.id), reverse=True)
            return [resource_to_dict(r) for r in matches[:limit]]

    def list_archives(self, guild_id: str, include_restored: bool = True, limit: int = 50) -> List[Dict[str, Any]]:
        with self.session_scope() as session:
            rows = ArchivedChannelRepository(session).list_for_guild(guild_id, include_restored, limit)
            resources = ResourceRepository(session)
            return [
                {
                    "id": a.id,
                    "original_id": a.original_id,
                    "name": a.name,
                    "category": a.category,
                    "archived_at": a.archived_at,
                    "restored": a.restored,
                    "restored_at": a.restored_at,
                    "resource_count": resources.count_for_channel(a.id),
                }
                for a in rows
            ]

    def export_author_data(self, author_id: str) -> Dict[str, Any]:
        """Everything stored about one author's contributions, for data-subject requests."""
        with self.session_scope() as session:
            rows = ResourceRepository(session).list_by_author(author_id)
            items = [resource_to_dict(r) for r in rows]
        log.info(f"Exported {len(items)} resources for author {author_id}")
        return {"author_id": author_id, "resource_count": len(items), "resources": items}
