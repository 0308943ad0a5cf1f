# src/archivemind/domain/ports.py
"""
Interfaces the core depends on. Concrete adapters live under `infrastructure/`.
"""

from typing import Protocol, Optional, List, Dict, Any, runtime_checkable

from .entities import PlatformChannel, PlatformMessage, ChannelConfig


@runtime_checkable
class ChatPlatform(Protocol):
    """Upstream chat platform. Implementations raise taxonomy errors from `domain.errors`."""

    async def fetch_channel(self, channel_id: str) -> Optional[PlatformChannel]:
        """Returns None when the channel no longer exists."""
        ...

    async def fetch_messages(
        self, channel_id: str, before: Optional[str] = None, limit: int = 100
    ) -> List[PlatformMessage]:
        """Returns up to `limit` messages older than `before`, newest first."""
        ...

    async def create_channel(self, guild_id: str, config: ChannelConfig) -> PlatformChannel:
        ...

    async def delete_channel(self, channel_id: str, reason: str) -> None:
        ...

    async def send_message(self, channel_id: str, payload: Dict[str, Any]) -> Optional[str]:
        ...

    async def find_category(self, guild_id: str, name: str) -> Optional[str]:
        """Returns the id of a category with this name, or None."""
        ...


@runtime_checkable
class KnowledgeBaseNotifier(Protocol):
    """Secondary surface that mirrors rescued resources and receives admin alerts."""

    async def post_resource_digest(self, text: str) -> bool:
        ...

    async def send_admin_alert(self, text: str) -> None:
        ...
