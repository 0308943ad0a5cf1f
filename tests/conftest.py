# tests/conftest.py
"""
Fixtures and test setup for the Pytest suite.
"""

import asyncio
import pytest
import os
from itertools import count
from typing import Dict, List, Optional
from unittest.mock import AsyncMock

# Set test environment variables BEFORE any application code is imported.
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["DISCORD_BOT_TOKEN"] = "fake_discord_token"
os.environ["API_KEY"] = "test_api_key"
os.environ["ENV"] = "test"
os.environ.pop("TELEGRAM_BOT_TOKEN", None)

from archivemind.domain.entities import (
    Attachment,
    ChannelConfig,
    PlatformChannel,
    PlatformMessage,
)
from archivemind.domain.errors import NotFoundError
from archivemind.infrastructure.db.base import build_engine
from archivemind.infrastructure.db.models import Base
from archivemind.infrastructure.db.uow import make_session_scope
from archivemind.application.services import (
    ActivityTracker,
    ArchiveService,
    RescueEngine,
    StatsService,
)


class FakePlatform:
    """In-memory ChatPlatform. Messages are stored oldest first, served newest first."""

    def __init__(self):
        self.channels: Dict[str, PlatformChannel] = {}
        self.messages: Dict[str, List[PlatformMessage]] = {}
        self.categories: Dict[str, Dict[str, str]] = {}
        self.sent: List[tuple] = []
        self.deleted: List[tuple] = []
        self.created: List[tuple] = []
        self.events: List[str] = []
        self.fetch_calls: List[tuple] = []
        self.delete_error: Optional[Exception] = None
        self.create_error: Optional[Exception] = None
        self.category_error: Optional[Exception] = None
        self.create_delay = 0.0
        self._ids = count(900000000000000000)

    def next_id(self) -> str:
        return str(next(self._ids))

    def add_channel(self, channel_id: str = "100", guild_id: str = "1", name: str = "general", **kwargs) -> PlatformChannel:
        channel = PlatformChannel(id=channel_id, guild_id=guild_id, name=name, **kwargs)
        self.channels[channel_id] = channel
        self.messages.setdefault(channel_id, [])
        return channel

    def add_message(self, channel_id: str, content: str = "", author: str = "alice", author_id: str = "u1",
                    attachments: Optional[List[Attachment]] = None, pinned: bool = False) -> PlatformMessage:
        message = PlatformMessage(
            id=self.next_id(),
            channel_id=channel_id,
            author_id=author_id,
            author_name=author,
            content=content,
            attachments=attachments or [],
            pinned=pinned,
        )
        self.messages.setdefault(channel_id, []).append(message)
        return message

    async def fetch_channel(self, channel_id: str) -> Optional[PlatformChannel]:
        return self.channels.get(channel_id)

    async def fetch_messages(self, channel_id: str, before: Optional[str] = None, limit: int = 100) -> List[PlatformMessage]:
        self.fetch_calls.append((channel_id, before, limit))
        if channel_id not in self.channels:
            raise NotFoundError(f"channel {channel_id}")
        newest_first = list(reversed(self.messages.get(channel_id, [])))
        if before is not None:
            newest_first = [m for m in newest_first if int(m.id) < int(before)]
        return newest_first[:limit]

    async def create_channel(self, guild_id: str, config: ChannelConfig) -> PlatformChannel:
        if self.create_delay:
            await asyncio.sleep(self.create_delay)
        if self.create_error:
            raise self.create_error
        channel = self.add_channel(
            self.next_id(), guild_id, config.name,
            category_id=config.category_id,
            topic=config.topic,
            nsfw=config.nsfw,
            rate_limit_per_user=config.rate_limit_per_user,
            position=config.position,
            permission_overwrites=list(config.permission_overwrites),
        )
        self.created.append((guild_id, config))
        self.events.append(f"create:{channel.id}")
        return channel

    async def delete_channel(self, channel_id: str, reason: str) -> None:
        if self.delete_error:
            raise self.delete_error
        self.channels.pop(channel_id, None)
        self.deleted.append((channel_id, reason))
        self.events.append(f"delete:{channel_id}")

    async def send_message(self, channel_id: str, payload: dict) -> Optional[str]:
        self.sent.append((channel_id, payload))
        self.events.append(f"send:{channel_id}")
        return self.next_id()

    async def find_category(self, guild_id: str, name: str) -> Optional[str]:
        if self.category_error:
            raise self.category_error
        return self.categories.get(guild_id, {}).get(name)


@pytest.fixture
def db_engine():
    """A fresh in-memory database per test."""
    engine = build_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()

@pytest.fixture
def session_scope(db_engine):
    return make_session_scope(db_engine)

@pytest.fixture
def platform() -> FakePlatform:
    return FakePlatform()

@pytest.fixture
def notifier() -> AsyncMock:
    mock_notifier = AsyncMock()
    mock_notifier.post_resource_digest = AsyncMock(return_value=True)
    mock_notifier.send_admin_alert = AsyncMock(return_value=None)
    return mock_notifier

@pytest.fixture
def fake_sleep() -> AsyncMock:
    return AsyncMock(return_value=None)

@pytest.fixture
def rescue_engine(platform, session_scope) -> RescueEngine:
    return RescueEngine(platform, session_scope)

@pytest.fixture
def archive_service(platform, rescue_engine, session_scope, notifier, fake_sleep) -> ArchiveService:
    return ArchiveService(
        platform,
        rescue_engine,
        session_scope,
        notifier=notifier,
        delete_delay_seconds=5.0,
        sleep=fake_sleep,
    )

@pytest.fixture
def tracker(platform, archive_service, session_scope) -> ActivityTracker:
    return ActivityTracker(platform, archive_service, session_scope)

@pytest.fixture
def stats_service(session_scope) -> StatsService:
    return StatsService(session_scope=session_scope)
