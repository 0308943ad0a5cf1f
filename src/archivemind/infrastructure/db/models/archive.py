# src/archivemind/infrastructure/db/models/archive.py
"""
SQLAlchemy ORM models for archived channel snapshots, their rescued resources and the
warnings sent before archiving.
"""

from sqlalchemy import (
    Column, Integer, String, Boolean, Text, BigInteger,
    ForeignKey, Enum, JSON, Index, UniqueConstraint
)
from sqlalchemy.orm import relationship
from .base import Base, TZDateTime, utcnow

from archivemind.domain.entities import ResourceType, WarningType


class ArchivedChannel(Base):
    __tablename__ = 'archived_channels'

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Id of the deleted platform channel. Not unique: a channel can be archived again
    # after a restore. At most one row per original_id may have restored=False.
    original_id = Column(String(32), nullable=False, index=True)

    name = Column(String(100), nullable=False)
    category = Column(String(100), nullable=True)
    guild_id = Column(String(32), nullable=False, index=True)
    topic = Column(Text, nullable=True)
    nsfw = Column(Boolean, default=False, nullable=False)
    rate_limit = Column(Integer, default=0, nullable=False)
    position = Column(Integer, nullable=True)

    # [{"id": "...", "type": 0, "allow": "1024", "deny": "0"}, ...]
    permission_snapshot = Column(JSON, nullable=False, default=list)

    inactivity_days = Column(Integer, nullable=True)
    archived_at = Column(TZDateTime, default=utcnow, nullable=False)
    restored = Column(Boolean, default=False, nullable=False, index=True)
    restored_at = Column(TZDateTime, nullable=True)

    resources = relationship("Resource", back_populates="channel", passive_deletes=True)

    __table_args__ = (
        Index('ix_archived_channels_guild_name', 'guild_id', 'name'),
    )

    def __repr__(self):
        return (
            f"<ArchivedChannel(id={self.id}, original_id={self.original_id}, "
            f"name={repr(self.name)}, restored={self.restored})>"
        )


class Resource(Base):
    __tablename__ = 'resources'

    id = Column(Integer, primary_key=True, autoincrement=True)
    type = Column(Enum(ResourceType, name="resourcetype"), nullable=False, index=True)

    url = Column(Text, nullable=True)
    content = Column(Text, nullable=True)
    file_name = Column(String(255), nullable=True)
    file_size = Column(BigInteger, nullable=True)
    language = Column(String(50), nullable=True)
    context = Column(Text, nullable=True)

    author_id = Column(String(32), nullable=False, index=True)
    author_name = Column(String(100), nullable=False)
    original_message_id = Column(String(32), nullable=False)

    channel_id = Column(Integer, ForeignKey('archived_channels.id', ondelete="CASCADE"), nullable=False, index=True)

    tags = Column(JSON, nullable=False, default=list)

    # sha256(type + url-or-content); prevents the same artifact being stored twice
    # for one archive when rescue runs are repeated or overlap.
    dedup_key = Column(String(64), nullable=False)

    created_at = Column(TZDateTime, default=utcnow, nullable=False)

    channel = relationship("ArchivedChannel", back_populates="resources")

    __table_args__ = (
        UniqueConstraint('channel_id', 'dedup_key', name='uq_resource_channel_dedup'),
    )

    def __repr__(self):
        return f"<Resource(id={self.id}, type={self.type}, channel_id={self.channel_id})>"


class ArchiveWarning(Base):
    __tablename__ = 'archive_warnings'

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Platform channel id (the watched channel, not the archive row)
    channel_id = Column(String(32), nullable=False)
    warning_type = Column(Enum(WarningType, name="warningtype"), nullable=False)
    sent_at = Column(TZDateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index('ix_archive_warnings_lookup', 'channel_id', 'warning_type', 'sent_at'),
    )

    def __repr__(self):
        return f"<ArchiveWarning(channel_id={self.channel_id}, type={self.warning_type}, sent_at={self.sent_at})>"
