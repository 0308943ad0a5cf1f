# src/archivemind/infrastructure/db/models/watched_channel.py
"""
SQLAlchemy ORM model for Watched Channels.
One row per platform channel under inactivity monitoring. Rows are never deleted on
unwatch/archive; `is_active` flips to False so history stays available for stats.
"""

from sqlalchemy import (
    Column, Integer, String, Boolean, UniqueConstraint
)
from .base import Base, TZDateTime, utcnow

class WatchedChannel(Base):
    __tablename__ = 'watched_channels'

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Platform channel snowflake (e.g., "1187654321098765432")
    channel_id = Column(String(32), nullable=False, index=True)

    # Owning community (guild)
    guild_id = Column(String(32), nullable=False, index=True)

    inactivity_days = Column(Integer, nullable=False)
    rescue_enabled = Column(Boolean, default=True, nullable=False)

    last_activity = Column(TZDateTime, default=utcnow, nullable=False)
    watched_since = Column(TZDateTime, default=utcnow, nullable=False)

    # False once archived or explicitly unwatched
    is_active = Column(Boolean, default=True, nullable=False, index=True)

    updated_at = Column(TZDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # A channel can only be watched once.
    __table_args__ = (
        UniqueConstraint('channel_id', name='uq_watched_channel_id'),
    )

    def __repr__(self):
        return (
            f"<WatchedChannel(id={self.id}, channel_id={self.channel_id}, guild_id={self.guild_id}, "
            f"days={self.inactivity_days}, active={self.is_active})>"
        )
