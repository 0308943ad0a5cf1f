# --- src/archivemind/infrastructure/db/models/__init__.py ---
"""
This file makes the 'models' directory a package and ensures all SQLAlchemy ORM
models are discoverable by Alembic and the application.
"""

from .base import Base, TZDateTime, utcnow
from .watched_channel import WatchedChannel
from .archive import ArchivedChannel, Resource, ArchiveWarning

__all__ = [
    "Base",
    "TZDateTime",
    "utcnow",
    "WatchedChannel",
    "ArchivedChannel",
    "Resource",
    "ArchiveWarning",
]
# --- END of models init ---
