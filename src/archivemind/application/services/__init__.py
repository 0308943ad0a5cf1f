# File: src/archivemind/application/services/__init__.py
# Services exported for boot.py wiring.

from .rescue_engine import RescueEngine
from .archive_service import ArchiveService
from .activity_tracker import ActivityTracker
from .stats_service import StatsService
from .message_events import MessageEventHandler

__all__ = [
    "RescueEngine",
    "ArchiveService",
    "ActivityTracker",
    "StatsService",
    "MessageEventHandler",
]
