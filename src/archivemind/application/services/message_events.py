# src/archivemind/application/services/message_events.py
"""
Live message path: every incoming message refreshes activity, and messages that look
valuable get an immediate rescue pass over the newest history.
"""

import logging

from archivemind.domain.entities import LiveMessage
from .activity_tracker import ActivityTracker
from .rescue_engine import RescueEngine

log = logging.getLogger(__name__)

LIVE_RESCUE_LIMIT = 1


class MessageEventHandler:
    def __init__(self, tracker: ActivityTracker, rescue_engine: RescueEngine):
        self.tracker = tracker
        self.rescue_engine = rescue_engine

    async def on_message(self, message: LiveMessage) -> int:
        """Returns the number of resources detected (0 when skipped)."""
        if message.author_is_bot:
            return 0

        await self.tracker.update_activity(message.channel_id)

        if not self.rescue_engine.has_valuable_content(message.content, message.has_attachments):
            return 0

        # No archive row exists for a live channel, so nothing is persisted here.
        resources = await self.rescue_engine.rescue_resources(message.channel_id, LIVE_RESCUE_LIMIT)
        if resources:
            log.info(f"💎 Detected {len(resources)} valuable resources in message {message.message_id}")
        return len(resources)
