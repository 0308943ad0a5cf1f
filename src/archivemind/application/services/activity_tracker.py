# src/archivemind/application/services/activity_tracker.py
"""
ActivityTracker - per-channel inactivity bookkeeping and the periodic sweep.

State per channel: WATCHING -> WARNED(threshold)* -> ARCHIVING -> deactivated.
The sweep processes channels one at a time; a failure on one channel is logged and the
sweep moves on.
"""

import logging
import time
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from archivemind.domain.entities import ArchiveOptions, ErrorCode, WarningType, WARNING_THRESHOLDS
from archivemind.domain.errors import ArchivemindError, PersistenceFailureError
from archivemind.domain.ports import ChatPlatform
from archivemind.domain.results import OperationResult, SweepReport
from archivemind.infrastructure.db.models import WatchedChannel, utcnow
from archivemind.infrastructure.db.repository import ArchiveWarningRepository, WatchedChannelRepository
from archivemind.infrastructure.db.uow import SessionScopeFactory
from archivemind.infrastructure.monitoring import metrics
from .archive_service import ArchiveService

log = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400.0
WARNING_DEDUP_WINDOW = timedelta(hours=24)
NEAR_ARCHIVE_DAYS = 3


def elapsed_days(last_activity: datetime, now: datetime) -> float:
    return (now - last_activity).total_seconds() / SECONDS_PER_DAY


def due_warning(days_until_archive: float) -> Optional[WarningType]:
    """The nearest threshold the remaining time is at or below, or None."""
    due = None
    for warning_type, threshold in sorted(WARNING_THRESHOLDS.items(), key=lambda kv: -kv[1]):
        if days_until_archive <= threshold:
            due = warning_type
    return due


def _watched_dict(watched: WatchedChannel, now: datetime) -> Dict[str, Any]:
    idle = elapsed_days(watched.last_activity, now)
    return {
        "channel_id": watched.channel_id,
        "guild_id": watched.guild_id,
        "inactivity_days": watched.inactivity_days,
        "rescue_enabled": watched.rescue_enabled,
        "last_activity": watched.last_activity.isoformat(),
        "watched_since": watched.watched_since.isoformat(),
        "idle_days": round(max(idle, 0.0), 2),
        "days_until_archive": round(watched.inactivity_days - idle, 2),
    }


class ActivityTracker:
    def __init__(
        self,
        platform: ChatPlatform,
        archive_service: ArchiveService,
        session_scope: SessionScopeFactory,
        now_fn: Callable[[], datetime] = utcnow,
    ):
        self.platform = platform
        self.archive_service = archive_service
        self.session_scope = session_scope
        self._now = now_fn

    # ---------------------------------------------------------------------
    # Watch management
    # ---------------------------------------------------------------------
    async def watch(self, channel_id: str, guild_id: str, inactivity_days: int,
                    rescue_enabled: bool = True) -> OperationResult:
        if inactivity_days < 1:
            return OperationResult.fail(ErrorCode.INVALID_INPUT, "inactivity_days must be at least 1.")
        try:
            channel = await self.platform.fetch_channel(channel_id)
        except ArchivemindError as e:
            return OperationResult.fail(e.code, str(e))
        if channel is None:
            return OperationResult.fail(ErrorCode.CHANNEL_NOT_FOUND, f"Channel {channel_id} not found.")

        try:
            with self.session_scope() as session:
                _, created = WatchedChannelRepository(session).upsert(
                    channel_id, guild_id, inactivity_days, rescue_enabled, now=self._now()
                )
        except PersistenceFailureError as e:
            log.error(f"Failed to watch channel {channel_id}: {e}")
            return OperationResult.fail(ErrorCode.PERSISTENCE_FAILURE, "Could not save watch settings.")

        verb = "Started watching" if created else "Updated watch for"
        log.info(f"{verb} channel {channel.name} ({channel_id}): {inactivity_days} days, rescue={rescue_enabled}")
        return OperationResult(success=True, message=f"{verb} #{channel.name}.")

    async def unwatch(self, channel_id: str) -> OperationResult:
        try:
            with self.session_scope() as session:
                found = WatchedChannelRepository(session).deactivate(channel_id)
        except PersistenceFailureError as e:
            log.error(f"Failed to unwatch channel {channel_id}: {e}")
            return OperationResult.fail(ErrorCode.PERSISTENCE_FAILURE, "Could not update watch settings.")
        if not found:
            return OperationResult.fail(ErrorCode.CHANNEL_NOT_FOUND, f"Channel {channel_id} is not watched.")
        log.info(f"Stopped watching channel {channel_id}")
        return OperationResult(success=True, message="Channel is no longer watched.")

    async def update_activity(self, channel_id: str) -> bool:
        """Touches last_activity for an active watch. Returns True when a row was updated."""
        try:
            with self.session_scope() as session:
                watched = WatchedChannelRepository(session).find_active(channel_id)
                if watched is None:
                    return False
                watched.last_activity = self._now()
                return True
        except PersistenceFailureError as e:
            log.error(f"Failed to update activity for {channel_id}: {e}")
            return False

    async def postpone_archive(self, channel_id: str, additional_days: int = 7) -> bool:
        """Pushes last_activity forward so the archive moves `additional_days` later."""
        try:
            with self.session_scope() as session:
                watched = WatchedChannelRepository(session).find_active(channel_id)
                if watched is None:
                    return False
                watched.last_activity = self._now() + timedelta(days=additional_days)
        except PersistenceFailureError as e:
            log.error(f"Failed to postpone archive for {channel_id}: {e}")
            return False
        log.info(f"Archive of channel {channel_id} postponed by {additional_days} days")
        return True

    # ---------------------------------------------------------------------
    # Sweep
    # ---------------------------------------------------------------------
    async def sweep(self) -> SweepReport:
        report = SweepReport()
        started = time.monotonic()
        try:
            with self.session_scope() as session:
                channel_ids = [w.channel_id for w in WatchedChannelRepository(session).list_active()]
        except PersistenceFailureError as e:
            log.error(f"Sweep aborted, could not load watched channels: {e}")
            return report

        log.info(f"🔍 Checking {len(channel_ids)} watched channels for inactivity")
        for channel_id in channel_ids:
            report.checked += 1
            try:
                await self._check_channel(channel_id, report)
            except Exception as e:
                report.failed += 1
                log.error(f"Error checking channel {channel_id}: {e}", exc_info=True)

        metrics.SWEEPS.inc()
        metrics.SWEEP_DURATION.observe(time.monotonic() - started)
        log.info(
            f"Sweep done: checked={report.checked} warned={report.warned} archived={report.archived} "
            f"deactivated={report.deactivated} failed={report.failed}"
        )
        return report

    async def _check_channel(self, channel_id: str, report: SweepReport) -> None:
        channel = await self.platform.fetch_channel(channel_id)
        if channel is None:
            log.warning(f"Watched channel {channel_id} no longer exists; deactivating.")
            self._deactivate(channel_id)
            report.deactivated += 1
            return

        # Fresh read: last_activity may have moved since the sweep listed this channel.
        with self.session_scope() as session:
            watched = WatchedChannelRepository(session).find_active(channel_id)
            if watched is None:
                log.info(f"Channel {channel_id} was unwatched during the sweep; skipping.")
                return
            last_activity = watched.last_activity
            inactivity_days = watched.inactivity_days
            rescue_enabled = watched.rescue_enabled

        now = self._now()
        elapsed = elapsed_days(last_activity, now)

        if elapsed >= inactivity_days:
            log.info(f"📦 Channel {channel.name} idle {elapsed:.1f} days, archiving.")
            result = await self.archive_service.archive_channel(
                channel_id,
                ArchiveOptions(inactivity_days=inactivity_days, rescue_resources=rescue_enabled),
            )
            self._deactivate(channel_id)
            if result.success:
                report.archived += 1
            else:
                report.failed += 1
                log.error(f"Archive of {channel.name} failed: {result.error} {result.message}")
            return

        days_until_archive = inactivity_days - elapsed
        warning_type = due_warning(days_until_archive)
        if warning_type is None:
            return

        with self.session_scope() as session:
            recently_sent = ArchiveWarningRepository(session).sent_since(
                channel_id, warning_type, now - WARNING_DEDUP_WINDOW
            )
        if recently_sent:
            return

        result = await self.archive_service.send_archive_warning(channel_id, warning_type, days_until_archive)
        if result.success:
            report.warned += 1
        else:
            report.failed += 1

    def _deactivate(self, channel_id: str) -> None:
        with self.session_scope() as session:
            WatchedChannelRepository(session).deactivate(channel_id)

    # ---------------------------------------------------------------------
    # Read-only views
    # ---------------------------------------------------------------------
    def get_watched_channels(self, guild_id: Optional[str] = None) -> List[Dict[str, Any]]:
        now = self._now()
        with self.session_scope() as session:
            return [_watched_dict(w, now) for w in WatchedChannelRepository(session).list_active(guild_id)]

    def get_activity_stats(self, guild_id: str) -> Dict[str, Any]:
        now = self._now()
        with self.session_scope() as session:
            rows = WatchedChannelRepository(session).list_active(guild_id)
            idle = [(max(elapsed_days(w.last_activity, now), 0.0), w.inactivity_days) for w in rows]

        active = sum(1 for days, _ in idle if days < 1)
        inactive = sum(1 for days, limit in idle if 1 <= days < limit)
        near_archive = sum(1 for days, limit in idle if days >= limit - NEAR_ARCHIVE_DAYS)
        average = sum(days for days, _ in idle) / len(idle) if idle else 0.0
        return {
            "total_watched": len(idle),
            "active_channels": active,
            "inactive_channels": inactive,
            "near_archive": near_archive,
            "average_inactivity_days": round(average, 2),
        }

    def cleanup_guild(self, guild_id: str) -> int:
        with self.session_scope() as session:
            removed = WatchedChannelRepository(session).delete_for_guild(guild_id)
        log.info(f"Removed {removed} watched channels for guild {guild_id}")
        return removed
