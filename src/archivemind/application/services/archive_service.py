# src/archivemind/application/services/archive_service.py
"""
ArchiveService - the archive orchestrator.

- archive_channel: rescue -> snapshot -> persist -> mirror -> tombstone, then an awaited
  deletion phase whose outcome is part of the result.
- restore_channel: claim the archive row, then recreate a channel from its snapshot;
  resources stay attached to the original archive row. A failed recreate releases the claim.
- send_archive_warning: post a warning with postpone / archive-now actions and record it.
- perform_forgotten_deletion / forget_channel: compliance removal of every row tied to
  an archive, in one transaction.

Nothing raises past this class: every public operation returns a result object.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional

from archivemind.config import settings
from archivemind.domain.entities import (
    ArchiveOptions,
    ChannelConfig,
    DetectedResource,
    ErrorCode,
    PermissionOverwrite,
    PlatformChannel,
    WarningType,
)
from archivemind.domain.errors import (
    AlreadyArchivedError,
    AmbiguousMatchError,
    ArchivemindError,
    NotFoundError,
    PermissionDeniedError,
    PersistenceFailureError,
)
from archivemind.domain.ports import ChatPlatform, KnowledgeBaseNotifier
from archivemind.domain.results import ArchiveResult, ForgetResult, OperationResult, RestoreResult
from archivemind.infrastructure.db.models import ArchivedChannel, utcnow
from archivemind.infrastructure.db.repository import (
    ArchivedChannelRepository,
    ArchiveWarningRepository,
    ResourceRepository,
    WatchedChannelRepository,
)
from archivemind.infrastructure.db.uow import SessionScopeFactory
from archivemind.infrastructure.monitoring import metrics
from archivemind.logging_conf import get_audit_logger
from . import notices
from .rescue_engine import RescueEngine

log = logging.getLogger(__name__)
audit_log = get_audit_logger()


def _candidate(archived: ArchivedChannel) -> Dict[str, Any]:
    return {
        "archived_channel_id": archived.id,
        "name": archived.name,
        "category": archived.category,
        "archived_at": archived.archived_at.isoformat() if archived.archived_at else None,
        "restored": archived.restored,
    }


def _pick(candidates: List[ArchivedChannel], name: str, archived_channel_id: Optional[int]) -> ArchivedChannel:
    """Selects exactly one archive row or raises NotFoundError / AmbiguousMatchError."""
    if archived_channel_id is not None:
        for archived in candidates:
            if archived.id == archived_channel_id:
                return archived
        raise NotFoundError(f"No archive #{archived_channel_id} named '{name}'.")
    if not candidates:
        raise NotFoundError(f"No archived channel found with name: {name}")
    if len(candidates) > 1:
        raise AmbiguousMatchError(
            f"{len(candidates)} archives match '{name}'; pick one by id.",
            candidates=[_candidate(a) for a in candidates],
        )
    return candidates[0]


class ArchiveService:
    def __init__(
        self,
        platform: ChatPlatform,
        rescue_engine: RescueEngine,
        session_scope: SessionScopeFactory,
        notifier: Optional[KnowledgeBaseNotifier] = None,
        delete_delay_seconds: float = settings.DELETE_DELAY_SECONDS,
        message_limit: int = settings.DEFAULT_MESSAGE_LIMIT,
        postpone_days: int = settings.POSTPONE_DAYS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        now_fn: Callable[[], datetime] = utcnow,
    ):
        self.platform = platform
        self.rescue_engine = rescue_engine
        self.session_scope = session_scope
        self.notifier = notifier
        self.delete_delay_seconds = delete_delay_seconds
        self.message_limit = message_limit
        self.postpone_days = postpone_days
        self._sleep = sleep
        self._now = now_fn

    # ---------------------------------------------------------------------
    # Archive
    # ---------------------------------------------------------------------
    async def archive_channel(self, channel_id: str, options: Optional[ArchiveOptions] = None) -> ArchiveResult:
        options = options or ArchiveOptions()
        try:
            result = await self._archive(channel_id, options)
        except ArchivemindError as e:
            log.warning(f"Archive of channel {channel_id} failed: {e}")
            result = ArchiveResult.fail(e.code, str(e))
        except Exception as e:
            log.exception(f"Unexpected error archiving channel {channel_id}")
            result = ArchiveResult.fail(ErrorCode.UNEXPECTED, f"Unexpected error: {e}")
        metrics.ARCHIVES.labels(outcome="success" if result.success else (result.error or ErrorCode.UNEXPECTED).value).inc()
        return result

    def _check_archivable(self, channel_id: str, grace_period_days: int) -> None:
        with self.session_scope() as session:
            if ArchivedChannelRepository(session).find_unrestored_by_original_id(channel_id):
                raise AlreadyArchivedError(f"Channel {channel_id} is already archived.")
            if grace_period_days > 0:
                watched = WatchedChannelRepository(session).find_by_channel_id(channel_id)
                if watched and watched.last_activity > self._now() - timedelta(days=grace_period_days):
                    raise ArchivemindError(
                        f"Channel {channel_id} was active within the {grace_period_days}-day grace period."
                    )

    async def _archive(self, channel_id: str, options: ArchiveOptions) -> ArchiveResult:
        channel = await self.platform.fetch_channel(channel_id)
        if channel is None:
            return ArchiveResult.fail(ErrorCode.CHANNEL_NOT_FOUND, f"Channel {channel_id} not found.")

        try:
            self._check_archivable(channel_id, options.grace_period_days)
        except AlreadyArchivedError as e:
            return ArchiveResult.fail(ErrorCode.ALREADY_ARCHIVED, str(e))
        except PersistenceFailureError as e:
            log.error(f"Archive pre-check for {channel_id} failed: {e}")
            return ArchiveResult.fail(ErrorCode.PERSISTENCE_FAILURE, "Database unavailable.")
        except ArchivemindError as e:
            return ArchiveResult.fail(ErrorCode.INVALID_INPUT, str(e))

        log.info(f"📦 Starting archive process for channel: {channel.name} ({channel_id})")

        resources: List[DetectedResource] = []
        if options.rescue_resources:
            resources = await self.rescue_engine.rescue_resources(channel_id, self.message_limit)

        # Phase 1: persist snapshot + resources
        try:
            archived_id = self._persist_snapshot(channel, options)
        except AlreadyArchivedError as e:
            return ArchiveResult.fail(ErrorCode.ALREADY_ARCHIVED, str(e))
        except PersistenceFailureError as e:
            log.error(
                f"Failed to persist archive snapshot for channel {channel_id}; "
                f"{len(resources)} rescued resources were not saved: {e}"
            )
            await self._alert(f"Archive of #{channel.name} ({channel_id}) could not be saved: {e}")
            return ArchiveResult.fail(ErrorCode.PERSISTENCE_FAILURE, "Could not save the archive record.")

        report = self.rescue_engine.save_resources(resources, archived_id)
        await self._mirror_to_knowledge_base(channel, resources)

        try:
            await self.platform.send_message(channel_id, notices.build_tombstone(report.saved, options.reason))
        except ArchivemindError as e:
            log.warning(f"Could not post tombstone in {channel.name}: {e}")

        result = ArchiveResult(
            success=True,
            archived_channel_id=archived_id,
            resource_count=report.saved,
            failed_resource_count=report.failed,
            message=f"Channel #{channel.name} archived with {report.saved} resources.",
        )

        # Phase 2: deletion, after the tombstone had a moment to render
        await self._sleep(self.delete_delay_seconds)
        reason = options.reason or f"Archived by Archivemind - Inactive for {options.inactivity_days} days"
        try:
            await self.platform.delete_channel(channel_id, reason)
            result.deleted = True
            log.info(f"Channel {channel.name} ({channel_id}) deleted; archive #{archived_id}.")
        except NotFoundError:
            result.deleted = True
            log.warning(f"Channel {channel_id} was already gone at deletion time.")
        except PermissionDeniedError as e:
            result.error = ErrorCode.PERMISSION_DENIED
            result.message += f" Deletion refused by the platform: {e}"
            log.error(f"Deletion of channel {channel_id} refused: {e}")
            await self._alert(f"Archived #{channel.name} ({channel_id}) but deletion was refused: {e}")
        except ArchivemindError as e:
            result.error = ErrorCode.DELETE_FAILED
            result.message += f" Deletion failed: {e}"
            log.error(f"Deletion of channel {channel_id} failed: {e}")
            await self._alert(f"Archived #{channel.name} ({channel_id}) but deletion failed: {e}")
        return result

    def _persist_snapshot(self, channel: PlatformChannel, options: ArchiveOptions) -> int:
        with self.session_scope() as session:
            repo = ArchivedChannelRepository(session)
            if repo.find_unrestored_by_original_id(channel.id):
                raise AlreadyArchivedError(f"Channel {channel.name} is already archived.")
            archived = repo.add(
                original_id=channel.id,
                name=channel.name,
                category=channel.category_name,
                guild_id=channel.guild_id,
                topic=channel.topic,
                nsfw=channel.nsfw,
                rate_limit=channel.rate_limit_per_user or 0,
                position=channel.position,
                permission_snapshot=[o.to_snapshot() for o in channel.permission_overwrites],
                inactivity_days=options.inactivity_days or None,
                archived_at=self._now(),
            )
            WatchedChannelRepository(session).deactivate(channel.id)
            return archived.id

    async def _mirror_to_knowledge_base(self, channel: PlatformChannel, resources: List[DetectedResource]) -> None:
        if not resources or self.notifier is None:
            return
        try:
            for digest in notices.build_resource_digests(channel.name, resources):
                await self.notifier.post_resource_digest(digest)
        except Exception as e:
            log.error(f"Failed to post resources from {channel.name} to the knowledge base: {e}")

    async def _alert(self, text: str) -> None:
        """Best-effort admin alert; a broken notifier never changes an operation's outcome."""
        if self.notifier is None:
            return
        try:
            await self.notifier.send_admin_alert(text)
        except Exception as e:
            log.error(f"Admin alert could not be delivered: {e}")

    # ---------------------------------------------------------------------
    # Restore
    # ---------------------------------------------------------------------
    async def restore_channel(self, channel_name: str, guild_id: str,
                              archived_channel_id: Optional[int] = None) -> RestoreResult:
        try:
            result = await self._restore(channel_name, guild_id, archived_channel_id)
        except AmbiguousMatchError as e:
            result = RestoreResult.fail(e.code, str(e), candidates=e.candidates)
        except PersistenceFailureError as e:
            log.error(f"Restore of '{channel_name}' hit a database error: {e}")
            result = RestoreResult.fail(ErrorCode.PERSISTENCE_FAILURE, "Database error during restore.")
        except ArchivemindError as e:
            log.warning(f"Restore of '{channel_name}' failed: {e}")
            result = RestoreResult.fail(e.code, str(e))
        except Exception as e:
            log.exception(f"Unexpected error restoring '{channel_name}'")
            result = RestoreResult.fail(ErrorCode.UNEXPECTED, f"Unexpected error: {e}")
        metrics.RESTORES.labels(outcome="success" if result.success else (result.error or ErrorCode.UNEXPECTED).value).inc()
        return result

    async def _restore(self, channel_name: str, guild_id: str, archived_channel_id: Optional[int]) -> RestoreResult:
        with self.session_scope() as session:
            candidates = ArchivedChannelRepository(session).find_unrestored_by_name(channel_name, guild_id)
        archived = _pick(candidates, channel_name, archived_channel_id)

        # The claim flips restored=true before any platform call; only one caller wins it.
        with self.session_scope() as session:
            claimed = ArchivedChannelRepository(session).claim_restore(archived.id, self._now())
            resource_count = ResourceRepository(session).count_for_channel(archived.id)
        if not claimed:
            raise NotFoundError(f"Archive #{archived.id} of '{channel_name}' is already restored.")

        log.info(f"🔄 Restoring channel: {channel_name} from archive #{archived.id}")
        try:
            created = await self._recreate(archived, guild_id)
        except Exception:
            await self._release_claim(archived.id)
            raise

        try:
            await self.platform.send_message(created.id, notices.build_restoration_notice(resource_count, archived.archived_at))
        except ArchivemindError as e:
            log.warning(f"Could not post restoration notice in {created.id}: {e}")

        return RestoreResult(
            success=True,
            message=f"Channel #{archived.name} restored with {resource_count} resources available.",
            channel_id=created.id,
            archived_channel_id=archived.id,
            resource_count=resource_count,
        )

    async def _recreate(self, archived: ArchivedChannel, guild_id: str) -> PlatformChannel:
        category_id = None
        if archived.category:
            try:
                category_id = await self.platform.find_category(guild_id, archived.category)
            except ArchivemindError as e:
                log.warning(f"Category lookup for '{archived.category}' failed, restoring uncategorized: {e}")

        config = ChannelConfig(
            name=archived.name,
            category_id=category_id,
            topic=archived.topic,
            nsfw=archived.nsfw,
            rate_limit_per_user=archived.rate_limit or 0,
            position=archived.position,
            permission_overwrites=[PermissionOverwrite.from_snapshot(p) for p in (archived.permission_snapshot or [])],
        )
        return await self.platform.create_channel(guild_id, config)

    async def _release_claim(self, archived_id: int) -> None:
        try:
            with self.session_scope() as session:
                ArchivedChannelRepository(session).release_restore(archived_id)
            log.info(f"Restore claim on archive #{archived_id} released.")
        except PersistenceFailureError as e:
            log.error(f"Archive #{archived_id} left flagged restored after a failed restore: {e}")
            await self._alert(f"Archive #{archived_id} is flagged restored but no channel was created.")

    # ---------------------------------------------------------------------
    # Warnings
    # ---------------------------------------------------------------------
    async def send_archive_warning(self, channel_id: str, warning_type: WarningType,
                                   days_remaining: float) -> OperationResult:
        payload = notices.build_warning(channel_id, warning_type, days_remaining, self.postpone_days)
        try:
            await self.platform.send_message(channel_id, payload)
        except ArchivemindError as e:
            log.error(f"Failed to send archive warning to channel {channel_id}: {e}")
            return OperationResult.fail(e.code, str(e))

        try:
            with self.session_scope() as session:
                ArchiveWarningRepository(session).add(channel_id, warning_type, sent_at=self._now())
        except PersistenceFailureError as e:
            log.error(f"Warning posted to {channel_id} but not recorded: {e}")
            return OperationResult.fail(ErrorCode.PERSISTENCE_FAILURE, "Warning sent but not recorded.")

        metrics.WARNINGS_SENT.labels(warning_type=warning_type.value).inc()
        log.info(f"⚠️ {warning_type.value} warning sent to channel {channel_id} ({days_remaining:.2f} days left).")
        return OperationResult(success=True, message=f"{warning_type.value} warning sent.")

    # ---------------------------------------------------------------------
    # Compliance deletion
    # ---------------------------------------------------------------------
    async def perform_forgotten_deletion(self, archived_channel_id: int, reason: str,
                                         requested_by: str) -> ForgetResult:
        archived = None
        try:
            with self.session_scope() as session:
                archive_repo = ArchivedChannelRepository(session)
                archived = archive_repo.get(archived_channel_id)
                if archived is not None:
                    original_id, name, guild_id = archived.original_id, archived.name, archived.guild_id
                    deleted_resources = ResourceRepository(session).delete_for_channel(archived_channel_id)
                    deleted_warnings = ArchiveWarningRepository(session).delete_for_channel(original_id)
                    archive_repo.delete(archived)
        except PersistenceFailureError as e:
            log.error(f"Forgotten deletion of archive #{archived_channel_id} rolled back: {e}")
            metrics.FORGOTTEN.labels(outcome=ErrorCode.PERSISTENCE_FAILURE.value).inc()
            return ForgetResult.fail(ErrorCode.PERSISTENCE_FAILURE, "Deletion failed; nothing was removed.")

        if archived is None:
            metrics.FORGOTTEN.labels(outcome=ErrorCode.CHANNEL_NOT_FOUND.value).inc()
            return ForgetResult.fail(ErrorCode.CHANNEL_NOT_FOUND, f"Archive #{archived_channel_id} does not exist.")

        audit_log.info(
            f"FORGOTTEN_DELETION archive={archived_channel_id} original_id={original_id} name={name} "
            f"guild={guild_id} resources={deleted_resources} warnings={deleted_warnings} "
            f"requested_by={requested_by} reason={reason!r}"
        )
        metrics.FORGOTTEN.labels(outcome="success").inc()
        return ForgetResult(
            success=True,
            message=f"All data for #{name} permanently deleted.",
            archived_channel_id=archived_channel_id,
            deleted_resources=deleted_resources,
            deleted_warnings=deleted_warnings,
        )

    async def forget_channel(self, channel_name: str, guild_id: str, reason: str, requested_by: str,
                             archived_channel_id: Optional[int] = None) -> ForgetResult:
        try:
            with self.session_scope() as session:
                candidates = ArchivedChannelRepository(session).find_by_name(channel_name, guild_id)
            target_id = _pick(candidates, channel_name, archived_channel_id).id
        except AmbiguousMatchError as e:
            return ForgetResult.fail(e.code, str(e), candidates=e.candidates)
        except NotFoundError as e:
            return ForgetResult.fail(e.code, str(e))
        except PersistenceFailureError as e:
            log.error(f"Lookup for forget '{channel_name}' failed: {e}")
            return ForgetResult.fail(ErrorCode.PERSISTENCE_FAILURE, "Database error.")
        return await self.perform_forgotten_deletion(target_id, reason, requested_by)
