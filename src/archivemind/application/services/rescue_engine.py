# src/archivemind/application/services/rescue_engine.py
"""
RescueEngine - extracts valuable artifacts from a channel's history before it is deleted.

- History is paged backward (newest first) in batches of at most 100 messages.
- Every message goes through the fixed classifier pipeline in `classifiers`.
- Each resource carries the three messages preceding it as provenance context.
- Results are deduplicated per call; the durable dedup key on the `resources` table
  stops repeated or overlapping runs from storing the same artifact twice.
"""

import logging
from collections import Counter
from typing import Dict, List, Optional, Sequence, Tuple

from archivemind.domain.entities import DetectedResource, PlatformMessage, ResourceType
from archivemind.domain.errors import (
    ArchivemindError,
    ExtractionFailureError,
    NotFoundError,
    PersistenceFailureError,
)
from archivemind.domain.ports import ChatPlatform
from archivemind.domain.results import SaveReport
from archivemind.infrastructure.db.repository import ResourceRepository
from archivemind.infrastructure.db.uow import SessionScopeFactory
from archivemind.infrastructure.monitoring import metrics
from . import classifiers

log = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100
CONTEXT_MESSAGES = 3


class RescueEngine:
    def __init__(self, platform: ChatPlatform, session_scope: SessionScopeFactory, page_size: int = MAX_PAGE_SIZE):
        self.platform = platform
        self.session_scope = session_scope
        self.page_size = max(1, min(page_size, MAX_PAGE_SIZE))

    @staticmethod
    def has_valuable_content(content: Optional[str], has_attachments: bool = False) -> bool:
        return classifiers.has_valuable_content(content, has_attachments)

    # ---------------------------------------------------------------------
    # Extraction
    # ---------------------------------------------------------------------
    async def _fetch_history(self, channel_id: str, message_limit: int) -> Tuple[List[PlatformMessage], bool]:
        """Returns (messages newest first, history_exhausted)."""
        messages: List[PlatformMessage] = []
        before: Optional[str] = None
        while len(messages) < message_limit:
            batch_size = min(self.page_size, message_limit - len(messages))
            page = await self.platform.fetch_messages(channel_id, before=before, limit=batch_size)
            if not page:
                return messages, True
            messages.extend(page)
            before = page[-1].id
            if len(page) < batch_size:
                return messages, True
        return messages, False

    async def _context_for(self, channel_id: str, messages: Sequence[PlatformMessage], index: int,
                           exhausted: bool) -> str:
        preceding = list(messages[index + 1:index + 1 + CONTEXT_MESSAGES])
        if len(preceding) < CONTEXT_MESSAGES and not exhausted:
            anchor = preceding[-1].id if preceding else messages[index].id
            try:
                preceding.extend(await self.platform.fetch_messages(
                    channel_id, before=anchor, limit=CONTEXT_MESSAGES - len(preceding)
                ))
            except ArchivemindError as e:
                log.debug(f"Context fetch before {anchor} in {channel_id} failed: {e}")
        return classifiers.format_context(preceding)

    @staticmethod
    def _extract(message: PlatformMessage) -> List[DetectedResource]:
        try:
            return classifiers.classify_message(message)
        except Exception as e:
            raise ExtractionFailureError(f"Extraction failed for message {message.id}: {e}") from e

    async def rescue_resources(self, channel_id: str, message_limit: int = 500) -> List[DetectedResource]:
        """
        Scan up to `message_limit` messages and return the deduplicated resources found.
        Never returns None; an unreachable channel yields an empty list.
        """
        if message_limit <= 0:
            return []

        try:
            messages, exhausted = await self._fetch_history(channel_id, message_limit)
        except NotFoundError:
            log.warning(f"Rescue skipped: channel {channel_id} not found.")
            return []
        except ArchivemindError as e:
            log.error(f"Rescue for channel {channel_id} could not read history: {e}")
            return []

        found: List[DetectedResource] = []
        for index, message in enumerate(messages):
            try:
                extracted = self._extract(message)
            except ExtractionFailureError as e:
                log.warning(f"Skipping message in {channel_id}: {e}", exc_info=True)
                continue
            if not extracted:
                continue

            context = await self._context_for(channel_id, messages, index, exhausted)
            for resource in extracted:
                resource.context = context
            found.extend(extracted)

        resources = classifiers.deduplicate(found)
        for resource in resources:
            metrics.RESOURCES_RESCUED.labels(type=resource.type.value).inc()
        log.info(f"Rescued {len(resources)} resources from {len(messages)} messages in channel {channel_id}.")
        return resources

    async def extract_recent(self, channel_id: str, count: int = 50) -> Tuple[List[DetectedResource], Dict[ResourceType, int]]:
        """Manual extraction over the latest `count` messages. Nothing is persisted."""
        resources = await self.rescue_resources(channel_id, message_limit=count)
        counts = Counter(r.type for r in resources)
        return resources, dict(counts)

    # ---------------------------------------------------------------------
    # Persistence
    # ---------------------------------------------------------------------
    def save_resources(self, resources: Sequence[DetectedResource], archived_channel_id: int) -> SaveReport:
        """
        Persists each resource in its own short transaction. A failure leaves earlier
        inserts committed; rows already stored under the same dedup key are skipped.
        """
        report = SaveReport()
        for resource in resources:
            dedup_key = classifiers.fingerprint(resource)
            try:
                with self.session_scope() as session:
                    repo = ResourceRepository(session)
                    if repo.exists(archived_channel_id, dedup_key):
                        report.duplicates += 1
                        continue
                    repo.add(
                        type=resource.type,
                        url=resource.url,
                        content=resource.content,
                        file_name=resource.file_name,
                        file_size=resource.file_size,
                        language=resource.language,
                        context=resource.context or None,
                        author_id=resource.author_id,
                        author_name=resource.author_name,
                        original_message_id=resource.message_id,
                        channel_id=archived_channel_id,
                        tags=classifiers.build_tags(resource),
                        dedup_key=dedup_key,
                    )
                report.saved += 1
            except PersistenceFailureError as e:
                # A concurrent rescue may have inserted the same key between check and insert.
                if self._stored(archived_channel_id, dedup_key):
                    report.duplicates += 1
                else:
                    report.failed += 1
                    log.error(f"Failed to save resource from message {resource.message_id}: {e}")

        metrics.RESOURCES_SAVED.inc(report.saved)
        if report.failed:
            metrics.RESOURCE_SAVE_FAILURES.inc(report.failed)
            log.error(
                f"{report.failed} of {len(resources)} resources for archive {archived_channel_id} "
                f"were not persisted (saved={report.saved}, duplicates={report.duplicates})."
            )
        else:
            log.info(f"Saved {report.saved} resources for archive {archived_channel_id} ({report.duplicates} duplicates).")
        return report

    def _stored(self, archived_channel_id: int, dedup_key: str) -> bool:
        try:
            with self.session_scope() as session:
                return ResourceRepository(session).exists(archived_channel_id, dedup_key)
        except PersistenceFailureError:
            return False
