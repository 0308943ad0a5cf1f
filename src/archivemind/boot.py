# File: src/archivemind/boot.py
"""
Composition root: builds every service once and returns them in a dict.
Consumers (API, scheduler, command handlers) receive references from here.
"""

import logging
from typing import Dict, Any, Optional

from archivemind.config import settings
from archivemind.application.services import (
    RescueEngine,
    ArchiveService,
    ActivityTracker,
    StatsService,
    MessageEventHandler,
)
from archivemind.domain.ports import ChatPlatform, KnowledgeBaseNotifier
from archivemind.infrastructure.db.uow import SessionScopeFactory
from archivemind.infrastructure.notify.telegram import TelegramNotifier, NullNotifier
from archivemind.infrastructure.sched.sweep_scheduler import SweepScheduler

log = logging.getLogger(__name__)


def build_notifier() -> KnowledgeBaseNotifier:
    if settings.TELEGRAM_BOT_TOKEN and (settings.KNOWLEDGE_BASE_CHAT_ID or settings.TELEGRAM_ADMIN_CHAT_ID):
        return TelegramNotifier()
    log.info("Telegram not configured; knowledge-base mirror disabled.")
    return NullNotifier()


def build_platform() -> ChatPlatform:
    from archivemind.infrastructure.platform.discord_rest import DiscordRestPlatform
    return DiscordRestPlatform()


def build_services(
    platform: Optional[ChatPlatform] = None,
    notifier: Optional[KnowledgeBaseNotifier] = None,
    session_scope: Optional[SessionScopeFactory] = None,
) -> Dict[str, Any]:
    """Build and wire all application services and dependencies."""
    log.info("Building application services...")
    services: Dict[str, Any] = {}

    try:
        if session_scope is None:
            from archivemind.infrastructure.db.uow import session_scope as default_scope
            session_scope = default_scope
        platform = platform or build_platform()
        notifier = notifier or build_notifier()

        services["platform"] = platform
        services["notifier"] = notifier
        services["session_scope"] = session_scope

        rescue_engine = RescueEngine(platform, session_scope)
        archive_service = ArchiveService(
            platform,
            rescue_engine,
            session_scope,
            notifier=notifier,
        )
        tracker = ActivityTracker(platform, archive_service, session_scope)

        services["rescue_engine"] = rescue_engine
        services["archive_service"] = archive_service
        services["activity_tracker"] = tracker
        services["stats_service"] = StatsService(session_scope=session_scope)
        services["message_handler"] = MessageEventHandler(tracker, rescue_engine)
        services["sweep_scheduler"] = SweepScheduler(
            tracker, settings.SWEEP_INTERVAL_SECONDS, notifier=notifier
        )

        log.info("✅ All services built and wired successfully.")
        return services

    except Exception as e:
        log.critical(f"❌ Service building failed: {e}", exc_info=True)
        raise
