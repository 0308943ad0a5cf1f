# tests/test_archive_service.py
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from archivemind.application.services import ArchiveService
from archivemind.domain.entities import ArchiveOptions, ErrorCode, PermissionOverwrite, WarningType
from archivemind.domain.errors import ArchivemindError, NotFoundError, PermissionDeniedError
from archivemind.infrastructure.db.models import ArchivedChannel, ArchiveWarning, Resource, utcnow
from archivemind.infrastructure.db.repository import (
    ArchivedChannelRepository,
    ArchiveWarningRepository,
    WatchedChannelRepository,
)

pytestmark = pytest.mark.asyncio

BIG_ALLOW = (1 << 70) | 1024
FROZEN = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _db_error():
    return OperationalError("UPDATE", {}, Exception("database is locked"))


def _channel_with_history(platform, channel_id="100", name="general"):
    platform.add_channel(
        channel_id, "1", name,
        category_name="Projects",
        topic="project chatter",
        rate_limit_per_user=10,
        permission_overwrites=[PermissionOverwrite("42", 0, allow=BIG_ALLOW, deny=2048)],
    )
    platform.add_message(channel_id, "repo: https://github.com/acme/widgets")
    platform.add_message(channel_id, "thanks!")


def _archive_row(session_scope, name="general", original_id="100", **kwargs) -> int:
    with session_scope() as session:
        return ArchivedChannelRepository(session).add(
            original_id=original_id, name=name, guild_id="1", permission_snapshot=[], **kwargs
        ).id


@pytest.fixture
def frozen_service(platform, rescue_engine, session_scope, notifier, fake_sleep) -> ArchiveService:
    return ArchiveService(
        platform, rescue_engine, session_scope,
        notifier=notifier, delete_delay_seconds=5.0, sleep=fake_sleep, now_fn=lambda: FROZEN,
    )


# --- archive_channel ---

async def test_archive_posts_tombstone_waits_then_deletes(platform, archive_service, session_scope, fake_sleep, notifier):
    _channel_with_history(platform)

    async def record(delay):
        platform.events.append(f"sleep:{delay}")
    fake_sleep.side_effect = record

    result = await archive_service.archive_channel("100", ArchiveOptions(inactivity_days=30))

    assert result.success is True
    assert result.deleted is True
    assert result.error is None
    assert result.resource_count == 1
    assert platform.events == ["send:100", "sleep:5.0", "delete:100"]
    assert "Inactive for 30 days" in platform.deleted[0][1]
    notifier.post_resource_digest.assert_awaited_once()

    with session_scope() as session:
        archived = session.get(ArchivedChannel, result.archived_channel_id)
        assert archived.category == "Projects"
        assert archived.rate_limit == 10
        assert archived.inactivity_days == 30
        assert archived.permission_snapshot == [
            {"id": "42", "type": 0, "allow": str(BIG_ALLOW), "deny": "2048"}
        ]
        assert session.query(Resource).count() == 1

async def test_archive_without_rescue_saves_no_resources(platform, archive_service, session_scope):
    _channel_with_history(platform)

    result = await archive_service.archive_channel("100", ArchiveOptions(rescue_resources=False))

    assert result.success and result.resource_count == 0
    with session_scope() as session:
        assert session.query(Resource).count() == 0

async def test_archive_unknown_channel(archive_service):
    result = await archive_service.archive_channel("404")
    assert result.success is False
    assert result.error is ErrorCode.CHANNEL_NOT_FOUND

async def test_archive_refuses_already_archived_channel(platform, archive_service, session_scope):
    platform.add_channel("100")
    _archive_row(session_scope)

    result = await archive_service.archive_channel("100")

    assert result.error is ErrorCode.ALREADY_ARCHIVED
    assert platform.deleted == []
    with session_scope() as session:
        assert session.query(ArchivedChannel).count() == 1

async def test_archive_refuses_channel_inside_grace_period(platform, archive_service, session_scope):
    platform.add_channel("100")
    with session_scope() as session:
        WatchedChannelRepository(session).upsert("100", "1", 30, True, now=utcnow() - timedelta(days=1))

    result = await archive_service.archive_channel("100", ArchiveOptions(grace_period_days=3))

    assert result.error is ErrorCode.INVALID_INPUT
    assert platform.deleted == []

async def test_grace_period_uses_the_injected_clock(platform, frozen_service, session_scope):
    platform.add_channel("100")
    with session_scope() as session:
        WatchedChannelRepository(session).upsert("100", "1", 30, True, now=FROZEN - timedelta(days=1))

    result = await frozen_service.archive_channel("100", ArchiveOptions(grace_period_days=3))

    assert result.error is ErrorCode.INVALID_INPUT
    assert platform.deleted == []

async def test_grace_period_allows_idle_channel_and_stamps_archive(platform, frozen_service, session_scope):
    platform.add_channel("100")
    with session_scope() as session:
        WatchedChannelRepository(session).upsert("100", "1", 30, True, now=FROZEN - timedelta(days=5))

    result = await frozen_service.archive_channel("100", ArchiveOptions(grace_period_days=3))

    assert result.success is True
    with session_scope() as session:
        assert session.get(ArchivedChannel, result.archived_channel_id).archived_at == FROZEN

async def test_archive_deactivates_the_watch(platform, archive_service, session_scope):
    platform.add_channel("100")
    with session_scope() as session:
        WatchedChannelRepository(session).upsert("100", "1", 30, True)

    await archive_service.archive_channel("100")

    with session_scope() as session:
        assert WatchedChannelRepository(session).find_by_channel_id("100").is_active is False

@pytest.mark.parametrize("error,expected_code,deleted", [
    (ArchivemindError("gateway exploded"), ErrorCode.DELETE_FAILED, False),
    (PermissionDeniedError("missing MANAGE_CHANNELS"), ErrorCode.PERMISSION_DENIED, False),
    (NotFoundError("gone"), None, True),
])
async def test_deletion_outcome_is_reported(platform, archive_service, error, expected_code, deleted):
    _channel_with_history(platform)
    platform.delete_error = error

    result = await archive_service.archive_channel("100")

    assert result.success is True
    assert result.archived_channel_id is not None
    assert result.error is expected_code
    assert result.deleted is deleted

async def test_failed_deletion_alerts_admins(platform, archive_service, notifier):
    _channel_with_history(platform)
    platform.delete_error = PermissionDeniedError("missing MANAGE_CHANNELS")

    await archive_service.archive_channel("100")

    notifier.send_admin_alert.assert_awaited_once()
    assert "(100)" in notifier.send_admin_alert.await_args.args[0]

async def test_broken_alert_channel_does_not_change_result(platform, archive_service, notifier):
    _channel_with_history(platform)
    platform.delete_error = ArchivemindError("gateway exploded")
    notifier.send_admin_alert.side_effect = RuntimeError("telegram down")

    result = await archive_service.archive_channel("100")

    assert result.success is True
    assert result.error is ErrorCode.DELETE_FAILED

async def test_successful_archive_sends_no_alert(platform, archive_service, notifier):
    _channel_with_history(platform)
    await archive_service.archive_channel("100")
    notifier.send_admin_alert.assert_not_awaited()

async def test_snapshot_failure_leaves_channel_untouched(platform, archive_service, session_scope, notifier):
    _channel_with_history(platform)

    with patch.object(ArchivedChannelRepository, "add", side_effect=_db_error()):
        result = await archive_service.archive_channel("100")

    assert result.success is False
    assert result.error is ErrorCode.PERSISTENCE_FAILURE
    assert platform.sent == []
    assert platform.deleted == []
    notifier.send_admin_alert.assert_awaited_once()
    with session_scope() as session:
        assert session.query(ArchivedChannel).count() == 0

async def test_knowledge_base_failure_does_not_abort_archive(platform, archive_service, notifier):
    _channel_with_history(platform)
    notifier.post_resource_digest.side_effect = RuntimeError("telegram down")

    result = await archive_service.archive_channel("100")

    assert result.success is True
    assert result.deleted is True


# --- restore_channel ---

async def test_restore_recreates_channel_from_snapshot(platform, archive_service):
    _channel_with_history(platform)
    archived = await archive_service.archive_channel("100")
    platform.categories["1"] = {"Projects": "555"}

    result = await archive_service.restore_channel("general", "1")

    assert result.success is True
    assert result.archived_channel_id == archived.archived_channel_id
    assert result.resource_count == 1
    guild_id, config = platform.created[0]
    assert guild_id == "1"
    assert config.name == "general"
    assert config.category_id == "555"
    assert config.topic == "project chatter"
    assert config.rate_limit_per_user == 10
    assert config.permission_overwrites == [PermissionOverwrite("42", 0, allow=BIG_ALLOW, deny=2048)]
    assert platform.sent[-1][0] == result.channel_id

async def test_restore_without_matching_category(platform, archive_service):
    _channel_with_history(platform)
    await archive_service.archive_channel("100")

    result = await archive_service.restore_channel("general", "1")

    assert result.success is True
    assert platform.created[0][1].category_id is None

async def test_restore_twice_reports_not_found(platform, archive_service):
    _channel_with_history(platform)
    await archive_service.archive_channel("100")

    first = await archive_service.restore_channel("general", "1")
    second = await archive_service.restore_channel("general", "1")

    assert first.success is True
    assert second.error is ErrorCode.CHANNEL_NOT_FOUND
    assert len(platform.created) == 1

async def test_restore_with_several_candidates_is_ambiguous(platform, archive_service, session_scope):
    older = _archive_row(session_scope, original_id="100", archived_at=utcnow() - timedelta(days=10))
    newer = _archive_row(session_scope, original_id="200")

    result = await archive_service.restore_channel("general", "1")

    assert result.error is ErrorCode.AMBIGUOUS_MATCH
    assert [c["archived_channel_id"] for c in result.candidates] == [newer, older]
    assert platform.created == []

    picked = await archive_service.restore_channel("general", "1", archived_channel_id=older)
    assert picked.success is True
    assert picked.archived_channel_id == older

async def test_restore_claim_failure_creates_nothing(platform, archive_service, session_scope):
    archived_id = _archive_row(session_scope)

    with patch.object(ArchivedChannelRepository, "claim_restore", side_effect=_db_error()):
        result = await archive_service.restore_channel("general", "1")

    assert result.error is ErrorCode.PERSISTENCE_FAILURE
    assert platform.created == []
    with session_scope() as session:
        assert session.get(ArchivedChannel, archived_id).restored is False

async def test_concurrent_restores_recreate_the_channel_once(platform, archive_service, session_scope):
    archived_id = _archive_row(session_scope)
    platform.create_delay = 0.01

    results = await asyncio.gather(
        archive_service.restore_channel("general", "1"),
        archive_service.restore_channel("general", "1"),
    )

    assert sorted(r.success for r in results) == [False, True]
    assert [r.error for r in results if not r.success] == [ErrorCode.CHANNEL_NOT_FOUND]
    assert len(platform.created) == 1
    with session_scope() as session:
        assert session.get(ArchivedChannel, archived_id).restored is True

async def test_claim_is_won_once(session_scope):
    archived_id = _archive_row(session_scope)

    with session_scope() as session:
        first = ArchivedChannelRepository(session).claim_restore(archived_id, FROZEN)
    with session_scope() as session:
        second = ArchivedChannelRepository(session).claim_restore(archived_id, FROZEN)

    assert (first, second) == (True, False)
    with session_scope() as session:
        assert session.get(ArchivedChannel, archived_id).restored_at == FROZEN

async def test_failed_recreate_releases_the_claim(platform, archive_service, session_scope):
    archived_id = _archive_row(session_scope)
    platform.create_error = PermissionDeniedError("missing MANAGE_CHANNELS")

    failed = await archive_service.restore_channel("general", "1")

    assert failed.error is ErrorCode.PERMISSION_DENIED
    with session_scope() as session:
        row = session.get(ArchivedChannel, archived_id)
        assert (row.restored, row.restored_at) == (False, None)

    platform.create_error = None
    retried = await archive_service.restore_channel("general", "1")
    assert retried.success is True

async def test_category_lookup_error_restores_uncategorized(platform, archive_service, session_scope):
    _archive_row(session_scope, category="Projects")
    platform.category_error = PermissionDeniedError("missing VIEW_CHANNEL")

    result = await archive_service.restore_channel("general", "1")

    assert result.success is True
    assert platform.created[0][1].category_id is None

async def test_channel_can_be_archived_again_after_restore(platform, archive_service, session_scope):
    _channel_with_history(platform)
    await archive_service.archive_channel("100")
    restored = await archive_service.restore_channel("general", "1")

    again = await archive_service.archive_channel(restored.channel_id)

    assert again.success is True
    with session_scope() as session:
        assert session.query(ArchivedChannel).count() == 2


# --- send_archive_warning ---

async def test_warning_is_posted_with_actions_and_recorded(platform, archive_service, session_scope):
    platform.add_channel("100")

    result = await archive_service.send_archive_warning("100", WarningType.THREE_DAYS, 2.5)

    assert result.success is True
    channel_id, payload = platform.sent[0]
    assert channel_id == "100"
    buttons = payload["components"][0]["components"]
    assert [b["custom_id"] for b in buttons] == ["postpone_archive_100", "archive_now_100"]
    with session_scope() as session:
        assert ArchiveWarningRepository(session).count_for_channel("100") == 1


# --- forgotten deletion ---

async def test_forgotten_deletion_removes_every_row(platform, archive_service, session_scope, caplog):
    _channel_with_history(platform)
    await archive_service.send_archive_warning("100", WarningType.ONE_DAY, 0.8)
    archived = await archive_service.archive_channel("100")

    with caplog.at_level(logging.INFO, logger="archivemind.audit"):
        result = await archive_service.perform_forgotten_deletion(
            archived.archived_channel_id, "user request", "mod#1"
        )

    assert result.success is True
    assert (result.deleted_resources, result.deleted_warnings) == (1, 1)
    with session_scope() as session:
        assert session.query(ArchivedChannel).count() == 0
        assert session.query(Resource).count() == 0
        assert session.query(ArchiveWarning).count() == 0
    audit = [r for r in caplog.records if r.name == "archivemind.audit"]
    assert len(audit) == 1
    assert "requested_by=mod#1" in audit[0].getMessage()
    assert "user request" in audit[0].getMessage()

async def test_forgotten_deletion_is_atomic(platform, archive_service, session_scope):
    _channel_with_history(platform)
    await archive_service.send_archive_warning("100", WarningType.ONE_DAY, 0.8)
    archived = await archive_service.archive_channel("100")

    with patch.object(ArchivedChannelRepository, "delete", side_effect=_db_error()):
        result = await archive_service.perform_forgotten_deletion(archived.archived_channel_id, "r", "mod")

    assert result.error is ErrorCode.PERSISTENCE_FAILURE
    with session_scope() as session:
        assert session.query(ArchivedChannel).count() == 1
        assert session.query(Resource).count() == 1
        assert session.query(ArchiveWarning).count() == 1

async def test_forgotten_deletion_of_unknown_archive(archive_service):
    result = await archive_service.perform_forgotten_deletion(999, "r", "mod")
    assert result.error is ErrorCode.CHANNEL_NOT_FOUND

async def test_forget_channel_includes_restored_archives(archive_service, session_scope):
    restored_id = _archive_row(session_scope, restored=True, archived_at=utcnow() - timedelta(days=5))
    live_id = _archive_row(session_scope)

    ambiguous = await archive_service.forget_channel("general", "1", "r", "mod")
    assert ambiguous.error is ErrorCode.AMBIGUOUS_MATCH
    assert {c["archived_channel_id"] for c in ambiguous.candidates} == {restored_id, live_id}

    result = await archive_service.forget_channel("general", "1", "r", "mod", archived_channel_id=restored_id)
    assert result.success is True
    with session_scope() as session:
        assert [a.id for a in session.query(ArchivedChannel).all()] == [live_id]

async def test_forget_unknown_name(archive_service):
    result = await archive_service.forget_channel("nope", "1", "r", "mod")
    assert result.error is ErrorCode.CHANNEL_NOT_FOUND
