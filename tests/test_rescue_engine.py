# tests/test_rescue_engine.py
import pytest
from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from archivemind.application.services import RescueEngine, classifiers
from archivemind.domain.entities import Attachment, DetectedResource, ResourceType
from archivemind.domain.errors import ExtractionFailureError
from archivemind.infrastructure.db.models import Resource
from archivemind.infrastructure.db.repository import ArchivedChannelRepository, ResourceRepository

pytestmark = pytest.mark.asyncio

SIX_LINE_PY = "```python\nimport sys\n\nfor arg in sys.argv:\n    print(arg)\n\nprint('done')\n```"


def _archive_row(session_scope, original_id="100", name="general", guild_id="1") -> int:
    with session_scope() as session:
        return ArchivedChannelRepository(session).add(
            original_id=original_id, name=name, guild_id=guild_id, permission_snapshot=[]
        ).id


async def test_end_to_end_rescue_returns_link_and_code(platform, rescue_engine):
    platform.add_channel("100")
    platform.add_message("100", "source lives at https://github.com/acme/widgets")
    platform.add_message("100", SIX_LINE_PY)
    platform.add_message("100", "lol")

    resources = await rescue_engine.rescue_resources("100")

    assert len(resources) == 2
    assert {r.type for r in resources} == {ResourceType.LINK, ResourceType.CODE}

async def test_no_qualifying_messages_returns_empty_list(platform, rescue_engine):
    platform.add_channel("100")
    platform.add_message("100", "hello")
    platform.add_message("100", "how is everyone")

    assert await rescue_engine.rescue_resources("100") == []

async def test_unknown_channel_returns_empty_list(rescue_engine):
    assert await rescue_engine.rescue_resources("missing") == []

async def test_history_is_paged_in_batches_of_at_most_100(platform, rescue_engine):
    platform.add_channel("100")
    for i in range(260):
        platform.add_message("100", f"ref https://github.com/acme/repo{i}")

    resources = await rescue_engine.rescue_resources("100", message_limit=250)

    assert [call[2] for call in platform.fetch_calls if call[2] > 3] == [100, 100, 50]
    assert len(resources) == 250

async def test_exhausted_history_stops_paging(platform, rescue_engine):
    platform.add_channel("100")
    for i in range(30):
        platform.add_message("100", f"ref https://github.com/acme/repo{i}")

    resources = await rescue_engine.rescue_resources("100", message_limit=500)

    assert len(resources) == 30
    assert len([c for c in platform.fetch_calls if c[2] == 100]) == 1

async def test_context_holds_three_preceding_messages_oldest_first(platform, rescue_engine):
    platform.add_channel("100")
    platform.add_message("100", "one", author="a")
    platform.add_message("100", "two", author="b")
    platform.add_message("100", "three", author="c")
    platform.add_message("100", "four", author="d")
    platform.add_message("100", "see https://github.com/acme/widgets", author="e")

    [resource] = await rescue_engine.rescue_resources("100")

    assert resource.context == "b: two\nc: three\nd: four"

async def test_context_fetches_beyond_the_scanned_window(platform, rescue_engine):
    platform.add_channel("100")
    platform.add_message("100", "older context", author="a")
    platform.add_message("100", "see https://github.com/acme/widgets", author="b")

    [resource] = await rescue_engine.rescue_resources("100", message_limit=1)

    assert resource.context == "a: older context"

async def test_duplicates_within_one_call_are_removed(platform, rescue_engine):
    platform.add_channel("100")
    platform.add_message("100", "https://github.com/acme/widgets")
    platform.add_message("100", "again: https://github.com/acme/widgets")

    resources = await rescue_engine.rescue_resources("100")

    assert len(resources) == 1

async def test_extraction_error_skips_only_that_message(platform, rescue_engine):
    platform.add_channel("100")
    bad = platform.add_message("100", "https://github.com/acme/broken")
    platform.add_message("100", "https://github.com/acme/fine")
    original = classifiers.classify_message

    def flaky(message):
        if message.id == bad.id:
            raise ValueError("boom")
        return original(message)

    with patch.object(classifiers, "classify_message", side_effect=flaky):
        resources = await rescue_engine.rescue_resources("100")

    assert [r.url for r in resources] == ["https://github.com/acme/fine"]

async def test_extract_wraps_classifier_errors(platform):
    message = platform.add_message("100", "https://github.com/acme/broken")

    with patch.object(classifiers, "classify_message", side_effect=ValueError("boom")):
        with pytest.raises(ExtractionFailureError) as exc_info:
            RescueEngine._extract(message)

    assert message.id in str(exc_info.value)
    assert isinstance(exc_info.value.__cause__, ValueError)

async def test_extract_recent_returns_counts_by_type(platform, rescue_engine):
    platform.add_channel("100")
    platform.add_message("100", "", attachments=[Attachment("a.pdf", "https://cdn/a.pdf")])
    platform.add_message("100", "https://github.com/acme/one https://github.com/acme/two")

    resources, counts = await rescue_engine.extract_recent("100", count=50)

    assert len(resources) == 3
    assert counts == {ResourceType.DOCUMENT: 1, ResourceType.LINK: 2}


# --- save_resources ---

def _detected(url, rtype=ResourceType.LINK, **kw):
    return DetectedResource(type=rtype, author_id="u1", author_name="alice", message_id="m1", url=url, **kw)

async def test_save_resources_persists_tags_and_dedup_key(session_scope, rescue_engine):
    archived_id = _archive_row(session_scope)
    code = DetectedResource(type=ResourceType.CODE, author_id="u2", author_name="bob", message_id="m2",
                            content="print(1)", language="python", context="bob: hi")

    report = rescue_engine.save_resources([_detected("https://github.com/acme/w"), code], archived_id)

    assert (report.saved, report.duplicates, report.failed) == (2, 0, 0)
    with session_scope() as session:
        rows = session.query(Resource).order_by(Resource.id).all()
        assert rows[0].tags == ["github.com", "link"]
        assert rows[1].tags == ["code", "python"]
        assert rows[1].context == "bob: hi"
        assert rows[0].dedup_key == classifiers.fingerprint(_detected("https://github.com/acme/w"))

async def test_repeated_save_skips_durable_duplicates(session_scope, rescue_engine):
    archived_id = _archive_row(session_scope)
    batch = [_detected("https://github.com/acme/a"), _detected("https://github.com/acme/b")]

    rescue_engine.save_resources(batch, archived_id)
    report = rescue_engine.save_resources(batch + [_detected("https://github.com/acme/c")], archived_id)

    assert (report.saved, report.duplicates) == (1, 2)
    with session_scope() as session:
        assert ResourceRepository(session).count_for_channel(archived_id) == 3

async def test_failed_insert_leaves_earlier_inserts_committed(session_scope, rescue_engine):
    archived_id = _archive_row(session_scope)
    original_add = ResourceRepository.add
    calls = {"n": 0}

    def flaky_add(self, **kwargs):
        calls["n"] += 1
        if calls["n"] == 2:
            raise OperationalError("INSERT", {}, Exception("disk I/O error"))
        return original_add(self, **kwargs)

    batch = [_detected(f"https://github.com/acme/{n}") for n in ("a", "b", "c")]
    with patch.object(ResourceRepository, "add", autospec=True, side_effect=flaky_add):
        report = rescue_engine.save_resources(batch, archived_id)

    assert (report.saved, report.failed) == (2, 1)
    with session_scope() as session:
        urls = {r.url for r in session.query(Resource).all()}
    assert urls == {"https://github.com/acme/a", "https://github.com/acme/c"}
