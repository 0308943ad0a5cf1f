import pytest

from archivemind.domain.entities import (
    DetectedResource,
    ErrorCode,
    PermissionOverwrite,
    ResourceType,
    WarningType,
    WARNING_THRESHOLDS,
)
from archivemind.domain.errors import (
    AlreadyArchivedError,
    AmbiguousMatchError,
    ArchivemindError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitedError,
)
from archivemind.domain.results import ArchiveResult, ForgetResult, RestoreResult


def test_permission_overwrite_snapshot_keeps_wide_bitfields():
    allow = (1 << 80) + 7
    overwrite = PermissionOverwrite(id="123456789012345678", type=1, allow=allow, deny=1 << 65)
    snapshot = overwrite.to_snapshot()
    assert snapshot == {"id": "123456789012345678", "type": 1, "allow": str(allow), "deny": str(1 << 65)}
    assert PermissionOverwrite.from_snapshot(snapshot) == overwrite

def test_permission_overwrite_from_sparse_snapshot():
    restored = PermissionOverwrite.from_snapshot({"id": 5})
    assert restored == PermissionOverwrite(id="5", type=0, allow=0, deny=0)

def test_warning_thresholds_are_ordered():
    assert [w.threshold_days for w in WarningType] == [7.0, 3.0, 1.0, 0.5]
    assert set(WARNING_THRESHOLDS) == set(WarningType)

def test_detected_resource_dedup_key_prefers_url():
    link = DetectedResource(type=ResourceType.LINK, author_id="1", author_name="a", message_id="m",
                            url="https://x.dev", content="ignored")
    pin = DetectedResource(type=ResourceType.PIN, author_id="1", author_name="a", message_id="m",
                           content="read me")
    assert link.dedup_key == (ResourceType.LINK, "https://x.dev")
    assert pin.dedup_key == (ResourceType.PIN, "read me")

@pytest.mark.parametrize("exc,code", [
    (ArchivemindError("x"), ErrorCode.UNEXPECTED),
    (NotFoundError("x"), ErrorCode.CHANNEL_NOT_FOUND),
    (AlreadyArchivedError("x"), ErrorCode.ALREADY_ARCHIVED),
    (PermissionDeniedError("x"), ErrorCode.PERMISSION_DENIED),
    (RateLimitedError(retry_after=2.0), ErrorCode.RATE_LIMITED),
    (AmbiguousMatchError("x", candidates=[{"id": 1}]), ErrorCode.AMBIGUOUS_MATCH),
])
def test_errors_carry_codes(exc, code):
    assert exc.code is code
    assert isinstance(exc, ArchivemindError)

def test_rate_limited_keeps_retry_after():
    assert RateLimitedError(retry_after=2.5).retry_after == 2.5

def test_result_to_dict_flattens_error_code():
    failed = RestoreResult.fail(ErrorCode.AMBIGUOUS_MATCH, "pick one", candidates=[{"archived_channel_id": 1}])
    data = failed.to_dict()
    assert data["success"] is False
    assert data["error"] == "AMBIGUOUS_MATCH"
    assert data["candidates"] == [{"archived_channel_id": 1}]

    ok = ArchiveResult(success=True, archived_channel_id=3, resource_count=2, deleted=True).to_dict()
    assert ok["error"] is None
    assert ok["deleted"] is True

def test_forget_result_defaults():
    result = ForgetResult(success=True)
    assert (result.deleted_resources, result.deleted_warnings, result.candidates) == (0, 0, [])
