"""
Audit log diffing and the in-memory rate limiter.
"""
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

from models import AuditAction
from utils.audit import calculate_diff, create_audit_log, redact
from utils.rate_limiter import RateLimiter


class TestCalculateDiff:
    def test_changes(self):
        before = {"firstName": "Sam", "email": "sam@example.com", "updatedAt": "t1"}
        after = {"firstName": "Samuel", "mobile": "0412345678", "updatedAt": "t2"}
        assert calculate_diff(before, after) == {
            "added": {"mobile": "0412345678"},
            "removed": {"email": "sam@example.com"},
            "changed": {"firstName": {"from": "Sam", "to": "Samuel"}},
        }

    def test_only_timestamps_changed(self):
        assert calculate_diff({"updatedAt": "t1", "a": 1}, {"updatedAt": "t2", "a": 1}) == {}

    def test_missing_sides(self):
        assert calculate_diff({}, {}) == {}
        assert calculate_diff(None, {"a": 1}) == {"added": {"a": 1}, "removed": {}, "changed": {}}


class TestCreateAuditLog:
    @pytest.mark.asyncio
    async def test_diff_goes_into_metadata(self):
        db = MagicMock()
        db.audit_logs.insert_one = AsyncMock()
        with patch("utils.audit.database.get_db", return_value=db):
            audit_id = await create_audit_log(
                action=AuditAction.CLIENT_UPDATED,
                actor_id="user-1",
                before_state={"firstName": "Sam"},
                after_state={"firstName": "Samuel"},
            )
        assert audit_id
        doc = db.audit_logs.insert_one.call_args.args[0]
        assert doc["metadata"]["changes_count"] == 1
        assert isinstance(doc["timestamp"], str)

    @pytest.mark.asyncio
    async def test_credentials_are_redacted(self):
        db = MagicMock()
        db.audit_logs.insert_one = AsyncMock()
        with patch("utils.audit.database.get_db", return_value=db):
            await create_audit_log(
                action=AuditAction.EMAIL_INTEGRATION_UPDATED,
                before_state={"email": "a@b.co", "encryptedPassword": "abc"},
                after_state={"email": "c@d.co", "encryptedPassword": "xyz"},
            )
        doc = db.audit_logs.insert_one.call_args.args[0]
        assert doc["before_state"]["encryptedPassword"] == "***"
        assert doc["metadata"]["diff"] == {"changed": {"email": {"from": "a@b.co", "to": "c@d.co"}}}

    def test_redact_leaves_empty_secrets(self):
        assert redact({"_id": "oid", "password_hash": "", "name": "Alex"}) == {"password_hash": "", "name": "Alex"}
        assert redact(None) is None

    @pytest.mark.asyncio
    async def test_storage_failure_does_not_raise(self):
        db = MagicMock()
        db.audit_logs.insert_one = AsyncMock(side_effect=RuntimeError("mongo down"))
        with patch("utils.audit.database.get_db", return_value=db):
            assert await create_audit_log(action=AuditAction.USER_LOGIN, actor_id="user-1") == ""


class TestRateLimiter:
    @pytest.mark.asyncio
    async def test_blocks_after_max_attempts(self):
        limiter = RateLimiter()
        for _ in range(3):
            assert await limiter.check_rate_limit("login:1.2.3.4", 3, 15) == (True, None)
        allowed, message = await limiter.check_rate_limit("login:1.2.3.4", 3, 15)
        assert allowed is False
        assert message.startswith("Rate limit exceeded")

    @pytest.mark.asyncio
    async def test_keys_are_independent_and_reset(self):
        limiter = RateLimiter()
        await limiter.check_rate_limit("a", 1, 15)
        assert (await limiter.check_rate_limit("a", 1, 15))[0] is False
        assert (await limiter.check_rate_limit("b", 1, 15))[0] is True
        limiter.reset("a")
        assert (await limiter.check_rate_limit("a", 1, 15))[0] is True

    @pytest.mark.asyncio
    async def test_old_attempts_expire(self):
        limiter = RateLimiter()
        limiter.attempts["a"] = [datetime.now(timezone.utc) - timedelta(minutes=20)]
        assert (await limiter.check_rate_limit("a", 1, 15))[0] is True
        assert len(limiter.attempts["a"]) == 1
