import unittest
from datetime import datetime, timedelta, timezone

from kanban_md.core.claims import Caller, apply_claim, authorize, claim_remaining, is_active_claim
from kanban_md.core.errors import ErrorCode
from kanban_md.core.models import Task

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)
HOUR = timedelta(hours=1)


def _claimed(agent: str = "alice", minutes_ago: int = 10) -> Task:
    at = (NOW - timedelta(minutes=minutes_ago)).strftime("%Y-%m-%dT%H:%M:%SZ")
    return Task(id=1, title="t", status="todo", priority="medium", claimed_by=agent, claimed_at=at)


class TestIsActiveClaim(unittest.TestCase):
    def test_unclaimed(self) -> None:
        assert not is_active_claim(Task(id=1, title="t", status="todo", priority="low"), NOW, HOUR)

    def test_half_claim_is_inactive(self) -> None:
        t = _claimed()
        t.claimed_at = None
        assert not is_active_claim(t, NOW, HOUR)

    def test_active_and_expired(self) -> None:
        assert is_active_claim(_claimed(minutes_ago=59), NOW, HOUR)
        assert not is_active_claim(_claimed(minutes_ago=60), NOW, HOUR)

    def test_zero_timeout_never_expires(self) -> None:
        assert is_active_claim(_claimed(minutes_ago=10_000), NOW, timedelta(0))

    def test_remaining(self) -> None:
        assert claim_remaining(_claimed(minutes_ago=15), NOW, HOUR) == "0h 45m"


class TestAuthorize(unittest.TestCase):
    def test_no_claim_no_flags(self) -> None:
        t = Task(id=1, title="t", status="todo", priority="low")
        assert authorize(t, Caller(), NOW, HOUR).is_ok()

    def test_active_claim_blocks_others(self) -> None:
        err = authorize(_claimed(), Caller(), NOW, HOUR).unwrap_err()
        assert err.code == ErrorCode.TASK_CLAIMED
        assert err.details["claimed_by"] == "alice"
        assert err.details["claimed_at"]
        assert authorize(_claimed(), Caller(claim="bob"), NOW, HOUR).unwrap_err().code == ErrorCode.TASK_CLAIMED

    def test_same_agent(self) -> None:
        assert authorize(_claimed(), Caller(claim="alice"), NOW, HOUR).is_ok()

    def test_force(self) -> None:
        assert authorize(_claimed(), Caller(force=True), NOW, HOUR).is_ok()

    def test_release_without_claim(self) -> None:
        err = authorize(_claimed(), Caller(release=True), NOW, HOUR).unwrap_err()
        assert err.code == ErrorCode.CLAIM_REQUIRED

    def test_expired_claim_does_not_block(self) -> None:
        assert authorize(_claimed(minutes_ago=120), Caller(), NOW, HOUR).is_ok()


class TestApplyClaim(unittest.TestCase):
    def test_sets_claim(self) -> None:
        t = Task(id=1, title="t", status="todo", priority="low")
        apply_claim(t, Caller(claim="bob"), NOW, HOUR)
        assert t.claimed_by == "bob"
        assert t.claimed_at == "2025-06-01T12:00:00Z"

    def test_refreshes_own_claim(self) -> None:
        t = _claimed(minutes_ago=30)
        apply_claim(t, Caller(claim="alice"), NOW, HOUR)
        assert t.claimed_at == "2025-06-01T12:00:00Z"

    def test_expired_claim_is_cleared(self) -> None:
        t = _claimed(minutes_ago=120)
        apply_claim(t, Caller(), NOW, HOUR)
        assert t.claimed_by == ""
        assert t.claimed_at is None

    def test_force_leaves_active_claim(self) -> None:
        t = _claimed()
        apply_claim(t, Caller(force=True), NOW, HOUR)
        assert t.claimed_by == "alice"

    def test_release(self) -> None:
        t = _claimed()
        apply_claim(t, Caller(claim="alice", release=True), NOW, HOUR)
        assert t.claimed_by == ""
        assert t.claimed_at is None
