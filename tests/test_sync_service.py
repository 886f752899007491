"""Tests for LinkSyncService."""

from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from payback.config import Settings
from payback.failures import LinkFailureTracker
from payback.models import AccountFriend, GroupMember
from payback.reconciler import LinkStateReconciler
from payback.service import LinkSyncService
from payback.store import AppStore


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return AppStore(current_user=GroupMember(name="Me"))


@pytest.fixture
def linked_friend():
    return AccountFriend(
        member_id=uuid4(),
        name="Alex",
        has_linked_account=True,
        linked_account_id="acc-alex",
        linked_account_email="alex@example.com",
    )


def make_service(store, clock, remote=None, resync=None, max_retries=5):
    fetch = MagicMock(return_value=remote if remote is not None else [])
    return LinkSyncService(
        store=store,
        fetch_remote_friends=fetch,
        resync=resync,
        reconciler=LinkStateReconciler(cooldown_seconds=300, clock=clock),
        failure_tracker=LinkFailureTracker(),
        max_retries=max_retries,
    )


class TestReconcileLinkState:
    """Tests for reconcile_link_state."""

    def test_updates_store_with_remote_state(self, store, clock, linked_friend):
        store.friends.append(linked_friend.model_copy(update={"has_linked_account": False}))
        service = make_service(store, clock, remote=[linked_friend])

        assert service.reconcile_link_state() is True
        assert store.friends == [linked_friend]

    def test_respects_cooldown(self, store, clock):
        service = make_service(store, clock)

        assert service.reconcile_link_state() is True
        assert service.reconcile_link_state() is False
        assert service.fetch_remote_friends.call_count == 1

        clock.now += 300
        assert service.reconcile_link_state() is True

    def test_force_ignores_cooldown(self, store, clock):
        service = make_service(store, clock)

        service.reconcile_link_state()
        assert service.reconcile_link_state(force=True) is True

    def test_fetch_failure_keeps_local_state(self, store, clock, linked_friend):
        store.friends.append(linked_friend)
        service = make_service(store, clock)
        service.fetch_remote_friends.side_effect = ConnectionError("offline")

        assert service.reconcile_link_state() is False
        assert store.friends == [linked_friend]

    def test_network_recovery_bypasses_cooldown(self, store, clock):
        service = make_service(store, clock)
        service.reconcile_link_state()

        assert service.reconcile_after_network_recovery() is True
        assert service.fetch_remote_friends.call_count == 2


class TestRetryFailedLinkOperations:
    """Tests for retry_failed_link_operations."""

    def test_successful_resync_resolves(self, store, clock, linked_friend):
        store.friends.append(linked_friend)
        resync = MagicMock()
        service = make_service(store, clock, resync=resync)
        service.record_link_failure(
            linked_friend.member_id, "acc-alex", "alex@example.com", "timeout"
        )

        assert service.retry_failed_link_operations() == 1
        resync.assert_called_once_with(linked_friend.member_id)
        assert len(service.failure_tracker) == 0

    def test_failed_resync_bumps_retry_count(self, store, clock, linked_friend):
        store.friends.append(linked_friend)
        resync = MagicMock(side_effect=RuntimeError("still down"))
        service = make_service(store, clock, resync=resync)
        service.record_link_failure(
            linked_friend.member_id, "acc-alex", "alex@example.com", "timeout"
        )

        assert service.retry_failed_link_operations() == 0

        pending = service.failure_tracker.get_pending_failures()
        assert pending[0].retry_count == 2
        assert pending[0].failure_reason == "still down"

    def test_invalid_link_is_dropped(self, store, clock):
        resync = MagicMock()
        service = make_service(store, clock, resync=resync)
        service.record_link_failure(uuid4(), "acc-x", "x@example.com", "timeout")

        assert service.retry_failed_link_operations() == 1
        resync.assert_not_called()
        assert len(service.failure_tracker) == 0

    def test_count_includes_dropped_failures(self, store, clock, linked_friend):
        """Resynced and dropped failures both count as cleared."""
        store.friends.append(linked_friend)
        resync = MagicMock()
        service = make_service(store, clock, resync=resync)
        service.record_link_failure(
            linked_friend.member_id, "acc-alex", "alex@example.com", "timeout"
        )
        service.record_link_failure(uuid4(), "acc-x", "x@example.com", "timeout")

        assert service.retry_failed_link_operations() == 2
        resync.assert_called_once_with(linked_friend.member_id)
        assert len(service.failure_tracker) == 0

    def test_exhausted_retries_are_skipped(self, store, clock, linked_friend):
        store.friends.append(linked_friend)
        resync = MagicMock()
        service = make_service(store, clock, resync=resync, max_retries=2)
        for _ in range(2):
            service.record_link_failure(
                linked_friend.member_id, "acc-alex", "alex@example.com", "timeout"
            )

        assert service.retry_failed_link_operations() == 0
        resync.assert_not_called()
        assert len(service.failure_tracker) == 1

    def test_no_failures(self, store, clock):
        service = make_service(store, clock)

        assert service.retry_failed_link_operations() == 0


class TestFromSettings:
    def test_uses_configured_limits(self, store, tmp_path):
        settings = Settings(
            database_path=tmp_path / "payback.db",
            reconcile_cooldown_seconds=60,
            link_failure_retention_seconds=120,
            max_link_retries=3,
        )

        service = LinkSyncService.from_settings(settings, store, lambda: [])

        assert service.reconciler.cooldown_seconds == 60
        assert service.failure_tracker.retention.total_seconds() == 120
        assert service.max_retries == 3
