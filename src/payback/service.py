"""Service layer that keeps the friend roster's link state in sync.

Composes the reconciler, the failure tracker and the store around a remote
friend source. The remote source and the resync step are injected callables
so the service itself performs no I/O.
"""

import logging
from collections.abc import Callable
from uuid import UUID

from .config import Settings
from .failures import LinkFailureTracker
from .models import AccountFriend
from .reconciler import LinkStateReconciler
from .store import AppStore

logger = logging.getLogger(__name__)

FriendSource = Callable[[], list[AccountFriend]]
Resync = Callable[[UUID], None]


class LinkSyncService:
    """Reconciles link state and retries failed link operations."""

    def __init__(
        self,
        store: AppStore,
        fetch_remote_friends: FriendSource,
        resync: Resync | None = None,
        reconciler: LinkStateReconciler | None = None,
        failure_tracker: LinkFailureTracker | None = None,
        max_retries: int = 5,
    ):
        """Initialize the link sync service."""
        self.store = store
        self.fetch_remote_friends = fetch_remote_friends
        self.resync = resync
        self.reconciler = reconciler or LinkStateReconciler()
        self.failure_tracker = failure_tracker or LinkFailureTracker()
        self.max_retries = max_retries

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: AppStore,
        fetch_remote_friends: FriendSource,
        resync: Resync | None = None,
    ) -> "LinkSyncService":
        return cls(
            store=store,
            fetch_remote_friends=fetch_remote_friends,
            resync=resync,
            reconciler=LinkStateReconciler(
                cooldown_seconds=settings.reconcile_cooldown_seconds
            ),
            failure_tracker=LinkFailureTracker(
                retention_seconds=settings.link_failure_retention_seconds
            ),
            max_retries=settings.max_link_retries,
        )

    def reconcile_link_state(self, force: bool = False) -> bool:
        """
        Reconcile the store's friends against the remote roster.

        Args:
            force: Ignore the reconciliation cool-down

        Returns:
            True if reconciliation ran, False if skipped or the fetch failed
        """
        if not force and not self.reconciler.should_reconcile():
            logger.debug("Skipping reconciliation - too soon since last check")
            return False

        try:
            remote_friends = self.fetch_remote_friends()
        except Exception as e:
            logger.warning(f"Failed to fetch remote friends: {e}")
            return False

        reconciled = self.reconciler.reconcile(self.store.friends, remote_friends)
        if reconciled != self.store.friends:
            logger.info(f"Reconciliation updated friend roster ({len(reconciled)} friends)")
            self.store.update_friends(reconciled)

        self.retry_failed_link_operations()
        return True

    def record_link_failure(
        self, member_id: UUID, account_id: str, account_email: str, reason: str
    ):
        """Record a link operation that did not take effect."""
        self.failure_tracker.record_failure(
            member_id=member_id,
            account_id=account_id,
            account_email=account_email,
            reason=reason,
        )

    def retry_failed_link_operations(self) -> int:
        """
        Retry pending link failures.

        Failures whose link is no longer reflected locally are dropped.
        Others are handed to the resync callable; a failing resync is
        recorded again so its retry count grows.

        Returns:
            Number of failures cleared, counting both successful resyncs and
            failures dropped because their link is no longer valid
        """
        failures = self.failure_tracker.get_pending_failures()
        if not failures:
            return 0

        logger.info(f"Retrying {len(failures)} failed link operation(s)")
        resolved = 0

        for failure in failures:
            if failure.retry_count >= self.max_retries:
                logger.warning(
                    f"Skipping retry for member {failure.member_id} - too many attempts"
                )
                continue

            is_valid = self.reconciler.validate_link_completion(
                failure.member_id, failure.account_id, self.store.friends
            )
            if not is_valid:
                logger.info(
                    f"Link no longer valid for member {failure.member_id} - dropping"
                )
                self.failure_tracker.mark_resolved(failure.member_id)
                resolved += 1
                continue

            if self.resync is None:
                continue

            try:
                self.resync(failure.member_id)
            except Exception as e:
                logger.warning(f"Retry failed for member {failure.member_id}: {e}")
                self.failure_tracker.record_failure(
                    member_id=failure.member_id,
                    account_id=failure.account_id,
                    account_email=failure.account_email,
                    reason=str(e),
                )
                continue

            self.failure_tracker.mark_resolved(failure.member_id)
            resolved += 1

        return resolved

    def reconcile_after_network_recovery(self) -> bool:
        """Invalidate the cool-down and reconcile immediately."""
        logger.info("Network recovered - triggering link state reconciliation")
        self.reconciler.invalidate()
        return self.reconcile_link_state()
