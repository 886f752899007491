"""Link state reconciliation between local and remote friend rosters."""

import logging
import threading
import time
from collections.abc import Callable, Iterable
from uuid import UUID

from .models import AccountFriend

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN_SECONDS = 300.0


def friend_sort_key(friend: AccountFriend) -> tuple[str, str]:
    """Ascending, case-insensitive name order with the raw name as tie-breaker."""
    return (friend.name.casefold(), friend.name)


def _link_state_differs(local: AccountFriend, remote: AccountFriend) -> bool:
    return (
        local.has_linked_account != remote.has_linked_account
        or local.linked_account_id != remote.linked_account_id
        or local.linked_account_email != remote.linked_account_email
    )


class LinkStateReconciler:
    """
    Merges local and remote friend lists into one authoritative roster.

    The backend is the source of truth for cross-device link status, so when
    a member id appears on both sides the remote record replaces the local
    one entirely. A cool-down after each reconcile throttles repeated work
    against the remote source. Every public method runs under one lock.
    """

    def __init__(
        self,
        cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the reconciler."""
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._last_reconciled_at: float | None = None

    def reconcile(
        self,
        local_friends: Iterable[AccountFriend],
        remote_friends: Iterable[AccountFriend],
    ) -> list[AccountFriend]:
        """
        Reconcile local friends with the remote roster.

        Args:
            local_friends: Current local friend list
            remote_friends: Friend list from the backend

        Returns:
            Merged friends sorted by name
        """
        with self._lock:
            reconciled: dict[UUID, AccountFriend] = {}
            for friend in local_friends:
                reconciled[friend.member_id] = friend

            for remote in remote_friends:
                local = reconciled.get(remote.member_id)
                if local is not None and _link_state_differs(local, remote):
                    logger.debug(
                        f"Link state inconsistency for member {remote.member_id}: "
                        f"local linked={local.has_linked_account} "
                        f"id={local.linked_account_id}, "
                        f"remote linked={remote.has_linked_account} "
                        f"id={remote.linked_account_id}"
                    )
                reconciled[remote.member_id] = remote

            self._last_reconciled_at = self._clock()

            return sorted(reconciled.values(), key=friend_sort_key)

    def should_reconcile(self) -> bool:
        """Check whether the cool-down since the last reconcile has elapsed."""
        with self._lock:
            if self._last_reconciled_at is None:
                return True
            elapsed = self._clock() - self._last_reconciled_at
            return elapsed >= self.cooldown_seconds

    def invalidate(self):
        """Force reconciliation on the next check."""
        with self._lock:
            self._last_reconciled_at = None

    def validate_link_completion(
        self,
        member_id: UUID,
        account_id: str,
        friends: Iterable[AccountFriend],
    ) -> bool:
        """
        Confirm that a linking operation is reflected in the friend list.

        Args:
            member_id: The member id that was linked
            account_id: The account id it was linked to
            friends: Current friend list

        Returns:
            True if the friend exists, is linked and points at account_id
        """
        with self._lock:
            friend = next((f for f in friends if f.member_id == member_id), None)
            if friend is None:
                logger.debug(f"Link validation failed: no friend for member {member_id}")
                return False

            is_valid = (
                friend.has_linked_account and friend.linked_account_id == account_id
            )
            if not is_valid:
                logger.debug(
                    f"Link validation failed for member {member_id}: "
                    f"expected account {account_id}, "
                    f"got linked={friend.has_linked_account} "
                    f"id={friend.linked_account_id}"
                )
            return is_valid
