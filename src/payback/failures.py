"""Bookkeeping for account-link failures awaiting retry."""

import logging
import threading
from collections.abc import Callable
from datetime import datetime, timedelta
from uuid import UUID

from .models import LinkFailureRecord

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_SECONDS = 3600.0


class LinkFailureTracker:
    """
    Registry of failed link operations, one entry per member id.

    Pure bookkeeping: retry scheduling lives with the caller. Every
    operation is a critical section guarded by a single lock.
    """

    def __init__(
        self,
        retention_seconds: float = DEFAULT_RETENTION_SECONDS,
        now: Callable[[], datetime] = datetime.now,
    ):
        """Initialize the tracker."""
        self.retention = timedelta(seconds=retention_seconds)
        self._now = now
        self._lock = threading.Lock()
        self._failures: dict[UUID, LinkFailureRecord] = {}

    def record_failure(
        self,
        member_id: UUID,
        account_id: str,
        account_email: str,
        reason: str,
    ) -> LinkFailureRecord:
        """
        Record a link failure for a member.

        Repeated failures for the same member bump the retry count and
        replace the account details and reason with the latest ones.
        """
        with self._lock:
            existing = self._failures.get(member_id)
            if existing is None:
                record = LinkFailureRecord(
                    member_id=member_id,
                    account_id=account_id,
                    account_email=account_email,
                    failure_reason=reason,
                    retry_count=1,
                    failure_date=self._now(),
                )
            else:
                record = existing.model_copy(
                    update={
                        "account_id": account_id,
                        "account_email": account_email,
                        "failure_reason": reason,
                        "retry_count": existing.retry_count + 1,
                        "failure_date": self._now(),
                    }
                )
            self._failures[member_id] = record

        logger.info(
            f"Recorded link failure for member {member_id} "
            f"(attempt {record.retry_count}): {reason}"
        )
        return record

    def get_pending_failures(self) -> list[LinkFailureRecord]:
        """Return current failures, dropping those past the retention window."""
        with self._lock:
            cutoff = self._now() - self.retention
            expired = [
                member_id
                for member_id, record in self._failures.items()
                if record.failure_date <= cutoff
            ]
            for member_id in expired:
                del self._failures[member_id]
            if expired:
                logger.debug(f"Pruned {len(expired)} expired link failure(s)")
            return list(self._failures.values())

    def mark_resolved(self, member_id: UUID):
        """Remove the failure for a member, if any."""
        with self._lock:
            removed = self._failures.pop(member_id, None)
        if removed is not None:
            logger.info(f"Marked link failure as resolved for member {member_id}")

    def clear_all(self):
        """Clear all failure records."""
        with self._lock:
            self._failures.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._failures)
