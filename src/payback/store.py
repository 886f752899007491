"""In-memory aggregate root for groups, expenses and friends."""

import logging
from collections.abc import Iterable
from decimal import Decimal
from uuid import UUID

from .db import Database
from .ledger import net_balance, overall_net_balance
from .models import (
    AccountFriend,
    Expense,
    GroupMember,
    SpendingGroup,
    StoreSnapshot,
)

logger = logging.getLogger(__name__)


class AppStore:
    """
    Single authoritative collection of ledger entities.

    Collections preserve insertion order. Mutators apply synchronously, so a
    read right after a write observes it. When a database is attached every
    mutation is persisted, except while ``is_importing`` is set; the import
    persists once at the end instead.
    """

    def __init__(
        self,
        current_user: GroupMember | None = None,
        database: Database | None = None,
    ):
        """Initialize an empty store."""
        self.current_user = current_user or GroupMember(name="Me")
        self.db = database
        self.groups: list[SpendingGroup] = []
        self.expenses: list[Expense] = []
        self.friends: list[AccountFriend] = []
        self.equivalent_member_ids: list[UUID] = []
        self.is_importing = False

    # ========================================================================
    # Identity
    # ========================================================================

    @property
    def current_user_member_ids(self) -> set[UUID]:
        """All member ids that denote the current user."""
        return {self.current_user.id, *self.equivalent_member_ids}

    def is_current_user(self, member: GroupMember) -> bool:
        ids = self.current_user_member_ids
        return member.id in ids or member.lookup_id in ids

    # ========================================================================
    # Groups
    # ========================================================================

    def _member_with_name(self, name: str) -> GroupMember:
        """Find or create a member with a consistent id for a name."""
        for friend in self.friends:
            if friend.name.casefold() == name.casefold():
                return GroupMember(id=friend.member_id, name=friend.name)

        for group in self.groups:
            for member in group.members:
                if member.name == name and not self.is_current_user(member):
                    return member

        return GroupMember(name=name)

    def add_group(self, name: str, member_names: Iterable[str]) -> SpendingGroup:
        """Create a group with the current user plus the named members."""
        members = [self.current_user]
        for member_name in member_names:
            member = self._member_with_name(member_name)
            if member not in members:
                members.append(member)

        group = SpendingGroup(name=name, members=members)
        self.groups.append(group)
        logger.info(f"Added group '{name}' with {len(members)} members")
        self.persist()
        return group

    def add_existing_group(self, group: SpendingGroup) -> bool:
        """
        Add a fully formed group.

        Returns:
            False if a group with the same id already exists
        """
        if any(existing.id == group.id for existing in self.groups):
            return False

        if not group.is_direct and self._looks_direct(group):
            group = group.model_copy(update={"is_direct": True})

        self.groups.append(group)
        self.persist()
        return True

    def _looks_direct(self, group: SpendingGroup) -> bool:
        """Two members, one of them the current user."""
        return len(group.members) == 2 and any(
            self.is_current_user(member) for member in group.members
        )

    def group(self, group_id: UUID) -> SpendingGroup | None:
        return next((g for g in self.groups if g.id == group_id), None)

    def direct_group(self, member_id: UUID) -> SpendingGroup | None:
        """Find the direct group between the current user and a member."""
        for group in self.groups:
            if (
                group.is_direct
                and len(group.members) == 2
                and group.has_member(member_id)
                and any(self.is_current_user(m) for m in group.members)
            ):
                return group
        return None

    # ========================================================================
    # Friends
    # ========================================================================

    def add_imported_friend(self, friend: AccountFriend) -> bool:
        """
        Add a friend from an import.

        Returns:
            False if a friend with the same member id already exists
        """
        if any(existing.member_id == friend.member_id for existing in self.friends):
            return False
        self.friends.append(friend)
        self.persist()
        return True

    def update_friends(self, friends: Iterable[AccountFriend]):
        """Replace the friend roster."""
        self.friends = list(friends)
        self.persist()

    def friend(self, member_id: UUID) -> AccountFriend | None:
        return next((f for f in self.friends if f.member_id == member_id), None)

    def friend_for_member(self, member: GroupMember) -> AccountFriend | None:
        """Look up the roster entry for a group member via its lookup id."""
        return self.friend(member.lookup_id)

    # ========================================================================
    # Expenses
    # ========================================================================

    def add_expense(self, expense: Expense) -> bool:
        """
        Add an expense.

        Returns:
            False if an expense with the same id already exists
        """
        if any(existing.id == expense.id for existing in self.expenses):
            return False
        self.expenses.append(expense)
        self.persist()
        return True

    def expenses_in(self, group_id: UUID) -> list[Expense]:
        return [e for e in self.expenses if e.group_id == group_id]

    def _replace_expense(self, expense: Expense):
        for idx, existing in enumerate(self.expenses):
            if existing.id == expense.id:
                self.expenses[idx] = expense
                return

    def mark_expense_as_settled(self, expense_id: UUID) -> Expense | None:
        """Settle an expense and every one of its splits."""
        expense = next((e for e in self.expenses if e.id == expense_id), None)
        if expense is None:
            return None

        updated = expense.model_copy(
            update={
                "is_settled": True,
                "splits": [
                    split.model_copy(update={"is_settled": True})
                    for split in expense.splits
                ],
            }
        )
        self._replace_expense(updated)
        self.persist()
        return updated

    def settle_expense_for_member(
        self, expense_id: UUID, member_id: UUID
    ) -> Expense | None:
        """Settle one member's split; the expense is settled once all are."""
        expense = next((e for e in self.expenses if e.id == expense_id), None)
        if expense is None:
            return None

        splits = [
            split.model_copy(update={"is_settled": True})
            if split.member_id == member_id
            else split
            for split in expense.splits
        ]
        updated = expense.model_copy(
            update={
                "splits": splits,
                "is_settled": all(split.is_settled for split in splits),
            }
        )
        self._replace_expense(updated)
        logger.debug(
            f"Settled split for member {member_id} on expense {expense_id} "
            f"(fully settled: {updated.is_settled})"
        )
        self.persist()
        return updated

    # ========================================================================
    # Balances
    # ========================================================================

    def net_balance(self, group: SpendingGroup) -> Decimal:
        return net_balance(
            self.current_user_member_ids, group, self.expenses_in(group.id)
        )

    def overall_net_balance(self) -> Decimal:
        return overall_net_balance(
            self.current_user_member_ids, self.groups, self.expenses
        )

    # ========================================================================
    # Persistence
    # ========================================================================

    def snapshot(self) -> StoreSnapshot:
        return StoreSnapshot(
            current_user=self.current_user,
            groups=list(self.groups),
            expenses=list(self.expenses),
            friends=list(self.friends),
            equivalent_member_ids=list(self.equivalent_member_ids),
        )

    @classmethod
    def from_snapshot(
        cls, snapshot: StoreSnapshot, database: Database | None = None
    ) -> "AppStore":
        store = cls(current_user=snapshot.current_user, database=database)
        store.groups = list(snapshot.groups)
        store.expenses = list(snapshot.expenses)
        store.friends = list(snapshot.friends)
        store.equivalent_member_ids = list(snapshot.equivalent_member_ids)
        return store

    @classmethod
    def load(cls, database: Database, current_user_name: str = "Me") -> "AppStore":
        """Load the persisted store, or start a fresh one."""
        snapshot = database.load_snapshot()
        if snapshot is None:
            return cls(current_user=GroupMember(name=current_user_name), database=database)
        return cls.from_snapshot(snapshot, database=database)

    def persist(self):
        """Save the current state if a database is attached."""
        if self.db is None or self.is_importing:
            return
        self.db.save_snapshot(self.snapshot())

    def clear_all_data(self):
        """Drop all groups, expenses and friends."""
        self.groups = []
        self.expenses = []
        self.friends = []
        self.persist()
