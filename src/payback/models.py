"""Pydantic domain models for PayBack."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

FRIEND_STATUS = "friend"

# ============================================================================
# Ledger Models
# ============================================================================


class GroupMember(BaseModel):
    """A member placed into a spending group.

    Identity is the ``id`` alone; the display name is not part of equality.
    ``linked_friend_id`` is a lookup-only back-reference to an
    ``AccountFriend.member_id`` for members whose group-local id diverged
    from the account-level one (e.g. after an import).
    """

    id: UUID = Field(default_factory=uuid4)
    name: str
    linked_friend_id: UUID | None = None

    @property
    def lookup_id(self) -> UUID:
        """Key used to find this member in the friend roster."""
        return self.linked_friend_id or self.id

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, GroupMember):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)


class SpendingGroup(BaseModel):
    """A group of members sharing expenses."""

    id: UUID = Field(default_factory=uuid4)
    name: str
    members: list[GroupMember] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)
    is_direct: bool = False  # exactly a 1:1 running balance
    is_debug: bool = False  # synthetic/test data, still counted in balances

    def has_member(self, member_id: UUID) -> bool:
        """Check membership by member id or linked friend id."""
        return any(
            member.id == member_id or member.lookup_id == member_id
            for member in self.members
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SpendingGroup):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)


class ExpenseSplit(BaseModel):
    """A single member's share of one expense."""

    id: UUID = Field(default_factory=uuid4)
    member_id: UUID
    amount: Decimal  # negative for refunds/reversals
    is_settled: bool = False


class Subexpense(BaseModel):
    """An itemised line making up part of an expense total."""

    id: UUID = Field(default_factory=uuid4)
    amount: Decimal


class Expense(BaseModel):
    """A shared expense within a group."""

    id: UUID = Field(default_factory=uuid4)
    group_id: UUID
    description: str
    date: datetime = Field(default_factory=datetime.now)
    total_amount: Decimal
    paid_by_member_id: UUID
    involved_member_ids: list[UUID] = Field(default_factory=list)
    splits: list[ExpenseSplit] = Field(default_factory=list)
    is_settled: bool = False  # informational; balances check each split
    participant_names: dict[UUID, str] | None = None  # display cache only
    is_debug: bool = False
    subexpenses: list[Subexpense] | None = None

    @property
    def all_splits_settled(self) -> bool:
        return all(split.is_settled for split in self.splits)

    @property
    def unsettled_splits(self) -> list[ExpenseSplit]:
        return [split for split in self.splits if not split.is_settled]

    @property
    def splits_total(self) -> Decimal:
        return sum((split.amount for split in self.splits), Decimal("0"))

    def split_for(self, member_id: UUID) -> ExpenseSplit | None:
        """Get the split for a specific member."""
        for split in self.splits:
            if split.member_id == member_id:
                return split
        return None

    def is_settled_for(self, member_id: UUID) -> bool:
        split = self.split_for(member_id)
        return split.is_settled if split else False


# ============================================================================
# Account Models
# ============================================================================


class AccountFriend(BaseModel):
    """A friend on the account-level roster."""

    member_id: UUID
    name: str
    nickname: str | None = None
    has_linked_account: bool = False
    linked_account_id: str | None = None  # only meaningful when linked
    linked_account_email: str | None = None
    profile_image_url: str | None = None
    profile_color_hex: str | None = None
    status: str | None = None

    @property
    def display_nickname(self) -> str | None:
        """
        Cleaned nickname, or None when it adds nothing over the name.

        Blank nicknames, quote-only placeholders and nicknames equal to the
        name (case-insensitive) are treated as absent.
        """
        if not self.nickname:
            return None
        nick = self.nickname.strip()
        if nick in ('""', "''"):
            return None
        if len(nick) >= 2 and nick[0] == nick[-1] and nick[0] in "\"'":
            nick = nick[1:-1].strip()
        if not nick or nick.casefold() == self.name.strip().casefold():
            return None
        return nick


class LinkFailureRecord(BaseModel):
    """A failed attempt to link a member to an account."""

    member_id: UUID
    account_id: str
    account_email: str
    failure_reason: str
    retry_count: int = 1
    failure_date: datetime = Field(default_factory=datetime.now)


# ============================================================================
# Persistence Models
# ============================================================================


class StoreSnapshot(BaseModel):
    """Serializable state of an AppStore."""

    current_user: GroupMember
    groups: list[SpendingGroup] = Field(default_factory=list)
    expenses: list[Expense] = Field(default_factory=list)
    friends: list[AccountFriend] = Field(default_factory=list)
    equivalent_member_ids: list[UUID] = Field(default_factory=list)
