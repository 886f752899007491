"""Balance computation over groups and expenses."""

from collections.abc import Collection, Iterable
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from .models import Expense, SpendingGroup

ZERO = Decimal("0")


def to_cents(amount: Decimal) -> int:
    """
    Convert Decimal dollars to integer cents.
    Uses ROUND_HALF_UP for consistency.

    Args:
        amount: Dollar amount as Decimal

    Returns:
        Amount in cents (integer)
    """
    cents = amount * 100
    return int(cents.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _as_id_set(current_user_id: UUID | Collection[UUID]) -> set[UUID]:
    if isinstance(current_user_id, UUID):
        return {current_user_id}
    return set(current_user_id)


def net_balance(
    current_user_id: UUID | Collection[UUID],
    group: SpendingGroup,
    expenses: Iterable[Expense],
) -> Decimal:
    """
    Compute the current user's net position within one group.

    If the user paid an expense, every other member's unsettled split is
    owed to them. If someone else paid, the user's own unsettled split is
    owed by them. Settled splits never count, whatever the expense-level
    flag says.

    Args:
        current_user_id: The user's member id, or all ids that denote the user
        group: The group to compute for
        expenses: Expenses to consider (only those of this group are used)

    Returns:
        Positive when the user is owed money, negative when they owe
    """
    user_ids = _as_id_set(current_user_id)
    owed_to_user = ZERO
    owed_by_user = ZERO

    for expense in expenses:
        if expense.group_id != group.id:
            continue

        if expense.paid_by_member_id in user_ids:
            for split in expense.splits:
                if split.member_id not in user_ids and not split.is_settled:
                    owed_to_user += split.amount
        else:
            own_split = next(
                (s for s in expense.splits if s.member_id in user_ids), None
            )
            if own_split is not None and not own_split.is_settled:
                owed_by_user += own_split.amount

    return owed_to_user - owed_by_user


def overall_net_balance(
    current_user_id: UUID | Collection[UUID],
    groups: Iterable[SpendingGroup],
    expenses: Iterable[Expense],
) -> Decimal:
    """
    Sum net balances over every group the current user belongs to.

    Direct and debug groups count exactly like ordinary groups.
    """
    user_ids = _as_id_set(current_user_id)
    expense_list = list(expenses)
    total = ZERO
    for group in groups:
        if not any(group.has_member(uid) for uid in user_ids):
            continue
        total += net_balance(user_ids, group, expense_list)
    return total


def member_balances(
    group: SpendingGroup, expenses: Iterable[Expense]
) -> dict[UUID, Decimal]:
    """
    Net position of every member in a group from unsettled splits.

    Payers are credited with the unsettled splits of other members and
    those members are debited by the same amount, so the values sum to zero.
    Members that only appear in expenses are included as well.
    """
    balances: dict[UUID, Decimal] = {member.id: ZERO for member in group.members}
    for expense in expenses:
        if expense.group_id != group.id:
            continue
        payer = expense.paid_by_member_id
        for split in expense.unsettled_splits:
            if split.member_id == payer:
                continue
            balances[payer] = balances.get(payer, ZERO) + split.amount
            balances[split.member_id] = (
                balances.get(split.member_id, ZERO) - split.amount
            )
    return balances
