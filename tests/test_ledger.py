"""Tests for group and overall balance computation."""

from decimal import Decimal
from uuid import uuid4

import pytest

from payback.ledger import member_balances, net_balance, overall_net_balance, to_cents
from payback.models import Expense, ExpenseSplit, GroupMember, SpendingGroup


@pytest.fixture
def me():
    return GroupMember(name="Me")


@pytest.fixture
def alex():
    return GroupMember(name="Alex")


@pytest.fixture
def group(me, alex):
    return SpendingGroup(name="Trip", members=[me, alex])


def make_expense(
    group: SpendingGroup,
    payer: GroupMember,
    shares: list[tuple[GroupMember, str, bool]],
    total: str = "100.00",
    is_settled: bool = False,
) -> Expense:
    """Build an expense with one split per (member, amount, settled) share."""
    return Expense(
        group_id=group.id,
        description="Test expense",
        total_amount=Decimal(total),
        paid_by_member_id=payer.id,
        involved_member_ids=[member.id for member, _, _ in shares],
        splits=[
            ExpenseSplit(member_id=member.id, amount=Decimal(amount), is_settled=settled)
            for member, amount, settled in shares
        ],
        is_settled=is_settled,
    )


class TestNetBalance:
    """Tests for net_balance."""

    def test_no_expenses_is_zero(self, me, group):
        """A group without expenses balances to zero."""
        assert net_balance(me.id, group, []) == Decimal("0")

    def test_user_paid_equal_split(self, me, alex, group):
        """Paying 100 split 50/50 means the other member owes 50."""
        expense = make_expense(
            group, me, [(me, "50.00", False), (alex, "50.00", False)]
        )

        assert net_balance(me.id, group, [expense]) == Decimal("50.00")

    def test_friend_paid_equal_split(self, me, alex, group):
        """When the friend pays, the user owes their own split."""
        expense = make_expense(
            group, alex, [(me, "50.00", False), (alex, "50.00", False)]
        )

        assert net_balance(me.id, group, [expense]) == Decimal("-50.00")

    def test_settled_splits_never_count(self, me, alex, group):
        """A settled split is ignored even if the expense itself is open."""
        expense = make_expense(
            group, me, [(me, "50.00", False), (alex, "50.00", True)]
        )

        assert net_balance(me.id, group, [expense]) == Decimal("0")

    def test_unsettled_split_in_settled_expense_counts(self, me, alex, group):
        """Only split-level flags matter, not the expense-level flag."""
        settled = make_expense(
            group,
            alex,
            [(me, "20.00", True), (alex, "20.00", True)],
            total="40.00",
            is_settled=True,
        )
        partially = make_expense(
            group,
            alex,
            [(me, "10.00", False), (alex, "10.00", True)],
            total="20.00",
            is_settled=True,
        )

        assert net_balance(me.id, group, [settled, partially]) == Decimal("-10.00")

    def test_expenses_of_other_groups_are_ignored(self, me, alex, group):
        """Expenses belonging to another group do not affect this one."""
        other = SpendingGroup(name="Other", members=[me, alex])
        expense = make_expense(
            other, me, [(me, "50.00", False), (alex, "50.00", False)]
        )

        assert net_balance(me.id, group, [expense]) == Decimal("0")

    def test_user_not_in_splits_is_zero(self, me, alex, group):
        """The user owes nothing for an expense that has no split for them."""
        third = GroupMember(name="Sam")
        expense = make_expense(
            group, alex, [(alex, "30.00", False), (third, "30.00", False)]
        )

        assert net_balance(me.id, group, [expense]) == Decimal("0")

    def test_equivalent_ids_denote_the_user(self, me, alex, group):
        """Any id in the user's id set counts as the user."""
        alias = uuid4()
        expense = Expense(
            group_id=group.id,
            description="Dinner",
            total_amount=Decimal("80.00"),
            paid_by_member_id=alias,
            splits=[
                ExpenseSplit(member_id=alias, amount=Decimal("40.00")),
                ExpenseSplit(member_id=alex.id, amount=Decimal("40.00")),
            ],
        )

        assert net_balance({me.id, alias}, group, [expense]) == Decimal("40.00")
        assert net_balance(me.id, group, [expense]) == Decimal("0")

    def test_refund_split_is_negative(self, me, alex, group):
        """Negative split amounts reduce what is owed."""
        expense = make_expense(
            group, me, [(me, "-5.00", False), (alex, "-5.00", False)], total="-10.00"
        )

        assert net_balance(me.id, group, [expense]) == Decimal("-5.00")


class TestOverallNetBalance:
    """Tests for overall_net_balance."""

    def test_sums_direct_and_regular_groups(self, me, alex, group):
        """Direct groups are included: +50 and -30 give +20."""
        direct = SpendingGroup(name="Alex", members=[me, alex], is_direct=True)
        expenses = [
            make_expense(group, me, [(me, "50.00", False), (alex, "50.00", False)]),
            make_expense(
                direct,
                alex,
                [(me, "30.00", False), (alex, "30.00", False)],
                total="60.00",
            ),
        ]

        assert net_balance(me.id, direct, expenses) == Decimal("-30.00")
        assert overall_net_balance(me.id, [group, direct], expenses) == Decimal(
            "20.00"
        )

    def test_skips_groups_without_the_user(self, me, alex, group):
        """Groups the user is not a member of do not contribute."""
        sam = GroupMember(name="Sam")
        foreign = SpendingGroup(name="Not mine", members=[alex, sam])
        expenses = [
            make_expense(group, me, [(me, "50.00", False), (alex, "50.00", False)]),
            make_expense(
                foreign, alex, [(alex, "10.00", False), (sam, "10.00", False)]
            ),
        ]

        assert overall_net_balance(me.id, [group, foreign], expenses) == Decimal(
            "50.00"
        )

    def test_debug_groups_count(self, me, alex):
        """Debug groups are still part of the overall balance."""
        debug = SpendingGroup(name="Debug", members=[me, alex], is_debug=True)
        expense = make_expense(
            debug, me, [(me, "12.50", False), (alex, "12.50", False)], total="25.00"
        )

        assert overall_net_balance(me.id, [debug], [expense]) == Decimal("12.50")

    def test_no_groups_is_zero(self, me):
        assert overall_net_balance(me.id, [], []) == Decimal("0")


class TestMemberBalances:
    """Tests for member_balances."""

    def test_balances_sum_to_zero(self, me, alex):
        sam = GroupMember(name="Sam")
        group = SpendingGroup(name="House", members=[me, alex, sam])
        expenses = [
            make_expense(
                group,
                me,
                [(me, "30.00", False), (alex, "30.00", False), (sam, "30.00", False)],
                total="90.00",
            ),
            make_expense(
                group, alex, [(me, "15.00", False), (alex, "15.00", False)], total="30.00"
            ),
        ]

        balances = member_balances(group, expenses)

        assert balances[me.id] == Decimal("45.00")
        assert balances[alex.id] == Decimal("-15.00")
        assert balances[sam.id] == Decimal("-30.00")
        assert sum(balances.values()) == Decimal("0")

    def test_settled_splits_are_skipped(self, me, alex, group):
        expense = make_expense(
            group, me, [(me, "50.00", False), (alex, "50.00", True)]
        )

        balances = member_balances(group, [expense])

        assert balances == {me.id: Decimal("0"), alex.id: Decimal("0")}


class TestToCents:
    """Tests for to_cents conversion."""

    def test_exact(self):
        assert to_cents(Decimal("12.34")) == 1234

    def test_rounds_half_up(self):
        assert to_cents(Decimal("0.125")) == 13
        assert to_cents(Decimal("-0.125")) == -13
