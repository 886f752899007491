"""Export of app data to the portable PayBack text format."""

from collections.abc import Iterable
from datetime import UTC, datetime
from decimal import Decimal

from .importer import END_MARKER, HEADER_MARKER
from .models import AccountFriend, Expense, GroupMember, SpendingGroup

CENT = Decimal("0.01")


def escape_csv(value: str) -> str:
    """Quote a field if it contains a comma, newline or quote."""
    if any(ch in value for ch in (",", "\n", "\r", '"')):
        return '"' + value.replace('"', '""') + '"'
    return value


def format_timestamp(value: datetime) -> str:
    """ISO-8601 timestamp; aware values are written in UTC with a Z suffix."""
    if value.tzinfo is None:
        return value.isoformat(timespec="seconds")
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def format_amount(amount: Decimal) -> str:
    return f"{amount.quantize(CENT):.2f}"


def _bool(value: bool) -> str:
    return "true" if value else "false"


def _row(*fields: str) -> str:
    return ",".join(fields)


def export_all_data(
    groups: Iterable[SpendingGroup],
    expenses: Iterable[Expense],
    friends: Iterable[AccountFriend],
    current_user: GroupMember,
    account_email: str,
    exported_at: datetime | None = None,
) -> str:
    """
    Render all app data as export text.

    Zero-amount splits and subexpenses are left out.

    Args:
        groups: All spending groups
        expenses: All expenses
        friends: Account friend roster
        current_user: The current user's member record
        account_email: The current user's account email
        exported_at: Export timestamp (defaults to now, UTC)

    Returns:
        Export text including the envelope markers
    """
    groups = list(groups)
    expenses = list(expenses)
    exported_at = exported_at or datetime.now(UTC)

    lines = [
        HEADER_MARKER,
        f"EXPORTED_AT: {format_timestamp(exported_at)}",
        f"ACCOUNT_EMAIL: {account_email}",
        f"CURRENT_USER_ID: {current_user.id}",
        f"CURRENT_USER_NAME: {escape_csv(current_user.name)}",
        "",
    ]

    lines.append("[FRIENDS]")
    lines.append(
        "# member_id,name,nickname,has_linked_account,"
        "linked_account_id,linked_account_email"
    )
    for friend in friends:
        lines.append(
            _row(
                str(friend.member_id),
                escape_csv(friend.name),
                escape_csv(friend.nickname or ""),
                _bool(friend.has_linked_account),
                escape_csv(friend.linked_account_id or ""),
                escape_csv(friend.linked_account_email or ""),
            )
        )
    lines.append("")

    lines.append("[GROUPS]")
    lines.append("# group_id,name,is_direct,is_debug,created_at,member_count")
    for group in groups:
        lines.append(
            _row(
                str(group.id),
                escape_csv(group.name),
                _bool(group.is_direct),
                _bool(group.is_debug),
                format_timestamp(group.created_at),
                str(len(group.members)),
            )
        )
    lines.append("")

    lines.append("[GROUP_MEMBERS]")
    lines.append("# group_id,member_id,member_name")
    for group in groups:
        for member in group.members:
            lines.append(_row(str(group.id), str(member.id), escape_csv(member.name)))
    lines.append("")

    lines.append("[EXPENSES]")
    lines.append(
        "# expense_id,group_id,description,date,total_amount,"
        "paid_by_member_id,is_settled,is_debug"
    )
    for expense in expenses:
        lines.append(
            _row(
                str(expense.id),
                str(expense.group_id),
                escape_csv(expense.description),
                format_timestamp(expense.date),
                format_amount(expense.total_amount),
                str(expense.paid_by_member_id),
                _bool(expense.is_settled),
                _bool(expense.is_debug),
            )
        )
    lines.append("")

    lines.append("[EXPENSE_INVOLVED_MEMBERS]")
    lines.append("# expense_id,member_id")
    for expense in expenses:
        for member_id in expense.involved_member_ids:
            lines.append(_row(str(expense.id), str(member_id)))
    lines.append("")

    lines.append("[EXPENSE_SPLITS]")
    lines.append("# expense_id,split_id,member_id,amount,is_settled")
    for expense in expenses:
        for split in expense.splits:
            if split.amount.quantize(CENT) == 0:
                continue
            lines.append(
                _row(
                    str(expense.id),
                    str(split.id),
                    str(split.member_id),
                    format_amount(split.amount),
                    _bool(split.is_settled),
                )
            )
    lines.append("")

    lines.append("[EXPENSE_SUBEXPENSES]")
    lines.append("# expense_id,subexpense_id,amount")
    for expense in expenses:
        for sub in expense.subexpenses or []:
            if sub.amount.quantize(CENT) == 0:
                continue
            lines.append(
                _row(str(expense.id), str(sub.id), format_amount(sub.amount))
            )
    lines.append("")

    lines.append("[PARTICIPANT_NAMES]")
    lines.append("# expense_id,member_id,display_name")
    for expense in expenses:
        for member_id, name in (expense.participant_names or {}).items():
            lines.append(_row(str(expense.id), str(member_id), escape_csv(name)))
    lines.append("")

    lines.append(END_MARKER)
    return "\n".join(lines)


def suggested_filename(now: datetime | None = None) -> str:
    """Filename for an export written now."""
    now = now or datetime.now()
    return f"PayBack_Export_{now.strftime('%Y-%m-%d_%H%M%S')}.csv"
