"""Import of PayBack export text into an AppStore.

The export format is a plain-text envelope::

    ===PAYBACK_EXPORT===
    EXPORTED_AT: 2024-01-01T12:00:00Z
    ACCOUNT_EMAIL: me@example.com
    CURRENT_USER_ID: <uuid>
    CURRENT_USER_NAME: Me

    [FRIENDS]
    # member_id,name,nickname,has_linked_account,linked_account_id,linked_account_email
    ...
    ===END_PAYBACK_EXPORT===

Sections hold comma-separated rows with CSV quoting. Rows that fail to parse
are reported back as errors instead of aborting the import, and every apply
step is an idempotent upsert so re-importing the same text adds nothing.
"""

import csv
import logging
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from .exceptions import ImportFormatError, IncompatibleFormatError, RowParseError
from .models import (
    FRIEND_STATUS,
    AccountFriend,
    Expense,
    ExpenseSplit,
    GroupMember,
    SpendingGroup,
    Subexpense,
)
from .store import AppStore

logger = logging.getLogger(__name__)

HEADER_MARKER = "===PAYBACK_EXPORT==="
LEGACY_HEADER_MARKER = "===PAYBACK_EXPORT_V1==="
END_MARKER = "===END_PAYBACK_EXPORT==="

# Status values written by older exports; all collapse onto FRIEND_STATUS.
LEGACY_FRIEND_STATUSES = frozenset({"", "friend", "accepted", "peer", "linked"})


# ============================================================================
# Result types
# ============================================================================


@dataclass(frozen=True)
class ImportSummary:
    friends_added: int = 0
    groups_added: int = 0
    expenses_added: int = 0

    @property
    def total_items(self) -> int:
        return self.friends_added + self.groups_added + self.expenses_added

    @property
    def description(self) -> str:
        parts = []
        for count, noun in (
            (self.friends_added, "friend"),
            (self.groups_added, "group"),
            (self.expenses_added, "expense"),
        ):
            if count > 0:
                parts.append(f"{count} {noun}{'' if count == 1 else 's'}")
        if not parts:
            return "No new data imported"
        return "Added " + ", ".join(parts)


@dataclass(frozen=True)
class ImportConflict:
    """An imported friend whose name collides ambiguously with the roster."""

    import_member_id: UUID
    import_name: str
    candidates: tuple[AccountFriend, ...]

    @property
    def existing_friend(self) -> AccountFriend:
        return self.candidates[0]


@dataclass(frozen=True)
class CreateNew:
    """Resolve a conflict by adding the imported friend as a new identity."""


@dataclass(frozen=True)
class LinkToExisting:
    """Resolve a conflict by mapping the imported friend onto an existing one."""

    member_id: UUID


ImportResolution = CreateNew | LinkToExisting


@dataclass(frozen=True)
class Success:
    summary: ImportSummary


@dataclass(frozen=True)
class PartialSuccess:
    summary: ImportSummary
    errors: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class IncompatibleFormat:
    message: str


@dataclass(frozen=True)
class NeedsResolution:
    conflicts: tuple[ImportConflict, ...]


ImportResult = Success | PartialSuccess | IncompatibleFormat | NeedsResolution


# ============================================================================
# Parsed staging records
# ============================================================================


class ParsedFriend(BaseModel):
    member_id: UUID
    name: str
    nickname: str | None = None
    has_linked_account: bool = False
    linked_account_id: str | None = None
    linked_account_email: str | None = None
    profile_image_url: str | None = None
    profile_color_hex: str | None = None
    status: str | None = None


class ParsedGroup(BaseModel):
    id: UUID
    name: str
    is_direct: bool
    is_debug: bool
    created_at: datetime
    member_count: int


class ParsedGroupMember(BaseModel):
    group_id: UUID
    member_id: UUID
    member_name: str


class ParsedExpense(BaseModel):
    id: UUID
    group_id: UUID
    description: str
    date: datetime
    total_amount: Decimal
    paid_by_member_id: UUID
    is_settled: bool
    is_debug: bool


class ParsedInvolvedMember(BaseModel):
    expense_id: UUID
    member_id: UUID


class ParsedExpenseSplit(BaseModel):
    expense_id: UUID
    split_id: UUID
    member_id: UUID
    amount: Decimal
    is_settled: bool


class ParsedSubexpense(BaseModel):
    expense_id: UUID
    subexpense_id: UUID
    amount: Decimal


class ParsedParticipantName(BaseModel):
    expense_id: UUID
    member_id: UUID
    name: str


class ParsedExportData(BaseModel):
    """Parsed-but-not-yet-applied export contents."""

    exported_at: datetime | None = None
    account_email: str | None = None
    current_user_id: UUID | None = None
    current_user_name: str | None = None

    friends: list[ParsedFriend] = Field(default_factory=list)
    groups: list[ParsedGroup] = Field(default_factory=list)
    group_members: list[ParsedGroupMember] = Field(default_factory=list)
    expenses: list[ParsedExpense] = Field(default_factory=list)
    expense_involved_members: list[ParsedInvolvedMember] = Field(
        default_factory=list
    )
    expense_splits: list[ParsedExpenseSplit] = Field(default_factory=list)
    expense_subexpenses: list[ParsedSubexpense] = Field(default_factory=list)
    participant_names: list[ParsedParticipantName] = Field(default_factory=list)

    errors: list[str] = Field(default_factory=list)  # per-row parse errors


# ============================================================================
# Field parsing
# ============================================================================


def _parse_uuid(value: str, name: str) -> UUID:
    try:
        return UUID(value.strip())
    except ValueError:
        raise ValueError(f"invalid {name} '{value}'") from None


def _parse_bool(value: str) -> bool:
    return value.strip().lower() == "true"


def _parse_datetime(value: str, name: str) -> datetime:
    raw = value.strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(raw)
    except ValueError:
        raise ValueError(f"invalid {name} '{value}'") from None


def _parse_amount(value: str, name: str) -> Decimal:
    try:
        amount = Decimal(value.strip())
    except InvalidOperation:
        raise ValueError(f"invalid {name} '{value}'") from None
    if not amount.is_finite():
        raise ValueError(f"invalid {name} '{value}'")
    return amount


def _parse_int(value: str, name: str) -> int:
    try:
        return int(value.strip())
    except ValueError:
        raise ValueError(f"invalid {name} '{value}'") from None


def _optional(value: str) -> str | None:
    value = value.strip()
    return value or None


def split_row(line: str) -> list[str]:
    """Split a comma-separated row, honouring double-quote escaping."""
    return next(csv.reader([line]))


# ============================================================================
# Row parsers
# ============================================================================


def _parse_friend(fields: list[str]) -> ParsedFriend:
    # 6 columns; variant with a 7th `status`; or 7th/8th profile image and
    # color with an optional 9th `status`.
    status = None
    image_url = None
    color_hex = None
    if len(fields) == 7:
        status = _optional(fields[6])
    elif len(fields) >= 8:
        image_url = _optional(fields[6])
        color_hex = _optional(fields[7])
        if len(fields) >= 9:
            status = _optional(fields[8])

    return ParsedFriend(
        member_id=_parse_uuid(fields[0], "member_id"),
        name=fields[1],
        nickname=_optional(fields[2]),
        has_linked_account=_parse_bool(fields[3]),
        linked_account_id=_optional(fields[4]),
        linked_account_email=_optional(fields[5]),
        profile_image_url=image_url,
        profile_color_hex=color_hex,
        status=status,
    )


def _parse_group(fields: list[str]) -> ParsedGroup:
    return ParsedGroup(
        id=_parse_uuid(fields[0], "group_id"),
        name=fields[1],
        is_direct=_parse_bool(fields[2]),
        is_debug=_parse_bool(fields[3]),
        created_at=_parse_datetime(fields[4], "created_at"),
        member_count=_parse_int(fields[5], "member_count"),
    )


def _parse_group_member(fields: list[str]) -> ParsedGroupMember:
    return ParsedGroupMember(
        group_id=_parse_uuid(fields[0], "group_id"),
        member_id=_parse_uuid(fields[1], "member_id"),
        member_name=fields[2],
    )


def _parse_expense(fields: list[str]) -> ParsedExpense:
    return ParsedExpense(
        id=_parse_uuid(fields[0], "expense_id"),
        group_id=_parse_uuid(fields[1], "group_id"),
        description=fields[2],
        date=_parse_datetime(fields[3], "date"),
        total_amount=_parse_amount(fields[4], "total_amount"),
        paid_by_member_id=_parse_uuid(fields[5], "paid_by_member_id"),
        is_settled=_parse_bool(fields[6]),
        is_debug=_parse_bool(fields[7]),
    )


def _parse_involved_member(fields: list[str]) -> ParsedInvolvedMember:
    return ParsedInvolvedMember(
        expense_id=_parse_uuid(fields[0], "expense_id"),
        member_id=_parse_uuid(fields[1], "member_id"),
    )


def _parse_expense_split(fields: list[str]) -> ParsedExpenseSplit:
    return ParsedExpenseSplit(
        expense_id=_parse_uuid(fields[0], "expense_id"),
        split_id=_parse_uuid(fields[1], "split_id"),
        member_id=_parse_uuid(fields[2], "member_id"),
        amount=_parse_amount(fields[3], "amount"),
        is_settled=_parse_bool(fields[4]),
    )


def _parse_subexpense(fields: list[str]) -> ParsedSubexpense:
    return ParsedSubexpense(
        expense_id=_parse_uuid(fields[0], "expense_id"),
        subexpense_id=_parse_uuid(fields[1], "subexpense_id"),
        amount=_parse_amount(fields[2], "amount"),
    )


def _parse_participant_name(fields: list[str]) -> ParsedParticipantName:
    return ParsedParticipantName(
        expense_id=_parse_uuid(fields[0], "expense_id"),
        member_id=_parse_uuid(fields[1], "member_id"),
        name=fields[2],
    )


# section -> (minimum field count, row parser, ParsedExportData attribute)
SECTION_PARSERS: dict[str, tuple[int, Callable[[list[str]], BaseModel], str]] = {
    "FRIENDS": (6, _parse_friend, "friends"),
    "GROUPS": (6, _parse_group, "groups"),
    "GROUP_MEMBERS": (3, _parse_group_member, "group_members"),
    "EXPENSES": (8, _parse_expense, "expenses"),
    "EXPENSE_INVOLVED_MEMBERS": (2, _parse_involved_member, "expense_involved_members"),
    "EXPENSE_SPLITS": (5, _parse_expense_split, "expense_splits"),
    "EXPENSE_SUBEXPENSES": (3, _parse_subexpense, "expense_subexpenses"),
    "PARTICIPANT_NAMES": (3, _parse_participant_name, "participant_names"),
}


def _parse_header(data: ParsedExportData, key: str, value: str):
    if key == "EXPORTED_AT":
        try:
            data.exported_at = _parse_datetime(value, key)
        except ValueError:
            data.exported_at = None
    elif key == "ACCOUNT_EMAIL":
        data.account_email = value or None
    elif key == "CURRENT_USER_ID":
        try:
            data.current_user_id = _parse_uuid(value, key)
        except ValueError:
            data.current_user_id = None
    elif key == "CURRENT_USER_NAME":
        try:
            data.current_user_name = split_row(value)[0] if value else None
        except csv.Error:
            data.current_user_name = None


HEADER_KEYS = ("EXPORTED_AT", "ACCOUNT_EMAIL", "CURRENT_USER_ID", "CURRENT_USER_NAME")
HEADER_LINE = re.compile(r"[A-Z][A-Z0-9_]*")


# ============================================================================
# Envelope handling
# ============================================================================


def _envelope_lines(text: str) -> list[tuple[int, str]] | None:
    """Numbered lines strictly between the start and end markers."""
    lines = text.splitlines()
    start = None
    for idx, line in enumerate(lines):
        stripped = line.strip()
        if start is None:
            if stripped in (HEADER_MARKER, LEGACY_HEADER_MARKER):
                start = idx
        elif stripped == END_MARKER:
            return [(n + 1, lines[n]) for n in range(start + 1, idx)]
    return None


def validate_format(text: str) -> bool:
    """Check whether text contains a complete export envelope."""
    return _envelope_lines(text) is not None


def parse_export(text: str) -> ParsedExportData:
    """
    Parse export text into staging records.

    Rows that fail to parse are skipped and described in ``errors``.

    Raises:
        IncompatibleFormatError: If the text has no export envelope
    """
    lines = _envelope_lines(text)
    if lines is None:
        raise IncompatibleFormatError()

    data = ParsedExportData()
    section: str | None = None
    last_section = "HEADER"

    for line_number, line in lines:
        stripped = line.strip()

        if not stripped:
            section = None
            continue
        if stripped.startswith("#"):
            continue

        if stripped.startswith("[") and stripped.endswith("]"):
            section = stripped[1:-1].strip().upper()
            last_section = section
            continue

        if section is None:
            key, sep, value = stripped.partition(":")
            key = key.strip()
            if sep and key in HEADER_KEYS:
                _parse_header(data, key, value.strip())
            elif not (sep and HEADER_LINE.fullmatch(key)):
                error = RowParseError(
                    last_section, line_number, "row outside any section"
                )
                logger.warning(f"Skipping row: {error}")
                data.errors.append(str(error))
            continue

        entry = SECTION_PARSERS.get(section)
        if entry is None:
            continue  # unknown sections are forward-compatible

        min_fields, parser, attr = entry
        try:
            fields = split_row(stripped)
            if len(fields) < min_fields:
                raise ValueError(
                    f"expected at least {min_fields} fields, got {len(fields)}"
                )
            getattr(data, attr).append(parser(fields))
        except (ValueError, csv.Error) as e:
            error = RowParseError(section, line_number, str(e))
            logger.warning(f"Skipping row: {error}")
            data.errors.append(str(error))

    return data


# ============================================================================
# Applying parsed data
# ============================================================================


def normalize_friend_status(status: str | None) -> str:
    """Collapse any exported friend status onto the current vocabulary."""
    if status is not None and status.strip().lower() not in LEGACY_FRIEND_STATUSES:
        logger.debug(f"Normalizing unrecognized friend status '{status}'")
    return FRIEND_STATUS


def _name_matches(store: AppStore, name: str) -> list[AccountFriend]:
    key = name.strip().casefold()
    return [f for f in store.friends if f.name.strip().casefold() == key]


def _is_self(data: ParsedExportData, store: AppStore, member_id: UUID) -> bool:
    return member_id == data.current_user_id or member_id in store.current_user_member_ids


def find_conflicts(data: ParsedExportData, store: AppStore) -> list[ImportConflict]:
    """
    Find imported friends whose name match cannot be resolved automatically.

    A name match is ambiguous when several roster friends share the name, or
    when both sides are linked to different accounts. Friends already present
    under the same member id never conflict.
    """
    conflicts = []
    for parsed in data.friends:
        if _is_self(data, store, parsed.member_id):
            continue
        if store.friend(parsed.member_id) is not None:
            continue

        matches = _name_matches(store, parsed.name)
        if not matches:
            continue

        first = matches[0]
        account_mismatch = (
            parsed.has_linked_account
            and first.has_linked_account
            and parsed.linked_account_id is not None
            and parsed.linked_account_id != first.linked_account_id
        )
        if len(matches) > 1 or account_mismatch:
            conflicts.append(
                ImportConflict(
                    import_member_id=parsed.member_id,
                    import_name=parsed.name,
                    candidates=tuple(matches),
                )
            )
    return conflicts


class _ImportApplier:
    """Applies parsed data to a store in dependency order."""

    def __init__(
        self,
        data: ParsedExportData,
        store: AppStore,
        resolutions: Mapping[UUID, ImportResolution],
    ):
        self.data = data
        self.store = store
        self.resolutions = resolutions
        self.errors: list[str] = list(data.errors)
        # exported friend member id -> roster member id, where they differ
        self.friend_links: dict[UUID, UUID] = {}

    def run(self) -> ImportSummary:
        friends_added = self.apply_friends()
        groups_added = self.apply_groups()
        expenses_added = self.apply_expenses()
        return ImportSummary(
            friends_added=friends_added,
            groups_added=groups_added,
            expenses_added=expenses_added,
        )

    def _member_id(self, member_id: UUID) -> UUID:
        """Map the exported current user onto the store's current user."""
        if member_id == self.data.current_user_id:
            return self.store.current_user.id
        return member_id

    def _friend_from(self, parsed: ParsedFriend, member_id: UUID) -> AccountFriend:
        return AccountFriend(
            member_id=member_id,
            name=parsed.name,
            nickname=parsed.nickname,
            has_linked_account=parsed.has_linked_account,
            linked_account_id=parsed.linked_account_id if parsed.has_linked_account else None,
            linked_account_email=(
                parsed.linked_account_email if parsed.has_linked_account else None
            ),
            profile_image_url=parsed.profile_image_url,
            profile_color_hex=parsed.profile_color_hex,
            status=normalize_friend_status(parsed.status),
        )

    def apply_friends(self) -> int:
        added = 0
        for parsed in self.data.friends:
            if _is_self(self.data, self.store, parsed.member_id):
                continue

            resolution = self.resolutions.get(parsed.member_id)
            if isinstance(resolution, LinkToExisting):
                self.friend_links[parsed.member_id] = resolution.member_id
                continue
            if isinstance(resolution, CreateNew):
                member_id = parsed.member_id
                if self.store.friend(member_id) is not None:
                    member_id = uuid4()
                    self.friend_links[parsed.member_id] = member_id
                if self.store.add_imported_friend(self._friend_from(parsed, member_id)):
                    added += 1
                continue

            if self.store.friend(parsed.member_id) is not None:
                continue

            matches = _name_matches(self.store, parsed.name)
            if matches:
                self.friend_links[parsed.member_id] = matches[0].member_id
                continue

            if self.store.add_imported_friend(
                self._friend_from(parsed, parsed.member_id)
            ):
                added += 1
        return added

    def _group_members(self, group_id: UUID) -> list[GroupMember]:
        members: list[GroupMember] = []
        for entry in self.data.group_members:
            if entry.group_id != group_id:
                continue
            if _is_self(self.data, self.store, entry.member_id):
                member = self.store.current_user
            else:
                linked = self.friend_links.get(entry.member_id)
                member = GroupMember(
                    id=entry.member_id,
                    name=entry.member_name,
                    linked_friend_id=linked if linked != entry.member_id else None,
                )
            if member not in members:
                members.append(member)

        if not any(self.store.is_current_user(m) for m in members):
            members.insert(0, self.store.current_user)
        return members

    def apply_groups(self) -> int:
        added = 0
        for parsed in self.data.groups:
            if self.store.group(parsed.id) is not None:
                continue

            group = SpendingGroup(
                id=parsed.id,
                name=parsed.name,
                members=self._group_members(parsed.id),
                created_at=parsed.created_at,
                is_direct=parsed.is_direct,
                is_debug=parsed.is_debug,
            )
            if self.store.add_existing_group(group):
                added += 1
        return added

    def _splits(self, expense_id: UUID) -> list[ExpenseSplit]:
        return [
            ExpenseSplit(
                id=entry.split_id,
                member_id=self._member_id(entry.member_id),
                amount=entry.amount,
                is_settled=entry.is_settled,
            )
            for entry in self.data.expense_splits
            if entry.expense_id == expense_id
        ]

    def _subexpenses(self, expense_id: UUID) -> list[Subexpense] | None:
        subexpenses = [
            Subexpense(id=entry.subexpense_id, amount=entry.amount)
            for entry in self.data.expense_subexpenses
            if entry.expense_id == expense_id
        ]
        return subexpenses or None

    def _participant_names(self, expense_id: UUID) -> dict[UUID, str] | None:
        names = {
            self._member_id(entry.member_id): entry.name
            for entry in self.data.participant_names
            if entry.expense_id == expense_id
        }
        return names or None

    def apply_expenses(self) -> int:
        added = 0
        for parsed in self.data.expenses:
            if any(e.id == parsed.id for e in self.store.expenses):
                continue
            if self.store.group(parsed.group_id) is None:
                self.errors.append(
                    f"Skipped expense '{parsed.description}': group not found"
                )
                continue

            expense = Expense(
                id=parsed.id,
                group_id=parsed.group_id,
                description=parsed.description,
                date=parsed.date,
                total_amount=parsed.total_amount,
                paid_by_member_id=self._member_id(parsed.paid_by_member_id),
                involved_member_ids=[
                    self._member_id(entry.member_id)
                    for entry in self.data.expense_involved_members
                    if entry.expense_id == parsed.id
                ],
                splits=self._splits(parsed.id),
                is_settled=parsed.is_settled,
                participant_names=self._participant_names(parsed.id),
                is_debug=parsed.is_debug,
                subexpenses=self._subexpenses(parsed.id),
            )
            if self.store.add_expense(expense):
                added += 1
        return added


def import_data(
    text: str,
    store: AppStore,
    resolutions: Mapping[UUID, ImportResolution] | None = None,
) -> ImportResult:
    """
    Import export text into a store.

    Args:
        text: The export text
        store: The store to import into
        resolutions: Choices for previously reported conflicts, keyed by the
            imported friend's member id

    Returns:
        Success, PartialSuccess, IncompatibleFormat or NeedsResolution.
        Malformed input never raises.
    """
    try:
        data = parse_export(text)
    except ImportFormatError as e:
        logger.info(f"Rejected import: {e}")
        return IncompatibleFormat(str(e))

    resolutions = resolutions or {}
    unresolved = [
        conflict
        for conflict in find_conflicts(data, store)
        if conflict.import_member_id not in resolutions
    ]
    if unresolved:
        logger.info(f"Import needs resolution for {len(unresolved)} friend(s)")
        return NeedsResolution(tuple(unresolved))

    applier = _ImportApplier(data, store, resolutions)
    store.is_importing = True
    try:
        summary = applier.run()
    finally:
        store.is_importing = False
    store.persist()

    logger.info(f"Import finished: {summary.description}")

    if applier.errors:
        return PartialSuccess(summary, tuple(applier.errors))
    return Success(summary)
