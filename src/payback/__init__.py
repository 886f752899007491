"""PayBack - Shared-expense ledger core: balances, friend links and data import/export."""

__version__ = "0.1.0"

from .config import Settings, load_settings
from .db import Database
from .exporter import export_all_data
from .failures import LinkFailureTracker
from .importer import import_data, parse_export, validate_format
from .ledger import net_balance, overall_net_balance
from .models import (
    AccountFriend,
    Expense,
    ExpenseSplit,
    GroupMember,
    LinkFailureRecord,
    SpendingGroup,
    Subexpense,
)
from .reconciler import LinkStateReconciler
from .service import LinkSyncService
from .store import AppStore

__all__ = [
    "Settings",
    "load_settings",
    "Database",
    "export_all_data",
    "LinkFailureTracker",
    "import_data",
    "parse_export",
    "validate_format",
    "net_balance",
    "overall_net_balance",
    "AccountFriend",
    "Expense",
    "ExpenseSplit",
    "GroupMember",
    "LinkFailureRecord",
    "SpendingGroup",
    "Subexpense",
    "LinkStateReconciler",
    "LinkSyncService",
    "AppStore",
]
