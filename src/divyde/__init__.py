"""Divyde - Track money owed between you and your friends."""

__version__ = "0.1.0"

from .config import Settings, load_settings
from .ledger import (
    allocate_split,
    apply_update,
    compute_balance,
    compute_totals,
    partition_debts,
)
from .models import (
    Debt,
    DebtCreateRequest,
    DebtDraft,
    DebtUpdate,
    Direction,
    Friend,
    Totals,
)
from .service import LedgerService, open_store

__all__ = [
    "Settings",
    "load_settings",
    "allocate_split",
    "apply_update",
    "compute_balance",
    "compute_totals",
    "partition_debts",
    "Debt",
    "DebtCreateRequest",
    "DebtDraft",
    "DebtUpdate",
    "Direction",
    "Friend",
    "Totals",
    "LedgerService",
    "open_store",
]
