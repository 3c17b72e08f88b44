"""
Wallet module: ledger-derived balances and validated wallet actions.
"""

from .ledger import (
    LedgerView,
    LedgerPolicy,
    Balance,
    available_balance,
    pending_balance,
    compute_balance,
)
from .actions import WalletActions

__all__ = [
    "LedgerView",
    "LedgerPolicy",
    "Balance",
    "available_balance",
    "pending_balance",
    "compute_balance",
    "WalletActions",
]
