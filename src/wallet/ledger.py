"""
Ledger View: wallet balances derived from an NGO's transaction list.

    available = sum(credits settled) - sum(debits settled)
    pending   = sum(credits still pending)

Both are commutative folds, so replay order never changes the result.
The server-supplied ``walletAmount`` aggregate is kept only for
diagnostics; the client fold is authoritative because it stays correct
while the server aggregate lags pending data.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple

from marketplace.errors import ValidationError
from marketplace.models import Transaction, TransactionType

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class LedgerPolicy:
    """
    Status vocabulary deciding which entries count toward each balance.

    Defaults: credits count once ``debited`` or ``completed``; debits count
    once ``debited``; credits in ``pending`` make up the pending balance.
    """

    settled_credit_statuses: FrozenSet[str] = frozenset({"debited", "completed"})
    settled_debit_statuses: FrozenSet[str] = frozenset({"debited"})
    pending_statuses: FrozenSet[str] = frozenset({"pending"})

    def is_terminal(self, status: str) -> bool:
        return bool(status) and status not in self.pending_statuses


DEFAULT_POLICY = LedgerPolicy()


@dataclass(frozen=True)
class Balance:
    available: Decimal = ZERO
    pending: Decimal = ZERO


def available_balance(
    transactions: Iterable[Transaction], policy: LedgerPolicy = DEFAULT_POLICY
) -> Decimal:
    """Settled credits minus settled debits"""
    total = ZERO
    for tx in transactions:
        if tx.type is TransactionType.CREDIT and tx.status in policy.settled_credit_statuses:
            total += tx.amount
        elif tx.type is TransactionType.DEBIT and tx.status in policy.settled_debit_statuses:
            total -= tx.amount
    return total


def pending_balance(
    transactions: Iterable[Transaction], policy: LedgerPolicy = DEFAULT_POLICY
) -> Decimal:
    """Credits not yet settled"""
    return sum(
        (
            tx.amount
            for tx in transactions
            if tx.type is TransactionType.CREDIT and tx.status in policy.pending_statuses
        ),
        ZERO,
    )


def compute_balance(
    transactions: Iterable[Transaction], policy: LedgerPolicy = DEFAULT_POLICY
) -> Balance:
    transactions = list(transactions)
    return Balance(
        available=available_balance(transactions, policy),
        pending=pending_balance(transactions, policy),
    )


def parse_amount_input(value: Any, label: str = "Amount") -> Decimal:
    """
    Parse a user-entered amount.

    Raises:
        ValidationError: If missing, not a number or not positive
    """
    if value is None or str(value).strip() == "":
        raise ValidationError(f"{label} is required")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{label} is not a number: {value!r}")
    if not amount.is_finite() or amount <= 0:
        raise ValidationError(f"{label} must be positive")
    return amount


class LedgerView:
    """
    Latest ledger snapshot for one NGO plus its derived balances.

    Snapshots replace the previous list wholesale, except that an entry
    already seen in a terminal status never regresses to pending.
    """

    def __init__(self, ngo_id: str, policy: Optional[LedgerPolicy] = None):
        self.ngo_id = ngo_id
        self.policy = policy or DEFAULT_POLICY
        self.transactions: Tuple[Transaction, ...] = ()
        self.balance = Balance()
        self.server_reported: Optional[Decimal] = None
        self.loaded = False

    @property
    def available(self) -> Decimal:
        return self.balance.available

    @property
    def pending(self) -> Decimal:
        return self.balance.pending

    def apply_snapshot(
        self, transactions: List[Transaction], wallet_amount: Optional[Decimal] = None
    ) -> Balance:
        """
        Replace the ledger with a fresh snapshot and recompute balances.

        Args:
            transactions: Full transaction list from the backend
            wallet_amount: Server aggregate, if the response carried one

        Returns:
            Recomputed balance
        """
        previous: Dict[str, Transaction] = {
            tx.transaction_id: tx for tx in self.transactions if tx.transaction_id
        }

        merged = []
        for tx in transactions:
            seen = previous.get(tx.transaction_id)
            if (
                seen is not None
                and self.policy.is_terminal(seen.status)
                and not self.policy.is_terminal(tx.status)
            ):
                logger.debug(
                    f"Ignoring status regression for transaction {tx.transaction_id} "
                    f"({seen.status} -> {tx.status})"
                )
                tx = seen
            merged.append(tx)

        self.transactions = tuple(merged)
        self.balance = compute_balance(self.transactions, self.policy)
        self.server_reported = wallet_amount
        self.loaded = True

        if wallet_amount is not None and wallet_amount != self.balance.available:
            logger.info(
                f"Server wallet aggregate for {self.ngo_id} ({wallet_amount}) differs "
                f"from ledger fold ({self.balance.available})"
            )

        return self.balance

    def history(self) -> List[Transaction]:
        """Transactions newest first"""
        return sorted(
            self.transactions,
            key=lambda tx: tx.created_at or _EPOCH,
            reverse=True,
        )

    def can_withdraw(self, amount: Decimal) -> bool:
        return ZERO < amount <= self.balance.available

    def validate_spend(self, value: Any, label: str = "Amount") -> Decimal:
        """
        Validate an amount against the current available balance.

        Called at submit time, not only when rendering.

        Raises:
            ValidationError: If malformed, non-positive or above available
        """
        amount = parse_amount_input(value, label)
        if amount > self.balance.available:
            raise ValidationError(
                f"{label} {amount} exceeds available balance {self.balance.available}"
            )
        return amount

    def has_settled_credit(self, auction_id: str) -> bool:
        """
        True once a settled credit for ``auction_id`` is on the ledger.

        Credits are matched on their auction link, falling back to the
        free-text reference or description for entries without one.
        """
        if not auction_id:
            return False
        return any(
            tx.type is TransactionType.CREDIT
            and tx.status in self.policy.settled_credit_statuses
            and auction_id in (tx.auction_id, tx.reference, tx.description)
            for tx in self.transactions
        )
