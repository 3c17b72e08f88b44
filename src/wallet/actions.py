"""
Wallet actions: NGO debits and withdrawal requests.

Every action is an intent sent to the backend after local validation
against the latest ledger fold. Nothing here adjusts a balance locally;
callers re-fetch the ledger once the backend confirms.
"""

import logging
from typing import Optional

from marketplace.errors import StaleReadRace, ValidationError
from marketplace.models import BankDetails, WithdrawalRequest
from marketplace.session import Session

from .ledger import LedgerView

logger = logging.getLogger(__name__)


def _require_text(value: Optional[str], label: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{label} is required")
    return text


class WalletActions:
    """
    Validated wallet mutations for the NGO owning ``ledger``.

    Withdrawals stay disabled until bank details are known to exist.
    """

    def __init__(self, backend, ledger: LedgerView, session: Session, ngo_email: str):
        """
        Args:
            backend: BackendClient (or compatible)
            ledger: Ledger view of the NGO's wallet
            session: Authenticated session; must own the NGO
            ngo_email: NGO email (withdrawal endpoints key NGOs by email)
        """
        self.backend = backend
        self.ledger = ledger
        self.session = session
        self.ngo_email = ngo_email
        self.bank_details: Optional[BankDetails] = None
        self.bank_details_loaded = False

    @property
    def withdrawals_enabled(self) -> bool:
        return self.bank_details is not None

    def _require_owner(self):
        if not self.session.owns_ngo(self.ngo_email):
            raise ValidationError("Only the NGO owner can move wallet funds")

    async def load_bank_details(self) -> Optional[BankDetails]:
        """Fetch bank details; RequestFailed propagates and keeps the old value"""
        self.bank_details = await self.backend.get_bank_details(self.ngo_email)
        self.bank_details_loaded = True
        return self.bank_details

    async def save_bank_details(self, details: BankDetails) -> Optional[BankDetails]:
        """Save bank details, then re-read them from the backend"""
        self._require_owner()
        _require_text(details.account_holder, "Account holder")
        _require_text(details.account_number, "Account number")
        _require_text(details.ifsc, "IFSC")
        await self.backend.save_bank_details(self.ngo_email, details)
        return await self.load_bank_details()

    async def submit_withdrawal(
        self, amount, domain: str, description: str
    ) -> Optional[WithdrawalRequest]:
        """
        Request a withdrawal.

        Raises:
            ValidationError: Missing fields, no bank details, or amount above
                the available balance at submit time (nothing is sent)
            StaleReadRace: The backend rejected the amount because the true
                balance changed after validation
            RequestFailed: Any other backend or network failure
        """
        self._require_owner()
        if not self.withdrawals_enabled:
            raise ValidationError("Add bank details before requesting a withdrawal")
        domain = _require_text(domain, "Domain")
        description = _require_text(description, "Description")
        value = self.ledger.validate_spend(amount, "Withdrawal amount")

        try:
            created = await self.backend.request_withdrawal(
                self.ngo_email, value, domain, description
            )
        except StaleReadRace:
            logger.warning(
                f"Withdrawal of {value} for {self.ngo_email} rejected: balance changed concurrently"
            )
            raise

        logger.info(f"Withdrawal of {value} requested for {self.ngo_email}")
        return created

    async def debit(self, amount, description: str, domain: str) -> None:
        """
        Record spending from the wallet.

        Raises:
            ValidationError: Missing fields or amount above available
            StaleReadRace: Backend rejected the amount (balance changed)
            RequestFailed: Any other backend or network failure
        """
        self._require_owner()
        description = _require_text(description, "Description")
        domain = _require_text(domain, "Domain")
        value = self.ledger.validate_spend(amount, "Debit amount")

        await self.backend.add_debit(self.ledger.ngo_id, value, description, domain)
        logger.info(f"Debit of {value} recorded for {self.ledger.ngo_id}")
