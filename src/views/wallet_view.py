"""
NGO wallet view: ledger balances, history and wallet actions.

The ledger channel polls ``/ngos/:id/transactions`` and re-fetches on the
payload-less ``walletUpdate:<ngoId>`` push signal. Balances shown are
always the fold of the latest backend snapshot; every action re-fetches
once the backend confirms it.
"""

import logging
from decimal import Decimal
from typing import List, Optional

from marketplace.errors import MarketplaceError, RequestFailed, StaleReadRace
from marketplace.models import BankDetails, Transaction, WithdrawalRequest
from sync.channel import SyncUpdate
from wallet.actions import WalletActions
from wallet.ledger import Balance, LedgerView

from .base import View

logger = logging.getLogger(__name__)


def wallet_update_event(ngo_id: str) -> str:
    return f"walletUpdate:{ngo_id}"


class WalletView(View):
    def __init__(
        self,
        backend,
        session,
        ngo_id: str,
        ngo_email: str,
        config=None,
        transport=None,
        notifier=None,
    ):
        super().__init__(backend, session, config, transport, notifier)
        self.ngo_id = ngo_id
        self.ngo_email = ngo_email
        self.ledger = LedgerView(ngo_id)
        self.actions = WalletActions(backend, self.ledger, session, ngo_email)

        self.ledger_channel = self.channel(
            f"wallet:{ngo_id}",
            self._fetch_ledger,
            self._fold_ledger,
            self.config.wallet_poll_sec,
            signal_events=[wallet_update_event(ngo_id)],
        )

    async def _fetch_ledger(self):
        return await self.backend.get_transactions(self.ngo_id)

    def _fold_ledger(self, update: SyncUpdate):
        snapshot = update.payload
        self.ledger.apply_snapshot(snapshot.transactions, snapshot.wallet_amount)

    async def open(self):
        await super().open()
        try:
            await self.actions.load_bank_details()
        except RequestFailed as e:
            # Withdrawals stay disabled until a later load succeeds
            self._report("bank_details", e)

    # ------------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------------

    @property
    def balance(self) -> Balance:
        return self.ledger.balance

    @property
    def available(self) -> Decimal:
        return self.ledger.available

    @property
    def pending(self) -> Decimal:
        return self.ledger.pending

    @property
    def history(self) -> List[Transaction]:
        return self.ledger.history()

    @property
    def withdrawals_enabled(self) -> bool:
        return self.actions.withdrawals_enabled

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def debit(self, amount, description: str, domain: str):
        try:
            await self.actions.debit(amount, description, domain)
        except MarketplaceError as e:
            self._report("debit", e)
            raise
        self.notifier.success("Debit recorded", topic="debit")
        await self.ledger_channel.refresh()

    async def request_withdrawal(
        self, amount, domain: str, description: str
    ) -> Optional[WithdrawalRequest]:
        try:
            created = await self.actions.submit_withdrawal(amount, domain, description)
        except MarketplaceError as e:
            self._report("withdrawal", e)
            if isinstance(e, StaleReadRace):
                self.ledger_channel.request_refresh()
            raise
        self.notifier.success("Withdrawal requested", topic="withdrawal")
        await self.ledger_channel.refresh()
        return created

    async def save_bank_details(self, details: BankDetails) -> Optional[BankDetails]:
        try:
            saved = await self.actions.save_bank_details(details)
        except MarketplaceError as e:
            self._report("bank_details", e)
            raise
        self.notifier.success("Bank details saved", topic="bank_details")
        return saved
