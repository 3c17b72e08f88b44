"""
Auction detail view: one auction, its bids, the user's auto-bid and the
countdown.

Channels:
- ``auction:<id>`` polls the auction and its bids together and replaces
  both on every snapshot
- ``autobid:<id>`` polls the user's auto-bid status (logged-in users only)
  and folds it through the AutoBidController

The countdown runs only while the auction is active.
"""

import asyncio
import logging
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional, Tuple

from auction.autobid import AutoBidController, AutoBidState
from auction.countdown import CountdownClock, Remaining, utc_now
from auction.ranking import BidRanker, Leaderboard
from marketplace.errors import MarketplaceError, RequestFailed, ValidationError
from marketplace.models import Auction, AuctionStatus, Bid
from sync.channel import SyncUpdate
from wallet.ledger import LedgerView, parse_amount_input

from .base import View

logger = logging.getLogger(__name__)


class AuctionDetailView(View):
    def __init__(
        self,
        backend,
        auction_id: str,
        session=None,
        config=None,
        transport=None,
        notifier=None,
        now_fn: Callable[[], datetime] = utc_now,
    ):
        super().__init__(backend, session, config, transport, notifier)
        self.auction_id = auction_id
        self.ranker = BidRanker(top_k=self.config.top_bids)

        self.auction: Optional[Auction] = None
        self.bids: Tuple[Bid, ...] = ()
        self.leaderboard = Leaderboard(top=(), winner=None)
        self.remaining: Optional[Remaining] = None
        self.payment_confirmed = False

        self.autobid = AutoBidController(backend, auction_id)
        self.clock = CountdownClock(None, self._on_tick, now_fn=now_fn)

        self.auction_channel = self.channel(
            f"auction:{auction_id}",
            self._fetch_auction,
            self._fold_auction,
            self.config.auction_poll_sec,
        )
        self.autobid_channel = None
        if self.session is not None and self.session.token:
            self.autobid_channel = self.channel(
                f"autobid:{auction_id}",
                self.autobid.read_status,
                self._fold_autobid,
                self.config.auction_poll_sec,
            )

    # ------------------------------------------------------------------
    # Folds
    # ------------------------------------------------------------------

    async def _fetch_auction(self):
        auction, bids = await asyncio.gather(
            self.backend.get_auction(self.auction_id),
            self.backend.get_auction_bids(self.auction_id),
        )
        return auction, bids

    def _fold_auction(self, update: SyncUpdate):
        auction, bids = update.payload
        self.auction = auction
        self.bids = tuple(bids)
        self.leaderboard = self.ranker.rank(self.bids)
        self._sync_clock()

    def _fold_autobid(self, update: SyncUpdate):
        read = update.payload
        self.autobid.apply_status(read.status, sequence=read.sequence)

    def _sync_clock(self):
        if self.auction is not None and self.auction.is_active and not self.closed:
            self.clock.update_deadline(self.auction.end_at)
            if self.opened and not self.clock.running:
                self.clock.start()
        else:
            self.clock.stop()
            self.remaining = None

    def _on_tick(self, remaining: Optional[Remaining]):
        self.remaining = remaining

    def _stop_timers(self):
        self.clock.stop()

    async def open(self):
        await super().open()
        self._sync_clock()

    # ------------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------------

    @property
    def top_bids(self) -> Tuple[Bid, ...]:
        return self.leaderboard.top

    @property
    def suggested_bid(self) -> Optional[Decimal]:
        """Smallest acceptable next bid for the latest snapshot"""
        return self.auction.minimum_next_bid if self.auction else None

    @property
    def is_ended(self) -> bool:
        return self.auction is not None and self.auction.status is AuctionStatus.ENDED

    @property
    def winner_name(self) -> Optional[str]:
        if not self.is_ended:
            return None
        return self.leaderboard.winner_name

    @property
    def is_winner(self) -> bool:
        user_id = self.session.user_id if self.session else None
        return self.is_ended and self.leaderboard.is_winner(user_id)

    @property
    def autobid_state(self) -> AutoBidState:
        return self.autobid.state

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def place_bid(self, amount) -> Decimal:
        """
        Place a bid, then re-fetch the auction and bids.

        Raises:
            ValidationError: Not logged in, auction not active, or amount
                below the minimum next bid (nothing is sent)
            RequestFailed: Backend or network failure
        """
        try:
            self._require_session()
            value = parse_amount_input(amount, "Bid amount")
            if self.auction is None or not self.auction.is_active:
                raise ValidationError("Bidding is closed for this auction")
            minimum = self.auction.minimum_next_bid
            if value < minimum:
                raise ValidationError(f"Bid must be at least {minimum}")
            await self.backend.place_bid(self.auction_id, value)
        except MarketplaceError as e:
            self._report("place_bid", e)
            raise

        logger.info(f"Bid of {value} placed on {self.auction_id}")
        self.notifier.success(f"Bid of {value} placed", topic="place_bid")
        await self.auction_channel.refresh()
        return value

    async def end_auction(self):
        """End the auction (organiser or admin), then re-fetch"""
        try:
            session = self._require_session()
            organizer = self.auction.organizer_id if self.auction else None
            if not session.is_admin and session.user_id != organizer:
                raise ValidationError("Only the organiser or an admin can end this auction")
            await self.backend.end_auction(self.auction_id)
        except MarketplaceError as e:
            self._report("end_auction", e)
            raise

        self.notifier.success("Auction ended", topic="end_auction")
        await self.auction_channel.refresh()

    def configure_autobid(self) -> AutoBidState:
        """Open the auto-bid ceiling form"""
        if self.auction is None:
            raise ValidationError("Auction not loaded yet")
        try:
            return self.autobid.begin_configuring(self.auction)
        except MarketplaceError as e:
            self._report("autobid", e)
            raise

    def cancel_autobid_config(self) -> AutoBidState:
        return self.autobid.cancel_configuring()

    async def enable_autobid(self, max_amount) -> AutoBidState:
        try:
            self._require_session()
            if self.auction is None:
                raise ValidationError("Auction not loaded yet")
            state = await self.autobid.enable(max_amount, self.auction)
        except MarketplaceError as e:
            self._report("autobid", e)
            raise
        self.notifier.success(state.description, topic="autobid")
        return state

    async def disable_autobid(self) -> AutoBidState:
        try:
            state = await self.autobid.disable()
        except MarketplaceError as e:
            self._report("autobid", e)
            raise
        self.notifier.info(state.description, topic="autobid")
        return state

    async def confirm_payment(self, ledger: Optional[LedgerView] = None) -> bool:
        """
        Check, after the payment provider reported success, whether the
        backend has recorded a settled credit for this auction.

        Returns:
            True once the ledger shows the credit; False means "not yet"
        """
        if self.auction is None or not self.auction.ngo_id:
            return False

        ledger = ledger or LedgerView(self.auction.ngo_id)
        try:
            snapshot = await self.backend.get_transactions(self.auction.ngo_id)
        except RequestFailed as e:
            self._report("payment", e)
            raise

        ledger.apply_snapshot(snapshot.transactions, snapshot.wallet_amount)
        self.payment_confirmed = ledger.has_settled_credit(self.auction_id)
        if self.payment_confirmed:
            self.notifier.success("Payment confirmed", topic="payment")
        else:
            logger.info(f"Payment for {self.auction_id} not on the ledger yet")
        await self.auction_channel.refresh()
        return self.payment_confirmed
