"""
Dashboard view: every auction at a glance.

One 1-second ticker drives the countdowns of all active auctions and runs
only while there is at least one. Ended auctions show their winner ("No
bids" when nobody bid). Admins also see the number of auctions awaiting
approval, polled on the admin cadence.
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from auction.countdown import Remaining, Ticker, time_left, utc_now
from auction.ranking import BidRanker
from marketplace.models import Auction, AuctionStatus, Bid
from sync.channel import SyncUpdate

from .base import View

logger = logging.getLogger(__name__)

NO_BIDS = "No bids"


class DashboardView(View):
    def __init__(
        self,
        backend,
        session=None,
        config=None,
        transport=None,
        notifier=None,
        now_fn: Callable[[], datetime] = utc_now,
    ):
        super().__init__(backend, session, config, transport, notifier)
        self.now_fn = now_fn
        self.ranker = BidRanker(top_k=self.config.top_bids)

        self.auctions: List[Auction] = []
        self.countdowns: Dict[str, Optional[Remaining]] = {}
        self.winners: Dict[str, str] = {}
        self.pending_count: Optional[int] = None

        self.ticker = Ticker(1.0, self.tick, name="dashboard")

        self.auctions_channel = self.channel(
            "auctions",
            self._fetch_auctions,
            self._fold_auctions,
            self.config.admin_poll_sec,
        )
        self.pending_channel = None
        if self.session is not None and self.session.is_admin:
            self.pending_channel = self.channel(
                "auctions:pending",
                self.backend.get_pending_auctions_count,
                self._fold_pending,
                self.config.admin_poll_sec,
            )

    async def _fetch_auctions(self) -> Tuple[List[Auction], Dict[str, Optional[List[Bid]]]]:
        auctions = await self.backend.get_auctions()
        ended = [a for a in auctions if a.status is AuctionStatus.ENDED]
        results = await asyncio.gather(
            *(self.backend.get_auction_bids(a.auction_id) for a in ended),
            return_exceptions=True,
        )

        bids: Dict[str, Optional[List[Bid]]] = {}
        for auction, result in zip(ended, results):
            if isinstance(result, Exception):
                logger.warning(f"Could not load bids for ended auction {auction.auction_id}: {result}")
                bids[auction.auction_id] = None
            else:
                bids[auction.auction_id] = result
        return auctions, bids

    def _fold_auctions(self, update: SyncUpdate):
        auctions, bids = update.payload
        self.auctions = list(auctions)

        winners = {}
        for auction_id, auction_bids in bids.items():
            if auction_bids is None:
                # Keep the last known winner rather than blanking it
                if auction_id in self.winners:
                    winners[auction_id] = self.winners[auction_id]
                continue
            leaderboard = self.ranker.rank(auction_bids)
            winners[auction_id] = leaderboard.winner_name if leaderboard.has_winner else NO_BIDS
        self.winners = winners

        self.tick()
        self._sync_ticker()

    def _fold_pending(self, update: SyncUpdate):
        self.pending_count = update.payload

    def tick(self):
        """Recompute every active auction's countdown"""
        now = self.now_fn()
        self.countdowns = {
            a.auction_id: time_left(a.end_at, now) for a in self.auctions if a.is_active
        }

    @property
    def active_auctions(self) -> List[Auction]:
        return [a for a in self.auctions if a.is_active]

    @property
    def ended_auctions(self) -> List[Auction]:
        return [a for a in self.auctions if a.status is AuctionStatus.ENDED]

    def _sync_ticker(self):
        if self.opened and not self.closed and self.active_auctions:
            self.ticker.start()
        else:
            self.ticker.stop()

    async def open(self):
        await super().open()
        self._sync_ticker()

    def _stop_timers(self):
        self.ticker.stop()
