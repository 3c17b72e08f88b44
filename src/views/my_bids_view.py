"""
My bids view: the logged-in user's bids with their outcome.
"""

import logging
from typing import List, Tuple

from auction.outcomes import BidOutcome, bid_outcome
from backend.client import UserBid
from sync.channel import SyncUpdate

from .base import View

logger = logging.getLogger(__name__)


class MyBidsView(View):
    def __init__(self, backend, session, config=None, transport=None, notifier=None):
        super().__init__(backend, session, config, transport, notifier)
        self.entries: List[Tuple[UserBid, BidOutcome]] = []
        self.bids_channel = self.channel(
            f"bids:user:{session.user_id}",
            self.backend.get_user_bids,
            self._fold,
            self.config.wallet_poll_sec,
        )

    def _fold(self, update: SyncUpdate):
        self.entries = [
            (user_bid, bid_outcome(user_bid.bid, user_bid.auction)) for user_bid in update.payload
        ]

    def outcomes(self, outcome: BidOutcome) -> List[UserBid]:
        return [user_bid for user_bid, result in self.entries if result is outcome]
