"""
Auction module: bid ranking, countdown and auto-bid control.
"""

from .ranking import BidRanker, Leaderboard
from .countdown import CountdownClock, Remaining, Ticker, time_left
from .autobid import AutoBidController, AutoBidPhase, AutoBidState
from .outcomes import BidOutcome, bid_outcome

__all__ = [
    "BidRanker",
    "Leaderboard",
    "CountdownClock",
    "Remaining",
    "Ticker",
    "time_left",
    "AutoBidController",
    "AutoBidPhase",
    "AutoBidState",
    "BidOutcome",
    "bid_outcome",
]
