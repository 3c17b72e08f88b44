"""
Bid outcomes for a bidder's own bid history.
"""

from enum import Enum
from typing import Optional

from marketplace.models import Auction, AuctionStatus, Bid


class BidOutcome(Enum):
    WON = "WON"
    LOST = "LOST"
    WINNING = "WINNING"
    OUTBID = "OUTBID"
    UNAVAILABLE = "UNAVAILABLE"


def bid_outcome(bid: Bid, auction: Optional[Auction]) -> BidOutcome:
    """
    Classify a bid against its auction's latest snapshot.

    A bid equal to the auction's current price is the leading bid; the
    auction status decides between the final and the running label.
    """
    if auction is None:
        return BidOutcome.UNAVAILABLE

    leading = bid.amount == auction.current_price
    if auction.status is AuctionStatus.ENDED:
        return BidOutcome.WON if leading else BidOutcome.LOST
    return BidOutcome.WINNING if leading else BidOutcome.OUTBID
