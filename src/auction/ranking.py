"""
Bid Ranking: leaderboard and winner derivation from a raw bid list.

Pure functions over an append-only bid list. Given the same input they
always return the same output; nothing here talks to the backend.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from marketplace.models import Bid


UNKNOWN_WINNER = "Unknown"


@dataclass(frozen=True)
class Leaderboard:
    """Top bids (one per bidder) plus the overall winner"""

    top: Tuple[Bid, ...]
    winner: Optional[Bid]

    @property
    def has_winner(self) -> bool:
        return self.winner is not None

    @property
    def winner_name(self) -> Optional[str]:
        """Display name of the winner, "Unknown" for an unnamed bidder"""
        if self.winner is None:
            return None
        return self.winner.bidder_name or UNKNOWN_WINNER

    def is_winner(self, user_id: Optional[str]) -> bool:
        """True when ``user_id`` placed the single highest bid"""
        if not user_id or self.winner is None:
            return False
        return self.winner.bidder_id == user_id


class BidRanker:
    """
    Rank bids for display.

    Top-K rules:
    - One entry per distinct bidder: that bidder's highest bid
    - Sorted by amount descending, ties by first-seen input order
    - Bidders are identified by id, then by name; a bid with neither is
      its own entry and is never merged

    The winner is the bidder of the single highest bid across all bids.
    """

    def __init__(self, top_k: int = 3):
        """
        Initialize ranker.

        Args:
            top_k: Maximum leaderboard length
        """
        if top_k < 1:
            raise ValueError(f"top_k must be positive, got {top_k}")
        self.top_k = top_k

    def top_bids(self, bids: Sequence[Bid]) -> List[Bid]:
        """
        Compute the de-duplicated leaderboard.

        Args:
            bids: Full bid list for one auction, in observed order

        Returns:
            At most ``top_k`` bids, one per bidder, highest first
        """
        # key -> (first index of the kept bid, bid)
        best: Dict[str, Tuple[int, Bid]] = {}
        anonymous: List[Tuple[int, Bid]] = []

        for index, bid in enumerate(bids):
            key = bid.bidder_key
            if key is None:
                anonymous.append((index, bid))
                continue
            current = best.get(key)
            # Strictly greater: on equal amounts the earlier bid stays
            if current is None or bid.amount > current[1].amount:
                best[key] = (index, bid)

        entries = list(best.values()) + anonymous
        entries.sort(key=lambda entry: (-entry[1].amount, entry[0]))

        return [bid for _, bid in entries[: self.top_k]]

    def winner(self, bids: Sequence[Bid]) -> Optional[Bid]:
        """
        Highest bid across the whole list.

        Returns:
            Winning bid (earliest on ties) or None if there are no bids
        """
        if not bids:
            return None
        # max() keeps the first maximal element
        return max(bids, key=lambda bid: bid.amount)

    def rank(self, bids: Sequence[Bid]) -> Leaderboard:
        """Leaderboard and winner in one pass over the same snapshot"""
        return Leaderboard(top=tuple(self.top_bids(bids)), winner=self.winner(bids))
