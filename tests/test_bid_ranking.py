"""
Unit tests for BidRanker.

Tests:
- One entry per bidder, highest bid kept
- Ordering by amount, ties by first-seen order
- Winner across all bids
- Randomized invariants over generated bid lists
"""

import sys
import os
import random

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import pytest
from decimal import Decimal

from auction.ranking import BidRanker, Leaderboard
from marketplace.models import Bid
from fakes import make_bid


class TestTopBids:
    """Test leaderboard derivation"""

    def test_scenario_lower_bid_suppressed(self):
        """A's lower bid is replaced by A's higher one"""
        bids = [make_bid("A", 100), make_bid("B", 150), make_bid("A", 200)]

        top = BidRanker().top_bids(bids)

        assert [(b.bidder_id, b.amount) for b in top] == [("A", Decimal(200)), ("B", Decimal(150))]

    def test_limited_to_k(self):
        bids = [make_bid(f"u{i}", 100 + i) for i in range(6)]

        top = BidRanker(top_k=3).top_bids(bids)

        assert [b.bidder_id for b in top] == ["u5", "u4", "u3"]

    def test_tie_broken_by_first_seen(self):
        """Equal amounts keep input order"""
        bids = [make_bid("A", 100), make_bid("B", 100), make_bid("C", 100)]

        top = BidRanker().top_bids(bids)

        assert [b.bidder_id for b in top] == ["A", "B", "C"]

    def test_equal_rebid_keeps_earlier_bid(self):
        first = make_bid("A", 100, bid_id="first")
        again = make_bid("A", 100, bid_id="again")

        top = BidRanker().top_bids([first, again])

        assert [b.bid_id for b in top] == ["first"]

    def test_name_identity_fallback(self):
        """Bidders without ids merge by name"""
        bids = [
            Bid("b1", "a1", None, "Alice", Decimal(100)),
            Bid("b2", "a1", None, "Alice", Decimal(300)),
            Bid("b3", "a1", None, "Bob", Decimal(200)),
        ]

        top = BidRanker().top_bids(bids)

        assert [b.bid_id for b in top] == ["b2", "b3"]

    def test_anonymous_bids_never_merged(self):
        bids = [
            Bid("b1", "a1", None, None, Decimal(100)),
            Bid("b2", "a1", None, None, Decimal(90)),
        ]

        top = BidRanker().top_bids(bids)

        assert [b.bid_id for b in top] == ["b1", "b2"]

    def test_empty(self):
        assert BidRanker().top_bids([]) == []

    def test_invalid_k(self):
        with pytest.raises(ValueError):
            BidRanker(top_k=0)


class TestWinner:
    """Test winner derivation"""

    def test_scenario_winner(self):
        bids = [make_bid("A", 100), make_bid("B", 150), make_bid("A", 200)]

        board = BidRanker().rank(bids)

        assert board.winner.bidder_id == "A"
        assert board.winner.amount == Decimal(200)
        assert board.is_winner("A")
        assert not board.is_winner("B")

    def test_no_winner_for_empty_list(self):
        board = BidRanker().rank([])

        assert board.winner is None
        assert not board.has_winner
        assert board.winner_name is None

    def test_unknown_name(self):
        board = Leaderboard(top=(), winner=Bid("b1", "a1", "x", None, Decimal(5)))

        assert board.winner_name == "Unknown"

    def test_winner_considers_all_bids(self):
        """Winner is not limited to the top-K"""
        ranker = BidRanker(top_k=1)
        bids = [make_bid("A", 10), make_bid("B", 30), make_bid("C", 20)]

        assert ranker.winner(bids).bidder_id == "B"


class TestRankingProperties:
    """Randomized invariants"""

    def _random_bids(self, rng):
        bidders = ["A", "B", "C", "D", "E", None]
        bids = []
        for i in range(rng.randint(0, 25)):
            bidder = rng.choice(bidders)
            bids.append(make_bid(bidder, rng.randint(1, 50) * 10, bid_id=f"b{i}"))
        return bids

    def test_invariants(self):
        rng = random.Random(42)
        ranker = BidRanker()

        for _ in range(300):
            bids = self._random_bids(rng)
            board = ranker.rank(bids)
            top = list(board.top)

            assert len(top) <= 3
            keys = [b.bidder_key for b in top if b.bidder_key is not None]
            assert len(keys) == len(set(keys))
            assert all(top[i].amount >= top[i + 1].amount for i in range(len(top) - 1))

            if bids:
                assert all(board.winner.amount >= b.amount for b in bids)
            else:
                assert board.winner is None

    def test_idempotent(self):
        rng = random.Random(7)
        ranker = BidRanker()

        for _ in range(50):
            bids = self._random_bids(rng)
            assert ranker.rank(bids) == ranker.rank(list(bids))
