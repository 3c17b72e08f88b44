"""
Tests for entity parsing, session context, notifier and configuration.
"""

import sys
import os
from datetime import datetime, timezone
from decimal import Decimal

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import pytest

from auction.outcomes import BidOutcome, bid_outcome
from marketplace.config import ClientConfig
from marketplace.models import (
    Auction,
    AuctionStatus,
    AutoBidStatus,
    BankDetails,
    Bid,
    StopReason,
    Transaction,
    TransactionType,
    WithdrawalRequest,
    WithdrawalStatus,
    normalize_stop_reason,
    parse_amount,
    parse_timestamp,
)
from marketplace.notifications import NoticeLevel, Notifier
from marketplace.session import Session, is_authenticated
from fakes import make_auction, make_bid


class TestParsing:
    def test_parse_amount(self):
        assert parse_amount("12.50") == Decimal("12.50")
        assert parse_amount(7) == Decimal(7)
        assert parse_amount(None) == Decimal(0)
        assert parse_amount("abc") == Decimal(0)

    def test_parse_timestamp(self):
        expected = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

        assert parse_timestamp("2024-05-01T12:00:00Z") == expected
        assert parse_timestamp("2024-05-01T12:00:00") == expected
        assert parse_timestamp(1714564800000) == expected
        assert parse_timestamp("not a date") is None
        assert parse_timestamp(None) is None

    @pytest.mark.parametrize("raw,expected", [
        ("max-amount", StopReason.MAX_AMOUNT),
        ("max_amount", StopReason.MAX_AMOUNT),
        ("maxAmount", StopReason.MAX_AMOUNT),
        ("MAX_AMOUNT", StopReason.MAX_AMOUNT),
        ("highestBidder", StopReason.HIGHEST_BIDDER),
        ("auction-ended", StopReason.AUCTION_ENDED),
        ("budget", StopReason.OTHER),
        (None, StopReason.NONE),
        ("", StopReason.NONE),
    ])
    def test_stop_reason(self, raw, expected):
        assert normalize_stop_reason(raw) is expected

    def test_auction_clamps_current_price(self):
        auction = Auction.from_payload({"_id": "a1", "status": "active", "startingPrice": 100, "currentPrice": 50})

        assert auction.current_price == Decimal(100)

    def test_auction_unknown_status(self):
        assert Auction.from_payload({"_id": "a1", "status": "weird"}).status is AuctionStatus.DRAFT

    def test_bid_with_bidder_reference(self):
        bid = Bid.from_payload({"_id": "b1", "bidder": "u9", "amount": "10", "auctionId": "a1"})

        assert bid.bidder_id == "u9"
        assert bid.bidder_key == "id:u9"
        assert bid.auction_id == "a1"

    def test_autobid_status(self):
        status = AutoBidStatus.from_payload({"isActive": False, "maxAmount": 500, "stopReason": "max_amount"})

        assert status.stop_reason is StopReason.MAX_AMOUNT
        assert AutoBidStatus.from_payload(None) is None

    def test_transaction(self):
        tx = Transaction.from_payload({"_id": "t1", "type": "DEBIT", "amount": 5, "status": "Debited"})

        assert tx.type is TransactionType.DEBIT
        assert tx.status == "debited"
        assert tx.auction_id is None

    def test_transaction_auction_link(self):
        populated = Transaction.from_payload(
            {"_id": "t2", "type": "credit", "amount": 150, "status": "completed",
             "description": "Auction Payment", "auction": {"_id": "a1", "title": "Quilt"}}
        )
        bare = Transaction.from_payload({"_id": "t3", "type": "credit", "amount": 150, "auctionId": "a2"})

        assert populated.auction_id == "a1"
        assert bare.auction_id == "a2"

    def test_withdrawal_from_populated_ngo(self):
        request = WithdrawalRequest.from_payload(
            {"_id": "w1", "ngo": {"email": "ngo@example.org"}, "amount": 10, "status": "REJECTED",
             "adminNote": "no"}
        )

        assert request.ngo_key == "ngo@example.org"
        assert request.status is WithdrawalStatus.REJECTED
        assert request.admin_note == "no"

    def test_bank_details_round_trip_shape(self):
        details = BankDetails("A", "1234", "IFSC0001", "Bank")

        assert BankDetails.from_payload(details.to_payload()) == details
        assert BankDetails.from_payload({"accountHolderName": "A"}) is None


class TestBidOutcome:
    def test_labels(self):
        live = make_auction(current="200")
        ended = make_auction(status=AuctionStatus.ENDED, current="200")

        assert bid_outcome(make_bid("u", 200), live) is BidOutcome.WINNING
        assert bid_outcome(make_bid("u", 150), live) is BidOutcome.OUTBID
        assert bid_outcome(make_bid("u", 200), ended) is BidOutcome.WON
        assert bid_outcome(make_bid("u", 150), ended) is BidOutcome.LOST
        assert bid_outcome(make_bid("u", 150), None) is BidOutcome.UNAVAILABLE


class TestSession:
    def test_from_login(self):
        session = Session.from_login(
            {"token": "t", "user": {"_id": "u1", "role": "ngo", "email": "NGO@example.org"}}
        )

        assert session.user_id == "u1"
        assert session.is_ngo
        assert session.owns_ngo("ngo@example.org")
        assert not session.owns_ngo("other@example.org")
        assert session.auth_headers() == {"Authorization": "Bearer t"}

    def test_login_without_token(self):
        with pytest.raises(ValueError):
            Session.from_login({"user": {}})

    def test_is_authenticated(self):
        assert not is_authenticated(None)
        assert is_authenticated(Session(token="t", user_id="u"))


class TestNotifier:
    def test_history_and_latest(self):
        notifier = Notifier(max_history=2)
        notifier.info("a")
        notifier.error("b")
        notifier.success("c")

        assert [n.message for n in notifier.history] == ["b", "c"]
        assert notifier.latest(NoticeLevel.ERROR).message == "b"
        assert notifier.latest(NoticeLevel.WARNING) is None

    def test_listener_errors_are_contained(self):
        notifier = Notifier()
        received = []

        def broken(notice):
            raise RuntimeError("listener bug")

        notifier.add_listener(broken)
        remove = notifier.add_listener(received.append)
        notifier.warning("w")
        remove()
        notifier.warning("x")

        assert [n.message for n in received] == ["w"]


class TestConfig:
    def test_defaults(self, monkeypatch):
        for name in ["MARKET_API_URL", "MARKET_AUCTION_POLL_SEC", "MARKET_PUSH_ENABLED", "MARKET_TOP_BIDS"]:
            monkeypatch.delenv(name, raising=False)

        config = ClientConfig.from_env()

        assert config.api_url == "http://localhost:5000/api"
        assert config.auction_poll_sec == 2.0
        assert config.admin_poll_sec == 30.0
        assert config.push_enabled
        assert config.top_bids == 3

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("MARKET_API_URL", "https://market.example.org/api/")
        monkeypatch.setenv("MARKET_PUSH_ENABLED", "false")
        monkeypatch.setenv("MARKET_RECONNECT_WARN_AFTER", "2")

        config = ClientConfig.from_env()

        assert config.api_url == "https://market.example.org/api"
        assert not config.push_enabled
        assert config.reconnect_warn_after == 2
