"""
Tests for the headless views: channel wiring, actions and teardown.
"""

import sys
import os
from datetime import timedelta
from decimal import Decimal

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import pytest

from auction.autobid import AutoBidPhase
from auction.countdown import Remaining
from auction.outcomes import BidOutcome
from backend.client import UserBid
from marketplace.config import ClientConfig
from marketplace.errors import RequestFailed, ValidationError
from marketplace.models import AuctionStatus, BankDetails, WithdrawalStatus
from marketplace.notifications import NoticeLevel, Notifier
from sync.transport import InMemoryPushTransport
from views import (
    AdminWithdrawalsView,
    AuctionDetailView,
    DashboardView,
    MyBidsView,
    NO_BIDS,
    NgoWithdrawalsView,
    WalletView,
)
from views.withdrawals_view import _WithdrawalsView
from withdrawals.reconciler import WithdrawalReconciler
from fakes import (
    FakeBackend,
    T0,
    admin_session,
    bidder_session,
    make_auction,
    make_bid,
    make_tx,
    make_withdrawal,
    ngo_session,
    wait_until,
)

EMAIL = "ngo@example.org"


def fast_config(**overrides):
    values = dict(
        auction_poll_sec=0.05,
        wallet_poll_sec=0.05,
        withdrawal_poll_sec=0.05,
        admin_poll_sec=0.05,
        reconnect_base_sec=0.001,
        reconnect_max_sec=0.005,
    )
    values.update(overrides)
    return ClientConfig(**values)


@pytest.fixture
def backend():
    backend = FakeBackend()
    backend.auctions["a1"] = make_auction("a1", current="150", increment="10")
    backend.bids["a1"] = [make_bid("A", 100), make_bid("B", 150)]
    return backend


class TestAuctionDetailView:
    @pytest.mark.asyncio
    async def test_open_loads_snapshot_and_starts_clock(self, backend):
        view = AuctionDetailView(backend, "a1", bidder_session(), fast_config(), now_fn=lambda: T0)

        await view.open()
        await wait_until(lambda: view.auction is not None and view.remaining is not None)

        assert [b.bidder_id for b in view.top_bids] == ["B", "A"]
        assert view.suggested_bid == Decimal(160)
        assert view.remaining == Remaining(1, 0, 0)
        assert view.clock.running
        assert view.autobid_channel is not None

        await view.close()
        assert not view.clock.running
        assert all(channel.closed for channel in view.channels)

    @pytest.mark.asyncio
    async def test_anonymous_view_has_no_autobid_channel(self, backend):
        view = AuctionDetailView(backend, "a1", None, fast_config(), now_fn=lambda: T0)

        assert view.autobid_channel is None
        assert len(view.channels) == 1

    @pytest.mark.asyncio
    async def test_bid_below_minimum_not_sent(self, backend):
        notifier = Notifier()
        view = AuctionDetailView(backend, "a1", bidder_session(), fast_config(), notifier=notifier, now_fn=lambda: T0)
        await view.open()
        await wait_until(lambda: view.auction is not None)

        with pytest.raises(ValidationError):
            await view.place_bid("155")
        await view.close()

        assert backend.called("place_bid") == 0
        assert notifier.latest(NoticeLevel.ERROR) is not None

    @pytest.mark.asyncio
    async def test_place_bid_refetches(self, backend):
        view = AuctionDetailView(backend, "a1", bidder_session(), fast_config(auction_poll_sec=60), now_fn=lambda: T0)
        await view.open()
        await wait_until(lambda: view.auction is not None)

        await view.place_bid("200")
        await view.close()

        assert view.auction.current_price == Decimal(200)
        assert view.top_bids[0].amount == Decimal(200)
        assert view.suggested_bid == Decimal(210)

    @pytest.mark.asyncio
    async def test_bid_requires_login(self, backend):
        view = AuctionDetailView(backend, "a1", None, fast_config(), now_fn=lambda: T0)
        await view.open()
        await wait_until(lambda: view.auction is not None)

        with pytest.raises(ValidationError):
            await view.place_bid("500")
        await view.close()

    @pytest.mark.asyncio
    async def test_ended_auction_shows_winner_and_stops_clock(self, backend):
        backend.auctions["a1"] = make_auction("a1", status=AuctionStatus.ENDED, current="150")
        view = AuctionDetailView(backend, "a1", bidder_session("B"), fast_config(), now_fn=lambda: T0)

        await view.open()
        await wait_until(lambda: view.auction is not None)

        assert view.is_ended
        assert view.winner_name == "B"
        assert view.is_winner
        assert not view.clock.running
        assert view.remaining is None
        await view.close()

    @pytest.mark.asyncio
    async def test_end_auction_by_organizer(self, backend):
        session = bidder_session("org-1")
        view = AuctionDetailView(backend, "a1", session, fast_config(auction_poll_sec=60), now_fn=lambda: T0)
        await view.open()
        await wait_until(lambda: view.auction is not None)

        await view.end_auction()
        await view.close()

        assert view.is_ended
        assert not view.clock.running

    @pytest.mark.asyncio
    async def test_end_auction_forbidden_for_bidders(self, backend):
        view = AuctionDetailView(backend, "a1", bidder_session(), fast_config(), now_fn=lambda: T0)
        await view.open()
        await wait_until(lambda: view.auction is not None)

        with pytest.raises(ValidationError):
            await view.end_auction()
        await view.close()

        assert backend.called("end_auction") == 0

    @pytest.mark.asyncio
    async def test_autobid_flow(self, backend):
        view = AuctionDetailView(backend, "a1", bidder_session(), fast_config(), now_fn=lambda: T0)
        await view.open()
        await wait_until(lambda: view.auction is not None)

        view.configure_autobid()
        assert view.autobid_state.popup_visible
        state = await view.enable_autobid("400")
        assert state.phase is AutoBidPhase.ACTIVE

        state = await view.disable_autobid()
        await view.close()

        assert state.phase is AutoBidPhase.DISABLED

    @pytest.mark.asyncio
    async def test_failed_refresh_keeps_previous_state(self, backend):
        notifier = Notifier()
        view = AuctionDetailView(backend, "a1", None, fast_config(), notifier=notifier, now_fn=lambda: T0)
        await view.open()
        await wait_until(lambda: view.auction is not None)
        backend.fail["get_auction"] = RequestFailed("backend down", status=502)

        await wait_until(lambda: view.auction_channel.last_error is not None)
        await view.close()

        assert view.auction.auction_id == "a1"
        assert len(view.top_bids) == 2

    @pytest.mark.asyncio
    async def test_payment_confirmed_only_by_ledger(self, backend):
        view = AuctionDetailView(backend, "a1", bidder_session(), fast_config(), now_fn=lambda: T0)
        await view.open()
        await wait_until(lambda: view.auction is not None)

        assert await view.confirm_payment() is False
        backend.transactions["ngo-1"] = [make_tx("credit", 150, "completed", reference="a1")]
        assert await view.confirm_payment() is True
        await view.close()

        assert view.payment_confirmed

    @pytest.mark.asyncio
    async def test_payment_confirmed_by_auction_linked_credit(self, backend):
        view = AuctionDetailView(backend, "a1", bidder_session(), fast_config(), now_fn=lambda: T0)
        await view.open()
        await wait_until(lambda: view.auction is not None)
        backend.transactions["ngo-1"] = [make_tx("credit", 150, "completed", auction_id="a1")]

        confirmed = await view.confirm_payment()
        await view.close()

        assert confirmed is True


class TestWalletView:
    @pytest.fixture
    def wallet_backend(self):
        backend = FakeBackend()
        backend.transactions["ngo-1"] = [
            make_tx("credit", 500, "completed"),
            make_tx("credit", 200, "pending"),
            make_tx("debit", 100, "debited"),
        ]
        backend.bank_details[EMAIL] = BankDetails("Helping Hands", "12345678", "HDFC0001")
        return backend

    @pytest.mark.asyncio
    async def test_open_loads_balance_and_bank_details(self, wallet_backend):
        view = WalletView(wallet_backend, ngo_session(), "ngo-1", EMAIL, fast_config())

        await view.open()
        await wait_until(lambda: view.ledger.loaded)
        await view.close()

        assert view.available == Decimal(400)
        assert view.pending == Decimal(200)
        assert view.withdrawals_enabled

    @pytest.mark.asyncio
    async def test_wallet_update_signal_refetches(self, wallet_backend):
        transport = InMemoryPushTransport()
        view = WalletView(
            wallet_backend, ngo_session(), "ngo-1", EMAIL, fast_config(wallet_poll_sec=60), transport
        )
        await view.open()
        await wait_until(lambda: view.ledger.loaded and view.ledger_channel.push_connected)

        wallet_backend.transactions["ngo-1"].append(make_tx("credit", 50, "completed", tx_id="new"))
        await transport.publish("walletUpdate:ngo-1")
        await wait_until(lambda: view.available == Decimal(450))
        await view.close()

    @pytest.mark.asyncio
    async def test_withdrawal_over_available_rejected_locally(self, wallet_backend):
        notifier = Notifier()
        view = WalletView(wallet_backend, ngo_session(), "ngo-1", EMAIL, fast_config(), notifier=notifier)
        await view.open()
        await wait_until(lambda: view.ledger.loaded)

        with pytest.raises(ValidationError):
            await view.request_withdrawal("450", "education", "books")
        await view.close()

        assert wallet_backend.called("request_withdrawal") == 0
        assert notifier.latest(NoticeLevel.ERROR) is not None

    @pytest.mark.asyncio
    async def test_debit_refetches_ledger(self, wallet_backend):
        view = WalletView(wallet_backend, ngo_session(), "ngo-1", EMAIL, fast_config(wallet_poll_sec=60))
        await view.open()
        await wait_until(lambda: view.ledger.loaded)

        await view.debit("150", "supplies", "health")
        await view.close()

        assert view.available == Decimal(250)

    @pytest.mark.asyncio
    async def test_bank_details_failure_disables_withdrawals(self, wallet_backend):
        wallet_backend.fail["get_bank_details"] = RequestFailed("timeout")
        view = WalletView(wallet_backend, ngo_session(), "ngo-1", EMAIL, fast_config())

        await view.open()
        await view.close()

        assert not view.withdrawals_enabled


class TestWithdrawalViews:
    def test_base_view_requires_fetch(self):
        with pytest.raises(TypeError):
            _WithdrawalsView(FakeBackend(), admin_session(), WithdrawalReconciler(), "withdrawals")

    @pytest.mark.asyncio
    async def test_ngo_view_applies_processed_push(self):
        backend = FakeBackend()
        backend.withdrawals = [make_withdrawal("w1")]
        transport = InMemoryPushTransport()
        notifier = Notifier()
        view = NgoWithdrawalsView(
            backend, ngo_session(), EMAIL, fast_config(withdrawal_poll_sec=60), transport, notifier
        )
        await view.open()
        await wait_until(lambda: view.requests and view.withdrawals_channel.push_connected)

        processed = {
            "_id": "w1", "ngoEmail": EMAIL, "amount": 50, "status": "approved",
            "requestedAt": "2024-05-01T12:00:00Z", "processedAt": "2024-05-01T12:05:00Z",
        }
        await transport.publish("withdrawalProcessed", processed)
        await transport.publish("withdrawalProcessed", processed)
        await view.close()

        assert len(view.requests) == 1
        assert view.requests[0].status is WithdrawalStatus.APPROVED
        successes = [n for n in notifier.history if n.level is NoticeLevel.SUCCESS]
        assert len(successes) == 1

    @pytest.mark.asyncio
    async def test_ngo_view_ignores_other_ngos(self):
        backend = FakeBackend()
        transport = InMemoryPushTransport()
        view = NgoWithdrawalsView(backend, ngo_session(), EMAIL, fast_config(), transport)
        await view.open()
        await wait_until(lambda: view.withdrawals_channel.push_connected)

        await transport.publish("withdrawalRequested", {"_id": "x", "ngoEmail": "other@example.org", "amount": 5})
        await view.close()

        assert view.requests == []

    @pytest.mark.asyncio
    async def test_admin_queue(self):
        backend = FakeBackend()
        backend.withdrawals = [
            make_withdrawal("w1"),
            make_withdrawal("w2", status=WithdrawalStatus.REJECTED, processed_at=T0),
        ]
        transport = InMemoryPushTransport()
        notifier = Notifier()
        view = AdminWithdrawalsView(
            backend, admin_session(), fast_config(withdrawal_poll_sec=60), transport, notifier
        )
        await view.open()
        await wait_until(lambda: view.requests and view.withdrawals_channel.push_connected)
        assert [r.request_id for r in view.requests] == ["w1"]

        await transport.publish(
            "withdrawalRequested",
            {"_id": "w3", "ngoEmail": EMAIL, "amount": 20, "status": "pending",
             "requestedAt": "2024-05-01T13:00:00Z"},
        )
        assert [r.request_id for r in view.requests] == ["w3", "w1"]
        assert notifier.latest(NoticeLevel.INFO).message == "New withdrawal request received"

        await view.approve("w1")
        await view.close()

        assert backend.called("process_and_pay") == 1
        assert [r.request_id for r in view.requests] == ["w3"]

    @pytest.mark.asyncio
    async def test_admin_reject(self):
        backend = FakeBackend()
        backend.withdrawals = [make_withdrawal("w1")]
        view = AdminWithdrawalsView(backend, admin_session(), fast_config(withdrawal_poll_sec=60))
        await view.open()
        await wait_until(lambda: view.requests)

        await view.reject("w1", "missing invoice")
        await view.close()

        assert ("process_withdrawal", "w1", "rejected", "missing invoice") in backend.calls
        assert view.requests == []

    @pytest.mark.asyncio
    async def test_non_admin_cannot_process(self):
        backend = FakeBackend()
        backend.withdrawals = [make_withdrawal("w1")]
        view = AdminWithdrawalsView(backend, ngo_session(), fast_config())

        with pytest.raises(ValidationError):
            await view.approve("w1")
        await view.close()

        assert backend.called("process_and_pay") == 0


class TestDashboardView:
    @pytest.mark.asyncio
    async def test_countdowns_and_winners(self):
        backend = FakeBackend()
        backend.auctions = {
            "live": make_auction("live", end_at=T0 + timedelta(minutes=5)),
            "done": make_auction("done", status=AuctionStatus.ENDED),
            "quiet": make_auction("quiet", status=AuctionStatus.ENDED),
        }
        backend.bids = {"done": [make_bid("A", 100, auction_id="done"), make_bid("B", 300, auction_id="done")]}
        backend.pending_auctions = 4
        view = DashboardView(backend, admin_session(), fast_config(), now_fn=lambda: T0)

        await view.open()
        await wait_until(lambda: view.auctions and view.pending_count is not None)
        await view.close()

        assert view.countdowns == {"live": Remaining(0, 5, 0)}
        assert view.winners == {"done": "B", "quiet": NO_BIDS}
        assert view.pending_count == 4
        assert not view.ticker.running

    @pytest.mark.asyncio
    async def test_ticker_runs_only_with_active_auctions(self):
        backend = FakeBackend()
        backend.auctions = {"done": make_auction("done", status=AuctionStatus.ENDED)}
        view = DashboardView(backend, bidder_session(), fast_config(), now_fn=lambda: T0)

        await view.open()
        await wait_until(lambda: view.auctions)
        assert not view.ticker.running

        backend.auctions["live"] = make_auction("live", end_at=T0 + timedelta(minutes=5))
        await view.auctions_channel.refresh()
        assert view.ticker.running

        backend.auctions["live"] = make_auction("live", status=AuctionStatus.ENDED)
        await view.auctions_channel.refresh()
        assert not view.ticker.running
        await view.close()

    @pytest.mark.asyncio
    async def test_pending_count_admin_only(self):
        view = DashboardView(FakeBackend(), bidder_session(), fast_config())

        assert view.pending_channel is None


class TestMyBidsView:
    @pytest.mark.asyncio
    async def test_outcomes(self):
        backend = FakeBackend()
        ended = make_auction("e", status=AuctionStatus.ENDED, current="300")
        live = make_auction("l", current="200")
        backend.user_bids = [
            UserBid(make_bid("u1", 300, auction_id="e"), ended),
            UserBid(make_bid("u1", 150, auction_id="l"), live),
            UserBid(make_bid("u1", 90, auction_id="gone"), None),
        ]
        view = MyBidsView(backend, bidder_session(), fast_config())

        await view.open()
        await wait_until(lambda: view.entries)
        await view.close()

        assert [outcome for _, outcome in view.entries] == [
            BidOutcome.WON,
            BidOutcome.OUTBID,
            BidOutcome.UNAVAILABLE,
        ]
        assert len(view.outcomes(BidOutcome.WON)) == 1
