"""
Views module: headless view controllers that own channels and timers.
"""

from .base import View
from .auction_view import AuctionDetailView
from .wallet_view import WalletView, wallet_update_event
from .withdrawals_view import NgoWithdrawalsView, AdminWithdrawalsView, request_from_event
from .dashboard_view import DashboardView, NO_BIDS
from .my_bids_view import MyBidsView

__all__ = [
    "View",
    "AuctionDetailView",
    "WalletView",
    "wallet_update_event",
    "NgoWithdrawalsView",
    "AdminWithdrawalsView",
    "request_from_event",
    "DashboardView",
    "NO_BIDS",
    "MyBidsView",
]
