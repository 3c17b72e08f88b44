"""
Charity Auction Marketplace

Entity projections, session context, notifications and the error
taxonomy shared by the client-side sync engine.
"""

from .models import (
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
)
from .errors import (
    MarketplaceError,
    ValidationError,
    InvalidTransition,
    RequestFailed,
    StaleReadRace,
)
from .notifications import Notifier, Notice, NoticeLevel
from .session import Session
from .config import ClientConfig

__all__ = [
    'Auction',
    'AuctionStatus',
    'AutoBidStatus',
    'BankDetails',
    'Bid',
    'StopReason',
    'Transaction',
    'TransactionType',
    'WithdrawalRequest',
    'WithdrawalStatus',
    'MarketplaceError',
    'ValidationError',
    'InvalidTransition',
    'RequestFailed',
    'StaleReadRace',
    'Notifier',
    'Notice',
    'NoticeLevel',
    'Session',
    'ClientConfig',
]
