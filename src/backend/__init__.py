"""
Backend module: async REST client for the marketplace API.
"""

from .client import BackendClient, LedgerSnapshot, UserBid

__all__ = [
    "BackendClient",
    "LedgerSnapshot",
    "UserBid",
]
