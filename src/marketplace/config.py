"""
Client configuration.

Endpoints, poll cadences and reconnect tuning for the marketplace client,
loaded from environment variables.
"""

import os
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class ClientConfig:
    """
    Marketplace client settings.

    Attributes:
        api_url: Base URL of the REST backend (including the /api prefix)
        request_timeout: Per-request timeout in seconds
        auction_poll_sec: Cadence for auction, bids and auto-bid status
        wallet_poll_sec: Cadence for the NGO ledger
        withdrawal_poll_sec: Cadence for withdrawal requests
        admin_poll_sec: Cadence for the dashboard list and admin counters
        push_url: Push channel server (NATS)
        push_enabled: Whether to subscribe to push topics at all
        reconnect_warn_after: Consecutive push failures before a soft warning
        reconnect_base_sec: First reconnect delay
        reconnect_max_sec: Reconnect delay cap
        top_bids: Leaderboard size
    """

    api_url: str = "http://localhost:5000/api"
    request_timeout: float = 10.0
    auction_poll_sec: float = 2.0
    wallet_poll_sec: float = 15.0
    withdrawal_poll_sec: float = 10.0
    admin_poll_sec: float = 30.0
    push_url: str = "nats://127.0.0.1:4222"
    push_enabled: bool = True
    reconnect_warn_after: int = 5
    reconnect_base_sec: float = 1.0
    reconnect_max_sec: float = 30.0
    top_bids: int = 3

    @classmethod
    def from_env(cls) -> "ClientConfig":
        """Create config from environment variables"""
        config = cls(
            api_url=os.getenv("MARKET_API_URL", "http://localhost:5000/api").rstrip("/"),
            request_timeout=float(os.getenv("MARKET_REQUEST_TIMEOUT", "10")),
            auction_poll_sec=float(os.getenv("MARKET_AUCTION_POLL_SEC", "2")),
            wallet_poll_sec=float(os.getenv("MARKET_WALLET_POLL_SEC", "15")),
            withdrawal_poll_sec=float(os.getenv("MARKET_WITHDRAWAL_POLL_SEC", "10")),
            admin_poll_sec=float(os.getenv("MARKET_ADMIN_POLL_SEC", "30")),
            push_url=os.getenv("MARKET_PUSH_URL", "nats://127.0.0.1:4222"),
            push_enabled=_env_bool("MARKET_PUSH_ENABLED", "true"),
            reconnect_warn_after=int(os.getenv("MARKET_RECONNECT_WARN_AFTER", "5")),
            reconnect_base_sec=float(os.getenv("MARKET_RECONNECT_BASE_SEC", "1")),
            reconnect_max_sec=float(os.getenv("MARKET_RECONNECT_MAX_SEC", "30")),
            top_bids=int(os.getenv("MARKET_TOP_BIDS", "3")),
        )
        logger.debug(f"Loaded client config for {config.api_url}")
        return config
