"""
Backend Client: async REST access to the marketplace API.

Every call either returns parsed entities or raises RequestFailed (or its
StaleReadRace subclass). Nothing here caches or mutates local state; the
sync layer decides what to do with each response.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional

import aiohttp
from pydantic import ValidationError as BodyValidationError

from marketplace.config import ClientConfig
from marketplace.errors import RequestFailed, StaleReadRace, ValidationError
from marketplace.models import (
    Auction,
    AutoBidStatus,
    BankDetails,
    Bid,
    Transaction,
    WithdrawalRequest,
    parse_amount,
)
from marketplace.session import Session
from observability.metrics import MetricsContext
from observability.tracing import backend_span, record_response

from .bodies import (
    BankDetailsBody,
    DebitBody,
    DisableAutoBidBody,
    EnableAutoBidBody,
    PlaceBidBody,
    ProcessWithdrawalBody,
    WithdrawalRequestBody,
)

logger = logging.getLogger(__name__)

# Backend messages that mean "the balance you validated against is gone"
_BALANCE_REJECTION_MARKERS = ("insufficient", "exceed", "balance")


@dataclass(frozen=True)
class LedgerSnapshot:
    transactions: List[Transaction]
    wallet_amount: Optional[Decimal] = None


@dataclass(frozen=True)
class UserBid:
    """One of the current user's bids with its auction (None if deleted)"""

    bid: Bid
    auction: Optional[Auction]


def _data(payload: Any, *keys: str) -> Any:
    """Unwrap the ``{data: ...}`` envelope, trying fallback keys in order"""
    if not isinstance(payload, dict):
        return payload
    for key in keys or ("data",):
        if key in payload and payload[key] is not None:
            return payload[key]
    return None


def _list(payload: Any, *keys: str) -> List[Dict[str, Any]]:
    value = _data(payload, *keys)
    return value if isinstance(value, list) else []


def _error_message(status: int, payload: Any) -> str:
    if isinstance(payload, dict):
        message = payload.get("message") or payload.get("error")
        if message:
            return str(message)
    return f"Request failed ({status})"


class BackendClient:
    """
    Marketplace REST client.

    Usage:
        async with BackendClient(ClientConfig.from_env(), session) as client:
            auction = await client.get_auction("a1")
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        session: Optional[Session] = None,
        http: Optional[aiohttp.ClientSession] = None,
    ):
        """
        Initialize client.

        Args:
            config: Client configuration (defaults if None)
            session: Authenticated session; None for anonymous access
            http: Shared aiohttp session (created lazily if None)
        """
        self.config = config or ClientConfig()
        self.session = session
        self._http = http
        self._owns_http = http is None
        self._timeout = aiohttp.ClientTimeout(total=self.config.request_timeout)

    async def __aenter__(self) -> "BackendClient":
        self._ensure_http()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    def _ensure_http(self) -> aiohttp.ClientSession:
        if self._http is None or self._http.closed:
            self._http = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_http = True
        return self._http

    async def close(self):
        if self._owns_http and self._http is not None and not self._http.closed:
            await self._http.close()
        self._http = None

    def use_session(self, session: Optional[Session]):
        """Swap the authenticated session (login/logout)"""
        self.session = session

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        endpoint: str,
        body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        balance_checked: bool = False,
        allow_not_found: bool = False,
    ) -> Any:
        """
        Perform one HTTP call.

        Args:
            method: HTTP method
            path: Path below the API base URL
            endpoint: Route template used for metrics/span names
            body: JSON body
            params: Query parameters
            balance_checked: Map balance rejections to StaleReadRace
            allow_not_found: Return None on 404 instead of raising

        Raises:
            RequestFailed: On network errors, timeouts and 4xx/5xx responses
        """
        http = self._ensure_http()
        url = f"{self.config.api_url}{path}"
        headers = self.session.auth_headers() if self.session else {}

        with MetricsContext(f"{method} {endpoint}") as metrics, backend_span(method, endpoint, url) as span:
            try:
                async with http.request(
                    method, url, json=body, params=params, headers=headers
                ) as resp:
                    payload = await self._read_payload(resp)
                    status = resp.status
                    record_response(span, status)
            except asyncio.TimeoutError as e:
                logger.error(f"{method} {endpoint} timed out")
                raise RequestFailed("Request timed out") from e
            except aiohttp.ClientError as e:
                logger.error(f"{method} {endpoint} network error: {e}")
                raise RequestFailed(f"Network error: {e}") from e

            if status == 404 and allow_not_found:
                metrics.outcome = "not_found"
                return None

            if status >= 400:
                message = _error_message(status, payload)
                logger.error(f"{method} {endpoint} failed ({status}): {message}")
                if balance_checked and status in (400, 409, 422) and any(
                    marker in message.lower() for marker in _BALANCE_REJECTION_MARKERS
                ):
                    metrics.outcome = "stale_balance"
                    raise StaleReadRace(
                        message or StaleReadRace.DEFAULT_MESSAGE, status=status, payload=payload
                    )
                raise RequestFailed(message, status=status, payload=payload)

            return payload

    @staticmethod
    async def _read_payload(resp: aiohttp.ClientResponse) -> Any:
        text = await resp.text()
        if not text:
            return None
        try:
            return json.loads(text)
        except ValueError:
            return text

    @staticmethod
    def _body(model, **fields) -> Dict[str, Any]:
        try:
            return model(**fields).to_json()
        except BodyValidationError as e:
            raise ValidationError(str(e)) from e

    # ------------------------------------------------------------------
    # Auctions and bids
    # ------------------------------------------------------------------

    async def get_auction(self, auction_id: str) -> Auction:
        payload = await self._request("GET", f"/auctions/{auction_id}", "/auctions/:id")
        return Auction.from_payload(_data(payload) or {})

    async def get_auctions(self) -> List[Auction]:
        payload = await self._request("GET", "/auctions/all", "/auctions/all")
        return [Auction.from_payload(item) for item in _list(payload, "data", "auctions")]

    async def get_pending_auctions_count(self) -> int:
        payload = await self._request("GET", "/auctions/pending", "/auctions/pending")
        if isinstance(payload, dict) and "count" in payload:
            return int(payload["count"] or 0)
        return len(_list(payload))

    async def end_auction(self, auction_id: str) -> None:
        await self._request("PUT", f"/auctions/{auction_id}/end", "/auctions/:id/end")

    async def get_auction_bids(self, auction_id: str) -> List[Bid]:
        payload = await self._request("GET", f"/bids/auction/{auction_id}", "/bids/auction/:id")
        return [Bid.from_payload(item) for item in _list(payload)]

    async def place_bid(self, auction_id: str, amount: Decimal) -> None:
        body = self._body(PlaceBidBody, amount=float(amount))
        await self._request("POST", f"/bids/{auction_id}", "/bids/:id", body=body)

    async def get_user_bids(self) -> List[UserBid]:
        payload = await self._request("GET", "/bids/user", "/bids/user")
        result = []
        for item in _list(payload):
            auction = item.get("auction")
            result.append(
                UserBid(
                    bid=Bid.from_payload(item),
                    auction=Auction.from_payload(auction) if isinstance(auction, dict) else None,
                )
            )
        return result

    # ------------------------------------------------------------------
    # Auto-bid
    # ------------------------------------------------------------------

    async def enable_autobid(self, auction_id: str, max_amount: Decimal) -> None:
        body = self._body(EnableAutoBidBody, auction_id=auction_id, max_amount=float(max_amount))
        await self._request("POST", "/autobid/enable", "/autobid/enable", body=body)

    async def disable_autobid(self, auction_id: str) -> None:
        body = self._body(DisableAutoBidBody, auction_id=auction_id)
        await self._request("POST", "/autobid/disable", "/autobid/disable", body=body)

    async def get_autobid_status(self, auction_id: str) -> Optional[AutoBidStatus]:
        """Current auto-bid status, None when the user has none for this auction"""
        payload = await self._request(
            "GET",
            f"/autobid/status/{auction_id}",
            "/autobid/status/:auctionId",
            allow_not_found=True,
        )
        return AutoBidStatus.from_payload(_data(payload, "autoBid", "data"))

    # ------------------------------------------------------------------
    # Ledger
    # ------------------------------------------------------------------

    async def get_transactions(self, ngo_id: str) -> LedgerSnapshot:
        payload = await self._request(
            "GET", f"/ngos/{ngo_id}/transactions", "/ngos/:id/transactions"
        )
        wallet = payload.get("walletAmount") if isinstance(payload, dict) else None
        return LedgerSnapshot(
            transactions=[Transaction.from_payload(item) for item in _list(payload)],
            wallet_amount=parse_amount(wallet) if wallet is not None else None,
        )

    async def add_debit(
        self, ngo_id: str, amount: Decimal, description: str, domain: str
    ) -> None:
        body = self._body(DebitBody, amount=float(amount), description=description, domain=domain)
        await self._request(
            "POST",
            f"/ngos/{ngo_id}/transactions/debit",
            "/ngos/:id/transactions/debit",
            body=body,
            balance_checked=True,
        )

    # ------------------------------------------------------------------
    # Withdrawals
    # ------------------------------------------------------------------

    async def request_withdrawal(
        self, ngo_email: str, amount: Decimal, domain: str, description: str
    ) -> Optional[WithdrawalRequest]:
        body = self._body(
            WithdrawalRequestBody,
            ngo_email=ngo_email,
            amount=float(amount),
            domain=domain,
            description=description,
        )
        payload = await self._request(
            "POST",
            "/withdrawals/request",
            "/withdrawals/request",
            body=body,
            balance_checked=True,
        )
        created = _data(payload, "data", "request")
        return WithdrawalRequest.from_payload(created) if isinstance(created, dict) else None

    async def get_my_withdrawals(self, ngo_email: str) -> List[WithdrawalRequest]:
        payload = await self._request(
            "GET",
            "/withdrawals/my-requests",
            "/withdrawals/my-requests",
            params={"ngoEmail": ngo_email},
        )
        return [WithdrawalRequest.from_payload(item) for item in _list(payload)]

    async def get_all_withdrawals(self) -> List[WithdrawalRequest]:
        payload = await self._request("GET", "/withdrawals/all", "/withdrawals/all")
        return [WithdrawalRequest.from_payload(item) for item in _list(payload)]

    async def process_withdrawal(
        self, request_id: str, status: str, admin_note: Optional[str] = None
    ) -> Optional[WithdrawalRequest]:
        body = self._body(ProcessWithdrawalBody, status=status, admin_note=admin_note)
        payload = await self._request(
            "PUT",
            f"/withdrawals/{request_id}/process",
            "/withdrawals/:id/process",
            body=body,
        )
        updated = _data(payload)
        return WithdrawalRequest.from_payload(updated) if isinstance(updated, dict) else None

    async def process_and_pay(self, request_id: str) -> None:
        await self._request(
            "POST",
            f"/payouts/withdrawal/{request_id}/process-and-pay",
            "/payouts/withdrawal/:id/process-and-pay",
        )

    # ------------------------------------------------------------------
    # Bank details
    # ------------------------------------------------------------------

    async def get_bank_details(self, email: str) -> Optional[BankDetails]:
        payload = await self._request(
            "GET",
            "/ngos/bank-details",
            "/ngos/bank-details",
            params={"email": email},
            allow_not_found=True,
        )
        return BankDetails.from_payload(_data(payload, "data", "bankDetails"))

    async def save_bank_details(self, email: str, details: BankDetails) -> None:
        body = self._body(
            BankDetailsBody,
            email=email,
            account_holder_name=details.account_holder,
            account_number=details.account_number,
            ifsc=details.ifsc,
            bank_name=details.bank_name or None,
        )
        await self._request("PUT", "/ngos/bank-details", "/ngos/bank-details", body=body)
