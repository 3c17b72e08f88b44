"""
Marketplace entities: read-only projections of backend-owned records.

Every entity is parsed from the backend's JSON shape (Mongo-style ``_id``
keys, camelCase fields, nested ``bidder``/``ngo`` documents) into a frozen
dataclass. The client never mutates these; a fresher snapshot or event
replaces them.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Optional


class AuctionStatus(Enum):
    """Auction lifecycle states"""

    DRAFT = "draft"
    PENDING = "pending"
    ACTIVE = "active"
    ENDED = "ended"


class StopReason(Enum):
    """Backend-assigned reason an auto-bid stopped"""

    NONE = "none"
    HIGHEST_BIDDER = "highest-bidder"
    MAX_AMOUNT = "max-amount"
    AUCTION_ENDED = "auction-ended"
    OTHER = "other"


class TransactionType(Enum):
    CREDIT = "credit"
    DEBIT = "debit"


class WithdrawalStatus(Enum):
    """Withdrawal request states (pending -> approved | rejected, once)"""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


def parse_amount(value: Any) -> Decimal:
    """
    Parse a money amount from JSON.

    Args:
        value: Number or numeric string

    Returns:
        Decimal amount (0 for missing or malformed values)
    """
    if value is None or value == "":
        return Decimal("0")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal("0")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse an ISO-8601 string or epoch milliseconds into an aware datetime.

    Naive timestamps are assumed to be UTC.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        parsed = datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _ref_id(value: Any) -> Optional[str]:
    """Extract an id from either a populated document or a bare reference"""
    if value is None:
        return None
    if isinstance(value, dict):
        ref = value.get("_id") or value.get("id")
        return str(ref) if ref else None
    return str(value) or None


def _entity_id(payload: Dict[str, Any]) -> str:
    return str(payload.get("_id") or payload.get("id") or "")


def normalize_stop_reason(value: Any) -> StopReason:
    """
    Map a backend stop-reason string onto the StopReason taxonomy.

    Accepts ``max_amount``, ``maxAmount`` and ``max-amount`` alike. Anything
    unrecognised becomes OTHER; a missing reason becomes NONE.
    """
    if value is None or value == "":
        return StopReason.NONE
    text = str(value).strip()
    if text not in (text.lower(), text.upper()):
        # camelCase -> kebab-case
        text = "".join(f"-{c}" if c.isupper() else c for c in text)
    kebab = text.lower().replace("_", "-").replace(" ", "-").strip("-")
    for reason in StopReason:
        if reason.value == kebab:
            return reason
    return StopReason.OTHER


@dataclass(frozen=True)
class Auction:
    auction_id: str
    status: AuctionStatus
    starting_price: Decimal
    current_price: Decimal
    bid_increment: Decimal
    end_at: Optional[datetime]
    total_bids: int = 0
    title: str = ""
    ngo_id: Optional[str] = None
    ngo_name: str = ""
    ngo_email: str = ""
    organizer_id: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status is AuctionStatus.ACTIVE

    @property
    def minimum_next_bid(self) -> Decimal:
        """Smallest bid (or auto-bid ceiling) the backend will accept"""
        return self.current_price + self.bid_increment

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Auction":
        ngo = payload.get("ngo") if isinstance(payload.get("ngo"), dict) else {}
        try:
            status = AuctionStatus(str(payload.get("status", "draft")).lower())
        except ValueError:
            status = AuctionStatus.DRAFT
        starting = parse_amount(payload.get("startingPrice"))
        current = parse_amount(payload.get("currentPrice", starting))
        return cls(
            auction_id=_entity_id(payload),
            status=status,
            starting_price=starting,
            current_price=max(current, starting),
            bid_increment=parse_amount(payload.get("bidIncrement")),
            end_at=parse_timestamp(payload.get("endDate") or payload.get("endTimestamp")),
            total_bids=int(payload.get("totalBids") or 0),
            title=payload.get("title") or "",
            ngo_id=_ref_id(payload.get("ngo")),
            ngo_name=ngo.get("name") or "",
            ngo_email=ngo.get("email") or "",
            organizer_id=_ref_id(payload.get("organizer")),
        )


@dataclass(frozen=True)
class Bid:
    """A single observed bid. Append-only."""

    bid_id: str
    auction_id: Optional[str]
    bidder_id: Optional[str]
    bidder_name: Optional[str]
    amount: Decimal
    placed_at: Optional[datetime] = None

    @property
    def bidder_key(self) -> Optional[str]:
        """
        Identity used to merge a bidder's bids.

        Falls back to the bidder's name; None means the bid cannot be
        attributed and must never be merged with another.
        """
        if self.bidder_id:
            return f"id:{self.bidder_id}"
        if self.bidder_name:
            return f"name:{self.bidder_name}"
        return None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Bid":
        bidder = payload.get("bidder")
        if isinstance(bidder, dict):
            bidder_id = _ref_id(bidder)
            bidder_name = bidder.get("name") or None
        else:
            bidder_id = _ref_id(bidder) or payload.get("bidderId")
            bidder_name = payload.get("bidderName") or None
        auction = payload.get("auction", payload.get("auctionId"))
        return cls(
            bid_id=_entity_id(payload),
            auction_id=_ref_id(auction),
            bidder_id=bidder_id,
            bidder_name=bidder_name,
            amount=parse_amount(payload.get("amount")),
            placed_at=parse_timestamp(
                payload.get("time") or payload.get("timestamp") or payload.get("createdAt")
            ),
        )


@dataclass(frozen=True)
class AutoBidStatus:
    auction_id: Optional[str]
    user_id: Optional[str]
    is_active: bool
    max_amount: Decimal
    stop_reason: StopReason = StopReason.NONE

    @classmethod
    def from_payload(cls, payload: Optional[Dict[str, Any]]) -> Optional["AutoBidStatus"]:
        """Parse ``autoBid`` from a status response; None when no record exists"""
        if not payload:
            return None
        return cls(
            auction_id=_ref_id(payload.get("auction", payload.get("auctionId"))),
            user_id=_ref_id(payload.get("user", payload.get("userId"))),
            is_active=bool(payload.get("isActive")),
            max_amount=parse_amount(payload.get("maxAmount")),
            stop_reason=normalize_stop_reason(payload.get("stopReason")),
        )


@dataclass(frozen=True)
class Transaction:
    """Ledger entry. Status may move from pending to a terminal state once."""

    transaction_id: str
    ngo_id: Optional[str]
    type: TransactionType
    amount: Decimal
    status: str
    domain: str = ""
    description: str = ""
    reference: str = ""
    auction_id: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Transaction":
        try:
            tx_type = TransactionType(str(payload.get("type", "")).lower())
        except ValueError:
            tx_type = TransactionType.CREDIT
        return cls(
            transaction_id=_entity_id(payload),
            ngo_id=_ref_id(payload.get("ngo", payload.get("ngoId"))),
            type=tx_type,
            amount=parse_amount(payload.get("amount")),
            status=str(payload.get("status") or "").lower(),
            domain=payload.get("domain") or "",
            description=payload.get("description") or "",
            reference=str(payload.get("reference") or ""),
            auction_id=_ref_id(payload.get("auction", payload.get("auctionId"))),
            created_at=parse_timestamp(payload.get("createdAt")),
        )


@dataclass(frozen=True)
class WithdrawalRequest:
    """
    A single NGO withdrawal request.

    ``ngo_key`` holds the NGO's email: the withdrawal endpoints key NGOs by
    email while the ledger keys them by id.
    """

    request_id: str
    ngo_key: str
    amount: Decimal
    status: WithdrawalStatus
    domain: str = ""
    description: str = ""
    requested_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    admin_note: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        return self.status is WithdrawalStatus.PENDING

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "WithdrawalRequest":
        ngo = payload.get("ngo")
        ngo_key = payload.get("ngoEmail") or (
            ngo.get("email") if isinstance(ngo, dict) else ngo
        )
        try:
            status = WithdrawalStatus(str(payload.get("status", "pending")).lower())
        except ValueError:
            status = WithdrawalStatus.PENDING
        return cls(
            request_id=_entity_id(payload),
            ngo_key=str(ngo_key or ""),
            amount=parse_amount(payload.get("amount")),
            status=status,
            domain=payload.get("domain") or "",
            description=payload.get("description") or "",
            requested_at=parse_timestamp(
                payload.get("requestedAt") or payload.get("createdAt")
            ),
            processed_at=parse_timestamp(payload.get("processedAt")),
            admin_note=payload.get("adminNote") or None,
        )


@dataclass(frozen=True)
class BankDetails:
    """Payout destination; withdrawals stay disabled until one exists"""

    account_holder: str
    account_number: str
    ifsc: str
    bank_name: str = ""

    @classmethod
    def from_payload(cls, payload: Optional[Dict[str, Any]]) -> Optional["BankDetails"]:
        if not payload or not payload.get("accountNumber"):
            return None
        return cls(
            account_holder=payload.get("accountHolderName") or payload.get("accountHolder") or "",
            account_number=str(payload["accountNumber"]),
            ifsc=payload.get("ifsc") or payload.get("ifscCode") or "",
            bank_name=payload.get("bankName") or "",
        )

    def to_payload(self) -> Dict[str, Any]:
        return {
            "accountHolderName": self.account_holder,
            "accountNumber": self.account_number,
            "ifsc": self.ifsc,
            "bankName": self.bank_name,
        }
