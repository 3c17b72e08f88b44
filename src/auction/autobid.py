"""
Auto-bid Controller: a user's auto-bid participation in one auction.

States:
- DISABLED: no auto-bid running
- CONFIGURING_MAX: local-only, the user is entering a ceiling
- ACTIVE: backend is bidding on the user's behalf up to ``max_amount``
- STOPPED: backend ended participation and reported ``stop_reason``

The backend is the only writer of auto-bid status. Every enable/disable
call is followed by a status read and the state is taken from that read,
never from an optimistic guess. Status reads are sequenced so a read that
was issued earlier can never overwrite one that was issued later.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional

from marketplace.errors import InvalidTransition, RequestFailed, ValidationError
from marketplace.models import Auction, AutoBidStatus, StopReason

logger = logging.getLogger(__name__)


class AutoBidPhase(Enum):
    DISABLED = "disabled"
    CONFIGURING_MAX = "configuring_max"
    ACTIVE = "active"
    STOPPED = "stopped"


STOP_REASON_TEXT = {
    StopReason.HIGHEST_BIDDER: "You are already the highest bidder",
    StopReason.MAX_AMOUNT: "Your maximum amount was reached",
    StopReason.AUCTION_ENDED: "The auction has ended",
    StopReason.OTHER: "Auto-bid was stopped",
}


@dataclass(frozen=True)
class AutoBidState:
    """Immutable controller state; every UI flag is derived from it"""

    phase: AutoBidPhase
    max_amount: Optional[Decimal] = None
    stop_reason: Optional[StopReason] = None

    @property
    def popup_visible(self) -> bool:
        return self.phase is AutoBidPhase.CONFIGURING_MAX

    @property
    def can_configure(self) -> bool:
        return self.phase in (AutoBidPhase.DISABLED, AutoBidPhase.STOPPED)

    @property
    def can_disable(self) -> bool:
        return self.phase is AutoBidPhase.ACTIVE

    @property
    def description(self) -> str:
        if self.phase is AutoBidPhase.ACTIVE:
            return f"Auto-bid active up to {self.max_amount}"
        if self.phase is AutoBidPhase.STOPPED:
            return STOP_REASON_TEXT.get(self.stop_reason, STOP_REASON_TEXT[StopReason.OTHER])
        if self.phase is AutoBidPhase.CONFIGURING_MAX:
            return "Set your maximum amount"
        return "Auto-bid off"


DISABLED = AutoBidState(AutoBidPhase.DISABLED)
CONFIGURING = AutoBidState(AutoBidPhase.CONFIGURING_MAX)


@dataclass(frozen=True)
class StatusRead:
    """A status response tagged with the sequence number it was issued at"""

    sequence: int
    status: Optional[AutoBidStatus]


def parse_max_amount(value: Any) -> Decimal:
    """
    Parse a user-entered ceiling.

    Raises:
        ValidationError: If the value is empty or not a number
    """
    if value is None or str(value).strip() == "":
        raise ValidationError("Enter a maximum amount")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Maximum amount is not a number: {value!r}")
    if not amount.is_finite():
        raise ValidationError(f"Maximum amount is not a number: {value!r}")
    return amount


class AutoBidController:
    """
    State machine for one user's auto-bid in one auction.

    Args:
        backend: Object exposing ``enable_autobid``, ``disable_autobid`` and
            ``get_autobid_status`` coroutines
        auction_id: Auction this controller manages
    """

    def __init__(self, backend, auction_id: str):
        self.backend = backend
        self.auction_id = auction_id
        self.state: AutoBidState = DISABLED

        self._read_seq = 0
        self._applied_seq = 0
        self._observed = False
        self._before_configuring: AutoBidState = DISABLED
        self._disable_requested = False
        self._in_flight = False

    # ------------------------------------------------------------------
    # Local transitions
    # ------------------------------------------------------------------

    def begin_configuring(self, auction: Auction) -> AutoBidState:
        """
        Open the ceiling form.

        Raises:
            InvalidTransition: If the auction is not active or auto-bid is
                already active
        """
        if not auction.is_active:
            raise InvalidTransition("Auto-bid is only available while the auction is active")
        if not self.state.can_configure:
            raise InvalidTransition(f"Cannot configure auto-bid while {self.state.phase.value}")

        self._before_configuring = self.state
        self._set(CONFIGURING)
        return self.state

    def cancel_configuring(self) -> AutoBidState:
        """Close the ceiling form without submitting"""
        if self.state.phase is AutoBidPhase.CONFIGURING_MAX:
            self._set(self._before_configuring)
        return self.state

    def validate_max(self, max_amount: Any, auction: Auction) -> Decimal:
        """
        Validate a ceiling against the auction's minimum next bid.

        Raises:
            ValidationError: If the value is malformed or below
                ``currentPrice + bidIncrement``
        """
        amount = parse_max_amount(max_amount)
        minimum = auction.minimum_next_bid
        if amount < minimum:
            raise ValidationError(f"Maximum amount must be at least {minimum}")
        return amount

    # ------------------------------------------------------------------
    # Backend-issued transitions
    # ------------------------------------------------------------------

    async def enable(self, max_amount: Any, auction: Auction) -> AutoBidState:
        """
        Submit the ceiling and adopt the backend's resulting status.

        Raises:
            InvalidTransition: If not configuring or another call is running
            ValidationError: If the ceiling is invalid (nothing is sent)
            RequestFailed: If enable or the follow-up status read fails;
                the controller stays in CONFIGURING_MAX
        """
        if self._in_flight:
            raise InvalidTransition("An auto-bid request is already in progress")
        if self.state.phase is not AutoBidPhase.CONFIGURING_MAX:
            raise InvalidTransition("Start configuring auto-bid before enabling it")
        if not auction.is_active:
            raise InvalidTransition("Auto-bid is only available while the auction is active")

        amount = self.validate_max(max_amount, auction)

        self._in_flight = True
        try:
            await self.backend.enable_autobid(self.auction_id, amount)
            logger.info(f"Auto-bid enable accepted for {self.auction_id} (max {amount})")
            self._disable_requested = False
            return await self.refresh()
        finally:
            self._in_flight = False

    async def disable(self) -> AutoBidState:
        """
        Disable an active auto-bid.

        Raises:
            InvalidTransition: If auto-bid is not active
            RequestFailed: If the call fails; the controller stays ACTIVE
        """
        if self._in_flight:
            raise InvalidTransition("An auto-bid request is already in progress")
        if not self.state.can_disable:
            raise InvalidTransition("Auto-bid is not active")

        self._in_flight = True
        self._disable_requested = True
        try:
            try:
                await self.backend.disable_autobid(self.auction_id)
            except RequestFailed:
                self._disable_requested = False
                raise
            logger.info(f"Auto-bid disable accepted for {self.auction_id}")
            return await self.refresh()
        finally:
            self._in_flight = False

    async def read_status(self) -> StatusRead:
        """Fetch status, tagging it with the sequence it was issued at"""
        self._read_seq += 1
        sequence = self._read_seq
        status = await self.backend.get_autobid_status(self.auction_id)
        return StatusRead(sequence=sequence, status=status)

    async def refresh(self) -> AutoBidState:
        """Read and apply the backend status"""
        read = await self.read_status()
        return self.apply_status(read.status, sequence=read.sequence)

    # ------------------------------------------------------------------
    # Status fold
    # ------------------------------------------------------------------

    def apply_status(
        self, status: Optional[AutoBidStatus], sequence: Optional[int] = None
    ) -> AutoBidState:
        """
        Fold a backend status snapshot into the controller state.

        Args:
            status: Snapshot (None when the backend has no auto-bid record)
            sequence: Issue sequence from ``read_status``; reads older than
                the last applied one are discarded. None applies as newest.

        Returns:
            Resulting state
        """
        if sequence is not None:
            if sequence <= self._applied_seq:
                logger.debug(
                    f"Discarding stale auto-bid status for {self.auction_id} "
                    f"(seq {sequence} <= {self._applied_seq})"
                )
                return self.state
            self._applied_seq = sequence

        first_observation = not self._observed
        self._observed = True
        phase = self.state.phase

        if status is not None and status.is_active:
            # A pending disable stays pending until an inactive status resolves it
            self._set(AutoBidState(AutoBidPhase.ACTIVE, max_amount=status.max_amount))
            return self.state

        if phase is AutoBidPhase.CONFIGURING_MAX:
            # Local-only form stays open until submitted or cancelled
            return self.state

        if phase is AutoBidPhase.ACTIVE:
            if self._disable_requested or status is None:
                self._disable_requested = False
                self._set(DISABLED)
            else:
                self._set(self._stopped(status.stop_reason))
            return self.state

        if phase is AutoBidPhase.STOPPED:
            if status is not None and status.stop_reason is not StopReason.NONE:
                self._set(self._stopped(status.stop_reason))
            return self.state

        # DISABLED: only an auto-bid that stopped before we first looked is
        # surfaced as STOPPED
        if first_observation and status is not None and status.stop_reason is not StopReason.NONE:
            self._set(self._stopped(status.stop_reason))
        return self.state

    def _stopped(self, reason: StopReason) -> AutoBidState:
        if reason is StopReason.NONE:
            reason = StopReason.OTHER
        return AutoBidState(AutoBidPhase.STOPPED, stop_reason=reason)

    def _set(self, state: AutoBidState):
        if state != self.state:
            logger.info(
                f"Auto-bid {self.auction_id}: {self.state.phase.value} -> {state.phase.value}"
                + (f" ({state.stop_reason.value})" if state.stop_reason else "")
            )
        self.state = state
