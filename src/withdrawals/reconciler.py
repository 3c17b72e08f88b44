"""
Withdrawal Reconciler: one authoritative list of withdrawal requests built
from point-in-time fetches and push events.

Merge rules, applied per request id:
- A ``requested`` event for a known id is a no-op
- Status never regresses: approved/rejected never return to pending
- Between two processed versions the later ``processedAt`` wins; an
  older or missing ``processedAt`` is discarded
- Snapshots merge with the same rules and never delete entries, since a
  fetch issued before a push may not contain the pushed request yet
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterable, List, Optional

from marketplace.models import WithdrawalRequest, WithdrawalStatus

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class WithdrawalEvent(Enum):
    """Push event names"""

    REQUESTED = "withdrawalRequested"
    PROCESSED = "withdrawalProcessed"


def _rank(status: WithdrawalStatus) -> int:
    return 0 if status is WithdrawalStatus.PENDING else 1


def merge_request(
    existing: WithdrawalRequest, incoming: WithdrawalRequest
) -> WithdrawalRequest:
    """
    Pick the causally newer version of one request.

    Returns:
        ``existing`` when ``incoming`` is stale or equivalent, else ``incoming``
    """
    if _rank(incoming.status) < _rank(existing.status):
        return existing

    if _rank(incoming.status) > _rank(existing.status):
        return incoming

    if existing.is_pending:
        # Same pending request seen again: field refresh only
        return incoming

    # Both processed
    if existing.processed_at is None:
        return incoming
    if incoming.processed_at is None or incoming.processed_at < existing.processed_at:
        return existing
    if incoming.processed_at == existing.processed_at and incoming.status is not existing.status:
        # A request is processed exactly once; the first observed outcome stands
        return existing
    return incoming


class WithdrawalReconciler:
    """
    Withdrawal request list for one NGO, or the admin's pending queue.

    Args:
        ngo_key: NGO email to restrict to (None accepts every NGO)
        pending_only: Admin view; only pending requests are listed
    """

    def __init__(self, ngo_key: Optional[str] = None, pending_only: bool = False):
        self.ngo_key = ngo_key.lower() if ngo_key else None
        self.pending_only = pending_only
        self._entries: Dict[str, WithdrawalRequest] = {}
        self._inserted: Dict[str, int] = {}
        self._counter = 0
        self.loaded = False

    def _accepts(self, request: WithdrawalRequest) -> bool:
        if not request.request_id:
            logger.warning("Ignoring withdrawal request without an id")
            return False
        if self.ngo_key and request.ngo_key.lower() != self.ngo_key:
            return False
        return True

    def _upsert(self, request: WithdrawalRequest) -> bool:
        existing = self._entries.get(request.request_id)
        if existing is None:
            self._counter += 1
            self._inserted[request.request_id] = self._counter
            self._entries[request.request_id] = request
            return True

        merged = merge_request(existing, request)
        if merged is existing or merged == existing:
            if merged is existing and request != existing:
                logger.debug(
                    f"Discarding stale withdrawal update {request.request_id} "
                    f"({request.status.value}, processed {request.processed_at})"
                )
            return False

        self._entries[request.request_id] = merged
        return True

    # ------------------------------------------------------------------
    # Folds
    # ------------------------------------------------------------------

    def load(self, requests: Iterable[WithdrawalRequest]) -> bool:
        """
        Merge a point-in-time fetch.

        Returns:
            True if the visible list changed
        """
        before = self.requests
        for request in requests:
            if self._accepts(request):
                self._upsert(request)
        self.loaded = True
        return self.requests != before

    def apply_requested(self, request: WithdrawalRequest) -> bool:
        """
        Apply a ``requested`` push.

        Returns:
            True if this was a new request now visible in the list
        """
        if not self._accepts(request):
            return False
        if request.request_id in self._entries:
            logger.debug(f"Duplicate withdrawal request {request.request_id}, merged as no-op")
            return False
        self._upsert(request)
        return self.is_visible(request.request_id)

    def apply_processed(self, request: WithdrawalRequest) -> bool:
        """
        Apply a ``processed`` push in place.

        Returns:
            True if the stored request changed
        """
        if not self._accepts(request):
            return False
        return self._upsert(request)

    def apply_event(self, event: str, request: WithdrawalRequest) -> bool:
        """Dispatch a push event by name"""
        if event == WithdrawalEvent.REQUESTED.value:
            return self.apply_requested(request)
        if event == WithdrawalEvent.PROCESSED.value:
            return self.apply_processed(request)
        logger.warning(f"Unknown withdrawal event: {event}")
        return False

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def get(self, request_id: str) -> Optional[WithdrawalRequest]:
        return self._entries.get(request_id)

    def is_visible(self, request_id: str) -> bool:
        request = self._entries.get(request_id)
        if request is None:
            return False
        return request.is_pending or not self.pending_only

    @property
    def requests(self) -> List[WithdrawalRequest]:
        """Visible requests, newest requested first"""
        visible = [
            request
            for request in self._entries.values()
            if request.is_pending or not self.pending_only
        ]
        visible.sort(
            key=lambda r: (r.requested_at or _EPOCH, self._inserted[r.request_id]),
            reverse=True,
        )
        return visible

    def pending_total(self):
        """Sum of amounts still awaiting a decision"""
        return sum((r.amount for r in self._entries.values() if r.is_pending), 0)
