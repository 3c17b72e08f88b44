"""
Withdrawal views for NGOs (own requests) and admins (pending queue).

Both mount one channel that polls the request list and folds the
``withdrawalRequested`` / ``withdrawalProcessed`` push events through a
WithdrawalReconciler.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, List, Optional

from marketplace.errors import MarketplaceError, ValidationError
from marketplace.models import WithdrawalRequest, WithdrawalStatus
from sync.channel import SyncUpdate
from withdrawals.reconciler import WithdrawalEvent, WithdrawalReconciler

from .base import View

logger = logging.getLogger(__name__)

WITHDRAWAL_EVENTS = [WithdrawalEvent.REQUESTED.value, WithdrawalEvent.PROCESSED.value]


def request_from_event(payload: Any) -> Optional[WithdrawalRequest]:
    """Parse a pushed withdrawal request (bare or wrapped in ``request``/``data``)"""
    if not isinstance(payload, dict):
        return None
    for key in ("request", "data"):
        if isinstance(payload.get(key), dict):
            payload = payload[key]
            break
    return WithdrawalRequest.from_payload(payload)


class _WithdrawalsView(View, ABC):
    def __init__(self, backend, session, reconciler: WithdrawalReconciler, topic: str,
                 config=None, transport=None, notifier=None):
        super().__init__(backend, session, config, transport, notifier)
        self.reconciler = reconciler
        self.withdrawals_channel = self.channel(
            topic,
            self._fetch,
            self._fold,
            self.config.withdrawal_poll_sec,
            push_events=WITHDRAWAL_EVENTS,
        )

    @abstractmethod
    async def _fetch(self) -> List[WithdrawalRequest]:
        """Full request list for this view"""

    def _fold(self, update: SyncUpdate):
        if update.is_snapshot:
            self.reconciler.load(update.payload)
            return

        request = request_from_event(update.payload)
        if request is None:
            logger.warning(f"Ignoring malformed {update.event} payload")
            return
        if self.reconciler.apply_event(update.event, request):
            self._announce(update.event, request)

    def _announce(self, event: str, request: WithdrawalRequest):
        """Hook for user-facing notices on a changed request"""

    @property
    def requests(self) -> List[WithdrawalRequest]:
        return self.reconciler.requests

    async def refresh(self) -> bool:
        return await self.withdrawals_channel.refresh()


class NgoWithdrawalsView(_WithdrawalsView):
    """An NGO's own withdrawal requests, newest first"""

    def __init__(self, backend, session, ngo_email: str, config=None, transport=None, notifier=None):
        self.ngo_email = ngo_email
        super().__init__(
            backend,
            session,
            WithdrawalReconciler(ngo_key=ngo_email),
            f"withdrawals:{ngo_email}",
            config,
            transport,
            notifier,
        )

    async def _fetch(self) -> List[WithdrawalRequest]:
        return await self.backend.get_my_withdrawals(self.ngo_email)

    def _announce(self, event: str, request: WithdrawalRequest):
        if event != WithdrawalEvent.PROCESSED.value:
            return
        if request.status is WithdrawalStatus.APPROVED:
            self.notifier.success(f"Withdrawal of {request.amount} approved", topic="withdrawals")
        elif request.status is WithdrawalStatus.REJECTED:
            note = f": {request.admin_note}" if request.admin_note else ""
            self.notifier.warning(
                f"Withdrawal of {request.amount} rejected{note}", topic="withdrawals"
            )


class AdminWithdrawalsView(_WithdrawalsView):
    """Admin queue: pending requests only, processed ones drop out"""

    def __init__(self, backend, session, config=None, transport=None, notifier=None):
        super().__init__(
            backend,
            session,
            WithdrawalReconciler(pending_only=True),
            "withdrawals:admin",
            config,
            transport,
            notifier,
        )

    async def _fetch(self) -> List[WithdrawalRequest]:
        return await self.backend.get_all_withdrawals()

    def _announce(self, event: str, request: WithdrawalRequest):
        if event == WithdrawalEvent.REQUESTED.value:
            self.notifier.info("New withdrawal request received", topic="withdrawals")

    def _require_admin(self):
        session = self._require_session()
        if not session.is_admin:
            raise ValidationError("Only admins can process withdrawals")

    def _require_pending(self, request_id: str):
        request = self.reconciler.get(request_id)
        if request is not None and not request.is_pending:
            raise ValidationError(f"Withdrawal {request_id} was already {request.status.value}")

    async def approve(self, request_id: str):
        """Approve and pay out, then re-fetch the queue"""
        try:
            self._require_admin()
            self._require_pending(request_id)
            await self.backend.process_and_pay(request_id)
        except MarketplaceError as e:
            self._report("approve_withdrawal", e)
            raise
        logger.info(f"Withdrawal {request_id} approved")
        self.notifier.success("Withdrawal approved and paid", topic="withdrawals")
        await self.refresh()

    async def reject(self, request_id: str, admin_note: Optional[str] = None):
        """Reject, then re-fetch the queue"""
        try:
            self._require_admin()
            self._require_pending(request_id)
            await self.backend.process_withdrawal(
                request_id, WithdrawalStatus.REJECTED.value, admin_note
            )
        except MarketplaceError as e:
            self._report("reject_withdrawal", e)
            raise
        logger.info(f"Withdrawal {request_id} rejected")
        self.notifier.info("Withdrawal rejected", topic="withdrawals")
        await self.refresh()
