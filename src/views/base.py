"""
Base class for headless views.

A view owns the SyncChannels and timers it mounts. ``open()`` starts them,
``close()`` tears every one of them down; nothing keeps updating after the
view is gone.
"""

import asyncio
import logging
from typing import List, Optional

from marketplace.config import ClientConfig
from marketplace.errors import MarketplaceError, ValidationError
from marketplace.notifications import Notifier
from marketplace.session import Session
from sync.channel import SyncChannel
from sync.transport import PushTransport

logger = logging.getLogger(__name__)


class View:
    def __init__(
        self,
        backend,
        session: Optional[Session] = None,
        config: Optional[ClientConfig] = None,
        transport: Optional[PushTransport] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.backend = backend
        self.session = session
        self.config = config or ClientConfig()
        self.transport = transport if self.config.push_enabled else None
        self.notifier = notifier or Notifier()
        self._channels: List[SyncChannel] = []
        self.opened = False
        self.closed = False

    def channel(self, topic: str, fetch, fold, poll_interval, **kwargs) -> SyncChannel:
        """Create a channel owned by this view"""
        channel = SyncChannel(
            topic,
            fetch,
            fold,
            poll_interval=poll_interval,
            transport=self.transport if (kwargs.get("push_events") or kwargs.get("signal_events")) else None,
            notifier=self.notifier,
            warn_after=self.config.reconnect_warn_after,
            reconnect_base=self.config.reconnect_base_sec,
            reconnect_max=self.config.reconnect_max_sec,
            **kwargs,
        )
        self._channels.append(channel)
        return channel

    @property
    def channels(self) -> List[SyncChannel]:
        return list(self._channels)

    async def open(self):
        if self.closed:
            raise RuntimeError(f"{type(self).__name__} is closed")
        if self.opened:
            return
        self.opened = True
        for channel in self._channels:
            channel.start()
        logger.info(f"{type(self).__name__} opened")

    def _stop_timers(self):
        """Stop view-owned timers; overridden by views that have any"""

    async def close(self):
        if self.closed:
            return
        self.closed = True
        self._stop_timers()
        await asyncio.gather(*(channel.close() for channel in self._channels))
        logger.info(f"{type(self).__name__} closed")

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _require_session(self) -> Session:
        if self.session is None or not self.session.token:
            raise ValidationError("Please log in first")
        return self.session

    def _report(self, action: str, error: MarketplaceError):
        """Surface a failed user action as a notice; the caller still gets the error"""
        if isinstance(error, ValidationError):
            logger.info(f"{action} rejected: {error}")
        else:
            logger.error(f"{action} failed: {error}")
        self.notifier.error(str(error), topic=action)
