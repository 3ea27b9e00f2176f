"""
Subscription Channel - fan-out of status snapshots to live clients.

Each subscriber owns a single-slot mailbox. Publishing replaces whatever
the subscriber has not picked up yet: snapshots are complete, so a slow
client only ever needs the newest one. A snapshot older than one the
subscriber was already offered is never delivered.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Optional

from ._types import StatusSnapshot

logger = logging.getLogger(__name__)

_subscriber_ids = itertools.count(1)


class Subscription:
    """One live client's view of the channel."""

    def __init__(self, channel: Optional["StatusChannel"] = None):
        self.id = next(_subscriber_ids)
        self._channel = channel
        self._mailbox: asyncio.Queue[StatusSnapshot] = asyncio.Queue(maxsize=1)
        self._last_offered_ts: Optional[int] = None

    @property
    def last_offered_ts(self) -> Optional[int]:
        return self._last_offered_ts

    def offer(self, snapshot: StatusSnapshot) -> bool:
        """
        Hand a snapshot to this subscriber, replacing an undelivered one.

        Returns:
            False if the snapshot is older than one already offered
        """
        if self._last_offered_ts is not None and snapshot.ts < self._last_offered_ts:
            return False

        while not self._mailbox.empty():
            self._mailbox.get_nowait()
        self._mailbox.put_nowait(snapshot)
        self._last_offered_ts = snapshot.ts
        return True

    def pending(self) -> bool:
        return not self._mailbox.empty()

    async def get(self) -> StatusSnapshot:
        """Wait for the next snapshot."""
        return await self._mailbox.get()

    def close(self) -> None:
        if self._channel is not None:
            self._channel.unsubscribe(self)
            self._channel = None


class StatusChannel:
    """Manages live subscriptions and publishes snapshots to all of them."""

    def __init__(self):
        self._subscriptions: dict[int, Subscription] = {}

    def subscribe(self) -> Subscription:
        subscription = Subscription(self)
        self._subscriptions[subscription.id] = subscription
        logger.info(
            f"Subscriber {subscription.id} connected (total={self.subscriber_count})"
        )
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        if self._subscriptions.pop(subscription.id, None) is not None:
            logger.info(
                f"Subscriber {subscription.id} disconnected (total={self.subscriber_count})"
            )

    def publish(self, snapshot: StatusSnapshot) -> int:
        """
        Offer a snapshot to every subscriber.

        Returns:
            Number of subscribers the snapshot was delivered to
        """
        delivered = 0
        for subscription in list(self._subscriptions.values()):
            if subscription.offer(snapshot):
                delivered += 1
        return delivered

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)
