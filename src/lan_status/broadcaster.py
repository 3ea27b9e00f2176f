"""
Status Broadcaster - main orchestration loop.

Produces a StatusSnapshot per cycle (inventory snapshot -> probe ->
timestamp -> store as latest -> publish) and distributes it through the
StatusChannel.

Cycles are triggered by the interval timer, a new subscriber, a saved
inventory, and an externally modified inventory file. At most one cycle
runs at a time: a trigger arriving while a cycle is in flight sets a
single pending flag, and exactly one follow-up cycle runs when the
current one finishes, however many triggers arrived.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from ._types import StatusSnapshot, now_ms
from .channel import StatusChannel, Subscription
from .inventory_store import InventoryStore
from .probe import ProbeEngine

logger = logging.getLogger(__name__)


class StatusBroadcaster:
    """
    Owns the latest StatusSnapshot and the probe cycle schedule.
    """

    def __init__(
        self,
        store: InventoryStore,
        engine: ProbeEngine,
        channel: StatusChannel,
        interval_seconds: float = 15.0,
        clock: Callable[[], int] = now_ms,
    ):
        """
        Initialize broadcaster.

        Args:
            store: Inventory source (read only)
            engine: Probe engine used for every cycle
            channel: Fan-out to live subscribers
            interval_seconds: Scheduled cycle interval
            clock: Epoch-millisecond clock for snapshot timestamps
        """
        self.store = store
        self.engine = engine
        self.channel = channel
        self.interval_seconds = interval_seconds
        self._clock = clock

        self._latest: Optional[StatusSnapshot] = None
        self._cycle_task: Optional[asyncio.Task] = None
        self._pending = False
        self._pending_reason: Optional[str] = None

        self._running = False
        self._shutdown_event = asyncio.Event()
        self._interval_task: Optional[asyncio.Task] = None

        # Stats
        self.cycles_completed = 0
        self.cycles_failed = 0
        self.triggers_coalesced = 0

    @property
    def latest(self) -> Optional[StatusSnapshot]:
        """Most recently published snapshot, None before the first cycle."""
        return self._latest

    @property
    def cycle_in_flight(self) -> bool:
        return self._cycle_task is not None and not self._cycle_task.done()

    # -------------------------------------------------------------------------
    # Triggers
    # -------------------------------------------------------------------------

    def trigger(self, reason: str = "manual") -> None:
        """
        Request a cycle.

        Starts one immediately if idle, otherwise marks a follow-up as
        pending. Must be called from the event loop thread.
        """
        if self.cycle_in_flight:
            self.triggers_coalesced += 1
            self._pending = True
            self._pending_reason = reason
            logger.debug(f"Cycle in flight, queued follow-up ({reason})")
            return

        loop = asyncio.get_running_loop()
        self._cycle_task = loop.create_task(self._run_cycles(reason))

    def subscribe(self) -> Subscription:
        """
        Register a live subscriber.

        The subscriber is immediately offered the cached snapshot (if any),
        then a fresh cycle is requested.
        """
        subscription = self.channel.subscribe()
        if self._latest is not None:
            subscription.offer(self._latest)
        self.trigger("subscriber")
        return subscription

    def on_inventory_changed(self, machines) -> None:
        """Listener for externally detected inventory changes."""
        logger.info(f"Inventory changed externally ({len(machines)} machines)")
        self.trigger("inventory-changed")

    async def wait_idle(self) -> None:
        """Wait until no cycle is running or pending."""
        while self._cycle_task is not None and not self._cycle_task.done():
            await asyncio.shield(self._cycle_task)

    # -------------------------------------------------------------------------
    # Cycles
    # -------------------------------------------------------------------------

    async def _run_cycles(self, reason: str) -> None:
        while True:
            await self.run_cycle(reason)
            if not self._pending:
                return
            reason = self._pending_reason or "pending"
            self._pending = False
            self._pending_reason = None

    async def run_cycle(self, reason: str = "manual") -> Optional[StatusSnapshot]:
        """
        Run one probe cycle and publish its snapshot.

        Unexpected errors are logged and the cycle skipped; they never
        propagate to the caller.

        Returns:
            The published snapshot, or None if the cycle failed
        """
        machines = self.store.machines
        logger.debug(f"Starting cycle ({reason}) for {len(machines)} machines")

        try:
            statuses = await self.engine.probe_all(machines)

            ts = self._clock()
            if self._latest is not None and ts < self._latest.ts:
                # Wall clock stepped back; keep publish order monotonic
                ts = self._latest.ts

            snapshot = StatusSnapshot(machines=tuple(statuses), ts=ts)
            self._latest = snapshot
            self.channel.publish(snapshot)

        except asyncio.CancelledError:
            raise
        except Exception:
            self.cycles_failed += 1
            logger.exception(f"Error broadcasting network status ({reason})")
            return None

        self.cycles_completed += 1
        logger.info(f"Broadcasted {len(snapshot.machines)} machine statuses ({reason})")
        return snapshot

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Run an initial cycle and start the interval timer."""
        logger.info(
            f"Starting status broadcaster (interval={self.interval_seconds}s, "
            f"batch size={self.engine.batch_size})"
        )
        self._running = True
        self._shutdown_event.clear()
        self.trigger("startup")
        self._interval_task = asyncio.create_task(self._interval_loop())

    async def stop(self) -> None:
        """Stop the interval timer and abandon any in-flight cycle."""
        logger.info("Stopping status broadcaster")
        self._running = False
        self._shutdown_event.set()
        self._pending = False

        for task in (self._interval_task, self._cycle_task):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        self._interval_task = None
        self._cycle_task = None

    async def _interval_loop(self) -> None:
        """Trigger a cycle every interval until shutdown."""
        while self._running:
            try:
                await asyncio.wait_for(
                    self._shutdown_event.wait(),
                    timeout=self.interval_seconds,
                )
                # Shutdown requested
                break
            except asyncio.TimeoutError:
                pass

            try:
                self.trigger("interval")
            except Exception as e:
                logger.error(f"Error in interval loop: {e}")
