"""Subscription manager - owns the live connection and forces resubscription on silence"""
import asyncio
import logging
from typing import Awaitable, Callable

from sources.base import LiveMeasurement, LiveSource, Subscription
from pulse.timer import SilenceTimer

logger = logging.getLogger(__name__)

# Resubscribe if no data arrived for 10 minutes
SILENCE_WINDOW = 10 * 60


class SubscriptionManager:
    """
    Keeps exactly one live subscription open for a source.

    Every inbound measurement and every subscribe attempt rearms the
    silence timer. When the timer fires, the current subscription is torn
    down and a new one is opened.
    """

    def __init__(
        self,
        source: LiveSource,
        on_event: Callable[[LiveMeasurement], Awaitable[None]],
        silence_window: float = SILENCE_WINDOW
    ):
        """
        Initialize the manager.

        Args:
            source: Live source to subscribe to
            on_event: Coroutine function awaited for every inbound measurement
            silence_window: Seconds without data before resubscribing (default: 600)
        """
        self.source = source
        self.on_event = on_event
        self.silence_window = silence_window
        self.subscription: Subscription | None = None
        self.timer = SilenceTimer(self._on_silence)
        self._resubscribe_task: asyncio.Task | None = None
        self._stopped = True

    async def start(self) -> None:
        """
        Open the subscription and arm the silence timer.

        Errors opening the subscription propagate to the caller.
        """
        self._stopped = False
        self.timer.arm(self.silence_window)
        await self._open()

    async def stop(self) -> None:
        """
        Cancel the timer and tear down the subscription. Safe to call repeatedly.

        A measurement already being processed is allowed to finish first.
        """
        self._stopped = True
        self.timer.cancel()

        if self._resubscribe_task is not None and not self._resubscribe_task.done():
            self._resubscribe_task.cancel()
        self._resubscribe_task = None

        subscription = self._teardown()
        if subscription is None:
            return

        try:
            await subscription.wait_closed()
        except Exception as e:
            logger.warning(f"Error waiting for subscription to close: {e}")

    async def _open(self) -> None:
        logger.info("Subscribing to live data")
        self.subscription = await self.source.subscribe(self._callback)

    def _teardown(self) -> Subscription | None:
        subscription, self.subscription = self.subscription, None
        if subscription is None:
            return None

        try:
            logger.info("Unsubscribing from previous connection")
            subscription.unsubscribe()
        except Exception as e:
            logger.warning(f"Error unsubscribing from previous connection: {e}")
        return subscription

    async def _callback(self, measurement: LiveMeasurement) -> None:
        if self._stopped:
            return
        self.timer.arm(self.silence_window)
        await self.on_event(measurement)

    def _on_silence(self) -> None:
        if self._stopped:
            return
        logger.warning(f"No live data for {self.silence_window}s, resubscribing")
        self._resubscribe_task = asyncio.create_task(self.resubscribe())

    async def resubscribe(self) -> None:
        """
        Tear down the current subscription and open a new one.

        Open errors are logged and retried when the timer fires again.
        """
        self.timer.arm(self.silence_window)
        self._teardown()
        try:
            await self._open()
        except Exception as e:
            logger.error(f"Resubscribe failed, retrying in {self.silence_window}s: {e}")
