"""Pulse device - wires the live subscription, reducer and sink together"""
import logging
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping

from sources.base import LiveMeasurement, LiveSource
from sinks.base import DeviceSink
from pulse.dispatch import Dispatcher
from pulse.prices import PriceCache
from pulse.reducer import MeasurementReducer
from pulse.settings import DEFAULT_AREA, DEFAULT_CURRENCY, PulseSettings, parse_throttle
from pulse.subscription import SILENCE_WINDOW, SubscriptionManager

logger = logging.getLogger(__name__)


def local_now() -> datetime:
    return datetime.now().astimezone()


class PulseDevice:
    """
    One Tibber Pulse metering point.

    Lifecycle: start() subscribes, on_settings() applies setting changes,
    stop() tears everything down.
    """

    def __init__(
        self,
        name: str,
        source: LiveSource,
        sink: DeviceSink,
        settings: PulseSettings | None = None,
        prices: PriceCache | None = None,
        silence_window: float = SILENCE_WINDOW,
        clock: Callable[[], datetime] = local_now
    ):
        self.name = name
        self.settings = settings or PulseSettings()
        self.prices = prices or PriceCache()
        self.reducer = MeasurementReducer(self.settings, self.prices)
        self.dispatcher = Dispatcher(sink)
        self.subscriptions = SubscriptionManager(source, self.on_measurement, silence_window)
        self.clock = clock

        logger.info(
            f"Tibber pulse device {self.name} has been initialized (throttle: {self.settings.throttle})"
        )

    async def start(self) -> None:
        await self.subscriptions.start()

    async def stop(self) -> None:
        """Tear down the subscription and timer, then flush pending side effects."""
        await self.subscriptions.stop()
        await self.dispatcher.drain()
        await self.prices.aclose()

    async def on_measurement(self, measurement: LiveMeasurement) -> None:
        emissions = await self.reducer.on_event(measurement, self.clock())
        self.dispatcher.dispatch(emissions)

    async def on_settings(self, new_settings: Mapping[str, Any], changed_keys: Iterable[str]) -> None:
        """Apply changed pulse_* settings. Currency or area changes drop the cached price."""
        logger.info("Changing pulse settings")
        changed = set(changed_keys)

        async with self.reducer.lock:
            if "pulse_throttle" in changed:
                self.settings.throttle = parse_throttle(new_settings.get("pulse_throttle"))
                logger.info(f"Updated throttle value: {self.settings.throttle}")
            if "pulse_currency" in changed:
                self.settings.currency = new_settings.get("pulse_currency") or DEFAULT_CURRENCY
                logger.info(f"Updated currency value: {self.settings.currency}")
                self.prices.invalidate()
            if "pulse_area" in changed:
                self.settings.area = new_settings.get("pulse_area") or DEFAULT_AREA
                logger.info(f"Updated area value: {self.settings.area}")
                self.prices.invalidate()
