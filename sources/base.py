"""Base definitions for live sources - data contracts, protocols and subscriptions"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Protocol

logger = logging.getLogger(__name__)


class SubscriptionError(Exception):
    """Raised when a live subscription cannot be opened."""


@dataclass
class LiveMeasurement:
    """
    One push from the live metering stream.

    Every field is optional. None means "not reported this tick", not zero.

    Attributes:
        power: Power drawn from the grid in Watts.
        power_production: Power fed to the grid in Watts (positive number).
        current_l1: Current on phase L1 in Ampere.
        current_l2: Current on phase L2 in Ampere.
        current_l3: Current on phase L3 in Ampere.
        accumulated_consumption: Consumption since midnight in kWh.
        accumulated_cost: Cost since midnight in the home's currency.
        timestamp: ISO8601 timestamp string, optional (depends on source).
    """
    power: float | None = None
    power_production: float | None = None
    current_l1: float | None = None
    current_l2: float | None = None
    current_l3: float | None = None
    accumulated_consumption: float | None = None
    accumulated_cost: float | None = None
    timestamp: str | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "LiveMeasurement":
        """Build a measurement from a GraphQL liveMeasurement object."""
        return cls(
            power=payload.get("power"),
            power_production=payload.get("powerProduction"),
            current_l1=payload.get("currentL1"),
            current_l2=payload.get("currentL2"),
            current_l3=payload.get("currentL3"),
            accumulated_consumption=payload.get("accumulatedConsumption"),
            accumulated_cost=payload.get("accumulatedCost"),
            timestamp=payload.get("timestamp"),
        )


LiveCallback = Callable[[LiveMeasurement], Awaitable[None]]


class LiveSource(Protocol):
    """
    Protocol for live metering sources.

    Uses Protocol for duck typing - implementations don't need to inherit,
    just implement the methods with matching signatures.
    """

    async def connect(self) -> None:
        """
        Initialize connection to the source.

        May involve HTTP bootstrap, authentication, device discovery, etc.
        """
        ...

    def stream(self) -> AsyncIterator[LiveMeasurement]:
        """Async generator that yields LiveMeasurement objects as they arrive."""
        ...

    async def subscribe(self, callback: LiveCallback) -> "Subscription":
        """Open a subscription that hands every measurement to callback."""
        ...


class Subscription:
    """
    Handle to one live subscription.

    Runs a task that drains the source stream and awaits the callback for
    every measurement. unsubscribe() may be called any number of times; a
    callback already running is allowed to finish, then the stream closes.
    """

    def __init__(self, stream: AsyncIterator[LiveMeasurement], callback: LiveCallback):
        self._stream = stream
        self._callback = callback
        self._closing = False
        self._in_callback = False
        self._task = asyncio.create_task(self._run())

    @property
    def closed(self) -> bool:
        return self._task.done()

    async def _run(self) -> None:
        try:
            async for measurement in self._stream:
                self._in_callback = True
                try:
                    await self._callback(measurement)
                except Exception as e:
                    logger.exception(f"Subscription: Callback failed: {e}")
                finally:
                    self._in_callback = False
                if self._closing:
                    break
        except Exception as e:
            logger.error(f"Subscription: Stream failed: {e}")
            return
        finally:
            aclose = getattr(self._stream, "aclose", None)
            if aclose is not None:
                await aclose()
        logger.info("Subscription: Stream ended")

    def unsubscribe(self) -> None:
        self._closing = True
        # Waiting for the next message is the only point we interrupt
        if not self._task.done() and not self._in_callback:
            self._task.cancel()

    async def wait_closed(self) -> None:
        """Wait until the underlying task has finished."""
        if asyncio.current_task() is self._task:
            return
        await asyncio.wait({self._task})
