"""Fire-and-forget dispatch of capability updates and triggers to a device sink"""
import asyncio
import logging
from typing import Iterable

from pulse.models import CapabilityUpdate, Emission, TriggerEvent
from sinks.base import DeviceSink

logger = logging.getLogger(__name__)


class Dispatcher:
    """
    Sends emissions to a sink, each one in its own task.

    A failing capability write never suppresses a trigger and vice versa;
    failures are logged and dropped.
    """

    def __init__(self, sink: DeviceSink):
        self.sink = sink
        self._tasks: set[asyncio.Task] = set()

    def dispatch(self, emissions: Iterable[Emission]) -> None:
        for emission in emissions:
            task = asyncio.create_task(self._send(emission))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _send(self, emission: Emission) -> None:
        try:
            if isinstance(emission, CapabilityUpdate):
                await self.sink.set_capability_value(emission.name, emission.value)
            elif isinstance(emission, TriggerEvent):
                await self.sink.trigger(emission.name, emission.tokens)
        except Exception as e:
            logger.warning(f"Dispatch of {emission.name} failed: {e}")

    async def drain(self) -> None:
        """Wait for every emission in flight."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks))
