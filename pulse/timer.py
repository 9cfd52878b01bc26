"""Cancellable one-shot timer used as a dead-man's switch"""
import asyncio
from typing import Callable


class SilenceTimer:
    """
    One-shot timer on the running event loop.

    arm() restarts the countdown, cancel() stops it. Both are idempotent
    and may be called in any order.
    """

    def __init__(self, callback: Callable[[], None]):
        self._callback = callback
        self._handle: asyncio.TimerHandle | None = None

    @property
    def armed(self) -> bool:
        return self._handle is not None

    def arm(self, duration: float) -> None:
        self.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(duration, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        self._callback()
