"""LaMetric Time egress module - shows Pulse capabilities as frames via HTTP"""
import asyncio
import logging
import os
from typing import Any

import requests

from pulse.settings import PulseSettings

logger = logging.getLogger(__name__)

ICON_POWER = 26337  # Drawing power
ICON_SOLAR = 54077  # Feeding power
ICON_METER = 21256  # Energy meter
ICON_COST = 34      # Coins


def _perform_http_request(url, api_key, payload):
    """
    Executes the HTTP Push to LaMetric Time.
    Is ran in a thread to not block the main loop.
    """
    if not url or not api_key:
        logger.warning("LaMetric configuration missing. Skipping push.")
        return

    try:
        r = requests.post(
            url,
            json=payload,
            auth=("dev", api_key),
            timeout=2
        )
        r.raise_for_status()
    except Exception as e:
        logger.warning(f"LaMetric: Failed HTTP POST {e}")


async def send_http_payload(url, api_key, payload):
    """
    Offloads the blocking HTTP request to a thread.
    """
    await asyncio.to_thread(_perform_http_request, url, api_key, payload)


def power_frame(power_watts: float) -> dict[str, Any]:
    """Format a power value as a LaMetric frame."""
    power = round(power_watts)

    # Are we importing power, or exporting it?
    if power < 0:
        icon = ICON_SOLAR
    else:
        icon = ICON_POWER

    # If power is more than 10000 W, show in kW with one decimal
    if abs(power) >= 10000:
        power_kw = power / 1000
        text = f"{power_kw:.1f} kW"
    else:
        text = f"{power} W"

    return {"text": text, "icon": icon}


class LaMetricSink:
    """
    Shows power, today's consumption and today's cost on a LaMetric push app.

    Each capability owns one frame; every update re-pushes all known frames.
    The cost label follows the currency of the shared device settings.
    Triggers have no display and are only logged.
    """

    def __init__(self, url: str | None = None, api_key: str | None = None, settings: PulseSettings | None = None):
        """
        Initialize LaMetric sink.

        Args:
            url: Push URL of the LaMetric app (default: LAMETRIC_URL)
            api_key: Device API key (default: LAMETRIC_API_KEY)
            settings: Device settings, read for the cost frame currency
        """
        self.url = url or os.environ.get("LAMETRIC_URL")
        self.api_key = api_key or os.environ.get("LAMETRIC_API_KEY")
        self.settings = settings or PulseSettings()
        self.frames: dict[str, dict[str, Any]] = {}
        self.cost: float | None = None

    @property
    def currency(self) -> str:
        return self.settings.currency

    async def set_capability_value(self, name: str, value: float) -> None:
        if name == "measure_power":
            self.frames["power"] = power_frame(value)
        elif name == "meter_power":
            self.frames["consumption"] = {"text": f"{value:.2f} kWh", "icon": ICON_METER}
        elif name == "accumulatedCost":
            self.cost = value
        else:
            return

        await send_http_payload(self.url, self.api_key, self.payload())

    async def trigger(self, name: str, tokens: dict[str, Any]) -> None:
        logger.debug(f"LaMetric: Ignoring trigger {name} {tokens}")

    def payload(self) -> dict[str, Any]:
        """Build the frames payload to LaMetric specifications."""
        frames = dict(self.frames)
        if self.cost is not None:
            frames["cost"] = {"text": f"{self.cost:.2f} {self.currency}", "icon": ICON_COST}

        ordered = []
        for key in ("power", "consumption", "cost"):
            if key in frames:
                ordered.append({**frames[key], "index": len(ordered)})
        return {"frames": ordered}
