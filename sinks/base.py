"""Base definitions for device sinks - where capability values and triggers go"""
from typing import Any, Protocol


class DeviceSink(Protocol):
    """
    Protocol for egress sinks (LaMetric, webhook, etc).

    Uses Protocol for duck typing - implementations don't need to inherit,
    just implement the methods with matching signatures.
    """

    async def set_capability_value(self, name: str, value: float) -> None:
        """
        Store a new value for a device capability.

        Names: measure_power, measure_current.L1/L2/L3, meter_power, accumulatedCost.
        """
        ...

    async def trigger(self, name: str, tokens: dict[str, Any]) -> None:
        """
        Fire a named trigger with its tokens.

        Names: power_changed, consumption_changed, cost_changed,
        current.L1_changed (L2, L3), daily_consumption_report.
        """
        ...
