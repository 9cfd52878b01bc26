"""Device state and outbound emission types for the Pulse processing core"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

# Capability names written to the device sink
CAPABILITY_POWER = "measure_power"
CAPABILITY_CURRENT = "measure_current.{phase}"
CAPABILITY_CONSUMPTION = "meter_power"
CAPABILITY_COST = "accumulatedCost"

# Trigger names dispatched to the device sink
TRIGGER_POWER_CHANGED = "power_changed"
TRIGGER_CURRENT_CHANGED = "current.{phase}_changed"
TRIGGER_CONSUMPTION_CHANGED = "consumption_changed"
TRIGGER_COST_CHANGED = "cost_changed"
TRIGGER_DAILY_REPORT = "daily_consumption_report"

PHASES = ("L1", "L2", "L3")


@dataclass
class DeviceState:
    """
    Mutable state of one Pulse device, owned by the MeasurementReducer.

    Every last_* field holds the value that was last emitted for that
    signal, so a signal is never emitted twice in a row with the same value.

    Attributes:
        last_accepted: Time of the last tick that passed the throttle gate.
        last_power: Last emitted power in W.
        last_power_production: Last reported production in W, kept across ticks.
        last_current: Last emitted current per phase ("L1", "L2", "L3").
        last_consumption: Last emitted consumption in kWh (2 decimals).
        last_cost: Last emitted cost (2 decimals).
    """
    last_accepted: datetime | None = None
    last_power: float | None = None
    last_power_production: float | None = None
    last_current: dict[str, float] = field(default_factory=dict)
    last_consumption: float | None = None
    last_cost: float | None = None


@dataclass(frozen=True)
class CapabilityUpdate:
    """A value to write to a device capability."""
    name: str
    value: float


@dataclass(frozen=True)
class TriggerEvent:
    """A named trigger with its token payload."""
    name: str
    tokens: dict[str, Any]


Emission = CapabilityUpdate | TriggerEvent
