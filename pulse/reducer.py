"""Measurement reducer - turns raw live pushes into throttled, change-detected emissions"""
import asyncio
import logging
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from sources.base import LiveMeasurement
from pulse.models import (
    CAPABILITY_CONSUMPTION,
    CAPABILITY_COST,
    CAPABILITY_CURRENT,
    CAPABILITY_POWER,
    PHASES,
    TRIGGER_CONSUMPTION_CHANGED,
    TRIGGER_COST_CHANGED,
    TRIGGER_CURRENT_CHANGED,
    TRIGGER_DAILY_REPORT,
    TRIGGER_POWER_CHANGED,
    CapabilityUpdate,
    DeviceState,
    Emission,
    TriggerEvent,
)
from pulse.prices import PriceCache
from pulse.settings import PulseSettings

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


def round_half_up(value: float) -> float:
    """
    Round to 2 decimals, halves away from zero.

    Works on the exact binary value, so 10.125 becomes 10.13 while
    1.005 (stored as 1.00499...) becomes 1.0.
    """
    return float(Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP))


class MeasurementReducer:
    """
    Throttle and derivation logic for one Pulse device.

    on_event() reads and writes the DeviceState only, and returns the
    emissions for the caller to dispatch. Access to the state and the
    price cache is serialized by a per-device lock, which is never held
    across a network call.
    """

    def __init__(self, settings: PulseSettings, prices: PriceCache, state: DeviceState | None = None):
        self.settings = settings
        self.prices = prices
        self.state = state or DeviceState()
        self.lock = asyncio.Lock()

    async def on_event(self, event: LiveMeasurement, now: datetime) -> list[Emission]:
        """
        Process one live measurement received at now (timezone aware, local time).

        Returns the capability updates and triggers to dispatch, in order.
        """
        async with self.lock:
            state = self.state

            # Production is tracked on every push, throttled or not
            if event.power_production is not None:
                state.last_power_production = event.power_production

            if (
                state.last_accepted is not None
                and (now - state.last_accepted).total_seconds() < self.settings.throttle
            ):
                return []
            state.last_accepted = now

            emissions: list[Emission] = []
            self._reduce_power(event, emissions)
            self._reduce_currents(event, emissions)
            self._reduce_consumption(event, emissions)
            self._reduce_cost(event, now, emissions)
            return emissions

    def _reduce_power(self, event: LiveMeasurement, emissions: list[Emission]) -> None:
        """Reads power, power_production; writes last_power."""
        state = self.state

        # Grid import is positive, export is reported as negative power
        if event.power is not None:
            power = event.power
        elif event.power_production is not None:
            power = -event.power_production
        elif state.last_power_production is not None:
            power = -state.last_power_production
        else:
            return

        if power == state.last_power:
            return

        state.last_power = power
        logger.info(f"Trigger power changed {power}")
        emissions.append(CapabilityUpdate(CAPABILITY_POWER, power))
        emissions.append(TriggerEvent(TRIGGER_POWER_CHANGED, {"power": power}))

    def _reduce_currents(self, event: LiveMeasurement, emissions: list[Emission]) -> None:
        """Reads current_l1..3; writes last_current per phase."""
        readings = {
            "L1": event.current_l1,
            "L2": event.current_l2,
            "L3": event.current_l3,
        }
        for phase in PHASES:
            current = readings[phase]
            if current is None or current == self.state.last_current.get(phase):
                continue

            self.state.last_current[phase] = current
            logger.info(f"Trigger current {phase} changed {current}")
            emissions.append(CapabilityUpdate(CAPABILITY_CURRENT.format(phase=phase), current))
            emissions.append(TriggerEvent(
                TRIGGER_CURRENT_CHANGED.format(phase=phase),
                {f"current{phase}": current},
            ))

    def _reduce_consumption(self, event: LiveMeasurement, emissions: list[Emission]) -> None:
        """Reads accumulated_consumption; writes last_consumption."""
        if event.accumulated_consumption is None:
            return

        state = self.state
        consumption = round_half_up(event.accumulated_consumption)
        if consumption == state.last_consumption:
            return

        # The meter restarts counting at midnight
        if state.last_consumption is not None and consumption < state.last_consumption:
            logger.info("Triggering daily consumption report")
            emissions.append(TriggerEvent(
                TRIGGER_DAILY_REPORT,
                {"consumption": state.last_consumption, "cost": state.last_cost},
            ))

        state.last_consumption = consumption
        logger.info(f"Trigger consumption changed {consumption}")
        emissions.append(CapabilityUpdate(CAPABILITY_CONSUMPTION, consumption))
        emissions.append(TriggerEvent(TRIGGER_CONSUMPTION_CHANGED, {"consumption": consumption}))

    def _reduce_cost(self, event: LiveMeasurement, now: datetime, emissions: list[Emission]) -> None:
        """Reads accumulated_cost or the price cache; writes last_cost."""
        cost = event.accumulated_cost
        if cost is None:
            cost = self._fallback_cost(event, now)
            if cost is None:
                return

        cost = round_half_up(cost)
        if cost == self.state.last_cost:
            return

        self.state.last_cost = cost
        logger.info(f"Trigger cost changed {cost}")
        emissions.append(CapabilityUpdate(CAPABILITY_COST, cost))
        emissions.append(TriggerEvent(TRIGGER_COST_CHANGED, {"cost": cost}))

    def _fallback_cost(self, event: LiveMeasurement, now: datetime) -> float | None:
        # Accumulated consumption times the current unit price
        consumption = event.accumulated_consumption
        if consumption is None:
            return None

        price = self.prices.get_unit_price(
            now.hour, self.settings.area, self.settings.currency, now
        )
        if price is None:
            return None
        return price * consumption
