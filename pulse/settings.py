"""Pulse device settings - throttle, currency and price area"""
import logging
from dataclasses import dataclass
from typing import Any, Mapping

logger = logging.getLogger(__name__)

DEFAULT_THROTTLE = 30
DEFAULT_CURRENCY = "NOK"
DEFAULT_AREA = "Oslo"

# Setting key -> environment variable in the .env file
SETTINGS_ENV = {
    "pulse_throttle": "PULSE_THROTTLE",
    "pulse_currency": "PULSE_CURRENCY",
    "pulse_area": "PULSE_AREA",
}


def parse_throttle(value: Any) -> int:
    """
    Parse the throttle setting in seconds.

    Missing or unparsable values fall back to the default, negative
    values are clamped to 0.
    """
    if value is None or value == "":
        return DEFAULT_THROTTLE
    try:
        seconds = int(float(value))
    except (TypeError, ValueError):
        logger.warning(f"Settings: Invalid pulse_throttle {value!r}, using {DEFAULT_THROTTLE}")
        return DEFAULT_THROTTLE
    return max(0, seconds)


@dataclass
class PulseSettings:
    """
    User settings of a Pulse device.

    Attributes:
        throttle: Minimum seconds between two accepted ticks.
        currency: Currency used for day-ahead price lookups.
        area: Price area column used for day-ahead price lookups.
    """
    throttle: int = DEFAULT_THROTTLE
    currency: str = DEFAULT_CURRENCY
    area: str = DEFAULT_AREA

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "PulseSettings":
        """Build settings from a pulse_* key mapping, defaulting missing keys."""
        return cls(
            throttle=parse_throttle(values.get("pulse_throttle")),
            currency=values.get("pulse_currency") or DEFAULT_CURRENCY,
            area=values.get("pulse_area") or DEFAULT_AREA,
        )

    @classmethod
    def from_env(cls, env: Mapping[str, str | None]) -> "PulseSettings":
        """Build settings from environment style variables (PULSE_*)."""
        return cls.from_mapping(settings_from_env(env))


def settings_from_env(env: Mapping[str, str | None]) -> dict[str, str | None]:
    """Translate PULSE_* variables into pulse_* setting keys."""
    return {key: env.get(var) for key, var in SETTINGS_ENV.items()}
