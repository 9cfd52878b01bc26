import pytest
from pulse.settings import PulseSettings, parse_throttle, settings_from_env


@pytest.mark.parametrize("value, expected", [
    (None, 30),
    ("", 30),
    ("abc", 30),
    ("45", 45),
    ("12.7", 12),
    (0, 0),
    ("-10", 0),
])
def test_parse_throttle(value, expected):
    assert parse_throttle(value) == expected


def test_defaults():
    settings = PulseSettings.from_mapping({})

    assert settings == PulseSettings(throttle=30, currency="NOK", area="Oslo")


def test_from_env():
    settings = PulseSettings.from_env({
        "PULSE_THROTTLE": "10",
        "PULSE_CURRENCY": "SEK",
        "PULSE_AREA": "SE3",
        "TIBBER_TOKEN": "ignored",
    })

    assert settings == PulseSettings(throttle=10, currency="SEK", area="SE3")


def test_settings_from_env_maps_keys():
    assert settings_from_env({"PULSE_AREA": "Bergen"}) == {
        "pulse_throttle": None,
        "pulse_currency": None,
        "pulse_area": "Bergen",
    }
