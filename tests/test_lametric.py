import pytest
from sinks.lametric import LaMetricSink, power_frame, _perform_http_request
from pulse.settings import PulseSettings

URL = "http://192.168.2.10:8080/api/v1/dev/widget/update/com.lametric.test"


@pytest.mark.parametrize("power, text, icon", [
    (1500, "1500 W", 26337),
    (-500, "-500 W", 54077),
    (180.7, "181 W", 26337),
    (10500, "10.5 kW", 26337),
    (-11000, "-11.0 kW", 54077),
])
def test_power_frame(power, text, icon):
    assert power_frame(power) == {"text": text, "icon": icon}


@pytest.mark.asyncio
async def test_power_update_pushes_frame(mocker):
    # Mock the send_http_payload function to avoid actual HTTP requests
    mock_send = mocker.patch('sinks.lametric.send_http_payload')

    sink = LaMetricSink(url=URL, api_key="key")
    await sink.set_capability_value("measure_power", 1500)

    expected_payload = {
        "frames": [
            {
                "text": "1500 W",
                "icon": 26337,
                "index": 0
            }
        ]
    }
    mock_send.assert_called_with(URL, "key", expected_payload)


@pytest.mark.asyncio
async def test_all_frames_are_pushed_in_order(mocker):
    mock_send = mocker.patch('sinks.lametric.send_http_payload')

    sink = LaMetricSink(url=URL, api_key="key", settings=PulseSettings(currency="NOK"))
    await sink.set_capability_value("accumulatedCost", 12.5)
    await sink.set_capability_value("meter_power", 8.25)
    await sink.set_capability_value("measure_power", -500)

    expected_payload = {
        "frames": [
            {"text": "-500 W", "icon": 54077, "index": 0},
            {"text": "8.25 kWh", "icon": 21256, "index": 1},
            {"text": "12.50 NOK", "icon": 34, "index": 2},
        ]
    }
    mock_send.assert_called_with(URL, "key", expected_payload)
    assert mock_send.call_count == 3


@pytest.mark.asyncio
async def test_currents_and_triggers_are_not_pushed(mocker):
    mock_send = mocker.patch('sinks.lametric.send_http_payload')

    sink = LaMetricSink(url=URL, api_key="key")
    await sink.set_capability_value("measure_current.L1", 4.0)
    await sink.trigger("power_changed", {"power": 100})

    mock_send.assert_not_called()


def test_http_request_skipped_without_config(mocker):
    mock_post = mocker.patch('sinks.lametric.requests.post')

    _perform_http_request(None, None, {"frames": []})

    mock_post.assert_not_called()


def test_http_request_failure_is_logged(mocker):
    mocker.patch('sinks.lametric.requests.post', side_effect=Exception("timeout"))

    # Must not raise
    _perform_http_request(URL, "key", {"frames": []})


@pytest.mark.asyncio
async def test_cost_label_follows_currency_change(mocker):
    mock_send = mocker.patch('sinks.lametric.send_http_payload')
    settings = PulseSettings(currency="NOK")

    sink = LaMetricSink(url=URL, api_key="key", settings=settings)
    await sink.set_capability_value("accumulatedCost", 3.5)

    # Settings object is shared with the device, which updates it in place
    settings.currency = "SEK"
    await sink.set_capability_value("meter_power", 2.0)

    expected_payload = {
        "frames": [
            {"text": "2.00 kWh", "icon": 21256, "index": 0},
            {"text": "3.50 SEK", "icon": 34, "index": 1},
        ]
    }
    mock_send.assert_called_with(URL, "key", expected_payload)
