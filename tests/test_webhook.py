import pytest
from sinks.webhook import WebhookSink

URL = "http://localhost:8123/api/webhook/pulse"


@pytest.mark.asyncio
async def test_capability_is_posted(mocker):
    mock_post = mocker.patch('sinks.webhook.requests.post')

    sink = WebhookSink(url=URL)
    await sink.set_capability_value("meter_power", 4.2)

    mock_post.assert_called_once_with(
        URL,
        json={"type": "capability", "name": "meter_power", "value": 4.2},
        timeout=5.0
    )


@pytest.mark.asyncio
async def test_trigger_is_posted(mocker):
    mock_post = mocker.patch('sinks.webhook.requests.post')

    sink = WebhookSink(url=URL)
    await sink.trigger("daily_consumption_report", {"consumption": 10.5, "cost": 12.6})

    mock_post.assert_called_once_with(
        URL,
        json={
            "type": "trigger",
            "name": "daily_consumption_report",
            "tokens": {"consumption": 10.5, "cost": 12.6},
        },
        timeout=5.0
    )


@pytest.mark.asyncio
async def test_http_error_propagates(mocker):
    mock_response = mocker.Mock()
    mock_response.raise_for_status.side_effect = RuntimeError("500")
    mocker.patch('sinks.webhook.requests.post', return_value=mock_response)

    sink = WebhookSink(url=URL)

    with pytest.raises(RuntimeError):
        await sink.trigger("power_changed", {"power": 1})


@pytest.mark.asyncio
async def test_missing_url_skips_post(mocker, monkeypatch):
    monkeypatch.delenv("WEBHOOK_URL", raising=False)
    mock_post = mocker.patch('sinks.webhook.requests.post')

    await WebhookSink().trigger("power_changed", {"power": 1})

    mock_post.assert_not_called()
