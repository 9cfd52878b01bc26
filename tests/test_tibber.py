import pytest
from sources.tibber import TibberSource
from sources.base import LiveMeasurement, SubscriptionError


def bootstrap_response(mocker, homes):
    mock_response = mocker.Mock()
    mock_response.json.return_value = {
        'data': {
            'viewer': {
                'websocketSubscriptionUrl': 'wss://api.tibber.com/v1-beta/gql/subscriptions',
                'homes': homes
            }
        }
    }
    return mock_response


@pytest.mark.asyncio
async def test_tibber_connect_success(mocker):
    """Test successful Tibber HTTP bootstrap"""
    mock_response = bootstrap_response(mocker, [
        {
            'id': 'test-home-123',
            'appNickname': 'Test Home',
            'features': {
                'realTimeConsumptionEnabled': True
            }
        }
    ])
    mock_post = mocker.patch('sources.tibber.requests.post', return_value=mock_response)

    # Create source and connect
    source = TibberSource(token='test-token')
    await source.connect()

    # Verify HTTP call was made
    mock_post.assert_called_once()
    call_args = mock_post.call_args
    assert 'Bearer test-token' in call_args[1]['headers']['Authorization']

    # Verify internal state was set correctly
    assert source.wss_url == 'wss://api.tibber.com/v1-beta/gql/subscriptions'
    assert source.home_id == 'test-home-123'


@pytest.mark.asyncio
async def test_tibber_connect_selects_configured_home(mocker):
    """Test that a configured home id wins over the first Pulse home"""
    mock_response = bootstrap_response(mocker, [
        {'id': 'cabin', 'features': {'realTimeConsumptionEnabled': True}},
        {'id': 'house', 'features': {'realTimeConsumptionEnabled': True}},
    ])
    mocker.patch('sources.tibber.requests.post', return_value=mock_response)

    source = TibberSource(token='test-token', home_id='house')
    await source.connect()

    assert source.home_id == 'house'


@pytest.mark.asyncio
async def test_tibber_connect_no_pulse_exits(mocker):
    """Test that connect exits when no Pulse is found"""
    mock_response = bootstrap_response(mocker, [
        {
            'id': 'test-home-123',
            'appNickname': 'Test Home',
            'features': {
                'realTimeConsumptionEnabled': False  # No Pulse!
            }
        }
    ])
    mocker.patch('sources.tibber.requests.post', return_value=mock_response)
    mock_exit = mocker.patch('sources.tibber.sys.exit')

    source = TibberSource(token='test-token')
    await source.connect()

    # Verify sys.exit was called when no Pulse found
    mock_exit.assert_called_once_with(1)


@pytest.mark.asyncio
async def test_tibber_subscribe_before_connect_raises():
    """Test that subscribing without a bootstrap is refused"""
    source = TibberSource(token='test-token')

    async def callback(measurement):
        pass

    with pytest.raises(SubscriptionError):
        await source.subscribe(callback)


class MockWebSocket:
    """Scripted WebSocket that replays messages through recv() and iteration"""

    def __init__(self, messages):
        self.messages = iter(messages)
        self.sent = []

    async def send(self, msg):
        self.sent.append(msg)

    async def recv(self):
        return next(self.messages)

    def __aiter__(self):
        return self

    async def __anext__(self):
        try:
            return next(self.messages)
        except StopIteration:
            raise StopAsyncIteration


@pytest.mark.asyncio
async def test_tibber_stream_yields_live_measurements(mocker):
    """Test that stream() correctly parses WebSocket messages and yields LiveMeasurement"""
    source = TibberSource(token='test-token')
    source.wss_url = 'wss://test.example.com'
    source.home_id = 'test-home-123'

    mock_websocket_messages = [
        '{"type": "connection_ack"}',
        '{"type": "next", "payload": {"data": {"liveMeasurement": {"power": 1500, "accumulatedConsumption": 12.345, "accumulatedCost": 15.2, "currentL1": 4.1, "currentL2": null, "timestamp": "2025-12-26T18:00:00"}}}}',
        '{"type": "next", "payload": {"data": {"liveMeasurement": {"power": 0, "powerProduction": 500, "timestamp": "2025-12-26T18:00:02"}}}}',
        '{"type": "complete"}',
    ]
    mock_ws = MockWebSocket(mock_websocket_messages)

    async def mock_connect(*args, **kwargs):
        yield mock_ws

    mocker.patch('sources.tibber.websockets.connect', side_effect=mock_connect)

    readings = [reading async for reading in source.stream()]

    assert readings == [
        LiveMeasurement(
            power=1500,
            accumulated_consumption=12.345,
            accumulated_cost=15.2,
            current_l1=4.1,
            timestamp="2025-12-26T18:00:00",
        ),
        LiveMeasurement(power=0, power_production=500, timestamp="2025-12-26T18:00:02"),
    ]

    # Init, then the subscription for our home
    assert len(mock_ws.sent) == 2
    assert '"connection_init"' in mock_ws.sent[0]
    assert 'test-home-123' in mock_ws.sent[1]
    assert 'powerProduction' in mock_ws.sent[1]


@pytest.mark.asyncio
async def test_tibber_subscribe_feeds_callback(mocker):
    """Test that subscribe() drives the stream into the callback"""
    source = TibberSource(token='test-token')
    source.wss_url = 'wss://test.example.com'
    source.home_id = 'test-home-123'

    mock_ws = MockWebSocket([
        '{"type": "connection_ack"}',
        '{"type": "next", "payload": {"data": {"liveMeasurement": {"power": 42}}}}',
        '{"type": "complete"}',
    ])

    async def mock_connect(*args, **kwargs):
        yield mock_ws

    mocker.patch('sources.tibber.websockets.connect', side_effect=mock_connect)

    received = []

    async def callback(measurement):
        received.append(measurement.power)

    subscription = await source.subscribe(callback)
    await subscription.wait_closed()

    assert received == [42]
