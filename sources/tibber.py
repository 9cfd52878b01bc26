"""Tibber ingress module - streams Pulse live measurements via GraphQL WebSocket"""
import asyncio
import json
import logging
import sys
import requests
import websockets
from typing import AsyncIterator

from sources.base import LiveCallback, LiveMeasurement, Subscription, SubscriptionError

logger = logging.getLogger(__name__)

LIVE_MEASUREMENT_FIELDS = """
            timestamp
            power
            powerProduction
            accumulatedConsumption
            accumulatedCost
            currentL1
            currentL2
            currentL3
"""


class TibberSource:
    """
    Tibber Pulse live source.

    Connects to Tibber GraphQL API via WebSocket subscription
    to stream real-time measurements of one home.
    """

    def __init__(
        self,
        token: str,
        home_id: str | None = None,
        endpoint: str = "https://api.tibber.com/v1-beta/gql",
        user_agent: str = "Tibber-Pulse-Bridge/0.1.0"
    ):
        """
        Initialize Tibber source.

        Args:
            token: Tibber API token
            home_id: Home to follow. When None, the first home with a Pulse is used.
            endpoint: GraphQL HTTP endpoint for bootstrap
            user_agent: User-Agent header for requests
        """
        self.token = token
        self.home_id = home_id
        self.endpoint = endpoint
        self.user_agent = user_agent
        self.wss_url = None

    async def connect(self) -> None:
        """
        Phase 1: HTTP Bootstrap.
        Fetch both the WebSocket URL and homes with real-time meter.
        """
        if not self.token:
            logger.error("TIBBER_TOKEN not found.")
            sys.exit(1)

        headers = {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json",
            "User-Agent": self.user_agent
        }

        query = """
        {
          viewer {
            websocketSubscriptionUrl
            homes {
              id
              appNickname
              features {
                realTimeConsumptionEnabled
              }
            }
          }
        }
        """

        try:
            response = await asyncio.to_thread(
                requests.post,
                self.endpoint,
                json={"query": query},
                headers=headers,
                timeout=10
            )
            response.raise_for_status()
            data = response.json()
        except Exception as e:
            logger.error(f"HTTP Bootstrap failed: {e}")
            sys.exit(1)

        viewer = data.get('data', {}).get('viewer', {})
        self.wss_url = viewer.get('websocketSubscriptionUrl')
        homes = viewer.get('homes', [])

        wanted = self.home_id
        self.home_id = None
        for home in homes:
            if not home.get('features', {}).get('realTimeConsumptionEnabled'):
                continue
            if wanted and home.get('id') != wanted:
                continue
            self.home_id = home['id']
            logger.info(f"Found home: {home.get('appNickname') or 'Home'} ({self.home_id})")
            break

        if not self.wss_url:
            logger.error("Tibber API: No WebSocket URL received.")
            sys.exit(1)

        if not self.home_id:
            if wanted:
                logger.error(f"Tibber API: Home {wanted} has no Pulse (realTimeConsumptionEnabled=True).")
            else:
                logger.error("Tibber API: No home with Pulse found (realTimeConsumptionEnabled=True).")
            sys.exit(1)

    async def subscribe(self, callback: LiveCallback) -> Subscription:
        """
        Open a live subscription for the bootstrapped home.

        Raises:
            SubscriptionError: connect() has not resolved a WebSocket URL and home.
        """
        if not self.wss_url or not self.home_id:
            raise SubscriptionError("Tibber API: connect() must succeed before subscribing")

        logger.info(f"Tibber API: Subscribing to live data for home {self.home_id}")
        return Subscription(self.stream(), callback)

    async def stream(self) -> AsyncIterator[LiveMeasurement]:
        """
        Phase 2: WebSocket Stream (graphql-transport-ws protocol).

        Yields LiveMeasurement objects as data arrives from Tibber.
        Handles auto-reconnect internally.
        """
        sub_query = f"""
        subscription {{
          liveMeasurement(homeId: "{self.home_id}") {{{LIVE_MEASUREMENT_FIELDS}          }}
        }}
        """

        # Note: Tibber requires 'graphql-transport-ws' subprotocol.
        # The token travels in the connection payload (see init_msg).

        logger.info(f"Tibber API: Connect WebSocket {self.wss_url}")

        async for websocket in websockets.connect(
            self.wss_url,
            subprotocols=["graphql-transport-ws"],
            additional_headers={"User-Agent": self.user_agent}
        ):
            try:
                # --- STEP A: Connection Init ---
                init_msg = {
                    "type": "connection_init",
                    "payload": {"token": self.token}
                }
                await websocket.send(json.dumps(init_msg))

                # --- STEP B: Wait for Ack ---
                # We may only subscribe when we receive a 'connection_ack'.
                while True:
                    resp = await websocket.recv()
                    msg = json.loads(resp)
                    if msg.get("type") == "connection_ack":
                        logger.info("Tibber API: Authentication passed (connection_ack).")
                        break
                    elif msg.get("type") == "connection_error":
                        logger.error(f"Tibber API: Authentication error: {msg}")
                        return

                # --- STEP C: Subscribe ---
                sub_msg = {
                    "id": "1",
                    "type": "subscribe",
                    "payload": {
                        "query": sub_query
                    }
                }
                await websocket.send(json.dumps(sub_msg))
                logger.info("Tibber API: Subscription started. Waiting for data...")

                # --- STEP D: Data Loop ---
                async for message in websocket:
                    data = json.loads(message)
                    msg_type = data.get("type")

                    if msg_type == "next":
                        payload = data.get("payload", {}).get("data", {}).get("liveMeasurement")
                        if payload:
                            yield LiveMeasurement.from_payload(payload)

                    elif msg_type == "error":
                        logger.error(f"Tibber API: Stream error: {data}")

                    elif msg_type == "complete":
                        logger.info("Tibber API: Server stopped the stream.")
                        return

            except websockets.ConnectionClosed as e:
                logger.warning(f"Tibber API: Connection closed: {e}. Restarting in 5s...")
                await asyncio.sleep(5)
                continue
            except Exception as e:
                logger.error(f"Tibber API: Unexpected error: {e}")
                await asyncio.sleep(5)
