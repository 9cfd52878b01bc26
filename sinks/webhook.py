"""Webhook egress module - posts capability updates and triggers as JSON"""
import asyncio
import logging
import os
from typing import Any

import requests

logger = logging.getLogger(__name__)


class WebhookSink:
    """
    Posts every capability update and trigger to an HTTP endpoint.

    Payloads:
        {"type": "capability", "name": "measure_power", "value": 1200}
        {"type": "trigger", "name": "power_changed", "tokens": {"power": 1200}}
    """

    def __init__(self, url: str | None = None, timeout: float = 5.0):
        """
        Initialize webhook sink.

        Args:
            url: Endpoint receiving the JSON posts (default: WEBHOOK_URL)
            timeout: HTTP request timeout in seconds (default: 5.0)
        """
        self.url = url or os.environ.get("WEBHOOK_URL")
        self.timeout = timeout

    def _post(self, payload: dict[str, Any]) -> None:
        """
        Executes the HTTP POST.
        Is ran in a thread to not block the main loop. Errors propagate.
        """
        if not self.url:
            logger.warning("Webhook: WEBHOOK_URL missing. Skipping post.")
            return

        r = requests.post(self.url, json=payload, timeout=self.timeout)
        r.raise_for_status()

    async def set_capability_value(self, name: str, value: float) -> None:
        await asyncio.to_thread(self._post, {"type": "capability", "name": name, "value": value})

    async def trigger(self, name: str, tokens: dict[str, Any]) -> None:
        await asyncio.to_thread(self._post, {"type": "trigger", "name": name, "tokens": tokens})
