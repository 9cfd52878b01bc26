import argparse
import asyncio
import logging
import os
import signal
import sys

from dotenv import dotenv_values, load_dotenv

# Load configuration from single .env file
ENV_FILE = "tibber-pulse-bridge.env"
load_dotenv(ENV_FILE)

from sources.tibber import TibberSource
from sinks.lametric import LaMetricSink
from sinks.webhook import WebhookSink
from pulse.device import PulseDevice
from pulse.settings import PulseSettings, settings_from_env

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(levelname)s - %(message)s',
    datefmt='%H:%M:%S'
)
logger = logging.getLogger(__name__)


def get_source() -> TibberSource:
    """Initialize the Tibber source with hard fail on misconfiguration"""
    token = os.getenv("TIBBER_TOKEN")
    if not token:
        logger.error(f"Tibber: TIBBER_TOKEN not configured in {ENV_FILE}")
        sys.exit(1)
    return TibberSource(token=token, home_id=os.getenv("TIBBER_HOME_ID") or None)


def get_sink(sink_name: str, settings: PulseSettings):
    """Initialize the selected sink with hard fail on misconfiguration"""
    if sink_name == "lametric":
        if not os.getenv("LAMETRIC_URL") or not os.getenv("LAMETRIC_API_KEY"):
            logger.error(f"LaMetric: LAMETRIC_URL and LAMETRIC_API_KEY must be configured in {ENV_FILE}")
            sys.exit(1)
        logger.info("Using sink: LaMetric")
        return LaMetricSink(settings=settings)
    elif sink_name == "webhook":
        if not os.getenv("WEBHOOK_URL"):
            logger.error(f"Webhook: WEBHOOK_URL not configured in {ENV_FILE}")
            sys.exit(1)
        logger.info("Using sink: Webhook")
        return WebhookSink()
    else:
        logger.error(f"Unknown sink: {sink_name}")
        sys.exit(1)


async def reload_settings(device: PulseDevice) -> None:
    """Re-read the .env file and apply the pulse settings that changed"""
    new_settings = settings_from_env(dotenv_values(ENV_FILE))
    current = {
        "pulse_throttle": str(device.settings.throttle),
        "pulse_currency": device.settings.currency,
        "pulse_area": device.settings.area,
    }
    changed = [key for key, value in new_settings.items() if value and value != current[key]]
    if changed:
        await device.on_settings(new_settings, changed)
    else:
        logger.info("Settings reloaded, nothing changed")


async def main(sink_name: str):
    settings = PulseSettings.from_env(os.environ)
    source = get_source()
    sink = get_sink(sink_name, settings)

    # Connect (HTTP bootstrap)
    await source.connect()

    device = PulseDevice(source.home_id, source, sink, settings=settings)

    loop = asyncio.get_running_loop()
    loop.add_signal_handler(
        signal.SIGHUP, lambda: asyncio.create_task(reload_settings(device))
    )

    await device.start()
    try:
        # Runs until cancelled; the device resubscribes by itself on silence
        await asyncio.Event().wait()
    finally:
        await device.stop()


if __name__ == "__main__":
    # Parse command line arguments
    parser = argparse.ArgumentParser(description="Tibber Pulse Bridge")
    parser.add_argument(
        "--sink",
        type=str,
        default="lametric",
        choices=["lametric", "webhook"],
        help="Sink for capability values and triggers (default: lametric)"
    )
    args = parser.parse_args()

    try:
        asyncio.run(main(args.sink))
    except KeyboardInterrupt:
        logger.info("Script stopped by user.")
