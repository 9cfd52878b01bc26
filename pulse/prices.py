"""Day-ahead price fallback - Nord Pool lookup and the hour-bucketed price cache"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from zoneinfo import ZoneInfo

import httpx

logger = logging.getLogger(__name__)

NORDPOOL_URL = "https://www.nordpoolgroup.com/api/marketdata/page/10"
NORDPOOL_TZ = ZoneInfo("Europe/Oslo")

# Seconds a background price lookup may run before it counts as failed
PRICE_LOOKUP_TIMEOUT = 5.0


def parse_price_value(value: str) -> float:
    """
    Parse a Nord Pool price cell into price per kWh.

    Cells use comma as decimal separator and space as thousands separator,
    and are published per MWh.

    Raises:
        ValueError: The cell is not a number.
    """
    text = value.replace(",", ".").replace("\xa0", "").replace(" ", "").strip()
    return float(text) / 1000


def find_area_price(data: dict[str, Any], area: str, now: datetime) -> float | None:
    """
    Pick the price for area from a Nord Pool page, for the row containing now.

    Returns None when no row covers now or the row has no column for area.
    """
    rows = (data.get("data") or {}).get("Rows") or []

    for row in rows:
        if row.get("IsExtraRow"):
            continue
        try:
            start = datetime.fromisoformat(row["StartTime"]).replace(tzinfo=NORDPOOL_TZ)
            end = datetime.fromisoformat(row["EndTime"]).replace(tzinfo=NORDPOOL_TZ)
        except (KeyError, TypeError, ValueError):
            continue
        if not (start < now < end):
            continue

        # Only the first matching row counts
        for column in row.get("Columns") or []:
            if column.get("Name") == area:
                return parse_price_value(column.get("Value", ""))
        return None

    return None


class NordpoolPrices:
    """
    Nord Pool day-ahead price client.

    Uses a persistent httpx.AsyncClient so a lookup can be cancelled
    and is bounded by the client timeout.
    """

    def __init__(self, url: str = NORDPOOL_URL, timeout: float = 10.0):
        """
        Initialize the price client.

        Args:
            url: Market data page URL
            timeout: HTTP request timeout in seconds (default: 10.0)
        """
        self.url = url
        self.timeout = timeout
        self.client = None

    async def fetch_unit_price(self, area: str, currency: str, now: datetime) -> float | None:
        """
        Fetch the current unit price (per kWh) for area in currency.

        Raises on network and HTTP errors. Returns None when the page has
        no price for now and area.
        """
        if self.client is None:
            self.client = httpx.AsyncClient(timeout=self.timeout)

        params = {
            "currency": ",".join([currency] * 4),
            "endDate": now.astimezone(NORDPOOL_TZ).strftime("%d-%m-%Y"),
        }
        response = await self.client.get(self.url, params=params)
        response.raise_for_status()

        return find_area_price(response.json(), area, now)

    async def aclose(self) -> None:
        if self.client is not None:
            await self.client.aclose()
            self.client = None


@dataclass(frozen=True)
class PriceCacheEntry:
    """A unit price valid for one local hour of the day (0-23)."""
    hour: int
    price: float


class PriceCache:
    """
    Holds at most one day-ahead unit price, keyed by hour of day only.

    The cache does not know about currency or area, so the owner must call
    invalidate() whenever either of them changes.
    """

    def __init__(self, prices: NordpoolPrices | None = None, timeout: float = PRICE_LOOKUP_TIMEOUT):
        self.prices = prices or NordpoolPrices()
        self.timeout = timeout
        self.entry: PriceCacheEntry | None = None
        self._pending: asyncio.Task | None = None
        self._pending_key: tuple[int, str, str] | None = None

    def invalidate(self) -> None:
        """Drop the cached price and any lookup still in flight."""
        self.entry = None
        self._cancel_pending()

    def _cancel_pending(self) -> None:
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = None
        self._pending_key = None

    @property
    def pending(self) -> asyncio.Task | None:
        """The lookup task in flight, if any."""
        return self._pending

    def get_unit_price(self, hour: int, area: str, currency: str, now: datetime) -> float | None:
        """
        Return the cached unit price for hour, or None on a miss.

        Never waits on the network. A miss starts a background lookup
        (unless one for the same hour, area and currency is running) that
        fills the cache when it completes. A failed lookup is not cached
        and is retried on the next miss.
        """
        if self.entry is not None and self.entry.hour == hour:
            return self.entry.price

        # A different hour makes the cached price stale
        self.entry = None

        key = (hour, area, currency)
        if self._pending is None or self._pending.done() or self._pending_key != key:
            self._cancel_pending()
            logger.info(f"Using nordpool prices. Currency: {currency} - Area: {area}")
            self._pending = asyncio.create_task(self._lookup(hour, area, currency, now))
            self._pending.add_done_callback(_log_lookup_failure)
            self._pending_key = key

        return None

    async def _lookup(self, hour: int, area: str, currency: str, now: datetime) -> float | None:
        price = await asyncio.wait_for(
            self.prices.fetch_unit_price(area, currency, now), self.timeout
        )
        if price is None:
            logger.warning(f"Nordpool: No price for {now.isoformat()} in area {area}")
            return None

        self.entry = PriceCacheEntry(hour=hour, price=price)
        logger.info(f"Found price for {now.isoformat()} for area {area} {price}")
        return price

    async def aclose(self) -> None:
        self._cancel_pending()
        await self.prices.aclose()


def _log_lookup_failure(task: asyncio.Task) -> None:
    # Nobody awaits the lookup, so its failure is reported here
    if task.cancelled():
        return
    exc = task.exception()
    if isinstance(exc, asyncio.TimeoutError):
        logger.warning("Nordpool: Price lookup timed out, skipping cost until the next tick")
    elif exc is not None:
        logger.error(f"Error fetching prices from nordpool: {exc}")
