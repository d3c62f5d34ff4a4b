# services/coingecko_service.py
from __future__ import annotations
from decimal import Decimal, InvalidOperation
from typing import List, Optional
import httpx
import logging

from config import settings
from errors import DirectoryUnavailable, ServiceUnavailable, UnknownCoin, ValidationError
from models import Coin

log = logging.getLogger("coins")

class CoinGeckoService:
    """
    Client for the public CoinGecko API (no key needed).
    - /coins/list          -> coin directory
    - /simple/price        -> unit price in the reference currency
    No timeout is set here; httpx's default applies.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        vs_currency: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.COINGECKO_API_BASE).rstrip("/")
        self.vs_currency = (vs_currency or settings.PRICE_REFERENCE_CURRENCY).lower()
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, transport=self._transport)

    async def fetch_coin_directory(self) -> List[Coin]:
        try:
            async with self._client() as client:
                r = await client.get("/coins/list")
                r.raise_for_status()
                data = r.json()
        except (httpx.HTTPError, ValueError) as e:
            log.warning(f"Coin list fetch failed: {e}")
            raise DirectoryUnavailable(f"coin list fetch failed: {e}") from e

        if not isinstance(data, list):
            log.warning("Coin list response is not a list", extra={"type": type(data).__name__})
            raise DirectoryUnavailable("coin list response is not a list")

        coins: List[Coin] = []
        for entry in data:
            if not isinstance(entry, dict):
                continue
            if not all(isinstance(entry.get(k), str) for k in ("id", "symbol", "name")):
                continue
            coins.append(Coin(id=entry["id"], symbol=entry["symbol"], name=entry["name"]))
        log.info("Coin directory fetched", extra={"coins": len(coins), "raw_entries": len(data)})
        return coins

    async def resolve_value(self, coin_id: str, amount: Decimal) -> Decimal:
        """Value of `amount` units of `coin_id` in the reference currency. Not rounded."""
        token = (coin_id or "").strip().lower()
        if not token:
            raise ValidationError("Token ID is required.")

        params = {"ids": token, "vs_currencies": self.vs_currency}
        try:
            async with self._client() as client:
                r = await client.get("/simple/price", params=params)
                r.raise_for_status()
                data = r.json()
        except (httpx.HTTPError, ValueError) as e:
            log.warning(f"Price lookup failed for {token}: {e}")
            raise ServiceUnavailable(
                f"price lookup failed for {token}: {e}",
                user_message="Failed to fetch price data. Please try again.",
            ) from e

        entry = data.get(token) if isinstance(data, dict) else None
        if not isinstance(entry, dict) or entry.get(self.vs_currency) is None:
            log.info("No price entry for coin", extra={"coin_id": token})
            raise UnknownCoin(
                f"no {self.vs_currency} price for {token}",
                user_message=f'Invalid crypto ID: "{coin_id}". Please pick a coin from the list.',
            )

        try:
            unit_price = Decimal(str(entry[self.vs_currency]))
        except InvalidOperation as e:
            raise ServiceUnavailable(
                f"unparseable price for {token}: {entry[self.vs_currency]!r}",
                user_message="Failed to fetch price data. Please try again.",
            ) from e

        value = unit_price * amount
        log.info("Price resolved", extra={"coin_id": token, "unit_price": str(unit_price), "amount": str(amount)})
        return value
