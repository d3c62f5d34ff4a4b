# services/coin_directory.py
from __future__ import annotations
import asyncio
import logging
from typing import List, Optional

from config import settings
from models import Coin
from services.coingecko_service import CoinGeckoService

log = logging.getLogger("coins")

class CoinDirectory:
    """
    Coin list fetched once and kept in memory for the life of the process.
    No refresh, no expiry. A failed fetch is not cached, so the next caller retries.
    Callers arriving while a fetch is running await that same fetch.
    """

    def __init__(self, service: CoinGeckoService, limit: Optional[int] = None):
        self.service = service
        self.limit = limit or settings.COIN_SEARCH_LIMIT
        self._coins: Optional[List[Coin]] = None
        self._inflight: Optional[asyncio.Future] = None

    @property
    def loaded(self) -> bool:
        return self._coins is not None

    async def ensure_loaded(self) -> List[Coin]:
        if self._coins is not None:
            return self._coins
        if self._inflight is None:
            self._inflight = asyncio.ensure_future(self._fetch())
            self._inflight.add_done_callback(self._fetch_done)
        return await asyncio.shield(self._inflight)

    def _fetch_done(self, fut: asyncio.Future) -> None:
        # runs even when every awaiter was cancelled
        if self._inflight is fut:
            self._inflight = None
        if not fut.cancelled() and fut.exception() is not None:
            log.warning(f"coin directory fetch failed: {fut.exception()!r}")

    async def _fetch(self) -> List[Coin]:
        coins = await self.service.fetch_coin_directory()
        self._coins = coins
        return coins

    def search(self, term: str = "", limit: Optional[int] = None) -> List[Coin]:
        """Case-insensitive substring match on name or symbol, directory order, capped."""
        cap = limit if limit is not None else self.limit
        coins = self._coins or []
        needle = (term or "").lower()
        if not needle:
            return coins[:cap]
        out: List[Coin] = []
        for coin in coins:
            if needle in coin.name.lower() or needle in coin.symbol.lower():
                out.append(coin)
                if len(out) >= cap:
                    break
        return out

    def find(self, coin_id: str) -> Optional[Coin]:
        token = (coin_id or "").strip().lower()
        if not token:
            return None
        for coin in self._coins or []:
            if coin.id == token:
                return coin
        return None
