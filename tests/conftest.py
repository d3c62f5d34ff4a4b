import os

# config.settings refuses to load without a key; set one before anything imports it
os.environ.setdefault("GEMINI_API_KEY", "test-key")

from decimal import Decimal
from types import SimpleNamespace

import pytest

from models import Coin


COINS = [
    Coin(id="bitcoin", symbol="btc", name="Bitcoin"),
    Coin(id="ethereum", symbol="eth", name="Ethereum"),
    Coin(id="wrapped-bitcoin", symbol="wbtc", name="Wrapped Bitcoin"),
    Coin(id="dogecoin", symbol="doge", name="Dogecoin"),
]

PRICES = {"bitcoin": Decimal("50000"), "ethereum": Decimal("3000")}


class FakeCoinService:
    """Stands in for CoinGeckoService; records calls."""

    def __init__(self, coins=None, prices=None, error=None):
        self.coins = list(COINS if coins is None else coins)
        self.prices = dict(PRICES if prices is None else prices)
        self.error = error
        self.directory_calls = 0
        self.price_calls = []
        self.on_price = None

    async def fetch_coin_directory(self):
        self.directory_calls += 1
        return list(self.coins)

    async def resolve_value(self, coin_id, amount):
        self.price_calls.append((coin_id, amount))
        if self.on_price:
            self.on_price()
        if self.error:
            raise self.error
        return self.prices[coin_id] * amount


class FakeModels:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    async def generate_content(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        return self.response


class FakeGenaiClient:
    def __init__(self, response=None, error=None):
        self.models = FakeModels(response=response, error=error)
        self.aio = SimpleNamespace(models=self.models)


def grounded_response(text, chunks=()):
    """Shape of a google-genai GenerateContentResponse, as far as the planner reads it."""
    metadata = SimpleNamespace(grounding_chunks=list(chunks))
    candidate = SimpleNamespace(content=None, grounding_metadata=metadata)
    return SimpleNamespace(text=text, candidates=[candidate])


def web_chunk(uri=None, title=None):
    web = SimpleNamespace(uri=uri, title=title)
    return SimpleNamespace(web=web)


class FakeItineraryService:
    """Stands in for ItineraryService; records the prompt inputs."""

    def __init__(self, text="### Day 1\n- Visit museum", sources=(), error=None):
        self.text = text
        self.sources = list(sources)
        self.error = error
        self.calls = []
        self.on_generate = None

    async def generate(self, destination, budget_description, interests, duration_days):
        from models import ItineraryResult

        self.calls.append({
            "destination": destination,
            "budget": budget_description,
            "interests": list(interests),
            "duration": duration_days,
        })
        if self.on_generate:
            self.on_generate()
        if self.error:
            raise self.error
        return ItineraryResult(text=self.text, sources=self.sources)


@pytest.fixture
def coin_service():
    return FakeCoinService()


@pytest.fixture
def itinerary_service():
    return FakeItineraryService()


