import asyncio

import pytest

from conftest import COINS, FakeCoinService
from errors import DirectoryUnavailable
from models import Coin
from services.coin_directory import CoinDirectory


def loaded_directory(coins=None):
    directory = CoinDirectory(FakeCoinService(coins=coins))
    asyncio.run(directory.ensure_loaded())
    return directory


@pytest.mark.parametrize("term", ["bit", "BIT", "Coin", "btc", "WBTC", "doge"])
def test_search_matches_name_or_symbol_case_insensitively(term):
    directory = loaded_directory()
    found = directory.search(term)
    assert found
    for coin in found:
        assert term.lower() in coin.name.lower() or term.lower() in coin.symbol.lower()


def test_search_includes_every_matching_coin_in_directory_order():
    directory = loaded_directory()
    assert [c.id for c in directory.search("bitcoin")] == ["bitcoin", "wrapped-bitcoin"]


def test_search_without_match_is_empty():
    assert loaded_directory().search("zzzz-no-such-coin") == []


def test_search_is_capped_at_100():
    many = [Coin(id=f"coin-{i}", symbol=f"c{i}", name=f"Coin {i}") for i in range(250)]
    directory = loaded_directory(many)

    assert len(directory.search("")) == 100
    assert len(directory.search("coin")) == 100
    assert len(directory.search("1")) <= 100


def test_search_before_load_is_empty():
    directory = CoinDirectory(FakeCoinService())
    assert directory.search("bit") == []
    assert not directory.loaded


def test_directory_is_fetched_once():
    service = FakeCoinService()
    directory = CoinDirectory(service)

    async def scenario():
        await directory.ensure_loaded()
        await directory.ensure_loaded()

    asyncio.run(scenario())
    assert service.directory_calls == 1


def test_concurrent_first_use_shares_one_fetch():
    class SlowService(FakeCoinService):
        async def fetch_coin_directory(self):
            await asyncio.sleep(0.01)
            return await super().fetch_coin_directory()

    service = SlowService()
    directory = CoinDirectory(service)

    async def scenario():
        return await asyncio.gather(directory.ensure_loaded(), directory.ensure_loaded())

    first, second = asyncio.run(scenario())
    assert service.directory_calls == 1
    assert first == second == COINS


def test_failed_fetch_is_not_cached():
    class FlakyService(FakeCoinService):
        async def fetch_coin_directory(self):
            self.directory_calls += 1
            if self.directory_calls == 1:
                raise DirectoryUnavailable("down")
            return list(self.coins)

    service = FlakyService()
    directory = CoinDirectory(service)

    with pytest.raises(DirectoryUnavailable):
        asyncio.run(directory.ensure_loaded())
    assert not directory.loaded

    asyncio.run(directory.ensure_loaded())
    assert directory.loaded
    assert service.directory_calls == 2


def test_fetch_failing_after_its_caller_was_cancelled_is_not_cached():
    class SlowFlakyService(FakeCoinService):
        async def fetch_coin_directory(self):
            self.directory_calls += 1
            if self.directory_calls == 1:
                await asyncio.sleep(0.01)
                raise DirectoryUnavailable("down")
            return list(self.coins)

    service = SlowFlakyService()
    directory = CoinDirectory(service)

    async def scenario():
        waiter = asyncio.ensure_future(directory.ensure_loaded())
        await asyncio.sleep(0)
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter
        # let the orphaned fetch fail
        await asyncio.sleep(0.05)
        return await directory.ensure_loaded()

    assert asyncio.run(scenario()) == COINS
    assert service.directory_calls == 2


def test_find_by_id():
    directory = loaded_directory()
    assert directory.find(" Bitcoin ").name == "Bitcoin"
    assert directory.find("nope") is None
    assert directory.find("") is None
