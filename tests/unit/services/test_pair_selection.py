import pytest
from unittest.mock import AsyncMock, MagicMock

from core.common.errors import ExchangeError
from core.domain.entities.market_entity import BalanceEntity, TickerEntity
from core.domain.entities.strategy_config_entity import StrategyConfig
from core.services.pair_selection_service import MAX_PAIRS_HARD_CAP, PairSelectionService


def _ticker(symbol, volume, spread=0.0002, range_pct=0.03, last=100.0):
    half = last * spread / 2
    return TickerEntity(
        symbol=symbol,
        last=last,
        bid=last - half,
        ask=last + half,
        high=last * (1 + range_pct / 2),
        low=last * (1 - range_pct / 2),
        quote_volume=volume,
    )


@pytest.fixture
def tickers():
    items = [
        _ticker("BTC/USDT", 1e9),
        _ticker("ETH/USDT", 5e8),
        _ticker("SOL/USDT", 5e8),
        _ticker("THIN/USDT", 1e6),                 # volume below minimum
        _ticker("WIDE/USDT", 1e8, spread=0.01),    # spread too wide
        _ticker("CALM/USDT", 1e8, range_pct=0.001),  # below vol_low
        _ticker("WILD/USDT", 1e8, range_pct=0.5),  # above 2 x vol_high
        _ticker("ETH/BTC", 1e9),                   # wrong quote
        _ticker("DEAD/USDT", 1e8, last=0.0),
    ]
    return {t.symbol: t for t in items}


@pytest.fixture
def selector():
    return PairSelectionService(MagicMock(), quote_asset="USDT", min_volume=5e6, max_spread=0.0025)


def test_filters_and_ranks_by_volume(selector, tickers):
    cfg = StrategyConfig()
    picked = selector.select(tickers, [], cfg)
    # equal volumes tie-break on symbol
    assert picked == ["BTC/USDT", "ETH/USDT", "SOL/USDT"]


def test_held_symbols_come_first(selector, tickers):
    picked = selector.select(tickers, ["XRP/USDT"], StrategyConfig())
    assert picked[0] == "XRP/USDT"
    assert picked[1:] == ["BTC/USDT", "ETH/USDT", "SOL/USDT"]


def test_limit_counts_held_symbols(selector, tickers):
    cfg = StrategyConfig.from_raw({"risk": {"maxPairs": 2}})
    assert selector.select(tickers, ["XRP/USDT"], cfg) == ["XRP/USDT", "BTC/USDT"]


def test_hard_cap(selector):
    many = {f"C{i:02d}/USDT": _ticker(f"C{i:02d}/USDT", 1e7 + i) for i in range(30)}
    cfg = StrategyConfig.from_raw({"risk": {"maxPairs": 50}})
    assert len(selector.select(many, [], cfg)) == MAX_PAIRS_HARD_CAP


def test_selection_is_idempotent(selector, tickers):
    cfg = StrategyConfig()
    first = selector.select(tickers, ["XRP/USDT"], cfg)
    second = selector.select(dict(reversed(list(tickers.items()))), ["XRP/USDT"], cfg)
    assert first == second


@pytest.mark.asyncio
async def test_uses_balance_holdings(tickers):
    exchange = MagicMock()
    exchange.fetch_balance = AsyncMock(
        return_value=BalanceEntity(total={"USDT": 500.0, "ADA": 10.0, "DOT": 0.0})
    )
    exchange.fetch_tickers = AsyncMock(return_value=tickers)
    svc = PairSelectionService(exchange)

    picked = await svc.select_tradable_pairs(StrategyConfig())

    assert picked == ["ADA/USDT", "BTC/USDT", "ETH/USDT", "SOL/USDT"]


@pytest.mark.asyncio
async def test_falls_back_to_config_pairs_on_error():
    exchange = MagicMock()
    exchange.fetch_balance = AsyncMock(return_value=BalanceEntity())
    exchange.fetch_tickers = AsyncMock(side_effect=ExchangeError("down"))
    cfg = StrategyConfig.from_raw({"pairs": ["BTC/USDT", "ETH/USDT"]})

    picked = await PairSelectionService(exchange).select_tradable_pairs(cfg)

    assert picked == ["BTC/USDT", "ETH/USDT"]


@pytest.mark.asyncio
async def test_falls_back_when_nothing_survives():
    exchange = MagicMock()
    exchange.fetch_balance = AsyncMock(return_value=BalanceEntity())
    exchange.fetch_tickers = AsyncMock(return_value={})
    cfg = StrategyConfig.from_raw({"pairs": ["SOL/USDT"]})

    assert await PairSelectionService(exchange).select_tradable_pairs(cfg) == ["SOL/USDT"]
