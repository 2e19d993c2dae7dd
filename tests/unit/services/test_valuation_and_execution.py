import pytest

from core.common.errors import ExchangeError
from core.domain.entities.market_entity import BalanceEntity
from core.domain.enums.signal_enums import StrategyTag, TradeSide, TradeStatus
from core.services.portfolio_valuation_service import PortfolioValuationService
from core.services.trade_execution_service import TradeExecutionService


@pytest.mark.asyncio
async def test_valuation_marks_assets_at_last_price(exchange):
    exchange.balance = BalanceEntity(total={"USDT": 100.0, "BTC": 0.5, "ETH": 2.0, "DUST": 3.0})
    exchange.set_price("BTC/USDT", 200.0)
    exchange.set_price("ETH/USDT", 10.0)
    # DUST/USDT has no ticker and is left out

    valuation = await PortfolioValuationService(exchange).value()

    assert valuation.quote_balance == 100.0
    assert valuation.total_usdt == pytest.approx(220.0)
    assert [a.asset for a in valuation.assets] == ["BTC", "ETH"]
    assert valuation.position("BTC").usdt_value == pytest.approx(100.0)
    assert valuation.position("DUST") is None


@pytest.mark.asyncio
async def test_buy_records_open_trade_with_targets(exchange, trade_repo):
    svc = TradeExecutionService(exchange, trade_repo)

    order = await svc.execute_buy("BTC/USDT", 0.5, 100.0, StrategyTag.DYNAMIC_TREND.value, sl_price=96, tp_price=108)

    assert order.cost == pytest.approx(50.0)
    [trade] = trade_repo.trades
    assert trade.side == TradeSide.BUY.value
    assert trade.status == TradeStatus.OPEN.value
    assert (trade.sl_price, trade.tp_price) == (96, 108)


@pytest.mark.asyncio
async def test_sell_closes_open_trades_of_symbol(exchange, trade_repo):
    svc = TradeExecutionService(exchange, trade_repo)
    await svc.execute_buy("BTC/USDT", 0.5, 100.0, StrategyTag.DYNAMIC_TREND.value)
    await svc.execute_buy("ETH/USDT", 1.0, 10.0, StrategyTag.DYNAMIC_TREND.value)

    await svc.execute_sell("BTC/USDT", 0.5, 110.0, StrategyTag.DYNAMIC_TREND.value)

    open_symbols = [t.symbol for t in await trade_repo.list_open()]
    assert open_symbols == ["ETH/USDT"]
    sell = trade_repo.trades[-1]
    assert sell.side == TradeSide.SELL.value and sell.status == TradeStatus.CLOSED.value


@pytest.mark.asyncio
async def test_failed_order_writes_nothing(exchange, trade_repo):
    exchange.failing_symbols.add("BTC/USDT")
    with pytest.raises(ExchangeError):
        await TradeExecutionService(exchange, trade_repo).execute_buy("BTC/USDT", 1, 1, "DynamicTrend")
    assert trade_repo.trades == []
