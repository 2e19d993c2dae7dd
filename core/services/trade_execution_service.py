import logging
from typing import Optional

from core.domain.entities.market_entity import OrderResultEntity
from core.domain.entities.trade_entity import TradeEntity
from core.domain.enums.signal_enums import TradeSide, TradeStatus
from core.gateways.exchange_gateway import ExchangeGateway
from core.repositories.trade_repository import TradeRepository


class TradeExecutionService:
    """
    Places market orders and records them in the trade ledger.

    - buy  -> one `open` trade carrying SL/TP targets.
    - sell -> one `closed` trade, and the originating open trade(s) flipped to
              closed: the given trade id when known, otherwise every open
              trade of the symbol.

    Exchange errors propagate; nothing is written for a failed order.
    """

    def __init__(
        self,
        exchange: ExchangeGateway,
        trade_repo: TradeRepository,
        logger: Optional[logging.Logger] = None,
    ):
        self._exchange = exchange
        self._trades = trade_repo
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    async def execute_buy(
        self,
        symbol: str,
        amount: float,
        price: float,
        strategy: str,
        sl_price: Optional[float] = None,
        tp_price: Optional[float] = None,
    ) -> OrderResultEntity:
        order = await self._exchange.create_market_buy_order(symbol, amount, reference_price=price)
        await self._trades.add_trade(
            TradeEntity(
                symbol=symbol,
                side=TradeSide.BUY,
                amount=order.filled_amount,
                price=order.avg_price,
                cost=order.cost,
                strategy=strategy,
                status=TradeStatus.OPEN,
                order_id=order.order_id,
                sl_price=sl_price,
                tp_price=tp_price,
            )
        )
        self._logger.info(
            "BUY %s amount=%.8f price=%.8f cost=%.2f [%s]",
            symbol,
            order.filled_amount,
            order.avg_price,
            order.cost,
            strategy,
        )
        return order

    async def execute_sell(
        self,
        symbol: str,
        amount: float,
        price: float,
        strategy: str,
        close_trade_id: Optional[str] = None,
    ) -> OrderResultEntity:
        order = await self._exchange.create_market_sell_order(symbol, amount, reference_price=price)
        await self._trades.add_trade(
            TradeEntity(
                symbol=symbol,
                side=TradeSide.SELL,
                amount=order.filled_amount,
                price=order.avg_price,
                cost=order.cost,
                strategy=strategy,
                status=TradeStatus.CLOSED,
                order_id=order.order_id,
            )
        )
        if close_trade_id:
            await self._trades.close_by_id(close_trade_id)
        else:
            await self._trades.close_open_by_symbol(symbol)
        self._logger.info(
            "SELL %s amount=%.8f price=%.8f cost=%.2f [%s]",
            symbol,
            order.filled_amount,
            order.avg_price,
            order.cost,
            strategy,
        )
        return order
