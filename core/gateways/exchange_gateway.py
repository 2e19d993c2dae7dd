from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from core.domain.entities.market_entity import BalanceEntity, OrderResultEntity, TickerEntity


class ExchangeGateway(ABC):
    """
    Spot exchange contract consumed by the trading core.

    Implementations raise `core.common.errors.ExchangeError` on any failure;
    callers decide whether to degrade or abort.
    """

    @abstractmethod
    async def fetch_ohlcv(self, symbol: str, interval: str, limit: int) -> List[List[Any]]:
        """Candles as [ts_ms, open, high, low, close, volume], oldest first."""
        raise NotImplementedError

    @abstractmethod
    async def fetch_tickers(self) -> Dict[str, TickerEntity]:
        raise NotImplementedError

    @abstractmethod
    async def fetch_ticker(self, symbol: str) -> TickerEntity:
        raise NotImplementedError

    @abstractmethod
    async def fetch_balance(self) -> BalanceEntity:
        raise NotImplementedError

    @abstractmethod
    async def create_market_buy_order(
        self, symbol: str, amount: float, reference_price: Optional[float] = None
    ) -> OrderResultEntity:
        raise NotImplementedError

    @abstractmethod
    async def create_market_sell_order(
        self, symbol: str, amount: float, reference_price: Optional[float] = None
    ) -> OrderResultEntity:
        raise NotImplementedError

    async def aclose(self) -> None:
        return None
