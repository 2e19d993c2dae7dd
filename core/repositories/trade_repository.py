from abc import ABC, abstractmethod
from typing import List, Optional

from core.domain.entities.trade_entity import TradeEntity


class TradeRepository(ABC):
    """
    Append-only trade ledger. Records are never deleted; only their status
    (open -> closed) and trailing high-water mark change.
    """

    @abstractmethod
    async def ensure_indexes(self) -> None:
        raise NotImplementedError

    @abstractmethod
    async def add_trade(self, trade: TradeEntity) -> TradeEntity:
        """Persist a new trade; assigns id and creation timestamp."""
        raise NotImplementedError

    @abstractmethod
    async def list_recent(self, limit: Optional[int] = None) -> List[TradeEntity]:
        """Most recent first."""
        raise NotImplementedError

    @abstractmethod
    async def list_open(self) -> List[TradeEntity]:
        raise NotImplementedError

    @abstractmethod
    async def list_since(self, since_ms: int) -> List[TradeEntity]:
        """Trades created at or after `since_ms`, oldest first."""
        raise NotImplementedError

    @abstractmethod
    async def close_by_id(self, trade_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def close_open_by_symbol(self, symbol: str) -> int:
        """
        Flip every open trade of `symbol` to closed.
        Returns the number of trades updated.
        """
        raise NotImplementedError

    @abstractmethod
    async def update_highest_price(self, trade_id: str, highest_price: float) -> None:
        raise NotImplementedError
