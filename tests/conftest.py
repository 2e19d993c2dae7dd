from typing import Any, Dict, List, Optional, Set

import pytest

from core.common.errors import ExchangeError
from core.common.utils import now_ms, to_iso
from core.domain.entities.log_entry_entity import LogEntryEntity
from core.domain.entities.market_entity import BalanceEntity, OrderResultEntity, TickerEntity
from core.domain.entities.portfolio_snapshot_entity import PortfolioSnapshotEntity
from core.domain.entities.trade_entity import TradeEntity
from core.domain.enums.signal_enums import TradeStatus
from core.gateways.exchange_gateway import ExchangeGateway
from core.repositories.log_repository import LogRepository
from core.repositories.settings_repository import SettingsRepository
from core.repositories.snapshot_repository import SnapshotRepository
from core.repositories.trade_repository import TradeRepository


# 1. In-memory storage contracts
class InMemoryTradeRepository(TradeRepository):
    def __init__(self):
        self.trades: List[TradeEntity] = []

    async def ensure_indexes(self) -> None:
        return None

    async def add_trade(self, trade: TradeEntity) -> TradeEntity:
        ts = trade.created_at or now_ms() + len(self.trades)
        stored = trade.model_copy(
            update={"id": str(len(self.trades) + 1), "created_at": ts, "created_at_iso": to_iso(ts)}
        )
        self.trades.append(stored)
        return stored

    async def list_recent(self, limit: Optional[int] = None) -> List[TradeEntity]:
        ordered = sorted(self.trades, key=lambda t: t.created_at, reverse=True)
        return ordered[:limit] if limit else ordered

    async def list_open(self) -> List[TradeEntity]:
        return [t for t in self.trades if t.status == TradeStatus.OPEN.value]

    async def list_since(self, since_ms: int) -> List[TradeEntity]:
        return sorted(
            (t for t in self.trades if t.created_at >= since_ms), key=lambda t: t.created_at
        )

    def _replace(self, idx: int, **update: Any) -> None:
        self.trades[idx] = self.trades[idx].model_copy(update=update)

    async def close_by_id(self, trade_id: str) -> None:
        for i, t in enumerate(self.trades):
            if t.id == trade_id and t.status == TradeStatus.OPEN.value:
                self._replace(i, status=TradeStatus.CLOSED.value)

    async def close_open_by_symbol(self, symbol: str) -> int:
        n = 0
        for i, t in enumerate(self.trades):
            if t.symbol == symbol and t.status == TradeStatus.OPEN.value:
                self._replace(i, status=TradeStatus.CLOSED.value)
                n += 1
        return n

    async def update_highest_price(self, trade_id: str, highest_price: float) -> None:
        for i, t in enumerate(self.trades):
            if t.id == trade_id:
                self._replace(i, highest_price=highest_price)

    def get(self, trade_id: str) -> Optional[TradeEntity]:
        return next((t for t in self.trades if t.id == trade_id), None)


class InMemorySnapshotRepository(SnapshotRepository):
    def __init__(self, history_cap: int = 5000):
        self.snapshots: List[PortfolioSnapshotEntity] = []
        self.cap = history_cap

    async def ensure_indexes(self) -> None:
        return None

    async def add_snapshot(self, snapshot: PortfolioSnapshotEntity) -> PortfolioSnapshotEntity:
        ts = snapshot.created_at or now_ms() + len(self.snapshots)
        stored = snapshot.model_copy(update={"created_at": ts, "created_at_iso": to_iso(ts)})
        self.snapshots.append(stored)
        self.snapshots.sort(key=lambda s: s.created_at)
        del self.snapshots[: max(0, len(self.snapshots) - self.cap)]
        return stored

    async def get_latest(self) -> Optional[PortfolioSnapshotEntity]:
        return self.snapshots[-1] if self.snapshots else None

    async def list_since(self, since_ms: int) -> List[PortfolioSnapshotEntity]:
        return [s for s in self.snapshots if s.created_at >= since_ms]

    async def list_recent(self, limit: int) -> List[PortfolioSnapshotEntity]:
        return list(reversed(self.snapshots))[:limit]


class InMemorySettingsRepository(SettingsRepository):
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.values: Dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self.values.get(key)

    async def set(self, key: str, value: str) -> None:
        self.values[key] = str(value)


class InMemoryLogRepository(LogRepository):
    def __init__(self):
        self.entries: List[LogEntryEntity] = []

    async def ensure_indexes(self) -> None:
        return None

    async def add_log(self, level: str, message: str, meta: Optional[str] = None) -> None:
        self.entries.append(LogEntryEntity(level=level, message=message, meta=meta, created_at=now_ms()))

    async def list_recent(self, limit: int = 100) -> List[LogEntryEntity]:
        return list(reversed(self.entries))[:limit]

    def messages(self, level: Optional[str] = None) -> List[str]:
        return [e.message for e in self.entries if level is None or e.level == level]


# 2. Scriptable exchange: orders fill at the reference price
class FakeExchange(ExchangeGateway):
    def __init__(self):
        self.tickers: Dict[str, TickerEntity] = {}
        self.balance = BalanceEntity()
        self.candles: Dict[str, List[List[Any]]] = {}
        self.failing_symbols: Set[str] = set()
        self.orders: List[OrderResultEntity] = []

    def set_price(self, symbol: str, last: float, **fields: float) -> None:
        self.tickers[symbol] = TickerEntity(symbol=symbol, last=last, **fields)

    async def fetch_ohlcv(self, symbol: str, interval: str, limit: int) -> List[List[Any]]:
        if symbol in self.failing_symbols:
            raise ExchangeError(f"ohlcv unavailable for {symbol}")
        return self.candles.get(f"{symbol}@{interval}", self.candles.get(symbol, []))[-limit:]

    async def fetch_tickers(self) -> Dict[str, TickerEntity]:
        return dict(self.tickers)

    async def fetch_ticker(self, symbol: str) -> TickerEntity:
        if symbol not in self.tickers:
            raise ExchangeError(f"unknown symbol {symbol}")
        return self.tickers[symbol]

    async def fetch_balance(self) -> BalanceEntity:
        return self.balance

    def _fill(self, symbol: str, side: str, amount: float, price: Optional[float]) -> OrderResultEntity:
        if symbol in self.failing_symbols:
            raise ExchangeError(f"order rejected for {symbol}")
        px = price or (self.tickers[symbol].last if symbol in self.tickers else 0.0)
        order = OrderResultEntity(
            order_id=f"ord-{len(self.orders) + 1}",
            symbol=symbol,
            side=side,
            filled_amount=amount,
            avg_price=px,
            cost=amount * px,
        )
        self.orders.append(order)
        return order

    async def create_market_buy_order(self, symbol, amount, reference_price=None):
        return self._fill(symbol, "buy", amount, reference_price)

    async def create_market_sell_order(self, symbol, amount, reference_price=None):
        return self._fill(symbol, "sell", amount, reference_price)


@pytest.fixture
def trade_repo():
    return InMemoryTradeRepository()


@pytest.fixture
def snapshot_repo():
    return InMemorySnapshotRepository()


@pytest.fixture
def settings_repo():
    return InMemorySettingsRepository()


@pytest.fixture
def log_repo():
    return InMemoryLogRepository()


@pytest.fixture
def exchange():
    return FakeExchange()
