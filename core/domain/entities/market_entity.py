# core/domain/entities/market_entity.py
"""
Explicit result structs for exchange payloads.

Exchange responses are loosely shaped (optional fields, strings for numbers);
adapters map them into these models with the documented fallbacks so the
core never inspects raw dicts.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from core.common.utils import to_float


class TickerEntity(BaseModel):
    """
    24h ticker for one symbol.

    Fallbacks: missing prices -> 0.0; missing quote volume -> base volume,
    then 0.0 (a zero-volume pair is excluded by the pair selector).
    """
    symbol: str
    last: float = 0.0
    bid: float = 0.0
    ask: float = 0.0
    high: float = 0.0
    low: float = 0.0
    quote_volume: float = 0.0

    model_config = ConfigDict(extra="ignore")

    @classmethod
    def from_raw(cls, symbol: str, raw: Optional[Dict[str, Any]]) -> "TickerEntity":
        raw = raw or {}
        last = to_float(raw.get("last"))
        quote_volume = raw.get("quoteVolume")
        if quote_volume is None:
            quote_volume = raw.get("baseVolume")
        return cls(
            symbol=symbol,
            last=last,
            bid=to_float(raw.get("bid")),
            ask=to_float(raw.get("ask")),
            high=to_float(raw.get("high"), last),
            low=to_float(raw.get("low"), last),
            quote_volume=to_float(quote_volume),
        )


class BalanceEntity(BaseModel):
    """Per-asset total and free amounts. Missing assets read as 0."""
    total: Dict[str, float] = Field(default_factory=dict)
    free: Dict[str, float] = Field(default_factory=dict)

    model_config = ConfigDict(extra="ignore")

    @classmethod
    def from_raw(cls, raw: Optional[Dict[str, Any]]) -> "BalanceEntity":
        raw = raw or {}
        total = {k: to_float(v) for k, v in (raw.get("total") or {}).items()}
        free = {k: to_float(v) for k, v in (raw.get("free") or {}).items()}
        return cls(total=total, free=free)

    def amount_of(self, asset: str) -> float:
        if asset in self.total:
            return self.total[asset]
        return self.free.get(asset, 0.0)

    def held_assets(self, exclude: Optional[str] = None) -> List[str]:
        """Non-zero assets in payload order, optionally excluding the quote asset."""
        return [a for a, qty in self.total.items() if qty and a != exclude]


class OrderResultEntity(BaseModel):
    """
    Filled market order.

    Fallbacks: avg_price -> reference price of the request; filled_amount ->
    requested amount; cost -> filled_amount * avg_price.
    """
    order_id: Optional[str] = None
    symbol: str
    side: str
    filled_amount: float
    avg_price: float
    cost: float

    model_config = ConfigDict(extra="ignore")

    @classmethod
    def from_raw(
        cls,
        symbol: str,
        side: str,
        raw: Optional[Dict[str, Any]],
        requested_amount: float,
        reference_price: float = 0.0,
    ) -> "OrderResultEntity":
        raw = raw or {}
        filled = to_float(raw.get("filled")) or to_float(raw.get("amount")) or requested_amount
        price = to_float(raw.get("average")) or to_float(raw.get("price")) or reference_price
        cost = to_float(raw.get("cost")) or filled * price
        order_id = raw.get("id")
        return cls(
            order_id=str(order_id) if order_id is not None else None,
            symbol=symbol,
            side=side,
            filled_amount=filled,
            avg_price=price,
            cost=cost,
        )


class AssetPosition(BaseModel):
    asset: str
    symbol: str
    amount: float
    usdt_value: float
    price: float = 0.0


class PortfolioValuation(BaseModel):
    total_usdt: float = 0.0
    quote_balance: float = 0.0
    assets: List[AssetPosition] = Field(default_factory=list)

    def position(self, asset: str) -> Optional[AssetPosition]:
        for a in self.assets:
            if a.asset == asset:
                return a
        return None
