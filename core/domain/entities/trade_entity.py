# core/domain/entities/trade_entity.py
from typing import Optional
from pydantic import ConfigDict
from ..enums.signal_enums import TradeSide, TradeStatus
from .base_entity import MongoEntity

class TradeEntity(MongoEntity):
    """
    Executed order record. Trades are appended and status-transitioned,
    never deleted.
    """
    symbol: str
    side: TradeSide
    amount: float
    price: float
    cost: float
    strategy: str
    status: TradeStatus
    order_id: Optional[str] = None
    sl_price: Optional[float] = None
    tp_price: Optional[float] = None
    highest_price: Optional[float] = None

    model_config = ConfigDict(extra="ignore", use_enum_values=True)
