# core/domain/entities/signal_entity.py
from typing import Optional
from pydantic import BaseModel, ConfigDict
from ..enums.signal_enums import Regime, SignalAction


class BollingerBands(BaseModel):
    upper: float
    middle: float
    lower: float


class TimeframeSnapshot(BaseModel):
    """
    Last-value indicator state for one (pair, timeframe). Recomputed every
    run, never persisted.
    """
    rsi: float
    macd_hist: float
    stoch_k: float
    stoch_d: float
    bb: BollingerBands
    atr_pct: float
    last: float


class SignalScores(BaseModel):
    trend: float = 0.0
    momentum: float = 0.0
    volatility: float = 0.0


class SignalResult(BaseModel):
    symbol: str
    action: SignalAction
    reason: str
    price: float
    confidence: float
    regime: Regime
    scores: SignalScores
    sl: Optional[float] = None
    tp: Optional[float] = None

    model_config = ConfigDict(use_enum_values=False)

    @classmethod
    def insufficient(cls, symbol: str, reason: str = "Insufficient data") -> "SignalResult":
        return cls(
            symbol=symbol,
            action=SignalAction.HOLD,
            reason=reason,
            price=0.0,
            confidence=0.0,
            regime=Regime.UNKNOWN,
            scores=SignalScores(),
        )
