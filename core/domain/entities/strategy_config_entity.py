# core/domain/entities/strategy_config_entity.py
"""
Strategy configuration consumed by every component of a run.

Every numeric field is clamped into a safe range whenever a config object is
built, so an instance can never carry an out-of-range value. Raw input may use
snake_case or camelCase keys (the advisory service and the stored JSON speak
camelCase). Missing fields take their default; fields that are present but not
numeric clamp to the lower bound.
"""
import math
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

DEFAULT_PAIRS: List[str] = ["BTC/USDT", "ETH/USDT", "BNB/USDT", "SOL/USDT", "XRP/USDT"]

# Static bounds reported to the advisory service. Dynamic lower bounds
# (min_risk_per_trade <= max_risk_per_trade, vol_high >= vol_low) are
# enforced by the clamp itself.
GUARDRAIL_BOUNDS: Dict[str, Dict[str, List[float]]] = {
    "root": {
        "allocationPerTrade": [0.01, 1.0],
        "minTradeUsd": [5, 1000],
    },
    "timeframe": {"lookback": [50, 600]},
    "risk": {
        "maxRiskPerTrade": [0.01, 1.0],
        "minRiskPerTrade": [0.002, 1.0],
        "maxDailyDrawdown": [0.05, 0.50],
        "maxOpenPositions": [1, 20],
        "maxPairs": [1, 50],
        "slAtrMultiplier": [0.5, 5.0],
        "tpAtrMultiplier": [1.0, 10.0],
        "trailingSlMultiplier": [0.5, 10.0],
    },
    "indicators": {
        "rsiBuy": [5, 80],
        "rsiSell": [20, 95],
        "bbPeriod": [5, 120],
        "bbStdDev": [0.5, 5],
        "stochK": [2, 50],
        "stochD": [2, 20],
        "macdFast": [2, 50],
        "macdSlow": [10, 100],
        "macdSignal": [2, 30],
    },
    "regime": {
        "volLow": [0.001, 5.0],
        "volHigh": [0.001, 10.0],
        "trendThresh": [0.1, 1.0],
        "confidenceFloor": [0.1, 0.9],
    },
}

_MODEL_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    frozen=True,
    extra="ignore",
)


def _pick(raw: Dict[str, Any], name: str) -> tuple[bool, Any]:
    if name in raw:
        return True, raw[name]
    camel = to_camel(name)
    if camel in raw:
        return True, raw[camel]
    return False, None


def _section(raw: Dict[str, Any], name: str) -> Dict[str, Any]:
    _, value = _pick(raw, name)
    if isinstance(value, BaseModel):
        return value.model_dump()
    return value if isinstance(value, dict) else {}


def _num(raw: Dict[str, Any], name: str, default: float, lo: float, hi: float) -> float:
    present, value = _pick(raw, name)
    if not present or value is None:
        n = float(default)
    else:
        try:
            n = float(value)
        except (TypeError, ValueError):
            n = float("nan")
        if isinstance(value, bool) or not math.isfinite(n):
            n = lo
    return min(max(n, lo), hi)


def _int(raw: Dict[str, Any], name: str, default: int, lo: int, hi: int) -> int:
    return int(round(_num(raw, name, default, lo, hi)))


def _pairs(value: Any) -> List[str]:
    if isinstance(value, (list, tuple)):
        pairs = [str(p).strip().upper() for p in value if isinstance(p, str) and p.strip()]
        if pairs:
            return pairs
    return list(DEFAULT_PAIRS)


class TimeframeSet(BaseModel):
    high: str = "4h"
    mid: str = "1h"
    low: str = "15m"
    lookback: int = 200

    model_config = _MODEL_CONFIG


class RiskGuardrails(BaseModel):
    max_risk_per_trade: float = 0.5
    min_risk_per_trade: float = 0.05
    max_daily_drawdown: float = 0.15
    max_open_positions: int = 3
    max_pairs: int = 10
    sl_atr_multiplier: float = 2.0
    tp_atr_multiplier: float = 4.0
    trailing_sl_multiplier: Optional[float] = 2.0

    model_config = _MODEL_CONFIG


class IndicatorParams(BaseModel):
    rsi_buy: float = 45
    rsi_sell: float = 55
    bb_period: int = 20
    bb_std_dev: float = 2
    stoch_k: int = 14
    stoch_d: int = 3
    macd_fast: int = 12
    macd_slow: int = 26
    macd_signal: int = 9

    model_config = _MODEL_CONFIG


class RegimeThresholds(BaseModel):
    vol_low: float = 0.01
    vol_high: float = 0.05
    trend_thresh: float = 0.3
    confidence_floor: float = 0.4

    model_config = _MODEL_CONFIG


class StrategyConfig(BaseModel):
    name: str = "DynamicTrend"
    pairs: List[str] = Field(default_factory=lambda: list(DEFAULT_PAIRS))
    allocation_per_trade: float = 0.5
    min_trade_usd: float = 10
    timeframe: TimeframeSet = Field(default_factory=TimeframeSet)
    risk: RiskGuardrails = Field(default_factory=RiskGuardrails)
    indicators: IndicatorParams = Field(default_factory=IndicatorParams)
    regime: RegimeThresholds = Field(default_factory=RegimeThresholds)

    model_config = _MODEL_CONFIG

    @model_validator(mode="before")
    @classmethod
    def _clamp(cls, data: Any) -> Dict[str, Any]:
        if isinstance(data, BaseModel):
            data = data.model_dump()
        raw: Dict[str, Any] = data if isinstance(data, dict) else {}

        tf_raw = _section(raw, "timeframe")
        tf_defaults = TimeframeSet()
        timeframe = {
            "high": str(tf_raw.get("high") or tf_defaults.high),
            "mid": str(tf_raw.get("mid") or tf_defaults.mid),
            "low": str(tf_raw.get("low") or tf_defaults.low),
            "lookback": _int(tf_raw, "lookback", tf_defaults.lookback, 50, 600),
        }

        r_raw = _section(raw, "risk")
        max_risk = _num(r_raw, "max_risk_per_trade", 0.5, 0.01, 1.0)
        present, trailing_raw = _pick(r_raw, "trailing_sl_multiplier")
        if not present:
            trailing: Optional[float] = 2.0
        elif trailing_raw is None or trailing_raw is False:
            trailing = None
        else:
            trailing = _num(r_raw, "trailing_sl_multiplier", 2.0, 0.0, 10.0)
            trailing = None if trailing <= 0 else max(trailing, 0.5)
        risk = {
            "max_risk_per_trade": max_risk,
            "min_risk_per_trade": _num(r_raw, "min_risk_per_trade", 0.05, 0.002, max_risk),
            "max_daily_drawdown": _num(r_raw, "max_daily_drawdown", 0.15, 0.05, 0.50),
            "max_open_positions": _int(r_raw, "max_open_positions", 3, 1, 20),
            "max_pairs": _int(r_raw, "max_pairs", 10, 1, 50),
            "sl_atr_multiplier": _num(r_raw, "sl_atr_multiplier", 2.0, 0.5, 5.0),
            "tp_atr_multiplier": _num(r_raw, "tp_atr_multiplier", 4.0, 1.0, 10.0),
            "trailing_sl_multiplier": trailing,
        }

        i_raw = _section(raw, "indicators")
        indicators = {
            "rsi_buy": _num(i_raw, "rsi_buy", 45, 5, 80),
            "rsi_sell": _num(i_raw, "rsi_sell", 55, 20, 95),
            "bb_period": _int(i_raw, "bb_period", 20, 5, 120),
            "bb_std_dev": _num(i_raw, "bb_std_dev", 2, 0.5, 5),
            "stoch_k": _int(i_raw, "stoch_k", 14, 2, 50),
            "stoch_d": _int(i_raw, "stoch_d", 3, 2, 20),
            "macd_fast": _int(i_raw, "macd_fast", 12, 2, 50),
            "macd_slow": _int(i_raw, "macd_slow", 26, 10, 100),
            "macd_signal": _int(i_raw, "macd_signal", 9, 2, 30),
        }

        g_raw = _section(raw, "regime")
        vol_low = _num(g_raw, "vol_low", 0.01, 0.001, 5.0)
        regime = {
            "vol_low": vol_low,
            "vol_high": _num(g_raw, "vol_high", 0.05, vol_low, 10.0),
            "trend_thresh": _num(g_raw, "trend_thresh", 0.3, 0.1, 1.0),
            "confidence_floor": _num(g_raw, "confidence_floor", 0.4, 0.1, 0.9),
        }

        _, name = _pick(raw, "name")
        _, pairs = _pick(raw, "pairs")
        return {
            "name": str(name).strip() if isinstance(name, str) and name.strip() else "DynamicTrend",
            "pairs": _pairs(pairs),
            "allocation_per_trade": _num(raw, "allocation_per_trade", 0.5, 0.01, 1.0),
            "min_trade_usd": _num(raw, "min_trade_usd", 10, 5, 1000),
            "timeframe": timeframe,
            "risk": risk,
            "indicators": indicators,
            "regime": regime,
        }

    @classmethod
    def from_raw(cls, raw: Any) -> "StrategyConfig":
        return cls.model_validate(raw if raw is not None else {})

    def to_storage(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


DEFAULT_CONFIG = StrategyConfig()
