from enum import Enum


class SignalAction(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


class Regime(str, Enum):
    HIGH_VOL = "high-vol"
    LOW_VOL = "low-vol"
    TREND_UP = "trend-up"
    TREND_DOWN = "trend-down"
    RANGE = "range"
    UNKNOWN = "unknown"


class PlanAction(str, Enum):
    """Outcome labels reported per pair / per action in a run result."""

    BUY = "BUY"
    SELL = "SELL"
    LIQUIDATE = "LIQUIDATE"
    HOLD = "HOLD"
    SKIP = "SKIP"
    FAIL_BUY = "FAIL_BUY"
    FAIL_SELL = "FAIL_SELL"


class TradeSide(str, Enum):
    BUY = "buy"
    SELL = "sell"


class TradeStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class StrategyTag(str, Enum):
    DYNAMIC_TREND = "DynamicTrend"
    REBALANCE = "Rebalance"
    RISK_MANAGER = "RiskManager"
    SAFETY_MODE = "SafetyMode"
