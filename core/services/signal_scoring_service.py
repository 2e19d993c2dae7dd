from typing import List, Optional

from core.common.utils import clamp, clamp01
from core.domain.entities.signal_entity import SignalResult, SignalScores, TimeframeSnapshot
from core.domain.entities.strategy_config_entity import StrategyConfig
from core.domain.enums.signal_enums import Regime, SignalAction

# Normalization constants are fixed, not part of the strategy config.
MACD_AMPLIFICATION = 5.0
BAND_POSITION_WEIGHT = 0.15
MID_RSI_WEIGHT = 0.8
BUY_STOCH_MAX = 45.0
SELL_STOCH_MIN = 55.0
LOW_VOL_FACTOR = 0.8


class SignalScoringService:
    """
    Turns three timeframe snapshots (high, mid, low) into one SignalResult.

    Scores:
      - trend: mean of the amplified MACD histogram of each timeframe plus a
        +/-0.15 term for the low-timeframe price vs. its middle band.
      - momentum: mean of normalized low RSI, 0.8 x normalized mid RSI and the
        normalized low Stochastic (%K/%D average).
      - volatility: 0 inside [vol_low, vol_high], relative distance outside.

    Confidence blends the three as 0.4 trend + 0.4 momentum + 0.2 calmness and
    is clamped to [0, 1].
    """

    @staticmethod
    def normalize_rsi(value: float) -> float:
        return clamp((value - 50.0) / 50.0, -1.0, 1.0)

    @staticmethod
    def normalize_stoch(k: float, d: float) -> float:
        return clamp(((k + d) / 2.0 - 50.0) / 50.0, -1.0, 1.0)

    @staticmethod
    def score_trend(macd_hist: float) -> float:
        return clamp(macd_hist * MACD_AMPLIFICATION, -1.0, 1.0)

    @staticmethod
    def score_volatility(atr_pct: float, vol_low: float, vol_high: float) -> float:
        if atr_pct < vol_low:
            return (atr_pct - vol_low) / vol_low
        if atr_pct > vol_high:
            return (atr_pct - vol_high) / vol_high
        return 0.0

    @staticmethod
    def confidence(trend: float, momentum: float, volatility: float) -> float:
        return clamp01(
            trend * 0.4
            + momentum * 0.4
            + max(0.0, 1.0 - abs(volatility)) * 0.2
        )

    @staticmethod
    def classify_regime(atr_pct: float, trend: float, config: StrategyConfig) -> Regime:
        r = config.regime
        if atr_pct >= r.vol_high:
            return Regime.HIGH_VOL
        if atr_pct <= r.vol_low * LOW_VOL_FACTOR:
            return Regime.LOW_VOL
        if trend >= r.trend_thresh:
            return Regime.TREND_UP
        if trend <= -r.trend_thresh:
            return Regime.TREND_DOWN
        return Regime.RANGE

    @staticmethod
    def decide_action(
        rsi: float,
        stoch_k: float,
        trend: float,
        confidence: float,
        config: StrategyConfig,
    ) -> SignalAction:
        thresh = config.regime.trend_thresh
        floor = config.regime.confidence_floor
        if (
            rsi < config.indicators.rsi_buy
            and stoch_k < BUY_STOCH_MAX
            and trend > thresh
            and confidence > floor
        ):
            return SignalAction.BUY
        if (
            rsi > config.indicators.rsi_sell
            and stoch_k > SELL_STOCH_MIN
            and trend < -thresh
            and confidence > floor
        ):
            return SignalAction.SELL
        return SignalAction.HOLD

    @staticmethod
    def _mean(values: List[float]) -> float:
        return sum(values) / len(values) if values else 0.0

    def score(
        self,
        symbol: str,
        high_tf: Optional[TimeframeSnapshot],
        mid_tf: Optional[TimeframeSnapshot],
        low_tf: Optional[TimeframeSnapshot],
        config: StrategyConfig,
    ) -> SignalResult:
        if high_tf is None or mid_tf is None or low_tf is None:
            return SignalResult.insufficient(symbol)

        price = low_tf.last

        trend = self._mean([
            self.score_trend(high_tf.macd_hist),
            self.score_trend(mid_tf.macd_hist),
            self.score_trend(low_tf.macd_hist),
            BAND_POSITION_WEIGHT if price > low_tf.bb.middle else -BAND_POSITION_WEIGHT,
        ])
        momentum = self._mean([
            self.normalize_rsi(low_tf.rsi),
            self.normalize_rsi(mid_tf.rsi) * MID_RSI_WEIGHT,
            self.normalize_stoch(low_tf.stoch_k, low_tf.stoch_d),
        ])
        volatility = self.score_volatility(
            low_tf.atr_pct, config.regime.vol_low, config.regime.vol_high
        )
        confidence = self.confidence(trend, momentum, volatility)
        regime = self.classify_regime(low_tf.atr_pct, trend, config)
        action = self.decide_action(low_tf.rsi, low_tf.stoch_k, trend, confidence, config)

        scores = SignalScores(trend=trend, momentum=momentum, volatility=volatility)
        detail = (
            f"RSI {low_tf.rsi:.1f} Stoch {low_tf.stoch_k:.1f} MACD {low_tf.macd_hist:.4f}"
        )

        if action == SignalAction.BUY:
            atr = low_tf.last * low_tf.atr_pct
            return SignalResult(
                symbol=symbol,
                action=action,
                reason=f"MTF Bullish | {detail}",
                price=price,
                confidence=confidence,
                regime=regime,
                scores=scores,
                sl=price - atr * config.risk.sl_atr_multiplier,
                tp=price + atr * config.risk.tp_atr_multiplier,
            )

        if action == SignalAction.SELL:
            return SignalResult(
                symbol=symbol,
                action=action,
                reason=f"MTF Bearish | {detail}",
                price=price,
                confidence=confidence,
                regime=regime,
                scores=scores,
            )

        return SignalResult(
            symbol=symbol,
            action=SignalAction.HOLD,
            reason="No high-confidence signal",
            price=price,
            confidence=confidence,
            regime=regime,
            scores=scores,
        )
