import logging
import math
from typing import Any, List, Optional

import pandas as pd
import ta

from core.domain.entities.signal_entity import BollingerBands, TimeframeSnapshot
from core.domain.entities.strategy_config_entity import IndicatorParams


class InsufficientCandlesError(ValueError):
    """Fewer usable OHLCV rows than the caller requires."""

    def __init__(self, usable: int, required: int):
        super().__init__(f"{usable} usable candles < {required}")
        self.usable = usable
        self.required = required


class IndicatorCalculationService:
    """
    Wraps the `ta` indicator library: OHLCV rows in, last-value snapshot out.

    RSI and ATR use a fixed 14 window; Bollinger, Stochastic and MACD periods
    come from the strategy config. Missing last values fall back to neutral
    readings (RSI/Stoch 50, MACD 0, bands collapsed to the last close).
    """

    RSI_WINDOW = 14
    ATR_WINDOW = 14

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    @staticmethod
    def to_frame(candles: List[List[Any]]) -> pd.DataFrame:
        df = pd.DataFrame(
            [row[:6] for row in candles],
            columns=["timestamp", "open", "high", "low", "close", "volume"],
        )
        for col in ("open", "high", "low", "close", "volume"):
            df[col] = pd.to_numeric(df[col], errors="coerce")
        return df.dropna(subset=["high", "low", "close"]).reset_index(drop=True)

    @staticmethod
    def _last(series: Optional[pd.Series], default: float) -> float:
        if series is None or series.empty:
            return default
        value = series.iloc[-1]
        try:
            f = float(value)
        except (TypeError, ValueError):
            return default
        return f if math.isfinite(f) else default

    def compute(
        self, candles: List[List[Any]], params: IndicatorParams, min_rows: int = 1
    ) -> TimeframeSnapshot:
        df = self.to_frame(candles)
        if len(df) < max(1, min_rows):
            raise InsufficientCandlesError(len(df), max(1, min_rows))

        close, high, low = df["close"], df["high"], df["low"]
        last = float(close.iloc[-1])

        rsi = ta.momentum.RSIIndicator(close=close, window=self.RSI_WINDOW).rsi()

        macd = ta.trend.MACD(
            close=close,
            window_slow=params.macd_slow,
            window_fast=params.macd_fast,
            window_sign=params.macd_signal,
        )

        stoch = ta.momentum.StochasticOscillator(
            high=high,
            low=low,
            close=close,
            window=params.stoch_k,
            smooth_window=params.stoch_d,
        )

        bb = ta.volatility.BollingerBands(
            close=close, window=params.bb_period, window_dev=params.bb_std_dev
        )

        atr = ta.volatility.AverageTrueRange(
            high=high, low=low, close=close, window=self.ATR_WINDOW
        ).average_true_range()
        atr_last = self._last(atr, 0.0)

        return TimeframeSnapshot(
            rsi=self._last(rsi, 50.0),
            macd_hist=self._last(macd.macd_diff(), 0.0),
            stoch_k=self._last(stoch.stoch(), 50.0),
            stoch_d=self._last(stoch.stoch_signal(), 50.0),
            bb=BollingerBands(
                upper=self._last(bb.bollinger_hband(), last),
                middle=self._last(bb.bollinger_mavg(), last),
                lower=self._last(bb.bollinger_lband(), last),
            ),
            atr_pct=atr_last / last if last > 0 else 0.0,
            last=last,
        )
