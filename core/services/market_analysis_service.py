import asyncio
import logging
from typing import Dict, List, Optional

from core.domain.entities.signal_entity import SignalResult, TimeframeSnapshot
from core.domain.entities.strategy_config_entity import StrategyConfig
from core.gateways.exchange_gateway import ExchangeGateway

from .indicator_calculation_service import IndicatorCalculationService, InsufficientCandlesError
from .signal_scoring_service import SignalScoringService

MIN_CANDLES = 50


class MarketAnalysisService:
    """
    Fetches the three configured timeframes for a pair, builds indicator
    snapshots and scores them.

    Data-sufficiency gate: if any timeframe has fewer than MIN_CANDLES usable
    candles (rows with high, low and close present) or its fetch fails, the pair short-circuits to HOLD / confidence 0 /
    regime "unknown".
    """

    def __init__(
        self,
        exchange: ExchangeGateway,
        indicator_service: IndicatorCalculationService,
        scoring_service: SignalScoringService,
        concurrency: int = 4,
        logger: Optional[logging.Logger] = None,
    ):
        self._exchange = exchange
        self._indicators = indicator_service
        self._scorer = scoring_service
        self._concurrency = max(1, int(concurrency))
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    async def _fetch_timeframe(
        self, symbol: str, interval: str, config: StrategyConfig
    ) -> Optional[TimeframeSnapshot]:
        try:
            candles = await self._exchange.fetch_ohlcv(
                symbol, interval, config.timeframe.lookback
            )
        except Exception as exc:
            self._logger.warning("OHLCV fetch failed for %s@%s: %s", symbol, interval, exc)
            return None

        try:
            return self._indicators.compute(candles or [], config.indicators, min_rows=MIN_CANDLES)
        except InsufficientCandlesError as exc:
            self._logger.info("Insufficient candles for %s@%s: %s", symbol, interval, exc)
            return None
        except Exception as exc:
            self._logger.warning("Indicator computation failed for %s@%s: %s", symbol, interval, exc)
            return None

    async def analyze(self, symbol: str, config: StrategyConfig) -> SignalResult:
        tf = config.timeframe
        high_tf, mid_tf, low_tf = await asyncio.gather(
            self._fetch_timeframe(symbol, tf.high, config),
            self._fetch_timeframe(symbol, tf.mid, config),
            self._fetch_timeframe(symbol, tf.low, config),
        )
        return self._scorer.score(symbol, high_tf, mid_tf, low_tf, config)

    async def analyze_many(
        self, symbols: List[str], config: StrategyConfig
    ) -> Dict[str, SignalResult]:
        """
        Analyze pairs concurrently. Pairs share no mutable state, so the only
        bound is the semaphore protecting the exchange rate limit.
        """
        sem = asyncio.Semaphore(self._concurrency)

        async def _one(symbol: str) -> SignalResult:
            async with sem:
                try:
                    return await self.analyze(symbol, config)
                except Exception as exc:
                    self._logger.exception("Error analyzing %s: %s", symbol, exc)
                    return SignalResult.insufficient(symbol, reason=f"Analysis failed: {exc}")

        results = await asyncio.gather(*[_one(s) for s in symbols])
        return {r.symbol: r for r in results}
