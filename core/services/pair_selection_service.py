import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from core.domain.entities.market_entity import TickerEntity
from core.domain.entities.strategy_config_entity import StrategyConfig
from core.gateways.exchange_gateway import ExchangeGateway

MAX_PAIRS_HARD_CAP = 12


@dataclass(frozen=True)
class PairCandidate:
    symbol: str
    volume: float
    spread: float
    volatility: float


class PairSelectionService:
    """
    Narrows the exchange universe to a liquid, tight-spread, volatility-bounded
    candidate list. Held positions always come first so they stay managed.

    Selection never fails closed: on any error, or an empty result, the static
    `config.pairs` list is returned.
    """

    def __init__(
        self,
        exchange: ExchangeGateway,
        quote_asset: str = "USDT",
        min_volume: float = 5_000_000.0,
        max_spread: float = 0.0025,
        logger: Optional[logging.Logger] = None,
    ):
        self._exchange = exchange
        self._quote = quote_asset.upper()
        self._min_volume = float(min_volume)
        self._max_spread = float(max_spread)
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    def _candidate(self, ticker: TickerEntity) -> Optional[PairCandidate]:
        if not ticker.symbol.endswith(f"/{self._quote}"):
            return None
        if ticker.quote_volume <= 0 or ticker.last <= 0:
            return None
        return PairCandidate(
            symbol=ticker.symbol,
            volume=ticker.quote_volume,
            spread=abs(ticker.ask - ticker.bid) / ticker.last,
            volatility=abs(ticker.high - ticker.low) / ticker.last,
        )

    def select(
        self,
        tickers: Dict[str, TickerEntity],
        held_symbols: Iterable[str],
        config: StrategyConfig,
    ) -> List[str]:
        """
        Pure selection over a ticker snapshot. Deterministic for identical
        input: ties on volume are broken by symbol.
        """
        vol_low = config.regime.vol_low
        vol_high = config.regime.vol_high

        survivors: List[PairCandidate] = []
        for symbol in sorted(tickers):
            cand = self._candidate(tickers[symbol])
            if cand is None:
                continue
            if cand.volume < self._min_volume:
                continue
            if cand.spread > self._max_spread:
                continue
            if not (vol_low <= cand.volatility <= vol_high * 2):
                continue
            survivors.append(cand)

        survivors.sort(key=lambda c: (-c.volume, c.symbol))
        limit = min(config.risk.max_pairs, MAX_PAIRS_HARD_CAP)

        picked: List[str] = []
        for sym in held_symbols:
            if sym not in picked:
                picked.append(sym)
        for cand in survivors:
            if len(picked) >= limit:
                break
            if cand.symbol not in picked:
                picked.append(cand.symbol)
        return picked

    async def select_tradable_pairs(self, config: StrategyConfig) -> List[str]:
        try:
            balance = await self._exchange.fetch_balance()
            tickers = await self._exchange.fetch_tickers()
            held = [f"{asset}/{self._quote}" for asset in balance.held_assets(exclude=self._quote)]
            picked = self.select(tickers, held, config)
            if picked:
                return picked
            self._logger.warning("Pair selection returned no pairs; falling back to config.pairs")
        except Exception as exc:
            self._logger.error("Pair selection failed, falling back to config.pairs: %s", exc)
        return list(config.pairs)
