import logging
from typing import Dict, List, Optional

from core.domain.entities.market_entity import AssetPosition, PortfolioValuation
from core.domain.entities.run_result_entity import ActionOutcome
from core.domain.entities.signal_entity import SignalResult
from core.domain.entities.strategy_config_entity import StrategyConfig
from core.domain.enums.signal_enums import PlanAction, SignalAction, StrategyTag

from .trade_execution_service import TradeExecutionService

TARGET_COVERED_RATIO = 0.9


class RebalancePlannerService:
    """
    Two-pass rebalancer.

    Pass 1 classifies every analysed pair (SKIP below the confidence floor,
    otherwise BUY / SELL / HOLD from its signal).

    Pass 2 executes:
      A. sells first; proceeds are credited to the running quote balance.
      B. buys by descending confidence, each sized to
         total_value * allocation minus what is already held, funded by
         liquidating the weakest non-target holdings when the balance is short.

    The running balance and holdings are a single local accumulator mutated
    after every order, so later buys see the capital earlier actions freed or
    consumed. This loop is order-dependent and must stay sequential.
    """

    def __init__(
        self,
        executor: TradeExecutionService,
        quote_asset: str = "USDT",
        logger: Optional[logging.Logger] = None,
    ):
        self._executor = executor
        self._quote = quote_asset.upper()
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    @staticmethod
    def base_asset(symbol: str) -> str:
        return symbol.split("/")[0]

    def classify(
        self,
        signals: Dict[str, SignalResult],
        config: StrategyConfig,
        report: List[ActionOutcome],
    ) -> tuple[List[SignalResult], List[SignalResult]]:
        floor = config.regime.confidence_floor
        buys: List[SignalResult] = []
        sells: List[SignalResult] = []

        for symbol, sig in signals.items():
            if sig.confidence < floor:
                report.append(
                    ActionOutcome(
                        symbol=symbol,
                        action=PlanAction.SKIP,
                        reason=f"Low confidence ({sig.confidence:.3f} < {floor})",
                        confidence=sig.confidence,
                    )
                )
            elif sig.action == SignalAction.BUY:
                buys.append(sig)
            elif sig.action == SignalAction.SELL:
                sells.append(sig)
            else:
                report.append(
                    ActionOutcome(
                        symbol=symbol,
                        action=PlanAction.HOLD,
                        reason=sig.reason,
                        confidence=sig.confidence,
                    )
                )

        buys.sort(key=lambda s: s.confidence, reverse=True)
        return buys, sells

    async def execute(
        self,
        signals: Dict[str, SignalResult],
        valuation: PortfolioValuation,
        config: StrategyConfig,
        report: List[ActionOutcome],
    ) -> float:
        """
        Run both passes and return the remaining quote balance. Every outcome
        is appended to `report` as it happens.
        """
        buys, sells = self.classify(signals, config, report)

        holdings: Dict[str, AssetPosition] = {
            p.asset: p.model_copy() for p in valuation.assets if p.asset != self._quote
        }
        available = valuation.quote_balance
        min_trade = config.min_trade_usd

        # Phase A: sells free capital for Phase B.
        for sig in sells:
            asset = self.base_asset(sig.symbol)
            pos = holdings.get(asset)
            if pos is None or pos.usdt_value <= min_trade:
                report.append(
                    ActionOutcome(
                        symbol=sig.symbol,
                        action=PlanAction.SKIP,
                        reason="No position above minimum trade size to sell",
                        confidence=sig.confidence,
                    )
                )
                continue
            try:
                order = await self._executor.execute_sell(
                    sig.symbol, pos.amount, sig.price, StrategyTag.DYNAMIC_TREND.value
                )
            except Exception as exc:
                self._logger.error("Sell failed for %s: %s", sig.symbol, exc)
                report.append(
                    ActionOutcome(symbol=sig.symbol, action=PlanAction.FAIL_SELL, error=str(exc))
                )
                continue
            available += order.cost
            holdings.pop(asset, None)
            report.append(
                ActionOutcome(
                    symbol=sig.symbol,
                    action=PlanAction.SELL,
                    confidence=sig.confidence,
                    order=order,
                )
            )

        # Phase B: confidence-ranked buys.
        target_size = valuation.total_usdt * config.allocation_per_trade
        buy_symbols = {s.symbol for s in buys}

        for sig in buys:
            asset = self.base_asset(sig.symbol)
            current = holdings.get(asset)
            current_val = current.usdt_value if current else 0.0

            if current_val >= target_size * TARGET_COVERED_RATIO:
                report.append(
                    ActionOutcome(
                        symbol=sig.symbol,
                        action=PlanAction.HOLD,
                        reason="Already at target allocation",
                        confidence=sig.confidence,
                    )
                )
                continue

            needed = target_size - current_val
            if needed < min_trade:
                report.append(
                    ActionOutcome(
                        symbol=sig.symbol,
                        action=PlanAction.SKIP,
                        reason=f"Needed {needed:.2f} below minimum trade size",
                        confidence=sig.confidence,
                    )
                )
                continue

            if current is None:
                open_positions = sum(1 for p in holdings.values() if p.usdt_value >= min_trade)
                if open_positions >= config.risk.max_open_positions:
                    report.append(
                        ActionOutcome(
                            symbol=sig.symbol,
                            action=PlanAction.SKIP,
                            reason=f"Max open positions reached ({open_positions})",
                            confidence=sig.confidence,
                        )
                    )
                    continue

            if available < needed:
                available = await self._fund_from_weak_holdings(
                    sig, needed, available, holdings, buy_symbols, signals, min_trade, report
                )

            invest = min(available, needed)
            if invest < min_trade or sig.price <= 0:
                report.append(
                    ActionOutcome(
                        symbol=sig.symbol,
                        action=PlanAction.SKIP,
                        reason="Insufficient funds after rebalance",
                        confidence=sig.confidence,
                    )
                )
                continue

            try:
                order = await self._executor.execute_buy(
                    sig.symbol,
                    invest / sig.price,
                    sig.price,
                    StrategyTag.DYNAMIC_TREND.value,
                    sl_price=sig.sl,
                    tp_price=sig.tp,
                )
            except Exception as exc:
                self._logger.error("Buy failed for %s: %s", sig.symbol, exc)
                report.append(
                    ActionOutcome(symbol=sig.symbol, action=PlanAction.FAIL_BUY, error=str(exc))
                )
                continue

            available -= order.cost
            if current is not None:
                current.amount += order.filled_amount
                current.usdt_value += order.cost
            else:
                holdings[asset] = AssetPosition(
                    asset=asset,
                    symbol=sig.symbol,
                    amount=order.filled_amount,
                    usdt_value=order.cost,
                    price=order.avg_price,
                )
            report.append(
                ActionOutcome(
                    symbol=sig.symbol,
                    action=PlanAction.BUY,
                    confidence=sig.confidence,
                    order=order,
                )
            )

        return available

    async def _fund_from_weak_holdings(
        self,
        sig: SignalResult,
        needed: float,
        available: float,
        holdings: Dict[str, AssetPosition],
        buy_symbols: set,
        signals: Dict[str, SignalResult],
        min_trade: float,
        report: List[ActionOutcome],
    ) -> float:
        """
        Sell holdings that are neither the pair being bought nor another BUY
        target, lowest signal confidence first (unanalysed = 0), until the
        balance covers `needed` or candidates run out.
        """
        candidates = [
            p for p in holdings.values()
            if p.symbol != sig.symbol and p.symbol not in buy_symbols
        ]
        candidates.sort(
            key=lambda p: signals[p.symbol].confidence if p.symbol in signals else 0.0
        )

        for cand in candidates:
            if available >= needed:
                break
            if cand.usdt_value <= min_trade:
                continue
            ref = signals.get(cand.symbol)
            price = ref.price if ref and ref.price > 0 else cand.price
            try:
                order = await self._executor.execute_sell(
                    cand.symbol, cand.amount, price, StrategyTag.REBALANCE.value
                )
            except Exception as exc:
                self._logger.error("Failed to liquidate %s: %s", cand.symbol, exc)
                report.append(
                    ActionOutcome(
                        symbol=cand.symbol,
                        action=PlanAction.FAIL_SELL,
                        target=sig.symbol,
                        error=str(exc),
                    )
                )
                continue
            available += order.cost
            holdings.pop(cand.asset, None)
            report.append(
                ActionOutcome(
                    symbol=cand.symbol,
                    action=PlanAction.LIQUIDATE,
                    target=sig.symbol,
                    order=order,
                )
            )
        return available
