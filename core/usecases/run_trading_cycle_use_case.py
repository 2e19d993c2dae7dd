import asyncio
import json
import logging
from typing import Optional

from core.common.utils import sanitize_for_bson
from core.domain.entities.portfolio_snapshot_entity import PortfolioSnapshotEntity
from core.domain.entities.run_result_entity import CycleReport
from core.gateways.exchange_gateway import ExchangeGateway
from core.repositories.log_repository import LogRepository
from core.repositories.snapshot_repository import SnapshotRepository

from ..services.market_analysis_service import MarketAnalysisService
from ..services.pair_selection_service import PairSelectionService
from ..services.portfolio_valuation_service import PortfolioValuationService
from ..services.rebalance_planner_service import RebalancePlannerService
from ..services.risk_manager_service import RiskManagerService
from ..services.strategy_config_service import StrategyConfigService
from .auto_tune_strategy_use_case import AutoTuneStrategyUseCase

TIMEOUT_MESSAGE = "Execution Timeout"


class RunTradingCycleUseCase:
    """
    One cron-triggered trading run.

    Order:
      1) heartbeat + self-healing; stop when the bot is disabled
      2) load the clamped strategy config
      3) macro safety: liquidate everything and stop when a high-impact event is near
      4) risk exits on open trades (always before new trading)
      5) balance + valuation
      6) daily drawdown breaker (skips 7-9 when breached)
      7) pair selection
      8) concurrent per-pair analysis
      9) sequential two-pass rebalance
     10) portfolio snapshot
     11) economic calendar refresh + scheduled auto-tune
     12) heartbeat

    The whole run is bounded by `timeout_sec`. Outcomes are appended to the
    report as they happen, so a failed or timed-out run still carries the
    partial results. Nothing is rolled back.
    """

    def __init__(
        self,
        exchange: ExchangeGateway,
        config_service: StrategyConfigService,
        risk_manager: RiskManagerService,
        valuation_service: PortfolioValuationService,
        pair_selection: PairSelectionService,
        analysis_service: MarketAnalysisService,
        planner: RebalancePlannerService,
        auto_tuner: AutoTuneStrategyUseCase,
        snapshot_repo: SnapshotRepository,
        log_repo: LogRepository,
        timeout_sec: float = 55.0,
        logger: Optional[logging.Logger] = None,
    ):
        self._exchange = exchange
        self._configs = config_service
        self._risk = risk_manager
        self._valuation = valuation_service
        self._pairs = pair_selection
        self._analysis = analysis_service
        self._planner = planner
        self._tuner = auto_tuner
        self._snapshots = snapshot_repo
        self._logs = log_repo
        self._timeout = float(timeout_sec)
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    async def execute(self) -> CycleReport:
        report = CycleReport()
        try:
            await asyncio.wait_for(self._run(report), timeout=self._timeout)
        except asyncio.TimeoutError:
            report.success = False
            report.timed_out = True
            report.error = TIMEOUT_MESSAGE
            self._logger.error("Trading run exceeded %.1fs; abandoned", self._timeout)
            await self._log_failure(TIMEOUT_MESSAGE)
        except Exception as exc:
            report.success = False
            report.error = str(exc) or exc.__class__.__name__
            self._logger.exception("Trading run failed: %s", exc)
            await self._log_failure(report.error)
        return report

    async def _log_failure(self, error: str) -> None:
        try:
            await self._logs.add_log("error", "Cron execution failed", error)
        except Exception as exc:
            self._logger.warning("Could not persist run failure log: %s", exc)

    async def _run(self, report: CycleReport) -> None:
        # 1) heartbeat + self-healing
        await self._risk.update_heartbeat()
        if not await self._risk.ensure_running():
            report.success = True
            report.message = "Bot is disabled"
            return

        # 2) config
        config = await self._configs.load()

        # 3) macro safety
        safety = await self._risk.check_macro_safety()
        if safety.active:
            self._logger.warning("Safety mode active: %s", safety.reason)
            await self._logs.add_log(
                "warn", f"Safety Mode Active: {safety.reason}", "Liquidating all positions."
            )
            await self._risk.liquidate_all_positions(report.results)
            report.success = True
            report.message = f"Safety Mode Active: {safety.reason}. Trading suspended."
            return

        # 4) risk exits
        await self._risk.manage_open_positions(config, report.results)

        # 5) portfolio state after exits
        balance = await self._exchange.fetch_balance()
        valuation = await self._valuation.value(balance)
        report.total_balance_usdt = valuation.total_usdt

        # 6) drawdown breaker
        drawdown = await self._risk.compute_daily_drawdown()
        report.drawdown = drawdown
        breached = self._risk.is_drawdown_breached(drawdown, config)

        if breached:
            self._logger.warning(
                "Daily drawdown limit hit: dd=%.4f limit=%.4f",
                drawdown,
                config.risk.max_daily_drawdown,
            )
            await self._logs.add_log(
                "warn",
                "Daily drawdown limit hit",
                json.dumps({"dd": drawdown, "limit": config.risk.max_daily_drawdown}),
            )
            report.message = "Daily drawdown limit hit"
        else:
            # 7-9) selection, analysis, rebalance
            pairs = await self._pairs.select_tradable_pairs(config)
            report.pairs = pairs
            signals = await self._analysis.analyze_many(pairs, config)
            remaining = await self._planner.execute(signals, valuation, config, report.results)
            self._logger.info(
                "Rebalance done: pairs=%s actions=%s remaining_quote=%.2f",
                len(pairs),
                len(report.results),
                remaining,
            )

        # 10) snapshot of the valuation this run traded against
        await self._snapshots.add_snapshot(
            PortfolioSnapshotEntity(
                total_balance_usdt=valuation.total_usdt,
                positions=sanitize_for_bson([a.model_dump() for a in valuation.assets]),
            )
        )

        # 11) calendar + scheduled tune
        await self._tuner.refresh_economic_calendar()
        tune = await self._tuner.run_scheduled(
            total_usdt=valuation.total_usdt, pairs=report.pairs or None
        )
        report.tune_result = tune.model_dump(mode="json") if tune else None

        # 12) heartbeat
        await self._risk.update_heartbeat()
        report.success = True
