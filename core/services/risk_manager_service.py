import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence

from pydantic import TypeAdapter, ValidationError

from core.common.utils import now_iso, start_of_utc_day_ms
from core.domain.entities.economic_event_entity import EconomicEventEntity
from core.domain.entities.run_result_entity import ActionOutcome, SafetyStatus
from core.domain.entities.strategy_config_entity import StrategyConfig
from core.domain.entities.trade_entity import TradeEntity
from core.domain.enums.settings_keys import SettingsKeys
from core.domain.enums.signal_enums import PlanAction, StrategyTag
from core.gateways.exchange_gateway import ExchangeGateway
from core.repositories.log_repository import LogRepository
from core.repositories.settings_repository import SettingsRepository
from core.repositories.snapshot_repository import SnapshotRepository
from core.repositories.trade_repository import TradeRepository

from .trade_execution_service import TradeExecutionService

# Fallback stop when an open trade carries no SL: 5% under entry.
DEFAULT_SL_FRACTION = 0.95
MACRO_WINDOW_BEFORE = timedelta(hours=2)
MACRO_WINDOW_AFTER = timedelta(hours=4)

STATUS_RUNNING = "running"
STATUS_STOPPED = "stopped"

_EVENTS_ADAPTER = TypeAdapter(List[EconomicEventEntity])


@dataclass
class ExitDecision:
    reason: Optional[str]
    highest_price: float
    trailing_level: Optional[float] = None

    @property
    def should_close(self) -> bool:
        return self.reason is not None


class RiskManagerService:
    """
    Capital protection that runs before any new trading in a run.

    - Per open trade: trailing high-water mark, trailing stop, fixed SL / TP.
    - Daily drawdown breaker over today's (UTC) portfolio snapshots.
    - Macro safety mode around scheduled high-impact events.
    - Owner of the heartbeat and expected-status settings keys.
    """

    def __init__(
        self,
        exchange: ExchangeGateway,
        executor: TradeExecutionService,
        trade_repo: TradeRepository,
        snapshot_repo: SnapshotRepository,
        settings_repo: SettingsRepository,
        log_repo: LogRepository,
        logger: Optional[logging.Logger] = None,
    ):
        self._exchange = exchange
        self._executor = executor
        self._trades = trade_repo
        self._snapshots = snapshot_repo
        self._settings = settings_repo
        self._logs = log_repo
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    # ===== settings owned by this role =====
    async def update_heartbeat(self) -> None:
        await self._settings.set(SettingsKeys.LAST_HEARTBEAT, now_iso())

    async def set_expected_status(self, status: str) -> None:
        await self._settings.set(SettingsKeys.EXPECTED_STATUS, status)

    async def ensure_running(self) -> bool:
        """
        Self-healing: a bot found disabled while expected to run (expected
        status defaults to "running") is re-enabled. Returns the effective
        enabled flag.
        """
        enabled = (await self._settings.get(SettingsKeys.BOT_ENABLED)) == "true"
        expected = (await self._settings.get(SettingsKeys.EXPECTED_STATUS)) or STATUS_RUNNING
        if not enabled and expected == STATUS_RUNNING:
            self._logger.warning("Self-healing: bot found stopped but expected to be running; restarting")
            await self._settings.set(SettingsKeys.BOT_ENABLED, "true")
            await self._logs.add_log("info", "Self-Healing: Bot restarted automatically.")
            enabled = True
        return enabled

    # ===== per-trade exits =====
    @staticmethod
    def evaluate_exit(trade: TradeEntity, price: float, config: StrategyConfig) -> ExitDecision:
        """
        Pure exit rule for one open trade at `price`.

        Trailing distance reuses the entry risk scaled by
        trailing_sl_multiplier / sl_atr_multiplier of the *current* config.
        Fixed SL / TP are checked when the trailing stop did not fire.
        """
        entry = trade.price
        highest = max(trade.highest_price or entry, price)

        trailing_mult = config.risk.trailing_sl_multiplier
        if trailing_mult:
            sl_price = trade.sl_price or entry * DEFAULT_SL_FRACTION
            trail_distance = (entry - sl_price) * (trailing_mult / config.risk.sl_atr_multiplier)
            trailing_level = highest - trail_distance
            if price < trailing_level:
                return ExitDecision(
                    reason=f"Trailing stop (high {highest:.4f}, trail {trailing_level:.4f})",
                    highest_price=highest,
                    trailing_level=trailing_level,
                )

        if trade.sl_price and price <= trade.sl_price:
            return ExitDecision(reason="Stop loss", highest_price=highest)
        if trade.tp_price and price >= trade.tp_price:
            return ExitDecision(reason="Take profit", highest_price=highest)
        return ExitDecision(reason=None, highest_price=highest)

    async def manage_open_positions(
        self, config: StrategyConfig, report: List[ActionOutcome]
    ) -> None:
        open_trades = await self._trades.list_open()

        for trade in open_trades:
            try:
                ticker = await self._exchange.fetch_ticker(trade.symbol)
                price = ticker.last
                if not price:
                    continue

                decision = self.evaluate_exit(trade, price, config)
                if decision.should_close:
                    order = await self._executor.execute_sell(
                        trade.symbol,
                        trade.amount,
                        price,
                        StrategyTag.RISK_MANAGER.value,
                        close_trade_id=trade.id,
                    )
                    report.append(
                        ActionOutcome(
                            symbol=trade.symbol,
                            action=PlanAction.SELL,
                            reason=decision.reason,
                            order=order,
                        )
                    )
                    await self._logs.add_log(
                        "info",
                        f"Risk Manager: {decision.reason} for {trade.symbol}",
                        json.dumps({"trade_id": trade.id, "price": price, "reason": decision.reason}),
                    )
                    continue

                stored = trade.highest_price or trade.price
                if trade.id and decision.highest_price > stored:
                    await self._trades.update_highest_price(trade.id, decision.highest_price)
            except Exception as exc:
                self._logger.error("Error checking position for %s: %s", trade.symbol, exc)
                report.append(
                    ActionOutcome(
                        symbol=trade.symbol,
                        action=PlanAction.FAIL_SELL,
                        reason="Risk check failed",
                        error=str(exc),
                    )
                )

    # ===== daily drawdown =====
    @staticmethod
    def drawdown_from_balances(balances: Sequence[float]) -> Optional[float]:
        """
        Worst peak-to-point decline as a negative fraction (0.0 when the
        series never drops). None for an empty series.
        """
        if not balances:
            return None
        peak = balances[0]
        max_dd = 0.0
        for b in balances:
            if b > peak:
                peak = b
            dd = (b - peak) / peak if peak else 0.0
            if dd < max_dd:
                max_dd = dd
        return max_dd

    async def compute_daily_drawdown(self, now_ms: Optional[int] = None) -> Optional[float]:
        snapshots = await self._snapshots.list_since(start_of_utc_day_ms(now_ms))
        return self.drawdown_from_balances([float(s.total_balance_usdt) for s in snapshots])

    @staticmethod
    def is_drawdown_breached(drawdown: Optional[float], config: StrategyConfig) -> bool:
        return drawdown is not None and drawdown <= -config.risk.max_daily_drawdown

    # ===== macro safety =====
    async def load_calendar(self) -> List[EconomicEventEntity]:
        raw = await self._settings.get(SettingsKeys.ECONOMIC_CALENDAR)
        if not raw:
            return []
        try:
            return _EVENTS_ADAPTER.validate_json(raw)
        except ValidationError as exc:
            self._logger.error("Stored economic calendar is invalid: %s", exc)
            return []

    @staticmethod
    def macro_safety_for(
        events: Sequence[EconomicEventEntity], now: datetime
    ) -> SafetyStatus:
        for ev in events:
            if not ev.is_high_impact:
                continue
            at = ev.at
            if at is None:
                continue
            if now - MACRO_WINDOW_BEFORE <= at <= now + MACRO_WINDOW_AFTER:
                return SafetyStatus(
                    active=True,
                    reason=f"High Impact Event: {ev.event} at {ev.date}",
                )
        return SafetyStatus(active=False)

    async def check_macro_safety(self, now: Optional[datetime] = None) -> SafetyStatus:
        now = now or datetime.now(timezone.utc)
        return self.macro_safety_for(await self.load_calendar(), now)

    async def liquidate_all_positions(self, report: List[ActionOutcome]) -> None:
        for trade in await self._trades.list_open():
            try:
                ticker = await self._exchange.fetch_ticker(trade.symbol)
                if not ticker.last:
                    continue
                order = await self._executor.execute_sell(
                    trade.symbol,
                    trade.amount,
                    ticker.last,
                    StrategyTag.SAFETY_MODE.value,
                    close_trade_id=trade.id,
                )
                report.append(
                    ActionOutcome(
                        symbol=trade.symbol,
                        action=PlanAction.LIQUIDATE,
                        reason="Safety mode",
                        order=order,
                    )
                )
            except Exception as exc:
                self._logger.error("Failed to liquidate %s: %s", trade.symbol, exc)
                report.append(
                    ActionOutcome(
                        symbol=trade.symbol,
                        action=PlanAction.FAIL_SELL,
                        reason="Safety mode",
                        error=str(exc),
                    )
                )
