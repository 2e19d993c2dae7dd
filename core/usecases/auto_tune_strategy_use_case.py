import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from pydantic.alias_generators import to_snake

from core.common.retry import CALENDAR_RETRY, NEWS_RETRY, RetryPolicy, run_with_retry
from core.common.utils import now_ms, parse_iso, to_float, to_iso
from core.domain.entities.advisory_entity import AdvisorySuggestion, AutoTuneResult
from core.domain.entities.portfolio_snapshot_entity import PortfolioSnapshotEntity
from core.domain.entities.strategy_config_entity import (
    GUARDRAIL_BOUNDS,
    IndicatorParams,
    RegimeThresholds,
    RiskGuardrails,
    StrategyConfig,
    TimeframeSet,
)
from core.domain.entities.trade_entity import TradeEntity
from core.domain.enums.settings_keys import SettingsKeys
from core.domain.enums.signal_enums import TradeSide, TradeStatus
from core.gateways.advisory_gateway import AdvisoryGateway, NewsGateway
from core.repositories.log_repository import LogRepository
from core.repositories.settings_repository import SettingsRepository
from core.repositories.snapshot_repository import SnapshotRepository
from core.repositories.trade_repository import TradeRepository

from ..services.strategy_config_service import StrategyConfigService

WINDOW_AM = "AM"
WINDOW_PM = "PM"
WINDOW_ADHOC = "ADHOC"

AM_HOURS = range(9, 13)
PM_HOURS = range(17, 21)

HISTORY_DAYS = 30
TRADE_HISTORY_LIMIT = 200
NEWS_LIMIT = 20
CALENDAR_REFRESH_INTERVAL = timedelta(hours=24)
CALENDAR_RANGE_DAYS = 7

_SECTIONS = {
    "timeframe": set(TimeframeSet.model_fields),
    "risk": set(RiskGuardrails.model_fields),
    "indicators": set(IndicatorParams.model_fields),
    "regime": set(RegimeThresholds.model_fields),
}
_ROOT_FIELDS = {"name", "pairs", "allocation_per_trade", "min_trade_usd"}


def merge_suggestion(current: StrategyConfig, suggestion: AdvisorySuggestion) -> StrategyConfig:
    """
    Overlay a suggestion on the current config and clamp the result.

    `params` may use flat keys (`rsiBuy`, `lookback`, `allocationPerTrade`)
    or whole sections (`risk: {...}`), in camelCase or snake_case. Fields the
    suggestion does not mention keep their current value; unknown keys are
    ignored.
    """
    merged: Dict[str, Any] = current.model_dump()

    for key, value in suggestion.params.items():
        name = to_snake(str(key))
        if name in _SECTIONS and isinstance(value, dict):
            for sub_key, sub_value in value.items():
                sub_name = to_snake(str(sub_key))
                if sub_name in _SECTIONS[name]:
                    merged[name][sub_name] = sub_value
            continue
        if name == "pairs":
            if isinstance(value, list) and value:
                merged["pairs"] = value
            continue
        if name in _ROOT_FIELDS:
            merged[name] = value
            continue
        for section, fields in _SECTIONS.items():
            if name in fields:
                merged[section][name] = value
                break

    if suggestion.strategy_name:
        merged["name"] = suggestion.strategy_name
    return StrategyConfig.from_raw(merged)


def performance_summary(
    snapshots: List[PortfolioSnapshotEntity], trades: List[TradeEntity]
) -> Dict[str, Any]:
    balances = [to_float(s.total_balance_usdt) for s in snapshots]
    start = balances[0] if balances else None
    end = balances[-1] if balances else None
    balance_change_pct = ((end - start) / start) * 100 if start and end else None

    closed = [t for t in trades if t.status == TradeStatus.CLOSED.value]
    wins = sum(1 for t in closed if t.price * t.amount > t.cost)
    win_rate = round(wins / len(closed) * 100) if closed else 0

    gross_buys = sum(t.cost for t in trades if t.side == TradeSide.BUY.value)
    gross_sells = sum(t.cost for t in trades if t.side == TradeSide.SELL.value)

    return {
        "snapshots": [
            {"total_balance_usdt": s.total_balance_usdt, "timestamp": s.created_at_iso}
            for s in snapshots
        ],
        "balanceChangePct": balance_change_pct,
        "winRate": win_rate,
        "approxPnl": gross_sells - gross_buys,
        "tradeCount": len(trades),
    }


class AutoTuneStrategyUseCase:
    """
    Adaptive feedback loop. At most once per advisory window (AM / PM, each
    once per UTC day) plus on explicit request:

      1) gather 30-day snapshots, the last 200 trades, valuation, pair universe,
         an optional news digest and the guardrail bounds;
      2) ask the advisory service for a config suggestion;
      3) merge + clamp it into the current config and persist it;
      4) record the consult timestamp of the window.

    Any failure leaves the stored config untouched; it is only logged.
    The economic calendar used by macro safety mode is refreshed here too,
    at most once per 24h.
    """

    def __init__(
        self,
        config_service: StrategyConfigService,
        advisory: AdvisoryGateway,
        trade_repo: TradeRepository,
        snapshot_repo: SnapshotRepository,
        settings_repo: SettingsRepository,
        log_repo: LogRepository,
        news: Optional[NewsGateway] = None,
        tz_offset_hours: int = 3,
        news_retry: RetryPolicy = NEWS_RETRY,
        calendar_retry: RetryPolicy = CALENDAR_RETRY,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        logger: Optional[logging.Logger] = None,
    ):
        self._configs = config_service
        self._advisory = advisory
        self._trades = trade_repo
        self._snapshots = snapshot_repo
        self._settings = settings_repo
        self._logs = log_repo
        self._news = news
        self._tz_offset = int(tz_offset_hours)
        self._news_retry = news_retry
        self._calendar_retry = calendar_retry
        self._clock = clock
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    # ===== scheduling =====
    def _stamp(self, at: Optional[datetime] = None) -> str:
        at = at or self._clock()
        return to_iso(int(at.timestamp() * 1000))

    async def _done_today(self, key: str, now: datetime) -> bool:
        last = parse_iso(await self._settings.get(key))
        return last is not None and last.date() == now.date()

    async def pick_window(self, now: Optional[datetime] = None) -> Optional[str]:
        """
        Window to consult for in this run, or None when both AM and PM were
        already consulted today (UTC).
        """
        now = now or self._clock()
        local_hour = (now.hour + self._tz_offset) % 24
        am_done = await self._done_today(SettingsKeys.LAST_ADVISORY_CONSULT_AM, now)
        pm_done = await self._done_today(SettingsKeys.LAST_ADVISORY_CONSULT_PM, now)

        if local_hour in AM_HOURS and not am_done:
            return WINDOW_AM
        if local_hour in PM_HOURS and not pm_done:
            return WINDOW_PM
        if not am_done:
            return WINDOW_AM
        if not pm_done:
            return WINDOW_PM
        return None

    # ===== inputs =====
    async def _news_digest(self) -> List[str]:
        if self._news is None:
            return []
        try:
            return await run_with_retry(
                lambda: self._news.fetch_headlines(NEWS_LIMIT),
                self._news_retry,
                "News digest fetch",
                logger=self._logger,
            )
        except Exception as exc:
            self._logger.warning("News digest unavailable: %s", exc)
            return []

    async def _build_payload(
        self,
        config: StrategyConfig,
        total_usdt: Optional[float],
        pairs: Optional[List[str]],
    ) -> Dict[str, Any]:
        since = now_ms() - HISTORY_DAYS * 24 * 60 * 60 * 1000
        snapshots = await self._snapshots.list_since(since)
        trades = await self._trades.list_recent(TRADE_HISTORY_LIMIT)

        if total_usdt is None:
            latest = await self._snapshots.get_latest()
            total_usdt = latest.total_balance_usdt if latest else None

        return {
            "config": config.to_storage(),
            "performance": performance_summary(snapshots, trades),
            "trades": [
                t.model_dump(
                    mode="json",
                    include={"symbol", "side", "amount", "price", "cost", "strategy", "status", "created_at_iso"},
                )
                for t in trades
            ],
            "portfolio": {"totalUsdt": total_usdt},
            "pairs": list(pairs) if pairs else list(config.pairs),
            "news": await self._news_digest(),
            "guardrails": GUARDRAIL_BOUNDS,
        }

    # ===== tuning =====
    async def execute(
        self,
        window: Optional[str] = None,
        total_usdt: Optional[float] = None,
        pairs: Optional[List[str]] = None,
    ) -> AutoTuneResult:
        """
        Consult the advisory service for `window` ("AM", "PM" or "ADHOC";
        None means ADHOC). Only AM / PM consults record a timestamp.
        """
        window = window or WINDOW_ADHOC
        current = await self._configs.load()

        if not self._advisory.is_configured:
            return AutoTuneResult(
                updated=False,
                message="Advisory service not configured; skipping auto-tune",
                window=window,
                config=current.to_storage(),
            )

        try:
            payload = await self._build_payload(current, total_usdt, pairs)
            suggestion = await self._advisory.suggest_config(payload)
            saved = await self._configs.save(merge_suggestion(current, suggestion))
        except Exception as exc:
            self._logger.error("Auto-tune failed (%s): %s", window, exc)
            await self._logs.add_log("error", "Auto-tune failed", json.dumps({"error": str(exc), "window": window}))
            return AutoTuneResult(
                updated=False,
                message=str(exc) or "Auto-tune failed",
                window=window,
                config=current.to_storage(),
            )

        if window == WINDOW_AM:
            await self._settings.set(SettingsKeys.LAST_ADVISORY_CONSULT_AM, self._stamp())
        elif window == WINDOW_PM:
            await self._settings.set(SettingsKeys.LAST_ADVISORY_CONSULT_PM, self._stamp())

        suggestion_dump = suggestion.model_dump(mode="json", by_alias=True)
        await self._logs.add_log(
            "info",
            "Strategy auto-tuned",
            json.dumps({"window": window, "suggestion": suggestion_dump, "saved": saved.to_storage()}),
        )
        self._logger.info("Strategy auto-tuned (%s): %s", window, suggestion.notes or "-")
        return AutoTuneResult(
            updated=True,
            message="Strategy parameters updated from advisory suggestion",
            window=window,
            config=saved.to_storage(),
            suggestion=suggestion_dump,
        )

    async def run_scheduled(
        self,
        total_usdt: Optional[float] = None,
        pairs: Optional[List[str]] = None,
    ) -> Optional[AutoTuneResult]:
        """Cron entry point: tune only when an advisory window is still open today."""
        window = await self.pick_window()
        if window is None:
            self._logger.debug("Both advisory windows consulted today; skipping auto-tune")
            return None
        return await self.execute(window=window, total_usdt=total_usdt, pairs=pairs)

    # ===== economic calendar =====
    async def refresh_economic_calendar(self, force: bool = False) -> bool:
        """
        Refresh the stored high-impact calendar for [today, today + 7d] when
        the last refresh is older than 24h. Returns True when a new calendar
        was stored; failures keep the previous one.
        """
        if not self._advisory.is_configured:
            return False

        now = self._clock()
        if not force:
            last = parse_iso(await self._settings.get(SettingsKeys.ECONOMIC_CALENDAR_UPDATED_AT))
            if last is not None and now - last < CALENDAR_REFRESH_INTERVAL:
                return False

        start = now.date()
        end = start + timedelta(days=CALENDAR_RANGE_DAYS)
        try:
            events = await run_with_retry(
                lambda: self._advisory.fetch_economic_calendar(start, end),
                self._calendar_retry,
                "Economic calendar fetch",
                logger=self._logger,
            )
        except Exception as exc:
            self._logger.error("Economic calendar refresh failed: %s", exc)
            await self._logs.add_log("error", "Economic calendar refresh failed", str(exc))
            return False

        await self._settings.set(
            SettingsKeys.ECONOMIC_CALENDAR,
            json.dumps([e.model_dump(mode="json") for e in events]),
        )
        await self._settings.set(SettingsKeys.ECONOMIC_CALENDAR_UPDATED_AT, self._stamp(now))
        self._logger.info("Economic calendar refreshed: %s events", len(events))
        return True
