import json
from datetime import datetime, timedelta, timezone

import pytest

from core.domain.entities.economic_event_entity import EconomicEventEntity
from core.domain.entities.portfolio_snapshot_entity import PortfolioSnapshotEntity
from core.domain.entities.strategy_config_entity import StrategyConfig
from core.domain.entities.trade_entity import TradeEntity
from core.domain.enums.settings_keys import SettingsKeys
from core.domain.enums.signal_enums import PlanAction, StrategyTag, TradeSide, TradeStatus
from core.services.risk_manager_service import RiskManagerService, STATUS_STOPPED
from core.services.trade_execution_service import TradeExecutionService

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def _trade(price=100.0, sl=96.0, tp=None, highest=None, symbol="BTC/USDT", amount=1.0):
    return TradeEntity(
        symbol=symbol,
        side=TradeSide.BUY,
        amount=amount,
        price=price,
        cost=price * amount,
        strategy=StrategyTag.DYNAMIC_TREND.value,
        status=TradeStatus.OPEN,
        sl_price=sl,
        tp_price=tp,
        highest_price=highest,
    )


def _event(offset: timedelta, impact="HIGH", name="CPI"):
    return EconomicEventEntity(date=(NOW + offset).isoformat(), event=name, impact=impact)


@pytest.fixture
def risk(exchange, trade_repo, snapshot_repo, settings_repo, log_repo):
    executor = TradeExecutionService(exchange, trade_repo)
    return RiskManagerService(exchange, executor, trade_repo, snapshot_repo, settings_repo, log_repo)


@pytest.fixture
def config():
    return StrategyConfig.from_raw({"risk": {"trailingSlMultiplier": 2.0, "slAtrMultiplier": 2.0}})


# ===== exit rule =====
def test_trailing_stop_fires_below_level(config):
    decision = RiskManagerService.evaluate_exit(_trade(highest=110.0), 105.0, config)
    assert decision.should_close
    assert decision.trailing_level == pytest.approx(106.0)
    assert decision.reason.startswith("Trailing stop")


def test_trailing_stop_holds_above_level(config):
    decision = RiskManagerService.evaluate_exit(_trade(highest=110.0), 107.0, config)
    assert not decision.should_close
    assert decision.highest_price == 110.0


def test_missing_sl_uses_default_fraction(config):
    # sl defaults to 95: distance 5, level 115
    decision = RiskManagerService.evaluate_exit(_trade(sl=None, highest=120.0), 114.0, config)
    assert decision.trailing_level == pytest.approx(115.0)


def test_fixed_stop_loss_without_trailing():
    cfg = StrategyConfig.from_raw({"risk": {"trailingSlMultiplier": None}})
    decision = RiskManagerService.evaluate_exit(_trade(sl=96.0), 95.5, cfg)
    assert decision.reason == "Stop loss"


def test_take_profit():
    cfg = StrategyConfig.from_raw({"risk": {"trailingSlMultiplier": None}})
    decision = RiskManagerService.evaluate_exit(_trade(tp=108.0), 108.0, cfg)
    assert decision.reason == "Take profit"


def test_new_high_is_tracked(config):
    decision = RiskManagerService.evaluate_exit(_trade(highest=105.0), 112.0, config)
    assert not decision.should_close
    assert decision.highest_price == 112.0


# ===== open position management =====
@pytest.mark.asyncio
async def test_high_water_mark_is_persisted(risk, config, exchange, trade_repo):
    stored = await trade_repo.add_trade(_trade(highest=105.0))
    exchange.set_price("BTC/USDT", 112.0)
    report = []

    await risk.manage_open_positions(config, report)

    assert report == []
    assert trade_repo.get(stored.id).highest_price == 112.0


@pytest.mark.asyncio
async def test_exit_closes_trade_and_records_sell(risk, config, exchange, trade_repo, log_repo):
    stored = await trade_repo.add_trade(_trade(highest=110.0))
    exchange.set_price("BTC/USDT", 105.0)
    report = []

    await risk.manage_open_positions(config, report)

    assert [r.action for r in report] == [PlanAction.SELL.value]
    assert trade_repo.get(stored.id).status == TradeStatus.CLOSED.value
    sells = [t for t in trade_repo.trades if t.side == TradeSide.SELL.value]
    assert len(sells) == 1
    assert sells[0].strategy == StrategyTag.RISK_MANAGER.value
    assert sells[0].cost == pytest.approx(105.0)
    assert log_repo.messages("info")[0].startswith("Risk Manager: Trailing stop")


@pytest.mark.asyncio
async def test_price_error_is_reported_per_trade(risk, config, trade_repo):
    await trade_repo.add_trade(_trade(symbol="GONE/USDT"))
    report = []

    await risk.manage_open_positions(config, report)

    assert report[0].action == PlanAction.FAIL_SELL.value
    assert report[0].error


# ===== daily drawdown =====
def test_drawdown_from_balances():
    assert RiskManagerService.drawdown_from_balances([100, 110, 95]) == pytest.approx(-15 / 110)
    assert RiskManagerService.drawdown_from_balances([100, 101, 102]) == 0.0
    assert RiskManagerService.drawdown_from_balances([]) is None


def test_drawdown_breach_threshold():
    cfg = StrategyConfig.from_raw({"risk": {"maxDailyDrawdown": 0.10}})
    assert RiskManagerService.is_drawdown_breached(-0.1364, cfg)
    assert RiskManagerService.is_drawdown_breached(-0.10, cfg)
    assert not RiskManagerService.is_drawdown_breached(-0.05, cfg)
    assert not RiskManagerService.is_drawdown_breached(None, cfg)


@pytest.mark.asyncio
async def test_daily_drawdown_ignores_yesterday(risk, snapshot_repo):
    now_ms = int(NOW.timestamp() * 1000)
    yesterday = now_ms - 24 * 3600 * 1000
    await snapshot_repo.add_snapshot(PortfolioSnapshotEntity(total_balance_usdt=500.0, created_at=yesterday))
    for i, bal in enumerate([100.0, 110.0, 95.0]):
        await snapshot_repo.add_snapshot(
            PortfolioSnapshotEntity(total_balance_usdt=bal, created_at=now_ms - 3_600_000 + i)
        )

    dd = await risk.compute_daily_drawdown(now_ms)

    assert dd == pytest.approx(-15 / 110)


@pytest.mark.asyncio
async def test_daily_drawdown_includes_snapshot_at_midnight(risk, snapshot_repo):
    now_ms = int(NOW.timestamp() * 1000)
    midnight = int(datetime(2026, 3, 10, tzinfo=timezone.utc).timestamp() * 1000)
    await snapshot_repo.add_snapshot(PortfolioSnapshotEntity(total_balance_usdt=200.0, created_at=midnight))
    await snapshot_repo.add_snapshot(PortfolioSnapshotEntity(total_balance_usdt=150.0, created_at=now_ms - 1))

    dd = await risk.compute_daily_drawdown(now_ms)

    assert dd == pytest.approx(-0.25)


# ===== macro safety =====
@pytest.mark.parametrize(
    "offset, impact, active",
    [
        (timedelta(hours=3), "HIGH", True),
        (timedelta(hours=5), "HIGH", False),
        (timedelta(hours=3), "MEDIUM", False),
        (timedelta(hours=-1), "HIGH", True),
        (timedelta(hours=-3), "HIGH", False),
        (timedelta(hours=4), "high", True),
    ],
)
def test_macro_window(offset, impact, active):
    status = RiskManagerService.macro_safety_for([_event(offset, impact)], NOW)
    assert status.active is active


def test_macro_reason_names_event():
    status = RiskManagerService.macro_safety_for([_event(timedelta(hours=1), name="FOMC")], NOW)
    assert status.reason.startswith("High Impact Event: FOMC at ")


@pytest.mark.asyncio
async def test_check_macro_safety_reads_stored_calendar(risk, settings_repo):
    settings_repo.values[SettingsKeys.ECONOMIC_CALENDAR] = json.dumps(
        [_event(timedelta(hours=2)).model_dump()]
    )
    status = await risk.check_macro_safety(NOW)
    assert status.active


@pytest.mark.asyncio
async def test_invalid_calendar_is_ignored(risk, settings_repo):
    settings_repo.values[SettingsKeys.ECONOMIC_CALENDAR] = "not-json"
    assert (await risk.check_macro_safety(NOW)).active is False


@pytest.mark.asyncio
async def test_liquidate_all_positions(risk, exchange, trade_repo):
    await trade_repo.add_trade(_trade(symbol="BTC/USDT"))
    await trade_repo.add_trade(_trade(symbol="ETH/USDT", price=10.0, amount=3.0))
    exchange.set_price("BTC/USDT", 101.0)
    exchange.set_price("ETH/USDT", 11.0)
    report = []

    await risk.liquidate_all_positions(report)

    assert [(r.symbol, r.action) for r in report] == [
        ("BTC/USDT", PlanAction.LIQUIDATE.value),
        ("ETH/USDT", PlanAction.LIQUIDATE.value),
    ]
    assert await trade_repo.list_open() == []
    tags = {t.strategy for t in trade_repo.trades if t.side == TradeSide.SELL.value}
    assert tags == {StrategyTag.SAFETY_MODE.value}


# ===== self-healing =====
@pytest.mark.asyncio
async def test_disabled_bot_is_restarted_by_default(risk, settings_repo, log_repo):
    settings_repo.values[SettingsKeys.BOT_ENABLED] = "false"

    assert await risk.ensure_running() is True
    assert settings_repo.values[SettingsKeys.BOT_ENABLED] == "true"
    assert log_repo.messages("info") == ["Self-Healing: Bot restarted automatically."]


@pytest.mark.asyncio
async def test_deliberately_stopped_bot_stays_down(risk, settings_repo, log_repo):
    settings_repo.values[SettingsKeys.BOT_ENABLED] = "false"
    await risk.set_expected_status(STATUS_STOPPED)

    assert await risk.ensure_running() is False
    assert settings_repo.values[SettingsKeys.BOT_ENABLED] == "false"
    assert log_repo.entries == []


@pytest.mark.asyncio
async def test_heartbeat_is_written(risk, settings_repo):
    await risk.update_heartbeat()
    assert settings_repo.values[SettingsKeys.LAST_HEARTBEAT].endswith("Z")
