from typing import Optional

from fastapi import Request
from motor.motor_asyncio import AsyncIOMotorDatabase

from config.settings import settings
from core.gateways.advisory_gateway import AdvisoryGateway, NewsGateway
from core.gateways.exchange_gateway import ExchangeGateway
from core.services.indicator_calculation_service import IndicatorCalculationService
from core.services.market_analysis_service import MarketAnalysisService
from core.services.pair_selection_service import PairSelectionService
from core.services.portfolio_valuation_service import PortfolioValuationService
from core.services.rebalance_planner_service import RebalancePlannerService
from core.services.risk_manager_service import RiskManagerService
from core.services.signal_scoring_service import SignalScoringService
from core.services.strategy_config_service import StrategyConfigService
from core.services.trade_execution_service import TradeExecutionService
from core.usecases.auto_tune_strategy_use_case import AutoTuneStrategyUseCase
from core.usecases.run_trading_cycle_use_case import RunTradingCycleUseCase
from adapters.external.database.log_repository_mongodb import LogRepositoryMongoDB
from adapters.external.database.settings_repository_mongodb import SettingsRepositoryMongoDB
from adapters.external.database.snapshot_repository_mongodb import SnapshotRepositoryMongoDB
from adapters.external.database.trade_repository_mongodb import TradeRepositoryMongoDB


def get_db(request: Request) -> AsyncIOMotorDatabase:
    db = getattr(request.app.state, "mongo_db", None)
    if db is None:
        raise RuntimeError("MongoDB database not initialized. Check app lifespan startup.")
    return db


def get_exchange(request: Request) -> ExchangeGateway:
    exchange = getattr(request.app.state, "exchange", None)
    if exchange is None:
        raise RuntimeError("Exchange client not initialized. Check app lifespan startup.")
    return exchange


def get_advisory(request: Request) -> AdvisoryGateway:
    advisory = getattr(request.app.state, "advisory", None)
    if advisory is None:
        raise RuntimeError("Advisory client not initialized. Check app lifespan startup.")
    return advisory


def get_news(request: Request) -> Optional[NewsGateway]:
    return getattr(request.app.state, "news", None)


# ===== repositories =====
def get_trade_repo(request: Request) -> TradeRepositoryMongoDB:
    return TradeRepositoryMongoDB(get_db(request))


def get_snapshot_repo(request: Request) -> SnapshotRepositoryMongoDB:
    return SnapshotRepositoryMongoDB(get_db(request), history_cap=settings.SNAPSHOT_HISTORY_CAP)


def get_settings_repo(request: Request) -> SettingsRepositoryMongoDB:
    return SettingsRepositoryMongoDB(get_db(request))


def get_log_repo(request: Request) -> LogRepositoryMongoDB:
    return LogRepositoryMongoDB(get_db(request), history_cap=settings.LOG_HISTORY_CAP)


# ===== services / use cases =====
def get_strategy_config_service(request: Request) -> StrategyConfigService:
    return StrategyConfigService(get_settings_repo(request))


def get_risk_manager(request: Request) -> RiskManagerService:
    exchange = get_exchange(request)
    trade_repo = get_trade_repo(request)
    return RiskManagerService(
        exchange=exchange,
        executor=TradeExecutionService(exchange, trade_repo),
        trade_repo=trade_repo,
        snapshot_repo=get_snapshot_repo(request),
        settings_repo=get_settings_repo(request),
        log_repo=get_log_repo(request),
    )


def get_auto_tune_use_case(request: Request) -> AutoTuneStrategyUseCase:
    return AutoTuneStrategyUseCase(
        config_service=get_strategy_config_service(request),
        advisory=get_advisory(request),
        trade_repo=get_trade_repo(request),
        snapshot_repo=get_snapshot_repo(request),
        settings_repo=get_settings_repo(request),
        log_repo=get_log_repo(request),
        news=get_news(request),
        tz_offset_hours=settings.ADVISORY_TZ_OFFSET_HOURS,
    )


def get_run_trading_cycle_use_case(request: Request) -> RunTradingCycleUseCase:
    exchange = get_exchange(request)
    trade_repo = get_trade_repo(request)
    executor = TradeExecutionService(exchange, trade_repo)
    quote = settings.QUOTE_ASSET

    return RunTradingCycleUseCase(
        exchange=exchange,
        config_service=get_strategy_config_service(request),
        risk_manager=get_risk_manager(request),
        valuation_service=PortfolioValuationService(exchange, quote_asset=quote),
        pair_selection=PairSelectionService(
            exchange,
            quote_asset=quote,
            min_volume=settings.PAIR_VOLUME_USDT_MIN,
            max_spread=settings.PAIR_SPREAD_MAX,
        ),
        analysis_service=MarketAnalysisService(
            exchange,
            IndicatorCalculationService(),
            SignalScoringService(),
            concurrency=settings.ANALYSIS_CONCURRENCY,
        ),
        planner=RebalancePlannerService(executor, quote_asset=quote),
        auto_tuner=get_auto_tune_use_case(request),
        snapshot_repo=get_snapshot_repo(request),
        log_repo=get_log_repo(request),
        timeout_sec=settings.RUN_TIMEOUT_SEC,
    )
