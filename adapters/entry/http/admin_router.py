import json
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query
from pydantic import BaseModel, Field

from core.domain.enums.settings_keys import SettingsKeys
from core.repositories.log_repository import LogRepository
from core.repositories.settings_repository import SettingsRepository
from core.repositories.snapshot_repository import SnapshotRepository
from core.repositories.trade_repository import TradeRepository
from core.services.risk_manager_service import STATUS_RUNNING, STATUS_STOPPED, RiskManagerService
from core.services.strategy_config_service import StrategyConfigService
from core.usecases.auto_tune_strategy_use_case import WINDOW_ADHOC, AutoTuneStrategyUseCase

from .deps import (
    get_auto_tune_use_case,
    get_log_repo,
    get_risk_manager,
    get_settings_repo,
    get_snapshot_repo,
    get_strategy_config_service,
    get_trade_repo,
)

router = APIRouter(prefix="/admin", tags=["admin"])

# =========================
# Strategy config
# =========================

@router.get("/strategy")
async def get_strategy(
    svc: StrategyConfigService = Depends(get_strategy_config_service),
) -> Dict[str, Any]:
    """Current strategy config, already clamped."""
    config = await svc.load()
    return config.to_storage()


@router.put("/strategy")
async def put_strategy(
    raw: Dict[str, Any] = Body(..., description="Full or partial config; camelCase or snake_case."),
    svc: StrategyConfigService = Depends(get_strategy_config_service),
    log_repo: LogRepository = Depends(get_log_repo),
) -> Dict[str, Any]:
    """
    Manual override. Out-of-range values are clamped on save, never rejected;
    missing fields take their defaults.
    """
    saved = await svc.save(raw)
    await log_repo.add_log("info", "Strategy config updated manually", json.dumps(saved.to_storage()))
    return saved.to_storage()


@router.post("/strategy/optimize")
async def optimize_strategy(
    uc: AutoTuneStrategyUseCase = Depends(get_auto_tune_use_case),
) -> Dict[str, Any]:
    """On-demand advisory consult. Does not consume the AM / PM windows."""
    result = await uc.execute(window=WINDOW_ADHOC)
    return result.model_dump(mode="json")

# =========================
# Bot control / status
# =========================

class BotToggleDTO(BaseModel):
    enabled: bool = Field(..., description="Desired run state of the bot.")


class BotStateOutDTO(BaseModel):
    enabled: bool
    expected_status: str


@router.post("/bot", response_model=BotStateOutDTO)
async def toggle_bot(
    dto: BotToggleDTO,
    settings_repo: SettingsRepository = Depends(get_settings_repo),
    risk: RiskManagerService = Depends(get_risk_manager),
    log_repo: LogRepository = Depends(get_log_repo),
) -> BotStateOutDTO:
    """
    Operator toggle. The expected status follows the toggle, so self-healing
    only restarts a bot that was not stopped on purpose.
    """
    expected = STATUS_RUNNING if dto.enabled else STATUS_STOPPED
    await settings_repo.set(SettingsKeys.BOT_ENABLED, "true" if dto.enabled else "false")
    await risk.set_expected_status(expected)
    await log_repo.add_log("info", f"Bot {'started' if dto.enabled else 'stopped'} by operator")
    return BotStateOutDTO(enabled=dto.enabled, expected_status=expected)


@router.get("/status")
async def get_status(
    logs_limit: int = Query(20, ge=0, le=200),
    settings_repo: SettingsRepository = Depends(get_settings_repo),
    snapshot_repo: SnapshotRepository = Depends(get_snapshot_repo),
    trade_repo: TradeRepository = Depends(get_trade_repo),
    log_repo: LogRepository = Depends(get_log_repo),
) -> Dict[str, Any]:
    latest = await snapshot_repo.get_latest()
    open_trades = await trade_repo.list_open()
    logs = await log_repo.list_recent(logs_limit) if logs_limit else []
    expected: Optional[str] = await settings_repo.get(SettingsKeys.EXPECTED_STATUS)

    return {
        "botEnabled": (await settings_repo.get(SettingsKeys.BOT_ENABLED)) == "true",
        "expectedStatus": expected or STATUS_RUNNING,
        "lastHeartbeat": await settings_repo.get(SettingsKeys.LAST_HEARTBEAT),
        "lastAdvisoryConsultAm": await settings_repo.get(SettingsKeys.LAST_ADVISORY_CONSULT_AM),
        "lastAdvisoryConsultPm": await settings_repo.get(SettingsKeys.LAST_ADVISORY_CONSULT_PM),
        "latestSnapshot": latest.model_dump(mode="json") if latest else None,
        "openTrades": [t.model_dump(mode="json") for t in open_trades],
        "recentLogs": [entry.model_dump(mode="json") for entry in logs],
    }
