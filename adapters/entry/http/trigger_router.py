import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi.responses import JSONResponse

from config.settings import settings
from core.usecases.run_trading_cycle_use_case import RunTradingCycleUseCase

from .deps import get_run_trading_cycle_use_case

router = APIRouter(prefix="/triggers", tags=["triggers"])


def verify_cron_secret(authorization: Optional[str] = Header(None)) -> None:
    """Reject the trigger unless it carries `Bearer <CRON_SECRET>` (when one is configured)."""
    secret = settings.CRON_SECRET
    if secret and authorization != f"Bearer {secret}":
        raise HTTPException(status_code=401, detail="Unauthorized")


@router.api_route("/cron", methods=["GET", "POST"], dependencies=[Depends(verify_cron_secret)])
async def cron_trigger(
    uc: RunTradingCycleUseCase = Depends(get_run_trading_cycle_use_case),
) -> Any:
    """
    Run one trading cycle. 200 with `{success, results, tuneResult}` on
    success; 500 (504 on timeout) with the partial results otherwise.
    """
    logger = logging.getLogger("CronTrigger")

    report = await uc.execute()
    body: Dict[str, Any] = report.to_response()
    if report.success:
        return body

    status = 504 if report.timed_out else 500
    logger.error("Cron run failed (%s): %s", status, report.error)
    return JSONResponse(status_code=status, content=body)
