# core/domain/entities/run_result_entity.py
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..enums.signal_enums import PlanAction
from .market_entity import OrderResultEntity


class ActionOutcome(BaseModel):
    """One reported outcome of a run: a classification, an order or a failure."""
    symbol: str
    action: PlanAction
    reason: Optional[str] = None
    target: Optional[str] = None
    confidence: Optional[float] = None
    order: Optional[OrderResultEntity] = None
    error: Optional[str] = None

    model_config = ConfigDict(use_enum_values=True)


class SafetyStatus(BaseModel):
    active: bool = False
    reason: Optional[str] = None


class CycleReport(BaseModel):
    """
    Result of one trading run. `results` is appended to while the run
    progresses, so a failed or timed-out run still shows partial work.
    """
    success: bool = False
    message: Optional[str] = None
    error: Optional[str] = None
    timed_out: bool = False
    pairs: List[str] = Field(default_factory=list)
    drawdown: Optional[float] = None
    total_balance_usdt: Optional[float] = None
    results: List[ActionOutcome] = Field(default_factory=list)
    tune_result: Optional[Dict[str, Any]] = None

    def to_response(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "success": self.success,
            "results": [r.model_dump(mode="json", exclude_none=True) for r in self.results],
            "tuneResult": self.tune_result,
        }
        for key in ("message", "error", "drawdown", "pairs"):
            value = getattr(self, key)
            if value:
                body[key] = value
        if self.total_balance_usdt is not None:
            body["totalBalanceUsdt"] = self.total_balance_usdt
        if self.timed_out:
            body["timedOut"] = True
        return body
