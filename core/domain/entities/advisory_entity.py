# core/domain/entities/advisory_entity.py
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AdvisorySuggestion(BaseModel):
    """
    Structured configuration suggestion returned by the advisory service.
    `params` is required; everything else is informational.
    """
    strategy_name: Optional[str] = Field(None, alias="strategyName")
    params: Dict[str, Any]
    notes: Optional[str] = None
    confidence: Optional[float] = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("confidence")
    @classmethod
    def _bounded_confidence(cls, v: Optional[float]) -> Optional[float]:
        if v is None:
            return None
        return min(max(float(v), 0.0), 1.0)


class AutoTuneResult(BaseModel):
    updated: bool
    message: str
    window: Optional[str] = None
    config: Dict[str, Any] = Field(default_factory=dict)
    suggestion: Optional[Dict[str, Any]] = None
