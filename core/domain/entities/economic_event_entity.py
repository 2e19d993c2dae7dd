# core/domain/entities/economic_event_entity.py
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from core.common.utils import parse_iso


class EconomicEventEntity(BaseModel):
    """
    Scheduled macro event, persisted as part of a JSON list under the
    `economic_calendar` settings key.
    """
    date: str = Field(..., description="UTC ISO-8601 timestamp of the release")
    event: str = ""
    impact: str = "LOW"

    model_config = ConfigDict(extra="ignore")

    @property
    def is_high_impact(self) -> bool:
        return str(self.impact).upper() == "HIGH"

    @property
    def at(self) -> Optional[datetime]:
        return parse_iso(self.date)
