from abc import ABC, abstractmethod
from datetime import date
from typing import Any, Dict, List

from core.domain.entities.advisory_entity import AdvisorySuggestion
from core.domain.entities.economic_event_entity import EconomicEventEntity


class AdvisoryGateway(ABC):
    """
    External advisory service (LLM). Both calls raise
    `core.common.errors.AdvisoryError` on missing credentials, transport
    failures or schema mismatches.
    """

    @property
    def is_configured(self) -> bool:
        return True

    @abstractmethod
    async def suggest_config(self, payload: Dict[str, Any]) -> AdvisorySuggestion:
        raise NotImplementedError

    @abstractmethod
    async def fetch_economic_calendar(self, start: date, end: date) -> List[EconomicEventEntity]:
        raise NotImplementedError


class NewsGateway(ABC):
    @abstractmethod
    async def fetch_headlines(self, limit: int = 20) -> List[str]:
        raise NotImplementedError
