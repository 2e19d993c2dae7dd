from abc import ABC, abstractmethod
from typing import List, Optional

from core.domain.entities.log_entry_entity import LogEntryEntity


class LogRepository(ABC):
    """Operator-facing event log, bounded to the most recent entries."""

    @abstractmethod
    async def ensure_indexes(self) -> None:
        raise NotImplementedError

    @abstractmethod
    async def add_log(self, level: str, message: str, meta: Optional[str] = None) -> None:
        raise NotImplementedError

    @abstractmethod
    async def list_recent(self, limit: int = 100) -> List[LogEntryEntity]:
        raise NotImplementedError
