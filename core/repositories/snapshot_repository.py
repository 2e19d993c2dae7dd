from abc import ABC, abstractmethod
from typing import List, Optional

from core.domain.entities.portfolio_snapshot_entity import PortfolioSnapshotEntity


class SnapshotRepository(ABC):
    """
    Portfolio snapshots, one per run. Bounded ring: once the cap is exceeded
    the oldest snapshots are dropped.
    """

    @abstractmethod
    async def ensure_indexes(self) -> None:
        raise NotImplementedError

    @abstractmethod
    async def add_snapshot(self, snapshot: PortfolioSnapshotEntity) -> PortfolioSnapshotEntity:
        raise NotImplementedError

    @abstractmethod
    async def get_latest(self) -> Optional[PortfolioSnapshotEntity]:
        raise NotImplementedError

    @abstractmethod
    async def list_since(self, since_ms: int) -> List[PortfolioSnapshotEntity]:
        """Snapshots created at or after `since_ms`, oldest first."""
        raise NotImplementedError

    @abstractmethod
    async def list_recent(self, limit: int) -> List[PortfolioSnapshotEntity]:
        """Most recent first."""
        raise NotImplementedError
