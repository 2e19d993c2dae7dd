# core/domain/entities/portfolio_snapshot_entity.py
from typing import Any, Dict, List
from pydantic import ConfigDict, Field
from .base_entity import MongoEntity

class PortfolioSnapshotEntity(MongoEntity):
    total_balance_usdt: float
    positions: List[Dict[str, Any]] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")
