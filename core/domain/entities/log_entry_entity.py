# core/domain/entities/log_entry_entity.py
from typing import Optional
from pydantic import ConfigDict
from .base_entity import MongoEntity

class LogEntryEntity(MongoEntity):
    level: str
    message: str
    meta: Optional[str] = None

    model_config = ConfigDict(extra="ignore")
