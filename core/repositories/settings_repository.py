from abc import ABC, abstractmethod
from typing import Optional


class SettingsRepository(ABC):
    """
    Flat string key/value store. Each key has a single writer; see
    `core.domain.enums.settings_keys.SettingsKeys`.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        raise NotImplementedError
