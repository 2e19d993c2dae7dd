import json
import logging
from typing import Any, Dict, Optional, Union

from core.domain.entities.strategy_config_entity import StrategyConfig
from core.domain.enums.settings_keys import SettingsKeys
from core.repositories.settings_repository import SettingsRepository


class StrategyConfigService:
    """
    Loads and persists the strategy config under the `strategy_config`
    settings key. Both directions go through the clamping model, so a stored
    or returned config is always inside its bounds.
    """

    def __init__(
        self,
        settings_repo: SettingsRepository,
        logger: Optional[logging.Logger] = None,
    ):
        self._settings = settings_repo
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    @staticmethod
    def _safe_parse(raw: Optional[str]) -> Dict[str, Any]:
        if not raw:
            return {}
        try:
            value = json.loads(raw)
        except (TypeError, ValueError):
            return {}
        return value if isinstance(value, dict) else {}

    async def load(self) -> StrategyConfig:
        raw = await self._settings.get(SettingsKeys.STRATEGY_CONFIG)
        parsed = self._safe_parse(raw)
        if raw and not parsed:
            self._logger.warning("Stored strategy config is not a JSON object; using defaults")
        return StrategyConfig.from_raw(parsed)

    async def save(self, config: Union[StrategyConfig, Dict[str, Any]]) -> StrategyConfig:
        clamped = StrategyConfig.from_raw(config)
        await self._settings.set(
            SettingsKeys.STRATEGY_CONFIG, json.dumps(clamped.to_storage())
        )
        return clamped
