from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from core.common.utils import now_ms, to_iso
from core.repositories.settings_repository import SettingsRepository


class SettingsRepositoryMongoDB(SettingsRepository):
    """
    One document per key: {_id: key, value: str}.
    """

    COLLECTION = "settings"

    def __init__(self, db: AsyncIOMotorDatabase):
        self._col = db[self.COLLECTION]

    async def get(self, key: str) -> Optional[str]:
        doc = await self._col.find_one({"_id": key})
        if not doc:
            return None
        value = doc.get("value")
        return None if value is None else str(value)

    async def set(self, key: str, value: str) -> None:
        ts = now_ms()
        await self._col.update_one(
            {"_id": key},
            {
                "$set": {"value": str(value), "updated_at": ts, "updated_at_iso": to_iso(ts)},
                "$setOnInsert": {"created_at": ts, "created_at_iso": to_iso(ts)},
            },
            upsert=True,
        )
