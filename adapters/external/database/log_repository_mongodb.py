from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from core.domain.entities.log_entry_entity import LogEntryEntity
from core.repositories.log_repository import LogRepository


class LogRepositoryMongoDB(LogRepository):
    """
    Operator log ring, capped at `history_cap` entries (oldest dropped).
    """

    COLLECTION = "logs"

    def __init__(self, db: AsyncIOMotorDatabase, history_cap: int = 1000):
        self._col = db[self.COLLECTION]
        self._cap = max(1, int(history_cap))

    async def ensure_indexes(self) -> None:
        await self._col.create_index([("created_at", -1)], name="ix_created_at")

    async def add_log(self, level: str, message: str, meta: Optional[str] = None) -> None:
        entry = LogEntryEntity(level=level, message=message, meta=meta)
        await self._col.insert_one(entry.to_insert_doc())
        # keep newest `cap` entries
        cursor = self._col.find({}, {"_id": 1}, sort=[("created_at", -1)], skip=self._cap)
        stale = [d["_id"] for d in await cursor.to_list(length=None)]
        if stale:
            await self._col.delete_many({"_id": {"$in": stale}})

    async def list_recent(self, limit: int = 100) -> List[LogEntryEntity]:
        cursor = self._col.find({}, sort=[("created_at", -1)], limit=int(limit))
        docs = await cursor.to_list(length=int(limit))
        return [LogEntryEntity.from_mongo(d) for d in docs if d]
