from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from core.domain.entities.portfolio_snapshot_entity import PortfolioSnapshotEntity
from core.repositories.snapshot_repository import SnapshotRepository


class SnapshotRepositoryMongoDB(SnapshotRepository):
    """
    Portfolio snapshots as a bounded ring: after each insert, documents beyond
    `history_cap` are dropped oldest first.
    """

    COLLECTION = "portfolio_snapshots"

    def __init__(self, db: AsyncIOMotorDatabase, history_cap: int = 5000):
        self._col = db[self.COLLECTION]
        self._cap = max(1, int(history_cap))

    async def ensure_indexes(self) -> None:
        await self._col.create_index([("created_at", 1)], name="ix_created_at")

    async def _trim(self) -> None:
        count = await self._col.count_documents({})
        overflow = count - self._cap
        if overflow <= 0:
            return
        cursor = self._col.find({}, {"_id": 1}, sort=[("created_at", 1)], limit=overflow)
        stale = [d["_id"] for d in await cursor.to_list(length=overflow)]
        if stale:
            await self._col.delete_many({"_id": {"$in": stale}})

    async def add_snapshot(self, snapshot: PortfolioSnapshotEntity) -> PortfolioSnapshotEntity:
        doc = snapshot.to_insert_doc()
        res = await self._col.insert_one(doc)
        doc["_id"] = res.inserted_id
        await self._trim()
        return PortfolioSnapshotEntity.from_mongo(doc)

    async def get_latest(self) -> Optional[PortfolioSnapshotEntity]:
        doc = await self._col.find_one({}, sort=[("created_at", -1)])
        return PortfolioSnapshotEntity.from_mongo(doc)

    async def list_since(self, since_ms: int) -> List[PortfolioSnapshotEntity]:
        cursor = self._col.find(
            {"created_at": {"$gte": int(since_ms)}},
            sort=[("created_at", 1)],
        )
        docs = await cursor.to_list(length=None)
        return [PortfolioSnapshotEntity.from_mongo(d) for d in docs if d]

    async def list_recent(self, limit: int) -> List[PortfolioSnapshotEntity]:
        cursor = self._col.find({}, sort=[("created_at", -1)], limit=int(limit))
        docs = await cursor.to_list(length=int(limit))
        return [PortfolioSnapshotEntity.from_mongo(d) for d in docs if d]
