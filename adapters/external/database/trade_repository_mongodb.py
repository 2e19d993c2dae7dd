from typing import Any, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase

from core.common.utils import now_ms, to_iso
from core.domain.entities.trade_entity import TradeEntity
from core.domain.enums.signal_enums import TradeStatus
from core.repositories.trade_repository import TradeRepository


def _oid(trade_id: str) -> Any:
    return ObjectId(trade_id) if ObjectId.is_valid(trade_id) else trade_id


class TradeRepositoryMongoDB(TradeRepository):
    """
    Mongo implementation of the trade ledger.
    """

    COLLECTION = "trades"

    def __init__(self, db: AsyncIOMotorDatabase):
        self._col = db[self.COLLECTION]

    async def ensure_indexes(self) -> None:
        await self._col.create_index([("created_at", -1)], name="ix_created_at")
        await self._col.create_index(
            [("status", 1), ("symbol", 1)],
            name="ix_status_symbol",
        )

    async def add_trade(self, trade: TradeEntity) -> TradeEntity:
        doc = trade.to_insert_doc()
        res = await self._col.insert_one(doc)
        doc["_id"] = res.inserted_id
        return TradeEntity.from_mongo(doc)

    async def list_recent(self, limit: Optional[int] = None) -> List[TradeEntity]:
        cursor = self._col.find({}, sort=[("created_at", -1)])
        if limit:
            cursor = cursor.limit(int(limit))
        docs = await cursor.to_list(length=limit)
        return [TradeEntity.from_mongo(d) for d in docs if d]

    async def list_open(self) -> List[TradeEntity]:
        cursor = self._col.find(
            {"status": TradeStatus.OPEN.value},
            sort=[("created_at", 1)],
        )
        docs = await cursor.to_list(length=None)
        return [TradeEntity.from_mongo(d) for d in docs if d]

    async def list_since(self, since_ms: int) -> List[TradeEntity]:
        cursor = self._col.find(
            {"created_at": {"$gte": int(since_ms)}},
            sort=[("created_at", 1)],
        )
        docs = await cursor.to_list(length=None)
        return [TradeEntity.from_mongo(d) for d in docs if d]

    async def _close(self, query: dict) -> int:
        ts = now_ms()
        res = await self._col.update_many(
            query,
            {
                "$set": {
                    "status": TradeStatus.CLOSED.value,
                    "updated_at": ts,
                    "updated_at_iso": to_iso(ts),
                }
            },
        )
        return int(res.modified_count)

    async def close_by_id(self, trade_id: str) -> None:
        await self._close({"_id": _oid(trade_id), "status": TradeStatus.OPEN.value})

    async def close_open_by_symbol(self, symbol: str) -> int:
        return await self._close({"symbol": symbol, "status": TradeStatus.OPEN.value})

    async def update_highest_price(self, trade_id: str, highest_price: float) -> None:
        ts = now_ms()
        await self._col.update_one(
            {"_id": _oid(trade_id)},
            {
                "$set": {
                    "highest_price": float(highest_price),
                    "updated_at": ts,
                    "updated_at_iso": to_iso(ts),
                }
            },
        )
