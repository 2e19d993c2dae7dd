# core/domain/entities/base_entity.py
from typing import Any, Optional, TypeVar, Type
from pydantic import BaseModel, ConfigDict

from core.common.utils import now_ms, sanitize_for_bson, to_iso

E = TypeVar("E", bound="MongoEntity")


class MongoEntity(BaseModel):
    """
    Base for the persisted records (trades, snapshots, log entries).

    `id` mirrors Mongo's `_id` as a string. Timestamps are kept twice:
    epoch milliseconds for range queries and an ISO string for humans.
    """
    id: Optional[str] = None
    created_at: Optional[int] = None
    created_at_iso: Optional[str] = None
    updated_at: Optional[int] = None
    updated_at_iso: Optional[str] = None

    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        extra="allow",
        use_enum_values=True,
    )

    @classmethod
    def from_mongo(cls: Type[E], doc: Optional[dict[str, Any]]) -> Optional[E]:
        if not doc:
            return None
        data = dict(doc)
        if "_id" in data:
            data["id"] = str(data.pop("_id"))
        return cls.model_validate(data)

    def to_mongo(self) -> dict[str, Any]:
        data = self.model_dump(mode="python", exclude_none=True)
        if "id" in data:
            data["_id"] = data.pop("id")
        return data

    def to_insert_doc(self, ts: Optional[int] = None) -> dict[str, Any]:
        """
        Document for a fresh insert: no `_id` (the server assigns one),
        creation stamped now, non-finite floats nulled for BSON.
        """
        ts = now_ms() if ts is None else ts
        doc = self.to_mongo()
        doc.pop("_id", None)
        doc["created_at"] = ts
        doc["created_at_iso"] = to_iso(ts)
        return sanitize_for_bson(doc)
