"""
Thin query/insert/update/delete gateway over the users, parcels and
payments tables.

Writes are flushed, never committed: the caller owns the transaction
(``get_db`` for a plain request, the reconciler for a payment).
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from zapshift.models import Parcel, Payment, User

COLLECTIONS = {
    "users": User,
    "parcels": Parcel,
    "payments": Payment,
}


@dataclass
class InsertResult:
    inserted_id: Any

    def to_dict(self):
        return {"acknowledged": True, "insertedId": self.inserted_id}


@dataclass
class UpdateResult:
    matched_count: int
    modified_count: int

    def to_dict(self):
        return {"matchedCount": self.matched_count, "modifiedCount": self.modified_count}


@dataclass
class DeleteResult:
    deleted_count: int

    def to_dict(self):
        return {"deletedCount": self.deleted_count}


class Repository:
    def __init__(self, db: Session):
        self.db = db

    def _model(self, collection: str):
        try:
            return COLLECTIONS[collection]
        except KeyError:
            raise ValueError(f"Unknown collection: {collection}")

    def _query(self, collection: str, filter: Dict[str, Any]):
        model = self._model(collection)
        return self.db.query(model).filter_by(**filter)

    def find(self, collection: str, filter: Optional[Dict[str, Any]] = None,
             sort: Optional[Tuple[str, int]] = None) -> List[Any]:
        query = self._query(collection, filter or {})
        if sort:
            field, direction = sort
            column = getattr(self._model(collection), field)
            query = query.order_by(column.desc() if direction < 0 else column.asc())
        return query.all()

    def find_one(self, collection: str, filter: Dict[str, Any]):
        return self._query(collection, filter).first()

    def insert_one(self, collection: str, record: Dict[str, Any]) -> InsertResult:
        model = self._model(collection)
        row = model(**record)
        self.db.add(row)
        self.db.flush()
        key = model.__mapper__.primary_key[0].key
        return InsertResult(inserted_id=getattr(row, key))

    def update_one(self, collection: str, filter: Dict[str, Any], patch: Dict[str, Any]) -> UpdateResult:
        row = self.find_one(collection, filter)
        if row is None:
            return UpdateResult(matched_count=0, modified_count=0)

        changed = False
        for field, value in patch.items():
            if getattr(row, field) != value:
                setattr(row, field, value)
                changed = True
        self.db.flush()
        return UpdateResult(matched_count=1, modified_count=int(changed))

    def delete_one(self, collection: str, filter: Dict[str, Any]) -> DeleteResult:
        row = self.find_one(collection, filter)
        if row is None:
            return DeleteResult(deleted_count=0)
        self.db.delete(row)
        self.db.flush()
        return DeleteResult(deleted_count=1)
