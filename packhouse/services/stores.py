# packhouse/services/stores.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo.errors import DuplicateKeyError, PyMongoError

from packhouse.services.errors import StoreError


def _key(doc_id):
    if isinstance(doc_id, str) and ObjectId.is_valid(doc_id):
        return ObjectId(doc_id)
    return doc_id


def _out(doc):
    """Mongo document -> plain dict with a string `id`."""
    if doc is None:
        return None
    d = dict(doc)
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    return d


class DocumentStore:
    """
    Thin wrapper over one Mongo collection.
    Every PyMongo failure surfaces as StoreError so callers handle one type.
    """

    def __init__(self, collection, name: Optional[str] = None):
        self.collection = collection
        self.name = name or getattr(collection, "name", "store")

    def create(self, payload: Dict[str, Any], key: Optional[str] = None) -> str:
        """
        Insert a document and return its id.
        With `key`, the write is an upsert on that id and never duplicates.
        """
        doc = dict(payload)
        try:
            if key is None:
                res = self.collection.insert_one(doc)
                return str(res.inserted_id)

            self.collection.update_one(
                {"_id": key},
                {"$setOnInsert": doc},
                upsert=True,
            )
            return key
        except DuplicateKeyError as e:
            if key is None:
                raise StoreError(self.name, "create", e) from e
            # lost an upsert race on the same key: the record exists
            return key
        except PyMongoError as e:
            raise StoreError(self.name, "create", e) from e

    def patch(self, doc_id: str, fields: Dict[str, Any]) -> bool:
        return self.update(doc_id, {"$set": fields})

    def update(self, doc_id: str, update: Dict[str, Any]) -> bool:
        try:
            res = self.collection.update_one({"_id": _key(doc_id)}, update)
        except PyMongoError as e:
            raise StoreError(self.name, "update", e) from e
        return res.matched_count > 0

    def upsert(self, doc_id: str, update: Dict[str, Any]) -> None:
        try:
            self.collection.update_one({"_id": _key(doc_id)}, update, upsert=True)
        except PyMongoError as e:
            raise StoreError(self.name, "upsert", e) from e

    def get(self, doc_id: str) -> Optional[Dict[str, Any]]:
        try:
            return _out(self.collection.find_one({"_id": _key(doc_id)}))
        except PyMongoError as e:
            raise StoreError(self.name, "get", e) from e

    def find(self, query: Optional[Dict[str, Any]] = None, sort=None, limit: int = 0) -> List[Dict[str, Any]]:
        try:
            cur = self.collection.find(query or {})
            if sort:
                cur = cur.sort(sort)
            if limit:
                cur = cur.limit(limit)
            return [_out(d) for d in cur]
        except PyMongoError as e:
            raise StoreError(self.name, "find", e) from e

    def count(self, query: Optional[Dict[str, Any]] = None) -> int:
        try:
            return self.collection.count_documents(query or {})
        except PyMongoError as e:
            raise StoreError(self.name, "count", e) from e


@dataclass
class ProvisioningStores:
    orders: DocumentStore
    production_lots: DocumentStore
    quality_shared_lots: DocumentStore
    quality_control_lots: DocumentStore
    waste_tracking_lots: DocumentStore
    intake_lots: DocumentStore
    legacy_lots: DocumentStore
    runs: DocumentStore
    queue: DocumentStore


def build_stores(db, config) -> ProvisioningStores:
    """
    Map configured collection names onto stores.
    `db` is a pymongo Database (or anything indexable by collection name).
    """
    def store(key):
        name = config[key]
        return DocumentStore(db[name], name=name)

    return ProvisioningStores(
        orders=store("COLLECTION_ORDERS"),
        production_lots=store("COLLECTION_PRODUCTION_LOTS"),
        quality_shared_lots=store("COLLECTION_QUALITY_SHARED_LOTS"),
        quality_control_lots=store("COLLECTION_QUALITY_CONTROL_LOTS"),
        waste_tracking_lots=store("COLLECTION_WASTE_TRACKING_LOTS"),
        intake_lots=store("COLLECTION_INTAKE_LOTS"),
        legacy_lots=store("COLLECTION_LEGACY_LOTS"),
        runs=store("COLLECTION_PROVISIONING_RUNS"),
        queue=store("COLLECTION_PROVISIONING_QUEUE"),
    )
