# SPDX-FileCopyrightText: (C) ORCD
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Document store access.

Entities are stored as documents in MongoDB. The backup engine talks to
the database only through DocumentCollection, one per entity type,
bundled together in Collections.

Collections:
    users, students, dashboards, notifications, documents,
    ga_documents, books, event_signups
"""

from dataclasses import dataclass, fields
from typing import Any, Dict, List, Optional, Sequence, Tuple
import logging

from bson import ObjectId
from pymongo import MongoClient

from .conf import get_setting

logger = logging.getLogger(__name__)

COLLECTION_NAMES = {
    "users": "users",
    "students": "students",
    "dashboards": "dashboards",
    "notifications": "notifications",
    "documents": "documents",
    "ga_documents": "gadocuments",
    "books": "books",
    "event_signups": "eventsignups",
}

_client: Optional[MongoClient] = None


def to_object_id(value: Any) -> Any:
    """Convert a string id to ObjectId when it is a valid ObjectId.

    Values that are already ObjectIds, or are not valid ids, are returned
    unchanged.
    """
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return value


class DocumentCollection:
    """Accessor for one MongoDB collection.

    Wraps a pymongo Collection with the small set of operations the
    backup engine needs.
    """

    def __init__(self, collection):
        self._collection = collection

    @property
    def name(self) -> str:
        return self._collection.name

    def find(
        self,
        query: Optional[Dict[str, Any]] = None,
        sort: Optional[Sequence[Tuple[str, int]]] = None,
    ) -> List[Dict[str, Any]]:
        cursor = self._collection.find(query or {})
        if sort:
            cursor = cursor.sort(list(sort))
        return list(cursor)

    def find_one(self, query: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self._collection.find_one(query)

    def find_by_id(self, record_id: Any) -> Optional[Dict[str, Any]]:
        if record_id is None:
            return None
        return self._collection.find_one({"_id": to_object_id(record_id)})

    def insert(self, record: Dict[str, Any]) -> ObjectId:
        result = self._collection.insert_one(record)
        return result.inserted_id

    def update_by_id(self, record_id: Any, patch: Dict[str, Any]) -> None:
        changes = {k: v for k, v in patch.items() if k != "_id"}
        if not changes:
            return
        self._collection.update_one(
            {"_id": to_object_id(record_id)},
            {"$set": changes},
        )

    def add_to_set(self, record_id: Any, field_name: str, value: Any) -> None:
        self._collection.update_one(
            {"_id": to_object_id(record_id)},
            {"$addToSet": {field_name: value}},
        )

    def count(self, query: Optional[Dict[str, Any]] = None) -> int:
        return self._collection.count_documents(query or {})


@dataclass
class Collections:
    """One accessor per entity type."""
    users: Any
    students: Any
    dashboards: Any
    notifications: Any
    documents: Any
    ga_documents: Any
    books: Any
    event_signups: Any

    def get(self, entity_type: str):
        """Return the accessor for an entity type name."""
        if entity_type not in {f.name for f in fields(self)}:
            raise KeyError(f"Unknown entity type: {entity_type}")
        return getattr(self, entity_type)


def get_client() -> MongoClient:
    """Return the process-wide MongoClient, creating it on first use."""
    global _client
    if _client is None:
        uri = get_setting("SCHOOL_PORTAL_MONGO_URI")
        logger.info("Connecting to document store")
        _client = MongoClient(uri)
    return _client


def get_collections(db_name: Optional[str] = None) -> Collections:
    """Build the Collections bundle for the configured database.

    Args:
        db_name: Database name (default: SCHOOL_PORTAL_MONGO_DB)

    Returns:
        Collections with a DocumentCollection per entity type
    """
    db = get_client()[db_name or get_setting("SCHOOL_PORTAL_MONGO_DB")]
    return Collections(**{
        entity_type: DocumentCollection(db[collection_name])
        for entity_type, collection_name in COLLECTION_NAMES.items()
    })
