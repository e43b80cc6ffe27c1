"""
MongoDB access for the Rekraft backend.

`db` is None when DATABASE_URL is not configured; routes obtain the handle
through `get_db` so tests can substitute an in-memory database.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import MongoClient

from config import settings
from errors import Internal

logger = logging.getLogger(__name__)

client: Optional[MongoClient] = None
db = None

if settings.database_url:
    client = MongoClient(settings.database_url, timeoutMS=settings.db_timeout_ms, tz_aware=True)
    db = client[settings.database_name]
else:
    logger.warning("DATABASE_URL is not set; database access is disabled")


def get_db():
    if db is None:
        raise Internal("Database not configured")
    return db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(value: Any) -> Optional[ObjectId]:
    """Parse an id coming from a client; malformed ids yield None."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def oid_str(oid) -> str:
    return str(oid) if isinstance(oid, ObjectId) else oid


def doc_to_public(doc: Any) -> Any:
    """Make a stored document JSON friendly.

    `_id` becomes `id` (also inside embedded documents), ObjectIds become
    strings, datetimes become ISO strings and password hashes are dropped.
    """
    if isinstance(doc, dict):
        out = {}
        for key, value in doc.items():
            if key == "password_hash":
                continue
            if key == "_id":
                out["id"] = oid_str(value)
                continue
            out[key] = doc_to_public(value)
        return out
    if isinstance(doc, list):
        return [doc_to_public(v) for v in doc]
    if isinstance(doc, ObjectId):
        return str(doc)
    if isinstance(doc, datetime):
        return doc.isoformat()
    return doc


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]], database=None) -> str:
    """Insert a document stamped with created_at/updated_at and return its id."""
    database = database if database is not None else get_db()
    payload = data.model_dump() if isinstance(data, BaseModel) else dict(data)
    now = utcnow()
    payload.setdefault("created_at", now)
    payload["updated_at"] = now
    result = database[collection_name].insert_one(payload)
    return str(result.inserted_id)


def get_documents(
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
    sort: Optional[List] = None,
    database=None,
) -> List[Dict[str, Any]]:
    database = database if database is not None else get_db()
    cursor = database[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)
