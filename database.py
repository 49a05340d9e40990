"""
Database helpers

MongoDB connection shared by the whole app. `db` is None when DATABASE_URL is
not configured so routes can report a clean 500 instead of crashing at import.
"""
import os
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import MongoClient, ASCENDING, DESCENDING

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME", "ghostfounder")

db = None

if DATABASE_URL:
    try:
        _client = MongoClient(DATABASE_URL)
        db = _client[DATABASE_NAME]
    except Exception as e:
        logger.error("Could not connect to MongoDB: %s", e)
        db = None


def ensure_indexes():
    if db is None:
        return
    db["user"].create_index([("firebase_uid", ASCENDING)], unique=True)
    db["codereview"].create_index([("repo_name", ASCENDING), ("pr_number", ASCENDING)], unique=True)
    db["codereview"].create_index([("firebase_uid", ASCENDING), ("created_at", DESCENDING)])
    db["financialreport"].create_index(
        [("firebase_uid", ASCENDING), ("period", ASCENDING), ("year", ASCENDING)], unique=True
    )
    db["chatmessage"].create_index([("firebase_uid", ASCENDING), ("last_activity", DESCENDING)])


def _now():
    return datetime.now(timezone.utc)


def create_document(collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a document, stamping created_at/updated_at. Returns the new id as a string."""
    if db is None:
        raise Exception("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")

    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = data.copy()

    data_dict.setdefault("created_at", _now())
    data_dict["updated_at"] = _now()

    result = db[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None,
                  sort: Optional[List[tuple]] = None) -> List[dict]:
    if db is None:
        raise Exception("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")

    cursor = db[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def to_object_id(value: Any) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except Exception:
        return None


def serialize_doc(value: Any) -> Any:
    """Make a Mongo document JSON serializable (ObjectIds become strings)."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {k: serialize_doc(v) for k, v in value.items()}
    if isinstance(value, list):
        return [serialize_doc(v) for v in value]
    return value


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    # pymongo hands back naive datetimes that are UTC
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


try:
    ensure_indexes()
except Exception as e:
    logger.warning("Index creation skipped: %s", e)
