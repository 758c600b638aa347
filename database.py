"""
MongoDB access helpers.

Route handlers receive the database through the `get_db` dependency so tests
can swap in an in-memory database.
"""
import time
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.database import Database

from config import settings
from exceptions import InvalidObjectIdError
from logging_config import logger

_client: Optional[MongoClient] = None


def get_client() -> MongoClient:
    global _client
    if _client is None:
        _client = MongoClient(settings.DATABASE_URL, serverSelectionTimeoutMS=5000)
        logger.info(f"MongoDB client created for database '{settings.DATABASE_NAME}'")
    return _client


def get_db() -> Database:
    """FastAPI dependency returning the application database"""
    return get_client()[settings.DATABASE_NAME]


def close_client() -> None:
    global _client
    if _client is not None:
        _client.close()
        _client = None


def to_object_id(value: Union[str, ObjectId]) -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    if not value or not ObjectId.is_valid(value):
        raise InvalidObjectIdError(str(value))
    return ObjectId(value)


def serialize(doc):
    """Make a Mongo document JSON-safe: ObjectIds to str, datetimes to ISO."""
    if doc is None:
        return doc
    if isinstance(doc, list):
        return [serialize(x) for x in doc]
    if isinstance(doc, dict):
        return {k: serialize(v) for k, v in doc.items()}
    if isinstance(doc, ObjectId):
        return str(doc)
    if isinstance(doc, datetime):
        return doc.isoformat()
    return doc


def create_document(db: Database, collection: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert a model or dict, stamping createdAt/updatedAt. Returns the new id."""
    doc = data.model_dump(by_alias=True) if isinstance(data, BaseModel) else dict(data)
    now = datetime.utcnow()
    doc.setdefault("createdAt", now)
    doc["updatedAt"] = now

    started = time.perf_counter()
    result = db[collection].insert_one(doc)
    logger.log_db_query("insert", collection, (time.perf_counter() - started) * 1000, rows_affected=1)
    return str(result.inserted_id)


def get_documents(
    db: Database,
    collection: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    sort: Optional[List[tuple]] = None,
    skip: int = 0,
    limit: int = 0,
) -> List[Dict[str, Any]]:
    started = time.perf_counter()
    cursor = db[collection].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if skip:
        cursor = cursor.skip(skip)
    if limit:
        cursor = cursor.limit(limit)
    items = list(cursor)
    logger.log_db_query("find", collection, (time.perf_counter() - started) * 1000, rows_affected=len(items))
    return items
