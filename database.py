"""
Database helpers

Thin wrappers around a pymongo Database. The handle is opened once at startup
(see main.create_app) and passed in explicitly; nothing here reads globals.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

from config import Settings

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def connect(settings: Settings) -> MongoClient:
    logger.info("Connecting to MongoDB database %s", settings.database_name)
    return MongoClient(settings.database_url, tz_aware=True)


def ensure_indexes(db: Database) -> None:
    # One document per payment type and a single shipping record.
    db["paymentmethod"].create_index([("type", ASCENDING)], unique=True)
    db["shipping"].create_index([("key", ASCENDING)], unique=True)
    db["user"].create_index([("email", ASCENDING)], unique=True)
    db["user"].create_index([("username", ASCENDING)], unique=True)
    db["order"].create_index([("created_at", DESCENDING)])


def create_document(db: Database, collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a document, stamping created_at/updated_at. Returns the new id as a string."""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump(by_alias=True)
    else:
        data_dict = dict(data)

    now = utcnow()
    data_dict["created_at"] = now
    data_dict["updated_at"] = now
    result = db[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(db: Database, collection_name: str, filter_dict: Optional[dict] = None,
                  limit: Optional[int] = None) -> List[dict]:
    cursor = db[collection_name].find(filter_dict or {}).sort("created_at", DESCENDING)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def to_object_id(value: Any) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


def serialize_doc(doc: Optional[dict]) -> Optional[Dict[str, Any]]:
    if not doc:
        return doc
    d = dict(doc)
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    for k, v in list(d.items()):
        if isinstance(v, ObjectId):
            d[k] = str(v)
    return d
