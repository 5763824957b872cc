"""
Database helpers

MongoDB connection and thin document helpers shared by the API.
Collection names are the lowercase schema names (Car -> "car").
"""

import os
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import MongoClient

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME", "car_booking")

db = None

if DATABASE_URL:
    try:
        client = MongoClient(DATABASE_URL)
        db = client[DATABASE_NAME]
    except Exception as e:
        logger.warning("Could not connect to MongoDB: %s", e)
        db = None


class DatabaseUnavailable(Exception):
    pass


def get_collection(name: str):
    if db is None:
        raise DatabaseUnavailable("Database not available")
    return db[name]


def to_object_id(id_str: str) -> Optional[ObjectId]:
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        return None


def serialize_doc(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not doc:
        return doc
    doc = dict(doc)
    _id = doc.pop("_id", None)
    if isinstance(_id, ObjectId):
        doc["id"] = str(_id)
    doc.pop("hashed_password", None)
    for k, v in list(doc.items()):
        if isinstance(v, datetime):
            doc[k] = v.isoformat()
    return doc


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json")
    data = dict(data)
    now = datetime.now(timezone.utc)
    data.setdefault("created_at", now)
    data["updated_at"] = now
    res = get_collection(collection_name).insert_one(data)
    return str(res.inserted_id)


def get_document(collection_name: str, id_str: str) -> Optional[Dict[str, Any]]:
    oid = to_object_id(id_str)
    if oid is None:
        return None
    return get_collection(collection_name).find_one({"_id": oid})


def get_documents(collection_name: str, filter_dict: Optional[Dict[str, Any]] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    cursor = get_collection(collection_name).find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def update_document(collection_name: str, id_str: str, fields: Dict[str, Any]) -> bool:
    """Merge `fields` into the stored document; last write wins per field."""
    oid = to_object_id(id_str)
    if oid is None:
        return False
    update = dict(fields)
    update.setdefault("updated_at", datetime.now(timezone.utc))
    res = get_collection(collection_name).update_one({"_id": oid}, {"$set": update})
    return res.matched_count > 0


def delete_document(collection_name: str, id_str: str) -> bool:
    oid = to_object_id(id_str)
    if oid is None:
        return False
    res = get_collection(collection_name).delete_one({"_id": oid})
    return res.deleted_count > 0
