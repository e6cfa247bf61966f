"""
MongoDB access for the storefront.

The handle is built from DATABASE_URL / DATABASE_NAME. When either is missing
`db` stays None and every helper raises DatabaseUnavailable, so the API can
still start and report the problem on /test.
"""

import os
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from dotenv import load_dotenv
from pydantic import BaseModel
from pymongo import DESCENDING, MongoClient

from bson.errors import InvalidId
from bson.objectid import ObjectId

load_dotenv()

logger = logging.getLogger(__name__)

database_url = os.getenv("DATABASE_URL")
database_name = os.getenv("DATABASE_NAME")

_client = None
db = None

if database_url and database_name:
    _client = MongoClient(database_url)
    db = _client[database_name]
else:
    logger.warning("DATABASE_URL / DATABASE_NAME not set; persistence is disabled")


class DatabaseUnavailable(Exception):
    pass


class DocumentNotFound(Exception):
    pass


def _require_db():
    if db is None:
        raise DatabaseUnavailable("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")
    return db


def to_object_id(value: str):
    """Return an ObjectId for `value`, or None if it is not a valid id."""
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def create_document(collection_name: str, data: Union[BaseModel, dict]) -> str:
    database = _require_db()
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = data.copy()
    now = datetime.now(timezone.utc)
    data_dict.setdefault("created_at", now)
    data_dict["updated_at"] = now
    result = database[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(
    collection_name: str,
    filter_dict: Optional[dict] = None,
    limit: Optional[int] = None,
    newest_first: bool = True,
) -> List[dict]:
    database = _require_db()
    cursor = database[collection_name].find(filter_dict or {})
    if newest_first:
        cursor = cursor.sort("created_at", DESCENDING)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def find_one(collection_name: str, filter_dict: dict) -> Optional[dict]:
    database = _require_db()
    return database[collection_name].find_one(filter_dict)


def get_document(collection_name: str, doc_id: str) -> Optional[dict]:
    oid = to_object_id(doc_id)
    if oid is None:
        return None
    return find_one(collection_name, {"_id": oid})


def update_document(collection_name: str, doc_id: str, fields: Dict[str, Any]) -> None:
    database = _require_db()
    oid = to_object_id(doc_id)
    if oid is None:
        raise DocumentNotFound(doc_id)
    updates = dict(fields)
    updates["updated_at"] = datetime.now(timezone.utc)
    result = database[collection_name].update_one({"_id": oid}, {"$set": updates})
    if result.matched_count == 0:
        raise DocumentNotFound(doc_id)


def delete_document(collection_name: str, doc_id: str) -> None:
    database = _require_db()
    oid = to_object_id(doc_id)
    if oid is None:
        raise DocumentNotFound(doc_id)
    result = database[collection_name].delete_one({"_id": oid})
    if result.deleted_count == 0:
        raise DocumentNotFound(doc_id)


def count_documents(collection_name: str, filter_dict: Optional[dict] = None) -> int:
    database = _require_db()
    return database[collection_name].count_documents(filter_dict or {})


def distinct_values(collection_name: str, field: str) -> List[Any]:
    database = _require_db()
    return [v for v in database[collection_name].distinct(field) if v]

