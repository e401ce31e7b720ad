"""
MongoDB access for Dearly

`db` is None when DATABASE_URL / DATABASE_NAME are not configured; every
route checks for that and answers 500 instead of crashing at import time.
Collection names are the lowercase schema names ("game", "receiver",
"notification", "viewed_rewards", "audio_cache").
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel
from pymongo import MongoClient

import config

logger = logging.getLogger("dearly.db")

client = None
db = None

if config.DATABASE_URL and config.DATABASE_NAME:
    try:
        client = MongoClient(config.DATABASE_URL)
        db = client[config.DATABASE_NAME]
    except Exception as e:
        logger.error("Could not initialise MongoDB client: %s", e)
        client = None
        db = None
else:
    logger.warning("DATABASE_URL / DATABASE_NAME not set; database features disabled")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_id() -> str:
    return uuid.uuid4().hex


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert a document, stamping createdAt/updatedAt, and return its id."""
    if db is None:
        raise RuntimeError("Database not configured")

    if isinstance(data, BaseModel):
        doc = data.model_dump(by_alias=True)
    else:
        doc = dict(data)

    now = utc_now_iso()
    doc.setdefault("_id", new_id())
    doc.setdefault("createdAt", now)
    doc["updatedAt"] = now

    result = db[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
    sort_field: Optional[str] = None,
    descending: bool = False,
) -> List[Dict[str, Any]]:
    if db is None:
        raise RuntimeError("Database not configured")

    cursor = db[collection_name].find(filter_dict or {})
    if sort_field:
        cursor = cursor.sort(sort_field, -1 if descending else 1)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def to_public(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Replace Mongo's `_id` with a string `id` for JSON responses."""
    if doc is None:
        return None
    out = {k: v for k, v in doc.items() if k != "_id"}
    out["id"] = str(doc.get("_id"))
    return out
