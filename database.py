"""
MongoDB access for the POS backend.

Collections are named after the lowercase of the schema class
(Product -> "product", Customer -> "customer", Invoice -> "invoice",
User -> "user").
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

from settings import get_settings

logger = logging.getLogger("vlxd.db")

_client: Optional[MongoClient] = None


def get_client() -> MongoClient:
    global _client
    if _client is None:
        settings = get_settings()
        _client = MongoClient(settings.database_url)
        logger.info("Connected to MongoDB database %s", settings.database_name)
    return _client


def get_db() -> Database:
    return get_client()[get_settings().database_name]


def ensure_indexes(db: Database) -> None:
    db["product"].create_index([("name", ASCENDING)], unique=True)
    # Phone is the natural key only when present; customers without one may repeat.
    db["customer"].create_index(
        [("phone", ASCENDING)],
        unique=True,
        partialFilterExpression={"phone": {"$gt": ""}},
    )
    db["user"].create_index([("email", ASCENDING)], unique=True)
    db["invoice"].create_index([("date", DESCENDING)])
    db["invoice"].create_index([("customer_id", ASCENDING), ("date", DESCENDING)])


# -----------------------------
# Utilities
# -----------------------------

def utcnow() -> datetime:
    # BSON dates carry no zone; store naive UTC and attach the zone on the way out.
    return datetime.now(timezone.utc).replace(tzinfo=None)


def oid(obj: Optional[str]) -> Optional[ObjectId]:
    if obj is None:
        return None
    try:
        return ObjectId(obj)
    except Exception:
        return None


def to_str_id(doc: Dict[str, Any]) -> Dict[str, Any]:
    if not doc:
        return doc
    d = {**doc}
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    # normalize ObjectId refs to string
    for k, v in list(d.items()):
        if isinstance(v, ObjectId):
            d[k] = str(v)
    return d
