"""
Customer store and the customer resolution policy used by invoice creation.

Phone is the natural key of a customer when present. Resolution for a sale
never fails: whatever goes wrong with customer bookkeeping, the sale goes
through with an unlinked customer snapshot.
"""
import logging
from typing import Any, Dict, Optional, Tuple

from pymongo import DESCENDING
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import oid, to_str_id, utcnow
from errors import ConflictError, NotFoundError
from schemas import WALK_IN_NAME, CustomerIn, CustomerUpdate

logger = logging.getLogger("vlxd.customers")

RECENT_INVOICES = 10


def find_customer_by_phone(db: Database, phone: str) -> Optional[Dict[str, Any]]:
    return db["customer"].find_one({"phone": phone})


def _insert_customer(db: Database, doc: Dict[str, Any]) -> Dict[str, Any]:
    now = utcnow()
    doc = {**doc, "created_at": now, "updated_at": now}
    res = db["customer"].insert_one(doc)
    doc["_id"] = res.inserted_id
    return doc


def resolve_customer(db: Database, explicit_id: Optional[str], name: str, phone: Optional[str]) -> Optional[str]:
    """Pick the customer id a new invoice should reference, creating one if needed.

    An explicit id wins when it names an existing customer. Otherwise the phone
    decides: reuse the customer owning it, or register a new one under the
    given name. Walk-in sales only ever reuse, they never create. Without a
    phone the invoice stays unlinked.
    """
    if explicit_id:
        _id = oid(explicit_id)
        if _id and db["customer"].find_one({"_id": _id}, {"_id": 1}):
            return explicit_id
        logger.warning("Ignoring unknown customer id %s on new invoice", explicit_id)

    if not phone:
        return None

    existing = find_customer_by_phone(db, phone)
    if existing:
        return str(existing["_id"])
    if name == WALK_IN_NAME:
        return None

    try:
        created = _insert_customer(db, {"name": name, "phone": phone, "address": None})
        logger.info("Registered customer %s for phone %s", created["_id"], phone)
        return str(created["_id"])
    except DuplicateKeyError:
        # Lost the race against a concurrent sale for the same phone.
        winner = find_customer_by_phone(db, phone)
        if winner:
            logger.warning("Duplicate customer phone %s, reusing %s", phone, winner["_id"])
            return str(winner["_id"])
        logger.warning("Duplicate customer phone %s but no owner found, leaving invoice unlinked", phone)
        return None


# -----------------------------
# Customer store
# -----------------------------

def list_customers(db: Database):
    return list(db["customer"].find({}).sort("created_at", DESCENDING))


def get_customer(db: Database, customer_id: str) -> Dict[str, Any]:
    _id = oid(customer_id)
    doc = db["customer"].find_one({"_id": _id}) if _id else None
    if not doc:
        raise NotFoundError("Customer not found")
    return doc


def get_customer_detail(db: Database, customer_id: str) -> Dict[str, Any]:
    doc = to_str_id(get_customer(db, customer_id))
    cursor = db["invoice"].find({"customer_id": doc["id"]}).sort("date", DESCENDING).limit(RECENT_INVOICES)
    doc["invoices"] = [to_str_id(inv) for inv in cursor]
    return doc


def create_customer_or_existing(db: Database, payload: CustomerIn) -> Tuple[Dict[str, Any], bool]:
    """Create a customer, or return the one already owning the phone.

    Returns ``(doc, created)``.
    """
    if payload.phone:
        existing = find_customer_by_phone(db, payload.phone)
        if existing:
            return existing, False
    try:
        return _insert_customer(db, payload.model_dump()), True
    except DuplicateKeyError:
        existing = find_customer_by_phone(db, payload.phone) if payload.phone else None
        if existing:
            return existing, False
        raise ConflictError("Customer with this phone already exists")


def update_customer(db: Database, customer_id: str, payload: CustomerUpdate) -> Dict[str, Any]:
    _id = oid(customer_id)
    if not _id:
        raise NotFoundError("Customer not found")
    changes = payload.model_dump(exclude_unset=True)
    if "name" in changes and changes["name"] is None:
        del changes["name"]
    changes["updated_at"] = utcnow()
    try:
        upd = db["customer"].find_one_and_update({"_id": _id}, {"$set": changes}, return_document=True)
    except DuplicateKeyError:
        raise ConflictError("Customer with this phone already exists")
    if not upd:
        raise NotFoundError("Customer not found")
    return upd


def delete_customer(db: Database, customer_id: str) -> None:
    # Invoices keep their customer snapshot; the dangling customer_id is tolerated.
    _id = oid(customer_id)
    if not _id:
        raise NotFoundError("Customer not found")
    res = db["customer"].delete_one({"_id": _id})
    if res.deleted_count == 0:
        raise NotFoundError("Customer not found")
