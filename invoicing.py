"""
Invoice creation, listing and revenue statistics.

An invoice is a single MongoDB document embedding its line items, so the
invoice and all of its items are written by one ``insert_one`` and appear
together or not at all. Items are snapshots of the product at sale time;
later product edits never reach them.
"""
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pymongo import DESCENDING
from pymongo.database import Database

from customers import resolve_customer
from database import oid, to_str_id, utcnow
from errors import ConflictError, NotFoundError, ValidationError
from schemas import (
    DailyRevenue,
    InvoiceCreate,
    InvoiceItemIn,
    InvoiceUpdate,
    ProductStat,
    StatsOut,
    StatsPeriod,
    StatsSummary,
)
from settings import Settings

logger = logging.getLogger("vlxd.invoices")

DEFAULT_LIMIT = 50
MAX_LIMIT = 100
TOP_PRODUCTS = 10
TOTAL_TOLERANCE = 0.01


# -----------------------------
# Helpers
# -----------------------------

def _line_item(it: InvoiceItemIn) -> Dict[str, Any]:
    total = round(it.price * it.quantity, 2)
    if it.total is not None and abs(it.total - total) > TOTAL_TOLERANCE:
        raise ValidationError(
            f"Item total for {it.product_name} does not match price x quantity ({it.total} != {total})"
        )
    return {
        "product_id": it.product_id,
        "product_name": it.product_name,
        "unit": it.unit,
        "quantity": it.quantity,
        "price": it.price,
        "total": total,
    }


def _reserve_stock(db: Database, items: List[Dict[str, Any]]) -> List[Tuple[Any, float]]:
    reserved: List[Tuple[Any, float]] = []
    for it in items:
        _id = oid(it["product_id"])
        if not _id or not db["product"].find_one({"_id": _id}, {"_id": 1}):
            # product deleted since it was put in the cart
            continue
        res = db["product"].update_one(
            {"_id": _id, "quantity": {"$gte": it["quantity"]}},
            {"$inc": {"quantity": -it["quantity"]}},
        )
        if res.modified_count == 0:
            _release_stock(db, reserved)
            raise ConflictError(f"Insufficient stock for {it['product_name']}")
        reserved.append((_id, it["quantity"]))
    return reserved


def _release_stock(db: Database, reserved: Iterable[Tuple[Any, float]]) -> None:
    for _id, qty in reserved:
        db["product"].update_one({"_id": _id}, {"$inc": {"quantity": qty}})


def attach_customers(db: Database, docs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Return invoices as API dicts with the linked customer record (or None) embedded."""
    cust_map: Dict[str, Dict[str, Any]] = {}
    cust_ids = list({d.get("customer_id") for d in docs if d.get("customer_id")})
    if cust_ids:
        for c in db["customer"].find({"_id": {"$in": [oid(x) for x in cust_ids if oid(x)]}}):
            cust_map[str(c["_id"])] = to_str_id(c)

    out = []
    for d in docs:
        td = to_str_id(d)
        td["customer"] = cust_map.get(td.get("customer_id"))
        out.append(td)
    return out


def parse_date_bound(value: Optional[str], end: bool = False) -> Optional[Tuple[str, datetime]]:
    """Turn a ``startDate``/``endDate`` query value into a Mongo comparison.

    A date-only ``endDate`` covers that whole day.
    """
    if not value:
        return None
    try:
        if len(value) == 10:
            d = date.fromisoformat(value)
            moment = datetime(d.year, d.month, d.day)
            if end:
                return "$lt", moment + timedelta(days=1)
            return "$gte", moment
        moment = datetime.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"Invalid date: {value}")
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc).replace(tzinfo=None)
    return ("$lte" if end else "$gte"), moment


def date_filter(start_date: Optional[str], end_date: Optional[str]) -> Dict[str, Any]:
    filt: Dict[str, Any] = {}
    for bound in (parse_date_bound(start_date), parse_date_bound(end_date, end=True)):
        if bound:
            op, moment = bound
            filt.setdefault("date", {})[op] = moment
    return filt


# -----------------------------
# Operations
# -----------------------------

def create_invoice(
    db: Database, payload: InvoiceCreate, settings: Settings, now: Optional[datetime] = None
) -> Dict[str, Any]:
    customer_name = (payload.customer_name or "").strip()
    if not customer_name or not payload.items:
        raise ValidationError("Missing required fields")

    items = [_line_item(it) for it in payload.items]
    total_amount = round(sum(it["total"] for it in items), 2)

    reserved = _reserve_stock(db, items) if settings.stock_tracking else []
    try:
        customer_id = resolve_customer(db, payload.customer_id, customer_name, payload.customer_phone)
        now = now or utcnow()
        doc = {
            "customer_id": customer_id,
            "customer_name": customer_name,
            "customer_phone": payload.customer_phone,
            "date": now,
            "items": items,
            "total_amount": total_amount,
            "note": payload.note,
            "created_at": now,
            "updated_at": now,
        }
        res = db["invoice"].insert_one(doc)
    except Exception:
        _release_stock(db, reserved)
        raise

    logger.info(
        "Created invoice %s for %s (customer %s), %d items, total %s",
        res.inserted_id, customer_name, customer_id, len(items), total_amount,
    )
    return attach_customers(db, [db["invoice"].find_one({"_id": res.inserted_id})])[0]


def get_invoice(db: Database, invoice_id: str) -> Dict[str, Any]:
    _id = oid(invoice_id)
    doc = db["invoice"].find_one({"_id": _id}) if _id else None
    if not doc:
        raise NotFoundError("Invoice not found")
    return attach_customers(db, [doc])[0]


def clamp_limit(limit: Optional[int]) -> int:
    if limit is None or limit <= 0:
        return DEFAULT_LIMIT
    return min(limit, MAX_LIMIT)


def list_invoices(
    db: Database,
    customer_id: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    limit: Optional[int] = DEFAULT_LIMIT,
    offset: int = 0,
) -> Tuple[List[Dict[str, Any]], int, int]:
    """Newest-first page of invoices. Returns ``(invoices, total, limit)``."""
    filt = date_filter(start_date, end_date)
    if customer_id:
        filt["customer_id"] = customer_id
    limit = clamp_limit(limit)
    offset = max(offset or 0, 0)

    cursor = db["invoice"].find(filt).sort("date", DESCENDING).skip(offset).limit(limit)
    docs = list(cursor)
    total = db["invoice"].count_documents(filt)
    return attach_customers(db, docs), total, limit


def update_invoice(db: Database, invoice_id: str, payload: InvoiceUpdate) -> Dict[str, Any]:
    _id = oid(invoice_id)
    if not _id:
        raise NotFoundError("Invoice not found")
    changes = payload.model_dump(exclude_unset=True)
    if "customer_name" in changes and changes["customer_name"] is None:
        raise ValidationError("Customer name cannot be empty")
    changes["updated_at"] = utcnow()
    upd = db["invoice"].find_one_and_update({"_id": _id}, {"$set": changes}, return_document=True)
    if not upd:
        raise NotFoundError("Invoice not found")
    return attach_customers(db, [upd])[0]


def delete_invoice(db: Database, invoice_id: Optional[str]) -> None:
    if not invoice_id:
        raise ValidationError("Invoice ID required")
    _id = oid(invoice_id)
    if not _id:
        raise NotFoundError("Invoice not found")
    res = db["invoice"].delete_one({"_id": _id})
    if res.deleted_count == 0:
        raise NotFoundError("Invoice not found")
    logger.info("Deleted invoice %s", invoice_id)


# -----------------------------
# Statistics
# -----------------------------

def _day(moment: datetime) -> str:
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.date().isoformat()


def compute_statistics(
    invoices: Iterable[Dict[str, Any]], start_date: Optional[str] = None, end_date: Optional[str] = None
) -> StatsOut:
    total_revenue = 0.0
    total_invoices = 0
    products: Dict[str, Dict[str, float]] = {}
    days: Dict[str, Dict[str, Any]] = {}

    for inv in invoices:
        amount = inv.get("total_amount", 0) or 0
        total_revenue += amount
        total_invoices += 1

        for it in inv.get("items", []):
            cur = products.setdefault(it["product_name"], {"quantity": 0, "revenue": 0})
            cur["quantity"] += it["quantity"]
            cur["revenue"] += it["total"]

        day = days.setdefault(_day(inv["date"]), {"revenue": 0, "count": 0})
        day["revenue"] += amount
        day["count"] += 1

    average = total_revenue / total_invoices if total_invoices else 0
    # sorted() is stable, so revenue ties keep first-seen order
    top = sorted(products.items(), key=lambda kv: kv[1]["revenue"], reverse=True)[:TOP_PRODUCTS]

    return StatsOut(
        summary=StatsSummary(
            total_revenue=round(total_revenue, 2),
            total_invoices=total_invoices,
            average_invoice_value=round(average, 2),
            period=StatsPeriod(start_date=start_date, end_date=end_date),
        ),
        product_stats=[ProductStat(product_name=k, quantity=v["quantity"], revenue=round(v["revenue"], 2)) for k, v in top],
        daily_revenue=[DailyRevenue(date=k, revenue=round(v["revenue"], 2), count=v["count"]) for k, v in sorted(days.items())],
    )


def invoice_statistics(db: Database, start_date: Optional[str] = None, end_date: Optional[str] = None) -> StatsOut:
    filt = date_filter(start_date, end_date)
    invoices = db["invoice"].find(filt, {"total_amount": 1, "date": 1, "items": 1})
    return compute_statistics(invoices, start_date, end_date)
