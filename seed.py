"""Load the demo catalog and customers. Safe to run repeatedly."""
import logging

from pymongo.database import Database

from database import ensure_indexes, get_db, utcnow
from settings import configure_logging, get_settings

logger = logging.getLogger("vlxd.seed")

PRODUCTS = [
    {"name": "Xi măng Hà Tiên", "unit": "Bao", "price": 90000, "category": "Xi măng"},
    {"name": "Cát xây tô", "unit": "Khối", "price": 450000, "category": "Cát/Đá"},
    {"name": "Gạch ống 4 lỗ", "unit": "Viên", "price": 1200, "category": "Gạch"},
    {"name": "Sơn Dulux Trắng", "unit": "Thùng", "price": 1250000, "category": "Sơn"},
    {"name": "Ống nhựa Bình Minh ø27", "unit": "Mét", "price": 15000, "category": "Ống nước"},
]

CUSTOMERS = [
    {"name": "Anh Hùng (Thầu)", "phone": "0901234567", "address": "Quận 9"},
    {"name": "Chị Lan (Nhà Dân)", "phone": "0912345678", "address": "Thủ Đức"},
]


def seed(db: Database) -> None:
    ensure_indexes(db)
    now = utcnow()
    for p in PRODUCTS:
        db["product"].update_one(
            {"name": p["name"]},
            {"$setOnInsert": {**p, "quantity": 0, "created_at": now, "updated_at": now}},
            upsert=True,
        )
    logger.info("Products seeded")

    for c in CUSTOMERS:
        db["customer"].update_one(
            {"phone": c["phone"]},
            {"$setOnInsert": {**c, "created_at": now, "updated_at": now}},
            upsert=True,
        )
    logger.info("Customers seeded")


if __name__ == "__main__":
    configure_logging(get_settings().log_level)
    seed(get_db())
