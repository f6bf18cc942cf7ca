"""
Schemas for the building-materials POS API (MongoDB)

Each stored model maps to a MongoDB collection named after the lowercase of
the class name (Product -> "product"). Documents are stored with snake_case
keys; the API speaks camelCase through the alias generator below.
"""
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

WALK_IN_NAME = "Khách lẻ"


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)

    @field_validator("phone", "address", "customer_id", "customer_phone", "note", mode="before", check_fields=False)
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("date", "created_at", "updated_at", check_fields=False)
    @classmethod
    def attach_utc(cls, v):
        # Mongo hands back naive UTC datetimes
        if isinstance(v, datetime) and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


# -----------------------------
# Products
# -----------------------------
class ProductIn(ApiModel):
    name: str = Field(..., min_length=1, max_length=200)
    unit: str = Field(..., min_length=1, max_length=50)
    price: float = Field(..., gt=0)
    category: str = Field(..., min_length=1, max_length=100)
    quantity: float = Field(0, ge=0, description="Stock on hand")


class ProductUpdate(ApiModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    unit: Optional[str] = Field(None, min_length=1, max_length=50)
    price: Optional[float] = Field(None, gt=0)
    category: Optional[str] = Field(None, min_length=1, max_length=100)
    quantity: Optional[float] = Field(None, ge=0)


class ProductOut(ApiModel):
    id: str
    name: str
    unit: str
    price: float
    category: str
    quantity: float = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ProductListOut(ApiModel):
    products: List[ProductOut]


class ProductEnvelope(ApiModel):
    product: ProductOut


# -----------------------------
# Customers
# -----------------------------
class CustomerIn(ApiModel):
    name: str = Field(..., min_length=1, max_length=200)
    phone: Optional[str] = Field(None, max_length=30)
    address: Optional[str] = None


class CustomerUpdate(ApiModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    phone: Optional[str] = Field(None, max_length=30)
    address: Optional[str] = None


class CustomerOut(ApiModel):
    id: str
    name: str
    phone: Optional[str] = None
    address: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CustomerListOut(ApiModel):
    customers: List[CustomerOut]


class CustomerEnvelope(ApiModel):
    customer: CustomerOut


# -----------------------------
# Invoices
# -----------------------------
class InvoiceItemIn(ApiModel):
    product_id: str = Field(..., min_length=1)
    product_name: str = Field(..., min_length=1)
    unit: str = ""
    quantity: float = Field(..., gt=0)
    price: float = Field(..., ge=0)
    total: Optional[float] = Field(None, description="price * quantity; recomputed by the server")


class InvoiceItemOut(ApiModel):
    product_id: Optional[str] = None
    product_name: str
    unit: str = ""
    quantity: float
    price: float
    total: float


class InvoiceCreate(ApiModel):
    customer_id: Optional[str] = None
    customer_name: str = ""
    customer_phone: Optional[str] = None
    items: List[InvoiceItemIn] = Field(default_factory=list)
    note: Optional[str] = None


class InvoiceUpdate(ApiModel):
    """Administrative corrections; items and totals are immutable."""

    customer_name: Optional[str] = Field(None, min_length=1)
    customer_phone: Optional[str] = None
    note: Optional[str] = None


class InvoiceSummaryOut(ApiModel):
    id: str
    customer_id: Optional[str] = None
    customer_name: str
    customer_phone: Optional[str] = None
    date: datetime
    total_amount: float
    note: Optional[str] = None


class InvoiceOut(InvoiceSummaryOut):
    items: List[InvoiceItemOut]
    customer: Optional[CustomerOut] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class InvoiceEnvelope(ApiModel):
    invoice: InvoiceOut


class Pagination(ApiModel):
    total: int
    limit: int
    offset: int


class InvoiceListOut(ApiModel):
    invoices: List[InvoiceOut]
    pagination: Pagination


class CustomerDetailOut(CustomerOut):
    invoices: List[InvoiceSummaryOut] = Field(default_factory=list)


# -----------------------------
# Statistics
# -----------------------------
class StatsPeriod(ApiModel):
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class StatsSummary(ApiModel):
    total_revenue: float = 0
    total_invoices: int = 0
    average_invoice_value: float = 0
    period: StatsPeriod = Field(default_factory=StatsPeriod)


class ProductStat(ApiModel):
    product_name: str
    quantity: float
    revenue: float


class DailyRevenue(ApiModel):
    date: str
    revenue: float
    count: int


class StatsOut(ApiModel):
    summary: StatsSummary
    product_stats: List[ProductStat]
    daily_revenue: List[DailyRevenue]


# -----------------------------
# Auth
# -----------------------------
class RegisterIn(ApiModel):
    email: str = Field(..., min_length=3, max_length=254)
    password: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=200)


class LoginIn(ApiModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class UserOut(ApiModel):
    id: str
    email: str
    name: str


class AuthOut(ApiModel):
    user: UserOut
    token: str


class TokenClaims(ApiModel):
    user_id: str
    email: str


class VerifyOut(ApiModel):
    valid: bool
    user: TokenClaims


class MessageOut(ApiModel):
    message: str
