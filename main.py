import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo import DESCENDING
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError
from starlette.exceptions import HTTPException as StarletteHTTPException

import customers
import invoicing
from auth import authenticate, register_user, require_user
from database import ensure_indexes, get_db, oid, to_str_id, utcnow
from errors import AppError, ConflictError, NotFoundError
from schemas import (
    AuthOut,
    CustomerDetailOut,
    CustomerEnvelope,
    CustomerIn,
    CustomerListOut,
    CustomerOut,
    CustomerUpdate,
    InvoiceCreate,
    InvoiceEnvelope,
    InvoiceListOut,
    InvoiceOut,
    InvoiceUpdate,
    LoginIn,
    MessageOut,
    ProductEnvelope,
    ProductIn,
    ProductListOut,
    ProductOut,
    ProductUpdate,
    RegisterIn,
    StatsOut,
    TokenClaims,
    VerifyOut,
)
from settings import Settings, configure_logging, get_settings

settings = get_settings()
configure_logging(settings.log_level)
logger = logging.getLogger("vlxd.api")


@asynccontextmanager
async def lifespan(_app: FastAPI):
    ensure_indexes(get_db())
    yield


# -----------------------------
# FastAPI App
# -----------------------------
app = FastAPI(title="VLXD POS API - MongoDB", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


@app.exception_handler(AppError)
async def app_error_handler(_request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(_request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{where}: {first.get('msg')}" if where else first.get("msg")
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(_request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("%s %s failed", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.get("/")
def root(settings: Settings = Depends(get_settings)):
    return {"message": "VLXD POS Backend Running", "driver": "mongodb", "db": settings.database_name}


@app.get("/health")
def health(db: Database = Depends(get_db)):
    db.command("ping")
    return {"status": "ok"}


api = APIRouter(prefix="/api")


# -----------------------------
# Auth
# -----------------------------
@api.post("/auth/register", response_model=AuthOut, status_code=201)
def register(payload: RegisterIn, db: Database = Depends(get_db), settings: Settings = Depends(get_settings)):
    return register_user(db, payload, settings)


@api.post("/auth/login", response_model=AuthOut)
def login(payload: LoginIn, db: Database = Depends(get_db), settings: Settings = Depends(get_settings)):
    return authenticate(db, payload, settings)


@api.get("/auth/verify", response_model=VerifyOut)
def verify(user: TokenClaims = Depends(require_user)):
    return VerifyOut(valid=True, user=user)


# -----------------------------
# Products
# -----------------------------
def _product_or_404(db: Database, product_id: str):
    _id = oid(product_id)
    d = db["product"].find_one({"_id": _id}) if _id else None
    if not d:
        raise NotFoundError("Product not found")
    return d


@api.get("/products", response_model=ProductListOut)
def list_products(category: Optional[str] = None, db: Database = Depends(get_db)):
    filt = {"category": category} if category else {}
    docs = list(db["product"].find(filt).sort("created_at", DESCENDING))
    return {"products": [to_str_id(d) for d in docs]}


@api.get("/products/{product_id}", response_model=ProductOut)
def get_product(product_id: str, db: Database = Depends(get_db)):
    return to_str_id(_product_or_404(db, product_id))


@api.post("/products", response_model=ProductEnvelope, status_code=201)
def create_product(payload: ProductIn, db: Database = Depends(get_db), _user: TokenClaims = Depends(require_user)):
    if db["product"].find_one({"name": payload.name}):
        raise ConflictError("Product name already exists")

    now = utcnow()
    doc = {**payload.model_dump(), "created_at": now, "updated_at": now}
    try:
        res = db["product"].insert_one(doc)
    except DuplicateKeyError:
        raise ConflictError("Product name already exists")
    logger.info("Created product %s (%s)", res.inserted_id, payload.name)
    return {"product": to_str_id(_product_or_404(db, str(res.inserted_id)))}


@api.put("/products/{product_id}", response_model=ProductEnvelope)
def update_product(
    product_id: str,
    payload: ProductUpdate,
    db: Database = Depends(get_db),
    _user: TokenClaims = Depends(require_user),
):
    cur = _product_or_404(db, product_id)
    doc = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
    if doc.get("name") and doc["name"] != cur.get("name") and db["product"].find_one({"name": doc["name"]}):
        raise ConflictError("Product name already exists")

    doc["updated_at"] = utcnow()
    try:
        db["product"].update_one({"_id": cur["_id"]}, {"$set": doc})
    except DuplicateKeyError:
        raise ConflictError("Product name already exists")
    return {"product": to_str_id(_product_or_404(db, product_id))}


@api.delete("/products/{product_id}", response_model=MessageOut)
def delete_product(product_id: str, db: Database = Depends(get_db), _user: TokenClaims = Depends(require_user)):
    _id = oid(product_id)
    if not _id:
        raise NotFoundError("Product not found")
    res = db["product"].delete_one({"_id": _id})
    if res.deleted_count == 0:
        raise NotFoundError("Product not found")
    return {"message": "Product deleted"}


# -----------------------------
# Customers
# -----------------------------
@api.get("/customers", response_model=CustomerListOut)
def list_customers(db: Database = Depends(get_db)):
    return {"customers": [to_str_id(d) for d in customers.list_customers(db)]}


@api.post("/customers", response_model=CustomerEnvelope, status_code=201)
def create_customer(payload: CustomerIn, response: Response, db: Database = Depends(get_db)):
    doc, created = customers.create_customer_or_existing(db, payload)
    if not created:
        response.status_code = 200
    return {"customer": to_str_id(doc)}


@api.get("/customers/{customer_id}", response_model=CustomerDetailOut)
def get_customer(customer_id: str, db: Database = Depends(get_db)):
    return customers.get_customer_detail(db, customer_id)


@api.put("/customers/{customer_id}", response_model=CustomerOut)
def update_customer(
    customer_id: str,
    payload: CustomerUpdate,
    db: Database = Depends(get_db),
    _user: TokenClaims = Depends(require_user),
):
    return to_str_id(customers.update_customer(db, customer_id, payload))


@api.delete("/customers/{customer_id}", response_model=MessageOut)
def delete_customer(customer_id: str, db: Database = Depends(get_db), _user: TokenClaims = Depends(require_user)):
    customers.delete_customer(db, customer_id)
    return {"message": "Customer deleted"}


# -----------------------------
# Invoices
# -----------------------------
@api.get("/invoices", response_model=InvoiceListOut)
def list_invoices(
    customer_id: Optional[str] = Query(None, alias="customerId"),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    limit: int = Query(invoicing.DEFAULT_LIMIT),
    offset: int = Query(0, ge=0),
    db: Database = Depends(get_db),
):
    docs, total, limit = invoicing.list_invoices(db, customer_id, start_date, end_date, limit, offset)
    return {"invoices": docs, "pagination": {"total": total, "limit": limit, "offset": offset}}


@api.post("/invoices", response_model=InvoiceEnvelope, status_code=201)
def create_invoice(payload: InvoiceCreate, db: Database = Depends(get_db), settings: Settings = Depends(get_settings)):
    return {"invoice": invoicing.create_invoice(db, payload, settings)}


@api.delete("/invoices", response_model=MessageOut)
def delete_invoice_by_query(id: Optional[str] = None, db: Database = Depends(get_db)):
    invoicing.delete_invoice(db, id)
    return {"message": "Invoice deleted"}


@api.get("/invoices/stats", response_model=StatsOut)
def invoice_stats(
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    db: Database = Depends(get_db),
):
    return invoicing.invoice_statistics(db, start_date, end_date)


@api.get("/invoices/{invoice_id}", response_model=InvoiceOut)
def get_invoice(invoice_id: str, db: Database = Depends(get_db)):
    return invoicing.get_invoice(db, invoice_id)


@api.put("/invoices/{invoice_id}", response_model=InvoiceOut)
def update_invoice(invoice_id: str, payload: InvoiceUpdate, db: Database = Depends(get_db)):
    return invoicing.update_invoice(db, invoice_id, payload)


@api.delete("/invoices/{invoice_id}", response_model=MessageOut)
def delete_invoice(invoice_id: str, db: Database = Depends(get_db)):
    invoicing.delete_invoice(db, invoice_id)
    return {"message": "Invoice deleted"}


app.include_router(api)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.port)
