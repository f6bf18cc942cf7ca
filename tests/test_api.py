from datetime import datetime, timedelta, timezone

import jwt
import pytest

from auth import create_token
from settings import Settings, get_settings

CEMENT = {"name": "Xi măng Hà Tiên", "unit": "Bao", "price": 90000, "category": "Xi măng"}


@pytest.fixture
def product_id(client, auth_headers):
    res = client.post("/api/products", json=CEMENT, headers=auth_headers)
    assert res.status_code == 201
    return res.json()["product"]["id"]


# -----------------------------
# Auth
# -----------------------------

def test_register_login_verify(client):
    res = client.post("/api/auth/register", json={"email": "Chu@Cuahang.vn", "password": "s3cret", "name": "Chủ"})
    assert res.status_code == 201
    assert res.json()["user"]["email"] == "chu@cuahang.vn"
    assert "password" not in res.json()["user"]

    res = client.post("/api/auth/login", json={"email": "chu@cuahang.vn", "password": "s3cret"})
    assert res.status_code == 200
    token = res.json()["token"]

    res = client.get("/api/auth/verify", headers={"Authorization": f"Bearer {token}"})
    assert res.status_code == 200
    assert res.json()["valid"] is True
    assert res.json()["user"]["email"] == "chu@cuahang.vn"
    assert res.json()["user"]["userId"]


def test_register_twice_conflicts(client):
    body = {"email": "chu@cuahang.vn", "password": "s3cret", "name": "Chủ"}
    client.post("/api/auth/register", json=body)
    res = client.post("/api/auth/register", json=body)
    assert res.status_code == 409
    assert res.json() == {"error": "Email already registered"}


def test_login_with_wrong_password(client):
    client.post("/api/auth/register", json={"email": "chu@cuahang.vn", "password": "s3cret", "name": "Chủ"})
    res = client.post("/api/auth/login", json={"email": "chu@cuahang.vn", "password": "nope"})
    assert res.status_code == 401
    assert res.json() == {"error": "Invalid credentials"}


@pytest.mark.parametrize(
    "header",
    [None, "Token abc", "Bearer not-a-jwt"],
)
def test_verify_rejects_bad_tokens(client, header):
    headers = {"Authorization": header} if header else {}
    res = client.get("/api/auth/verify", headers=headers)
    assert res.status_code == 401
    assert "error" in res.json()


def test_verify_rejects_expired_and_foreign_tokens(client):
    foreign = create_token("u1", "a@b.vn", Settings(jwt_secret="other-secret"))
    expired = jwt.encode(
        {"userId": "u1", "email": "a@b.vn", "exp": datetime.now(timezone.utc) - timedelta(minutes=1)},
        "test-secret",
        algorithm="HS256",
    )

    res = client.get("/api/auth/verify", headers={"Authorization": f"Bearer {foreign}"})
    assert res.status_code == 401

    res = client.get("/api/auth/verify", headers={"Authorization": f"Bearer {expired}"})
    assert res.status_code == 401
    assert res.json() == {"error": "Token expired"}


# -----------------------------
# Products
# -----------------------------

def test_product_round_trip(client, product_id):
    res = client.get(f"/api/products/{product_id}")
    assert res.status_code == 200
    body = res.json()
    assert {k: body[k] for k in CEMENT} == CEMENT
    assert body["quantity"] == 0


def test_product_partial_update(client, auth_headers, product_id):
    res = client.put(f"/api/products/{product_id}", json={"price": 95000}, headers=auth_headers)
    assert res.status_code == 200

    body = client.get(f"/api/products/{product_id}").json()
    assert body["price"] == 95000
    assert (body["name"], body["unit"], body["category"]) == (CEMENT["name"], CEMENT["unit"], CEMENT["category"])


def test_product_mutations_require_auth(client, product_id):
    assert client.post("/api/products", json={**CEMENT, "name": "Khác"}).status_code == 401
    assert client.put(f"/api/products/{product_id}", json={"price": 1}).status_code == 401
    assert client.delete(f"/api/products/{product_id}").status_code == 401


def test_product_name_is_unique(client, auth_headers, product_id):
    res = client.post("/api/products", json=CEMENT, headers=auth_headers)
    assert res.status_code == 409
    assert res.json() == {"error": "Product name already exists"}

    other = client.post("/api/products", json={**CEMENT, "name": "Cát xây tô"}, headers=auth_headers).json()
    res = client.put(f"/api/products/{other['product']['id']}", json={"name": CEMENT["name"]}, headers=auth_headers)
    assert res.status_code == 409


def test_product_validation(client, auth_headers):
    res = client.post("/api/products", json={**CEMENT, "price": 0}, headers=auth_headers)
    assert res.status_code == 400
    assert "price" in res.json()["error"]

    res = client.post("/api/products", json={"name": "Gạch"}, headers=auth_headers)
    assert res.status_code == 400


def test_list_products_by_category(client, auth_headers, product_id):
    client.post("/api/products", json={**CEMENT, "name": "Cát xây tô", "category": "Cát/Đá"}, headers=auth_headers)

    assert len(client.get("/api/products").json()["products"]) == 2
    only = client.get("/api/products", params={"category": "Xi măng"}).json()["products"]
    assert [p["id"] for p in only] == [product_id]


def test_delete_product(client, auth_headers, product_id):
    assert client.delete(f"/api/products/{product_id}", headers=auth_headers).json() == {"message": "Product deleted"}
    res = client.get(f"/api/products/{product_id}")
    assert res.status_code == 404
    assert res.json() == {"error": "Product not found"}
    assert client.get("/api/products/garbage").status_code == 404


# -----------------------------
# Customers
# -----------------------------

def test_post_customer_twice_returns_first(client):
    body = {"name": "Anh Hùng (Thầu)", "phone": "0901234567", "address": "Quận 9"}
    first = client.post("/api/customers", json=body)
    second = client.post("/api/customers", json={**body, "name": "Hùng"})

    assert first.status_code == 201
    assert second.status_code == 200
    assert second.json()["customer"]["id"] == first.json()["customer"]["id"]
    assert second.json()["customer"]["name"] == "Anh Hùng (Thầu)"
    assert len(client.get("/api/customers").json()["customers"]) == 1


def test_customer_requires_name(client):
    res = client.post("/api/customers", json={"phone": "0901234567"})
    assert res.status_code == 400


def test_customer_detail_lists_recent_invoices(client):
    cust = client.post("/api/customers", json={"name": "Chị Lan", "phone": "0912345678"}).json()["customer"]
    for _ in range(12):
        client.post(
            "/api/invoices",
            json={
                "customerId": cust["id"],
                "customerName": "Chị Lan",
                "items": [{"productId": "p1", "productName": "Gạch", "unit": "Viên", "quantity": 10, "price": 1200}],
            },
        )

    body = client.get(f"/api/customers/{cust['id']}").json()
    assert body["name"] == "Chị Lan"
    assert len(body["invoices"]) == 10
    assert body["invoices"][0]["totalAmount"] == 12000


def test_customer_mutations_require_auth(client, auth_headers):
    cust = client.post("/api/customers", json={"name": "Chị Lan", "phone": "0912345678"}).json()["customer"]

    assert client.put(f"/api/customers/{cust['id']}", json={"address": "Thủ Đức"}).status_code == 401
    res = client.put(f"/api/customers/{cust['id']}", json={"address": "Thủ Đức"}, headers=auth_headers)
    assert res.status_code == 200
    assert res.json()["address"] == "Thủ Đức"
    assert res.json()["phone"] == "0912345678"

    assert client.delete(f"/api/customers/{cust['id']}").status_code == 401
    assert client.delete(f"/api/customers/{cust['id']}", headers=auth_headers).status_code == 200
    assert client.get(f"/api/customers/{cust['id']}").status_code == 404


# -----------------------------
# Invoices
# -----------------------------

def test_invoice_scenario(client, product_id):
    res = client.post(
        "/api/invoices",
        json={
            "customerName": "Khách lẻ",
            "items": [
                {
                    "productId": product_id,
                    "productName": "Xi măng Hà Tiên",
                    "unit": "Bao",
                    "quantity": 2,
                    "price": 90000,
                    "total": 180000,
                }
            ],
        },
    )

    assert res.status_code == 201
    inv = res.json()["invoice"]
    assert inv["totalAmount"] == 180000
    assert inv["customerId"] is None
    assert inv["items"][0]["total"] == 180000

    fetched = client.get(f"/api/invoices/{inv['id']}").json()
    assert fetched["id"] == inv["id"]
    assert fetched["customerName"] == "Khách lẻ"


def test_invoice_missing_fields(client):
    res = client.post("/api/invoices", json={"customerName": "Anh Tâm", "items": []})
    assert res.status_code == 400
    assert res.json() == {"error": "Missing required fields"}
    assert client.get("/api/invoices").json()["pagination"]["total"] == 0


def test_invoice_new_phone_links_customer(client):
    body = {
        "customerName": "Anh Tâm",
        "customerPhone": "0909000111",
        "items": [{"productId": "p1", "productName": "Cát xây tô", "unit": "Khối", "quantity": 1, "price": 450000}],
    }
    first = client.post("/api/invoices", json=body).json()["invoice"]
    second = client.post("/api/invoices", json=body).json()["invoice"]

    assert first["customerId"] == second["customerId"]
    assert first["customer"]["phone"] == "0909000111"
    assert len(client.get("/api/customers").json()["customers"]) == 1

    listed = client.get("/api/invoices", params={"customerId": first["customerId"]}).json()
    assert listed["pagination"] == {"total": 2, "limit": 50, "offset": 0}


def test_invoice_list_limit_clamped(client):
    assert client.get("/api/invoices", params={"limit": 1000}).json()["pagination"]["limit"] == 100


def test_invoice_correction_and_delete(client):
    inv = client.post(
        "/api/invoices",
        json={
            "customerName": "Khách lẻ",
            "items": [{"productId": "p1", "productName": "Gạch", "unit": "Viên", "quantity": 100, "price": 1200}],
        },
    ).json()["invoice"]

    res = client.put(f"/api/invoices/{inv['id']}", json={"customerName": "Anh Tâm", "note": "Giao sáng mai"})
    assert res.status_code == 200
    assert res.json()["customerName"] == "Anh Tâm"
    assert res.json()["totalAmount"] == 120000

    assert client.delete("/api/invoices", params={"id": inv["id"]}).json() == {"message": "Invoice deleted"}
    assert client.delete(f"/api/invoices/{inv['id']}").status_code == 404
    assert client.delete("/api/invoices").status_code == 400


def test_stats_empty_range(client):
    res = client.get("/api/invoices/stats", params={"startDate": "2025-01-01", "endDate": "2025-01-31"})

    assert res.status_code == 200
    body = res.json()
    assert body["summary"]["totalRevenue"] == 0
    assert body["summary"]["totalInvoices"] == 0
    assert body["summary"]["averageInvoiceValue"] == 0
    assert body["summary"]["period"] == {"startDate": "2025-01-01", "endDate": "2025-01-31"}
    assert body["productStats"] == []
    assert body["dailyRevenue"] == []


def test_stats_over_created_invoices(client):
    today = datetime.now(timezone.utc).date().isoformat()
    for qty in (1, 3):
        client.post(
            "/api/invoices",
            json={
                "customerName": "Khách lẻ",
                "items": [{"productId": "p1", "productName": "Sơn Dulux Trắng", "unit": "Thùng", "quantity": qty, "price": 1250000}],
            },
        )

    body = client.get("/api/invoices/stats").json()
    assert body["summary"]["totalRevenue"] == 5000000
    assert body["summary"]["averageInvoiceValue"] == 2500000
    assert body["productStats"] == [{"productName": "Sơn Dulux Trắng", "quantity": 4, "revenue": 5000000}]
    assert body["dailyRevenue"] == [{"date": today, "revenue": 5000000, "count": 2}]


def test_stats_rejects_bad_dates(client):
    res = client.get("/api/invoices/stats", params={"startDate": "yesterday"})
    assert res.status_code == 400
    assert res.json() == {"error": "Invalid date: yesterday"}


def test_root_reports_configured_database(client):
    app = client.app
    app.dependency_overrides[get_settings] = lambda: Settings(jwt_secret="test-secret", database_name="cuahang_q9")

    res = client.get("/")

    assert res.status_code == 200
    assert res.json()["db"] == "cuahang_q9"
