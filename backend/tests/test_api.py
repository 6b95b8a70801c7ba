import pytest
from fastapi.testclient import TestClient

from backend.app.api.deps import get_db
from backend.app.main import app

HEADERS = {"X-User-Id": "u-api", "X-User-Name": "Caja 1"}


@pytest.fixture
def client(db_session):
    def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _adjust(client, product_id, location, qty, **extra):
    body = {"product_id": product_id, "location": location, "new_quantity": qty, **extra}
    return client.post("/v1/stock-adjustments", json=body, headers=HEADERS)


def test_health(client):
    r = client.get("/v1/health")
    assert r.status_code == 200
    assert r.json() == {"ok": True}


def test_product_starts_at_zero_and_stock_is_read_only(client):
    r = client.post("/v1/products", json={"reference": "A-1", "name": "Arroz"})
    assert r.status_code == 200
    pid = r.json()["id"]

    stock = client.get(f"/v1/stock/{pid}").json()
    assert (stock["warehouse"], stock["store"], stock["total"]) == (0, 0, 0)

    assert _adjust(client, pid, "warehouse", 50).status_code == 201
    assert _adjust(client, pid, "store", 10).status_code == 201

    stock = client.get(f"/v1/stock/{pid}").json()
    assert (stock["warehouse"], stock["store"], stock["total"]) == (50, 10, 60)


def test_mutations_require_user(client):
    pid = client.post("/v1/products", json={"reference": "A-2", "name": "Azucar"}).json()["id"]
    r = client.post("/v1/stock-adjustments", json={"product_id": pid, "location": "warehouse", "new_quantity": 1})
    assert r.status_code == 401


def test_stale_if_match_is_409(client):
    pid = client.post("/v1/products", json={"reference": "A-3", "name": "Aceite"}).json()["id"]
    version = client.get(f"/v1/stock/{pid}").json()["version_id"]

    ok = client.post(
        "/v1/stock-adjustments",
        json={"product_id": pid, "location": "warehouse", "new_quantity": 5},
        headers={**HEADERS, "If-Match": str(version)},
    )
    assert ok.status_code == 201

    stale = client.post(
        "/v1/stock-adjustments",
        json={"product_id": pid, "location": "warehouse", "new_quantity": 7},
        headers={**HEADERS, "If-Match": str(version)},
    )
    assert stale.status_code == 409
    assert stale.json()["error"] == "ConcurrencyConflictError"
    assert client.get(f"/v1/stock/{pid}").json()["warehouse"] == 5


def test_transfer_flow_over_http(client):
    pid = client.post("/v1/products", json={"reference": "T-1", "name": "Tomate"}).json()["id"]
    _adjust(client, pid, "warehouse", 50)
    _adjust(client, pid, "store", 10)

    r = client.post(
        "/v1/transfers",
        json={
            "from_location": {"location": "warehouse"},
            "to_location": {"location": "store"},
            "items": [{"product_id": pid, "quantity": 60}],
        },
        headers=HEADERS,
    )
    assert r.status_code == 409
    body = r.json()
    assert body["error"] == "InsufficientStockError"
    assert body["lines"][0]["available"] == 50

    r = client.post(
        "/v1/transfers",
        json={
            "from_location": {"location": "warehouse"},
            "to_location": {"location": "store"},
            "items": [{"product_id": pid, "quantity": 20}],
        },
        headers={**HEADERS, "Idempotency-Key": "tr-1"},
    )
    assert r.status_code == 201
    transfer = r.json()
    assert transfer["status"] == "in_transit"
    assert client.get(f"/v1/stock/{pid}").json()["warehouse"] == 30

    item_id = transfer["items"][0]["id"]
    r = client.post(
        f"/v1/transfers/{transfer['id']}/receive",
        json={"items": [{"item_id": item_id, "quantity_received": 15}]},
        headers=HEADERS,
    )
    assert r.status_code == 200
    assert r.json()["status"] == "partially_received"

    disc = client.get(f"/v1/transfers/{transfer['id']}/discrepancies").json()
    assert disc[0]["discrepancy"] == 5
    assert client.get(f"/v1/stock/{pid}").json()["store"] == 25

    r = client.post(f"/v1/transfers/{transfer['id']}/cancel", headers=HEADERS)
    assert r.status_code == 409
    assert r.json()["error"] == "InvalidStateError"


def test_purchase_order_over_http(client, supplier):
    sid = supplier.id
    pid = client.post("/v1/products", json={"reference": "P-1", "name": "Pasta"}).json()["id"]

    r = client.post(
        "/v1/purchase-orders",
        json={"supplier_id": sid, "items": [{"product_id": pid, "quantity": 100, "unit_price": "10"}]},
        headers=HEADERS,
    )
    assert r.status_code == 201
    po = r.json()
    assert float(po["total"]) == 1000.0

    item_id = po["items"][0]["id"]
    rejected = client.post(
        f"/v1/purchase-orders/{po['id']}/receive",
        json={"stock_location": "warehouse", "items": [{"item_id": item_id, "received_quantity": 115}]},
        headers=HEADERS,
    )
    assert rejected.status_code == 422
    assert rejected.json()["lines"][0]["max_allowed"] == 110
    assert client.get(f"/v1/stock/{pid}").json()["warehouse"] == 0

    r = client.post(
        f"/v1/purchase-orders/{po['id']}/receive",
        json={"stock_location": "warehouse", "items": [{"item_id": item_id, "received_quantity": 95}]},
        headers=HEADERS,
    )
    assert r.status_code == 200
    assert r.json()["status"] == "partial"
    assert float(r.json()["total"]) == 950.0
    assert client.get(f"/v1/stock/{pid}").json()["warehouse"] == 95


def test_unknown_transfer_is_404(client):
    r = client.get("/v1/transfers/9999")
    assert r.status_code == 404
    assert r.json()["error"] == "NotFoundError"


def test_suppliers_are_read_only(client, supplier):
    rows = client.get("/v1/suppliers").json()
    assert [s["name"] for s in rows] == ["Proveedor Uno"]
    assert rows[0]["nit"] == "900123456-7"

    assert client.get(f"/v1/suppliers/{supplier.id}").json()["active"] is True
    assert client.get("/v1/suppliers/9999").json()["error"] == "NotFoundError"

    r = client.post("/v1/suppliers", json={"name": "Otro"}, headers=HEADERS)
    assert r.status_code == 405


def test_if_match_accepts_quoted_and_weak_etags(client):
    pid = client.post("/v1/products", json={"reference": "E-1", "name": "Esponja"}).json()["id"]
    body = {"product_id": pid, "location": "store"}

    version = client.get(f"/v1/stock/{pid}").json()["version_id"]
    r = client.post(
        "/v1/stock-adjustments",
        json={**body, "new_quantity": 4},
        headers={**HEADERS, "If-Match": f'"{version}"'},
    )
    assert r.status_code == 201

    version = client.get(f"/v1/stock/{pid}").json()["version_id"]
    r = client.post(
        "/v1/stock-adjustments",
        json={**body, "new_quantity": 6},
        headers={**HEADERS, "If-Match": f'W/"{version}"'},
    )
    assert r.status_code == 201

    # the first etag is stale by now
    stale = client.post(
        "/v1/stock-adjustments",
        json={**body, "new_quantity": 9},
        headers={**HEADERS, "If-Match": f'"{version - 1}"'},
    )
    assert stale.status_code == 409

    bad = client.post(
        "/v1/stock-adjustments",
        json={**body, "new_quantity": 9},
        headers={**HEADERS, "If-Match": '"abc"'},
    )
    assert bad.status_code == 422
    assert bad.json()["error"] == "ValidationError"
    assert client.get(f"/v1/stock/{pid}").json()["store"] == 6


def test_payload_errors_use_the_service_error_shape(client):
    pid = client.post("/v1/products", json={"reference": "V-1", "name": "Vinagre"}).json()["id"]

    r = client.post(
        "/v1/transfers",
        json={
            "from_location": {"location": "warehouse"},
            "to_location": {"location": "store"},
            "items": [{"product_id": pid, "quantity": 0}],
        },
        headers=HEADERS,
    )
    assert r.status_code == 422
    body = r.json()
    assert body["error"] == "ValidationError"
    assert body["detail"] == "Invalid request"
    assert body["lines"][0]["field"] == "body.items.0.quantity"
    assert body["lines"][0]["type"] == "greater_than"

    r = client.post(
        "/v1/stock-adjustments",
        json={"product_id": pid, "location": "warehouse", "new_quantity": -3},
        headers=HEADERS,
    )
    assert r.status_code == 422
    assert r.json()["lines"][0]["field"] == "body.new_quantity"
