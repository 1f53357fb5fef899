import routes.products as products_routes
from database import SessionLocal
from models.movement import MovementBatch
from models.product import Product
from services.errors import StorageError

API = "/api/products"


def _payload(catalogue, **overrides):
    body = {
        "name": "Laptop Dell Latitude",
        "serial_number": "SN-LT-001",
        "description": "14 pulgadas",
        "min_stock": 2,
        "brand_id": catalogue["brand"].id,
        "model_id": catalogue["model"].id,
        "supplier_id": catalogue["supplier"].id,
        "location": "Almacén A",
    }
    body.update(overrides)
    return body


def test_create_with_initial_stock_books_entrada(client, employee_headers, catalogue, db):
    res = client.post(API, json=_payload(catalogue, quantity=8), headers=employee_headers)

    assert res.status_code == 201
    product = res.json()["product"]
    assert product["code"] == "PROD-000001"
    assert product["quantity"] == 8
    assert product["brand"]["name"] == "Dell"
    assert product["model"]["name"] == "Latitude 5420"

    batch = db.query(MovementBatch).one()
    assert batch.type.value == "ENTRADA"
    assert batch.reason == "Stock inicial"
    assert batch.total_quantity == 8
    assert [m.product_id for m in batch.movements] == [product["id"]]


def test_create_without_quantity_has_no_ledger_entry(client, employee_headers, catalogue, db):
    res = client.post(API, json=_payload(catalogue, code=" prod-custom "), headers=employee_headers)

    assert res.status_code == 201
    assert res.json()["product"]["code"] == "PROD-CUSTOM"
    assert res.json()["product"]["quantity"] == 0
    assert db.query(MovementBatch).count() == 0


def test_create_rejects_bad_input(client, employee_headers, catalogue):
    client.post(API, json=_payload(catalogue, code="DUP-1"), headers=employee_headers)

    assert client.post(API, json=_payload(catalogue, code="dup-1"), headers=employee_headers).status_code == 400
    assert client.post(API, json=_payload(catalogue, brand_id=999), headers=employee_headers).status_code == 400
    assert client.post(API, json=_payload(catalogue, model_id=999), headers=employee_headers).status_code == 400
    assert client.post(API, json=_payload(catalogue, serial_number="   "), headers=employee_headers).status_code == 400
    assert client.post(API, json=_payload(catalogue, quantity=-1), headers=employee_headers).status_code == 400


def test_detail_includes_recent_movements(client, employee_headers, catalogue):
    created = client.post(API, json=_payload(catalogue, quantity=3), headers=employee_headers).json()["product"]

    res = client.get(f"{API}/{created['id']}", headers=employee_headers)

    assert res.status_code == 200
    detail = res.json()
    assert detail["quantity"] == 3
    assert len(detail["movements"]) == 1
    assert detail["movements"][0]["quantity"] == 3
    assert detail["movements"][0]["batch"]["type"] == "ENTRADA"
    assert client.get(f"{API}/999", headers=employee_headers).status_code == 404


def test_update_never_touches_quantity(client, admin_headers, make_product, catalogue, stock_of):
    product = make_product(quantity=7)

    res = client.put(
        f"{API}/{product.id}",
        json=_payload(catalogue, name="Renamed", quantity=100),
        headers=admin_headers,
    )

    assert res.status_code == 200
    assert res.json()["product"]["name"] == "Renamed"
    assert res.json()["product"]["quantity"] == 7
    assert stock_of(product.id) == 7


def test_update_and_delete_are_admin_only(client, employee_headers, make_product, catalogue):
    product = make_product()

    assert client.put(f"{API}/{product.id}", json=_payload(catalogue), headers=employee_headers).status_code == 403
    assert client.delete(f"{API}/{product.id}", headers=employee_headers).status_code == 403


def test_delete(client, admin_headers, employee_headers, make_product):
    untouched = make_product(quantity=0)
    moved = make_product(quantity=0)
    client.post(
        "/api/movements",
        json={"product_id": moved.id, "type": "ENTRADA", "quantity": 1},
        headers=employee_headers,
    )

    assert client.delete(f"{API}/{untouched.id}", headers=admin_headers).status_code == 200
    assert client.get(f"{API}/{untouched.id}", headers=admin_headers).status_code == 404
    assert client.delete(f"{API}/{moved.id}", headers=admin_headers).status_code == 400
    assert client.delete(f"{API}/999", headers=admin_headers).status_code == 404


def test_list_search_and_filters(client, employee_headers, make_product):
    make_product(name="Laptop Dell", location="Almacén A")
    make_product(name="Mouse Logitech", location="Almacén B")
    make_product(name="Teclado", location="Almacén B")

    everything = client.get(API, headers=employee_headers).json()
    assert everything["pagination"]["total"] == 3

    laptops = client.get(API, params={"search": "laptop"}, headers=employee_headers).json()
    assert [p["name"] for p in laptops["products"]] == ["Laptop Dell"]

    by_model = client.get(API, params={"search": "latitude"}, headers=employee_headers).json()
    assert by_model["pagination"]["total"] == 3

    in_b = client.get(API, params={"location": "almacén b"}, headers=employee_headers).json()
    assert in_b["pagination"]["total"] == 2

    page = client.get(API, params={"limit": 2, "page": 2}, headers=employee_headers).json()
    assert page["pagination"]["pages"] == 2
    assert len(page["products"]) == 1


def test_low_stock_uses_at_or_below_minimum(client, employee_headers, make_product):
    at_minimum = make_product(quantity=2, min_stock=2)
    below = make_product(quantity=0, min_stock=1)
    make_product(quantity=5, min_stock=2)

    res = client.get(f"{API}/low-stock", headers=employee_headers)

    assert res.status_code == 200
    assert [p["id"] for p in res.json()] == [below.id, at_minimum.id]


def test_generate_code(client, employee_headers, catalogue):
    assert client.get(f"{API}/generate-code", headers=employee_headers).json() == {"code": "PROD-000001"}
    client.post(API, json=_payload(catalogue), headers=employee_headers)
    assert client.get(f"{API}/generate-code", headers=employee_headers).json() == {"code": "PROD-000002"}


def test_bulk_create_collects_row_errors(client, employee_headers, catalogue):
    rows = [
        _payload(catalogue, name="Uno", quantity=2),
        {"name": "Sin serie"},
        _payload(catalogue, name="Dos", brand_id=999),
        _payload(catalogue, name="Tres"),
    ]

    res = client.post(f"{API}/batch", json={"products": rows}, headers=employee_headers)

    assert res.status_code == 201
    body = res.json()
    assert body["total"] == 4
    assert body["success"] == 2
    assert [p["name"] for p in body["created"]] == ["Uno", "Tres"]
    assert [e["index"] for e in body["errors"]] == [1, 2]
    assert body["created"][0]["quantity"] == 2


def _commit_competing_product(catalogue, code):
    """Insert a product holding `code` from another session, as a concurrent request would."""
    session = SessionLocal()
    try:
        session.add(Product(
            name="Competidor",
            code=code,
            serial_number="SN-RACE",
            brand_id=catalogue["brand"].id,
            model_id=catalogue["model"].id,
        ))
        session.commit()
    finally:
        session.close()


def _race_on_first_check(monkeypatch, catalogue, code):
    real_check = products_routes._check_references
    calls = []

    def check_then_race(session, data):
        calls.append(1)
        if len(calls) == 1:
            _commit_competing_product(catalogue, code)
        return real_check(session, data)

    monkeypatch.setattr(products_routes, "_check_references", check_then_race)
    return calls


def test_generated_code_taken_meanwhile_is_regenerated(client, employee_headers, catalogue, monkeypatch, db):
    calls = _race_on_first_check(monkeypatch, catalogue, "PROD-000001")

    res = client.post(API, json=_payload(catalogue, quantity=2), headers=employee_headers)

    assert res.status_code == 201
    assert res.json()["product"]["code"] == "PROD-000002"
    assert res.json()["product"]["quantity"] == 2
    assert len(calls) == 2
    assert db.query(Product).count() == 2


def test_supplied_code_taken_meanwhile_is_400(client, employee_headers, catalogue, monkeypatch, db):
    _race_on_first_check(monkeypatch, catalogue, "PROD-RACE")

    res = client.post(API, json=_payload(catalogue, code="prod-race"), headers=employee_headers)

    assert res.status_code == 400
    assert db.query(Product).filter(Product.name == "Laptop Dell Latitude").count() == 0


def test_bulk_create_reports_code_taken_meanwhile(client, employee_headers, catalogue, monkeypatch):
    _race_on_first_check(monkeypatch, catalogue, "PROD-RACE")
    rows = [_payload(catalogue, name="Uno", code="PROD-RACE"), _payload(catalogue, name="Dos")]

    res = client.post(f"{API}/batch", json={"products": rows}, headers=employee_headers)

    assert res.status_code == 201
    assert [e["index"] for e in res.json()["errors"]] == [0]
    assert [p["name"] for p in res.json()["created"]] == ["Dos"]


def test_failed_initial_stock_leaves_no_product(client, employee_headers, catalogue, monkeypatch, db):
    def broken_booking(*args, **kwargs):
        raise StorageError("Could not register the movement")

    monkeypatch.setattr(products_routes, "apply_batch", broken_booking)

    res = client.post(API, json=_payload(catalogue, quantity=5), headers=employee_headers)
    assert res.status_code == 500
    assert db.query(Product).count() == 0

    bulk = client.post(
        f"{API}/batch",
        json={"products": [_payload(catalogue, name="Con stock", quantity=3), _payload(catalogue, name="Sin stock")]},
        headers=employee_headers,
    )
    assert [e["index"] for e in bulk.json()["errors"]] == [0]
    db.expire_all()
    assert [p.name for p in db.query(Product).all()] == ["Sin stock"]
