from conftest import PASSWORD


def test_register_and_login(client):
    res = client.post(
        "/api/auth/register",
        json={"email": "Nuevo@CHComputer.com", "password": "clave123", "name": "Nuevo"},
    )
    assert res.status_code == 201
    assert res.json()["email"] == "nuevo@chcomputer.com"
    assert res.json()["role"] == "EMPLOYEE"

    again = client.post(
        "/api/auth/register",
        json={"email": "nuevo@chcomputer.com", "password": "clave123", "name": "Otro"},
    )
    assert again.status_code == 400

    login = client.post("/api/auth/login", json={"email": "NUEVO@chcomputer.com", "password": "clave123"})
    assert login.status_code == 200
    token = login.json()["access_token"]

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["name"] == "Nuevo"


def test_login_failures(client, db, employee):
    bad = client.post("/api/auth/login", json={"email": employee.email, "password": "wrong-password"})
    assert bad.status_code == 401

    employee.active = False
    db.commit()
    inactive = client.post("/api/auth/login", json={"email": employee.email, "password": PASSWORD})
    assert inactive.status_code == 401


def test_token_checks(client, db, employee, employee_headers):
    assert client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-token"}).status_code == 401
    assert client.get("/api/auth/me", headers=employee_headers).status_code == 200

    employee.active = False
    db.commit()
    assert client.get("/api/auth/me", headers=employee_headers).status_code == 401


def test_users_admin_only(client, employee_headers, admin_headers, employee):
    assert client.get("/api/users", headers=employee_headers).status_code == 403

    listing = client.get("/api/users", params={"sort_by": "email", "order": "asc"}, headers=admin_headers).json()
    assert listing["total"] == 2
    assert [u["email"] for u in listing["items"]] == ["admin@chcomputer.com", "empleado@chcomputer.com"]


def test_user_detail_counts_batches(client, admin_headers, employee, employee_headers, make_product):
    product = make_product(quantity=5)
    client.post(
        "/api/movements",
        json={"product_id": product.id, "type": "SALIDA", "quantity": 1},
        headers=employee_headers,
    )

    listing = client.get("/api/users", params={"q": "empleado"}, headers=admin_headers).json()
    assert listing["items"][0]["batch_count"] == 1

    detail = client.get(f"/api/users/{employee.id}", headers=admin_headers).json()
    assert [b["type"] for b in detail["movement_batches"]] == ["SALIDA"]

    # Users with ledger history can only be deactivated
    assert client.delete(f"/api/users/{employee.id}", headers=admin_headers).status_code == 400
    updated = client.put(f"/api/users/{employee.id}", json={"active": False}, headers=admin_headers)
    assert updated.status_code == 200
    assert updated.json()["active"] is False


def test_user_update_and_delete(client, admin, admin_headers, employee):
    promoted = client.put(f"/api/users/{employee.id}", json={"role": "ADMIN"}, headers=admin_headers)
    assert promoted.json()["role"] == "ADMIN"

    clash = client.put(f"/api/users/{employee.id}", json={"email": admin.email}, headers=admin_headers)
    assert clash.status_code == 400

    assert client.delete(f"/api/users/{admin.id}", headers=admin_headers).status_code == 400
    assert client.delete(f"/api/users/{employee.id}", headers=admin_headers).status_code == 200
    assert client.get(f"/api/users/{employee.id}", headers=admin_headers).status_code == 404


def test_logs_record_activity(client, admin, admin_headers, employee_headers, make_product):
    product = make_product(quantity=1)
    client.post(
        "/api/movements",
        json={"product_id": product.id, "type": "SALIDA", "quantity": 5},
        headers=employee_headers,
    )
    client.post("/api/auth/login", json={"email": admin.email, "password": "nope-nope"})

    assert client.get("/api/logs", headers=employee_headers).status_code == 403

    failures = client.get("/api/logs", params={"status": "fail"}, headers=admin_headers).json()
    assert failures["total"] == 2
    assert {item["action"] for item in failures["items"]} == {"MOVEMENT_CREATE", "LOGIN"}

    movements = client.get("/api/logs", params={"resource": "movements"}, headers=admin_headers).json()
    assert movements["items"][0]["meta"]["available"] == 1

    assert client.get("/api/logs", params={"date_from": "bad"}, headers=admin_headers).status_code == 400


def test_health(client):
    assert client.get("/api/health").json()["status"] == "OK"
