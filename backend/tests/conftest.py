import os
import tempfile
from pathlib import Path

# Point the app at a throwaway SQLite file before any backend module reads settings
_TMP_DIR = Path(tempfile.mkdtemp(prefix="inventory-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP_DIR / 'test.db'}"
os.environ["SECRET_KEY"] = "test-secret"
os.environ.pop("SMTP_USER", None)
os.environ.pop("SMTP_PASS", None)

import pytest
from fastapi.testclient import TestClient

from database import Base, SessionLocal, engine
from main import create_app
from models.catalog import Brand, ProductModel, Supplier
from models.product import Product
from models.users import User
from utils.hashing import get_password_hash
from utils.tokenJWT import create_access_token

PASSWORD = "secret123"
_PASSWORD_HASH = get_password_hash(PASSWORD)


@pytest.fixture(autouse=True)
def reset_db():
    """Fresh schema for every test"""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture()
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client():
    return TestClient(create_app(create_tables=False))


def _user(db, email, role, name, active=True):
    user = User(email=email, password_hash=_PASSWORD_HASH, name=name, role=role, active=active)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture()
def admin(db):
    return _user(db, "admin@chcomputer.com", "ADMIN", "Administrador")


@pytest.fixture()
def employee(db):
    return _user(db, "empleado@chcomputer.com", "EMPLOYEE", "Empleado")


def auth_headers(user):
    token = create_access_token({"sub": user.email, "role": user.role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture()
def employee_headers(employee):
    return auth_headers(employee)


@pytest.fixture()
def catalogue(db):
    """One brand, one model under it and one supplier."""
    brand = Brand(name="Dell", code="BRD-DELL")
    db.add(brand)
    db.commit()
    model = ProductModel(name="Latitude 5420", code="MOD-LT54", brand_id=brand.id)
    supplier = Supplier(name="Proveedor Principal", email="contacto@proveedor.com")
    db.add_all([model, supplier])
    db.commit()
    return {"brand": brand, "model": model, "supplier": supplier}


@pytest.fixture()
def make_product(db, catalogue):
    """
    Insert a product with a given stock level directly, as opening state for a test.
    Application code only moves stock through the engine.
    """
    counter = {"n": 0}

    def _make(quantity=0, min_stock=0, name=None, location="Almacén A"):
        counter["n"] += 1
        n = counter["n"]
        product = Product(
            name=name or f"Producto {n}",
            code=f"TEST-{n:04d}",
            serial_number=f"SN-{n:04d}",
            quantity=quantity,
            min_stock=min_stock,
            location=location,
            brand_id=catalogue["brand"].id,
            model_id=catalogue["model"].id,
            supplier_id=catalogue["supplier"].id,
        )
        db.add(product)
        db.commit()
        db.refresh(product)
        return product

    return _make


@pytest.fixture()
def stock_of():
    """Read a product's stored quantity through a separate session."""

    def _read(product_id):
        session = SessionLocal()
        try:
            return session.get(Product, product_id).quantity
        finally:
            session.close()

    return _read
