# backend/seed.py
"""Fill an empty database with demo users, catalogue data and stocked products."""
import logging

from sqlalchemy.orm import Session

from database import SessionLocal, init_db
from models.catalog import Brand, ProductModel, StorageLocation, Supplier
from models.movement import MovementType
from models.product import Product
from models.users import User
from services.codes import generate_brand_code, generate_model_code, generate_product_code
from services.stock import apply_batch
from utils.hashing import get_password_hash

logger = logging.getLogger("seed")

USERS = [
    ("admin@chcomputer.com", "admin123", "Administrador", "ADMIN"),
    ("empleado@chcomputer.com", "empleado123", "Empleado Ejemplo", "EMPLOYEE"),
]

SUPPLIERS = [
    {"name": "Proveedor Principal", "contact": "Juan Pérez", "email": "contacto@proveedor.com",
     "phone": "+1234567890", "address": "Calle Principal 123"},
    {"name": "Distribuidora Tech", "contact": "María García", "email": "ventas@distech.com",
     "phone": "+0987654321", "address": "Avenida Central 456"},
]

# brand -> models
CATALOGUE = {
    "Dell": ["Latitude 5420", "OptiPlex 7090"],
    "HP": ["ProBook 450", "LaserJet M404"],
    "Logitech": ["MX Master 3"],
}

LOCATIONS = ["Almacén A - Estante 1", "Almacén A - Estante 2", "Almacén B - Estante 1"]

# (name, brand, model, serial, quantity, min_stock, location index, supplier index)
PRODUCTS = [
    ("Laptop Dell Latitude", "Dell", "Latitude 5420", "DL5420-0001", 15, 5, 0, 0),
    ("Desktop Dell OptiPlex", "Dell", "OptiPlex 7090", "DO7090-0001", 8, 3, 0, 0),
    ("Laptop HP ProBook", "HP", "ProBook 450", "HP450-0001", 4, 5, 1, 1),
    ("Impresora HP LaserJet", "HP", "LaserJet M404", "HPM404-0001", 2, 2, 2, 1),
    ("Mouse Logitech MX Master", "Logitech", "MX Master 3", "LGMX3-0001", 40, 10, 1, 1),
]


def _get_or_create_user(db: Session, email, password, name, role) -> User:
    user = db.query(User).filter(User.email == email).first()
    if user:
        return user
    user = User(email=email, password_hash=get_password_hash(password), name=name, role=role, active=True)
    db.add(user)
    db.commit()
    logger.info("User created: %s", email)
    return user


def seed(db: Session) -> None:
    admin = None
    for email, password, name, role in USERS:
        user = _get_or_create_user(db, email, password, name, role)
        if role == "ADMIN":
            admin = user

    suppliers = []
    for data in SUPPLIERS:
        supplier = db.query(Supplier).filter(Supplier.name == data["name"]).first()
        if not supplier:
            supplier = Supplier(**data)
            db.add(supplier)
            db.commit()
        suppliers.append(supplier)

    models = {}
    for brand_name, model_names in CATALOGUE.items():
        brand = db.query(Brand).filter(Brand.name == brand_name).first()
        if not brand:
            brand = Brand(name=brand_name, code=generate_brand_code(db))
            db.add(brand)
            db.commit()
        for model_name in model_names:
            model = db.query(ProductModel).filter(
                ProductModel.name == model_name, ProductModel.brand_id == brand.id
            ).first()
            if not model:
                model = ProductModel(name=model_name, brand_id=brand.id, code=generate_model_code(db))
                db.add(model)
                db.commit()
            models[(brand_name, model_name)] = model

    for name in LOCATIONS:
        if not db.query(StorageLocation).filter(StorageLocation.name == name).first():
            db.add(StorageLocation(name=name))
    db.commit()

    initial = []
    for name, brand_name, model_name, serial, quantity, min_stock, loc, sup in PRODUCTS:
        if db.query(Product).filter(Product.serial_number == serial).first():
            continue
        model = models[(brand_name, model_name)]
        product = Product(
            name=name,
            code=generate_product_code(db),
            serial_number=serial,
            quantity=0,
            min_stock=min_stock,
            location=LOCATIONS[loc],
            brand_id=model.brand_id,
            model_id=model.id,
            supplier_id=suppliers[sup].id,
        )
        db.add(product)
        db.commit()
        initial.append({"product_id": product.id, "quantity": quantity})
        logger.info("Product created: %s (%s)", product.name, product.code)

    # Opening stock goes through the ledger like any other inbound movement
    if initial:
        batch = apply_batch(db, initial, MovementType.ENTRADA, user_id=admin.id, reason="Stock inicial")
        logger.info("Opening stock registered as %s", batch.code)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    init_db()
    session = SessionLocal()
    try:
        seed(session)
    finally:
        session.close()
    logger.info("Seed finished")
