# backend/routes/products.py
import logging
import math
from typing import Optional, List

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import ValidationError
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from config import settings
from database import get_db
from models.catalog import Brand, ProductModel
from models.movement import Movement, MovementType
from models.product import Product
from models.users import User
from services import ledger
from services.codes import generate_product_code
from services.errors import InventoryError
from services.stock import apply_batch
from utils.audit import client_ip, write_log
from utils.tokenJWT import get_current_user, role_required
from schemas.catalog import CodeResponse
import schemas.product as product_schemas

router = APIRouter(prefix="/products", tags=["Products"])
logger = logging.getLogger(__name__)

INITIAL_STOCK_REASON = "Stock inicial"


# ---- HELPERS ----
def _norm_code(code: Optional[str]) -> Optional[str]:
    if code is None:
        return None
    c = code.strip().upper()
    return c if c else None

def _with_relations(query):
    return query.options(
        joinedload(Product.brand), joinedload(Product.model), joinedload(Product.supplier)
    )

def _load(db: Session, product_id: int) -> Optional[Product]:
    return _with_relations(db.query(Product)).filter(Product.id == product_id).first()

def _check_references(db: Session, data: product_schemas.ProductBase) -> Optional[str]:
    """Return an error message when the brand or model does not exist."""
    if not db.query(Brand.id).filter(Brand.id == data.brand_id).first():
        return "Brand does not exist"
    if not db.query(ProductModel.id).filter(ProductModel.id == data.model_id).first():
        return "Model does not exist"
    return None

def _insert_product(db: Session, data: product_schemas.ProductCreate) -> Product:
    """
    Insert the product row at zero stock.

    A supplied code that is taken is a 400. A generated code is only a
    candidate, so a collision at commit time asks for a new one a bounded
    number of times.
    """
    supplied = _norm_code(data.code)
    attempts = 1 if supplied else max(1, settings.CODE_RETRIES)
    fields = data.model_dump(exclude={"code", "quantity"})

    for attempt in range(1, attempts + 1):
        code = supplied or generate_product_code(db)
        if db.query(Product.id).filter(Product.code == code).first():
            raise HTTPException(status_code=400, detail=f"Product code {code} already exists")

        error = _check_references(db, data)
        if error:
            raise HTTPException(status_code=400, detail=error)

        product = Product(code=code, quantity=0, **fields)
        db.add(product)
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            if "unique" not in str(exc.orig).lower():
                raise
            if attempt == attempts:
                raise HTTPException(status_code=400, detail=f"Product code {code} already exists")
            logger.info("Product code %s taken concurrently, retrying (%d/%d)", code, attempt, attempts)
            continue

        db.refresh(product)
        return product


def _create_one(db: Session, data: product_schemas.ProductCreate, current_user: User) -> Product:
    """
    Insert a product with zero stock, then book its initial quantity as an
    inbound batch so the ledger explains every unit on hand.
    """
    product = _insert_product(db, data)

    if data.quantity > 0:
        try:
            apply_batch(
                db, [{"product_id": product.id, "quantity": data.quantity}], MovementType.ENTRADA,
                user_id=current_user.id, reason=INITIAL_STOCK_REASON,
            )
        except InventoryError:
            logger.exception("Initial stock for product %s could not be booked", product.code)
            # A product whose opening stock failed must not survive the request
            db.delete(product)
            db.commit()
            raise HTTPException(status_code=500, detail="Product could not be created: its initial stock could not be registered")

    return _load(db, product.id)


# =========================
# LISTA PRODUKTÓW
# =========================
@router.get("", response_model=product_schemas.ProductListPage)
def list_products(
    search: Optional[str] = Query(None, description="Name, code, location, model or serial number"),
    supplier_id: Optional[int] = Query(None),
    location: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=1000),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    query = db.query(Product)

    if search:
        like = f"%{search}%"
        query = query.filter(or_(
            Product.name.ilike(like),
            Product.code.ilike(like),
            Product.location.ilike(like),
            Product.serial_number.ilike(like),
            Product.model.has(ProductModel.name.ilike(like)),
        ))
    if supplier_id is not None:
        query = query.filter(Product.supplier_id == supplier_id)
    if location:
        query = query.filter(Product.location.ilike(f"%{location}%"))

    total = query.count()
    items: List[Product] = (
        _with_relations(query)
        .order_by(Product.created_at.desc(), Product.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    return {
        "products": items,
        "pagination": {"page": page, "limit": limit, "total": total, "pages": math.ceil(total / limit)},
    }


# =========================
# ENDPOINTY POMOCNICZE
# =========================
@router.get("/low-stock", response_model=List[product_schemas.ProductOut])
def low_stock_products(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    query = _with_relations(ledger.low_stock_query(db))
    return query.order_by(Product.quantity.asc(), Product.name.asc()).all()


@router.get("/generate-code", response_model=CodeResponse)
def generate_code(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return {"code": generate_product_code(db)}


# =========================
# MASOWE DODAWANIE
# =========================
@router.post("/batch", response_model=product_schemas.ProductBulkResult, status_code=201)
def create_products_bulk(
    payload: product_schemas.ProductBulkCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    created, errors = [], []

    for index, raw in enumerate(payload.products):
        try:
            data = product_schemas.ProductCreate.model_validate(raw)
        except ValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(p) for p in first.get("loc", ())) or "product"
            errors.append({"index": index, "message": f"{field}: {first.get('msg')}"})
            continue

        try:
            created.append(_create_one(db, data, current_user))
        except HTTPException as e:
            db.rollback()
            errors.append({"index": index, "message": str(e.detail)})

    write_log(
        db, user_id=current_user.id, action="PRODUCT_BULK_CREATE", resource="products",
        status="SUCCESS" if created else "FAIL", ip=client_ip(request),
        meta={"created": len(created), "errors": len(errors)},
    )

    return {
        "message": f"{len(created)} product(s) created",
        "created": created,
        "errors": errors or None,
        "total": len(payload.products),
        "success": len(created),
    }


# =========================
# POJEDYNCZY PRODUKT
# =========================
@router.get("/{product_id}", response_model=product_schemas.ProductDetail)
def get_product(
    product_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    product = _load(db, product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    base = product_schemas.ProductOut.model_validate(product)
    recent = [
        product_schemas.ProductMovementOut.model_validate(line)
        for line in ledger.recent_product_lines(db, product.id)
    ]
    return product_schemas.ProductDetail(**base.model_dump(), movements=recent)


# =========================
# DODAWANIE PRODUKTU
# =========================
@router.post("", response_model=product_schemas.ProductCreated, status_code=201)
def add_product(
    payload: product_schemas.ProductCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    product = _create_one(db, payload, current_user)
    out = product_schemas.ProductOut.model_validate(product)

    write_log(
        db, user_id=current_user.id, action="PRODUCT_CREATE", resource="products",
        status="SUCCESS", ip=client_ip(request), meta={"id": out.id, "code": out.code},
    )
    return {"message": "Product created", "product": out}


# =========================
# AKTUALIZACJA PRODUKTU (PUT - Pełna)
# =========================
@router.put("/{product_id}", response_model=product_schemas.ProductCreated)
def update_product(
    product_id: int,
    updated_data: product_schemas.ProductUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required("ADMIN")),
):
    product = db.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    error = _check_references(db, updated_data)
    if error:
        raise HTTPException(status_code=400, detail=error)

    # quantity is not part of ProductUpdate, so stock stays untouched here
    for key, value in updated_data.model_dump().items():
        setattr(product, key, value)

    db.commit()
    out = product_schemas.ProductOut.model_validate(_load(db, product_id))

    write_log(
        db, user_id=current_user.id, action="PRODUCT_UPDATE", resource="products",
        status="SUCCESS", ip=client_ip(request), meta={"id": out.id},
    )
    return {"message": "Product updated", "product": out}


# =========================
# USUWANIE
# =========================
@router.delete("/{product_id}")
def delete_product(
    product_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required("ADMIN")),
):
    product = db.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    # Ledger lines are an audit trail and keep their product
    if db.query(Movement.id).filter(Movement.product_id == product_id).first():
        raise HTTPException(status_code=400, detail="Product has registered movements and cannot be deleted")

    pid, pname = product.id, product.name
    db.delete(product)
    db.commit()
    write_log(db, user_id=current_user.id, action="PRODUCT_DELETE", resource="products",
              status="SUCCESS", ip=client_ip(request), meta={"id": pid})
    return {"detail": f"Product '{pname}' deleted"}
