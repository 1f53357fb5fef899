# backend/routes/suppliers.py
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from database import get_db
from models.catalog import Supplier
from models.product import Product
from models.users import User
from utils.audit import client_ip, write_log
from utils.tokenJWT import get_current_user, role_required
import schemas.catalog as catalog_schemas

router = APIRouter(prefix="/suppliers", tags=["Suppliers"])


def _product_count(db: Session, supplier_id: int) -> int:
    return db.query(func.count(Product.id)).filter(Product.supplier_id == supplier_id).scalar() or 0


@router.get("", response_model=List[catalog_schemas.SupplierOut])
def list_suppliers(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    rows = (
        db.query(Supplier, func.count(Product.id).label("product_count"))
        .outerjoin(Product, Product.supplier_id == Supplier.id)
        .group_by(Supplier.id)
        .order_by(Supplier.name.asc())
        .all()
    )
    result = []
    for supplier, product_count in rows:
        out = catalog_schemas.SupplierOut.model_validate(supplier)
        out.product_count = product_count
        result.append(out)
    return result


@router.get("/{supplier_id}", response_model=catalog_schemas.SupplierDetail)
def get_supplier(supplier_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    supplier = (
        db.query(Supplier)
        .options(selectinload(Supplier.products))
        .filter(Supplier.id == supplier_id)
        .first()
    )
    if not supplier:
        raise HTTPException(status_code=404, detail="Supplier not found")
    return supplier


@router.post("", response_model=catalog_schemas.SupplierOut, status_code=201)
def create_supplier(
    payload: catalog_schemas.SupplierCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required("ADMIN")),
):
    supplier = Supplier(**payload.model_dump())
    db.add(supplier)
    db.commit()
    db.refresh(supplier)
    out = catalog_schemas.SupplierOut.model_validate(supplier)

    write_log(db, user_id=current_user.id, action="SUPPLIER_CREATE", resource="suppliers",
              status="SUCCESS", ip=client_ip(request), meta={"id": out.id})
    return out


@router.put("/{supplier_id}", response_model=catalog_schemas.SupplierOut)
def update_supplier(
    supplier_id: int,
    payload: catalog_schemas.SupplierCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required("ADMIN")),
):
    supplier = db.query(Supplier).filter(Supplier.id == supplier_id).first()
    if not supplier:
        raise HTTPException(status_code=404, detail="Supplier not found")

    for key, value in payload.model_dump().items():
        setattr(supplier, key, value)
    db.commit()
    db.refresh(supplier)

    out = catalog_schemas.SupplierOut.model_validate(supplier)
    out.product_count = _product_count(db, supplier_id)

    write_log(db, user_id=current_user.id, action="SUPPLIER_UPDATE", resource="suppliers",
              status="SUCCESS", ip=client_ip(request), meta={"id": supplier_id})
    return out


@router.delete("/{supplier_id}")
def delete_supplier(
    supplier_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required("ADMIN")),
):
    supplier = db.query(Supplier).filter(Supplier.id == supplier_id).first()
    if not supplier:
        raise HTTPException(status_code=404, detail="Supplier not found")

    if _product_count(db, supplier_id) > 0:
        raise HTTPException(status_code=400, detail="Supplier has associated products and cannot be deleted")

    db.delete(supplier)
    db.commit()
    write_log(db, user_id=current_user.id, action="SUPPLIER_DELETE", resource="suppliers",
              status="SUCCESS", ip=client_ip(request), meta={"id": supplier_id})
    return {"detail": "Supplier deleted"}
