# backend/routes/brands.py
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from config import settings
from database import get_db
from models.catalog import Brand
from models.product import Product
from models.users import User
from services.codes import generate_brand_code
from utils.audit import client_ip, write_log
from utils.tokenJWT import get_current_user, role_required
import schemas.catalog as catalog_schemas

router = APIRouter(prefix="/brands", tags=["Brands"])
logger = logging.getLogger(__name__)


@router.get("", response_model=List[catalog_schemas.BrandOut])
def list_brands(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return db.query(Brand).order_by(Brand.name.asc()).all()


@router.get("/generate-code", response_model=catalog_schemas.CodeResponse)
def generate_code(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return {"code": generate_brand_code(db)}


@router.get("/{brand_id}", response_model=catalog_schemas.BrandDetail)
def get_brand(brand_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    brand = db.query(Brand).options(selectinload(Brand.products)).filter(Brand.id == brand_id).first()
    if not brand:
        raise HTTPException(status_code=404, detail="Brand not found")
    return brand


@router.post("", response_model=catalog_schemas.BrandOut, status_code=201)
def create_brand(
    payload: catalog_schemas.BrandCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    name = payload.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Brand name is required")
    if db.query(Brand.id).filter(Brand.name == name).first():
        raise HTTPException(status_code=400, detail="Brand already exists")

    supplied = (payload.code or "").strip()
    if supplied and db.query(Brand.id).filter(Brand.code == supplied).first():
        raise HTTPException(status_code=400, detail="Code already exists")

    attempts = 1 if supplied else max(1, settings.CODE_RETRIES)
    for attempt in range(1, attempts + 1):
        brand = Brand(name=name, code=supplied or generate_brand_code(db))
        db.add(brand)
        try:
            db.commit()
            break
        except IntegrityError:
            db.rollback()
            # Another request may have taken the name or the code in the meantime
            if db.query(Brand.id).filter(Brand.name == name).first():
                raise HTTPException(status_code=400, detail="Brand already exists")
            if supplied or attempt == attempts:
                raise HTTPException(status_code=400, detail="Code already exists")
            logger.info("Brand code %s taken concurrently, retrying (%d/%d)", brand.code, attempt, attempts)
    db.refresh(brand)
    out = catalog_schemas.BrandOut.model_validate(brand)

    write_log(db, user_id=current_user.id, action="BRAND_CREATE", resource="brands",
              status="SUCCESS", ip=client_ip(request), meta={"id": out.id, "code": out.code})
    return out


@router.put("/{brand_id}", response_model=catalog_schemas.BrandOut)
def update_brand(
    brand_id: int,
    payload: catalog_schemas.BrandUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required("ADMIN")),
):
    name = payload.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Brand name is required")

    brand = db.query(Brand).filter(Brand.id == brand_id).first()
    if not brand:
        raise HTTPException(status_code=404, detail="Brand not found")

    if db.query(Brand.id).filter(Brand.name == name, Brand.id != brand_id).first():
        raise HTTPException(status_code=400, detail="Another brand already uses that name")

    brand.name = name
    db.commit()
    db.refresh(brand)
    out = catalog_schemas.BrandOut.model_validate(brand)

    write_log(db, user_id=current_user.id, action="BRAND_UPDATE", resource="brands",
              status="SUCCESS", ip=client_ip(request), meta={"id": brand_id})
    return out


@router.delete("/{brand_id}")
def delete_brand(
    brand_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required("ADMIN")),
):
    brand = db.query(Brand).filter(Brand.id == brand_id).first()
    if not brand:
        raise HTTPException(status_code=404, detail="Brand not found")

    if db.query(Product.id).filter(Product.brand_id == brand_id).first():
        raise HTTPException(status_code=400, detail="Brand has associated products and cannot be deleted")

    db.delete(brand)
    db.commit()
    write_log(db, user_id=current_user.id, action="BRAND_DELETE", resource="brands",
              status="SUCCESS", ip=client_ip(request), meta={"id": brand_id})
    return {"detail": "Brand deleted"}
