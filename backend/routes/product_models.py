# backend/routes/product_models.py
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload, selectinload

from config import settings
from database import get_db
from models.catalog import Brand, ProductModel
from models.product import Product
from models.users import User
from services.codes import generate_model_code
from utils.audit import client_ip, write_log
from utils.tokenJWT import get_current_user, role_required
import schemas.catalog as catalog_schemas

router = APIRouter(prefix="/models", tags=["Models"])
logger = logging.getLogger(__name__)


def _name_taken(db: Session, name: str, brand_id: Optional[int], exclude_id: Optional[int] = None) -> bool:
    # A model name is unique per brand (brandless models form their own group)
    query = db.query(ProductModel.id).filter(ProductModel.name == name)
    if brand_id is None:
        query = query.filter(ProductModel.brand_id.is_(None))
    else:
        query = query.filter(ProductModel.brand_id == brand_id)
    if exclude_id is not None:
        query = query.filter(ProductModel.id != exclude_id)
    return query.first() is not None


def _check_brand(db: Session, brand_id: Optional[int]) -> None:
    if brand_id is not None and not db.query(Brand.id).filter(Brand.id == brand_id).first():
        raise HTTPException(status_code=400, detail="Brand does not exist")


def _load(db: Session, model_id: int) -> Optional[ProductModel]:
    return db.query(ProductModel).options(joinedload(ProductModel.brand)).filter(ProductModel.id == model_id).first()


@router.get("", response_model=List[catalog_schemas.ModelOut])
def list_models(
    brand_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    query = db.query(ProductModel).options(joinedload(ProductModel.brand))
    if brand_id is not None:
        query = query.filter(ProductModel.brand_id == brand_id)
    return query.order_by(ProductModel.name.asc()).all()


@router.get("/generate-code", response_model=catalog_schemas.CodeResponse)
def generate_code(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return {"code": generate_model_code(db)}


@router.get("/{model_id}", response_model=catalog_schemas.ModelDetail)
def get_model(model_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    model = (
        db.query(ProductModel)
        .options(joinedload(ProductModel.brand), selectinload(ProductModel.products))
        .filter(ProductModel.id == model_id)
        .first()
    )
    if not model:
        raise HTTPException(status_code=404, detail="Model not found")
    return model


@router.post("", response_model=catalog_schemas.ModelOut, status_code=201)
def create_model(
    payload: catalog_schemas.ModelCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    name = payload.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Model name is required")
    _check_brand(db, payload.brand_id)
    if _name_taken(db, name, payload.brand_id):
        raise HTTPException(status_code=400, detail="Model already exists for this brand")

    supplied = (payload.code or "").strip()
    if supplied and db.query(ProductModel.id).filter(ProductModel.code == supplied).first():
        raise HTTPException(status_code=400, detail="Code already exists")

    attempts = 1 if supplied else max(1, settings.CODE_RETRIES)
    for attempt in range(1, attempts + 1):
        model = ProductModel(name=name, brand_id=payload.brand_id, code=supplied or generate_model_code(db))
        db.add(model)
        try:
            db.commit()
            break
        except IntegrityError:
            db.rollback()
            # Another request may have taken the name or the code in the meantime
            if _name_taken(db, name, payload.brand_id):
                raise HTTPException(status_code=400, detail="Model already exists for this brand")
            if supplied or attempt == attempts:
                raise HTTPException(status_code=400, detail="Code already exists")
            logger.info("Model code %s taken concurrently, retrying (%d/%d)", model.code, attempt, attempts)
    out = catalog_schemas.ModelOut.model_validate(_load(db, model.id))

    write_log(db, user_id=current_user.id, action="MODEL_CREATE", resource="models",
              status="SUCCESS", ip=client_ip(request), meta={"id": out.id, "code": out.code})
    return out


@router.put("/{model_id}", response_model=catalog_schemas.ModelOut)
def update_model(
    model_id: int,
    payload: catalog_schemas.ModelUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required("ADMIN")),
):
    name = payload.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Model name is required")

    model = db.query(ProductModel).filter(ProductModel.id == model_id).first()
    if not model:
        raise HTTPException(status_code=404, detail="Model not found")

    _check_brand(db, payload.brand_id)
    if _name_taken(db, name, payload.brand_id, exclude_id=model_id):
        raise HTTPException(status_code=400, detail="Another model with that name exists for this brand")

    model.name = name
    model.brand_id = payload.brand_id
    db.commit()
    out = catalog_schemas.ModelOut.model_validate(_load(db, model_id))

    write_log(db, user_id=current_user.id, action="MODEL_UPDATE", resource="models",
              status="SUCCESS", ip=client_ip(request), meta={"id": model_id})
    return out


@router.delete("/{model_id}")
def delete_model(
    model_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required("ADMIN")),
):
    model = db.query(ProductModel).filter(ProductModel.id == model_id).first()
    if not model:
        raise HTTPException(status_code=404, detail="Model not found")

    if db.query(Product.id).filter(Product.model_id == model_id).first():
        raise HTTPException(status_code=400, detail="Model has associated products and cannot be deleted")

    db.delete(model)
    db.commit()
    write_log(db, user_id=current_user.id, action="MODEL_DELETE", resource="models",
              status="SUCCESS", ip=client_ip(request), meta={"id": model_id})
    return {"detail": "Model deleted"}
