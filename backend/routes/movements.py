# backend/routes/movements.py
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from database import get_db
from models.movement import MovementType
from models.users import User
from services import ledger
from services.codes import generate_movement_code
from services.errors import (
    DuplicateCodeError,
    InsufficientStockError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from services.stock import apply_batch
from utils.alerts import notify_low_stock
from utils.audit import client_ip, write_log
from utils.tokenJWT import get_current_user
from schemas.catalog import CodeResponse
import schemas.movement as movement_schemas

router = APIRouter(prefix="/movements", tags=["Movements"])


def _parse_date(value: Optional[str], *, end_of_day: bool = False) -> Optional[datetime]:
    if not value:
        return None
    raw = value
    # A bare YYYY-MM-DD upper bound covers the whole day
    if end_of_day and len(raw) == 10:
        raw += " 23:59:59"
    try:
        return datetime.fromisoformat(raw)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Bad date format: {value}")


def _register(
    db: Session,
    request: Request,
    background_tasks: BackgroundTasks,
    current_user: User,
    *,
    items,
    movement_type: MovementType,
    reason: Optional[str],
    notes: Optional[str],
    code: Optional[str],
    message: str,
):
    """Run the stock engine and translate its failures into HTTP responses."""
    ip = client_ip(request)
    try:
        batch = apply_batch(
            db, items, movement_type,
            user_id=current_user.id, reason=reason, notes=notes, code=code,
        )
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except InsufficientStockError as e:
        write_log(db, user_id=current_user.id, action="MOVEMENT_CREATE", resource="movements",
                  status="FAIL", ip=ip, meta={"product_id": e.product_id, "available": e.available, "requested": e.requested})
        raise HTTPException(
            status_code=400,
            detail={
                "message": f"Insufficient stock for product {e.product_name}",
                "available": e.available,
                "product": e.product_name,
                "product_id": e.product_id,
            },
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except DuplicateCodeError as e:
        raise HTTPException(status_code=409, detail=f"Movement code {e.code} already exists, request a new one")
    except StorageError as e:
        raise HTTPException(status_code=500, detail=str(e))

    full_batch = ledger.get_batch(db, batch.id)
    response = movement_schemas.MovementCreated(
        message=message,
        movement=movement_schemas.MovementBatchResponse.model_validate(full_batch),
    )

    if movement_type is MovementType.SALIDA:
        product_ids = sorted({line.product_id for line in full_batch.movements})
        low = ledger.low_stock_snapshot(db, product_ids)
        if low:
            background_tasks.add_task(notify_low_stock, low)

    write_log(db, user_id=current_user.id, action="MOVEMENT_CREATE", resource="movements",
              status="SUCCESS", ip=ip, meta={"id": response.movement.id, "code": response.movement.code})
    return response


@router.get("", response_model=movement_schemas.MovementBatchPage)
def list_movements(
    type: Optional[MovementType] = Query(None),
    start_date: Optional[str] = Query(None, description="ISO date/datetime from"),
    end_date: Optional[str] = Query(None, description="ISO date/datetime to"),
    search: Optional[str] = Query(None, description="Product name or code"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    batches, pagination = ledger.list_batches(
        db,
        movement_type=type,
        start_date=_parse_date(start_date),
        end_date=_parse_date(end_date, end_of_day=True),
        search=search,
        page=page,
        limit=limit,
    )
    return {"movements": batches, "pagination": pagination}


@router.get("/generate-code", response_model=CodeResponse)
def generate_code(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return {"code": generate_movement_code(db)}


@router.get("/code/{code}", response_model=movement_schemas.MovementBatchResponse)
def get_movement_by_code(
    code: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    batch = ledger.get_batch_by_code(db, code)
    if not batch:
        raise HTTPException(status_code=404, detail="Movement not found")
    return batch


@router.get("/{batch_id}", response_model=movement_schemas.MovementBatchResponse)
def get_movement(
    batch_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    batch = ledger.get_batch(db, batch_id)
    if not batch:
        raise HTTPException(status_code=404, detail="Movement not found")
    return batch


@router.post("", response_model=movement_schemas.MovementCreated, status_code=201)
def create_movement(
    payload: movement_schemas.MovementCreate,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return _register(
        db, request, background_tasks, current_user,
        items=[{"product_id": payload.product_id, "quantity": payload.quantity}],
        movement_type=payload.type,
        reason=payload.reason, notes=payload.notes, code=payload.code,
        message="Movement registered",
    )


@router.post("/batch", response_model=movement_schemas.MovementCreated, status_code=201)
def create_movement_batch(
    payload: movement_schemas.MovementBatchCreate,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return _register(
        db, request, background_tasks, current_user,
        items=payload.movements,
        movement_type=payload.type,
        reason=payload.reason, notes=payload.notes, code=payload.code,
        message=f"{len(payload.movements)} movement(s) registered",
    )
