# backend/services/ledger.py
"""Read side of the movement ledger: batch lookups, listings and low-stock checks."""
import math
from datetime import datetime
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload, selectinload

from models.movement import Movement, MovementBatch, MovementType
from models.product import Product


def _batch_query(db: Session):
    # Creator plus every line with its product and the product's supplier
    return db.query(MovementBatch).options(
        joinedload(MovementBatch.user),
        selectinload(MovementBatch.movements)
        .joinedload(Movement.product)
        .joinedload(Product.supplier),
    )


def get_batch(db: Session, batch_id: int) -> Optional[MovementBatch]:
    return _batch_query(db).filter(MovementBatch.id == batch_id).first()


def get_batch_by_code(db: Session, code: str) -> Optional[MovementBatch]:
    return _batch_query(db).filter(MovementBatch.code == code).first()


def list_batches(
    db: Session,
    *,
    movement_type: Optional[MovementType] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
):
    """Newest-first page of batches and the pagination block that goes with it."""
    query = db.query(MovementBatch)

    if movement_type:
        query = query.filter(MovementBatch.type == movement_type)
    if start_date:
        query = query.filter(MovementBatch.created_at >= start_date)
    if end_date:
        query = query.filter(MovementBatch.created_at <= end_date)
    if search:
        like = f"%{search}%"
        query = query.filter(
            MovementBatch.movements.any(
                Movement.product.has(or_(Product.name.ilike(like), Product.code.ilike(like)))
            )
        )

    total = query.count()
    ids = [
        row.id
        for row in query.with_entities(MovementBatch.id)
        .order_by(MovementBatch.created_at.desc(), MovementBatch.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ]

    batches = []
    if ids:
        by_id = {b.id: b for b in _batch_query(db).filter(MovementBatch.id.in_(ids))}
        batches = [by_id[i] for i in ids]

    pagination = {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": math.ceil(total / limit) if limit else 0,
    }
    return batches, pagination


def recent_product_lines(db: Session, product_id: int, limit: int = 10) -> List[Movement]:
    return (
        db.query(Movement)
        .join(Movement.batch)
        .options(joinedload(Movement.batch).joinedload(MovementBatch.user))
        .filter(Movement.product_id == product_id)
        .order_by(MovementBatch.created_at.desc(), Movement.id.desc())
        .limit(limit)
        .all()
    )


def low_stock_query(db: Session):
    # Low stock means the product is at or below its own minimum
    return db.query(Product).filter(Product.quantity <= Product.min_stock)


def low_stock_snapshot(db: Session, product_ids: List[int]) -> List[dict]:
    """Plain-dict view of the given products that are now at or below minimum."""
    if not product_ids:
        return []
    rows = low_stock_query(db).filter(Product.id.in_(product_ids)).all()
    return [
        {
            "id": p.id,
            "code": p.code,
            "name": p.name,
            "quantity": p.quantity,
            "min_stock": p.min_stock,
            "location": p.location,
        }
        for p in rows
    ]
