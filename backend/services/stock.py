# backend/services/stock.py
"""
Stock adjustment engine.

`apply_batch` is the only code path allowed to change ``Product.quantity``.
It validates a set of movement lines sharing one type, applies each line's
delta against the quantity stored at that moment, writes the batch and its
lines, and commits all of it as one transaction. On any failure the session is
rolled back and nothing the call wrote survives.
"""
import logging
from typing import Any, Iterable, List, Optional, Tuple, Union

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from config import settings
from models.movement import Movement, MovementBatch, MovementType
from models.product import Product
from services.codes import generate_movement_code
from services.errors import (
    DuplicateCodeError,
    InsufficientStockError,
    InventoryError,
    NotFoundError,
    StorageError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def _field(item: Any, name: str):
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


def _coerce_type(movement_type: Union[MovementType, str, None]) -> MovementType:
    if isinstance(movement_type, MovementType):
        return movement_type
    try:
        return MovementType((movement_type or "").upper())
    except ValueError:
        raise ValidationError("Movement type must be ENTRADA or SALIDA")


def _prepare_items(items: Optional[Iterable[Any]]) -> List[Tuple[int, int]]:
    """Turn request lines into ``(product_id, quantity)`` pairs, in input order."""
    prepared = []
    for index, item in enumerate(items or [], start=1):
        product_id = _field(item, "product_id")
        quantity = _field(item, "quantity")

        if not product_id or quantity is None:
            raise ValidationError(f"Movement #{index} is incomplete")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError(f"Quantity of movement #{index} is invalid")

        prepared.append((int(product_id), quantity))

    if not prepared:
        raise ValidationError("At least one movement is required")
    return prepared


def _adjust_stock(db: Session, product_id: int, quantity: int, movement_type: MovementType) -> None:
    """
    Apply one line's delta with a guarded UPDATE.

    The UPDATE itself re-reads the stored quantity and takes the row's write
    lock until the transaction ends, so a later line on the same product sees
    this one's effect and a concurrent batch waits instead of overselling.
    """
    stmt = update(Product).where(Product.id == product_id)
    if movement_type is MovementType.SALIDA:
        stmt = stmt.where(Product.quantity >= quantity).values(quantity=Product.quantity - quantity)
    else:
        stmt = stmt.values(quantity=Product.quantity + quantity)

    result = db.execute(stmt.execution_options(synchronize_session=False))
    if result.rowcount == 1:
        return

    # Guard did not match: either the product is gone or there is not enough stock
    product = (
        db.query(Product)
        .filter(Product.id == product_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if product is None:
        raise NotFoundError(f"Product {product_id} not found", product_id=product_id)

    raise InsufficientStockError(
        product_id=product.id,
        product_name=product.name,
        available=product.quantity,
        requested=quantity,
    )


def _apply_once(
    db: Session,
    items: List[Tuple[int, int]],
    movement_type: MovementType,
    *,
    user_id: int,
    reason: Optional[str],
    notes: Optional[str],
    code: Optional[str],
) -> MovementBatch:
    for product_id, quantity in items:
        _adjust_stock(db, product_id, quantity, movement_type)

    # Stock rows are locked by now; the code is picked as late as possible
    batch_code = code or generate_movement_code(db)
    batch = MovementBatch(
        code=batch_code,
        type=movement_type,
        reason=reason,
        notes=notes,
        total_quantity=sum(quantity for _, quantity in items),
        user_id=user_id,
    )
    db.add(batch)
    try:
        db.flush()
    except IntegrityError as exc:
        if "unique" not in str(exc.orig).lower():
            raise
        raise DuplicateCodeError(batch_code) from exc

    for product_id, quantity in items:
        db.add(Movement(batch_id=batch.id, product_id=product_id, quantity=quantity))
    db.flush()
    return batch


def apply_batch(
    db: Session,
    items: Iterable[Any],
    movement_type: Union[MovementType, str],
    *,
    user_id: int,
    reason: Optional[str] = None,
    notes: Optional[str] = None,
    code: Optional[str] = None,
) -> MovementBatch:
    """
    Atomically record a movement batch and apply its stock effect.

    ``items`` holds objects or dicts with ``product_id`` and ``quantity``.
    Raises ValidationError, NotFoundError, InsufficientStockError,
    DuplicateCodeError (only for a caller-supplied ``code``, or when generated
    codes keep colliding) or StorageError. The batch is committed on return.
    """
    movement_type = _coerce_type(movement_type)
    prepared = _prepare_items(items)

    supplied_code = (code or "").strip() or None
    attempts = 1 if supplied_code else max(1, settings.CODE_RETRIES)

    for attempt in range(1, attempts + 1):
        try:
            batch = _apply_once(
                db, prepared, movement_type,
                user_id=user_id, reason=reason, notes=notes, code=supplied_code,
            )
            db.commit()
        except DuplicateCodeError as exc:
            db.rollback()
            if attempt == attempts:
                raise
            logger.info("Movement code %s taken concurrently, retrying (%d/%d)", exc.code, attempt, attempts)
            continue
        except InventoryError:
            db.rollback()
            raise
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("Storage failure while applying %s batch", movement_type.value)
            raise StorageError("Could not register the movement") from exc

        logger.info(
            "Batch %s committed: type=%s lines=%d total=%d user=%s",
            batch.code, movement_type.value, len(prepared), batch.total_quantity, user_id,
        )
        return batch
