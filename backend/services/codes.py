# backend/services/codes.py
"""
Human-readable code generation for products, movement batches, brands and models.

Two schemes are used:

* sequential (``PROD-000001``, ``MOV-000001``): the first number not taken by an
  existing row of that kind, computed from what is stored right now;
* random (``BRD-7KQ2``, ``MOD-X1ZA``): four random alphanumerics, retried a bounded
  number of times, then a suffix derived from the current timestamp.

Nothing is reserved. A code is only a candidate until the row holding it is
committed; callers inserting it must treat a unique-constraint violation as a
collision and ask again.
"""
import random
import string
import time

from sqlalchemy.orm import Session

from models.catalog import Brand, ProductModel
from models.movement import MovementBatch
from models.product import Product

PRODUCT_PREFIX = "PROD"
MOVEMENT_PREFIX = "MOV"
BRAND_PREFIX = "BRD"
MODEL_PREFIX = "MOD"

SEQUENCE_WIDTH = 6
RANDOM_LENGTH = 4
RANDOM_ATTEMPTS = 100

_ALPHABET = string.ascii_uppercase + string.digits
_BASE36 = string.digits + string.ascii_uppercase


def _to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def _next_sequential(db: Session, column, prefix: str) -> str:
    head = f"{prefix}-"
    used = set()
    for (code,) in db.query(column).filter(column.like(f"{head}%")):
        suffix = code[len(head):]
        if suffix.isdigit():
            used.add(int(suffix))

    number = 1
    while number in used:
        number += 1
    return f"{head}{number:0{SEQUENCE_WIDTH}d}"


def _random_unique(db: Session, entity, prefix: str) -> str:
    for _ in range(RANDOM_ATTEMPTS):
        code = f"{prefix}-{''.join(random.choices(_ALPHABET, k=RANDOM_LENGTH))}"
        if db.query(entity.id).filter(entity.code == code).first() is None:
            return code

    # Every attempt collided: fall back to the tail of a base-36 timestamp
    stamp = _to_base36(int(time.time() * 1000))
    return f"{prefix}-{stamp[-RANDOM_LENGTH:]}"


def generate_product_code(db: Session) -> str:
    return _next_sequential(db, Product.code, PRODUCT_PREFIX)


def generate_movement_code(db: Session) -> str:
    return _next_sequential(db, MovementBatch.code, MOVEMENT_PREFIX)


def generate_brand_code(db: Session) -> str:
    return _random_unique(db, Brand, BRAND_PREFIX)


def generate_model_code(db: Session) -> str:
    return _random_unique(db, ProductModel, MODEL_PREFIX)
