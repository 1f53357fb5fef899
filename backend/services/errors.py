# backend/services/errors.py
from typing import Optional


class InventoryError(Exception):
    """Base class for failures raised by the inventory services."""


class ValidationError(InventoryError):
    """Missing or malformed movement input, rejected before touching the database."""


class NotFoundError(InventoryError):
    def __init__(self, message: str, *, product_id: Optional[int] = None):
        super().__init__(message)
        self.product_id = product_id


class InsufficientStockError(InventoryError):
    """An outbound line asks for more units than the product currently holds."""

    def __init__(self, *, product_id: int, product_name: str, available: int, requested: int):
        super().__init__(f"Insufficient stock for product {product_name}")
        self.product_id = product_id
        self.product_name = product_name
        self.available = available
        self.requested = requested


class DuplicateCodeError(InventoryError):
    """A code collided with an existing row; the caller should ask for a new one."""

    def __init__(self, code: str):
        super().__init__(f"Code {code} already exists")
        self.code = code


class StorageError(InventoryError):
    pass
