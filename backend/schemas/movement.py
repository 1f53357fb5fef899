# schemas/movement.py
from pydantic import BaseModel, Field, ConfigDict
from datetime import datetime
from typing import List, Optional

from models.movement import MovementType
from schemas.catalog import SupplierRef
from schemas.product import Pagination
from schemas.user import UserRef


# Schema for a single-line movement
class MovementCreate(BaseModel):
    product_id: int
    type: MovementType
    quantity: int = Field(gt=0)
    reason: Optional[str] = None
    notes: Optional[str] = None
    code: Optional[str] = None


# Schema for a single line within a batch
class MovementItem(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)


# Schema for registering several lines of one type at once
class MovementBatchCreate(BaseModel):
    movements: List[MovementItem] = Field(min_length=1)
    type: MovementType
    reason: Optional[str] = None
    notes: Optional[str] = None
    code: Optional[str] = None


class MovementProduct(BaseModel):
    id: int
    name: str
    code: str
    quantity: int
    location: Optional[str] = None
    supplier: Optional[SupplierRef] = None

    model_config = ConfigDict(from_attributes=True)


class MovementLine(BaseModel):
    id: int
    product_id: int
    quantity: int
    product: MovementProduct

    model_config = ConfigDict(from_attributes=True)


# Schema for returning a batch with its creator and lines
class MovementBatchResponse(BaseModel):
    id: int
    code: str
    type: MovementType
    total_quantity: int
    reason: Optional[str] = None
    notes: Optional[str] = None
    user_id: int
    created_at: Optional[datetime] = None
    user: UserRef
    movements: List[MovementLine]

    model_config = ConfigDict(from_attributes=True)


class MovementCreated(BaseModel):
    message: str
    movement: MovementBatchResponse


# Paginated ledger listing
class MovementBatchPage(BaseModel):
    movements: List[MovementBatchResponse]
    pagination: Pagination
