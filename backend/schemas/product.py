# schemas/product.py
from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Any, Dict, List, Optional

from models.movement import MovementType
from schemas.catalog import BrandRef, ModelRef, SupplierRef
from schemas.user import UserRef


# Base configuration for ORM compatibility; `model_id` must not trip pydantic's model_ namespace
class ORMBase(BaseModel):
    model_config = ConfigDict(from_attributes=True, protected_namespaces=())


# Shared editable attributes of a product (never the stock quantity)
class ProductBase(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    name: str = Field(min_length=1)
    description: Optional[str] = None
    serial_number: str
    min_stock: int = Field(default=0, ge=0)
    brand_id: int
    model_id: int
    supplier_id: Optional[int] = None
    location: Optional[str] = None

    @field_validator("serial_number")
    @classmethod
    def _serial_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Serial number is required")
        return v


# Schema for creating a new product; `quantity` is booked as an inbound batch
class ProductCreate(ProductBase):
    code: Optional[str] = None
    quantity: int = Field(default=0, ge=0, description="Initial stock")


# Full update (PUT). Stock only changes through movements.
class ProductUpdate(ProductBase):
    pass


class ProductBulkCreate(BaseModel):
    # Items are validated one by one so a bad row does not sink the others
    products: List[Dict[str, Any]] = Field(min_length=1)


# Full product representation including relations
class ProductOut(ORMBase):
    id: int
    name: str
    code: str
    description: Optional[str] = None
    serial_number: str
    quantity: int
    min_stock: int
    location: Optional[str] = None
    brand_id: int
    model_id: int
    supplier_id: Optional[int] = None
    brand: Optional[BrandRef] = None
    model: Optional[ModelRef] = None
    supplier: Optional[SupplierRef] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


# Paginated response for product listings
class ProductListPage(BaseModel):
    products: List[ProductOut]
    pagination: Pagination


class ProductBatchRef(ORMBase):
    id: int
    code: str
    type: MovementType
    created_at: Optional[datetime] = None
    user: Optional[UserRef] = None


# A ledger line as seen from the product page
class ProductMovementOut(ORMBase):
    id: int
    quantity: int
    batch: ProductBatchRef


class ProductDetail(ProductOut):
    movements: List[ProductMovementOut] = []


class ProductCreated(BaseModel):
    message: str
    product: ProductOut


class BulkError(BaseModel):
    index: int
    message: str


class ProductBulkResult(BaseModel):
    message: str
    created: List[ProductOut]
    errors: Optional[List[BulkError]] = None
    total: int
    success: int
