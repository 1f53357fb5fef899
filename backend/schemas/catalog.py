# schemas/catalog.py
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


# Base configuration for ORM compatibility
class ORMBase(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class CodeResponse(BaseModel):
    code: str


# Short product reference listed under a brand, model or supplier
class ProductRef(ORMBase):
    id: int
    name: str
    code: str


class SupplierProductRef(ProductRef):
    quantity: int


# ---- Brands ----
class BrandRef(ORMBase):
    id: int
    name: str


class BrandCreate(BaseModel):
    name: str = Field(min_length=1)
    code: Optional[str] = None


class BrandUpdate(BaseModel):
    name: str = Field(min_length=1)


class BrandOut(ORMBase):
    id: int
    name: str
    code: Optional[str] = None
    created_at: Optional[datetime] = None


class BrandDetail(BrandOut):
    products: List[ProductRef] = []


# ---- Models ----
class ModelRef(ORMBase):
    id: int
    name: str
    code: Optional[str] = None


class ModelCreate(BaseModel):
    name: str = Field(min_length=1)
    brand_id: Optional[int] = None
    code: Optional[str] = None


class ModelUpdate(BaseModel):
    name: str = Field(min_length=1)
    brand_id: Optional[int] = None


class ModelOut(ORMBase):
    id: int
    name: str
    code: Optional[str] = None
    brand_id: Optional[int] = None
    brand: Optional[BrandRef] = None
    created_at: Optional[datetime] = None


class ModelDetail(ModelOut):
    products: List[ProductRef] = []


# ---- Suppliers ----
class SupplierRef(ORMBase):
    id: int
    name: str


class SupplierBase(BaseModel):
    name: str = Field(min_length=1)
    contact: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None


class SupplierCreate(SupplierBase):
    pass


class SupplierOut(ORMBase, SupplierBase):
    id: int
    created_at: Optional[datetime] = None
    product_count: int = 0


class SupplierDetail(ORMBase, SupplierBase):
    id: int
    created_at: Optional[datetime] = None
    products: List[SupplierProductRef] = []


# ---- Storage locations ----
class LocationCreate(BaseModel):
    name: str


class LocationOut(ORMBase):
    id: int
    name: str


class LocationList(BaseModel):
    locations: List[str]
