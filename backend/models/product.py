# backend/models/product.py
from sqlalchemy import Column, Integer, String, ForeignKey, CheckConstraint, DateTime, func
from sqlalchemy.orm import relationship
from database import Base

# Model Product
# Represents a single stocked item with its catalogue references.
# `quantity` is a running total owned by the stock engine
# (services/stock.py); CRUD endpoints never write it.
class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, index=True)
    code = Column(String, unique=True, nullable=False, index=True)
    description = Column(String, nullable=True)
    serial_number = Column(String, nullable=False)

    # Stock data, guarded by constraints.
    quantity = Column(Integer, CheckConstraint("quantity >= 0", name="ck_products_quantity"), nullable=False, default=0)
    min_stock = Column(Integer, CheckConstraint("min_stock >= 0", name="ck_products_min_stock"), nullable=False, default=0)
    location = Column(String, nullable=True)

    brand_id = Column(Integer, ForeignKey("brands.id"), nullable=False)
    model_id = Column(Integer, ForeignKey("models.id"), nullable=False)
    supplier_id = Column(Integer, ForeignKey("suppliers.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    brand = relationship("Brand", back_populates="products")
    model = relationship("ProductModel", back_populates="products")
    supplier = relationship("Supplier", back_populates="products")
    movements = relationship("Movement", back_populates="product")

    @property
    def is_low_stock(self) -> bool:
        return (self.quantity or 0) <= (self.min_stock or 0)
