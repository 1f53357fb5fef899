# backend/models/movement.py
import enum
from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Text, Enum, CheckConstraint, func
from sqlalchemy.orm import relationship
from database import Base

# Direction of a stock movement batch
class MovementType(str, enum.Enum):
    ENTRADA = "ENTRADA"  # inbound, increases stock
    SALIDA = "SALIDA"    # outbound, decreases stock

# A user-initiated group of movement lines committed as one unit.
# Rows are written once by the stock engine and never updated or deleted.
class MovementBatch(Base):
    __tablename__ = "movement_batches"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String, unique=True, nullable=False, index=True)
    type = Column(Enum(MovementType, name="movement_type"), nullable=False, index=True)
    total_quantity = Column(Integer, nullable=False)
    reason = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    user = relationship("User", back_populates="movement_batches")
    movements = relationship(
        "Movement", back_populates="batch",
        cascade="all, delete-orphan", order_by="Movement.id",
    )

# A single line of a batch: quantity attributed to one product
class Movement(Base):
    __tablename__ = "movements"

    id = Column(Integer, primary_key=True, index=True)
    batch_id = Column(Integer, ForeignKey("movement_batches.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    quantity = Column(Integer, CheckConstraint("quantity > 0", name="ck_movements_quantity"), nullable=False)

    batch = relationship("MovementBatch", back_populates="movements")
    product = relationship("Product", back_populates="movements")
