from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Date, Enum, Float, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum
from dentcare.database import Base

class InventoryCategory(str, enum.Enum):
    MEDICATION = "MEDICATION"
    EQUIPMENT = "EQUIPMENT"
    SUPPLIES = "SUPPLIES"
    MATERIALS = "MATERIALS"
    INSTRUMENTS = "INSTRUMENTS"
    CONSUMABLES = "CONSUMABLES"

class MovementType(str, enum.Enum):
    IN = "IN"
    OUT = "OUT"
    ADJUSTMENT = "ADJUSTMENT"

class InventoryItem(Base):
    __tablename__ = "inventory_items"

    id = Column(Integer, primary_key=True, index=True)
    clinic_id = Column(Integer, ForeignKey("clinics.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    category = Column(Enum(InventoryCategory), nullable=False)
    sku = Column(String, nullable=True)
    current_stock = Column(Integer, nullable=False, default=0)
    minimum_stock = Column(Integer, nullable=False, default=0)
    maximum_stock = Column(Integer, nullable=False, default=0)
    unit = Column(String, nullable=False)
    unit_cost = Column(Float, nullable=True)
    unit_price = Column(Float, nullable=True)
    expiry_date = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    clinic = relationship("Clinic")
    movements = relationship(
        "StockMovement",
        back_populates="item",
        cascade="all, delete-orphan",
        order_by="StockMovement.id.desc()"
    )

class StockMovement(Base):
    __tablename__ = "stock_movements"

    id = Column(Integer, primary_key=True, index=True)
    item_id = Column(Integer, ForeignKey("inventory_items.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    movement_type = Column(Enum(MovementType), nullable=False)
    quantity = Column(Integer, nullable=False)
    reason = Column(Text, nullable=True)
    previous_stock = Column(Integer, nullable=False)
    new_stock = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    item = relationship("InventoryItem", back_populates="movements")
    user = relationship("User")
