"""Clinic inventory: stock items, adjustments and the movement log."""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import or_
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date, datetime
import logging
from dentcare.database import contains, get_db
from dentcare.models.clinic import Clinic
from dentcare.models.inventory import InventoryCategory, InventoryItem, MovementType, StockMovement
from dentcare.core import inventory
from dentcare.core.inventory import StockStatus
from dentcare.core.security import get_current_clinic
from pydantic import BaseModel, ConfigDict, Field, model_validator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/clinic/inventory", tags=["inventory"])

RECENT_MOVEMENTS = 20

class InventoryItemCreate(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    category: InventoryCategory
    sku: Optional[str] = None
    current_stock: int = Field(default=0, ge=0)
    minimum_stock: int = Field(default=0, ge=0)
    maximum_stock: int = Field(default=0, ge=0)
    unit: str = Field(min_length=1)
    unit_cost: Optional[float] = Field(default=None, ge=0)
    unit_price: Optional[float] = Field(default=None, ge=0)
    expiry_date: Optional[date] = None

    @model_validator(mode="after")
    def check_levels(self):
        if self.maximum_stock and self.maximum_stock < self.minimum_stock:
            raise ValueError("maximum_stock must not be below minimum_stock")
        return self

class StockAdjustment(BaseModel):
    type: MovementType
    quantity: int = Field(ge=0)
    reason: str = Field(min_length=1)

    @model_validator(mode="after")
    def check_quantity(self):
        # ADJUSTMENT sets an absolute count, so zero is a valid stock take
        if self.type != MovementType.ADJUSTMENT and self.quantity < 1:
            raise ValueError("Quantity must be at least 1")
        return self

class MovementResponse(BaseModel):
    id: int
    item_id: int
    item_name: str
    type: MovementType
    quantity: int
    reason: Optional[str] = None
    previous_stock: int
    new_stock: int
    performed_by: str
    created_at: Optional[datetime] = None

class InventoryItemResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    category: InventoryCategory
    sku: Optional[str] = None
    current_stock: int
    minimum_stock: int
    maximum_stock: int
    unit: str
    unit_cost: Optional[float] = None
    unit_price: Optional[float] = None
    expiry_date: Optional[date] = None
    updated_at: Optional[datetime] = None
    status: StockStatus

    model_config = ConfigDict(from_attributes=True)

class InventoryItemDetail(InventoryItemResponse):
    movements: List[MovementResponse]

class InventoryListResponse(BaseModel):
    items: List[InventoryItemResponse]
    movements: List[MovementResponse]

class AdjustmentResponse(BaseModel):
    message: str
    item: InventoryItemResponse
    movement: MovementResponse

def item_to_dict(item: InventoryItem) -> dict:
    return {
        **{column: getattr(item, column) for column in InventoryItemResponse.model_fields if column != "status"},
        "status": inventory.stock_status(item),
    }

def movement_to_dict(movement: StockMovement) -> dict:
    return {
        "id": movement.id,
        "item_id": movement.item_id,
        "item_name": movement.item.name,
        "type": movement.movement_type,
        "quantity": movement.quantity,
        "reason": movement.reason,
        "previous_stock": movement.previous_stock,
        "new_stock": movement.new_stock,
        "performed_by": movement.user.full_name if movement.user else "Unknown",
        "created_at": movement.created_at,
    }

def clinic_movements(db: Session, clinic: Clinic):
    return db.query(StockMovement).join(InventoryItem).filter(
        InventoryItem.clinic_id == clinic.id
    ).order_by(StockMovement.id.desc())

@router.get("", response_model=InventoryListResponse)
async def list_inventory(
    category: Optional[InventoryCategory] = None,
    stock_status: Optional[StockStatus] = Query(None, alias="status"),
    search: Optional[str] = None,
    clinic: Clinic = Depends(get_current_clinic),
    db: Session = Depends(get_db)
):
    query = db.query(InventoryItem).filter(InventoryItem.clinic_id == clinic.id)
    if category:
        query = query.filter(InventoryItem.category == category)
    if search:
        query = query.filter(or_(contains(InventoryItem.name, search), contains(InventoryItem.description, search)))

    items = query.order_by(InventoryItem.name).all()
    if stock_status:
        items = [item for item in items if inventory.stock_status(item) == stock_status]

    recent = clinic_movements(db, clinic).limit(RECENT_MOVEMENTS).all()
    return {
        "items": [item_to_dict(item) for item in items],
        "movements": [movement_to_dict(m) for m in recent],
    }

@router.post("", response_model=InventoryItemResponse, status_code=status.HTTP_201_CREATED)
async def create_inventory_item(
    item_data: InventoryItemCreate,
    clinic: Clinic = Depends(get_current_clinic),
    db: Session = Depends(get_db)
):
    item = inventory.create_item(db, clinic.id, clinic.owner_id, **item_data.model_dump())
    return item_to_dict(item)

@router.get("/movements", response_model=List[MovementResponse])
async def list_movements(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    clinic: Clinic = Depends(get_current_clinic),
    db: Session = Depends(get_db)
):
    movements = clinic_movements(db, clinic).offset(offset).limit(limit).all()
    return [movement_to_dict(m) for m in movements]

@router.get("/{item_id}", response_model=InventoryItemDetail)
async def get_inventory_item(
    item_id: int,
    clinic: Clinic = Depends(get_current_clinic),
    db: Session = Depends(get_db)
):
    item = inventory.get_item_for(db, item_id, clinic.id)
    return {**item_to_dict(item), "movements": [movement_to_dict(m) for m in item.movements[:10]]}

@router.put("/{item_id}", response_model=InventoryItemResponse)
async def update_inventory_item(
    item_id: int,
    item_data: InventoryItemCreate,
    clinic: Clinic = Depends(get_current_clinic),
    db: Session = Depends(get_db)
):
    item = inventory.get_item_for(db, item_id, clinic.id)
    item = inventory.update_item(db, item, clinic.owner_id, **item_data.model_dump())
    return item_to_dict(item)

@router.delete("/{item_id}")
async def delete_inventory_item(
    item_id: int,
    clinic: Clinic = Depends(get_current_clinic),
    db: Session = Depends(get_db)
):
    item = inventory.get_item_for(db, item_id, clinic.id)
    db.delete(item)
    db.commit()
    logger.info(f"Inventory item {item_id} removed from clinic {clinic.id}")
    return {"success": True}

@router.post("/{item_id}/adjust", response_model=AdjustmentResponse)
async def adjust_inventory_item(
    item_id: int,
    adjustment: StockAdjustment,
    clinic: Clinic = Depends(get_current_clinic),
    db: Session = Depends(get_db)
):
    movement = inventory.adjust_stock(
        db, item_id, clinic.id, clinic.owner_id,
        adjustment.type, adjustment.quantity, adjustment.reason
    )
    return {
        "message": "Stock adjusted successfully",
        "item": item_to_dict(movement.item),
        "movement": movement_to_dict(movement),
    }
