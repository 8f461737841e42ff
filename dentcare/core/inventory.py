"""Clinic stock keeping.

Every change to ``current_stock`` writes a :class:`StockMovement` row holding
the level before and after, so the movement log replays to the stored level.
Stock never goes below zero.
"""
import logging
from enum import Enum
from typing import Optional

from sqlalchemy.orm import Session

from dentcare.core.exceptions import BusinessRuleError, NotFoundError, PermissionDeniedError
from dentcare.models.inventory import InventoryItem, MovementType, StockMovement

logger = logging.getLogger(__name__)


class StockStatus(str, Enum):
    IN_STOCK = "IN_STOCK"
    LOW_STOCK = "LOW_STOCK"
    OUT_OF_STOCK = "OUT_OF_STOCK"


def stock_status(item: InventoryItem) -> StockStatus:
    if item.current_stock <= 0:
        return StockStatus.OUT_OF_STOCK
    if item.current_stock <= item.minimum_stock:
        return StockStatus.LOW_STOCK
    return StockStatus.IN_STOCK


def get_item_for(db: Session, item_id: int, clinic_id: int, lock: bool = False) -> InventoryItem:
    query = db.query(InventoryItem).filter(InventoryItem.id == item_id)
    if lock:
        query = query.with_for_update()
    item = query.first()
    if not item:
        raise NotFoundError("Item not found")
    if item.clinic_id != clinic_id:
        raise PermissionDeniedError("Access denied")
    return item


def _record(
    db: Session,
    item: InventoryItem,
    user_id: int,
    movement_type: MovementType,
    new_stock: int,
    reason: Optional[str],
    quantity: Optional[int] = None,
) -> StockMovement:
    movement = StockMovement(
        item=item,
        user_id=user_id,
        movement_type=movement_type,
        quantity=abs(new_stock - item.current_stock) if quantity is None else quantity,
        reason=reason,
        previous_stock=item.current_stock,
        new_stock=new_stock,
    )
    item.current_stock = new_stock
    db.add(movement)
    return movement


def create_item(db: Session, clinic_id: int, user_id: int, **fields) -> InventoryItem:
    opening = fields.pop("current_stock", 0)
    item = InventoryItem(clinic_id=clinic_id, current_stock=0, **fields)
    db.add(item)
    if opening > 0:
        _record(db, item, user_id, MovementType.IN, opening, "Initial stock")
    db.commit()
    db.refresh(item)
    logger.info(f"Inventory item {item.id} added to clinic {clinic_id} with {opening} {item.unit}")
    return item


def update_item(db: Session, item: InventoryItem, user_id: int, **fields) -> InventoryItem:
    """Overwrite the item's details; a changed stock level is logged as a manual movement."""
    new_stock = fields.pop("current_stock", item.current_stock)
    for key, value in fields.items():
        setattr(item, key, value)

    if new_stock != item.current_stock:
        direction = MovementType.IN if new_stock > item.current_stock else MovementType.OUT
        _record(db, item, user_id, direction, new_stock, "Manual adjustment")

    db.commit()
    db.refresh(item)
    return item


def adjust_stock(
    db: Session,
    item_id: int,
    clinic_id: int,
    user_id: int,
    movement_type: MovementType,
    quantity: int,
    reason: str,
) -> StockMovement:
    """Apply an IN/OUT delta or an absolute ADJUSTMENT count.

    Raises BusinessRuleError when an OUT would take the item below zero.
    """
    item = get_item_for(db, item_id, clinic_id, lock=True)

    if movement_type == MovementType.IN:
        new_stock = item.current_stock + quantity
    elif movement_type == MovementType.OUT:
        new_stock = item.current_stock - quantity
        if new_stock < 0:
            raise BusinessRuleError(
                f"Insufficient stock: {item.current_stock} {item.unit} available, {quantity} requested"
            )
    else:
        new_stock = quantity

    movement = _record(
        db, item, user_id, movement_type, new_stock, reason,
        quantity=None if movement_type == MovementType.ADJUSTMENT else quantity,
    )
    db.commit()
    db.refresh(movement)
    logger.info(
        f"Inventory item {item.id}: {movement_type.value} {movement.quantity}, "
        f"{movement.previous_stock} -> {movement.new_stock}"
    )
    return movement
