from typing import List

import structlog
from fastapi import APIRouter, Body, Depends, HTTPException, Response, status
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import current_active_user, require_roles
from core.cache import (
    INVENTORY_LIST_KEY,
    MISSING,
    Cache,
    get_cache,
    inventory_item_key,
)
from core.config import settings
from db.database import get_async_session
from db.inventory.item import InventoryItem as InventoryItemModel
from db.order import OrderItem as OrderItemModel
from db.users import Role, User
from schemas.inventory import MAX_QUANTITY, InventoryItemCreate, InventoryItemRead

log = structlog.get_logger(__name__)

router = APIRouter()


def _invalidate(cache: Cache, item_id: int) -> None:
    cache.remove(INVENTORY_LIST_KEY)
    cache.remove(inventory_item_key(item_id))


@router.get("", response_model=List[InventoryItemRead])
async def list_inventory_items(
    db: AsyncSession = Depends(get_async_session),
    cache: Cache = Depends(get_cache),
    user: User = Depends(current_active_user),
):
    """Get all inventory items, ordered by name"""
    cached = cache.get(INVENTORY_LIST_KEY)
    if cached is not MISSING:
        return cached

    res = await db.execute(select(InventoryItemModel).order_by(InventoryItemModel.name.asc(), InventoryItemModel.id.asc()))
    items = [InventoryItemRead(**m.to_schema) for m in res.scalars().all()]
    cache.set(INVENTORY_LIST_KEY, items, settings.cache_list_ttl)
    return items


@router.get("/{item_id}", response_model=InventoryItemRead)
async def get_inventory_item(
    item_id: int,
    db: AsyncSession = Depends(get_async_session),
    cache: Cache = Depends(get_cache),
    user: User = Depends(current_active_user),
):
    """Get an inventory item by ID; unknown ids are remembered as well"""
    key = inventory_item_key(item_id)
    item = cache.get(key)
    if item is MISSING:
        model = await db.get(InventoryItemModel, item_id)
        item = InventoryItemRead(**model.to_schema) if model else None
        cache.set(key, item, settings.cache_detail_ttl)

    if item is None:
        return Response(status_code=status.HTTP_404_NOT_FOUND)
    return item


@router.post("", response_model=InventoryItemRead, status_code=status.HTTP_201_CREATED)
async def create_inventory_item(
    payload: InventoryItemCreate,
    response: Response,
    db: AsyncSession = Depends(get_async_session),
    cache: Cache = Depends(get_cache),
    user: User = Depends(require_roles(Role.MANAGER)),
):
    model = InventoryItemModel(
        name=payload.name,
        quantity=payload.quantity,
        location=payload.location,
    )
    db.add(model)
    await db.commit()
    await db.refresh(model)

    _invalidate(cache, model.id)
    log.info("inventory_item_created", item_id=model.id, name=model.name, quantity=model.quantity)

    response.headers["Location"] = f"/api/inventory/{model.id}"
    return InventoryItemRead(**model.to_schema)


@router.put("/{item_id}", response_model=InventoryItemRead)
async def add_item_quantity(
    item_id: int,
    added_quantity: int = Body(..., le=MAX_QUANTITY),
    db: AsyncSession = Depends(get_async_session),
    cache: Cache = Depends(get_cache),
    user: User = Depends(require_roles(Role.MANAGER)),
):
    """Increase the stored quantity of an item by ``added_quantity`` (raw JSON integer body)"""
    if added_quantity <= 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Quantity cannot be zero or negative.",
        )

    res = await db.execute(
        update(InventoryItemModel)
        .where(InventoryItemModel.id == item_id)
        .where(InventoryItemModel.quantity <= MAX_QUANTITY - added_quantity)
        .values(quantity=InventoryItemModel.quantity + added_quantity)
        .execution_options(synchronize_session=False)
    )
    await db.commit()

    if not res.rowcount:
        if await db.get(InventoryItemModel, item_id) is None:
            return Response(status_code=status.HTTP_404_NOT_FOUND)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Quantity cannot exceed {MAX_QUANTITY}.",
        )

    model = await db.get(InventoryItemModel, item_id, populate_existing=True)

    _invalidate(cache, item_id)
    log.info("inventory_quantity_increased", item_id=item_id, added=added_quantity, quantity=model.quantity)
    return InventoryItemRead(**model.to_schema)


@router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_inventory_item(
    item_id: int,
    db: AsyncSession = Depends(get_async_session),
    cache: Cache = Depends(get_cache),
    user: User = Depends(require_roles(Role.MANAGER)),
):
    model = await db.get(InventoryItemModel, item_id)
    if not model:
        return Response(status_code=status.HTTP_404_NOT_FOUND)

    referenced = await db.scalar(
        select(func.count()).select_from(OrderItemModel).where(OrderItemModel.inventory_item_id == item_id)
    )
    if referenced:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Inventory item {item_id} is referenced by {referenced} order line(s) and cannot be deleted.",
        )

    try:
        await db.delete(model)
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Inventory item {item_id} is referenced by an order and cannot be deleted.",
        )

    _invalidate(cache, item_id)
    log.info("inventory_item_deleted", item_id=item_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
