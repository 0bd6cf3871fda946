from datetime import datetime, timezone
from typing import List

import structlog
from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from core.auth import current_active_user, require_roles
from core.cache import MISSING, ORDERS_LIST_KEY, Cache, get_cache, order_detail_key
from core.config import settings
from db.database import get_async_session
from db.inventory.item import InventoryItem as InventoryItemModel
from db.order import Order as OrderModel, OrderItem as OrderItemModel
from db.users import Role, User
from schemas.orders import OrderItemRead, OrderRead, OrderWrite

log = structlog.get_logger(__name__)

router = APIRouter()


def _order_query():
    return (
        select(OrderModel)
        .options(selectinload(OrderModel.items).selectinload(OrderItemModel.inventory_item))
        .execution_options(populate_existing=True)
    )


def _serialize_order(o: OrderModel) -> OrderRead:
    items_out: List[OrderItemRead] = []
    for it in (o.items or []):
        inv = getattr(it, "inventory_item", None)
        items_out.append(
            OrderItemRead(
                id=it.id,
                inventory_item_id=it.inventory_item_id,
                inventory_item_name=getattr(inv, "name", None) if inv else None,
                location=getattr(inv, "location", None) if inv else None,
                quantity_ordered=int(it.quantity_ordered),
            )
        )
    item_count = len(items_out)
    order_date = o.order_date
    if order_date.tzinfo is None:
        order_date = order_date.replace(tzinfo=timezone.utc)
    return OrderRead(
        id=o.id,
        customer_name=o.customer_name,
        order_date=order_date,
        items=items_out,
        item_count=item_count,
        total_quantity=sum(i.quantity_ordered for i in items_out),
        summary=f"Order #{o.id} for {o.customer_name} on {order_date:%Y-%m-%d} with {item_count} items.",
    )


async def _missing_inventory_ids(db: AsyncSession, payload: OrderWrite) -> List[int]:
    requested: List[int] = []
    for line in payload.items:
        if line.inventory_item_id not in requested:
            requested.append(line.inventory_item_id)
    if not requested:
        return []
    res = await db.execute(select(InventoryItemModel.id).where(InventoryItemModel.id.in_(requested)))
    found = set(res.scalars().all())
    return [i for i in requested if i not in found]


async def _validate_references(db: AsyncSession, payload: OrderWrite) -> None:
    missing = await _missing_inventory_ids(db, payload)
    if missing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "message": "Order references inventory items that do not exist.",
                "missing_inventory_item_ids": missing,
            },
        )


async def _load_order(db: AsyncSession, order_id: int):
    res = await db.execute(_order_query().where(OrderModel.id == order_id))
    return res.scalar_one_or_none()


def _invalidate(cache: Cache, order_id: int) -> None:
    cache.remove(ORDERS_LIST_KEY)
    cache.remove(order_detail_key(order_id))


@router.get("", response_model=List[OrderRead])
async def list_orders(
    db: AsyncSession = Depends(get_async_session),
    cache: Cache = Depends(get_cache),
    user: User = Depends(current_active_user),
):
    cached = cache.get(ORDERS_LIST_KEY)
    if cached is not MISSING:
        return cached

    res = await db.execute(_order_query().order_by(OrderModel.order_date.desc(), OrderModel.id.desc()))
    orders = [_serialize_order(o) for o in res.scalars().all()]
    cache.set(ORDERS_LIST_KEY, orders, settings.cache_list_ttl)
    return orders


@router.get("/{order_id}", response_model=OrderRead)
async def get_order(
    order_id: int,
    db: AsyncSession = Depends(get_async_session),
    cache: Cache = Depends(get_cache),
    user: User = Depends(current_active_user),
):
    key = order_detail_key(order_id)
    order = cache.get(key)
    if order is MISSING:
        model = await _load_order(db, order_id)
        order = _serialize_order(model) if model else None
        cache.set(key, order, settings.cache_detail_ttl)

    if order is None:
        return Response(status_code=status.HTTP_404_NOT_FOUND)
    return order


@router.post("", response_model=OrderRead, status_code=status.HTTP_201_CREATED)
async def create_order(
    payload: OrderWrite,
    response: Response,
    db: AsyncSession = Depends(get_async_session),
    cache: Cache = Depends(get_cache),
    user: User = Depends(require_roles(Role.MANAGER, Role.EMPLOYEE)),
):
    await _validate_references(db, payload)

    model = OrderModel(
        customer_name=payload.customer_name,
        order_date=payload.order_date or datetime.now(timezone.utc),
        items=[
            OrderItemModel(inventory_item_id=line.inventory_item_id, quantity_ordered=line.quantity_ordered)
            for line in payload.items
        ],
    )
    db.add(model)
    await db.commit()

    _invalidate(cache, model.id)
    log.info("order_created", order_id=model.id, customer_name=model.customer_name, lines=len(payload.items))

    created = await _load_order(db, model.id)
    response.headers["Location"] = f"/api/orders/{model.id}"
    return _serialize_order(created)


@router.put("/{order_id}", response_model=OrderRead)
async def update_order(
    order_id: int,
    payload: OrderWrite,
    db: AsyncSession = Depends(get_async_session),
    cache: Cache = Depends(get_cache),
    user: User = Depends(require_roles(Role.MANAGER)),
):
    """Replace customer, date (kept when omitted) and the full set of lines"""
    model = await _load_order(db, order_id)
    if not model:
        return Response(status_code=status.HTTP_404_NOT_FOUND)

    await _validate_references(db, payload)

    model.customer_name = payload.customer_name
    if payload.order_date is not None:
        model.order_date = payload.order_date
    # delete-orphan cascade removes the old lines on flush
    model.items = [
        OrderItemModel(inventory_item_id=line.inventory_item_id, quantity_ordered=line.quantity_ordered)
        for line in payload.items
    ]
    await db.commit()

    _invalidate(cache, order_id)
    log.info("order_updated", order_id=order_id, lines=len(payload.items))

    updated = await _load_order(db, order_id)
    return _serialize_order(updated)


@router.delete("/{order_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_order(
    order_id: int,
    db: AsyncSession = Depends(get_async_session),
    cache: Cache = Depends(get_cache),
    user: User = Depends(require_roles(Role.MANAGER)),
):
    model = await _load_order(db, order_id)
    if not model:
        return Response(status_code=status.HTTP_404_NOT_FOUND)

    await db.delete(model)
    await db.commit()

    _invalidate(cache, order_id)
    log.info("order_deleted", order_id=order_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
