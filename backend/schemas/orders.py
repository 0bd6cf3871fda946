from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from .inventory import MAX_QUANTITY


class OrderItemRead(BaseModel):
    id: int
    inventory_item_id: int
    inventory_item_name: Optional[str] = None
    location: Optional[str] = None
    quantity_ordered: int


class OrderRead(BaseModel):
    id: int
    customer_name: str
    order_date: datetime
    items: List[OrderItemRead]
    item_count: int
    total_quantity: int
    summary: str


class OrderItemWrite(BaseModel):
    inventory_item_id: int
    quantity_ordered: int = Field(..., gt=0, le=MAX_QUANTITY)


class OrderWrite(BaseModel):
    """Body for both create and update; update replaces the full line set."""
    customer_name: str
    order_date: Optional[datetime] = None
    items: List[OrderItemWrite]

    @field_validator("customer_name")
    @classmethod
    def _strip_required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("customer_name is required")
        return v

    @field_validator("order_date")
    @classmethod
    def _to_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        # Stored without an offset on SQLite, so only UTC may reach the model
        if v is None:
            return v
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)
