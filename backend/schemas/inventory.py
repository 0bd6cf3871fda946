from pydantic import BaseModel, Field, field_validator

# Quantities are stored as 32-bit signed integers
MAX_QUANTITY = 2_147_483_647


class InventoryItemRead(BaseModel):
    id: int
    name: str
    quantity: int
    location: str
    item_info: str


class InventoryItemCreate(BaseModel):
    name: str
    quantity: int = Field(0, ge=0, le=MAX_QUANTITY)
    location: str

    @field_validator("name", "location")
    @classmethod
    def _strip_required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("field is required")
        return v
