from sqlalchemy import Column, Integer, String

from ..database import Base


class InventoryItem(Base):
    __tablename__ = "inventory_items"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, index=True)
    quantity = Column(Integer, nullable=False, default=0)
    location = Column(String, nullable=False)

    @property
    def item_info(self) -> str:
        return f"Item: {self.name} | Quantity: {self.quantity} | Location: {self.location}"

    @property
    def to_schema(self):
        """Convert InventoryItem model to schema dictionary format"""
        return {
            "id": self.id,
            "name": self.name,
            "quantity": int(self.quantity or 0),
            "location": self.location,
            "item_info": self.item_info,
        }
