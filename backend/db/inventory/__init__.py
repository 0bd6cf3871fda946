"""
Inventory models.

- InventoryItem: a named stock line with a quantity held at one location.
  Order lines reference it with ON DELETE RESTRICT, so an item cannot be
  removed while any order still uses it.
"""
