"""
Shopping cart ledger.

A Cart holds one line item per variant (product, color, size). It is owned by
a single shopper session and persisted explicitly through snapshots.
"""
import json
import logging
import os
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Union

from pydantic import BaseModel, Field, ValidationError

from errors import InvalidQuantity
from pricing import CartTotals, compute_totals
from schemas import StoredProduct

logger = logging.getLogger(__name__)

CART_STORAGE_PATH = os.getenv("CART_STORAGE_PATH", ".cart.json")


def variant_key(product_id: str, color_name: str, size: str) -> str:
    return f"{product_id}-{color_name}-{size}"


class CartLineItem(BaseModel):
    id: str = Field(..., description="Variant key")
    product: StoredProduct
    quantity: int = Field(..., ge=1)
    selected_color: str
    selected_size: str
    selected_color_value: str = ""

    @property
    def unit_price(self) -> Decimal:
        return Decimal(str(self.product.price))

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


def _check_quantity(quantity) -> int:
    # bool is an int subclass; True must not count as one item
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidQuantity(quantity)
    return quantity


class Cart:
    def __init__(self, items: List[CartLineItem] = None):
        self._items: List[CartLineItem] = list(items or [])
        self.is_open = False

    def add(self, product: StoredProduct, color_name: str, size: str, color_value: str = "", quantity: int = 1) -> CartLineItem:
        quantity = _check_quantity(quantity)
        if quantity < 1:
            raise InvalidQuantity(quantity)

        key = variant_key(product.id, color_name, size)
        item = self._find(key)
        if item is not None:
            item.quantity += quantity
        else:
            item = CartLineItem(
                id=key,
                product=product,
                quantity=quantity,
                selected_color=color_name,
                selected_size=size,
                selected_color_value=color_value,
            )
            self._items.append(item)

        self.is_open = True
        return item

    def update_quantity(self, item_id: str, quantity: int) -> None:
        """Set a line item's quantity. Zero or less removes the item."""
        quantity = _check_quantity(quantity)
        if quantity <= 0:
            self.remove(item_id)
            return
        item = self._find(item_id)
        if item is not None:
            item.quantity = quantity

    def remove(self, item_id: str) -> None:
        self._items = [item for item in self._items if item.id != item_id]

    def clear(self) -> None:
        self._items = []

    def items(self) -> List[CartLineItem]:
        return list(self._items)

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self._items)

    def totals(self) -> CartTotals:
        return compute_totals(self._items)

    def open(self) -> None:
        self.is_open = True

    def close(self) -> None:
        self.is_open = False

    def toggle(self) -> None:
        self.is_open = not self.is_open

    def _find(self, item_id: str):
        for item in self._items:
            if item.id == item_id:
                return item
        return None

    def __len__(self) -> int:
        return len(self._items)

    # ------------------------- Snapshots -------------------------
    def to_snapshot(self) -> List[Dict[str, Any]]:
        return [item.model_dump(mode="json") for item in self._items]

    @classmethod
    def from_snapshot(cls, data: List[Dict[str, Any]]) -> "Cart":
        return cls([CartLineItem.model_validate(entry) for entry in data])


def save_cart(cart: Cart, path: Union[str, Path] = CART_STORAGE_PATH) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(cart.to_snapshot()), encoding="utf-8")


def load_cart(path: Union[str, Path] = CART_STORAGE_PATH) -> Cart:
    """Load a saved cart. A missing or unreadable file yields an empty cart."""
    path = Path(path)
    if not path.exists():
        return Cart()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return Cart.from_snapshot(data)
    except (OSError, ValueError, TypeError, ValidationError) as e:
        logger.warning("Error loading cart from %s: %s", path, e)
        return Cart()
