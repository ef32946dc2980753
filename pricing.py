"""
Cart pricing: flat-rate shipping plus a fixed tax percentage.

Totals are derived from line items on demand and never stored on their own.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

FLAT_SHIPPING_RATE = Decimal("10.00")
TAX_RATE = Decimal("0.10")

ZERO = Decimal("0")
CENT = Decimal("0.01")


def q2(x) -> Decimal:
    """Quantize to 2 decimal places with HALF_UP."""
    if not isinstance(x, Decimal):
        x = Decimal(str(x))
    return x.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class CartTotals:
    subtotal: Decimal
    shipping: Decimal
    tax: Decimal
    total: Decimal

    def rounded(self) -> "CartTotals":
        return CartTotals(q2(self.subtotal), q2(self.shipping), q2(self.tax), q2(self.total))

    def as_dict(self) -> dict:
        return {
            "subtotal": float(self.subtotal),
            "shipping": float(self.shipping),
            "tax": float(self.tax),
            "total": float(self.total),
        }


def compute_totals(items: Iterable) -> CartTotals:
    """Price line items exposing ``unit_price`` and ``quantity``."""
    subtotal = ZERO
    quantity = 0
    for item in items:
        subtotal += Decimal(str(item.unit_price)) * item.quantity
        quantity += item.quantity

    shipping = FLAT_SHIPPING_RATE if quantity > 0 else ZERO
    tax = subtotal * TAX_RATE
    return CartTotals(
        subtotal=subtotal,
        shipping=shipping,
        tax=tax,
        total=subtotal + shipping + tax,
    )
