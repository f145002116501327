# checkout/domain/totals.py
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Tuple

from checkout.utils.settings import TAX_RATE, FREE_SHIPPING_THRESHOLD, FLAT_SHIPPING_FEE

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class Totals:
    total_items: int = 0
    subtotal: Decimal = ZERO
    tax: Decimal = ZERO
    shipping: Decimal = ZERO
    total: Decimal = ZERO


def calculate_totals(
    lines: Iterable[Tuple[Decimal, int]],
    tax_rate: Decimal = TAX_RATE,
    free_shipping_threshold: Decimal = FREE_SHIPPING_THRESHOLD,
    flat_shipping_fee: Decimal = FLAT_SHIPPING_FEE,
) -> Totals:
    """
    Totals for (unit_price, quantity) pairs. Always a full recomputation,
    callers never adjust a previous result.

    An empty cart has no shipping charge.
    """
    total_items = 0
    subtotal = ZERO
    for price, quantity in lines:
        total_items += quantity
        subtotal += Decimal(str(price)) * quantity

    subtotal = to_money(subtotal)
    if total_items == 0:
        return Totals()

    tax = to_money(subtotal * Decimal(str(tax_rate)))
    shipping = ZERO if subtotal > Decimal(str(free_shipping_threshold)) else to_money(flat_shipping_fee)

    return Totals(
        total_items=total_items,
        subtotal=subtotal,
        tax=tax,
        shipping=shipping,
        total=subtotal + tax + shipping,
    )
