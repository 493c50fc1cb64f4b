"""Price resolution: picks the unit price snapshotted into a record.

Payloads carry an unordered bag of candidate price fields. Candidates are
tried in a fixed order, most specific discounted price first; only positive,
finite numbers count, so a stray ``0`` or ``None`` never masks a real price.
Variant payloads are consulted before the product payload, unconditionally.
The floor is ``0.0``.
"""

import math

# (camelCase, snake_case) pairs in precedence order
PRICE_FIELDS = (
    ("offerPrice", "offer_price"),
    ("discountPrice", "discount_price"),
    ("effectivePrice", "effective_price"),
    ("sellingPrice", "selling_price"),
    ("price", "price"),
    ("basePrice", "base_price"),
    ("totalPrice", "total_price"),
)


def _as_price(value) -> float | None:
    if isinstance(value, bool) or not isinstance(value, int | float | str):
        return None
    try:
        price = float(value)
    except ValueError:
        return None
    if not math.isfinite(price) or price <= 0:
        return None
    return price


def first_price(payload) -> float | None:
    """The highest-precedence usable price in one payload, or None."""
    if not isinstance(payload, dict):
        return None
    for camel, snake in PRICE_FIELDS:
        for field in (camel, snake):
            price = _as_price(payload.get(field))
            if price is not None:
                return price
    return None


def resolve_unit_price(product=None, variant=None) -> float:
    for payload in (variant, product):
        price = first_price(payload)
        if price is not None:
            return round(price, 2)
    return 0.0
