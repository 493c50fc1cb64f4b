"""Item keys: the composite identity of a cart or wishlist line.

Two records are the same logical item if and only if their item kind,
product reference and variant reference are all equal. A missing variant
(``None`` or ``""``) is its own value and never equals a present one.
"""

import json
from enum import Enum


def normalize_variant(variant_ref) -> str | None:
    if variant_ref is None or variant_ref == "":
        return None
    return str(variant_ref)


def item_key(item_kind, product_ref, variant_ref=None) -> str:
    kind = item_kind.value if isinstance(item_kind, Enum) else item_kind
    return json.dumps([str(kind), str(product_ref), normalize_variant(variant_ref)])

