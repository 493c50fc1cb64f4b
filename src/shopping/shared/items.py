"""Line identity and merge helpers shared by carts and wishlists.

A line is identified by the (item kind, product reference, variant
reference) tuple. A missing variant and an empty variant are the same
thing; any other variant value is distinct from "no variant".
"""

import json
from enum import Enum

from protean.exceptions import ValidationError


class ItemKind(Enum):
    CATALOG_ITEM = "catalog-item"
    PREBUILT_ITEM = "prebuilt-item"


class MergeStrategy(Enum):
    MERGE = "merge"
    REPLACE = "replace"


class MergeStatus(Enum):
    SYNCED = "synced"
    FAILED = "failed"


def normalize_ref(ref):
    """Collapse empty references to None and everything else to str."""
    if ref is None or ref == "":
        return None
    return str(ref)


def is_valid_kind(item_kind) -> bool:
    return item_kind in {kind.value for kind in ItemKind}


def ensure_valid_kind(item_kind):
    if not is_valid_kind(item_kind):
        raise ValidationError({"item_kind": [f"Unknown item kind '{item_kind}'"]})


def parse_strategy(strategy) -> MergeStrategy:
    try:
        return MergeStrategy(strategy or MergeStrategy.MERGE.value)
    except ValueError:
        raise ValidationError({"strategy": [f"Unknown merge strategy '{strategy}'"]}) from None


def dump_snapshot(snapshot):
    """Snapshots are stored as JSON text; accept dicts or pre-encoded text."""
    if snapshot is None or snapshot == "":
        return None
    if isinstance(snapshot, str):
        return snapshot
    return json.dumps(snapshot)


def load_snapshot(snapshot):
    if not snapshot:
        return None
    try:
        value = json.loads(snapshot)
    except (json.JSONDecodeError, TypeError):
        return None
    return value if isinstance(value, dict) else None


def merge_token(source_session_id, guest_item) -> str:
    """Idempotency token for one guest record within one guest session.

    Prefers the guest-local item id; falls back to the identity tuple so
    clients that do not send ids still merge idempotently.
    """
    ident = guest_item.get("guest_item_id")
    if not ident:
        ident = "|".join(
            [
                str(guest_item.get("item_kind") or ""),
                str(guest_item.get("product_ref") or ""),
                normalize_ref(guest_item.get("variant_ref")) or "",
            ]
        )
    return f"{source_session_id or 'anonymous'}/{ident}"


def prune_merge_tokens(tokens: dict, source_session_id, keep: int) -> dict:
    """Keep only the tokens of the ``keep`` most recently merged guest sessions.

    Tokens are ordered oldest session first; the tokens of ``source_session_id``
    move to the end, so a session that is merged again counts as recent.
    """
    current = f"{source_session_id or 'anonymous'}/"
    ordered = {token: count for token, count in tokens.items() if not token.startswith(current)}
    ordered.update((token, count) for token, count in tokens.items() if token.startswith(current))
    sessions = list(dict.fromkeys(_session_of(token) for token in ordered))
    recent = set(sessions[-keep:]) if keep > 0 else set()
    return {token: count for token, count in ordered.items() if _session_of(token) in recent}


def _session_of(token: str) -> str:
    return token.split("/", 1)[0]


def merge_outcome(guest_item, status: MergeStatus, reason=None) -> dict:
    return {
        "item_kind": normalize_ref(guest_item.get("item_kind")),
        "product_ref": normalize_ref(guest_item.get("product_ref")),
        "variant_ref": normalize_ref(guest_item.get("variant_ref")),
        "status": status.value,
        "reason": reason,
    }
