"""
Ordering rules for the items of one itinerary day.

Items are plain dicts ``{"id": str, "pointId": str, "order": int}`` as stored in
``Itinerary.items``. Nothing here touches the database; the CRUD layer reads the
list, applies one of these functions and writes the result back.
"""

from typing import Any, Dict, Iterable, List, Optional
from uuid import uuid4

Item = Dict[str, Any]


def new_item_id() -> str:
    return uuid4().hex


def next_order(items: Iterable[Item]) -> int:
    """``max(existing orders, default 0) + 1``.

    Order values are not assumed contiguous or unique; items with a missing or
    non-integer order are ignored.
    """
    orders = [
        it.get("order") for it in items
        if isinstance(it.get("order"), int) and not isinstance(it.get("order"), bool)
    ]
    return max(orders, default=0) + 1


def append_item(items: List[Item], point_id: str) -> tuple[List[Item], Item]:
    """Return a new list with one item appended at the end, plus that item.

    Append semantics, not sorted insertion: the new item always goes last in
    storage order.
    """
    item = {"id": new_item_id(), "pointId": str(point_id), "order": next_order(items)}
    return [*items, item], item


def normalize_reorder(entries: Iterable[Dict[str, Any]]) -> List[Item]:
    """Build the replacement list for a reorder.

    Each entry carries ``pointId`` (or a nested ``point`` with an ``id``), an
    optional existing ``id`` and an explicit ``order``. Ids are passed through
    untouched when present; a missing id gets a fresh one, which makes that
    entry a new item identity.
    """
    result = []
    for entry in entries:
        point_id = entry.get("pointId")
        if point_id is None and isinstance(entry.get("point"), dict):
            point_id = entry["point"].get("id")
        result.append({
            "id": entry.get("id") or new_item_id(),
            "pointId": str(point_id) if point_id is not None else None,
            "order": entry["order"],
        })
    return result


def remove_item(items: List[Item], item_id: str) -> Optional[List[Item]]:
    """Filter out the item with ``item_id``; ``None`` if no such item."""
    kept = [it for it in items if it.get("id") != item_id]
    if len(kept) == len(items):
        return None
    return kept


def strip_point(items: List[Item], point_id: str) -> tuple[List[Item], bool]:
    """Remove every item referencing ``point_id``; report whether anything changed."""
    point_id = str(point_id)
    kept = [it for it in items if it.get("pointId") != point_id]
    return kept, len(kept) != len(items)


def sorted_by_order(items: List[Item]) -> List[Item]:
    """Stable sort by ``order``; items without a usable order keep their place at the end."""
    def key(it):
        order = it.get("order")
        if isinstance(order, (int, float)) and not isinstance(order, bool):
            return (0, order)
        return (1, 0)
    return sorted(items, key=key)
