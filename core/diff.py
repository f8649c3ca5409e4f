# core/diff.py
from typing import Dict, List, Optional

from .models import (
    InventoryChanges,
    InventoryState,
    PriceDrop,
    Product,
    now_utc_iso,
)


def _index(products: List[Product]) -> Dict[str, Product]:
    # duplicate ids: last one wins
    return {p.id: p for p in products}


def diff_inventory(
    stored: Optional[InventoryState], current: List[Product]
) -> InventoryChanges:
    """
    Compute new products, price drops and removed products between the stored
    snapshot and the freshly scraped products.
    - stored: previous InventoryState, or None on the first run
    - current: list of Products from this run
    Only strict price decreases count as drops.
    """
    stored_map = _index(stored.products if stored else [])
    current_map = _index(current)

    changes = InventoryChanges()

    for pid, product in current_map.items():
        existing = stored_map.get(pid)
        if existing is None:
            changes.new_products.append(product)
        elif product.price < existing.price:
            changes.price_drops.append(
                PriceDrop(product=product, previous_price=existing.price)
            )

    for pid, product in stored_map.items():
        if pid not in current_map:
            changes.removed_products.append(product)

    return changes


def merge_inventory(
    stored: Optional[InventoryState], current: List[Product]
) -> InventoryState:
    """
    Build the next snapshot from this run's products, keeping the stored
    first_seen for any id that was already tracked.
    """
    stored_map = _index(stored.products if stored else [])

    merged: List[Product] = []
    for product in current:
        existing = stored_map.get(product.id)
        if existing is not None and existing.first_seen:
            merged.append(product.with_first_seen(existing.first_seen))
        else:
            merged.append(product.with_first_seen(product.first_seen))

    return InventoryState(last_updated=now_utc_iso(), products=merged)


def has_changes(changes: InventoryChanges) -> bool:
    """Removals alone never warrant a notification."""
    return bool(changes.new_products or changes.price_drops)
