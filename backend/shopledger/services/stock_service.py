# Overview: Service-layer operations for the stock item registry.

"""
Stock Item Registry

Owns catalog records: name, prices, quantity on hand, unit, identifiers.

INVARIANTS:
- quantity >= 0, price >= 0, cost_price (when set) >= 0
- quantity_unit never changes once an item exists; a different unit is a
  different item. Updates that try to change it are rejected.

The registry itself does no quantity arithmetic. Sales/returns go through
reconcile_service and purchases through purchase_service, both of which
lock the rows they change.
"""

from __future__ import annotations

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import StockItem
from ..models.stock import UNIT_UNITS
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_stock_item,
    require_shop_id,
)
from . import persistence
from .concurrency import run_with_retry


STOCK_ITEM_POLICY = ModelValidationPolicy(
    writable_fields={
        "name",
        "description",
        "category",
        "price",
        "cost_price",
        "quantity",
        "quantity_unit",
        "sku",
        "barcode",
        "supplier",
        "low_stock_alert",
        "expiry_date",
        "purchase_date",
    },
    required_on_create={"name", "price", "quantity"},
)


def _clean_new_item(item_data: dict) -> dict:
    """Validate a create payload without touching the session."""
    patch = validate_payload(
        model=StockItem,
        payload=item_data,
        policy=STOCK_ITEM_POLICY,
        partial=False,
    )
    enforce_rules_stock_item(patch)
    if not patch.get("quantity_unit"):
        patch["quantity_unit"] = UNIT_UNITS
    return patch


def _create_stock_item_inner(shop_id: str, item_data: dict) -> StockItem:
    """Core create logic without commit. Used by purchase intake."""
    return persistence.create(StockItem, shop_id=shop_id, **_clean_new_item(item_data))


def create_stock_item(shop_id, item_data: dict) -> int:
    """
    Register a new stock item in a shop.

    Raises:
        ValidationError: blank name, negative price/quantity/cost, unknown fields
    """
    shop_id = require_shop_id(shop_id)
    item = _create_stock_item_inner(shop_id, item_data)
    db.session.commit()
    return item.id


def get_stock_item(item_id: int, *, shop_id: str | None = None, lock: bool = False) -> StockItem:
    """
    Fetch one item. When shop_id is given, an item from another shop is
    reported as missing rather than leaked.
    """
    item = persistence.get_by_id(StockItem, item_id, lock=lock)
    if shop_id is not None and item.shop_id != str(shop_id):
        raise NotFoundError(f"stock_items record {item_id} not found")
    return item


def update_stock_item(item_id: int, patch: dict) -> StockItem:
    """
    Partial update. updated_at and version_id are refreshed on every write.

    Raises:
        NotFoundError: item does not exist
        ValidationError: invalid values, or an attempt to change quantity_unit
    """
    cleaned = validate_payload(
        model=StockItem,
        payload=patch,
        policy=STOCK_ITEM_POLICY,
        partial=True,
    )
    enforce_rules_stock_item(cleaned)

    def _op():
        if "quantity_unit" in cleaned:
            current = get_stock_item(item_id, lock=True)
            new_unit = cleaned["quantity_unit"]
            if new_unit != current.quantity_unit:
                raise ValidationError(
                    f"quantity_unit cannot change from {current.quantity_unit!r} to {new_unit!r}; "
                    "register a new item for a different unit"
                )
        item = persistence.update_by_id(StockItem, item_id, cleaned, lock=True)
        db.session.commit()
        return item

    return run_with_retry(_op)


def list_stock_items(shop_id) -> list[StockItem]:
    """All items in a shop, unordered."""
    shop_id = require_shop_id(shop_id)
    return persistence.query_by_field(StockItem, "shop_id", shop_id)


def delete_stock_item(item_id: int) -> None:
    """
    Hard delete. Movements and purchase records keep their own name
    snapshot, so nothing cascades.
    """
    persistence.delete_by_id(StockItem, item_id)
    db.session.commit()


def find_by_code(shop_id, code: str) -> StockItem | None:
    """
    Scanner lookup: exact, case-insensitive match on SKU or barcode.

    Returns the lowest-id match, or None.
    """
    shop_id = require_shop_id(shop_id)
    needle = (code or "").strip().lower()
    if not needle:
        return None
    for item in sorted(list_stock_items(shop_id), key=lambda i: i.id):
        if (item.sku or "").strip().lower() == needle:
            return item
        if (item.barcode or "").strip().lower() == needle:
            return item
    return None


def list_low_stock(shop_id) -> list[StockItem]:
    """Items at or below their low-stock alert, sorted by name."""
    items = [item for item in list_stock_items(shop_id) if item.is_low_stock]
    return sorted(items, key=lambda i: (i.name.lower(), i.id))
