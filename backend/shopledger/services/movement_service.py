# Overview: Service-layer operations for the stock movement ledger.

from __future__ import annotations

from ..extensions import db
from ..errors import ValidationError
from ..models import StockMovement
from ..models.stock import DIRECTIONS, UNIT_UNITS
from ..validation import ModelValidationPolicy, validate_payload, require_shop_id
from . import persistence
"""
Stock Movement Ledger Invariants (authoritative)

- Append-only: a movement is never updated or deleted once written.
  Mistakes are compensated with a new movement in the other direction.
- No business rules here. The ledger is a history sink; it only rejects
  malformed input (no shop, no item, no positive quantity, bad direction).
- Listing is newest-first by created_at, ties broken by id (newest write
  first), so movements written in the same instant keep their order.
"""


MOVEMENT_POLICY = ModelValidationPolicy(
    writable_fields={
        "shop_id",
        "item_id",
        "item_name",
        "direction",
        "quantity",
        "unit",
        "cost_price",
        "supplier",
        "reference",
        "note",
        "expiry_date",
        "purchase_date",
        "created_at",
    },
    required_on_create={"shop_id", "item_id", "direction", "quantity"},
)


def _record_movement_inner(movement: dict) -> StockMovement:
    """Validate and append without committing; callers own the transaction."""
    patch = validate_payload(
        model=StockMovement,
        payload=movement,
        policy=MOVEMENT_POLICY,
        partial=False,
    )
    patch["shop_id"] = require_shop_id(patch.get("shop_id"))

    direction = (patch.get("direction") or "").upper()
    if direction not in DIRECTIONS:
        raise ValidationError(f"direction must be one of: {', '.join(sorted(DIRECTIONS))}")
    patch["direction"] = direction

    if patch["quantity"] <= 0:
        raise ValidationError("quantity must be > 0")

    if not patch.get("unit"):
        patch["unit"] = UNIT_UNITS
    if patch.get("created_at") is None:
        patch.pop("created_at", None)  # model default stamps utcnow()

    return persistence.create(StockMovement, **patch)


def record_movement(movement: dict) -> int:
    """
    Append one movement and commit.

    Raises:
        ValidationError: missing shop_id/item_id/quantity or malformed values
    """
    mv = _record_movement_inner(movement)
    db.session.commit()
    return mv.id


def list_movements(shop_id, item_id: int | None = None) -> list[StockMovement]:
    """All movements for a shop (optionally one item), newest first."""
    shop_id = require_shop_id(shop_id)
    movements = persistence.query_by_field(StockMovement, "shop_id", shop_id)
    if item_id is not None:
        movements = [mv for mv in movements if mv.item_id == int(item_id)]
    return sorted(movements, key=lambda mv: (mv.created_at, mv.id), reverse=True)
