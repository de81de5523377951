# Overview: Service-layer operations that keep stock quantities in step with sales and returns.

"""
Quantity Reconciler

WHY: Receipts carry item names, not item ids. Every sale deducts and every
return restores the matching registry quantity.

MATCHING RULES:
- Exact, case-sensitive name match within the shop.
- Duplicate names resolve to the lowest item id (first registered wins).
- A line unit must be absent or equal to the stored unit. Units are never
  converted.

SKIP POLICY:
Unmatched lines and unit mismatches do not fail the sale. Checkout must not
be blocked by a catalog problem, so those lines are skipped, reported in the
ReconcileResult and logged as warnings (not errors).

CONCURRENCY:
The whole batch runs in one transaction. The shop's items are read with
SELECT ... FOR UPDATE and written with a version_id check; a conflicting
writer causes StaleDataError and run_with_retry re-runs the batch against
fresh quantities. Two concurrent sales cannot overwrite each other.

QUANTITY FLOOR:
Sales clamp at zero: new = max(0, stored - sold). Returns add without a
ceiling; the caller bounds return quantities by the original receipt.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..errors import ValidationError
from ..models import StockItem
from ..models.stock import DIRECTION_IN, DIRECTION_OUT
from ..validation import require_shop_id, to_decimal
from . import persistence
from .concurrency import run_with_retry
from .movement_service import _record_movement_inner


SKIP_NOT_FOUND = "not_found"
SKIP_UNIT_MISMATCH = "unit_mismatch"
SKIP_INVALID_QUANTITY = "invalid_quantity"

ZERO = Decimal("0")


@dataclass(frozen=True)
class AppliedLine:
    item_id: int
    name: str
    quantity: Decimal
    before: Decimal
    after: Decimal


@dataclass(frozen=True)
class SkippedLine:
    name: str | None
    reason: str
    detail: str = ""


@dataclass
class ReconcileResult:
    direction: str
    applied: list[AppliedLine] = field(default_factory=list)
    skipped: list[SkippedLine] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "direction": self.direction,
            "applied": [
                {
                    "item_id": line.item_id,
                    "name": line.name,
                    "quantity": str(line.quantity),
                    "before": str(line.before),
                    "after": str(line.after),
                }
                for line in self.applied
            ],
            "skipped": [
                {"name": line.name, "reason": line.reason, "detail": line.detail}
                for line in self.skipped
            ],
        }


def _line_unit(line: dict) -> str | None:
    unit = line.get("unit")
    if unit is None:
        unit = line.get("quantity_unit")
    if unit is None:
        return None
    unit = str(unit).strip()
    return unit or None


def _first_by_name(items: list[StockItem]) -> dict[str, StockItem]:
    by_name: dict[str, StockItem] = {}
    for item in sorted(items, key=lambda i: i.id):
        by_name.setdefault(item.name, item)
    return by_name


def _prepare_lines(line_items) -> list[dict]:
    if line_items is None:
        return []
    if not isinstance(line_items, (list, tuple)):
        raise ValidationError("line_items must be a list")
    return [line if isinstance(line, dict) else {} for line in line_items]


def _reconcile_inner(shop_id: str, lines: list[dict], *, direction: str, reference: str | None) -> ReconcileResult:
    """Apply one batch without committing; callers own the transaction and retry."""
    record_movements = current_app.config.get("SHOPLEDGER_RECORD_SALE_MOVEMENTS", False)
    result = ReconcileResult(direction=direction)
    items = persistence.query_by_field(StockItem, "shop_id", shop_id, lock=True)
    by_name = _first_by_name(items)

    for line in lines:
        name = line.get("name")
        try:
            quantity = to_decimal(line.get("quantity"), "quantity")
        except ValidationError as exc:
            result.skipped.append(SkippedLine(name, SKIP_INVALID_QUANTITY, str(exc)))
            continue
        if quantity <= ZERO:
            result.skipped.append(SkippedLine(name, SKIP_INVALID_QUANTITY, "quantity must be > 0"))
            continue

        item = by_name.get(name)
        if item is None:
            result.skipped.append(SkippedLine(name, SKIP_NOT_FOUND))
            continue

        unit = _line_unit(line)
        if unit is not None and unit != item.quantity_unit:
            result.skipped.append(
                SkippedLine(name, SKIP_UNIT_MISMATCH, f"line unit {unit!r}, stock unit {item.quantity_unit!r}")
            )
            continue

        before = Decimal(item.quantity)
        if direction == DIRECTION_OUT:
            after = max(ZERO, before - quantity)
        else:
            after = before + quantity
        persistence.update_record(item, {"quantity": after})

        moved = abs(after - before)
        if record_movements and moved > ZERO:
            _record_movement_inner({
                "shop_id": shop_id,
                "item_id": item.id,
                "item_name": item.name,
                "direction": direction,
                "quantity": moved,
                "unit": item.quantity_unit,
                "reference": reference,
                "note": "Sale" if direction == DIRECTION_OUT else "Return",
            })

        result.applied.append(AppliedLine(item.id, item.name, quantity, before, after))

    return result


def log_skipped(shop_id: str, result: ReconcileResult) -> None:
    for skipped in result.skipped:
        current_app.logger.warning(
            "Skipped %s line %r in shop %s: %s %s",
            "sale" if result.direction == DIRECTION_OUT else "return",
            skipped.name,
            shop_id,
            skipped.reason,
            skipped.detail,
        )


def _reconcile(shop_id, line_items, *, direction: str, reference: str | None) -> ReconcileResult:
    shop_id = require_shop_id(shop_id)
    lines = _prepare_lines(line_items)

    def _op():
        result = _reconcile_inner(shop_id, lines, direction=direction, reference=reference)
        db.session.commit()
        return result

    result = run_with_retry(_op)
    log_skipped(shop_id, result)
    return result


def apply_sale(shop_id, line_items, *, reference: str | None = None) -> ReconcileResult:
    """
    Deduct sold quantities from the registry.

    Each line: {"name": str, "quantity": number, "unit": str | None}.
    Lines that cannot be matched are skipped, never raised.
    """
    return _reconcile(shop_id, line_items, direction=DIRECTION_OUT, reference=reference)


def apply_return(shop_id, line_items, *, reference: str | None = None) -> ReconcileResult:
    """
    Restore returned quantities to the registry.

    Mirror of apply_sale with the same matching and skip rules.
    """
    return _reconcile(shop_id, line_items, direction=DIRECTION_IN, reference=reference)
