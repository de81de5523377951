# Overview: Service-layer operations for supplier purchase intake.

"""
Purchase Intake Service

WHY: A supplier delivery either tops up items the shop already stocks or
introduces new ones. One purchase turns into registry updates/creations,
one IN movement per line, and a Purchase Record that can be reprinted.

PER LINE (input order):
1. Existing branch: the line names a source_item_id. Fetch the item, add
   the quantity, refresh expiry / purchase date / low-stock alert when
   given, append an IN movement.
2. Fallback: if the existing branch fails (item missing, other shop, unit
   mismatch, storage failure) it reports a failed RestockOutcome. Its
   writes are rolled back to a savepoint and the line continues as a new
   item. One bad reference never blocks the rest of the purchase.
3. New-item branch: create the item from the line and append an IN
   movement for the initial quantity.

VALIDATION:
A purchase with no line that has both a name and a quantity > 0 is rejected
before anything is written. Other invalid lines are skipped and logged.
Header fields and every valid line (checked as a would-be new item) are
validated up front too, so a bad field never leaves half a purchase behind.

NOTE: The fallback is not retried. A failed read is treated as absence.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from flask import current_app

from ..extensions import db
from ..errors import NotFoundError, PersistenceError, ValidationError
from ..models import PurchaseOrder, StockItem
from ..models.stock import DIRECTION_IN, UNIT_UNITS
from ..validation import ModelValidationPolicy, require_shop_id, validate_payload
from shopledger.time_utils import utcnow, parse_iso_datetime, parse_iso_date, to_iso_date
from . import persistence
from .concurrency import run_with_retry
from .movement_service import _record_movement_inner
from .stock_service import _clean_new_item, _create_stock_item_inner, get_stock_item


ZERO = Decimal("0")

PURCHASE_HEADER_POLICY = ModelValidationPolicy(
    writable_fields={"supplier", "invoice_number", "note", "reference"},
)


def normalize_number(value, fallback=ZERO):
    """
    Lenient number parsing for purchase forms.

    Blank, missing or unparseable values give the fallback instead of an
    error, the same way the intake form has always treated them.
    """
    if value is None or isinstance(value, bool):
        return fallback
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return fallback
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return fallback
    if not result.is_finite():
        return fallback
    return result


def _text(value) -> str:
    return str(value).strip() if value is not None else ""


@dataclass(frozen=True)
class PurchaseLine:
    source_item_id: int | None
    name: str
    category: str
    description: str
    sku: str
    supplier: str
    quantity: Decimal
    unit: str | None
    cost_price: Decimal | None
    selling_price: Decimal | None
    low_stock_alert: Decimal | None
    expiry_date: date | None

    @property
    def is_valid(self) -> bool:
        return bool(self.name) and self.quantity > ZERO


@dataclass(frozen=True)
class RestockOutcome:
    ok: bool
    item_id: int | None = None
    unit: str | None = None
    new_quantity: Decimal | None = None
    reason: str = ""


def _parse_source_item_id(value) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if not text:
        return None
    if not text.isdigit():
        # An id that can never exist; the existing branch will fall back
        return -1
    return int(text)


def _normalize_line(raw: dict) -> PurchaseLine:
    if not isinstance(raw, dict):
        raise ValidationError("Each purchase item must be an object")

    cost_price = normalize_number(raw.get("cost_price"), None)
    selling_price = normalize_number(raw.get("selling_price"), None)
    low_stock_alert = normalize_number(raw.get("low_stock_alert"), None)
    for label, value in (
        ("cost_price", cost_price),
        ("selling_price", selling_price),
        ("low_stock_alert", low_stock_alert),
    ):
        if value is not None and value < ZERO:
            raise ValidationError(f"{label} must be >= 0")

    try:
        expiry_date = parse_iso_date(raw.get("expiry_date"))
    except ValueError:
        raise ValidationError("expiry_date must be an ISO-8601 date")

    unit = _text(raw.get("unit")) or None

    return PurchaseLine(
        source_item_id=_parse_source_item_id(raw.get("source_item_id")),
        name=_text(raw.get("name")),
        category=_text(raw.get("category")),
        description=_text(raw.get("description")),
        sku=_text(raw.get("sku")),
        supplier=_text(raw.get("supplier")),
        quantity=normalize_number(raw.get("quantity"), ZERO),
        unit=unit,
        cost_price=cost_price,
        selling_price=selling_price,
        low_stock_alert=low_stock_alert,
        expiry_date=expiry_date,
    )


def _parse_purchase_date(value) -> datetime:
    if value is None or value == "":
        return utcnow()
    if isinstance(value, datetime):
        return value
    try:
        parsed = parse_iso_datetime(str(value))
    except ValueError:
        raise ValidationError("purchase_date must be an ISO-8601 date or datetime")
    return parsed or utcnow()


def _new_item_payload(line: PurchaseLine, *, supplier: str, purchase_date: datetime) -> dict:
    return {
        "name": line.name,
        "description": line.description,
        "category": line.category,
        "price": line.selling_price if line.selling_price is not None else ZERO,
        "cost_price": line.cost_price,
        "quantity": line.quantity,
        "quantity_unit": line.unit or UNIT_UNITS,
        "sku": line.sku,
        "supplier": supplier or line.supplier,
        "expiry_date": line.expiry_date,
        "low_stock_alert": line.low_stock_alert,
        "purchase_date": purchase_date,
    }


def _check_before_writing(lines: list[PurchaseLine], header: dict, purchase_date: datetime) -> None:
    """
    Reject a purchase whose header or new-item fields cannot be stored.

    Every valid line is checked as a new item because any restock may fall
    back to creating one.
    """
    validate_payload(
        model=PurchaseOrder,
        payload={key: value for key, value in header.items() if value},
        policy=PURCHASE_HEADER_POLICY,
        partial=True,
    )
    for index, line in enumerate(lines):
        if not line.is_valid:
            continue
        try:
            _clean_new_item(_new_item_payload(line, supplier=header["supplier"], purchase_date=purchase_date))
        except ValidationError as exc:
            raise ValidationError(f"Purchase line {index} ({line.name!r}): {exc}") from exc


def _restock_in_savepoint(
    shop_id: str,
    line: PurchaseLine,
    *,
    supplier: str,
    reference: str,
    note: str,
    purchase_date: datetime,
) -> RestockOutcome:
    item = get_stock_item(line.source_item_id, shop_id=shop_id, lock=True)
    if line.unit is not None and line.unit != item.quantity_unit:
        return RestockOutcome(
            ok=False,
            reason=f"unit {line.unit!r} does not match stock unit {item.quantity_unit!r}",
        )

    new_quantity = Decimal(item.quantity) + line.quantity
    patch = {"quantity": new_quantity, "purchase_date": purchase_date}
    if line.expiry_date is not None:
        patch["expiry_date"] = line.expiry_date
    if line.low_stock_alert is not None:
        patch["low_stock_alert"] = line.low_stock_alert
    persistence.update_record(item, patch)

    _record_movement_inner({
        "shop_id": shop_id,
        "item_id": item.id,
        "item_name": item.name,
        "direction": DIRECTION_IN,
        "quantity": line.quantity,
        "unit": item.quantity_unit,
        "cost_price": line.cost_price,
        "supplier": supplier or line.supplier or None,
        "reference": reference or None,
        "note": note or None,
        "expiry_date": line.expiry_date,
        "purchase_date": purchase_date,
    })
    return RestockOutcome(ok=True, item_id=item.id, unit=item.quantity_unit, new_quantity=new_quantity)


def _restock_existing(shop_id: str, line: PurchaseLine, **context) -> RestockOutcome:
    """
    Existing-item branch. A missing or unusable item is reported through the
    outcome, never raised; whatever the branch wrote is undone first.
    Conflicts and unexpected errors still propagate to run_with_retry.
    """
    savepoint = db.session.begin_nested()
    try:
        outcome = _restock_in_savepoint(shop_id, line, **context)
    except (NotFoundError, PersistenceError) as exc:
        savepoint.rollback()
        return RestockOutcome(ok=False, reason=str(exc))
    except Exception:
        savepoint.rollback()
        raise

    if outcome.ok:
        savepoint.commit()
    else:
        savepoint.rollback()
    return outcome


def _create_new_item(
    shop_id: str,
    line: PurchaseLine,
    *,
    supplier: str,
    reference: str,
    note: str,
    purchase_date: datetime,
) -> StockItem:
    """New-item branch: register the item, then log its opening IN movement."""
    item = _create_stock_item_inner(shop_id, _new_item_payload(line, supplier=supplier, purchase_date=purchase_date))
    _record_movement_inner({
        "shop_id": shop_id,
        "item_id": item.id,
        "item_name": item.name,
        "direction": DIRECTION_IN,
        "quantity": line.quantity,
        "unit": item.quantity_unit,
        "cost_price": line.cost_price,
        "supplier": supplier or line.supplier or None,
        "reference": reference or None,
        "note": note or None,
        "expiry_date": line.expiry_date,
        "purchase_date": purchase_date,
    })
    return item


def _resolved_line(line: PurchaseLine, *, item_id: int, unit: str, existing: bool) -> dict:
    return {
        "stock_item_id": item_id,
        "existing_item": existing,
        "name": line.name,
        "category": line.category,
        "description": line.description,
        "sku": line.sku,
        "quantity": str(line.quantity),
        "unit": unit,
        "cost_price": str(line.cost_price if line.cost_price is not None else ZERO),
        "selling_price": str(line.selling_price) if line.selling_price is not None else None,
        "expiry_date": to_iso_date(line.expiry_date),
    }


def create_purchase(shop_id, purchase_payload: dict | None) -> PurchaseOrder:
    """
    Turn a supplier purchase into registry/ledger effects and a Purchase Record.

    Payload:
    {
        "supplier": "Acme Wholesale",
        "invoice_number": "INV-1001",
        "purchase_date": "2025-03-01",          (optional, default now)
        "note": "...", "reference": "...",
        "items": [
            {"source_item_id": 12, "name": "Rice", "quantity": 10, "cost_price": 2.5},
            {"name": "Lentils", "quantity": 5, "unit": "kg", "selling_price": 4}
        ]
    }

    Returns:
        The persisted PurchaseOrder

    Raises:
        ValidationError: no shop, no items, or no line with a name and quantity > 0
    """
    shop_id = require_shop_id(shop_id)
    payload = purchase_payload or {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid purchase payload")

    raw_items = payload.get("items") or []
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("Add at least one item to the purchase")

    lines = [_normalize_line(raw) for raw in raw_items]
    if not any(line.is_valid for line in lines):
        raise ValidationError("Purchase needs at least one item with a name and a quantity above zero")

    supplier = _text(payload.get("supplier"))
    invoice_number = _text(payload.get("invoice_number"))
    note = _text(payload.get("note"))
    reference = _text(payload.get("reference"))
    purchase_date = _parse_purchase_date(payload.get("purchase_date"))
    _check_before_writing(
        lines,
        {"supplier": supplier, "invoice_number": invoice_number, "note": note, "reference": reference},
        purchase_date,
    )

    def _op():
        resolved = []
        fallbacks = []
        skipped = []
        for index, line in enumerate(lines):
            if not line.is_valid:
                skipped.append((index, line.name))
                continue

            outcome = None
            if line.source_item_id is not None:
                outcome = _restock_existing(
                    shop_id,
                    line,
                    supplier=supplier,
                    reference=reference,
                    note=note,
                    purchase_date=purchase_date,
                )
                if not outcome.ok:
                    fallbacks.append((index, line.source_item_id, outcome.reason))

            if outcome is not None and outcome.ok:
                resolved.append(_resolved_line(line, item_id=outcome.item_id, unit=outcome.unit, existing=True))
            else:
                item = _create_new_item(
                    shop_id,
                    line,
                    supplier=supplier,
                    reference=reference,
                    note=note,
                    purchase_date=purchase_date,
                )
                resolved.append(_resolved_line(line, item_id=item.id, unit=item.quantity_unit, existing=False))

        purchase = persistence.create(
            PurchaseOrder,
            shop_id=shop_id,
            supplier=supplier,
            invoice_number=invoice_number,
            purchase_date=purchase_date,
            note=note,
            reference=reference,
            items=resolved,
        )
        db.session.commit()
        return purchase, fallbacks, skipped

    purchase, fallbacks, skipped = run_with_retry(_op)

    for index, source_item_id, reason in fallbacks:
        current_app.logger.warning(
            "Purchase %s line %s: could not restock item %s (%s); created a new item instead",
            purchase.id, index, source_item_id, reason,
        )
    for index, name in skipped:
        current_app.logger.warning(
            "Purchase %s line %s (%r) skipped: needs a name and a quantity above zero",
            purchase.id, index, name,
        )
    current_app.logger.info(
        "Recorded purchase %s for shop %s with %s lines", purchase.id, shop_id, len(purchase.items)
    )
    return purchase


def get_purchase(purchase_id: int, *, shop_id: str | None = None) -> PurchaseOrder:
    """Read a purchase back (for reprinting)."""
    purchase = persistence.get_by_id(PurchaseOrder, purchase_id)
    if shop_id is not None and purchase.shop_id != str(shop_id):
        raise NotFoundError(f"purchase_orders record {purchase_id} not found")
    return purchase


def list_purchases(shop_id) -> list[PurchaseOrder]:
    """Purchases for a shop, newest purchase date (or creation) first."""
    shop_id = require_shop_id(shop_id)
    purchases = persistence.query_by_field(PurchaseOrder, "shop_id", shop_id)
    return sorted(
        purchases,
        key=lambda p: (p.purchase_date or p.created_at, p.created_at, p.id),
        reverse=True,
    )
