from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from ..errors import ValidationError
from shopledger.time_utils import utcnow, to_utc_z, to_iso_date


UNIT_UNITS = "units"
UNIT_KG = "kg"

DIRECTION_IN = "IN"
DIRECTION_OUT = "OUT"
DIRECTIONS = {DIRECTION_IN, DIRECTION_OUT}


def _dec(value):
    return str(value) if value is not None else None


class StockItem(db.Model):
    """
    Catalog record for one sellable item in a shop.

    MULTI-TENANT: Items are scoped to a shop via shop_id (opaque tenant id).

    QUANTITY: Stored directly and mutated by sales, returns and purchases.
    Fractional quantities are allowed for weight-based units (kg).
    quantity_unit is fixed for the life of the item; a different unit is a
    different item.

    CONCURRENCY: version_id is an optimistic token. Every UPDATE checks it,
    so two writers that read the same quantity cannot both win.

    LOOKUP PATTERN:
    - Sale/return matching: exact name within the shop (lowest id wins)
    - Scanner lookup: sku or barcode, case-insensitive
    """
    __tablename__ = "stock_items"
    __table_args__ = (
        db.Index("ix_stock_items_shop_name", "shop_id", "name"),
        db.Index("ix_stock_items_shop_sku", "shop_id", "sku"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.String(64), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(128), nullable=True)

    price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    cost_price = db.Column(db.Numeric(12, 2), nullable=True)

    quantity = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    quantity_unit = db.Column(db.String(32), nullable=False, default=UNIT_UNITS)

    sku = db.Column(db.String(64), nullable=True)
    barcode = db.Column(db.String(128), nullable=True)
    supplier = db.Column(db.String(255), nullable=True)

    low_stock_alert = db.Column(db.Numeric(14, 3), nullable=True)
    expiry_date = db.Column(db.Date, nullable=True)
    purchase_date = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<StockItem id={self.id} name={self.name!r} shop_id={self.shop_id!r}>"

    @property
    def is_low_stock(self) -> bool:
        if self.low_stock_alert is None:
            return False
        return self.quantity <= self.low_stock_alert

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shop_id": self.shop_id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "price": _dec(self.price),
            "cost_price": _dec(self.cost_price),
            "quantity": _dec(self.quantity),
            "quantity_unit": self.quantity_unit,
            "sku": self.sku,
            "barcode": self.barcode,
            "supplier": self.supplier,
            "low_stock_alert": _dec(self.low_stock_alert),
            "is_low_stock": self.is_low_stock,
            "expiry_date": to_iso_date(self.expiry_date),
            "purchase_date": to_utc_z(self.purchase_date),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only history of quantity changes.

    IMMUTABLE: rows are never updated or deleted. A wrong movement is
    compensated by writing another one.

    item_id is a soft reference: deleting a stock item leaves its history
    behind, and item_name keeps the name as it was at movement time.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_shop_created", "shop_id", "created_at"),
        db.Index("ix_stock_movements_shop_item", "shop_id", "item_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.String(64), nullable=False, index=True)
    item_id = db.Column(db.Integer, nullable=False)
    item_name = db.Column(db.String(255), nullable=True)

    direction = db.Column(db.String(8), nullable=False)  # IN / OUT
    quantity = db.Column(db.Numeric(14, 3), nullable=False)
    unit = db.Column(db.String(32), nullable=False, default=UNIT_UNITS)
    cost_price = db.Column(db.Numeric(12, 2), nullable=True)

    supplier = db.Column(db.String(255), nullable=True)
    reference = db.Column(db.String(255), nullable=True)
    note = db.Column(db.Text, nullable=True)
    expiry_date = db.Column(db.Date, nullable=True)
    purchase_date = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shop_id": self.shop_id,
            "item_id": self.item_id,
            "item_name": self.item_name,
            "direction": self.direction,
            "quantity": _dec(self.quantity),
            "unit": self.unit,
            "cost_price": _dec(self.cost_price),
            "supplier": self.supplier,
            "reference": self.reference,
            "note": self.note,
            "expiry_date": to_iso_date(self.expiry_date),
            "purchase_date": to_utc_z(self.purchase_date),
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(StockMovement, "before_update")
def _refuse_movement_update(mapper, connection, target):
    raise ValidationError("Stock movements are immutable")


@event.listens_for(StockMovement, "before_delete")
def _refuse_movement_delete(mapper, connection, target):
    raise ValidationError("Stock movements are immutable and cannot be deleted")
