from __future__ import annotations

from decimal import Decimal

from sqlalchemy import event

from ..extensions import db
from ..errors import ValidationError
from shopledger.time_utils import utcnow, to_utc_z


class PurchaseOrder(db.Model):
    """
    Durable record of one supplier purchase.

    WHY items is JSON: the record is a snapshot of what was received and how
    each line was resolved (restocked an existing item or created a new one).
    It is read back for reprinting and never edited, so the lines are not
    normalized into their own table.

    Each entry in items:
        stock_item_id, existing_item, name, category, description, sku,
        quantity, unit, cost_price, selling_price, expiry_date
    Decimal fields are stored as strings to keep their exact value.
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.Index("ix_purchase_orders_shop_date", "shop_id", "purchase_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.String(64), nullable=False, index=True)

    supplier = db.Column(db.String(255), nullable=False, default="")
    invoice_number = db.Column(db.String(128), nullable=False, default="")
    purchase_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    note = db.Column(db.Text, nullable=False, default="")
    reference = db.Column(db.String(255), nullable=False, default="")

    items = db.Column(db.JSON, nullable=False, default=list)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<PurchaseOrder id={self.id} shop_id={self.shop_id!r} supplier={self.supplier!r}>"

    @property
    def total_cost(self):
        total = Decimal("0")
        for line in self.items or []:
            cost = line.get("cost_price")
            if cost is not None:
                total += Decimal(cost) * Decimal(line.get("quantity") or "0")
        return total

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shop_id": self.shop_id,
            "supplier": self.supplier,
            "invoice_number": self.invoice_number,
            "purchase_date": to_utc_z(self.purchase_date),
            "note": self.note,
            "reference": self.reference,
            "items": list(self.items or []),
            "total_cost": str(self.total_cost),
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(PurchaseOrder, "before_update")
def _refuse_purchase_update(mapper, connection, target):
    raise ValidationError("Purchase records are immutable")


@event.listens_for(PurchaseOrder, "before_delete")
def _refuse_purchase_delete(mapper, connection, target):
    raise ValidationError("Purchase records are immutable and cannot be deleted")
