# Overview: Pytest coverage for purchase intake (restock, fallback, new items).

"""
Purchase Intake Tests

Covers the two-branch line processing:
- existing item restocked in place (one update, one IN movement)
- missing / foreign / unit-mismatched item falls back to a new item
- invalid lines skipped, all-invalid purchases rejected with nothing written
"""

from datetime import date, datetime
from decimal import Decimal

import pytest

from shopledger.errors import NotFoundError, PersistenceError, ValidationError
from shopledger.models import PurchaseOrder, StockItem, StockMovement
from shopledger.services import purchase_service
from shopledger.services.purchase_service import normalize_number
from conftest import SHOP_A, SHOP_B, reload


class TestNormalizeNumber:
    @pytest.mark.parametrize("raw, expected", [
        ("2.50", Decimal("2.50")),
        (3, Decimal("3")),
        (0.1, Decimal("0.1")),
        ("", Decimal("0")),
        (None, Decimal("0")),
        ("ten", Decimal("0")),
        ("NaN", Decimal("0")),
        (True, Decimal("0")),
    ])
    def test_lenient(self, raw, expected):
        assert normalize_number(raw) == expected

    def test_custom_fallback(self):
        assert normalize_number("x", None) is None


class TestCreatePurchase:
    def test_existing_and_new_line(self, db_session, make_item):
        rice = make_item("Rice", "10", unit="kg")

        purchase = purchase_service.create_purchase(SHOP_A, {
            "supplier": "Acme Wholesale",
            "invoice_number": "INV-1",
            "items": [
                {"source_item_id": rice.id, "name": "Rice", "quantity": 5, "unit": "kg", "cost_price": "1.80"},
                {"name": "Beans", "quantity": 4, "cost_price": "0.90", "selling_price": "1.50"},
            ],
        })

        items = db_session.query(StockItem).order_by(StockItem.id).all()
        assert len(items) == 2
        assert reload(rice).quantity == Decimal("15")
        assert reload(rice).version_id == 2

        beans = items[1]
        assert beans.name == "Beans"
        assert beans.quantity == Decimal("4")
        assert beans.price == Decimal("1.50")
        assert beans.quantity_unit == "units"

        movements = db_session.query(StockMovement).all()
        assert len(movements) == 2
        assert {mv.direction for mv in movements} == {"IN"}
        assert {mv.item_id for mv in movements} == {rice.id, beans.id}
        assert {mv.supplier for mv in movements} == {"Acme Wholesale"}

        stored = db_session.get(PurchaseOrder, purchase.id)
        assert [line["existing_item"] for line in stored.items] == [True, False]
        assert [line["stock_item_id"] for line in stored.items] == [rice.id, beans.id]
        assert stored.total_cost == Decimal("12.60")

    def test_missing_item_falls_back_to_new(self, db_session):
        purchase = purchase_service.create_purchase(SHOP_A, {
            "items": [{"source_item_id": 4242, "name": "Oil", "quantity": 2}],
        })

        items = db_session.query(StockItem).all()
        assert len(items) == 1
        assert items[0].name == "Oil"
        assert purchase.items[0]["existing_item"] is False
        assert db_session.query(StockMovement).count() == 1

    def test_non_numeric_source_id_falls_back(self, db_session):
        purchase_service.create_purchase(SHOP_A, {
            "items": [{"source_item_id": "abc", "name": "Oil", "quantity": 2}],
        })
        assert db_session.query(StockItem).count() == 1

    def test_other_shop_item_not_restocked(self, db_session, make_item):
        theirs = make_item("Oil", "1", shop_id=SHOP_B)

        purchase_service.create_purchase(SHOP_A, {
            "items": [{"source_item_id": theirs.id, "name": "Oil", "quantity": 2}],
        })

        assert reload(theirs).quantity == Decimal("1")
        mine = db_session.query(StockItem).filter_by(shop_id=SHOP_A).one()
        assert mine.quantity == Decimal("2")

    def test_unit_mismatch_creates_new_item(self, db_session, make_item):
        sugar = make_item("Sugar", "3", unit="kg")

        purchase_service.create_purchase(SHOP_A, {
            "items": [{"source_item_id": sugar.id, "name": "Sugar", "quantity": 6, "unit": "units"}],
        })

        assert reload(sugar).quantity == Decimal("3")
        created = db_session.query(StockItem).filter(StockItem.id != sugar.id).one()
        assert created.quantity_unit == "units"
        assert created.quantity == Decimal("6")
        movements = db_session.query(StockMovement).all()
        assert [mv.item_id for mv in movements] == [created.id]

    def test_restock_refreshes_optional_fields(self, db_session, make_item):
        milk = make_item("Milk", "1")

        purchase_service.create_purchase(SHOP_A, {
            "purchase_date": "2026-02-01T08:30:00Z",
            "items": [{
                "source_item_id": str(milk.id),
                "name": "Milk",
                "quantity": "12",
                "expiry_date": "2026-02-14",
                "low_stock_alert": 4,
            }],
        })

        fresh = reload(milk)
        assert fresh.quantity == Decimal("13")
        assert fresh.expiry_date == date(2026, 2, 14)
        assert fresh.low_stock_alert == Decimal("4")
        assert fresh.purchase_date == datetime(2026, 2, 1, 8, 30)

    def test_invalid_lines_skipped(self, db_session):
        purchase = purchase_service.create_purchase(SHOP_A, {
            "items": [
                {"name": "", "quantity": 3},
                {"name": "Tea", "quantity": 0},
                {"name": "Coffee", "quantity": "2"},
            ],
        })

        assert [line["name"] for line in purchase.items] == ["Coffee"]
        assert db_session.query(StockItem).count() == 1

    def test_no_valid_line_writes_nothing(self, db_session):
        with pytest.raises(ValidationError, match="at least one item"):
            purchase_service.create_purchase(SHOP_A, {
                "items": [{"name": "", "quantity": 3}, {"name": "Tea", "quantity": "nope"}],
            })

        assert db_session.query(PurchaseOrder).count() == 0
        assert db_session.query(StockItem).count() == 0
        assert db_session.query(StockMovement).count() == 0

    def test_no_items(self, db_session):
        with pytest.raises(ValidationError, match="Add at least one item"):
            purchase_service.create_purchase(SHOP_A, {"supplier": "Acme", "items": []})

    def test_negative_cost_rejected(self, db_session):
        with pytest.raises(ValidationError, match="cost_price"):
            purchase_service.create_purchase(SHOP_A, {
                "items": [{"name": "Tea", "quantity": 1, "cost_price": -2}],
            })

    def test_storage_failure_during_restock_falls_back(self, db_session, make_item, monkeypatch):
        rice = make_item("Rice", "10", unit="kg")
        real_record = purchase_service._record_movement_inner
        calls = []

        def _fail_first(movement):
            calls.append(movement["item_id"])
            if len(calls) == 1:
                raise PersistenceError("write failed")
            return real_record(movement)

        monkeypatch.setattr(purchase_service, "_record_movement_inner", _fail_first)

        purchase = purchase_service.create_purchase(SHOP_A, {
            "items": [{"source_item_id": rice.id, "name": "Rice", "quantity": 5, "unit": "kg"}],
        })

        fresh = reload(rice)
        assert fresh.quantity == Decimal("10")
        assert fresh.version_id == 1
        assert purchase.items[0]["existing_item"] is False
        created = db_session.query(StockItem).filter(StockItem.id != rice.id).one()
        assert created.quantity == Decimal("5")
        movements = db_session.query(StockMovement).all()
        assert [mv.item_id for mv in movements] == [created.id]

    def test_bad_new_item_field_writes_nothing(self, db_session, make_item):
        rice = make_item("Rice", "10", unit="kg")

        with pytest.raises(ValidationError, match="sku"):
            purchase_service.create_purchase(SHOP_A, {
                "items": [
                    {"source_item_id": rice.id, "name": "Rice", "quantity": 5, "unit": "kg"},
                    {"name": "Lentils", "quantity": 2, "sku": "L" * 80},
                ],
            })
        db_session.rollback()

        assert reload(rice).quantity == Decimal("10")
        assert db_session.query(StockMovement).count() == 0
        assert db_session.query(PurchaseOrder).count() == 0

    def test_oversized_header_rejected(self, db_session):
        with pytest.raises(ValidationError, match="invoice_number"):
            purchase_service.create_purchase(SHOP_A, {
                "invoice_number": "INV-" + "9" * 200,
                "items": [{"name": "Tea", "quantity": 1}],
            })

        assert db_session.query(StockItem).count() == 0

    def test_later_failure_undoes_released_restock(self, db_session, make_item, monkeypatch):
        rice = make_item("Rice", "10", unit="kg")

        def _explode(*args, **kwargs):
            raise RuntimeError("printer offline")

        monkeypatch.setattr(purchase_service, "_create_new_item", _explode)

        with pytest.raises(RuntimeError):
            purchase_service.create_purchase(SHOP_A, {
                "items": [
                    {"source_item_id": rice.id, "name": "Rice", "quantity": 5, "unit": "kg"},
                    {"name": "Lentils", "quantity": 2},
                ],
            })
        db_session.rollback()

        assert reload(rice).quantity == Decimal("10")
        assert db_session.query(StockMovement).count() == 0
        assert db_session.query(PurchaseOrder).count() == 0


class TestListPurchases:
    def test_newest_purchase_date_first(self, db_session):
        older = purchase_service.create_purchase(SHOP_A, {
            "purchase_date": "2026-01-01T00:00:00Z",
            "items": [{"name": "A", "quantity": 1}],
        })
        newer = purchase_service.create_purchase(SHOP_A, {
            "purchase_date": "2026-03-01T00:00:00Z",
            "items": [{"name": "B", "quantity": 1}],
        })
        purchase_service.create_purchase(SHOP_B, {"items": [{"name": "C", "quantity": 1}]})

        assert [p.id for p in purchase_service.list_purchases(SHOP_A)] == [newer.id, older.id]

    def test_get_purchase_scoped_to_shop(self, db_session):
        purchase = purchase_service.create_purchase(SHOP_A, {"items": [{"name": "A", "quantity": 1}]})

        assert purchase_service.get_purchase(purchase.id, shop_id=SHOP_A).id == purchase.id
        with pytest.raises(NotFoundError):
            purchase_service.get_purchase(purchase.id, shop_id=SHOP_B)


class TestPurchaseImmutability:
    def _purchase(self):
        return purchase_service.create_purchase(SHOP_A, {
            "supplier": "Acme",
            "items": [{"name": "Tea", "quantity": 1}],
        }).id

    def test_update_refused(self, db_session):
        purchase_id = self._purchase()
        purchase = db_session.get(PurchaseOrder, purchase_id)

        purchase.supplier = "Someone else"
        with pytest.raises(ValidationError, match="immutable"):
            db_session.commit()
        db_session.rollback()

        assert db_session.get(PurchaseOrder, purchase_id).supplier == "Acme"

    def test_delete_refused(self, db_session):
        purchase_id = self._purchase()

        db_session.delete(db_session.get(PurchaseOrder, purchase_id))
        with pytest.raises(ValidationError, match="immutable"):
            db_session.commit()
        db_session.rollback()

        assert db_session.query(PurchaseOrder).count() == 1
