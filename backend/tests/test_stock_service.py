# Overview: Pytest coverage for the stock item registry.

from decimal import Decimal

import pytest

from shopledger.errors import NotFoundError, ValidationError
from shopledger.services import stock_service
from conftest import SHOP_A, SHOP_B, reload


class TestCreateStockItem:
    def test_create_defaults_unit(self, db_session):
        item_id = stock_service.create_stock_item(SHOP_A, {"name": "Soap", "price": "1.50", "quantity": 12})
        item = stock_service.get_stock_item(item_id)

        assert item.shop_id == SHOP_A
        assert item.quantity_unit == "units"
        assert item.price == Decimal("1.50")
        assert item.quantity == Decimal("12")
        assert item.version_id == 1

    def test_missing_required_fields(self, db_session):
        with pytest.raises(ValidationError, match="Missing required fields"):
            stock_service.create_stock_item(SHOP_A, {"name": "Soap"})

    def test_blank_name_rejected(self, db_session):
        with pytest.raises(ValidationError):
            stock_service.create_stock_item(SHOP_A, {"name": "  ", "price": 1, "quantity": 1})

    def test_negative_values_rejected(self, db_session):
        with pytest.raises(ValidationError, match="quantity"):
            stock_service.create_stock_item(SHOP_A, {"name": "Soap", "price": 1, "quantity": -1})
        with pytest.raises(ValidationError, match="price"):
            stock_service.create_stock_item(SHOP_A, {"name": "Soap", "price": "-0.01", "quantity": 1})

    def test_unknown_field_rejected(self, db_session):
        with pytest.raises(ValidationError, match="Field not allowed"):
            stock_service.create_stock_item(SHOP_A, {"name": "Soap", "price": 1, "quantity": 1, "shop_id": SHOP_B})

    def test_shop_required(self, db_session):
        with pytest.raises(ValidationError, match="shop_id"):
            stock_service.create_stock_item("", {"name": "Soap", "price": 1, "quantity": 1})


class TestUpdateStockItem:
    def test_update_bumps_version(self, db_session, make_item):
        item = make_item("Rice", "5", unit="kg")

        stock_service.update_stock_item(item.id, {"price": "3.25"})

        fresh = reload(item)
        assert fresh.price == Decimal("3.25")
        assert fresh.version_id == 2

    def test_unit_change_rejected(self, db_session, make_item):
        item = make_item("Rice", "5", unit="kg")

        with pytest.raises(ValidationError, match="quantity_unit cannot change"):
            stock_service.update_stock_item(item.id, {"quantity_unit": "units"})

        assert reload(item).quantity_unit == "kg"

    def test_same_unit_allowed(self, db_session, make_item):
        item = make_item("Rice", "5", unit="kg")
        stock_service.update_stock_item(item.id, {"quantity_unit": "kg", "quantity": "7"})
        assert reload(item).quantity == Decimal("7")

    def test_missing_item(self, db_session):
        with pytest.raises(NotFoundError):
            stock_service.update_stock_item(99999, {"price": 1})


class TestLookup:
    def test_other_shop_reported_missing(self, db_session, make_item):
        item = make_item("Rice", shop_id=SHOP_B)
        with pytest.raises(NotFoundError):
            stock_service.get_stock_item(item.id, shop_id=SHOP_A)

    def test_find_by_code_case_insensitive(self, db_session, make_item):
        item = make_item("Milk", sku="MLK-1", barcode="0123456789")

        assert stock_service.find_by_code(SHOP_A, "mlk-1").id == item.id
        assert stock_service.find_by_code(SHOP_A, " 0123456789 ").id == item.id
        assert stock_service.find_by_code(SHOP_A, "nope") is None
        assert stock_service.find_by_code(SHOP_B, "MLK-1") is None

    def test_list_low_stock(self, db_session, make_item):
        make_item("Bread", "2", low_stock_alert=Decimal("5"))
        make_item("Apples", "5", low_stock_alert=Decimal("5"))
        make_item("Salt", "50", low_stock_alert=Decimal("5"))
        make_item("Pepper", "0")

        names = [item.name for item in stock_service.list_low_stock(SHOP_A)]
        assert names == ["Apples", "Bread"]

    def test_delete(self, db_session, make_item):
        item = make_item("Rice")
        stock_service.delete_stock_item(item.id)
        with pytest.raises(NotFoundError):
            stock_service.get_stock_item(item.id)
