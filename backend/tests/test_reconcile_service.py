# Overview: Pytest coverage for sale deduction and return restoration.

from decimal import Decimal

import pytest

from shopledger.errors import ValidationError
from shopledger.models import StockMovement
from shopledger.services import reconcile_service
from shopledger.services.reconcile_service import (
    SKIP_INVALID_QUANTITY,
    SKIP_NOT_FOUND,
    SKIP_UNIT_MISMATCH,
)
from conftest import SHOP_A, SHOP_B, reload


class TestApplySale:
    def test_sale_then_return_restores_quantity(self, db_session, make_item):
        item = make_item("X", "12")
        line = [{"name": "X", "quantity": 5, "unit": "units"}]

        sale = reconcile_service.apply_sale(SHOP_A, line)
        assert reload(item).quantity == Decimal("7")
        assert sale.applied[0].before == Decimal("12")
        assert sale.applied[0].after == Decimal("7")

        reconcile_service.apply_return(SHOP_A, line)
        assert reload(item).quantity == Decimal("12")

    def test_unit_mismatch_leaves_quantity(self, db_session, make_item):
        item = make_item("Rice", "3.5", unit="kg")

        result = reconcile_service.apply_sale(SHOP_A, [{"name": "Rice", "quantity": 1, "unit": "units"}])

        assert reload(item).quantity == Decimal("3.5")
        assert result.applied == []
        assert result.skipped[0].reason == SKIP_UNIT_MISMATCH

    def test_quantity_unit_key_accepted(self, db_session, make_item):
        item = make_item("Rice", "3.5", unit="kg")
        reconcile_service.apply_sale(SHOP_A, [{"name": "Rice", "quantity": "1.25", "quantity_unit": "kg"}])
        assert reload(item).quantity == Decimal("2.25")

    def test_missing_unit_matches_any(self, db_session, make_item):
        item = make_item("Rice", "4", unit="kg")
        reconcile_service.apply_sale(SHOP_A, [{"name": "Rice", "quantity": 1}])
        assert reload(item).quantity == Decimal("3")

    def test_oversell_floors_at_zero(self, db_session, make_item):
        item = make_item("Eggs", "2")
        reconcile_service.apply_sale(SHOP_A, [{"name": "Eggs", "quantity": 9}])
        assert reload(item).quantity == Decimal("0")

    def test_unknown_name_skipped(self, db_session, make_item):
        item = make_item("Eggs", "2")

        result = reconcile_service.apply_sale(SHOP_A, [
            {"name": "eggs", "quantity": 1},
            {"name": "Eggs", "quantity": 1},
        ])

        assert [s.reason for s in result.skipped] == [SKIP_NOT_FOUND]
        assert reload(item).quantity == Decimal("1")

    def test_other_shop_untouched(self, db_session, make_item):
        mine = make_item("Eggs", "2")
        theirs = make_item("Eggs", "2", shop_id=SHOP_B)

        reconcile_service.apply_sale(SHOP_A, [{"name": "Eggs", "quantity": 2}])

        assert reload(mine).quantity == Decimal("0")
        assert reload(theirs).quantity == Decimal("2")

    def test_duplicate_names_resolve_to_lowest_id(self, db_session, make_item):
        first = make_item("Bread", "10")
        second = make_item("Bread", "10")

        reconcile_service.apply_sale(SHOP_A, [{"name": "Bread", "quantity": 3}])

        assert reload(first).quantity == Decimal("7")
        assert reload(second).quantity == Decimal("10")

    @pytest.mark.parametrize("quantity", [0, -1, "abc", None])
    def test_bad_quantity_skipped(self, db_session, make_item, quantity):
        item = make_item("Eggs", "2")

        result = reconcile_service.apply_sale(SHOP_A, [{"name": "Eggs", "quantity": quantity}])

        assert result.skipped[0].reason == SKIP_INVALID_QUANTITY
        assert reload(item).quantity == Decimal("2")

    def test_quantity_never_negative_over_mixed_operations(self, db_session, make_item):
        item = make_item("Flour", "3", unit="kg")
        for sold, returned in [(2, 0), (5, 1), (1, 0), (0, 4), (7, 0)]:
            if sold:
                reconcile_service.apply_sale(SHOP_A, [{"name": "Flour", "quantity": sold, "unit": "kg"}])
            if returned:
                reconcile_service.apply_return(SHOP_A, [{"name": "Flour", "quantity": returned, "unit": "kg"}])
            assert reload(item).quantity >= 0

    def test_not_a_list(self, db_session):
        with pytest.raises(ValidationError):
            reconcile_service.apply_sale(SHOP_A, "Eggs x2")

    def test_bumps_version(self, db_session, make_item):
        item = make_item("Eggs", "2")
        reconcile_service.apply_sale(SHOP_A, [{"name": "Eggs", "quantity": 1}])
        assert reload(item).version_id == 2


class TestSaleMovements:
    def test_no_movements_by_default(self, db_session, make_item):
        make_item("Eggs", "2")
        reconcile_service.apply_sale(SHOP_A, [{"name": "Eggs", "quantity": 1}])
        assert db_session.query(StockMovement).count() == 0

    def test_movements_when_enabled(self, app, db_session, make_item):
        make_item("Eggs", "2")
        app.config["SHOPLEDGER_RECORD_SALE_MOVEMENTS"] = True
        try:
            reconcile_service.apply_sale(SHOP_A, [{"name": "Eggs", "quantity": 5}], reference="TX-1")
            reconcile_service.apply_return(SHOP_A, [{"name": "Eggs", "quantity": 1}], reference="TX-1")
        finally:
            app.config["SHOPLEDGER_RECORD_SALE_MOVEMENTS"] = False

        movements = db_session.query(StockMovement).order_by(StockMovement.id).all()
        # Sale floored at zero, so only the 2 actually on hand moved out
        assert [(mv.direction, mv.quantity) for mv in movements] == [
            ("OUT", Decimal("2")),
            ("IN", Decimal("1")),
        ]
        assert movements[0].reference == "TX-1"
