# Overview: Flask API routes for completed sales and returns; parses input and returns JSON responses.

# backend/shopledger/routes/sales.py
"""
Sales API Routes

The point-of-sale screen owns the receipt; this API only applies its stock
and credit effects.

- POST /api/sales/          completed sale: deduct stock, optionally open a loan
- POST /api/sales/returns   return against an original receipt: restore stock

Unmatched lines never fail a sale. They come back under "skipped".
"""

from flask import Blueprint, request, current_app

from ..errors import PersistenceError, ValidationError
from ..services import sales_service


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("/")
def complete_sale_route():
    """
    Apply a completed sale.

    Request body:
    {
        "shop_id": "shop-1",
        "transaction_id": "TX-1001",
        "receipt_id": "R-1001",             (optional)
        "customer_name": "Ama Mensah",
        "payable": "45.00",
        "loan_amount": "15.00",             (optional, default: 0)
        "items": [{"name": "Rice", "quantity": 2, "unit": "kg"}]
    }

    Returns:
        201: Sale applied (see "reconcile" for applied/skipped lines)
        400: Invalid input
    """
    try:
        data = request.get_json(silent=True) or {}

        transaction_id = data.get("transaction_id")
        if not transaction_id:
            return {"error": "transaction_id is required"}, 400
        if "payable" not in data:
            return {"error": "payable is required"}, 400

        outcome = sales_service.complete_sale(
            data.get("shop_id"),
            data.get("items") or [],
            data.get("customer_name"),
            transaction_id,
            data.get("payable"),
            loan_amount=data.get("loan_amount", 0),
            receipt_id=data.get("receipt_id"),
        )

        return {"sale": outcome.to_dict()}, 201

    except ValidationError as e:
        return {"error": str(e)}, 400
    except PersistenceError:
        current_app.logger.exception("Failed to store sale")
        return {"error": "Internal server error"}, 500
    except Exception:
        current_app.logger.exception("Failed to apply sale")
        return {"error": "Internal server error"}, 500


@sales_bp.post("/returns")
def process_return_route():
    """
    Apply a return.

    Request body:
    {
        "shop_id": "shop-1",
        "transaction_id": "TX-1001",
        "original_items": [{"name": "Rice", "quantity": 2}],
        "return_items": [{"name": "Rice", "quantity": 1}]
    }

    Returns:
        201: Return applied
        400: A line is not on the original receipt or exceeds what was sold
    """
    try:
        data = request.get_json(silent=True) or {}

        result = sales_service.process_return(
            data.get("shop_id"),
            data.get("original_items") or [],
            data.get("return_items") or [],
            reference=data.get("transaction_id"),
        )

        return {"return": result.to_dict()}, 201

    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to apply return")
        return {"error": "Internal server error"}, 500
