# Overview: Flask API routes for purchase intake; parses input and returns JSON responses.

# backend/shopledger/routes/purchases.py
"""
Purchase Intake API Routes

WHY: A delivery from a supplier restocks items the shop already carries and
registers the ones it does not, in one request.

Lines that reference an existing item (source_item_id) are restocked in place; lines
whose item cannot be found or whose unit differs fall back to a new item.
Invalid lines (blank name, quantity <= 0) are skipped.
"""

from flask import Blueprint, request, current_app

from ..errors import NotFoundError, PersistenceError, ValidationError
from ..services import purchase_service


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


@purchases_bp.post("/")
def create_purchase_route():
    """
    Record a purchase.

    Request body:
    {
        "shop_id": "shop-1",
        "supplier": "Acme Wholesale",
        "invoice_number": "INV-77",      (optional)
        "purchase_date": "2026-01-04T09:00:00Z",  (optional, default: now)
        "items": [
            {"source_item_id": 12, "name": "Rice", "quantity": 10, "unit": "kg", "cost_price": "1.80"},
            {"name": "Beans", "quantity": 5, "cost_price": "0.90", "selling_price": "1.50"}
        ]
    }

    Returns:
        201: Purchase recorded
        400: No items, or no valid line
        500: Storage failure (nothing written)
    """
    payload = request.get_json(silent=True) or {}
    shop_id = payload.get("shop_id")

    try:
        purchase = purchase_service.create_purchase(shop_id, payload)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except PersistenceError:
        current_app.logger.exception("Failed to store purchase for shop %s", shop_id)
        return {"error": "Internal server error"}, 500
    except Exception:
        current_app.logger.exception("Failed to create purchase")
        return {"error": "Internal server error"}, 500

    return {"purchase": purchase.to_dict()}, 201


@purchases_bp.get("/")
def list_purchases_route():
    """Purchases for a shop, newest purchase_date first."""
    shop_id = request.args.get("shop_id")
    try:
        purchases = purchase_service.list_purchases(shop_id)
    except ValidationError as e:
        return {"error": str(e)}, 400

    return {"purchases": [p.to_dict() for p in purchases]}, 200


@purchases_bp.get("/<int:purchase_id>")
def get_purchase_route(purchase_id: int):
    shop_id = request.args.get("shop_id")
    if not shop_id:
        return {"error": "shop_id is required"}, 400

    try:
        purchase = purchase_service.get_purchase(purchase_id, shop_id=shop_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404

    return {"purchase": purchase.to_dict()}, 200
