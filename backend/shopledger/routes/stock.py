# Overview: Flask API routes for the stock registry and movement ledger; parses input and returns JSON responses.

# backend/shopledger/routes/stock.py
"""
Stock registry routes.

Every route is shop-scoped: shop_id comes from the query string (GET/DELETE)
or the JSON body (POST/PUT). An item id that belongs to another shop is
reported as 404.

Time semantics:
- API accepts ISO-8601 datetimes with Z/offsets; backend normalizes to UTC-naive internally.
- Responses serialize datetimes with a trailing Z and decimals as strings.
"""
from flask import Blueprint, request, current_app

from ..errors import NotFoundError, ValidationError
from ..services import stock_service, movement_service


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.get("/")
def list_stock_route():
    shop_id = request.args.get("shop_id")
    try:
        items = stock_service.list_stock_items(shop_id)
    except ValidationError as e:
        return {"error": str(e)}, 400

    items = sorted(items, key=lambda i: (i.name.lower(), i.id))
    return {"items": [item.to_dict() for item in items]}, 200


@stock_bp.post("/")
def create_stock_route():
    """
    Register a stock item.

    Request body:
    {
        "shop_id": "shop-1",
        "name": "Rice",
        "price": "2.50",
        "quantity": "40",
        "quantity_unit": "kg",   (optional, default: units)
        "sku": "RICE-01"          (optional)
    }
    """
    payload = request.get_json(silent=True) or {}
    item_data = dict(payload)
    shop_id = item_data.pop("shop_id", None)

    try:
        item_id = stock_service.create_stock_item(shop_id, item_data)
        item = stock_service.get_stock_item(item_id)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to create stock item")
        return {"error": "Internal server error"}, 500

    return {"item": item.to_dict()}, 201


@stock_bp.get("/<int:item_id>")
def get_stock_route(item_id: int):
    shop_id = request.args.get("shop_id")
    if not shop_id:
        return {"error": "shop_id is required"}, 400

    try:
        item = stock_service.get_stock_item(item_id, shop_id=shop_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404

    return {"item": item.to_dict()}, 200


@stock_bp.put("/<int:item_id>")
def update_stock_route(item_id: int):
    """
    Partial update. quantity_unit may be repeated but not changed.
    """
    payload = request.get_json(silent=True) or {}
    patch = dict(payload)
    shop_id = patch.pop("shop_id", None)
    if not shop_id:
        return {"error": "shop_id is required"}, 400

    try:
        stock_service.get_stock_item(item_id, shop_id=shop_id)
        item = stock_service.update_stock_item(item_id, patch)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to update stock item %s", item_id)
        return {"error": "Internal server error"}, 500

    return {"item": item.to_dict()}, 200


@stock_bp.delete("/<int:item_id>")
def delete_stock_route(item_id: int):
    shop_id = request.args.get("shop_id")
    if not shop_id:
        return {"error": "shop_id is required"}, 400

    try:
        stock_service.get_stock_item(item_id, shop_id=shop_id)
        stock_service.delete_stock_item(item_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except Exception:
        current_app.logger.exception("Failed to delete stock item %s", item_id)
        return {"error": "Internal server error"}, 500

    return {"deleted": item_id}, 200


@stock_bp.get("/lookup")
def lookup_stock_route():
    """Scanner lookup by SKU or barcode (case-insensitive)."""
    shop_id = request.args.get("shop_id")
    code = request.args.get("code", "")

    try:
        item = stock_service.find_by_code(shop_id, code)
    except ValidationError as e:
        return {"error": str(e)}, 400

    if item is None:
        return {"error": f"No item with code {code!r}"}, 404
    return {"item": item.to_dict()}, 200


@stock_bp.get("/low-stock")
def low_stock_route():
    shop_id = request.args.get("shop_id")
    try:
        items = stock_service.list_low_stock(shop_id)
    except ValidationError as e:
        return {"error": str(e)}, 400

    return {"items": [item.to_dict() for item in items]}, 200


@stock_bp.get("/movements")
def list_movements_route():
    """
    Movement history, newest first.

    Query: shop_id (required), item_id (optional)
    """
    shop_id = request.args.get("shop_id")
    item_id = request.args.get("item_id", type=int)

    try:
        movements = movement_service.list_movements(shop_id, item_id=item_id)
    except ValidationError as e:
        return {"error": str(e)}, 400

    return {"movements": [mv.to_dict() for mv in movements]}, 200


@stock_bp.post("/movements")
def record_movement_route():
    """Append a manual movement (e.g. a correction). Movements are never edited."""
    payload = request.get_json(silent=True) or {}

    try:
        movement_id = movement_service.record_movement(payload)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to record stock movement")
        return {"error": "Internal server error"}, 500

    return {"movement_id": movement_id}, 201
