# Overview: Flask API routes for customer loans and loan payments; parses input and returns JSON responses.

# backend/shopledger/routes/loans.py
"""
Customer Loan API Routes

Loans are keyed by customer name (case-insensitive). Payments are applied
oldest loan first and clamped to what is outstanding.
"""

from flask import Blueprint, request, current_app

from ..errors import ValidationError
from ..services import loan_service


loans_bp = Blueprint("loans", __name__, url_prefix="/api/loans")


@loans_bp.post("/")
def record_loan_route():
    """
    Open a loan entry.

    Request body:
    {
        "shop_id": "shop-1",
        "customer_name": "Ama Mensah",
        "transaction_id": "TX-1001",
        "receipt_id": "R-1001",   (optional)
        "amount": "15.00"
    }
    """
    try:
        data = request.get_json(silent=True) or {}

        loan = loan_service.record_loan(
            data.get("shop_id"),
            data.get("customer_name"),
            data.get("transaction_id"),
            data.get("amount"),
            receipt_id=data.get("receipt_id"),
        )

        return {"loan": loan.to_dict()}, 201

    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to record loan")
        return {"error": "Internal server error"}, 500


@loans_bp.get("/")
def list_loans_route():
    """Query: shop_id (required), customer_name (optional)."""
    try:
        loans = loan_service.list_loans(
            request.args.get("shop_id"),
            request.args.get("customer_name"),
        )
    except ValidationError as e:
        return {"error": str(e)}, 400

    return {"loans": [loan.to_dict() for loan in loans]}, 200


@loans_bp.get("/summary")
def loan_summary_route():
    customer_name = request.args.get("customer_name")
    if not customer_name:
        return {"error": "customer_name is required"}, 400

    try:
        summary = loan_service.customer_loan_summary(request.args.get("shop_id"), customer_name)
    except ValidationError as e:
        return {"error": str(e)}, 400

    return {"summary": summary}, 200


@loans_bp.post("/payments")
def allocate_payment_route():
    """
    Apply a payment to a customer's loans.

    Request body:
    {
        "shop_id": "shop-1",
        "customer_name": "Ama Mensah",
        "amount": "120.00",
        "transaction_id": "LP-0001"   (optional, generated when absent)
    }

    Returns:
        200: Allocation result; applied_amount may be less than requested
        400: Invalid input
    """
    try:
        data = request.get_json(silent=True) or {}

        result = loan_service.allocate_payment(
            data.get("shop_id"),
            data.get("customer_name"),
            data.get("amount"),
            transaction_id=data.get("transaction_id"),
        )

        return {"payment": result.to_dict()}, 200

    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to allocate loan payment")
        return {"error": "Internal server error"}, 500


@loans_bp.get("/payments")
def list_payments_route():
    try:
        payments = loan_service.list_loan_payments(
            request.args.get("shop_id"),
            request.args.get("customer_name"),
        )
    except ValidationError as e:
        return {"error": str(e)}, 400

    return {"payments": [p.to_dict() for p in payments]}, 200
