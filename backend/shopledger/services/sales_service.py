# Overview: Service-layer orchestration for completed sales and returns.

"""
Checkout Orchestration

A completed sale deducts stock and, when part of the payable is left on
credit, opens a loan entry for the customer. A return restores stock for
lines taken from the original receipt.

RULES:
- Loan amount is clamped to [0, payable].
- Loan amount is rounded to cents before anything is written; a loan that
  rounds to zero is not recorded.
- Stock deduction and the loan entry commit together or not at all.
- No loan for the walk-in placeholder or a blank customer; the sale still
  completes and the skip is logged.
- Return lines must name an item on the original receipt and return
  0 <= qty <= sold. Zero lines are dropped before restoring stock.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from flask import current_app

from ..errors import ValidationError
from ..extensions import db
from ..models.stock import DIRECTION_OUT
from ..validation import require_shop_id, to_decimal
from . import loan_service, reconcile_service
from .concurrency import run_with_retry
from .reconcile_service import ReconcileResult


ZERO = Decimal("0")


@dataclass(frozen=True)
class SaleOutcome:
    reconcile: ReconcileResult
    loan_id: int | None
    loan_amount: Decimal

    def to_dict(self) -> dict:
        return {
            "reconcile": self.reconcile.to_dict(),
            "loan_id": self.loan_id,
            "loan_amount": str(self.loan_amount),
        }


def complete_sale(
    shop_id,
    line_items,
    customer_name,
    transaction_id,
    payable,
    loan_amount=0,
    receipt_id=None,
) -> SaleOutcome:
    """
    Deduct sold stock and open the credit entry in one transaction.

    Everything that can reject the sale is checked before stock is touched,
    so a rejected sale leaves quantities unchanged.

    Raises:
        ValidationError: no shop, blank transaction id, malformed line list,
            payable or loan amount not a number, payable < 0
    """
    shop_id = require_shop_id(shop_id)
    txid = str(transaction_id or "").strip()
    if not txid:
        raise ValidationError("transaction_id is required")
    payable = to_decimal(payable, "payable")
    if payable < ZERO:
        raise ValidationError("payable must be >= 0")
    requested_loan = to_decimal(loan_amount if loan_amount is not None else 0, "loan_amount")
    credit = loan_service._money(min(max(requested_loan, ZERO), payable), "loan_amount")
    lines = reconcile_service._prepare_lines(line_items)

    loan_fields = None
    if credit > ZERO:
        if not (customer_name or "").strip() or loan_service.is_walk_in(customer_name):
            current_app.logger.warning(
                "Sale %s left %s on credit for %r; no loan recorded",
                txid, credit, customer_name,
            )
        else:
            loan_fields = loan_service._loan_fields(shop_id, customer_name, txid, credit, receipt_id)

    def _op():
        reconcile = reconcile_service._reconcile_inner(
            shop_id, lines, direction=DIRECTION_OUT, reference=txid
        )
        loan = loan_service._record_loan_inner(loan_fields) if loan_fields else None
        db.session.commit()
        return reconcile, (loan.id if loan is not None else None)

    reconcile, loan_id = run_with_retry(_op)
    reconcile_service.log_skipped(shop_id, reconcile)

    if loan_id is None:
        return SaleOutcome(reconcile=reconcile, loan_id=None, loan_amount=ZERO)
    current_app.logger.info(
        "Sale %s recorded loan %s of %s for %r in shop %s",
        txid, loan_id, credit, loan_fields["customer_name"], shop_id,
    )
    return SaleOutcome(reconcile=reconcile, loan_id=loan_id, loan_amount=credit)


def _sold_quantities(original_lines) -> dict[str, Decimal]:
    sold: dict[str, Decimal] = {}
    for line in original_lines or []:
        if not isinstance(line, dict) or line.get("name") is None:
            continue
        try:
            qty = to_decimal(line.get("quantity"), "quantity")
        except ValidationError:
            continue
        sold[line["name"]] = sold.get(line["name"], ZERO) + max(qty, ZERO)
    return sold


def process_return(shop_id, original_lines, return_lines, *, reference: str | None = None) -> ReconcileResult:
    """
    Restore stock for returned lines, bounded by the original receipt.

    Raises:
        ValidationError: a line names an item not on the receipt, or returns
            a negative quantity or more than was sold
    """
    shop_id = require_shop_id(shop_id)
    if not isinstance(return_lines, (list, tuple)):
        raise ValidationError("return_lines must be a list")
    sold = _sold_quantities(original_lines)

    accepted = []
    for line in return_lines:
        if not isinstance(line, dict):
            raise ValidationError("each return line must be an object")
        name = line.get("name")
        if name not in sold:
            raise ValidationError(f"{name!r} is not on the original receipt")
        qty = to_decimal(line.get("quantity"), "quantity")
        if qty < ZERO or qty > sold[name]:
            raise ValidationError(f"return quantity for {name!r} must be between 0 and {sold[name]}")
        if qty == ZERO:
            continue
        # repeated lines for one item share the sold budget
        sold[name] -= qty
        accepted.append(line)

    return reconcile_service.apply_return(shop_id, accepted, reference=reference)
