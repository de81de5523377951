# Overview: Service-layer operations for customer loans and payment allocation.

"""
Customer Loan Ledger & Payment Allocator

WHY: A sale can be partly on credit. The unpaid part becomes a loan entry
against the customer's name and is paid down later, possibly across many
visits and many sales.

ALLOCATION (oldest debt first):
1. Collect the customer's entries (case-insensitive name) that are not paid.
2. Clamp the payment to [0, total remaining].
3. Walk entries by created_at ascending (ties: id, i.e. creation order).
4. An entry whose remaining fits in what is left is paid off; otherwise the
   leftover is taken off that entry and the walk stops.
5. Persist touched entries and one payment record for the clamped amount.

INVARIANTS:
- 0 <= remaining_amount <= original_amount
- status == "paid" iff remaining_amount == 0
- paid_amount never decreases

CONCURRENCY: entries are locked and version-checked; a conflicting payment
for the same customer makes this one re-run against the fresh balances.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from flask import current_app

from ..extensions import db
from ..errors import ValidationError
from ..models import CustomerLoan, CustomerLoanPayment
from ..models.loans import LOAN_STATUS_OUTSTANDING, LOAN_STATUS_PAID
from ..validation import require_shop_id, to_decimal
from shopledger.time_utils import utcnow
from . import persistence
from .concurrency import run_with_retry


CENT = Decimal("0.01")
ZERO = Decimal("0.00")


@dataclass(frozen=True)
class AllocationResult:
    applied_amount: Decimal
    payment_record_id: int | None
    transaction_id: str | None

    def to_dict(self) -> dict:
        return {
            "applied_amount": str(self.applied_amount),
            "payment_record_id": self.payment_record_id,
            "transaction_id": self.transaction_id,
        }


def _money(value, field: str) -> Decimal:
    return to_decimal(value, field).quantize(CENT, rounding=ROUND_HALF_UP)


def customer_key(customer_name) -> str:
    return (customer_name or "").strip().lower()


def is_walk_in(customer_name) -> bool:
    placeholder = current_app.config.get("SHOPLEDGER_WALK_IN_CUSTOMER", "Walk-in Customer")
    return customer_key(customer_name) == customer_key(placeholder)


def generate_transaction_id() -> str:
    return f"LP-{uuid.uuid4().hex[:8].upper()}"


def _loan_fields(shop_id, customer_name, transaction_id, amount, receipt_id=None) -> dict:
    shop_id = require_shop_id(shop_id)
    name = (customer_name or "").strip()
    if not name:
        raise ValidationError("customer_name is required")
    if is_walk_in(name):
        raise ValidationError("Loans cannot be recorded for the walk-in customer")
    txid = str(transaction_id or "").strip()
    if not txid:
        raise ValidationError("transaction_id is required")

    amount = _money(amount, "amount")
    if amount <= ZERO:
        raise ValidationError("amount must be > 0")

    return {
        "shop_id": shop_id,
        "customer_name": name,
        "customer_key": customer_key(name),
        "transaction_id": txid,
        "receipt_id": str(receipt_id) if receipt_id is not None else None,
        "original_amount": amount,
        "remaining_amount": amount,
        "paid_amount": ZERO,
        "status": LOAN_STATUS_OUTSTANDING,
    }


def _record_loan_inner(fields: dict) -> CustomerLoan:
    """Insert an already validated loan without committing."""
    return persistence.create(CustomerLoan, **fields)


def record_loan(
    shop_id,
    customer_name: str,
    transaction_id: str,
    amount,
    *,
    receipt_id: str | None = None,
) -> CustomerLoan:
    """
    Open an outstanding loan entry for a named customer.

    Raises:
        ValidationError: no shop, blank or walk-in customer, missing
            transaction id, amount not > 0 after rounding to cents
    """
    fields = _loan_fields(shop_id, customer_name, transaction_id, amount, receipt_id)
    loan = _record_loan_inner(fields)
    db.session.commit()
    current_app.logger.info(
        "Recorded loan %s of %s for %r in shop %s",
        loan.id, fields["original_amount"], fields["customer_name"], fields["shop_id"],
    )
    return loan


def _outstanding_entries(shop_id: str, key: str, *, lock: bool = False) -> list[CustomerLoan]:
    entries = persistence.query_by_field(CustomerLoan, "shop_id", shop_id, lock=lock)
    return [
        loan for loan in entries
        if loan.customer_key == key and loan.status != LOAN_STATUS_PAID
    ]


def allocate_payment(
    shop_id,
    customer_name: str,
    payment_amount,
    *,
    transaction_id: str | None = None,
) -> AllocationResult:
    """
    Apply a payment across a customer's outstanding loans, oldest first.

    Returns:
        AllocationResult with the clamped amount actually applied and the id
        of the payment record (None when nothing was outstanding).

    Raises:
        ValidationError: no shop, blank customer, negative or non-numeric amount
    """
    shop_id = require_shop_id(shop_id)
    name = (customer_name or "").strip()
    key = customer_key(name)
    if not key:
        raise ValidationError("customer_name is required")
    requested = _money(payment_amount, "amount")
    if requested < ZERO:
        raise ValidationError("amount must be >= 0")
    txid = str(transaction_id).strip() if transaction_id else generate_transaction_id()

    def _op():
        entries = _outstanding_entries(shop_id, key, lock=True)
        outstanding = sum((Decimal(loan.remaining_amount) for loan in entries), ZERO)
        applied = min(max(requested, ZERO), outstanding)
        if applied <= ZERO:
            db.session.rollback()
            return AllocationResult(ZERO, None, None)

        now = utcnow()
        leftover = applied
        for loan in sorted(entries, key=lambda l: (l.created_at, l.id)):
            if leftover <= ZERO:
                break
            remaining = Decimal(loan.remaining_amount)
            paid = Decimal(loan.paid_amount or ZERO)
            if remaining <= leftover:
                persistence.update_record(loan, {
                    "remaining_amount": ZERO,
                    "paid_amount": paid + remaining,
                    "status": LOAN_STATUS_PAID,
                    "paid_at": now,
                })
                leftover -= remaining
            else:
                persistence.update_record(loan, {
                    "remaining_amount": remaining - leftover,
                    "paid_amount": paid + leftover,
                    "status": LOAN_STATUS_OUTSTANDING,
                    "paid_at": now,
                })
                leftover = ZERO

        payment = persistence.create(
            CustomerLoanPayment,
            shop_id=shop_id,
            customer_name=name,
            customer_key=key,
            transaction_id=txid,
            amount_paid=applied,
        )
        db.session.commit()
        return AllocationResult(applied, payment.id, txid)

    result = run_with_retry(_op)
    if result.payment_record_id is None:
        current_app.logger.info("No outstanding loans for %r in shop %s; nothing applied", name, shop_id)
    elif result.applied_amount < requested:
        current_app.logger.info(
            "Payment of %s for %r clamped to outstanding %s", requested, name, result.applied_amount
        )
    return result


def list_loans(shop_id, customer_name: str | None = None) -> list[CustomerLoan]:
    """Loan entries for a shop (optionally one customer), oldest first."""
    shop_id = require_shop_id(shop_id)
    entries = persistence.query_by_field(CustomerLoan, "shop_id", shop_id)
    if customer_name is not None:
        key = customer_key(customer_name)
        entries = [loan for loan in entries if loan.customer_key == key]
    return sorted(entries, key=lambda l: (l.created_at, l.id))


def customer_loan_summary(shop_id, customer_name: str) -> dict:
    """Counts and totals for one customer's loans."""
    entries = list_loans(shop_id, customer_name)
    outstanding = [loan for loan in entries if loan.status != LOAN_STATUS_PAID]
    return {
        "customer_name": (customer_name or "").strip(),
        "loan_count": len(entries),
        "outstanding_count": len(outstanding),
        "total_original": str(sum((Decimal(l.original_amount) for l in entries), ZERO)),
        "total_paid": str(sum((Decimal(l.paid_amount or ZERO) for l in entries), ZERO)),
        "total_outstanding": str(sum((Decimal(l.remaining_amount) for l in outstanding), ZERO)),
    }


def list_loan_payments(shop_id, customer_name: str | None = None) -> list[CustomerLoanPayment]:
    """Payment records for a shop (optionally one customer), newest first."""
    shop_id = require_shop_id(shop_id)
    payments = persistence.query_by_field(CustomerLoanPayment, "shop_id", shop_id)
    if customer_name is not None:
        key = customer_key(customer_name)
        payments = [p for p in payments if p.customer_key == key]
    return sorted(payments, key=lambda p: (p.created_at, p.id), reverse=True)
