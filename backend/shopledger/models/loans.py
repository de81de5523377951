from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from ..errors import ValidationError
from shopledger.time_utils import utcnow, to_utc_z


LOAN_STATUS_OUTSTANDING = "outstanding"
LOAN_STATUS_PAID = "paid"


def _dec(value):
    return str(value) if value is not None else None


class CustomerLoan(db.Model):
    """
    Store credit extended to a customer at sale time.

    WHY customer_name instead of a customer FK: the checkout screen records
    whatever name was picked or typed. Matching is case-insensitive string
    equality, so two different customers with the same name share a ledger.

    INVARIANTS:
    - 0 <= remaining_amount <= original_amount
    - status == "paid" iff remaining_amount == 0
    - paid_amount never decreases

    CONCURRENCY: version_id guards the read-allocate-write cycle of payments.
    """
    __tablename__ = "customer_loans"
    __table_args__ = (
        db.Index("ix_customer_loans_shop_status", "shop_id", "status"),
        db.Index("ix_customer_loans_shop_customer", "shop_id", "customer_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.String(64), nullable=False, index=True)

    customer_name = db.Column(db.String(255), nullable=False)
    # Lower-cased copy of customer_name used for matching
    customer_key = db.Column(db.String(255), nullable=False)

    transaction_id = db.Column(db.String(64), nullable=False)
    receipt_id = db.Column(db.String(64), nullable=True)

    original_amount = db.Column(db.Numeric(12, 2), nullable=False)
    remaining_amount = db.Column(db.Numeric(12, 2), nullable=False)
    paid_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=LOAN_STATUS_OUTSTANDING, index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<CustomerLoan id={self.id} customer={self.customer_name!r} "
            f"remaining={self.remaining_amount} status={self.status}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shop_id": self.shop_id,
            "customer_name": self.customer_name,
            "transaction_id": self.transaction_id,
            "receipt_id": self.receipt_id,
            "original_amount": _dec(self.original_amount),
            "remaining_amount": _dec(self.remaining_amount),
            "paid_amount": _dec(self.paid_amount),
            "status": self.status,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "paid_at": to_utc_z(self.paid_at) if self.paid_at else None,
        }


class CustomerLoanPayment(db.Model):
    """Immutable record of one payment allocated across a customer's loans."""
    __tablename__ = "customer_loan_payments"
    __table_args__ = (
        db.Index("ix_loan_payments_shop_customer", "shop_id", "customer_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.String(64), nullable=False, index=True)
    customer_name = db.Column(db.String(255), nullable=False)
    customer_key = db.Column(db.String(255), nullable=False)
    transaction_id = db.Column(db.String(64), nullable=False)
    amount_paid = db.Column(db.Numeric(12, 2), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shop_id": self.shop_id,
            "customer_name": self.customer_name,
            "transaction_id": self.transaction_id,
            "amount_paid": _dec(self.amount_paid),
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(CustomerLoanPayment, "before_update")
def _refuse_payment_update(mapper, connection, target):
    raise ValidationError("Loan payments are immutable")


@event.listens_for(CustomerLoanPayment, "before_delete")
def _refuse_payment_delete(mapper, connection, target):
    raise ValidationError("Loan payments are immutable and cannot be deleted")
