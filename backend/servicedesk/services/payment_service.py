# Overview: Payment reconciliation against invoice totals.

"""
Payment Reconciliation Service

DESIGN PRINCIPLES:
- Payments are separate from invoices (many-to-one relationship)
- Partial payments are allowed; overpayment beyond TOLERANCE is not
- Strictly additive: no void or refund path
- Invoice.paid_amount is recomputed from SUM(payments) on every payment,
  never incremented, so any earlier drift is corrected
"""

from __future__ import annotations

from sqlalchemy import func

from ..errors import InvalidStateError, OverpaymentRejectedError
from ..extensions import db
from ..models import Invoice, Payment
from ..money import exceeds_remaining, is_fully_paid
from ..time_utils import utcnow
from ..validation import ValidationError, coerce_amount, coerce_optional_datetime
from .concurrency import in_write_transaction
from .lifecycle_service import INVOICE_CANCELLED, INVOICE_PAID, INVOICE_PENDING
from .tenant_service import get_scoped


# =============================================================================
# PAYMENT METHODS (CONSTANTS)
# =============================================================================

METHOD_CASH = "CASH"
METHOD_CARD = "CARD"
METHOD_CHECK = "CHECK"
METHOD_TRANSFER = "TRANSFER"
METHOD_OTHER = "OTHER"

VALID_METHODS = [
    METHOD_CASH,
    METHOD_CARD,
    METHOD_CHECK,
    METHOD_TRANSFER,
    METHOD_OTHER,
]

PAYMENT_STATUS_COMPLETED = "COMPLETED"


def _payments_total(invoice_id: int) -> float:
    total = (
        db.session.query(func.coalesce(func.sum(Payment.amount), 0.0))
        .filter(Payment.invoice_id == invoice_id)
        .scalar()
    )
    return float(total or 0.0)


# =============================================================================
# PAYMENT CREATION
# =============================================================================

def record_payment(
    tenant_id: int,
    invoice_id: int,
    amount,
    *,
    method: str | None = None,
    paid_at=None,
    notes: str | None = None,
    actor_id: int | None = None,
) -> Payment:
    """
    Record a payment against an invoice.

    remaining = total - SUM(existing payments). A payment larger than
    remaining + TOLERANCE is rejected, as is any payment on an invoice whose
    payments already cover the total. After insert, paid_amount is the sum
    of all payment rows and the status follows it (PAID or PENDING).
    """
    amount = coerce_amount(amount, "amount", allow_zero=False)
    method = (method or METHOD_CASH).upper()
    if method not in VALID_METHODS:
        raise ValidationError(f"method must be one of: {', '.join(VALID_METHODS)}")
    paid_at = coerce_optional_datetime(paid_at, "paid_at")

    def _op():
        invoice = get_scoped(Invoice, invoice_id, tenant_id, lock=True)
        if invoice.status == INVOICE_CANCELLED:
            raise InvalidStateError(
                f"Invoice {invoice.number} is CANCELLED and cannot receive payments",
                details={"invoice_id": invoice.id, "status": invoice.status},
            )

        already_paid = _payments_total(invoice.id)
        remaining = invoice.total - already_paid
        if is_fully_paid(already_paid, invoice.total):
            raise OverpaymentRejectedError(
                f"Invoice {invoice.number} is already fully paid",
                details={"invoice_id": invoice.id, "remaining": 0.0, "amount": amount},
            )
        if exceeds_remaining(amount, remaining):
            raise OverpaymentRejectedError(
                f"Payment of {amount:.2f} exceeds the remaining balance of {remaining:.2f}",
                details={"invoice_id": invoice.id, "remaining": remaining, "amount": amount},
            )

        payment = Payment(
            tenant_id=tenant_id,
            invoice_id=invoice.id,
            amount=amount,
            method=method,
            status=PAYMENT_STATUS_COMPLETED,
            paid_at=paid_at or utcnow(),
            notes=notes,
            created_by_id=actor_id,
        )
        db.session.add(payment)
        db.session.flush()

        invoice.paid_amount = _payments_total(invoice.id)
        invoice.status = INVOICE_PAID if is_fully_paid(invoice.paid_amount, invoice.total) else INVOICE_PENDING
        db.session.flush()
        return payment

    return in_write_transaction(_op)


# =============================================================================
# QUERIES
# =============================================================================

def list_payments(tenant_id: int, invoice_id: int) -> list[Payment]:
    get_scoped(Invoice, invoice_id, tenant_id)
    return (
        db.session.query(Payment)
        .filter(Payment.tenant_id == tenant_id, Payment.invoice_id == invoice_id)
        .order_by(Payment.paid_at.desc(), Payment.id.desc())
        .all()
    )


def get_payment_summary(tenant_id: int, invoice_id: int) -> dict:
    """Totals and payment history for one invoice (newest payment first)."""
    invoice = get_scoped(Invoice, invoice_id, tenant_id)
    payments = list_payments(tenant_id, invoice_id)
    payments_total = sum((p.amount for p in payments), 0.0)
    # Measured against payment rows, like record_payment
    remaining = max(invoice.total - payments_total, 0.0)
    return {
        "invoice_id": invoice.id,
        "number": invoice.number,
        "status": invoice.status,
        "total": invoice.total,
        "paid_amount": invoice.paid_amount,
        "payments_total": payments_total,
        "remaining": remaining,
        "payments": [p.to_dict() for p in payments],
    }
