# Overview: Invoice engine; every stock side effect of billing starts here.

"""
Invoice Engine

STOCK EFFECTS:
- Creation deducts stock for every line with a product, inside the same
  transaction as the invoice insert. One insufficient line rolls back the
  whole creation: no invoice, no items, no movements.
- Cancellation restores every product line once. The status guard runs
  before any restore, so a second cancel is a no-op.
- Deleting a non-cancelled invoice restores stock exactly like cancel,
  then removes the invoice.
- Editing an invoice replaces items and totals only; stock already
  deducted for the previous lines is NOT re-balanced.

QUOTE COUPLING:
- convert_quote_to_invoice is the single path that accepts a quote: it
  prices the invoice from the quote and sets the quote ACCEPTED in the
  same transaction. A quote is invoiced at most once.
- Deleting an invoice sends its quote back to SENT.
"""

from __future__ import annotations

from datetime import timedelta

from flask import current_app

from ..errors import InvalidStateError
from ..extensions import db
from ..models import Invoice, InvoiceItem, Payment, Quote
from ..money import compute_totals, is_fully_paid
from ..time_utils import utcnow
from ..validation import (
    ValidationError,
    coerce_amount,
    coerce_optional_datetime,
    coerce_percent,
    normalize_line_items,
)
from .clients_service import require_active_client
from .concurrency import in_write_transaction
from .inventory_service import _deduct_locked, _restore_locked, check_low_stock
from .lifecycle_service import (
    INVOICE_CANCELLED,
    INVOICE_PAID,
    INVOICE_PENDING,
    INVOICE_TYPES,
    QUOTE_ACCEPTED,
    QUOTE_SENT,
    guard_delete,
    require_invoice_editable,
    require_quote_transition,
    validate_invoice_status,
)
from .numbering_service import DOCUMENT_INVOICE, next_document_number
from .products_service import require_line_products
from .tenant_service import get_scoped, resolve_tax_rate


def _validate_type(invoice_type: str | None) -> str:
    invoice_type = invoice_type or "SERVICE"
    if invoice_type not in INVOICE_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(sorted(INVOICE_TYPES))}")
    return invoice_type


def _apply_totals(invoice: Invoice, items: list[dict], discount_percent: float, tax_rate: float) -> None:
    totals = compute_totals(items, discount_percent, tax_rate)
    invoice.items = [
        InvoiceItem(
            product_id=item["product_id"],
            description=item["description"],
            quantity=item["quantity"],
            unit_price=item["unit_price"],
            total=line_total,
        )
        for item, line_total in zip(items, totals.line_totals)
    ]
    invoice.subtotal = totals.subtotal
    invoice.discount_percent = discount_percent
    invoice.discount = totals.discount
    invoice.tax_rate = tax_rate
    invoice.tax = totals.tax
    invoice.total = totals.total


def _restore_invoice_stock(invoice: Invoice, *, reason: str, actor_id: int | None) -> None:
    for item in invoice.items:
        if item.product_id is None:
            continue
        _restore_locked(
            invoice.tenant_id,
            item.product_id,
            item.quantity,
            reason=reason,
            reference=invoice.number,
            actor_id=actor_id,
        )


def _create_invoice_locked(
    tenant_id: int,
    *,
    client_id,
    items: list[dict],
    discount_percent: float,
    tax_rate: float,
    invoice_type: str,
    date,
    due_date,
    notes: str | None,
    actor_id: int | None,
    quote: Quote | None = None,
) -> Invoice:
    require_active_client(tenant_id, client_id)
    require_line_products(tenant_id, items)

    if quote is not None:
        if quote.client_id != client_id:
            raise ValidationError("client_id does not match the quote's client")
        if db.session.query(Invoice.id).filter_by(quote_id=quote.id).first() is not None:
            raise InvalidStateError(
                f"Quote {quote.number} has already been invoiced",
                details={"quote_id": quote.id},
            )
        require_quote_transition(quote.status, QUOTE_ACCEPTED)

    date = date or utcnow()
    if due_date is None:
        due_date = date + timedelta(days=int(current_app.config.get("DEFAULT_PAYMENT_TERMS_DAYS", 30)))

    number = next_document_number(
        tenant_id=tenant_id,
        document_type=DOCUMENT_INVOICE,
        prefix=current_app.config["INVOICE_NUMBER_PREFIX"],
    )
    invoice = Invoice(
        tenant_id=tenant_id,
        client_id=client_id,
        quote_id=quote.id if quote is not None else None,
        number=number,
        type=invoice_type,
        status=INVOICE_PENDING,
        date=date,
        due_date=due_date,
        paid_amount=0.0,
        notes=notes,
        created_by_id=actor_id,
    )
    _apply_totals(invoice, items, discount_percent, tax_rate)
    db.session.add(invoice)
    db.session.flush()

    for item in items:
        if item["product_id"] is None:
            continue
        _deduct_locked(
            tenant_id,
            item["product_id"],
            item["quantity"],
            reason=f"Invoice {number}",
            reference=number,
            actor_id=actor_id,
        )

    if quote is not None:
        quote.status = QUOTE_ACCEPTED

    db.session.flush()
    return invoice


def create_invoice(
    tenant_id: int,
    *,
    client_id,
    items=None,
    quote_id: int | None = None,
    discount_percent=0,
    tax_percent=None,
    invoice_type: str | None = None,
    date=None,
    due_date=None,
    notes: str | None = None,
    actor_id: int | None = None,
) -> Invoice:
    """
    Create a PENDING invoice and deduct stock for its product lines.

    With quote_id and no items, this is convert_quote_to_invoice. With
    both, the given items are billed and the quote is still accepted.
    """
    if quote_id is not None and items is None:
        return convert_quote_to_invoice(
            tenant_id,
            quote_id,
            invoice_type=invoice_type,
            date=date,
            due_date=due_date,
            notes=notes,
            actor_id=actor_id,
        )

    items = normalize_line_items(items)
    discount_percent = coerce_percent(discount_percent or 0, "discount_percent")
    tax_percent = None if tax_percent is None else coerce_percent(tax_percent, "tax_percent")
    invoice_type = _validate_type(invoice_type)
    date = coerce_optional_datetime(date, "date")
    due_date = coerce_optional_datetime(due_date, "due_date")

    def _op():
        quote = get_scoped(Quote, quote_id, tenant_id, lock=True) if quote_id is not None else None
        return _create_invoice_locked(
            tenant_id,
            client_id=client_id,
            items=items,
            discount_percent=discount_percent,
            tax_rate=resolve_tax_rate(tenant_id, tax_percent),
            invoice_type=invoice_type,
            date=date,
            due_date=due_date,
            notes=notes,
            actor_id=actor_id,
            quote=quote,
        )

    return in_write_transaction(_op)


def convert_quote_to_invoice(
    tenant_id: int,
    quote_id: int,
    *,
    invoice_type: str | None = None,
    date=None,
    due_date=None,
    notes: str | None = None,
    actor_id: int | None = None,
) -> Invoice:
    """
    Invoice a quote: same client, lines and percents; deducts stock and
    accepts the quote atomically.
    """
    invoice_type = _validate_type(invoice_type)
    date = coerce_optional_datetime(date, "date")
    due_date = coerce_optional_datetime(due_date, "due_date")

    def _op():
        quote = get_scoped(Quote, quote_id, tenant_id, lock=True)
        items = [
            {
                "product_id": item.product_id,
                "description": item.description,
                "quantity": item.quantity,
                "unit_price": item.unit_price,
            }
            for item in quote.items
        ]
        if not items:
            raise ValidationError("Quote has no items to invoice")
        return _create_invoice_locked(
            tenant_id,
            client_id=quote.client_id,
            items=items,
            discount_percent=quote.discount_percent,
            tax_rate=quote.tax_rate,
            invoice_type=invoice_type,
            date=date,
            due_date=due_date,
            notes=quote.notes if notes is None else notes,
            actor_id=actor_id,
            quote=quote,
        )

    return in_write_transaction(_op)


def update_invoice(
    tenant_id: int,
    invoice_id: int,
    *,
    items,
    discount_percent=None,
    tax_percent=None,
    invoice_type: str | None = None,
    due_date=None,
    notes: str | None = None,
    is_admin: bool = False,
) -> Invoice:
    """
    Replace items and recompute totals.

    Non-admins may only edit PENDING invoices. No inventory delta is applied
    for changed product lines; stock reflects the lines at creation time.
    """
    items = normalize_line_items(items)
    discount_percent = None if discount_percent is None else coerce_percent(discount_percent, "discount_percent")
    tax_percent = None if tax_percent is None else coerce_percent(tax_percent, "tax_percent")
    invoice_type = None if invoice_type is None else _validate_type(invoice_type)
    due_date = coerce_optional_datetime(due_date, "due_date")

    def _op():
        invoice = get_scoped(Invoice, invoice_id, tenant_id, lock=True)
        require_invoice_editable(invoice, is_admin=is_admin)
        require_line_products(tenant_id, items)

        invoice.items.clear()
        db.session.flush()
        _apply_totals(
            invoice,
            items,
            invoice.discount_percent if discount_percent is None else discount_percent,
            invoice.tax_rate if tax_percent is None else tax_percent,
        )
        if invoice_type is not None:
            invoice.type = invoice_type
        if due_date is not None:
            invoice.due_date = due_date
        if notes is not None:
            invoice.notes = notes
        db.session.flush()
        return invoice

    return in_write_transaction(_op)


def _cancel_locked(invoice: Invoice, *, actor_id: int | None) -> Invoice:
    if invoice.status == INVOICE_CANCELLED:
        return invoice
    if invoice.status == INVOICE_PAID:
        raise InvalidStateError(
            f"Invoice {invoice.number} is PAID and cannot be cancelled",
            details={"invoice_id": invoice.id, "status": invoice.status},
        )
    _restore_invoice_stock(invoice, reason=f"Invoice {invoice.number} cancelled", actor_id=actor_id)
    invoice.status = INVOICE_CANCELLED
    db.session.flush()
    return invoice


def cancel_invoice(tenant_id: int, invoice_id: int, *, actor_id: int | None = None) -> Invoice:
    """PENDING -> CANCELLED, restoring stock once. Cancelling twice is a no-op."""
    def _op():
        invoice = get_scoped(Invoice, invoice_id, tenant_id, lock=True)
        return _cancel_locked(invoice, actor_id=actor_id)

    return in_write_transaction(_op)


def delete_invoice(tenant_id: int, invoice_id: int, *, actor_id: int | None = None) -> None:
    """
    Remove an invoice with no payments that is not PAID.

    Stock is restored first unless the invoice was already cancelled, and
    the originating quote goes back to SENT.
    """
    def _op():
        invoice = get_scoped(Invoice, invoice_id, tenant_id, lock=True)
        guard_delete("invoice", f"Invoice {invoice.number}", [
            ("it has payments",
             lambda: db.session.query(Payment.id).filter_by(invoice_id=invoice.id).first() is not None),
            ("it is paid", lambda: invoice.status == INVOICE_PAID),
        ])

        if invoice.status != INVOICE_CANCELLED:
            _restore_invoice_stock(invoice, reason=f"Invoice {invoice.number} deleted", actor_id=actor_id)

        if invoice.quote_id is not None:
            quote = get_scoped(Quote, invoice.quote_id, tenant_id, lock=True)
            quote.status = QUOTE_SENT

        db.session.delete(invoice)
        db.session.flush()

    in_write_transaction(_op)


def _mark_paid_locked(invoice: Invoice, amount: float) -> Invoice:
    if invoice.status == INVOICE_CANCELLED:
        raise InvalidStateError(
            f"Invoice {invoice.number} is CANCELLED",
            details={"invoice_id": invoice.id, "status": invoice.status},
        )
    invoice.paid_amount = amount
    if is_fully_paid(amount, invoice.total):
        invoice.status = INVOICE_PAID
    db.session.flush()
    return invoice


def mark_paid_amount(tenant_id: int, invoice_id: int, amount) -> Invoice:
    """
    Administrative override of paid_amount.

    Marks the invoice PAID when amount covers the total. The next recorded
    payment recomputes paid_amount from the payment rows.
    """
    amount = coerce_amount(amount, "amount")

    def _op():
        invoice = get_scoped(Invoice, invoice_id, tenant_id, lock=True)
        return _mark_paid_locked(invoice, amount)

    return in_write_transaction(_op)


def set_invoice_status(tenant_id: int, invoice_id: int, status: str, *, actor_id: int | None = None) -> Invoice:
    """
    CANCELLED -> cancel (restores stock); PAID -> paid_amount = total;
    PENDING is only accepted when the invoice is already PENDING.
    """
    validate_invoice_status(status)

    def _op():
        invoice = get_scoped(Invoice, invoice_id, tenant_id, lock=True)
        if status == INVOICE_CANCELLED:
            return _cancel_locked(invoice, actor_id=actor_id)
        if status == INVOICE_PAID:
            if invoice.status == INVOICE_PAID:
                return invoice
            return _mark_paid_locked(invoice, invoice.total)
        if invoice.status != INVOICE_PENDING:
            raise InvalidStateError(
                f"Invoice {invoice.number} is {invoice.status} and cannot return to PENDING",
                details={"from": invoice.status, "to": status},
            )
        return invoice

    return in_write_transaction(_op)


def invoice_low_stock_alerts(invoice: Invoice) -> list[dict]:
    """Low-stock advisories for the products on an invoice."""
    alerts = []
    seen = set()
    for item in invoice.items:
        if item.product_id is None or item.product_id in seen:
            continue
        seen.add(item.product_id)
        alert = check_low_stock(item.product)
        if alert:
            alerts.append(alert)
    return alerts


def get_invoice(tenant_id: int, invoice_id: int) -> Invoice:
    return get_scoped(Invoice, invoice_id, tenant_id)


def list_invoices(
    tenant_id: int,
    *,
    status: str | None = None,
    client_id: int | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 50,
) -> tuple[list[Invoice], int]:
    query = db.session.query(Invoice).filter(Invoice.tenant_id == tenant_id)
    if status:
        validate_invoice_status(status)
        query = query.filter(Invoice.status == status)
    if client_id is not None:
        query = query.filter(Invoice.client_id == client_id)
    if search:
        query = query.filter(Invoice.number.ilike(f"%{search.strip()}%"))

    total = query.count()
    page = max(page, 1)
    limit = min(max(limit, 1), 500)
    rows = (
        query.order_by(Invoice.created_at.desc(), Invoice.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return rows, total
