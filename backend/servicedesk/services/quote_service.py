# Overview: Quote engine; documents only, never touches inventory.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Invoice, Quote, QuoteItem
from ..money import compute_totals
from ..validation import coerce_optional_datetime, coerce_percent, normalize_line_items
from .clients_service import require_active_client
from .concurrency import in_write_transaction
from .lifecycle_service import (
    QUOTE_ACCEPTED,
    QUOTE_DRAFT,
    guard_delete,
    require_quote_editable,
    require_quote_transition,
    validate_quote_status,
)
from .numbering_service import DOCUMENT_QUOTE, next_document_number
from .products_service import require_line_products
from .tenant_service import get_scoped, resolve_tax_rate


def _quote_items(items: list[dict], line_totals) -> list[QuoteItem]:
    return [
        QuoteItem(
            product_id=item["product_id"],
            description=item["description"],
            quantity=item["quantity"],
            unit_price=item["unit_price"],
            total=line_total,
        )
        for item, line_total in zip(items, line_totals)
    ]


def _apply_totals(quote: Quote, items: list[dict], discount_percent: float, tax_rate: float) -> None:
    totals = compute_totals(items, discount_percent, tax_rate)
    quote.items = _quote_items(items, totals.line_totals)
    quote.subtotal = totals.subtotal
    quote.discount_percent = discount_percent
    quote.discount = totals.discount
    quote.tax_rate = tax_rate
    quote.tax = totals.tax
    quote.total = totals.total


def _new_quote_number(tenant_id: int) -> str:
    return next_document_number(
        tenant_id=tenant_id,
        document_type=DOCUMENT_QUOTE,
        prefix=current_app.config["QUOTE_NUMBER_PREFIX"],
    )


def create_quote(
    tenant_id: int,
    *,
    client_id: int,
    items,
    discount_percent=0,
    tax_percent=None,
    valid_until=None,
    notes: str | None = None,
    actor_id: int | None = None,
) -> Quote:
    """Create a DRAFT quote with the next quote number of the year."""
    items = normalize_line_items(items)
    discount_percent = coerce_percent(discount_percent or 0, "discount_percent")
    tax_percent = None if tax_percent is None else coerce_percent(tax_percent, "tax_percent")
    valid_until = coerce_optional_datetime(valid_until, "valid_until")

    def _op():
        require_active_client(tenant_id, client_id)
        require_line_products(tenant_id, items)
        quote = Quote(
            tenant_id=tenant_id,
            client_id=client_id,
            number=_new_quote_number(tenant_id),
            status=QUOTE_DRAFT,
            valid_until=valid_until,
            notes=notes,
            created_by_id=actor_id,
        )
        _apply_totals(quote, items, discount_percent, resolve_tax_rate(tenant_id, tax_percent))
        db.session.add(quote)
        db.session.flush()
        return quote

    return in_write_transaction(_op)


def update_quote(
    tenant_id: int,
    quote_id: int,
    *,
    items,
    discount_percent=None,
    tax_percent=None,
    valid_until=None,
    notes: str | None = None,
) -> Quote:
    """
    Replace a DRAFT/SENT quote's items wholesale and recompute totals.

    Percents left as None keep the values the quote was priced with.
    """
    items = normalize_line_items(items)
    discount_percent = None if discount_percent is None else coerce_percent(discount_percent, "discount_percent")
    tax_percent = None if tax_percent is None else coerce_percent(tax_percent, "tax_percent")
    valid_until = coerce_optional_datetime(valid_until, "valid_until")

    def _op():
        quote = get_scoped(Quote, quote_id, tenant_id, lock=True)
        require_quote_editable(quote)
        require_line_products(tenant_id, items)

        quote.items.clear()
        db.session.flush()
        _apply_totals(
            quote,
            items,
            quote.discount_percent if discount_percent is None else discount_percent,
            quote.tax_rate if tax_percent is None else tax_percent,
        )
        if valid_until is not None:
            quote.valid_until = valid_until
        if notes is not None:
            quote.notes = notes
        db.session.flush()
        return quote

    return in_write_transaction(_op)


def duplicate_quote(tenant_id: int, quote_id: int, *, actor_id: int | None = None) -> Quote:
    """Copy a quote into a new DRAFT with a fresh number and no valid_until."""
    def _op():
        source = get_scoped(Quote, quote_id, tenant_id)
        copy = Quote(
            tenant_id=tenant_id,
            client_id=source.client_id,
            number=_new_quote_number(tenant_id),
            status=QUOTE_DRAFT,
            valid_until=None,
            subtotal=source.subtotal,
            discount_percent=source.discount_percent,
            discount=source.discount,
            tax_rate=source.tax_rate,
            tax=source.tax,
            total=source.total,
            notes=source.notes,
            created_by_id=actor_id,
        )
        copy.items = [
            QuoteItem(
                product_id=item.product_id,
                description=item.description,
                quantity=item.quantity,
                unit_price=item.unit_price,
                total=item.total,
            )
            for item in source.items
        ]
        db.session.add(copy)
        db.session.flush()
        return copy

    return in_write_transaction(_op)


def delete_quote(tenant_id: int, quote_id: int) -> None:
    """Hard delete; refused for ACCEPTED quotes and quotes already invoiced."""
    def _op():
        quote = get_scoped(Quote, quote_id, tenant_id, lock=True)
        guard_delete("quote", f"Quote {quote.number}", [
            ("it has been accepted", lambda: quote.status == QUOTE_ACCEPTED),
            ("an invoice references it",
             lambda: db.session.query(Invoice.id).filter_by(quote_id=quote.id).first() is not None),
        ])
        db.session.delete(quote)
        db.session.flush()

    in_write_transaction(_op)


def set_quote_status(tenant_id: int, quote_id: int, status: str) -> Quote:
    validate_quote_status(status)

    def _op():
        quote = get_scoped(Quote, quote_id, tenant_id, lock=True)
        require_quote_transition(quote.status, status)
        quote.status = status
        db.session.flush()
        return quote

    return in_write_transaction(_op)


def get_quote(tenant_id: int, quote_id: int) -> Quote:
    return get_scoped(Quote, quote_id, tenant_id)


def list_quotes(
    tenant_id: int,
    *,
    status: str | None = None,
    client_id: int | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 50,
) -> tuple[list[Quote], int]:
    query = db.session.query(Quote).filter(Quote.tenant_id == tenant_id)
    if status:
        validate_quote_status(status)
        query = query.filter(Quote.status == status)
    if client_id is not None:
        query = query.filter(Quote.client_id == client_id)
    if search:
        query = query.filter(Quote.number.ilike(f"%{search.strip()}%"))

    total = query.count()
    page = max(page, 1)
    limit = min(max(limit, 1), 500)
    rows = (
        query.order_by(Quote.created_at.desc(), Quote.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return rows, total
