from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Quote(db.Model):
    """
    Price proposal for a client (document-first, no stock effects).

    Items are owned by the quote and replaced wholesale on every edit.
    Money columns are the values computed at write time; discount_percent
    and tax_rate are kept so a conversion can re-price from the same inputs.
    """
    __tablename__ = "quotes"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "number", name="uq_quotes_tenant_number"),
        db.Index("ix_quotes_tenant_status_created", "tenant_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)

    # Human-readable document number (e.g., "COT-2026-00042")
    number = db.Column(db.String(64), nullable=False)

    status = db.Column(db.String(16), nullable=False, default="DRAFT", index=True)
    valid_until = db.Column(db.DateTime(timezone=True), nullable=True)

    subtotal = db.Column(db.Float, nullable=False, default=0.0)
    discount_percent = db.Column(db.Float, nullable=False, default=0.0)
    discount = db.Column(db.Float, nullable=False, default=0.0)
    tax_rate = db.Column(db.Float, nullable=False, default=0.0)
    tax = db.Column(db.Float, nullable=False, default=0.0)
    total = db.Column(db.Float, nullable=False, default=0.0)

    notes = db.Column(db.Text, nullable=True)

    created_by_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    client = db.relationship("Client")
    items = db.relationship(
        "QuoteItem",
        backref="quote",
        cascade="all, delete-orphan",
        order_by="QuoteItem.id",
        lazy=True,
    )

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "client_id": self.client_id,
            "number": self.number,
            "status": self.status,
            "valid_until": to_utc_z(self.valid_until) if self.valid_until else None,
            "subtotal": self.subtotal,
            "discount_percent": self.discount_percent,
            "discount": self.discount,
            "tax_rate": self.tax_rate,
            "tax": self.tax,
            "total": self.total,
            "notes": self.notes,
            "created_by_id": self.created_by_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class QuoteItem(db.Model):
    """Line item on a quote."""
    __tablename__ = "quote_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    quote_id = db.Column(db.Integer, db.ForeignKey("quotes.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)

    description = db.Column(db.String(255), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Float, nullable=False)
    total = db.Column(db.Float, nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "quote_id": self.quote_id,
            "product_id": self.product_id,
            "description": self.description,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "total": self.total,
        }


class Invoice(db.Model):
    """
    Billable document.

    Creating an invoice deducts stock for every product line; cancelling or
    deleting it restores that stock. paid_amount is a denormalized sum of
    the invoice's Payment rows, recomputed on every payment.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "number", name="uq_invoices_tenant_number"),
        db.UniqueConstraint("quote_id", name="uq_invoices_quote"),
        db.Index("ix_invoices_tenant_status_created", "tenant_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)
    quote_id = db.Column(db.Integer, db.ForeignKey("quotes.id"), nullable=True)

    # Human-readable document number (e.g., "FAC-2026-00042")
    number = db.Column(db.String(64), nullable=False)
    type = db.Column(db.String(16), nullable=False, default="SERVICE")

    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    date = db.Column(db.DateTime(timezone=True), nullable=False)
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)

    subtotal = db.Column(db.Float, nullable=False, default=0.0)
    discount_percent = db.Column(db.Float, nullable=False, default=0.0)
    discount = db.Column(db.Float, nullable=False, default=0.0)
    tax_rate = db.Column(db.Float, nullable=False, default=0.0)
    tax = db.Column(db.Float, nullable=False, default=0.0)
    total = db.Column(db.Float, nullable=False, default=0.0)
    paid_amount = db.Column(db.Float, nullable=False, default=0.0)

    notes = db.Column(db.Text, nullable=True)

    created_by_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    client = db.relationship("Client")
    quote = db.relationship("Quote", backref=db.backref("invoice", uselist=False, lazy=True))
    items = db.relationship(
        "InvoiceItem",
        backref="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.id",
        lazy=True,
    )
    payments = db.relationship("Payment", backref="invoice", lazy="dynamic")

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "client_id": self.client_id,
            "quote_id": self.quote_id,
            "number": self.number,
            "type": self.type,
            "status": self.status,
            "date": to_utc_z(self.date),
            "due_date": to_utc_z(self.due_date) if self.due_date else None,
            "subtotal": self.subtotal,
            "discount_percent": self.discount_percent,
            "discount": self.discount,
            "tax_rate": self.tax_rate,
            "tax": self.tax,
            "total": self.total,
            "paid_amount": self.paid_amount,
            "notes": self.notes,
            "created_by_id": self.created_by_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class InvoiceItem(db.Model):
    """Line item on an invoice; product lines drive stock movements."""
    __tablename__ = "invoice_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)

    description = db.Column(db.String(255), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Float, nullable=False)
    total = db.Column(db.Float, nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "product_id": self.product_id,
            "description": self.description,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "total": self.total,
        }


class Payment(db.Model):
    """
    Payment recorded against an invoice.

    Strictly additive: there is no void or refund path, so the set of
    Payment rows is exactly what Invoice.paid_amount must sum to.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.Index("ix_payments_invoice_paid_at", "invoice_id", "paid_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)

    amount = db.Column(db.Float, nullable=False)
    method = db.Column(db.String(32), nullable=False, default="CASH", index=True)
    status = db.Column(db.String(16), nullable=False, default="COMPLETED")
    paid_at = db.Column(db.DateTime(timezone=True), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    created_by_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "invoice_id": self.invoice_id,
            "amount": self.amount,
            "method": self.method,
            "status": self.status,
            "paid_at": to_utc_z(self.paid_at),
            "notes": self.notes,
            "created_by_id": self.created_by_id,
            "created_at": to_utc_z(self.created_at),
        }
