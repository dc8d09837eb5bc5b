"""
Multi-Tenant Service: tenant-scoped lookups.

WHY: Every operation receives an explicit tenant_id and every query filters
on it. A row that exists in another tenant is reported exactly like a row
that does not exist, so callers cannot probe other tenants.

USAGE:
    from servicedesk.services.tenant_service import get_scoped

    invoice = get_scoped(Invoice, invoice_id, tenant_id, lock=True)
"""

from __future__ import annotations

from flask import current_app

from ..errors import NotFoundError
from ..extensions import db
from ..models import Company
from .concurrency import in_write_transaction, lock_for_update


_ENTITY_LABELS = {
    "clients": "Client",
    "products": "Product",
    "quotes": "Quote",
    "invoices": "Invoice",
    "payments": "Payment",
    "inventory_movements": "Inventory movement",
}


def get_company(tenant_id: int) -> Company:
    company = db.session.query(Company).filter_by(id=tenant_id, is_active=True).first()
    if company is None:
        raise NotFoundError("Company not found", details={"tenant_id": tenant_id})
    return company


def get_scoped(model, entity_id, tenant_id: int, *, lock: bool = False):
    """
    Load model row `entity_id` owned by `tenant_id`.

    lock=True reads with SELECT ... FOR UPDATE for read-modify-write.
    Raises NotFoundError when missing or owned by another tenant.
    """
    label = _ENTITY_LABELS.get(model.__tablename__, model.__name__)
    if entity_id is None:
        raise NotFoundError(f"{label} not found", details={"id": None})

    query = db.session.query(model).filter(model.id == entity_id, model.tenant_id == tenant_id)
    if lock:
        # Re-read the row so a value cached earlier in the session is never trusted
        query = lock_for_update(query).populate_existing()
    row = query.first()
    if row is None:
        raise NotFoundError(f"{label} not found", details={"id": entity_id})
    return row


def resolve_tax_rate(tenant_id: int, requested: float | None) -> float:
    """Request value, else the tenant's default, else DEFAULT_TAX_RATE."""
    if requested is not None:
        return requested
    company = get_company(tenant_id)
    if company.tax_rate is not None:
        return company.tax_rate
    return float(current_app.config.get("DEFAULT_TAX_RATE", 0.0))


def create_company(*, name: str, code: str | None = None, tax_rate: float | None = None) -> Company:
    def _op():
        company = Company(name=name, code=code, tax_rate=tax_rate, is_active=True)
        db.session.add(company)
        db.session.flush()
        return company

    return in_write_transaction(_op)
