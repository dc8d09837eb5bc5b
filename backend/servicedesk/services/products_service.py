# Overview: Product catalogue operations; stock itself goes through inventory_service.

from __future__ import annotations

from sqlalchemy import func, or_

from ..errors import DuplicateConstraintError, InvalidStateError
from ..extensions import db
from ..models import InvoiceItem, Product, QuoteItem
from ..validation import ModelValidationPolicy, enforce_rules_product, validate_payload
from .concurrency import in_write_transaction
from .inventory_service import _restore_locked
from .lifecycle_service import STATE_ACTIVE, guard_delete
from .tenant_service import get_scoped


INITIAL_STOCK_REASON = "Initial stock"

PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"code", "name", "description", "unit", "price", "cost", "stock", "min_stock"},
    required_on_create={"name"},
)

# stock is deliberately absent: it only changes through movements
PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"code", "name", "description", "unit", "price", "cost", "min_stock"},
)


def _require_unique_code(tenant_id: int, code: str | None, *, exclude_id: int | None = None) -> None:
    if not code:
        return
    query = db.session.query(Product.id).filter(
        Product.tenant_id == tenant_id,
        func.lower(Product.code) == code.lower(),
        Product.lifecycle_state == STATE_ACTIVE,
    )
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first():
        raise DuplicateConstraintError(
            f"A product with code {code} already exists",
            details={"field": "code", "value": code},
        )


def create_product(tenant_id: int, payload: dict, *, actor_id: int | None = None) -> Product:
    """
    Create a product. A positive initial stock is booked as an IN movement
    so the product's ledger accounts for it from the start.
    """
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_CREATE_POLICY, partial=False)
    enforce_rules_product(patch)
    initial_stock = patch.pop("stock", None) or 0

    def _op():
        _require_unique_code(tenant_id, patch.get("code"))
        product = Product(tenant_id=tenant_id, stock=0, lifecycle_state=STATE_ACTIVE, **patch)
        db.session.add(product)
        db.session.flush()
        if initial_stock > 0:
            _restore_locked(
                tenant_id,
                product.id,
                initial_stock,
                reason=INITIAL_STOCK_REASON,
                actor_id=actor_id,
            )
        return product

    return in_write_transaction(_op)


def update_product(tenant_id: int, product_id: int, payload: dict) -> Product:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=True)
    enforce_rules_product(patch)

    def _op():
        product = get_scoped(Product, product_id, tenant_id, lock=True)
        if "code" in patch:
            _require_unique_code(tenant_id, patch["code"], exclude_id=product.id)
        for key, value in patch.items():
            setattr(product, key, value)
        db.session.flush()
        return product

    return in_write_transaction(_op)


def archive_product(tenant_id: int, product_id: int) -> Product:
    """Soft delete; refused while any quote or invoice line references the product."""
    def _op():
        product = get_scoped(Product, product_id, tenant_id, lock=True)
        product.lifecycle_state = guard_delete("product", f"Product {product.name}", [
            ("it is used in quotes",
             lambda: db.session.query(QuoteItem.id).filter_by(product_id=product.id).first() is not None),
            ("it is used in invoices",
             lambda: db.session.query(InvoiceItem.id).filter_by(product_id=product.id).first() is not None),
        ])
        db.session.flush()
        return product

    return in_write_transaction(_op)


def get_product(tenant_id: int, product_id: int) -> Product:
    return get_scoped(Product, product_id, tenant_id)


def list_products(
    tenant_id: int,
    *,
    search: str | None = None,
    include_archived: bool = False,
    low_stock_only: bool = False,
) -> list[Product]:
    query = db.session.query(Product).filter(Product.tenant_id == tenant_id)
    if not include_archived:
        query = query.filter(Product.lifecycle_state == STATE_ACTIVE)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(Product.name.ilike(pattern), Product.code.ilike(pattern)))
    if low_stock_only:
        query = query.filter(Product.stock <= Product.min_stock)
    return query.order_by(Product.name.asc(), Product.id.asc()).all()


def require_line_products(tenant_id: int, items: list[dict]) -> None:
    """Every product referenced by a document line must be an ACTIVE product of the tenant."""
    for product_id in sorted({item["product_id"] for item in items if item.get("product_id") is not None}):
        product = get_scoped(Product, product_id, tenant_id)
        if product.lifecycle_state != STATE_ACTIVE:
            raise InvalidStateError(
                f"Product {product.name} is {product.lifecycle_state.lower()} and cannot be put on a document",
                details={"product_id": product.id, "lifecycle_state": product.lifecycle_state},
            )
