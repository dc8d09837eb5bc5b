# Overview: Inventory ledger engine; the only code that writes Product.stock.

"""
Inventory Ledger Invariants (authoritative)

Stock model:
- Product.stock is a materialized balance. InventoryMovement rows are the
  source of truth: stock == SUM(signed quantity) over the product's movements.
- Every stock change writes exactly one movement in the same transaction,
  and no movement is written without the matching stock change.
- Stock never goes negative (InsufficientStockError; a CHECK constraint
  backs this up in the schema).

Movement types:
- IN:         +quantity (restorations, receipts, initial stock)
- OUT:        -quantity (invoice deductions, manual removals)
- ADJUSTMENT: new_stock - previous_stock; quantity stores the magnitude

Transactions:
- _deduct_locked / _restore_locked / _adjust_locked join the caller's
  transaction. They lock and re-read the product row before computing the
  new balance, so concurrent writers on one product serialize.
- deduct_stock / restore_stock / adjust_stock / apply_stock_movement own
  their transaction and commit.
"""

from __future__ import annotations

from sqlalchemy import case, func, or_

from ..errors import InsufficientStockError, InvalidStateError
from ..extensions import db
from ..models import InventoryMovement, Product
from ..validation import ValidationError, coerce_int
from ..time_utils import end_of_day
from .concurrency import in_write_transaction
from .lifecycle_service import STATE_ACTIVE
from .tenant_service import get_scoped


MOVEMENT_IN = "IN"
MOVEMENT_OUT = "OUT"
MOVEMENT_ADJUSTMENT = "ADJUSTMENT"

MOVEMENT_TYPES = (MOVEMENT_IN, MOVEMENT_OUT, MOVEMENT_ADJUSTMENT)


def _signed_quantity_expr():
    return case(
        (InventoryMovement.type == MOVEMENT_IN, InventoryMovement.quantity),
        (InventoryMovement.type == MOVEMENT_OUT, -InventoryMovement.quantity),
        else_=InventoryMovement.new_stock - InventoryMovement.previous_stock,
    )


def _lock_product(tenant_id: int, product_id: int, *, require_active: bool) -> Product:
    product = get_scoped(Product, product_id, tenant_id, lock=True)
    if require_active and product.lifecycle_state != STATE_ACTIVE:
        raise InvalidStateError(
            f"Product {product.name} is {product.lifecycle_state.lower()}",
            details={"product_id": product.id, "lifecycle_state": product.lifecycle_state},
        )
    return product


def _require_positive(quantity, field: str = "quantity") -> int:
    quantity = coerce_int(quantity, field)
    if quantity <= 0:
        raise ValidationError(f"{field} must be > 0")
    return quantity


def _record_movement(
    product: Product,
    *,
    movement_type: str,
    new_stock: int,
    reason: str | None,
    reference: str | None,
    notes: str | None,
    actor_id: int | None,
) -> InventoryMovement:
    previous_stock = product.stock
    product.stock = new_stock
    movement = InventoryMovement(
        tenant_id=product.tenant_id,
        product_id=product.id,
        type=movement_type,
        quantity=abs(new_stock - previous_stock),
        previous_stock=previous_stock,
        new_stock=new_stock,
        reason=reason,
        reference=reference,
        notes=notes,
        actor_id=actor_id,
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def _deduct_locked(
    tenant_id: int,
    product_id: int,
    quantity: int,
    *,
    reason: str | None = None,
    reference: str | None = None,
    notes: str | None = None,
    actor_id: int | None = None,
) -> InventoryMovement:
    quantity = _require_positive(quantity)
    product = _lock_product(tenant_id, product_id, require_active=True)
    if product.stock - quantity < 0:
        raise InsufficientStockError(
            f"Insufficient stock for {product.name}: available {product.stock}, requested {quantity}",
            details={"product_id": product.id, "available": product.stock, "requested": quantity},
        )
    return _record_movement(
        product,
        movement_type=MOVEMENT_OUT,
        new_stock=product.stock - quantity,
        reason=reason,
        reference=reference,
        notes=notes,
        actor_id=actor_id,
    )


def _restore_locked(
    tenant_id: int,
    product_id: int,
    quantity: int,
    *,
    reason: str | None = None,
    reference: str | None = None,
    notes: str | None = None,
    actor_id: int | None = None,
) -> InventoryMovement:
    # Restorations are allowed on archived products; no stock ceiling.
    quantity = _require_positive(quantity)
    product = _lock_product(tenant_id, product_id, require_active=False)
    return _record_movement(
        product,
        movement_type=MOVEMENT_IN,
        new_stock=product.stock + quantity,
        reason=reason,
        reference=reference,
        notes=notes,
        actor_id=actor_id,
    )


def _adjust_locked(
    tenant_id: int,
    product_id: int,
    *,
    new_stock: int | None = None,
    delta: int | None = None,
    reason: str | None = None,
    reference: str | None = None,
    notes: str | None = None,
    actor_id: int | None = None,
) -> InventoryMovement:
    if (new_stock is None) == (delta is None):
        raise ValidationError("Provide exactly one of new_stock or delta")

    product = _lock_product(tenant_id, product_id, require_active=True)
    if new_stock is not None:
        target = coerce_int(new_stock, "new_stock")
    else:
        target = product.stock + coerce_int(delta, "delta")

    if target < 0:
        raise InsufficientStockError(
            f"Adjustment would leave {product.name} with negative stock ({target})",
            details={"product_id": product.id, "available": product.stock, "requested_stock": target},
        )
    return _record_movement(
        product,
        movement_type=MOVEMENT_ADJUSTMENT,
        new_stock=target,
        reason=reason,
        reference=reference,
        notes=notes,
        actor_id=actor_id,
    )


def deduct_stock(tenant_id: int, product_id: int, quantity: int, **kwargs) -> InventoryMovement:
    return in_write_transaction(lambda: _deduct_locked(tenant_id, product_id, quantity, **kwargs))


def restore_stock(tenant_id: int, product_id: int, quantity: int, **kwargs) -> InventoryMovement:
    return in_write_transaction(lambda: _restore_locked(tenant_id, product_id, quantity, **kwargs))


def adjust_stock(tenant_id: int, product_id: int, **kwargs) -> InventoryMovement:
    return in_write_transaction(lambda: _adjust_locked(tenant_id, product_id, **kwargs))


def check_low_stock(product: Product) -> dict | None:
    """Non-fatal advisory: stock <= min_stock."""
    if product.stock <= product.min_stock:
        return {
            "type": "LOW_STOCK",
            "product_id": product.id,
            "stock": product.stock,
            "min_stock": product.min_stock,
            "message": f"{product.name} is low on stock ({product.stock} left, minimum {product.min_stock})",
        }
    return None


def apply_stock_movement(
    tenant_id: int,
    product_id: int,
    *,
    movement_type: str,
    quantity,
    reason: str | None = None,
    notes: str | None = None,
    reference: str | None = None,
    actor_id: int | None = None,
) -> tuple[InventoryMovement, dict | None]:
    """
    Manual stock movement.

    IN/OUT take a positive quantity; ADJUSTMENT takes the new absolute stock.
    Returns the movement and the low-stock advisory (or None).
    """
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(MOVEMENT_TYPES)}")
    if quantity is None:
        raise ValidationError("quantity is required")

    extra = dict(reason=reason, notes=notes, reference=reference, actor_id=actor_id)

    def _op():
        if movement_type == MOVEMENT_IN:
            movement = _restore_locked(tenant_id, product_id, quantity, **extra)
        elif movement_type == MOVEMENT_OUT:
            movement = _deduct_locked(tenant_id, product_id, quantity, **extra)
        else:
            movement = _adjust_locked(tenant_id, product_id, new_stock=quantity, **extra)
        return movement, check_low_stock(movement.product)

    return in_write_transaction(_op)


def _filtered_movements(
    tenant_id: int,
    *,
    movement_type: str | None = None,
    product_id: int | None = None,
    search: str | None = None,
    date_from=None,
    date_to=None,
):
    query = (
        db.session.query(InventoryMovement)
        .join(Product, Product.id == InventoryMovement.product_id)
        .filter(InventoryMovement.tenant_id == tenant_id)
    )
    if movement_type:
        if movement_type not in MOVEMENT_TYPES:
            raise ValidationError(f"type must be one of: {', '.join(MOVEMENT_TYPES)}")
        query = query.filter(InventoryMovement.type == movement_type)
    if product_id is not None:
        query = query.filter(InventoryMovement.product_id == product_id)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            InventoryMovement.reason.ilike(pattern),
            InventoryMovement.reference.ilike(pattern),
            Product.name.ilike(pattern),
            Product.code.ilike(pattern),
        ))
    if date_from is not None:
        query = query.filter(InventoryMovement.created_at >= date_from)
    if date_to is not None:
        # Inclusive of the whole end day
        query = query.filter(InventoryMovement.created_at <= end_of_day(date_to))
    return query


def list_movements(tenant_id: int, *, page: int = 1, limit: int = 50, **filters) -> tuple[list[InventoryMovement], int]:
    query = _filtered_movements(tenant_id, **filters)
    total = query.count()

    page = max(page, 1)
    limit = min(max(limit, 1), 500)

    rows = (
        query.order_by(InventoryMovement.created_at.desc(), InventoryMovement.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return rows, total


def movement_stats(tenant_id: int, **filters) -> dict:
    """Per-type counts and quantity magnitudes over the filtered movements."""
    stats = {t: {"count": 0, "quantity": 0} for t in MOVEMENT_TYPES}
    subquery = _filtered_movements(tenant_id, **filters).with_entities(
        InventoryMovement.type.label("type"),
        InventoryMovement.quantity.label("quantity"),
    ).subquery()
    rows = (
        db.session.query(
            subquery.c.type,
            func.count(),
            func.coalesce(func.sum(subquery.c.quantity), 0),
        )
        .group_by(subquery.c.type)
        .all()
    )
    for movement_type, count, quantity in rows:
        stats[movement_type] = {"count": int(count), "quantity": int(quantity)}
    return stats


def reconstruct_stock(tenant_id: int, product_id: int) -> int:
    """Stock derived purely from the movement ledger."""
    get_scoped(Product, product_id, tenant_id)
    total = (
        db.session.query(func.coalesce(func.sum(_signed_quantity_expr()), 0))
        .filter(
            InventoryMovement.tenant_id == tenant_id,
            InventoryMovement.product_id == product_id,
        )
        .scalar()
    )
    return int(total or 0)


def verify_stock_ledger(tenant_id: int | None = None) -> list[dict]:
    """
    Compare every product's stock with its ledger.

    Returns one row per product whose stock disagrees; empty means healthy.
    tenant_id=None checks all tenants (CLI use).
    """
    ledger = (
        db.session.query(
            InventoryMovement.product_id.label("product_id"),
            func.sum(_signed_quantity_expr()).label("ledger_stock"),
        )
        .group_by(InventoryMovement.product_id)
        .subquery()
    )
    query = db.session.query(
        Product.id,
        Product.tenant_id,
        Product.name,
        Product.stock,
        func.coalesce(ledger.c.ledger_stock, 0),
    ).outerjoin(ledger, ledger.c.product_id == Product.id)
    if tenant_id is not None:
        query = query.filter(Product.tenant_id == tenant_id)

    mismatches = []
    for pid, tid, name, stock, ledger_stock in query.order_by(Product.id).all():
        ledger_stock = int(ledger_stock or 0)
        if stock != ledger_stock:
            mismatches.append({
                "product_id": pid,
                "tenant_id": tid,
                "name": name,
                "stock": stock,
                "ledger_stock": ledger_stock,
                "difference": stock - ledger_stock,
            })
    return mismatches
